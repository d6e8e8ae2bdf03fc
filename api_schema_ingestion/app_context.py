from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import api_schema_ingestion.constants as constants


class PaginationType(str, Enum):
    PAGE = "page"
    OFFSET = "offset"


class FetchStatus(str, Enum):
    STARTING = "starting"
    FETCHING = "fetching"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class RetryPolicy:
    retries: int = constants.RETRIES
    base_delay: float = constants.BACKOFF_FACTOR
    timeout: Optional[float] = constants.TIMEOUT

    def delay_for(self, attempt: int) -> float:
        """Linear backoff: base_delay x attempt number."""
        return self.base_delay * attempt


@dataclass
class FetchConfig:
    api_url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, str] = field(default_factory=dict)
    data: Optional[Any] = None
    enable_pagination: bool = False
    pagination_type: PaginationType = PaginationType.PAGE
    page_field: Optional[str] = None
    page_field_start_value: Optional[int] = None
    size_field: str = constants.DEFAULT_SIZE_FIELD
    total_field: Optional[str] = None
    page_size: int = constants.DEFAULT_PAGE_SIZE
    step_size: Optional[int] = None
    end_page: Optional[int] = None
    data_path: Optional[str] = None
    max_pages: int = constants.MAX_PAGES
    page_field_synonyms: Tuple[str, ...] = constants.PAGE_FIELD_SYNONYMS
    size_field_synonyms: Tuple[str, ...] = constants.SIZE_FIELD_SYNONYMS

    @property
    def start_value(self) -> int:
        if self.page_field_start_value is not None:
            return self.page_field_start_value
        return 0 if self.pagination_type == PaginationType.OFFSET else 1


@dataclass
class FetchProgress:
    status: FetchStatus = FetchStatus.STARTING
    current_page: int = 0
    fetched_records: int = 0
    total_records: Optional[int] = None
    total_pages: Optional[int] = None
    message: str = ""
    error: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    # seconds, averaged over the last PAGE_TIME_WINDOW pages
    average_page_time: Optional[float] = None
    estimated_time_remaining: Optional[float] = None

    @property
    def percentage(self) -> Optional[int]:
        if self.status == FetchStatus.COMPLETED:
            return 100
        if not self.total_records:
            return None
        return min(100, round(self.fetched_records * 100 / self.total_records))


ProgressCallback = Callable[[FetchProgress], None]


@dataclass
class FetchResult:
    all_records: List[Any]
    total_pages: int
    total_records: int
    pages_processed: int
