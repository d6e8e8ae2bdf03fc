import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit, urlunsplit

import api_schema_ingestion.constants as constants
from api_schema_ingestion.app_context import (
    FetchConfig,
    FetchProgress,
    FetchResult,
    FetchStatus,
    PaginationType,
    ProgressCallback,
)
from api_schema_ingestion.config_loader import ConfigValidator
from api_schema_ingestion.errors import (
    ConfigurationError,
    FetchError,
    IngestionError,
    UnexpectedResponseShapeError,
)
from api_schema_ingestion.json_utils import JsonUtils
from api_schema_ingestion.schema_inference import SchemaAnalysisResult, SchemaInferenceEngine
from api_schema_ingestion.transport import HttpTransport

logger = logging.getLogger(__name__)


def split_api_url(api_url: str) -> Tuple[str, Dict[str, str]]:
    """
    Separate the base URL from its query string. The embedded parameters are returned
    in their original order and are re-sent on every page request.
    """
    if not isinstance(api_url, str) or not ConfigValidator.is_valid_url(api_url):
        raise ConfigurationError(f"Invalid url: {api_url!r}")
    try:
        parts = urlsplit(api_url)
    except ValueError as e:
        raise ConfigurationError(f"Invalid url: {api_url!r}: {e}") from e
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        raise ConfigurationError(f"Invalid url: {api_url!r}")

    base_url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    return base_url, dict(parse_qsl(parts.query, keep_blank_values=True))


def find_existing_field(params: Dict[str, Any], synonyms: Iterable[str]) -> Optional[str]:
    for name in synonyms:
        if name in params:
            return name
    return None


# Envelope detection. Each extractor returns the record list, or None when the body
# does not have its shape. They are tried in order; fallback_wrap always matches.

def is_array(body: Any) -> Optional[List[Any]]:
    return body if isinstance(body, list) else None


def _has_array_under(key: str) -> Callable[[Any], Optional[List[Any]]]:
    def extractor(body: Any) -> Optional[List[Any]]:
        if isinstance(body, dict) and isinstance(body.get(key), list):
            return body[key]
        return None
    extractor.__name__ = f"has_{key}_array"
    return extractor


has_data_array = _has_array_under("data")
has_items_array = _has_array_under("items")
has_results_array = _has_array_under("results")


def fallback_wrap(body: Any) -> List[Any]:
    if body is None:
        return []
    logger.warning(f"Unrecognized response shape ({type(body).__name__}), using the whole body as one record")
    return [body]


ENVELOPE_EXTRACTORS: List[Callable[[Any], Optional[List[Any]]]] = [
    is_array,
    has_data_array,
    has_items_array,
    has_results_array,
    fallback_wrap,
]


def extract_records(body: Any, data_path: Optional[str] = None, page: Optional[int] = None) -> List[Any]:
    if data_path:
        try:
            extracted = JsonUtils.extract_path(body, data_path)
            return extracted if isinstance(extracted, list) else [extracted]
        except UnexpectedResponseShapeError as e:
            logger.warning(f"Page {page}: data path extraction failed ({e}), falling back to envelope detection")

    for extractor in ENVELOPE_EXTRACTORS:
        records = extractor(body)
        if records is not None:
            return records
    return []


def suggest_page_fields(params: Dict[str, Any], synonyms: Iterable[str]) -> List[str]:
    """Page-parameter synonyms the request already carries, in synonym order."""
    return [name for name in synonyms if name in params]


@dataclass
class SmokeTestResult:
    success: bool
    records: List[Any] = field(default_factory=list)
    message: str = ""
    error: Optional[str] = None
    # seconds
    response_time: Optional[float] = None
    schema: Optional[SchemaAnalysisResult] = None
    suggested_page_fields: List[str] = field(default_factory=list)


class FetchState(str, Enum):
    FETCHING = "fetching"
    LAST_PAGE_REACHED = "last_page_reached"
    ABORTED = "aborted"
    COMPLETED = "completed"


class _PagePlan:
    """Request shape shared by every page of one run."""

    def __init__(self, config: FetchConfig):
        self.base_url, original_params = split_api_url(config.api_url)
        self.params: Dict[str, Any] = dict(original_params)
        for key, value in (config.query_params or {}).items():
            if key and value is not None:
                self.params[key] = value

        self.paginated = config.enable_pagination
        self.page_key: Optional[str] = None
        self.size_key: Optional[str] = None
        self.page_size = config.page_size
        self.start = config.start_value

        if self.paginated:
            existing_page = find_existing_field(self.params, config.page_field_synonyms)
            if existing_page and existing_page != config.page_field:
                logger.warning(
                    f"URL already carries pagination parameter '{existing_page}', "
                    f"using it instead of '{config.page_field}'"
                )
            self.page_key = existing_page or config.page_field
            if existing_page and config.page_field_start_value is None:
                value = str(self.params[existing_page])
                if value.isdigit():
                    self.start = int(value)

            existing_size = find_existing_field(self.params, config.size_field_synonyms)
            if existing_size:
                value = str(self.params[existing_size])
                if value.isdigit() and int(value) > 0:
                    self.page_size = int(value)
            else:
                self.size_key = config.size_field

        # offset counters advance by the size the server is actually asked for
        if config.step_size:
            self.step = config.step_size
        elif config.pagination_type == PaginationType.OFFSET:
            self.step = self.page_size
        else:
            self.step = 1

    def params_for(self, counter: int) -> Dict[str, Any]:
        params = dict(self.params)
        if self.page_key:
            params[self.page_key] = counter
        if self.size_key:
            params[self.size_key] = self.page_size
        return params


class PaginatedFetcher:
    """
    Walks a paginated HTTP API one page at a time until the data runs out.

    The loop is a small state machine. Every fetched page goes through _transition,
    which decides whether the run keeps FETCHING or moves to LAST_PAGE_REACHED.
    LAST_PAGE_REACHED resolves to COMPLETED; any failure moves the run to ABORTED and
    the error propagates with nothing returned.

    Without an explicit end_page the API gives no reliable "has more" signal, so a
    page shorter than the page size is taken as the last one.
    """

    def __init__(
            self,
            transport: Optional[HttpTransport] = None,
            page_delay: Optional[float] = None,
            log: Optional[logging.Logger] = None,
            clock: Optional[Callable[[], float]] = None,
    ):
        self.transport = transport or HttpTransport()
        self.page_delay = page_delay
        self.logger = log or logger
        self.clock = clock or time.monotonic

    @staticmethod
    def validate(config: FetchConfig) -> None:
        ConfigValidator.validate_fetch_config(config)

    def fetch_all(self, config: FetchConfig, on_progress: Optional[ProgressCallback] = None) -> FetchResult:
        self.validate(config)
        plan = _PagePlan(config)

        progress = FetchProgress(
            status=FetchStatus.STARTING,
            message=f"Starting fetch from {plan.base_url}",
            start_time=datetime.now(),
        )
        self._report(progress, on_progress)

        all_records: List[Any] = []
        reported_total: Optional[int] = None
        pages_processed = 0
        page_times: Deque[float] = deque(maxlen=constants.PAGE_TIME_WINDOW)
        counter = plan.start
        step = plan.step
        ordinal = 1
        state = FetchState.FETCHING

        if plan.paginated and config.end_page is not None and self._page_number(config, counter, ordinal) > config.end_page:
            state = FetchState.LAST_PAGE_REACHED

        self.logger.info(
            f"Fetching {config.method} {plan.base_url} "
            f"(pagination={'on' if plan.paginated else 'off'}, page size {plan.page_size}, "
            f"end page {config.end_page if config.end_page is not None else 'auto'})"
        )

        while state == FetchState.FETCHING:
            page_number = self._page_number(config, counter, ordinal)
            progress.status = FetchStatus.FETCHING
            progress.current_page = page_number
            progress.message = f"Fetching page {page_number}"
            self._report(progress, on_progress)

            page_started = self.clock()
            try:
                body = self.transport.request(
                    config.method,
                    plan.base_url,
                    headers=config.headers,
                    params=plan.params_for(counter) if plan.paginated else dict(plan.params),
                    data=config.data,
                    page=page_number,
                )
            except FetchError as e:
                state = FetchState.ABORTED
                self.logger.error(f"Page {page_number} failed, aborting run: {e}")
                progress.status = FetchStatus.ERROR
                progress.error = str(e)
                progress.message = f"Fetch failed on page {page_number}"
                progress.end_time = datetime.now()
                progress.estimated_time_remaining = None
                self._report(progress, on_progress)
                raise

            page_records = extract_records(body, config.data_path, page_number)
            if page_records:
                all_records.extend(page_records)
                pages_processed += 1

            total = self._reported_total(body, config.total_field)
            if total is not None:
                reported_total = total

            self.logger.info(f"Page {page_number} done, {len(page_records)} records ({len(all_records)} so far)")

            state = self._transition(config, plan, page_records, counter + step, ordinal + 1)
            page_times.append(self.clock() - page_started)
            progress.fetched_records = len(all_records)
            progress.total_records = reported_total
            if reported_total is not None:
                progress.total_pages = math.ceil(reported_total / plan.page_size)
            progress.average_page_time = sum(page_times) / len(page_times)
            if progress.total_pages is not None:
                remaining_pages = max(0, progress.total_pages - ordinal)
                progress.estimated_time_remaining = remaining_pages * progress.average_page_time
            self._report(progress, on_progress)

            if state == FetchState.FETCHING:
                counter += step
                ordinal += 1
                time.sleep(self._delay())

        total_records = reported_total if reported_total is not None else len(all_records)
        total_pages = math.ceil(total_records / plan.page_size) if plan.page_size else pages_processed

        state = FetchState.COMPLETED
        progress.status = FetchStatus.COMPLETED
        progress.fetched_records = len(all_records)
        progress.total_records = total_records
        progress.total_pages = total_pages
        progress.end_time = datetime.now()
        progress.estimated_time_remaining = 0.0
        progress.message = f"Fetch completed, {len(all_records)} records from {pages_processed} pages"
        self._report(progress, on_progress)
        self.logger.info(progress.message)

        return FetchResult(
            all_records=all_records,
            total_pages=total_pages,
            total_records=total_records,
            pages_processed=pages_processed,
        )

    def smoke_test(self, config: FetchConfig, session_id: str = "") -> SmokeTestResult:
        """
        One request against the configured endpoint to check it answers and to preview
        what it returns. Failures are reported on the result rather than raised.

        Pagination parameters are added only when the URL carries none and no explicit
        query parameters were configured, so a URL that already pins its own page is
        sent exactly as written.
        """
        started = self.clock()
        try:
            ConfigValidator.validate_method(config.method)
            plan = _PagePlan(replace(config, enable_pagination=False))
            params = dict(plan.params)
            suggested = suggest_page_fields(params, config.page_field_synonyms)
            has_size = find_existing_field(params, config.size_field_synonyms) is not None
            if not suggested and not has_size and not config.query_params:
                params[config.page_field or constants.DEFAULT_PAGE_FIELD] = config.start_value
                params[config.size_field] = config.page_size

            self.logger.info(f"Smoke test {config.method} {plan.base_url} params={params}")
            body = self.transport.request(
                config.method,
                plan.base_url,
                headers=config.headers,
                params=params,
                data=config.data,
                page=1,
                retry_policy=replace(self.transport.retry_policy, retries=constants.SMOKE_TEST_RETRIES),
            )
            response_time = self.clock() - started
            sample = extract_records(body, config.data_path, 1)[:config.page_size]
            schema = None
            if any(isinstance(r, dict) for r in sample):
                schema = SchemaInferenceEngine(log=self.logger).analyze(sample, session_id)
        except IngestionError as e:
            self.logger.warning(f"Smoke test against {config.api_url} failed: {e}")
            return SmokeTestResult(
                success=False,
                message=f"Smoke test failed: {e}",
                error=str(e),
                response_time=self.clock() - started,
            )

        message = f"Received {len(sample)} records in {response_time * 1000:.0f}ms"
        self.logger.info(f"Smoke test against {plan.base_url} succeeded: {message}")
        return SmokeTestResult(
            success=True,
            records=sample,
            message=message,
            response_time=response_time,
            schema=schema,
            suggested_page_fields=suggested,
        )

    def _transition(
            self,
            config: FetchConfig,
            plan: _PagePlan,
            page_records: List[Any],
            next_counter: int,
            next_ordinal: int,
    ) -> FetchState:
        if not plan.paginated:
            return FetchState.LAST_PAGE_REACHED
        if not page_records:
            self.logger.info("Empty page, stopping")
            return FetchState.LAST_PAGE_REACHED
        if config.end_page is not None:
            if self._page_number(config, next_counter, next_ordinal) > config.end_page:
                self.logger.info(f"Reached configured end page {config.end_page}")
                return FetchState.LAST_PAGE_REACHED
        elif len(page_records) < plan.page_size:
            self.logger.info(f"Page has fewer than {plan.page_size} records, treating it as the last page")
            return FetchState.LAST_PAGE_REACHED
        if next_ordinal > config.max_pages:
            self.logger.warning(f"Stopping after {config.max_pages} pages (max_pages safety limit)")
            return FetchState.LAST_PAGE_REACHED
        return FetchState.FETCHING

    @staticmethod
    def _page_number(config: FetchConfig, counter: int, ordinal: int) -> int:
        if config.pagination_type == PaginationType.PAGE:
            return counter
        return ordinal

    @staticmethod
    def _reported_total(body: Any, total_field: Optional[str]) -> Optional[int]:
        if not total_field or not isinstance(body, dict):
            return None
        value = JsonUtils.first_path(body, total_field)
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return int(value)
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return None

    def _delay(self) -> float:
        return constants.THROTTLE if self.page_delay is None else self.page_delay

    @staticmethod
    def _report(progress: FetchProgress, on_progress: Optional[ProgressCallback]) -> None:
        if on_progress is not None:
            on_progress(replace(progress))
