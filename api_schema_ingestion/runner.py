import logging
from dataclasses import dataclass
from typing import Optional

from api_schema_ingestion.app_context import FetchConfig, FetchResult, ProgressCallback, RetryPolicy
from api_schema_ingestion.config_loader import ConfigLoader
from api_schema_ingestion.errors import EmptyInputError
from api_schema_ingestion.fetcher import PaginatedFetcher, SmokeTestResult
from api_schema_ingestion.job_logger import init_job_logger
from api_schema_ingestion.schema_inference import SchemaAnalysisResult, SchemaInferenceEngine
from api_schema_ingestion.transport import HttpTransport


@dataclass
class IngestionResult:
    session_id: str
    fetch: FetchResult
    schema: SchemaAnalysisResult


class IngestionRunner:
    """
    One ingestion run for a session: fetch every page, then infer the schema of what
    came back. The result goes to whoever provisions the table.
    """

    def __init__(
            self,
            config: FetchConfig,
            session_id: str,
            retry_policy: Optional[RetryPolicy] = None,
            transport: Optional[HttpTransport] = None,
            log_dir: Optional[str] = None,
            logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.session_id = session_id
        if logger is None:
            logger, _ = init_job_logger(log_dir, "ingestion", session_id)
        self.logger = logger
        self.transport = transport or HttpTransport(retry_policy)
        self.fetcher = PaginatedFetcher(self.transport, log=self.logger)
        self.engine = SchemaInferenceEngine(log=self.logger)

    @classmethod
    def from_config_file(cls, config_path: str, **kwargs) -> "IngestionRunner":
        conf = ConfigLoader(config_path)
        return cls(conf.load_fetch_config(), conf.load_session_id(), **kwargs)

    def run(self, on_progress: Optional[ProgressCallback] = None) -> IngestionResult:
        self.logger.info(f"Starting ingestion run for session {self.session_id}")
        try:
            fetch_result = self.fetcher.fetch_all(self.config, on_progress=on_progress)
        finally:
            self.transport.close()

        if not fetch_result.all_records:
            raise EmptyInputError(f"Session {self.session_id}: the API returned no records, nothing to analyze")

        schema = self.engine.analyze(fetch_result.all_records, self.session_id)
        self.logger.info(
            f"Session {self.session_id}: {len(fetch_result.all_records)} records, "
            f"{schema.total_fields} fields, table {schema.table_name}"
        )
        return IngestionResult(session_id=self.session_id, fetch=fetch_result, schema=schema)

    def smoke_test(self) -> SmokeTestResult:
        self.logger.info(f"Smoke testing endpoint for session {self.session_id}")
        return self.fetcher.smoke_test(self.config, self.session_id)
