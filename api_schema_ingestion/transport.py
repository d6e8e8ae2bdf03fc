import logging
import time
from typing import Any, Dict, Optional

import requests
from requests.exceptions import RequestException

from api_schema_ingestion import __version__
from api_schema_ingestion.app_context import RetryPolicy
from api_schema_ingestion.errors import RequestRejectedError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": f"api-schema-ingestion/{__version__}",
}


def is_retryable_status(status_code: int) -> bool:
    return status_code >= 500


class HttpTransport:
    """
    One HTTP round trip with a bounded retry loop.
    5xx responses and network errors are retried up to policy.retries times, waiting
    base_delay x attempt between tries. Anything below 500 is returned or rejected
    without a retry.
    """

    def __init__(self, retry_policy: Optional[RetryPolicy] = None, session: Optional[requests.Session] = None):
        self.retry_policy = retry_policy or RetryPolicy()
        self.session = session or requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)

    def close(self) -> None:
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def request(
            self,
            method: str,
            url: str,
            headers: Optional[Dict[str, str]] = None,
            params: Optional[Dict[str, Any]] = None,
            data: Any = None,
            page: Optional[int] = None,
            retry_policy: Optional[RetryPolicy] = None,
    ) -> Any:
        policy = retry_policy or self.retry_policy
        attempt = 0
        last_error = ""
        last_status: Optional[int] = None

        while attempt <= policy.retries:
            if attempt > 0:
                sleep_time = policy.delay_for(attempt)
                logger.warning(f"Retrying {method} {url} in {sleep_time:.2f}s (attempt {attempt}/{policy.retries})")
                time.sleep(sleep_time)

            try:
                resp = self.session.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=data,
                    timeout=policy.timeout,
                )
            except RequestException as e:
                logger.error(f"Request error for {url}: {e}")
                last_error = str(e)
                last_status = None
                attempt += 1
                continue

            if is_retryable_status(resp.status_code):
                logger.error(f"HTTP {resp.status_code} for {url} params={params}: {resp.text[:500]}")
                last_error = f"HTTP {resp.status_code}: {resp.text[:500]}"
                last_status = resp.status_code
                attempt += 1
                continue

            if resp.status_code >= 400:
                raise RequestRejectedError(
                    f"HTTP {resp.status_code} for {url}: {resp.text[:500]}",
                    page=page,
                    url=url,
                    status_code=resp.status_code,
                )

            logger.debug(f"HTTP {resp.status_code} for {url} params={params}")
            if not resp.content:
                return None
            try:
                return resp.json()
            except ValueError as e:
                logger.warning(f"Response from {url} is not valid JSON ({e}), returning the raw text")
                return resp.text

        raise TransportError(
            f"Giving up on {url} after {attempt} attempts: {last_error}",
            page=page,
            url=url,
            status_code=last_status,
            attempts=attempt,
        )
