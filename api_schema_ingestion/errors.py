from typing import Optional


class IngestionError(Exception):
    """Base class for every error raised by an ingestion run."""


class ConfigurationError(IngestionError, ValueError):
    """The fetch configuration cannot be used. Raised before any request is sent."""


class FetchError(IngestionError):
    def __init__(self, message: str, page: Optional[int] = None, url: Optional[str] = None):
        if page is not None:
            message = f"page {page}: {message}"
        super().__init__(message)
        self.page = page
        self.url = url


class TransportError(FetchError):
    """Network failure or 5xx response that survived every retry."""

    def __init__(
            self,
            message: str,
            page: Optional[int] = None,
            url: Optional[str] = None,
            status_code: Optional[int] = None,
            attempts: int = 0,
    ):
        super().__init__(message, page=page, url=url)
        self.status_code = status_code
        self.attempts = attempts


class RequestRejectedError(FetchError, ConfigurationError):
    """4xx response. Never retried: the request itself is wrong."""

    def __init__(self, message: str, page: Optional[int] = None, url: Optional[str] = None,
                 status_code: Optional[int] = None):
        FetchError.__init__(self, message, page=page, url=url)
        self.status_code = status_code


class UnexpectedResponseShapeError(IngestionError):
    """The response body does not have the shape the extractor expected."""


class EmptyInputError(IngestionError, ValueError):
    pass
