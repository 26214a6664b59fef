from enum import Enum
from typing import Optional


class ExtractorError(Exception):
    """Base class for every error raised by the extraction pipeline."""


class ValidationError(ExtractorError):
    """Malformed request; raised before any job exists."""


class SafetyRejection(ExtractorError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"local network forbidden: {reason}")
        self.url = url
        self.reason = reason


class FetchErrorKind(str, Enum):
    TIMEOUT = "timeout"
    NETWORK_FAILURE = "network_failure"
    NON_RETRYABLE = "non_retryable"


class FetchError(ExtractorError):
    def __init__(self, kind: FetchErrorKind, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind in (FetchErrorKind.TIMEOUT, FetchErrorKind.NETWORK_FAILURE)


class EvalError(ExtractorError):
    def __init__(self, selector_id: str, message: str):
        super().__init__(f"selector '{selector_id}': {message}")
        self.selector_id = selector_id
        self.message = message


class OrchestratorFault(ExtractorError):
    """Job-level failure (pool exhausted, broken invariant)."""


class ExportError(ExtractorError):
    pass


class JobNotFound(ExtractorError):
    def __init__(self, job_id: str):
        super().__init__(f"job not found: {job_id}")
        self.job_id = job_id


class RateLimited(ExtractorError):
    def __init__(self, client_id: str, retry_after_seconds: int):
        super().__init__(f"rate limited: retry after {retry_after_seconds}s")
        self.client_id = client_id
        self.retry_after_seconds = retry_after_seconds
