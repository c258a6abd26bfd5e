"""
Custom error classes for AI Metrics Hub.
Structured error handling with error codes across all modules.

Hierarchy:
    MetricsHubError
    ├── APIError
    │   ├── APITimeoutError
    │   ├── APIRateLimitError
    │   ├── APIAuthError
    │   ├── APINotFoundError
    │   └── APIValidationError
    ├── DataError
    │   ├── ConfigError
    │   ├── PartialDataError
    │   ├── SnapshotParseError
    │   └── RowParseError
    └── PipelineError
        └── PipelineStepError
"""


class MetricsHubError(Exception):
    """Base exception for all AI Metrics Hub errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


# --- API Errors ---

class APIError(MetricsHubError):
    """Base class for upstream API errors."""

    def __init__(self, message: str, code: str = "API_ERROR",
                 status_code: int = None, url: str = None, **kwargs):
        self.status_code = status_code
        self.url = url
        details = {"status_code": status_code, "url": url, **kwargs}
        super().__init__(message, code=code, details=details)


class APITimeoutError(APIError):
    """Request timed out."""

    def __init__(self, url: str, timeout: int):
        super().__init__(
            f"Request timed out after {timeout}s: {url}",
            code="API_TIMEOUT", url=url, timeout=timeout,
        )


class APIRateLimitError(APIError):
    """Rate limit exceeded."""

    def __init__(self, url: str, retry_after: int = None):
        msg = f"Rate limit exceeded: {url}"
        if retry_after:
            msg += f" (retry after {retry_after}s)"
        super().__init__(
            msg, code="API_RATE_LIMIT", status_code=429, url=url,
            retry_after=retry_after,
        )


class APIAuthError(APIError):
    """Authentication or authorization failure (401/403)."""

    def __init__(self, url: str, status_code: int = 401):
        reason = "Unauthorized" if status_code == 401 else "Forbidden"
        super().__init__(
            f"{reason}: check the token and its scopes ({url})",
            code="API_AUTH_FAILED", url=url, status_code=status_code,
        )


class APINotFoundError(APIError):
    """Resource not found, or the feature is not enabled for the organization."""

    def __init__(self, url: str):
        super().__init__(
            f"Not found: {url}", code="API_NOT_FOUND", url=url, status_code=404,
        )


class APIValidationError(APIError):
    """Upstream rejected the request parameters (422)."""

    def __init__(self, url: str, body: str = None):
        super().__init__(
            f"Validation failed: {url}", code="API_VALIDATION",
            url=url, status_code=422, body=body,
        )


# --- Data Errors ---

class DataError(MetricsHubError):
    """Base class for data loading and processing errors."""
    pass


class ConfigError(DataError):
    """Required input file or setting is missing or unusable."""

    def __init__(self, message: str, config_path: str = None, hint: str = None):
        self.config_path = config_path
        self.hint = hint
        super().__init__(
            message, code="CONFIG_ERROR",
            details={"config_path": config_path, "hint": hint},
        )


class PartialDataError(DataError):
    """One platform's data is unavailable; the rest of the report still runs."""

    def __init__(self, platform: str, message: str):
        self.platform = platform
        super().__init__(
            message, code="PARTIAL_DATA", details={"platform": platform},
        )


class SnapshotParseError(DataError):
    """A whole snapshot file could not be parsed."""

    def __init__(self, message: str, source: str = None):
        self.source = source
        super().__init__(
            message, code="SNAPSHOT_UNPARSEABLE", details={"source": source},
        )


class RowParseError(DataError):
    """A single record inside an otherwise valid snapshot is malformed."""

    def __init__(self, message: str, row: int = None):
        super().__init__(message, code="ROW_INVALID", details={"row": row})


# --- Pipeline Errors ---

class PipelineError(MetricsHubError):
    """Pipeline orchestration error."""
    pass


class PipelineStepError(PipelineError):
    """A specific pipeline step failed."""

    def __init__(self, step_name: str, cause: Exception = None):
        msg = f"Pipeline step '{step_name}' failed"
        if cause:
            msg += f": {cause}"
        super().__init__(
            msg, code="PIPELINE_STEP_FAILED", details={"step": step_name},
        )
