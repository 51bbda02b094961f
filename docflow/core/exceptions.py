"""Custom exception hierarchy."""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""

    status_code: int = 500
    retryable: bool = False
    kind: str = "internal"

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(AppError):
    """Raised when input validation fails. Never retried."""

    status_code = 400
    kind = "validation"


class FileTooLargeError(ValidationError):
    """Raised when a file exceeds the processing size ceiling."""

    status_code = 413


class UnsupportedFileTypeError(ValidationError):
    """Raised when a file is neither an image nor a PDF."""


class MissingIdentifierError(ValidationError):
    """Raised when a submission lacks its type-specific identifier."""


class WorkflowConfigError(ValidationError):
    """Raised when a stored workflow or step configuration is malformed."""


class ProviderError(AppError):
    """Raised when an upstream model or integration API fails."""

    status_code = 502
    kind = "provider"

    def __init__(
        self,
        message: str,
        original_error: Exception = None,
        upstream_status: Optional[int] = None,
    ):
        super().__init__(message, original_error)
        self.upstream_status = upstream_status


class RateLimitedError(ProviderError):
    """Raised when the upstream explicitly signals rate limiting (HTTP 429)."""

    status_code = 429
    retryable = True
    kind = "rate_limited"


class APIClientError(ProviderError):
    """Raised when an external API call fails transiently."""

    status_code = 500
    retryable = True
    kind = "transient"


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""

    status_code = 504


class MalformedResponseError(ProviderError):
    """Raised when a model response cannot be parsed; retrying will not help."""

    status_code = 500
    kind = "unrecoverable"


class NotFoundError(AppError):
    """Raised when a referenced record does not exist."""

    status_code = 404
    kind = "not_found"


class DatabaseError(AppError):
    """Raised when a database operation fails."""


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""

    kind = "configuration"


class StepFailedError(AppError):
    """Raised inside the workflow engine when a single step fails."""

    kind = "step_failed"

    def __init__(self, message: str, step_id: Optional[str] = None, original_error: Exception = None):
        super().__init__(message, original_error)
        self.step_id = step_id


class WorkflowExecutionError(AppError):
    """Raised when a workflow execution aborts with no failure path."""

    kind = "execution_failed"

    def __init__(
        self,
        message: str,
        execution_id=None,
        step_id: Optional[str] = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error)
        self.execution_id = execution_id
        self.step_id = step_id
