from typing import Any


class AdoSyncError(Exception):
    """Base exception class for ado-sync errors with structured error information."""

    def __init__(
        self,
        message: str,
        error_code: str,
        context: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        """
        Initialize structured ado-sync error.

        Args:
            message: Human-readable error message
            error_code: Structured error code for programmatic handling
            context: Additional context information about the error
            original_exception: The original exception that caused this error
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.original_exception = original_exception


class AdoAuthenticationError(AdoSyncError):
    """Raised when no usable credential exists or the service rejects it."""

    def __init__(
        self,
        message: str = "Authentication failed",
        context: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            error_code="ADO_AUTH_FAILED",
            context=context,
            original_exception=original_exception,
        )


class AdoRateLimitError(AdoSyncError):
    """Exception for Azure DevOps rate limiting (429) that survived the replay."""

    def __init__(
        self,
        message: str = "API rate limit exceeded",
        retry_after: int | None = None,
        context: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        context = context or {}
        if retry_after:
            context["retry_after"] = retry_after

        super().__init__(
            message=message,
            error_code="ADO_RATE_LIMIT",
            context=context,
            original_exception=original_exception,
        )
        self.retry_after = retry_after


class AdoTimeoutError(AdoSyncError):
    """Exception for request timeouts."""

    def __init__(
        self,
        message: str = "Operation timed out",
        timeout_seconds: int | None = None,
        context: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        context = context or {}
        if timeout_seconds:
            context["timeout_seconds"] = timeout_seconds

        super().__init__(
            message=message,
            error_code="ADO_TIMEOUT",
            context=context,
            original_exception=original_exception,
        )
        self.timeout_seconds = timeout_seconds


class AdoNetworkError(AdoSyncError):
    """Exception for connection failures and 5xx responses."""

    def __init__(
        self,
        message: str = "Network error occurred",
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        context = context or {}
        if status_code:
            context["status_code"] = status_code

        super().__init__(
            message=message,
            error_code="ADO_NETWORK_ERROR",
            context=context,
            original_exception=original_exception,
        )
        self.status_code = status_code


class AdoApiError(AdoSyncError):
    """Exception for non-retryable HTTP errors returned by Azure DevOps."""

    def __init__(
        self,
        message: str,
        status_code: int,
        error_code: str = "ADO_API_ERROR",
        context: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        context = context or {}
        context["status_code"] = status_code

        super().__init__(
            message=message,
            error_code=error_code,
            context=context,
            original_exception=original_exception,
        )
        self.status_code = status_code


class AdoConcurrencyError(AdoApiError):
    """The server refused a write because the item revision no longer matched."""

    def __init__(
        self,
        message: str,
        status_code: int,
        context: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="ADO_REVISION_MISMATCH",
            context=context,
            original_exception=original_exception,
        )


class AdoConfigurationError(AdoSyncError):
    """Exception for configuration-related errors."""

    def __init__(
        self,
        message: str = "Configuration error",
        context: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            error_code="ADO_CONFIG_ERROR",
            context=context,
            original_exception=original_exception,
        )


class DocumentValidationError(AdoSyncError):
    """A work item document failed validation; nothing was sent to Azure DevOps."""

    def __init__(self, issues: list[Any], message: str | None = None):
        summary = message or f"Document validation failed with {len(issues)} error(s)"
        super().__init__(
            message=summary,
            error_code="DOCUMENT_INVALID",
            context={"error_count": len(issues)},
        )
        self.issues = issues


class ImportFailedError(AdoSyncError):
    """The root work item of an import could not be fetched."""

    def __init__(
        self,
        remote_id: int,
        message: str | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message or f"Could not fetch work item {remote_id}",
            error_code="IMPORT_ROOT_FAILED",
            context={"remote_id": remote_id},
            original_exception=original_exception,
        )
        self.remote_id = remote_id
