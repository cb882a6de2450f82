"""Exception taxonomy for the notice webhook service."""


class NoticeHookError(Exception):
    """Base exception carrying an error code and the HTTP status it maps to."""

    def __init__(self, code: str, message: str, details=None, status_code: int = 500):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class ValidationError(NoticeHookError):
    """Missing or malformed request parameter."""

    def __init__(self, message: str, details=None):
        super().__init__("VALIDATION_ERROR", message, details, status_code=400)


class NotFoundError(NoticeHookError):
    """Unknown webhook endpoint."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            "NOT_FOUND",
            f"{resource} '{resource_id}' not found",
            status_code=404,
        )


class ConflictError(NoticeHookError):
    """Webhook endpoint already registered."""

    def __init__(self, message: str, details=None):
        super().__init__("CONFLICT", message, details, status_code=409)


class UpstreamError(NoticeHookError):
    """Notice source or webhook endpoint failed or returned malformed data."""

    def __init__(self, message: str, details=None):
        super().__init__("UPSTREAM_ERROR", message, details, status_code=500)


class StorageError(NoticeHookError):
    """Persistence operation failed."""

    def __init__(self, message: str = "Storage operation failed", details=None):
        super().__init__("STORAGE_ERROR", message, details, status_code=500)
