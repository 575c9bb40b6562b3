"""Error taxonomy shared by the services and the HTTP layer."""
from typing import Optional


class PlatformError(Exception):
    """Base error carrying the HTTP status it maps to."""
    status_code = 500

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(PlatformError):
    """Malformed backend or module definition."""
    status_code = 400


class NotFoundError(PlatformError):
    """Missing backend/module, or a backend the caller does not own."""
    status_code = 404


class ConflictError(PlatformError):
    """Module name already generated for the backend."""
    status_code = 400


class PermissionDeniedError(PlatformError):
    """Operation restricted to administrators."""
    status_code = 403


class StorageError(PlatformError):
    """Filesystem or database I/O failure."""
    status_code = 500


class SubprocessError(PlatformError):
    """Out-of-process generation exited non-zero or timed out."""
    status_code = 500

    def __init__(self, message: str, stderr: str = "", returncode: Optional[int] = None):
        super().__init__(message, detail=stderr or None)
        self.stderr = stderr
        self.returncode = returncode
