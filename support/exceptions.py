"""
Typed errors raised by the gateway's collaborators.

Each error carries the HTTP status code and a stable machine-readable code. The
request boundary (see custom_middleware.error_middleware) maps them to
``{"error": message, "code": code}`` JSON responses.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for all errors the gateway exposes to callers."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class ValidationError(AppError):
    """Malformed job id, missing file, wrong type, bad payload."""

    status_code = 400
    code = "VALIDATION_ERROR"


class UnauthorizedError(AppError):
    """Caller failed the shared-secret check."""

    status_code = 401
    code = "UNAUTHORIZED"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class JobNotFoundError(NotFoundError):
    code = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        super().__init__("Job not found")
        self.job_id = job_id


class ExecutionNotFoundError(NotFoundError):
    code = "NO_EXECUTION_INFO"

    def __init__(self, job_id: str):
        super().__init__("No execution information available for this job")
        self.job_id = job_id


class ArtifactNotFoundError(NotFoundError):
    code = "FILE_NOT_FOUND"

    def __init__(self, file_id: str):
        super().__init__("File not found")
        self.file_id = file_id


class ForwardingError(AppError):
    """External workflow unreachable, rejected the upload, or answered with malformed data."""

    status_code = 502
    code = "FORWARDING_FAILED"

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class StorageError(AppError):
    """Artifact read/write failure."""

    status_code = 500
    code = "STORAGE_ERROR"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str, code: str, retry_after: int):
        super().__init__(message, code=code)
        self.retry_after = retry_after
