"""
错误处理模块 - 定义自定义异常类和错误处理逻辑
Domain error kinds surfaced by the snapshot pipeline plus the infrastructure
errors raised by its collaborators.
"""
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import status


class ErrorCode(str, Enum):
    """错误代码枚举"""
    # Pipeline preconditions
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"

    # Upstream / per-item failures
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    RENDER_OR_STORAGE_FAILED = "RENDER_OR_STORAGE_FAILED"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CACHE_ERROR = "CACHE_ERROR"
    SOURCE_ERROR = "SOURCE_ERROR"
    SCORING_FAILED = "SCORING_FAILED"


class BaseApplicationError(Exception):
    """应用基础异常类"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        return {
            "code": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


# ---------------------------------------------------------------------------
# Pipeline error kinds
# ---------------------------------------------------------------------------


class NotFoundError(BaseApplicationError):
    """Repository, analysis or snapshot does not exist."""
    def __init__(self, resource_type: str, resource_id: Optional[str] = None, hint: Optional[str] = None):
        message = f"{resource_type} not found"
        details: Dict[str, Any] = {"resource_type": resource_type}
        if resource_id:
            details["resource_id"] = resource_id
            message = f"{resource_type} with id '{resource_id}' not found"
        if hint:
            message = f"{message}. {hint}"

        super().__init__(
            message=message,
            error_code=ErrorCode.NOT_FOUND,
            details=details,
            status_code=status.HTTP_404_NOT_FOUND
        )


class UnauthorizedError(BaseApplicationError):
    """Caller does not own the resource."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            message=f"User does not own {resource_type} '{resource_id}'",
            error_code=ErrorCode.UNAUTHORIZED,
            details={"resource_type": resource_type, "resource_id": resource_id},
            status_code=status.HTTP_403_FORBIDDEN
        )


class InsufficientDataError(BaseApplicationError):
    """Not enough repository data to produce snapshots."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.INSUFFICIENT_DATA,
            details=details,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY
        )


class UpstreamUnavailableError(BaseApplicationError):
    """AI backend or repository source outage that retries could not absorb."""
    def __init__(self, service_name: str, reason: Optional[str] = None):
        message = f"{service_name} is currently unavailable"
        details: Dict[str, Any] = {"service": service_name}
        if reason:
            message = f"{message}: {reason}"
            details["reason"] = reason

        super().__init__(
            message=message,
            error_code=ErrorCode.UPSTREAM_UNAVAILABLE,
            details=details,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


class RenderOrStorageError(BaseApplicationError):
    """Rendering or uploading a single snippet failed."""
    def __init__(self, message: str, operation: str, file_path: Optional[str] = None):
        details: Dict[str, Any] = {"operation": operation}
        if file_path:
            details["file_path"] = file_path

        super().__init__(
            message=f"Snapshot {operation} failed: {message}",
            error_code=ErrorCode.RENDER_OR_STORAGE_FAILED,
            details=details,
            status_code=status.HTTP_502_BAD_GATEWAY
        )


# ---------------------------------------------------------------------------
# Infrastructure errors
# ---------------------------------------------------------------------------


class CacheError(BaseApplicationError):
    """Redis缓存错误"""
    def __init__(self, message: str, operation: Optional[str] = None):
        details = {}
        if operation:
            details["operation"] = operation

        super().__init__(
            message=f"Cache error: {message}",
            error_code=ErrorCode.CACHE_ERROR,
            details=details,
        )


class RepositorySourceError(BaseApplicationError):
    """Base class for repository data source failures."""
    def __init__(self, message: str, path: Optional[str] = None, status_code: int = status.HTTP_502_BAD_GATEWAY):
        details = {}
        if path:
            details["path"] = path
        super().__init__(
            message=message,
            error_code=ErrorCode.SOURCE_ERROR,
            details=details,
            status_code=status_code
        )


class SourceNotFoundError(RepositorySourceError):
    """The requested repository, ref or file does not exist upstream."""
    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, path=path, status_code=status.HTTP_404_NOT_FOUND)


class SourceRateLimitedError(RepositorySourceError):
    """The repository host rejected the call because of rate limiting."""
    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, path=path, status_code=status.HTTP_429_TOO_MANY_REQUESTS)


class SourceTransientError(RepositorySourceError):
    """Network failure or 5xx from the repository host."""


class ScoringError(BaseApplicationError):
    """The AI backend failed or returned an unusable response."""
    def __init__(self, message: str, raw_response: Optional[str] = None):
        details = {}
        if raw_response is not None:
            details["raw_response"] = raw_response[:200]
        super().__init__(
            message=f"Scoring failed: {message}",
            error_code=ErrorCode.SCORING_FAILED,
            details=details,
            status_code=status.HTTP_502_BAD_GATEWAY
        )
