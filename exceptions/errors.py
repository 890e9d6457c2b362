"""
Custom exception classes for the application.

Every error carries a machine-readable code, an HTTP status and a details
dict so routes can return the standard error envelope.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "SYNC_SESSION_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# MAPPING ERRORS
# ===================

class MappingNotFoundError(NotFoundError):
    """No product mapping available from any source."""

    def __init__(self, sources: list[str]):
        super().__init__(
            resource="Mapping",
            identifier=",".join(sources),
            code="MAPPING_NOT_FOUND"
        )
        self.details = {"sources_tried": sources}


class InvalidMappingError(ValidationError):
    """
    Mapping content cannot be used for a sync.

    Configuration error: aborts the whole sync and is never retried.
    """

    def __init__(self, message: str, problems: Optional[list[dict]] = None):
        super().__init__(
            code="INVALID_MAPPING",
            message=message,
            details={"problems": problems or []}
        )


class MappingVersionConflictError(ConflictError):
    """Conditional mapping write lost against a newer version."""

    def __init__(self, expected_version: int, current_version: Optional[int]):
        super().__init__(
            code="MAPPING_VERSION_CONFLICT",
            message=f"Mapping changed since version {expected_version}",
            details={
                "expected_version": expected_version,
                "current_version": current_version
            }
        )


# ===================
# SYNC SESSION ERRORS
# ===================

class SyncSessionNotFoundError(NotFoundError):
    """Sync session not found (deleted, killed or never created)."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Sync session",
            identifier=session_id,
            code="SYNC_SESSION_NOT_FOUND"
        )


class ActiveSessionExistsError(ConflictError):
    """A pending or in-progress session blocks a new start."""

    def __init__(self, session_id: str):
        super().__init__(
            code="ACTIVE_SESSION_EXISTS",
            message="Another sync session is still active",
            details={"active_session_id": session_id}
        )


class SessionBusyError(ConflictError):
    """Another invocation currently holds the batch lease."""

    def __init__(self, session_id: str, lease_expires_at: Optional[str]):
        super().__init__(
            code="SESSION_BUSY",
            message="A batch for this session is already being processed",
            details={
                "session_id": session_id,
                "lease_expires_at": lease_expires_at
            }
        )


class SessionConflictError(ConflictError):
    """Conditional session write matched no row (killed, finished or raced)."""

    def __init__(self, session_id: str, expected_version: int):
        super().__init__(
            code="SESSION_CONFLICT",
            message="Session changed or was removed during the update",
            details={
                "session_id": session_id,
                "expected_version": expected_version
            }
        )


# ===================
# UPSTREAM ERRORS
# ===================

class WarehouseFetchError(ExternalServiceError):
    """Warehouse login or inventory fetch failed for a whole batch."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="warehouse",
            message=message,
            details=details
        )


class ChannelUpdateError(ExternalServiceError):
    """
    A single channel item could not be read or written.

    Caught per item by the dispatcher and turned into a failed outcome.

    Reasons: missing_identifier, not_found, validation, rate_limited,
    timeout, not_configured, upstream.
    """

    def __init__(
        self,
        channel: str,
        reason: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            service=channel,
            message=message,
            details={"reason": reason, **(details or {})}
        )
        self.channel = channel
        self.reason = reason
