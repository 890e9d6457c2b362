"""
Custom exceptions module.

Import errors from here rather than from exceptions.errors.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Mapping
    MappingNotFoundError,
    InvalidMappingError,
    MappingVersionConflictError,

    # Sync sessions
    SyncSessionNotFoundError,
    ActiveSessionExistsError,
    SessionBusyError,
    SessionConflictError,

    # Upstream
    WarehouseFetchError,
    ChannelUpdateError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Mapping
    "MappingNotFoundError",
    "InvalidMappingError",
    "MappingVersionConflictError",

    # Sync sessions
    "SyncSessionNotFoundError",
    "ActiveSessionExistsError",
    "SessionBusyError",
    "SessionConflictError",

    # Upstream
    "WarehouseFetchError",
    "ChannelUpdateError",
]
