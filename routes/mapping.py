"""
Mapping store API routes.
"""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
import structlog

from models.mapping import (
    MappingResponse,
    MappingUpdateRequest,
    MappingUpdateResponse,
    MappingHistoryEntry,
)
from services.mapping_service import get_mapping_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


@router.get("", response_model=MappingResponse)
def get_mapping():
    """Active mapping and the source it came from."""
    try:
        return get_mapping_service().get_mapping()
    except Exception as e:
        return handle_error(e)


@router.post("", response_model=MappingUpdateResponse)
def update_mapping(data: MappingUpdateRequest):
    """
    Store a new mapping version.

    With expected_version, the write is rejected (409) if the mapping
    changed since that version.
    """
    try:
        return get_mapping_service().update_mapping(
            data.mapping,
            updated_by=data.updated_by,
            expected_version=data.expected_version
        )
    except Exception as e:
        return handle_error(e)


@router.get("/history", response_model=list[MappingHistoryEntry])
def get_mapping_history(
    limit: int = Query(10, ge=1, le=100, description="Versions to return")
):
    """Stored mapping versions, newest first."""
    try:
        return get_mapping_service().get_history(limit=limit)
    except Exception as e:
        return handle_error(e)
