"""
Sync control API routes.

Every control operation answers with a SyncControlResponse whose state is
no_session, in_progress, completed, completed_with_failures or failed.
"""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.inventory import InventorySummary
from models.sync import SyncControlResponse, KillResponse, SyncReport, ChannelSyncResponse, Channel
from services.sync_session_service import get_sync_session_manager
from services.sync_report_service import get_sync_report_service
from services.inventory_snapshot_service import get_inventory_snapshot_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

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


# ===================
# CONTROL ROUTES
# ===================

@router.post("/start", response_model=SyncControlResponse)
def start_sync(
    batch_size: Optional[int] = Query(None, ge=1, le=500, description="Override batch size"),
    resume: bool = Query(True, description="Resume an active session instead of failing")
):
    """
    Start a sync session.

    Returns the active session when one exists and resume is true.
    """
    try:
        return get_sync_session_manager().start(batch_size=batch_size, resume=resume)
    except Exception as e:
        return handle_error(e)


@router.post("/continue", response_model=SyncControlResponse)
def continue_active_sync():
    """Advance the active session by one batch."""
    try:
        return get_sync_session_manager().continue_session()
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/continue", response_model=SyncControlResponse)
def continue_sync(session_id: str):
    """Advance a session by one batch."""
    try:
        return get_sync_session_manager().continue_session(session_id)
    except Exception as e:
        return handle_error(e)


@router.get("/status", response_model=SyncControlResponse)
def get_sync_status(
    session_id: Optional[str] = Query(None, description="Session to read (default: active)")
):
    """Read-only session snapshot for polling."""
    try:
        return get_sync_session_manager().get_status(session_id)
    except Exception as e:
        return handle_error(e)


@router.post("/kill", response_model=KillResponse)
def kill_sync(
    session_id: Optional[str] = Query(None, description="Session to delete (default: all active)")
):
    """Delete one session or every active session."""
    try:
        return get_sync_session_manager().kill(session_id)
    except Exception as e:
        return handle_error(e)


@router.post("/cleanup", response_model=KillResponse)
def cleanup_sessions(
    older_than_days: Optional[int] = Query(
        None,
        ge=1,
        le=365,
        description="Also delete finished sessions older than this many days"
    )
):
    """Delete stale active sessions, and optionally old finished ones."""
    try:
        manager = get_sync_session_manager()
        stale = manager.cleanup_stale_sessions()
        if older_than_days is None:
            return stale

        old = manager.clear_old_sessions(older_than_days)
        return KillResponse(
            deleted_count=stale.deleted_count + old.deleted_count,
            session_ids=stale.session_ids + old.session_ids,
            message=f"{stale.message}; {old.message}"
        )
    except Exception as e:
        return handle_error(e)


@router.get("/auto-continue", response_model=SyncControlResponse)
def auto_continue_sync():
    """
    Scheduler hook.

    Advances the active session when it has been idle long enough.
    """
    try:
        return get_sync_session_manager().auto_continue()
    except Exception as e:
        return handle_error(e)


@router.post("/channel/{channel}", response_model=ChannelSyncResponse)
def sync_single_channel(channel: Channel):
    """
    Push the stored warehouse inventory to one channel.

    Does not call the warehouse or touch any session.
    """
    try:
        return get_sync_session_manager().sync_channel(channel.value)
    except Exception as e:
        return handle_error(e)


# ===================
# REPORTING ROUTES
# ===================

@router.get("/inventory/summary", response_model=InventorySummary)
def get_inventory_summary():
    """Totals over the persisted warehouse snapshot."""
    try:
        return get_inventory_snapshot_service().get_summary()
    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}/report", response_model=SyncReport)
def get_sync_report(session_id: str):
    """Per-channel summaries and failed items for one session."""
    try:
        return get_sync_report_service().get_report(session_id)
    except Exception as e:
        return handle_error(e)
