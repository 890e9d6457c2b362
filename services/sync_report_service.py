"""
Sync reporting.

Aggregates a session's per-SKU outcomes into per-channel summaries and a
failed-item list for dashboards and alerts.
"""

from typing import Optional
import structlog

from models.sync import (
    SyncSession,
    SyncReport,
    FailedItem,
    ControlState,
    SessionStatus,
)
from services.channel_dispatcher import summarize
from services.session_repository import SessionRepository, get_session_repository

logger = structlog.get_logger(__name__)


def control_state(session: Optional[SyncSession]) -> ControlState:
    """What a caller should be told about a session."""
    if session is None:
        return ControlState.NO_SESSION
    if session.status == SessionStatus.FAILED:
        return ControlState.FAILED
    if session.status == SessionStatus.COMPLETED:
        if session.failure_count:
            return ControlState.COMPLETED_WITH_FAILURES
        return ControlState.COMPLETED
    return ControlState.IN_PROGRESS


def build_report(session: SyncSession) -> SyncReport:
    """Report for one session."""
    channels = [
        summarize(channel, outcomes)
        for channel, outcomes in session.results.items()
    ]

    failed_items = [
        FailedItem(channel=channel, sku=sku, reason=outcome.reason, error=outcome.error)
        for channel, outcomes in session.results.items()
        for sku, outcome in outcomes.items()
        if not outcome.success
    ]

    missing: dict[str, None] = {}
    for batch in session.batch_results:
        for sku in batch.missing_skus:
            missing.setdefault(sku, None)

    return SyncReport(
        session=session.to_view(),
        state=control_state(session),
        channels=channels,
        failed_items=failed_items,
        batches=session.batch_results,
        missing_warehouse_skus=list(missing),
    )


class SyncReportService:
    """Reports for stored sessions."""

    def __init__(self, repository: Optional[SessionRepository] = None):
        self.repository = repository or get_session_repository()

    def get_report(self, session_id: str) -> SyncReport:
        """
        Report for a stored session.

        Raises:
            SyncSessionNotFoundError: No such session
        """
        session = self.repository.get(session_id)
        report = build_report(session)
        logger.info(
            "sync_report_built",
            session_id=session_id,
            state=report.state.value,
            failed_items=len(report.failed_items)
        )
        return report


# Singleton instance
_sync_report_service: Optional[SyncReportService] = None


def get_sync_report_service() -> SyncReportService:
    """Get or create sync report service instance."""
    global _sync_report_service
    if _sync_report_service is None:
        _sync_report_service = SyncReportService()
    return _sync_report_service
