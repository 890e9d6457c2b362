"""
Sync session persistence.

Every mutation of an active session is a conditional update:

    UPDATE sync_sessions SET ... , version = version + 1
    WHERE session_id = ? AND version = ? AND status IN ('pending', 'in_progress')

A write that matches no row means the session was killed, finished or
advanced by another caller; nothing is written and SessionConflictError is
raised. Terminal sessions therefore can never be modified.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import structlog

from config import get_supabase_client, SESSIONS_TABLE
from models.sync import SyncSession, ACTIVE_STATUSES, TERMINAL_STATUSES
from exceptions import (
    DatabaseError,
    SyncSessionNotFoundError,
    SessionConflictError,
)

logger = structlog.get_logger(__name__)

_ACTIVE = [s.value for s in ACTIVE_STATUSES]
_TERMINAL = [s.value for s in TERMINAL_STATUSES]


class SessionRepository:
    """CRUD over sync_sessions with compare-and-swap updates."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = SESSIONS_TABLE

    # ===================
    # READ OPERATIONS
    # ===================

    def find(self, session_id: str) -> Optional[SyncSession]:
        """Session by id, or None."""
        try:
            response = (
                self.db.table(self.table)
                .select("*")
                .eq("session_id", session_id)
                .execute()
            )
        except Exception as e:
            logger.error("session_get_failed", session_id=session_id, error=str(e))
            raise DatabaseError("select", str(e))

        return SyncSession(**response.data[0]) if response.data else None

    def get(self, session_id: str) -> SyncSession:
        """
        Session by id.

        Raises:
            SyncSessionNotFoundError: No such session
        """
        session = self.find(session_id)
        if session is None:
            raise SyncSessionNotFoundError(session_id)
        return session

    def list_active(self) -> list[SyncSession]:
        """Pending and in-progress sessions, oldest first."""
        try:
            response = (
                self.db.table(self.table)
                .select("*")
                .in_("status", _ACTIVE)
                .order("created_at")
                .execute()
            )
        except Exception as e:
            logger.error("session_list_active_failed", error=str(e))
            raise DatabaseError("select", str(e))

        return [SyncSession(**row) for row in response.data]

    def get_active(self) -> Optional[SyncSession]:
        """Most recently created active session, or None."""
        sessions = self.list_active()
        return sessions[-1] if sessions else None

    def get_latest(self) -> Optional[SyncSession]:
        """Most recently created session in any status."""
        try:
            response = (
                self.db.table(self.table)
                .select("*")
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("session_get_latest_failed", error=str(e))
            raise DatabaseError("select", str(e))

        return SyncSession(**response.data[0]) if response.data else None

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, session: SyncSession) -> SyncSession:
        """Insert a new session row."""
        try:
            response = (
                self.db.table(self.table)
                .insert(session.model_dump(mode="json"))
                .execute()
            )
        except Exception as e:
            logger.error("session_create_failed", session_id=session.session_id, error=str(e))
            raise DatabaseError("insert", str(e))

        logger.info(
            "session_created",
            session_id=session.session_id,
            total_batches=session.total_batches,
            total_skus=session.total_skus
        )
        return SyncSession(**response.data[0]) if response.data else session

    def update_conditional(
        self,
        session_id: str,
        expected_version: int,
        data: dict
    ) -> SyncSession:
        """
        Apply data only if the session is still active at expected_version.

        Bumps version and last_updated_at.

        Returns:
            The updated session

        Raises:
            SessionConflictError: No active row at that version
        """
        payload = {
            **data,
            "version": expected_version + 1,
            "last_updated_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            response = (
                self.db.table(self.table)
                .update(payload)
                .eq("session_id", session_id)
                .eq("version", expected_version)
                .in_("status", _ACTIVE)
                .execute()
            )
        except Exception as e:
            logger.error("session_update_failed", session_id=session_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not response.data:
            logger.warning(
                "session_update_conflict",
                session_id=session_id,
                expected_version=expected_version
            )
            raise SessionConflictError(session_id, expected_version)

        return SyncSession(**response.data[0])

    # ===================
    # DELETE OPERATIONS
    # ===================

    def delete(self, session_id: str) -> bool:
        """Delete one session in any status. Returns True if a row was removed."""
        try:
            response = (
                self.db.table(self.table)
                .delete()
                .eq("session_id", session_id)
                .execute()
            )
        except Exception as e:
            logger.error("session_delete_failed", session_id=session_id, error=str(e))
            raise DatabaseError("delete", str(e))

        return bool(response.data)

    def delete_active(self) -> list[str]:
        """Delete every pending/in-progress session. Returns deleted ids."""
        return self._delete_where(_ACTIVE)

    def delete_stale(self, idle_since: datetime) -> list[str]:
        """Delete active sessions not updated since idle_since."""
        return self._delete_where(_ACTIVE, "last_updated_at", idle_since)

    def delete_terminal_older_than(self, days: int) -> list[str]:
        """Delete completed/failed sessions created more than `days` ago."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        return self._delete_where(_TERMINAL, "created_at", cutoff)

    def _delete_where(
        self,
        statuses: list[str],
        column: Optional[str] = None,
        before: Optional[datetime] = None
    ) -> list[str]:
        try:
            query = (
                self.db.table(self.table)
                .delete()
                .in_("status", statuses)
            )
            if column and before is not None:
                query = query.lt(column, before.isoformat())
            response = query.execute()
        except Exception as e:
            logger.error("session_bulk_delete_failed", statuses=statuses, error=str(e))
            raise DatabaseError("delete", str(e))

        deleted = [row["session_id"] for row in response.data]
        if deleted:
            logger.info("sessions_deleted", count=len(deleted), statuses=statuses)
        return deleted


# Singleton instance
_session_repository: Optional[SessionRepository] = None


def get_session_repository() -> SessionRepository:
    """Get or create session repository instance."""
    global _session_repository
    if _session_repository is None:
        _session_repository = SessionRepository()
    return _session_repository
