"""
Sync session manager.

Drives the batched, resumable sync:

    start -> [execute_batch]* -> completed | failed

Each execute_batch call is one short invocation: claim the session with a
lease, fetch the current batch from the warehouse, resolve every product
whose warehouse SKUs are now all fetched, push those quantities to each
channel, and commit progress with a conditional update. All state lives
in the session row and the inventory snapshot table, so any process can
continue a session another process started.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import time
import uuid
import structlog

from config import settings
from models.mapping import Mapping
from models.sync import (
    SyncSession,
    SessionStatus,
    BatchResult,
    UpdateOutcome,
    ControlState,
    SyncControlResponse,
    KillResponse,
    ChannelSyncResponse,
    FailedItem,
)
from exceptions import (
    ActiveSessionExistsError,
    SessionBusyError,
    SessionConflictError,
    MappingNotFoundError,
    InvalidMappingError,
    WarehouseFetchError,
    DatabaseError,
    ValidationError,
)
from integrations.flowtrac import FlowtracClient
from integrations.telegram import send_sync_alert, TelegramError
from services import batch_planner
from services.quantity_resolver import (
    MissingSkuPolicy,
    resolve,
    validate_products,
    newly_resolvable,
)
from services.channel_adapters import ChannelAdapter, build_adapters
from services.channel_dispatcher import ChannelDispatcher, summarize
from services.enrichment_service import EnrichmentService, known_product_ids
from services.inventory_snapshot_service import (
    InventorySnapshotService,
    get_inventory_snapshot_service,
)
from services.mapping_service import MappingService, get_mapping_service
from services.session_repository import SessionRepository, get_session_repository
from services.sync_report_service import build_report, control_state

logger = structlog.get_logger(__name__)

ALERT_STATES = (ControlState.FAILED, ControlState.COMPLETED_WITH_FAILURES)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncSessionManager:
    """
    Session state machine and batch executor.

    Collaborators default to the configured singletons; the warehouse
    client, enricher and channel adapters are built on first use.
    """

    def __init__(
        self,
        repository: Optional[SessionRepository] = None,
        mapping_service: Optional[MappingService] = None,
        snapshots: Optional[InventorySnapshotService] = None,
        warehouse: Optional[FlowtracClient] = None,
        enricher: Optional[EnrichmentService] = None,
        adapters: Optional[list[ChannelAdapter]] = None,
        dispatcher: Optional[ChannelDispatcher] = None
    ):
        self.repository = repository or get_session_repository()
        self.mapping_service = mapping_service or get_mapping_service()
        self.snapshots = snapshots or get_inventory_snapshot_service()
        self.dispatcher = dispatcher or ChannelDispatcher()
        self._warehouse = warehouse
        self._enricher = enricher
        self._adapters = adapters

        self.batch_size = settings.sync_batch_size
        self.policy = MissingSkuPolicy(settings.sync_missing_sku_policy)
        self.lease = timedelta(seconds=settings.sync_lease_seconds)
        self.stale_after = timedelta(minutes=settings.sync_stale_session_minutes)
        self.auto_continue_after = timedelta(seconds=settings.sync_auto_continue_after_seconds)

    @property
    def warehouse(self) -> FlowtracClient:
        if self._warehouse is None:
            self._warehouse = FlowtracClient()
        return self._warehouse

    @property
    def enricher(self) -> EnrichmentService:
        if self._enricher is None:
            self._enricher = EnrichmentService(
                warehouse=self.warehouse,
                mapping_service=self.mapping_service
            )
        return self._enricher

    @property
    def adapters(self) -> list[ChannelAdapter]:
        if self._adapters is None:
            self._adapters = build_adapters()
        return self._adapters

    # ===================
    # CONTROL OPERATIONS
    # ===================

    def start(self, batch_size: Optional[int] = None, resume: bool = True) -> SyncControlResponse:
        """
        Start a sync session.

        Freezes the ordered warehouse SKU universe of the current mapping
        into the session so batch boundaries never move.

        Args:
            batch_size: Override of sync_batch_size
            resume: Return the active session instead of failing when one
                exists

        Raises:
            ActiveSessionExistsError: Active session and resume is False
            MappingNotFoundError: No mapping in any source
            InvalidMappingError: Mapping cannot be resolved
        """
        self.cleanup_stale_sessions()

        active = self.repository.get_active()
        if active is not None:
            if not resume:
                raise ActiveSessionExistsError(active.session_id)
            logger.info("sync_resumed", session_id=active.session_id)
            return self._respond(active, "An active sync session exists; resuming it")

        mapping = self.mapping_service.get_mapping().mapping
        validate_products(mapping.products)

        skus = mapping.warehouse_skus()
        size = batch_size or self.batch_size
        total = batch_planner.total_batches(len(skus), size)
        now = _utcnow()

        session = SyncSession(
            session_id=str(uuid.uuid4()),
            status=SessionStatus.PENDING if total else SessionStatus.COMPLETED,
            sku_plan=skus,
            batch_size=size,
            total_batches=total,
            total_skus=len(skus),
            mapping_version=mapping.version,
            created_at=now,
            last_updated_at=now,
            completed_at=None if total else now,
        )
        session = self.repository.create(session)

        self.snapshots.purge_except(skus)

        logger.info(
            "sync_started",
            session_id=session.session_id,
            total_skus=len(skus),
            total_batches=total,
            batch_size=size,
            mapping_version=mapping.version
        )

        if not total:
            return self._respond(session, "Mapping has no warehouse SKUs; nothing to sync")
        return self._respond(session, f"Sync session started with {total} batches")

    def continue_session(self, session_id: Optional[str] = None) -> SyncControlResponse:
        """
        Advance a session by one batch.

        Args:
            session_id: Session to continue; the active one when omitted
        """
        if session_id is None:
            active = self.repository.get_active()
            if active is None:
                return self._respond(None, "No active sync session")
            session_id = active.session_id
        return self.execute_batch(session_id)

    def get_status(self, session_id: Optional[str] = None) -> SyncControlResponse:
        """
        Read-only session snapshot for polling.

        Args:
            session_id: Session to read; the active one when omitted
        """
        if session_id is None:
            session = self.repository.get_active()
            if session is None:
                return self._respond(None, "No active sync session")
        else:
            session = self.repository.find(session_id)
            if session is None:
                return self._respond(None, "Sync session not found")

        return self._respond(session, self._describe(session))

    def kill(self, session_id: Optional[str] = None) -> KillResponse:
        """
        Delete one session, or every active session.

        An in-flight batch of a killed session cannot commit afterwards:
        its conditional update matches no row.
        """
        if session_id is not None:
            deleted = [session_id] if self.repository.delete(session_id) else []
        else:
            deleted = self.repository.delete_active()

        logger.info("sync_killed", session_ids=deleted)
        return KillResponse(
            deleted_count=len(deleted),
            session_ids=deleted,
            message=f"Deleted {len(deleted)} session(s)" if deleted else "No sessions to delete"
        )

    def cleanup_stale_sessions(self) -> KillResponse:
        """Delete active sessions idle longer than sync_stale_session_minutes."""
        deleted = self.repository.delete_stale(_utcnow() - self.stale_after)
        if deleted:
            logger.warning("stale_sessions_deleted", session_ids=deleted)
        return KillResponse(
            deleted_count=len(deleted),
            session_ids=deleted,
            message=f"Deleted {len(deleted)} stale session(s)"
        )

    def clear_old_sessions(self, days: int = 7) -> KillResponse:
        """Delete completed and failed sessions older than `days`."""
        deleted = self.repository.delete_terminal_older_than(days)
        return KillResponse(
            deleted_count=len(deleted),
            session_ids=deleted,
            message=f"Deleted {len(deleted)} finished session(s) older than {days} days"
        )

    def auto_continue(self) -> SyncControlResponse:
        """
        Scheduler hook: advance the active session if it has been idle.

        Does nothing while a batch holds the lease or the session was
        updated less than sync_auto_continue_after_seconds ago.
        """
        session = self.repository.get_active()
        if session is None:
            return self._respond(None, "No active sync session")

        now = _utcnow()
        if session.lease_active(now):
            return self._respond(session, "A batch is already running")

        idle = now - (session.last_updated_at or session.created_at)
        if idle < self.auto_continue_after:
            return self._respond(
                session,
                f"Session updated {int(idle.total_seconds())}s ago; waiting"
            )

        logger.info(
            "sync_auto_continue",
            session_id=session.session_id,
            idle_seconds=int(idle.total_seconds())
        )
        return self.execute_batch(session.session_id)

    def run_to_completion(
        self,
        batch_size: Optional[int] = None,
        max_batches: Optional[int] = None
    ) -> SyncControlResponse:
        """
        Start (or resume) and execute batches until the session finishes.

        Args:
            batch_size: Override of sync_batch_size for a new session
            max_batches: Stop after this many batches
        """
        response = self.start(batch_size=batch_size)
        executed = 0

        while response.next_batch_available:
            if max_batches is not None and executed >= max_batches:
                break
            response = self.execute_batch(response.session.session_id)
            executed += 1

        return response

    # ===================
    # SINGLE-CHANNEL PUSH
    # ===================

    def sync_channel(self, channel: str) -> ChannelSyncResponse:
        """
        Push the stored warehouse inventory to one channel.

        Reads warehouse_inventory instead of calling the warehouse, so a
        channel that failed during a full sync can be retried cheaply. No
        session is created or touched.

        Args:
            channel: shopify, amazon or shipstation

        Raises:
            ValidationError: Channel not enabled or not configured, or no
                inventory stored yet
            MappingNotFoundError: No mapping in any source
            InvalidMappingError: Mapping cannot be resolved
        """
        adapter = next((a for a in self.adapters if a.channel == channel), None)
        if adapter is None:
            raise ValidationError(
                f"Channel '{channel}' is not enabled",
                code="CHANNEL_NOT_ENABLED",
                details={"channel": channel, "enabled": [a.channel.value for a in self.adapters]}
            )
        if not adapter.configured:
            raise ValidationError(
                f"Channel '{channel}' is not configured",
                code="CHANNEL_NOT_CONFIGURED",
                details={"channel": channel}
            )

        stored = self.snapshots.get_quantities()
        if not stored:
            raise ValidationError(
                "No stored warehouse inventory; run a full sync first",
                code="NO_STORED_INVENTORY"
            )

        mapping = self.mapping_service.get_mapping().mapping
        validate_products(mapping.products)

        gaps = [p.channel_sku for p in mapping.products if adapter.needs_identifier(p)]
        if gaps:
            mapping = self.enricher.enrich(mapping, channel_skus=gaps)

        snapshot = {sku: q.quantity for sku, q in stored.items()}
        resolved = resolve(mapping.products, snapshot, self.policy)
        products = [p for p in mapping.products if p.channel_sku in resolved]

        items = adapter.build_items(products, resolved, mapping.warehouse_skus(), stored, self.policy)
        outcomes = self.dispatcher.apply(adapter, items) if items else {}
        summary = summarize(adapter.channel.value, outcomes)
        failed_items = [
            FailedItem(channel=adapter.channel.value, sku=sku, reason=o.reason, error=o.error)
            for sku, o in outcomes.items()
            if not o.success
        ]

        logger.info(
            "channel_synced",
            channel=adapter.channel.value,
            inventory_skus=len(stored),
            updates=summary.total,
            failed=summary.failed
        )

        return ChannelSyncResponse(
            success=not failed_items,
            channel=adapter.channel,
            message=f"{summary.succeeded}/{summary.total} {adapter.channel.value} updates succeeded",
            inventory_skus=len(stored),
            summary=summary,
            outcomes=outcomes,
            failed_items=failed_items,
        )

    # ===================
    # BATCH EXECUTION
    # ===================

    def execute_batch(self, session_id: str) -> SyncControlResponse:
        """
        Process the session's current batch.

        Raises:
            SyncSessionNotFoundError: No such session
            SessionBusyError: Another invocation holds the lease
            SessionConflictError: Another invocation claimed the batch first
        """
        session = self.repository.get(session_id)

        if session.is_terminal:
            return self._respond(session, f"Session already {session.status.value}")

        now = _utcnow()
        if session.lease_active(now):
            raise SessionBusyError(session_id, session.lease_expires_at.isoformat())

        if not session.has_more_batches:
            session = self.repository.update_conditional(
                session_id,
                session.version,
                {
                    "status": SessionStatus.COMPLETED.value,
                    "completed_at": now.isoformat(),
                    "lease_expires_at": None,
                }
            )
            return self._finish(session, "All batches already processed")

        session = self.repository.update_conditional(
            session_id,
            session.version,
            {
                "status": SessionStatus.IN_PROGRESS.value,
                "lease_expires_at": (now + self.lease).isoformat(),
            }
        )

        try:
            return self._run_batch(session)
        except (MappingNotFoundError, InvalidMappingError, WarehouseFetchError) as e:
            return self._fail(session, e.message)
        except Exception as e:
            logger.error(
                "batch_aborted",
                session_id=session_id,
                batch_index=session.current_batch_index,
                error=str(e)
            )
            self._release_lease(session)
            raise

    def _release_lease(self, session: SyncSession) -> None:
        """Let the next continue call retry the batch right away."""
        try:
            self.repository.update_conditional(
                session.session_id,
                session.version,
                {"lease_expires_at": None}
            )
        except (SessionConflictError, DatabaseError) as e:
            logger.warning("lease_release_skipped", session_id=session.session_id, error=e.message)

    def _run_batch(self, session: SyncSession) -> SyncControlResponse:
        started = time.perf_counter()
        index = session.current_batch_index
        start, end = batch_planner.batch_bounds(index, session.batch_size, len(session.sku_plan))
        batch = session.sku_plan[start:end]

        log = logger.bind(session_id=session.session_id, batch_index=index)
        log.info("batch_started", skus=len(batch), total_batches=session.total_batches)

        mapping = self.mapping_service.get_mapping().mapping
        validate_products(mapping.products)

        fetched = self.warehouse.fetch_inventory(batch, known_product_ids(mapping))
        self.snapshots.upsert_quantities(fetched, session.session_id)
        missing = [sku for sku in batch if sku not in fetched]

        planned = set(session.sku_plan)
        products = [
            p for p in mapping.products
            if all(sku in planned for sku in p.warehouse_skus)
        ]
        ready = newly_resolvable(
            products,
            session.sku_plan[:start],
            session.sku_plan[:end],
            first_batch=index == 0
        )

        # Products become ready in exactly one batch, so each is looked up once
        enriched = session.enriched
        gaps = [p.channel_sku for p in ready if self._identifier_gap([p])]
        if gaps:
            mapping = self.enricher.enrich(mapping, channel_skus=gaps)
            enriched = True
            by_sku = {p.channel_sku: p for p in mapping.products}
            ready = [by_sku.get(p.channel_sku, p) for p in ready]

        snapshot = {
            sku: q.quantity
            for sku, q in self.snapshots.get_snapshot(session.session_id).items()
        }
        snapshot.update({sku: q.quantity for sku, q in fetched.items()})

        resolved = resolve(ready, snapshot, self.policy)
        skipped = [p.channel_sku for p in ready if p.channel_sku not in resolved]
        resolvable = [p for p in ready if p.channel_sku in resolved]

        outcomes = self._dispatch(resolvable, resolved, batch, fetched)

        attempted = sum(len(o) for o in outcomes.values())
        failed = sum(1 for o in outcomes.values() for r in o.values() if not r.success)
        batch_result = BatchResult(
            batch_index=index,
            skus_requested=len(batch),
            skus_found=len(fetched),
            missing_skus=missing,
            products_resolved=len(resolved),
            products_skipped=skipped,
            updates_attempted=attempted,
            updates_failed=failed,
            duration_ms=int((time.perf_counter() - started) * 1000),
            completed_at=_utcnow(),
        )

        log.info(
            "batch_processed",
            found=len(fetched),
            missing=len(missing),
            resolved=len(resolved),
            updates=attempted,
            failed=failed,
            duration_ms=batch_result.duration_ms
        )

        return self._commit(session, batch_result, outcomes, enriched, mapping)

    def _identifier_gap(self, products) -> bool:
        return any(
            adapter.needs_identifier(product)
            for adapter in self.adapters
            if adapter.configured
            for product in products
        )

    def _dispatch(self, products, resolved, batch, fetched) -> dict[str, dict[str, UpdateOutcome]]:
        outcomes: dict[str, dict[str, UpdateOutcome]] = {}

        for adapter in self.adapters:
            channel = adapter.channel.value
            if not adapter.configured:
                logger.warning("channel_not_configured", channel=channel)
                continue

            items = adapter.build_items(products, resolved, batch, fetched, self.policy)
            if items:
                outcomes[channel] = self.dispatcher.apply(adapter, items)

        return outcomes

    def _commit(
        self,
        session: SyncSession,
        batch_result: BatchResult,
        outcomes: dict[str, dict[str, UpdateOutcome]],
        enriched: bool,
        mapping: Mapping
    ) -> SyncControlResponse:
        results = {channel: dict(items) for channel, items in session.results.items()}
        for channel, items in outcomes.items():
            results.setdefault(channel, {}).update(items)

        next_index = batch_result.batch_index + 1
        done = next_index >= session.total_batches
        _, end = batch_planner.batch_bounds(
            batch_result.batch_index, session.batch_size, len(session.sku_plan)
        )

        data = {
            "current_batch_index": next_index,
            "processed_skus": end,
            "results": {
                channel: {sku: o.model_dump(mode="json") for sku, o in items.items()}
                for channel, items in results.items()
            },
            "batch_results": [
                b.model_dump(mode="json")
                for b in [*session.batch_results, batch_result]
            ],
            "enriched": enriched,
            "mapping_version": mapping.version,
            "lease_expires_at": None,
            "status": (SessionStatus.COMPLETED if done else SessionStatus.IN_PROGRESS).value,
            "completed_at": _utcnow().isoformat() if done else None,
        }

        try:
            updated = self.repository.update_conditional(session.session_id, session.version, data)
        except SessionConflictError:
            current = self.repository.find(session.session_id)
            logger.warning(
                "batch_commit_rejected",
                session_id=session.session_id,
                batch_index=batch_result.batch_index,
                session_exists=current is not None
            )
            response = self._respond(
                current,
                "Session was killed or changed while the batch ran; progress not saved",
                batch=batch_result
            )
            response.success = False
            return response

        if done:
            return self._finish(updated, "Sync completed", batch_result)

        return self._respond(
            updated,
            f"Batch {next_index}/{updated.total_batches} processed",
            batch=batch_result
        )

    def _fail(self, session: SyncSession, message: str) -> SyncControlResponse:
        """Mark a session failed. The operator must start a new one."""
        try:
            updated = self.repository.update_conditional(
                session.session_id,
                session.version,
                {
                    "status": SessionStatus.FAILED.value,
                    "error_message": message,
                    "lease_expires_at": None,
                    "completed_at": _utcnow().isoformat(),
                }
            )
        except SessionConflictError:
            current = self.repository.find(session.session_id)
            return self._respond(current, f"Batch failed ({message}) but the session had changed")

        logger.error(
            "sync_session_failed",
            session_id=session.session_id,
            batch_index=session.current_batch_index,
            error=message
        )
        return self._finish(updated, f"Sync failed: {message}")

    def _finish(
        self,
        session: SyncSession,
        message: str,
        batch: Optional[BatchResult] = None
    ) -> SyncControlResponse:
        response = self._respond(session, message, batch=batch)
        if response.state in ALERT_STATES:
            self._alert(session)

        logger.info(
            "sync_finished",
            session_id=session.session_id,
            state=response.state.value,
            failures=response.failures
        )
        return response

    def _alert(self, session: SyncSession) -> None:
        try:
            send_sync_alert(build_report(session))
        except TelegramError as e:
            logger.warning("sync_alert_failed", session_id=session.session_id, error=str(e))

    # ===================
    # RESPONSES
    # ===================

    def _describe(self, session: SyncSession) -> str:
        state = control_state(session)
        if state == ControlState.FAILED:
            return f"Sync failed: {session.error_message}"
        if state == ControlState.COMPLETED_WITH_FAILURES:
            return f"Sync completed with {session.failure_count} failed updates"
        if state == ControlState.COMPLETED:
            return "Sync completed"
        return (
            f"Sync in progress: batch {session.current_batch_index}/{session.total_batches}, "
            f"{session.processed_skus}/{session.total_skus} SKUs"
        )

    def _respond(
        self,
        session: Optional[SyncSession],
        message: str,
        batch: Optional[BatchResult] = None
    ) -> SyncControlResponse:
        state = control_state(session)
        return SyncControlResponse(
            success=state != ControlState.FAILED,
            state=state,
            message=message,
            session=session.to_view() if session else None,
            batch=batch,
            failures=session.failure_count if session else 0,
            next_batch_available=bool(session and session.is_active and session.has_more_batches),
        )


# Singleton instance
_sync_session_manager: Optional[SyncSessionManager] = None


def get_sync_session_manager() -> SyncSessionManager:
    """Get or create sync session manager instance."""
    global _sync_session_manager
    if _sync_session_manager is None:
        _sync_session_manager = SyncSessionManager()
    return _sync_session_manager
