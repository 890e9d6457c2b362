"""
Sync session schemas.

A SyncSession is the persisted, resumable unit of work. Its status only
moves forward; completed and failed are terminal.
"""

from pydantic import Field
from typing import Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema, TimestampMixin


class SessionStatus(str, Enum):
    """Sync session status values."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = (SessionStatus.PENDING, SessionStatus.IN_PROGRESS)
TERMINAL_STATUSES = (SessionStatus.COMPLETED, SessionStatus.FAILED)


class Channel(str, Enum):
    """Downstream channels receiving quantities."""
    SHOPIFY = "shopify"          # e-commerce platform
    AMAZON = "amazon"            # marketplace
    SHIPSTATION = "shipstation"  # fulfillment / shipping


class FailureReason(str, Enum):
    """Why a channel item update failed."""
    MISSING_IDENTIFIER = "missing_identifier"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NOT_CONFIGURED = "not_configured"
    UPSTREAM = "upstream"


class ControlState(str, Enum):
    """What the control surface tells the caller."""
    NO_SESSION = "no_session"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    COMPLETED_WITH_FAILURES = "completed_with_failures"
    FAILED = "failed"


# ===================
# OUTCOMES
# ===================

class UpdateOutcome(BaseSchema):
    """Result of one channel update for one SKU."""

    success: bool
    new_quantity: int = Field(..., ge=0)
    previous_quantity: Optional[int] = None
    error: Optional[str] = None
    reason: Optional[FailureReason] = None
    latency_ms: int = Field(default=0, ge=0)
    verified: Optional[bool] = Field(
        None,
        description="Read-back matched the target (None when not verified)"
    )
    detail: Optional[str] = Field(
        None,
        description="Channel-specific value written, e.g. a bin location string"
    )

    @property
    def changed(self) -> Optional[bool]:
        """None when the previous quantity is unknown."""
        if self.previous_quantity is None:
            return None
        return self.previous_quantity != self.new_quantity


class BatchResult(BaseSchema):
    """Summary of one executed batch."""

    batch_index: int = Field(..., ge=0)
    skus_requested: int = 0
    skus_found: int = 0
    missing_skus: list[str] = Field(default_factory=list)
    products_resolved: int = 0
    products_skipped: list[str] = Field(
        default_factory=list,
        description="Channel SKUs left untouched because a component SKU was missing"
    )
    updates_attempted: int = 0
    updates_failed: int = 0
    duration_ms: int = 0
    completed_at: Optional[datetime] = None


# ===================
# SESSION
# ===================

class SyncSession(TimestampMixin, BaseSchema):
    """
    Persisted sync session (one row in sync_sessions).

    sku_plan is frozen at start so batch boundaries never move while the
    session is resumed across invocations.
    """

    session_id: str
    status: SessionStatus = SessionStatus.PENDING
    version: int = Field(default=0, ge=0, description="Compare-and-swap counter")
    sku_plan: list[str] = Field(default_factory=list)
    batch_size: int = Field(..., ge=1)
    total_batches: int = Field(default=0, ge=0)
    current_batch_index: int = Field(default=0, ge=0)
    total_skus: int = Field(default=0, ge=0)
    processed_skus: int = Field(default=0, ge=0)
    mapping_version: Optional[int] = None
    enriched: bool = False
    lease_expires_at: Optional[datetime] = None
    results: dict[str, dict[str, UpdateOutcome]] = Field(default_factory=dict)
    batch_results: list[BatchResult] = Field(default_factory=list)
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def has_more_batches(self) -> bool:
        return self.current_batch_index < self.total_batches

    @property
    def remaining_skus(self) -> int:
        return max(self.total_skus - self.processed_skus, 0)

    @property
    def failure_count(self) -> int:
        return sum(
            1
            for outcomes in self.results.values()
            for outcome in outcomes.values()
            if not outcome.success
        )

    def lease_active(self, now: datetime) -> bool:
        return self.lease_expires_at is not None and self.lease_expires_at > now

    def to_view(self) -> "SyncSessionView":
        return SyncSessionView(
            session_id=self.session_id,
            status=self.status,
            total_batches=self.total_batches,
            current_batch_index=self.current_batch_index,
            total_skus=self.total_skus,
            processed_skus=self.processed_skus,
            remaining_skus=self.remaining_skus,
            failure_count=self.failure_count,
            created_at=self.created_at,
            last_updated_at=self.last_updated_at,
            completed_at=self.completed_at,
            error_message=self.error_message,
        )


class SyncSessionView(BaseSchema):
    """Session progress without the per-SKU payload, for polling."""

    session_id: str
    status: SessionStatus
    total_batches: int
    current_batch_index: int
    total_skus: int
    processed_skus: int
    remaining_skus: int
    failure_count: int
    created_at: datetime
    last_updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None


# ===================
# CONTROL SURFACE
# ===================

class SyncControlResponse(BaseSchema):
    """
    Structured answer of every control operation.

    Distinguishes "still in progress", "completed with N failures" and
    "failed outright" so callers never need to interpret exceptions.
    """

    success: bool
    state: ControlState
    message: str
    session: Optional[SyncSessionView] = None
    batch: Optional[BatchResult] = None
    failures: int = 0
    next_batch_available: bool = False


class KillResponse(BaseSchema):
    """Result of kill / cleanup operations."""

    success: bool = True
    deleted_count: int = 0
    session_ids: list[str] = Field(default_factory=list)
    message: str


# ===================
# REPORTING
# ===================

class ChannelSummary(BaseSchema):
    """Aggregated outcomes for one channel."""

    channel: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    changed: int = 0
    unchanged: int = 0
    success_rate: float = Field(default=0.0, ge=0, le=100)
    total_ms: int = 0
    average_ms: float = 0.0


class FailedItem(BaseSchema):
    """One failed channel update."""

    channel: str
    sku: str
    reason: Optional[FailureReason] = None
    error: Optional[str] = None


class SyncReport(BaseSchema):
    """Full report for a session, for dashboards and alerts."""

    session: SyncSessionView
    state: ControlState
    channels: list[ChannelSummary] = Field(default_factory=list)
    failed_items: list[FailedItem] = Field(default_factory=list)
    batches: list[BatchResult] = Field(default_factory=list)
    missing_warehouse_skus: list[str] = Field(default_factory=list)


class ChannelSyncResponse(BaseSchema):
    """Result of pushing stored inventory to one channel."""

    success: bool
    channel: Channel
    message: str
    inventory_skus: int = 0
    summary: ChannelSummary
    outcomes: dict[str, UpdateOutcome] = Field(default_factory=dict)
    failed_items: list[FailedItem] = Field(default_factory=list)
