"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
)
from models.mapping import (
    BundleComponent,
    SimpleProduct,
    BundleProduct,
    Product,
    Mapping,
    MappingResponse,
    MappingUpdateRequest,
    MappingUpdateResponse,
    MappingHistoryEntry,
    normalize_product_row,
)
from models.inventory import (
    WarehouseQuantity,
    InventoryRecord,
    InventorySummary,
)
from models.sync import (
    SessionStatus,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Channel,
    FailureReason,
    ControlState,
    UpdateOutcome,
    BatchResult,
    SyncSession,
    SyncSessionView,
    SyncControlResponse,
    KillResponse,
    ChannelSummary,
    FailedItem,
    SyncReport,
    ChannelSyncResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",
    # Mapping
    "BundleComponent",
    "SimpleProduct",
    "BundleProduct",
    "Product",
    "Mapping",
    "MappingResponse",
    "MappingUpdateRequest",
    "MappingUpdateResponse",
    "MappingHistoryEntry",
    "normalize_product_row",
    # Inventory
    "WarehouseQuantity",
    "InventoryRecord",
    "InventorySummary",
    # Sync
    "SessionStatus",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Channel",
    "FailureReason",
    "ControlState",
    "UpdateOutcome",
    "BatchResult",
    "SyncSession",
    "SyncSessionView",
    "SyncControlResponse",
    "KillResponse",
    "ChannelSummary",
    "FailedItem",
    "SyncReport",
    "ChannelSyncResponse",
]
