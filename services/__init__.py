"""
Business logic services.

Each service handles one part of the sync pipeline.
"""

from services import batch_planner
from services.quantity_resolver import (
    MissingSkuPolicy,
    resolve,
    resolve_product,
    validate_products,
    newly_resolvable,
)
from services.mapping_service import MappingService, get_mapping_service
from services.inventory_snapshot_service import (
    InventorySnapshotService,
    get_inventory_snapshot_service,
)
from services.session_repository import SessionRepository, get_session_repository
from services.channel_adapters import (
    ChannelAdapter,
    DispatchItem,
    ShopifyAdapter,
    AmazonAdapter,
    ShipStationAdapter,
    build_adapters,
)
from services.channel_dispatcher import ChannelDispatcher, summarize
from services.enrichment_service import EnrichmentService
from services.sync_report_service import (
    SyncReportService,
    get_sync_report_service,
    build_report,
    control_state,
)
from services.sync_session_service import SyncSessionManager, get_sync_session_manager

__all__ = [
    "batch_planner",
    "MissingSkuPolicy",
    "resolve",
    "resolve_product",
    "validate_products",
    "newly_resolvable",
    "MappingService",
    "get_mapping_service",
    "InventorySnapshotService",
    "get_inventory_snapshot_service",
    "SessionRepository",
    "get_session_repository",
    "ChannelAdapter",
    "DispatchItem",
    "ShopifyAdapter",
    "AmazonAdapter",
    "ShipStationAdapter",
    "build_adapters",
    "ChannelDispatcher",
    "summarize",
    "EnrichmentService",
    "SyncReportService",
    "get_sync_report_service",
    "build_report",
    "control_state",
    "SyncSessionManager",
    "get_sync_session_manager",
]
