"""
Inventory snapshot store.

warehouse_inventory holds the last fetched quantity per warehouse SKU,
tagged with the sync session that wrote it. A session's running snapshot
is rebuilt from the rows carrying its session_id, so nothing is kept in
memory between batch invocations.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional
import structlog

from config import get_supabase_client, settings, INVENTORY_TABLE
from models.inventory import WarehouseQuantity, InventoryRecord, InventorySummary
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)

LOW_STOCK_THRESHOLD = 10


class InventorySnapshotService:
    """Persisted warehouse quantities."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = INVENTORY_TABLE

    # ===================
    # WRITE OPERATIONS
    # ===================

    def upsert_quantities(
        self,
        quantities: dict[str, WarehouseQuantity],
        session_id: Optional[str] = None
    ) -> int:
        """
        Save fetched quantities, one row per SKU.

        Args:
            quantities: SKU -> fetched quantity
            session_id: Session that fetched them

        Returns:
            Number of rows written
        """
        if not quantities:
            return 0

        now = datetime.now(timezone.utc).isoformat()
        rows = [
            {
                **InventoryRecord(
                    sku=sku,
                    quantity=q.quantity,
                    warehouse=settings.flowtrac_warehouse,
                    bins=q.bins,
                    bin_breakdown=q.bin_breakdown,
                    session_id=session_id,
                ).model_dump(mode="json", exclude={"last_updated"}),
                "last_updated": now,
            }
            for sku, q in quantities.items()
        ]

        try:
            self.db.table(self.table).upsert(rows, on_conflict="sku").execute()
        except Exception as e:
            logger.error("inventory_upsert_failed", count=len(rows), error=str(e))
            raise DatabaseError("upsert", str(e))

        logger.info("inventory_snapshot_saved", count=len(rows), session_id=session_id)
        return len(rows)

    def purge_except(self, skus_to_keep: Iterable[str]) -> int:
        """
        Delete rows for SKUs no longer in the mapping.

        Returns:
            Number of rows deleted
        """
        keep = set(skus_to_keep)

        try:
            response = self.db.table(self.table).select("sku").execute()
            stale = [row["sku"] for row in response.data if row["sku"] not in keep]

            if stale:
                self.db.table(self.table).delete().in_("sku", stale).execute()

        except Exception as e:
            logger.error("inventory_purge_failed", error=str(e))
            raise DatabaseError("delete", str(e))

        if stale:
            logger.info("inventory_records_purged", count=len(stale))
        return len(stale)

    # ===================
    # READ OPERATIONS
    # ===================

    def get_snapshot(self, session_id: str) -> dict[str, WarehouseQuantity]:
        """
        Quantities fetched so far by a session.

        Returns:
            SKU -> quantity for every row tagged with session_id
        """
        try:
            response = (
                self.db.table(self.table)
                .select("*")
                .eq("session_id", session_id)
                .execute()
            )
        except Exception as e:
            logger.error("inventory_snapshot_get_failed", session_id=session_id, error=str(e))
            raise DatabaseError("select", str(e))

        return {
            row["sku"]: InventoryRecord(**row).to_quantity()
            for row in response.data
        }

    def get_quantities(self) -> dict[str, WarehouseQuantity]:
        """Last stored quantity of every SKU, whichever session wrote it."""
        try:
            response = self.db.table(self.table).select("*").execute()
        except Exception as e:
            logger.error("inventory_quantities_get_failed", error=str(e))
            raise DatabaseError("select", str(e))

        return {
            row["sku"]: InventoryRecord(**row).to_quantity()
            for row in response.data
        }

    def get_summary(self) -> InventorySummary:
        """Totals over the whole table."""
        try:
            response = self.db.table(self.table).select("*").execute()
        except Exception as e:
            logger.error("inventory_summary_failed", error=str(e))
            raise DatabaseError("select", str(e))

        records = [InventoryRecord(**row) for row in response.data]
        timestamps = [r.last_updated for r in records if r.last_updated]

        return InventorySummary(
            total_skus=len(records),
            total_quantity=sum(r.quantity for r in records),
            out_of_stock=sum(1 for r in records if r.quantity == 0),
            low_stock=sum(1 for r in records if 0 < r.quantity <= LOW_STOCK_THRESHOLD),
            last_updated=max(timestamps) if timestamps else None,
        )


# Singleton instance
_inventory_snapshot_service: Optional[InventorySnapshotService] = None


def get_inventory_snapshot_service() -> InventorySnapshotService:
    """Get or create inventory snapshot service instance."""
    global _inventory_snapshot_service
    if _inventory_snapshot_service is None:
        _inventory_snapshot_service = InventorySnapshotService()
    return _inventory_snapshot_service
