"""
Test data factories.

Uses factory pattern to generate consistent mapping, mapping-row and
session test data.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4


class ProductFactory:
    """
    Factory for mapping product rows.

    Usage:
        # Simple product with defaults
        product = ProductFactory.simple()

        # Bundle of 2 x W1 + 1 x W2
        bundle = ProductFactory.bundle("S2", [("W1", 2), ("W2", 1)])
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def simple(
        cls,
        channel_sku: Optional[str] = None,
        warehouse_sku: Optional[str] = None,
        inventory_item_id: Optional[str] = "auto",
        **extra
    ) -> dict:
        """
        Create a simple product row.

        Args:
            channel_sku: Channel SKU (auto-generated if not provided)
            warehouse_sku: Warehouse SKU (defaults to W-<counter>)
            inventory_item_id: E-commerce inventory handle; "auto" generates
                one, None leaves it unmapped
        """
        counter = cls._next_counter()
        channel_sku = channel_sku or f"S-{counter}"
        row = {
            "kind": "simple",
            "channel_sku": channel_sku,
            "warehouse_sku": warehouse_sku or f"W-{counter}",
            **extra,
        }
        if inventory_item_id == "auto":
            row["channel_inventory_location_id"] = f"gid://shopify/InventoryItem/{1000 + counter}"
        elif inventory_item_id:
            row["channel_inventory_location_id"] = inventory_item_id
        return row

    @classmethod
    def bundle(
        cls,
        channel_sku: Optional[str] = None,
        components: Optional[list[tuple[str, Optional[int]]]] = None,
        inventory_item_id: Optional[str] = "auto",
        **extra
    ) -> dict:
        """
        Create a bundle product row.

        Args:
            channel_sku: Channel SKU (auto-generated if not provided)
            components: (warehouse_sku, quantity_per_unit) pairs
        """
        counter = cls._next_counter()
        row = {
            "kind": "bundle",
            "channel_sku": channel_sku or f"B-{counter}",
            "bundle_components": [
                {"warehouse_sku": sku, "quantity_per_unit": qty}
                for sku, qty in (components or [])
            ],
            **extra,
        }
        if inventory_item_id == "auto":
            row["channel_inventory_location_id"] = f"gid://shopify/InventoryItem/{5000 + counter}"
        elif inventory_item_id:
            row["channel_inventory_location_id"] = inventory_item_id
        return row

    @classmethod
    def legacy_simple(cls, shopify_sku: str, flowtrac_sku: str, **extra) -> dict:
        """Untagged row in the older key naming."""
        return {"shopify_sku": shopify_sku, "flowtrac_sku": flowtrac_sku, **extra}


class MappingRowFactory:
    """Factory for product_mappings table rows."""

    @classmethod
    def create(
        cls,
        products: list[dict],
        version: int = 1,
        updated_by: str = "test",
        updated_at: Optional[str] = None
    ) -> dict:
        return {
            "version": version,
            "mapping": {"products": products},
            "product_count": len(products),
            "updated_by": updated_by,
            "updated_at": updated_at or datetime.now(timezone.utc).isoformat(),
        }


class SessionFactory:
    """
    Factory for sync_sessions table rows.

    Usage:
        row = SessionFactory.create(status="in_progress", sku_plan=["W1", "W2"])
    """

    @classmethod
    def create(
        cls,
        session_id: Optional[str] = None,
        status: str = "pending",
        sku_plan: Optional[list[str]] = None,
        batch_size: int = 2,
        current_batch_index: int = 0,
        version: int = 0,
        created_minutes_ago: int = 0,
        updated_minutes_ago: int = 0,
        **extra
    ) -> dict:
        """
        Create a session row.

        total_batches and total_skus are derived from sku_plan.
        """
        now = datetime.now(timezone.utc)
        plan = sku_plan if sku_plan is not None else ["W1", "W2"]
        total = -(-len(plan) // batch_size)
        return {
            "session_id": session_id or str(uuid4()),
            "status": status,
            "version": version,
            "sku_plan": plan,
            "batch_size": batch_size,
            "total_batches": total,
            "current_batch_index": current_batch_index,
            "total_skus": len(plan),
            "processed_skus": min(current_batch_index * batch_size, len(plan)),
            "mapping_version": 1,
            "enriched": False,
            "lease_expires_at": None,
            "results": {},
            "batch_results": [],
            "created_at": (now - timedelta(minutes=created_minutes_ago)).isoformat(),
            "last_updated_at": (now - timedelta(minutes=updated_minutes_ago)).isoformat(),
            "completed_at": None,
            "error_message": None,
            **extra,
        }
