"""
Unit tests for InventorySnapshotService.

Run: pytest tests/unit/test_inventory_snapshot_service.py -v
"""

import pytest

from services.inventory_snapshot_service import InventorySnapshotService
from models.inventory import WarehouseQuantity
from exceptions import DatabaseError


@pytest.fixture
def service(mock_db):
    return InventorySnapshotService()


def quantity(sku, qty, bins=None):
    return WarehouseQuantity(sku=sku, quantity=qty, bins=bins or [])


class TestUpsertQuantities:
    """Tests for upsert_quantities()"""

    def test_rows_keyed_by_sku(self, service, mock_db):
        """A later fetch overwrites the earlier row."""
        service.upsert_quantities({"W1": quantity("W1", 5)}, "s1")
        service.upsert_quantities({"W1": quantity("W1", 8, ["A-1"])}, "s2")

        rows = mock_db.rows("warehouse_inventory")
        assert len(rows) == 1
        assert rows[0]["quantity"] == 8
        assert rows[0]["bins"] == ["A-1"]
        assert rows[0]["session_id"] == "s2"

    def test_empty_is_noop(self, service, mock_db):
        assert service.upsert_quantities({}, "s1") == 0
        assert mock_db.calls == []

    def test_failure_raises_database_error(self, service, mock_db):
        mock_db.fail_on("warehouse_inventory", "upsert")

        with pytest.raises(DatabaseError):
            service.upsert_quantities({"W1": quantity("W1", 5)}, "s1")


class TestSnapshot:
    """Tests for get_snapshot() and purge_except()"""

    def test_snapshot_only_for_session(self, service):
        service.upsert_quantities({"W1": quantity("W1", 5)}, "s1")
        service.upsert_quantities({"W2": quantity("W2", 2)}, "other")

        snapshot = service.get_snapshot("s1")

        assert list(snapshot) == ["W1"]
        assert snapshot["W1"].quantity == 5

    def test_purge_removes_unmapped_skus(self, service, mock_db):
        service.upsert_quantities({
            "W1": quantity("W1", 5),
            "GONE": quantity("GONE", 1),
        }, "s1")

        removed = service.purge_except(["W1"])

        assert removed == 1
        assert [r["sku"] for r in mock_db.rows("warehouse_inventory")] == ["W1"]


class TestSummary:
    """Tests for get_summary()"""

    def test_counts(self, service):
        service.upsert_quantities({
            "W1": quantity("W1", 0),
            "W2": quantity("W2", 4),
            "W3": quantity("W3", 50),
        }, "s1")

        summary = service.get_summary()

        assert summary.total_skus == 3
        assert summary.total_quantity == 54
        assert summary.out_of_stock == 1
        assert summary.low_stock == 1
        assert summary.last_updated is not None
