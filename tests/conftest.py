"""
Shared test fixtures.

FakeSupabaseClient is an in-memory stand-in for the Supabase query
builder: rows persist across calls, filters apply to select, update and
delete, and primary keys are enforced on insert.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings require these at import time
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-key")

import copy
import pytest
from unittest.mock import patch
from datetime import datetime
from typing import Generator, Optional

from exceptions import ChannelUpdateError, WarehouseFetchError
from models.inventory import WarehouseQuantity


# ===================
# FAKE SUPABASE CLIENT
# ===================

PRIMARY_KEYS = {
    "product_mappings": "version",
    "sync_sessions": "session_id",
    "warehouse_inventory": "sku",
}


def _comparable(value):
    """ISO timestamps compare as datetimes."""
    if isinstance(value, str) and len(value) >= 19 and value[4] == "-" and value[10] == "T":
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


class FakeSupabaseResponse:
    """Query response with data and count."""

    def __init__(self, data: list, count: Optional[int] = None):
        self.data = data
        self.count = count


class FakeSupabaseQuery:
    """Chainable query executed against the client's in-memory tables."""

    def __init__(self, client: "FakeSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._op = "select"
        self._payload = None
        self._columns = "*"
        self._count = None
        self._on_conflict = None
        self._filters = []
        self._order = None
        self._limit = None

    # Operations

    def select(self, columns: str = "*", count: Optional[str] = None):
        self._op = "select"
        self._columns = columns
        self._count = count
        return self

    def insert(self, data):
        self._op = "insert"
        self._payload = data
        return self

    def upsert(self, data, on_conflict: Optional[str] = None):
        self._op = "upsert"
        self._payload = data
        self._on_conflict = on_conflict
        return self

    def update(self, data: dict):
        self._op = "update"
        self._payload = data
        return self

    def delete(self):
        self._op = "delete"
        return self

    # Filters

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def lt(self, column, value):
        self._filters.append(
            lambda row: row.get(column) is not None
            and _comparable(row.get(column)) < _comparable(value)
        )
        return self

    def order(self, column, desc: bool = False):
        self._order = (column, desc)
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    # Execution

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def _project(self, row: dict) -> dict:
        if self._columns.strip() == "*":
            return copy.deepcopy(row)
        columns = [c.strip() for c in self._columns.split(",")]
        return {c: copy.deepcopy(row.get(c)) for c in columns}

    def execute(self) -> FakeSupabaseResponse:
        self._client.calls.append((self._table, self._op))
        error = self._client.errors.get((self._table, self._op))
        if error:
            raise error

        rows = self._client.tables.setdefault(self._table, [])
        key = PRIMARY_KEYS.get(self._table)

        if self._op == "insert":
            new_rows = self._payload if isinstance(self._payload, list) else [self._payload]
            for new in new_rows:
                if key and any(r.get(key) == new.get(key) for r in rows):
                    raise Exception(f'duplicate key value violates unique constraint "{self._table}_pkey"')
            rows.extend(copy.deepcopy(new_rows))
            return FakeSupabaseResponse(copy.deepcopy(new_rows))

        if self._op == "upsert":
            new_rows = self._payload if isinstance(self._payload, list) else [self._payload]
            conflict = self._on_conflict or key
            for new in new_rows:
                existing = next((r for r in rows if r.get(conflict) == new.get(conflict)), None)
                if existing is not None:
                    existing.update(copy.deepcopy(new))
                else:
                    rows.append(copy.deepcopy(new))
            return FakeSupabaseResponse(copy.deepcopy(new_rows))

        matched = [r for r in rows if self._matches(r)]

        if self._op == "update":
            for row in matched:
                row.update(copy.deepcopy(self._payload))
            return FakeSupabaseResponse(copy.deepcopy(matched))

        if self._op == "delete":
            self._client.tables[self._table] = [r for r in rows if not self._matches(r)]
            return FakeSupabaseResponse(copy.deepcopy(matched))

        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda r: _comparable(r.get(column)), reverse=desc)
        total = len(matched)
        if self._limit is not None:
            matched = matched[:self._limit]
        return FakeSupabaseResponse(
            [self._project(r) for r in matched],
            count=total if self._count else None
        )


class FakeSupabaseClient:
    """In-memory Supabase client."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.errors: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple[str, str]] = []

    def table(self, name: str) -> FakeSupabaseQuery:
        return FakeSupabaseQuery(self, name)

    def set_table_data(self, table_name: str, data: list) -> None:
        """Seed a table."""
        self.tables[table_name] = copy.deepcopy(data)

    def rows(self, table_name: str) -> list[dict]:
        return self.tables.get(table_name, [])

    def fail_on(self, table_name: str, op: str, error: Optional[Exception] = None) -> None:
        """Make every `op` on table raise."""
        self.errors[(table_name, op)] = error or Exception("connection reset")


# ===================
# FAKE UPSTREAM CLIENTS
# ===================

class FakeWarehouseClient:
    """Warehouse client serving quantities from a dict."""

    configured = True

    def __init__(self, quantities: Optional[dict] = None, bins: Optional[dict] = None):
        self.quantities = quantities or {}
        self.bins = bins or {}
        self.fail_for: set[str] = set()
        self.fetched: list[list[str]] = []
        self.product_id_index: dict[str, str] = {}

    def fetch_inventory(self, skus, known_product_ids=None) -> dict[str, WarehouseQuantity]:
        skus = list(skus)
        self.fetched.append(skus)
        if self.fail_for.intersection(skus):
            raise WarehouseFetchError("Warehouse login failed: 503")
        return {
            sku: WarehouseQuantity(
                sku=sku,
                quantity=self.quantities[sku],
                bins=self.bins.get(sku, []),
            )
            for sku in skus
            if sku in self.quantities
        }

    def product_ids(self) -> dict[str, str]:
        return self.product_id_index


class FakeShopifyClient:
    """Shopify client recording writes."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.levels: dict[str, int] = {}
        self.writes: list[tuple[str, int]] = []
        self.fail_for: dict[str, str] = {}
        self.variants: dict[str, dict] = {}

    def set_available(self, inventory_item_id, available, sku=None):
        if sku in self.fail_for:
            raise ChannelUpdateError("shopify", self.fail_for[sku], f"Shopify rejected {sku}")
        self.writes.append((inventory_item_id, available))
        self.levels[inventory_item_id] = available

    def get_available(self, inventory_item_id, sku=None):
        return self.levels.get(inventory_item_id)

    def find_variant(self, sku):
        return self.variants.get(sku)


class FakeShipStationClient:
    """ShipStation client recording location writes."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.locations: dict[str, str] = {}

    def set_location(self, sku, location):
        self.locations[sku] = location


# ===================
# FIXTURES
# ===================

@pytest.fixture
def fake_db() -> FakeSupabaseClient:
    """
    Create an in-memory Supabase client.

    Usage:
        def test_something(fake_db):
            fake_db.set_table_data("sync_sessions", [...])
    """
    return FakeSupabaseClient()


@pytest.fixture
def mock_db(fake_db) -> Generator:
    """
    Patch the database client with the fake.

    Any service constructed inside the test gets fake_db.
    """
    with patch("config.database.get_supabase_client", return_value=fake_db), \
            patch("services.mapping_service.get_supabase_client", return_value=fake_db), \
            patch("services.inventory_snapshot_service.get_supabase_client", return_value=fake_db), \
            patch("services.session_repository.get_supabase_client", return_value=fake_db):
        yield fake_db


@pytest.fixture
def warehouse() -> FakeWarehouseClient:
    return FakeWarehouseClient()


@pytest.fixture
def shopify_client() -> FakeShopifyClient:
    return FakeShopifyClient()


@pytest.fixture
def shipstation_client() -> FakeShipStationClient:
    return FakeShipStationClient()


@pytest.fixture
def no_alerts() -> Generator:
    """Capture Telegram alerts instead of sending them."""
    with patch("services.sync_session_service.send_sync_alert") as send:
        yield send


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    Create FastAPI test client with the fake database.

    Service singletons are reset so routes build services on fake_db.
    """
    from fastapi.testclient import TestClient
    from main import app
    import services.mapping_service as mapping_module
    import services.session_repository as repository_module
    import services.inventory_snapshot_service as snapshot_module
    import services.sync_session_service as manager_module
    import services.sync_report_service as report_module

    modules = [mapping_module, repository_module, snapshot_module, manager_module, report_module]
    names = [
        "_mapping_service",
        "_session_repository",
        "_inventory_snapshot_service",
        "_sync_session_manager",
        "_sync_report_service",
    ]
    for module, name in zip(modules, names):
        setattr(module, name, None)

    with patch("main.check_connection", return_value={"status": "healthy", "mapping_versions": 0, "active_sessions": 0}):
        yield TestClient(app)

    for module, name in zip(modules, names):
        setattr(module, name, None)


