"""
Unit tests for MappingService.

Run: pytest tests/unit/test_mapping_service.py -v
"""

import json
import pytest

from services.mapping_service import MappingService, parse_mapping
from models.mapping import Mapping
from exceptions import (
    MappingNotFoundError,
    InvalidMappingError,
    MappingVersionConflictError,
    DatabaseError,
)
from tests.factories import ProductFactory, MappingRowFactory


@pytest.fixture
def mapping_file(tmp_path):
    return tmp_path / "mapping.json"


@pytest.fixture
def service(mock_db, mapping_file):
    return MappingService(file_path=str(mapping_file))


class TestParseMapping:
    """Tests for parse_mapping()"""

    def test_invalid_rows_become_invalid_mapping_error(self):
        """Pydantic errors are reported as problems."""
        with pytest.raises(InvalidMappingError) as exc_info:
            parse_mapping({"products": [{"kind": "simple", "channel_sku": "S1"}]})

        assert exc_info.value.details["problems"]

    def test_row_with_neither_sku_nor_components(self):
        with pytest.raises(InvalidMappingError):
            parse_mapping({"products": [{"shopify_sku": "S1"}]})


class TestGetMapping:
    """Tests for get_mapping()"""

    def test_latest_database_version_wins(self, service, mock_db):
        """Highest version row is the active mapping."""
        mock_db.set_table_data("product_mappings", [
            MappingRowFactory.create([ProductFactory.simple("OLD", "W0")], version=1),
            MappingRowFactory.create([ProductFactory.simple("NEW", "W1")], version=2),
        ])

        result = service.get_mapping()

        assert result.source == "database"
        assert result.version == 2
        assert [p.channel_sku for p in result.mapping.products] == ["NEW"]

    def test_file_fallback_when_database_empty(self, service, mapping_file):
        """Legacy file content is normalised."""
        mapping_file.write_text(json.dumps({
            "version": 3,
            "lastUpdated": "2025-01-01T00:00:00Z",
            "products": [ProductFactory.legacy_simple("S1", "W1")],
        }))

        result = service.get_mapping()

        assert result.source == "file"
        assert result.version == 3
        assert result.mapping.products[0].warehouse_sku == "W1"

    def test_file_fallback_when_database_unreachable(self, service, mock_db, mapping_file):
        mock_db.fail_on("product_mappings", "select")
        mapping_file.write_text(json.dumps({"products": [ProductFactory.simple("S1", "W1")]}))

        result = service.get_mapping()

        assert result.source == "file"

    def test_no_source_raises_not_found(self, service):
        with pytest.raises(MappingNotFoundError) as exc_info:
            service.get_mapping()

        assert exc_info.value.details["sources_tried"] == ["database", "file"]

    def test_malformed_file_raises_invalid(self, service, mapping_file):
        mapping_file.write_text("{not json")

        with pytest.raises(InvalidMappingError):
            service.get_mapping()


class TestUpdateMapping:
    """Tests for update_mapping()"""

    def test_first_write_is_version_one(self, service, mock_db):
        mapping = Mapping(products=[ProductFactory.simple("S1", "W1")])

        result = service.update_mapping(mapping, updated_by="ops")

        assert result.version == 1
        assert result.product_count == 1
        stored = mock_db.rows("product_mappings")[0]
        assert stored["updated_by"] == "ops"
        assert stored["mapping"]["products"][0]["kind"] == "simple"

    def test_writes_append_versions(self, service, mock_db):
        """Older versions stay as history."""
        mapping = Mapping(products=[ProductFactory.simple("S1", "W1")])

        service.update_mapping(mapping)
        service.update_mapping(mapping)

        assert [r["version"] for r in mock_db.rows("product_mappings")] == [1, 2]

    def test_expected_version_mismatch_conflicts(self, service, mock_db):
        mock_db.set_table_data("product_mappings", [
            MappingRowFactory.create([ProductFactory.simple("S1", "W1")], version=4),
        ])
        mapping = Mapping(products=[ProductFactory.simple("S1", "W1")])

        with pytest.raises(MappingVersionConflictError) as exc_info:
            service.update_mapping(mapping, expected_version=3)

        assert exc_info.value.details["current_version"] == 4
        assert len(mock_db.rows("product_mappings")) == 1

    def test_expected_version_match_writes(self, service, mock_db):
        mock_db.set_table_data("product_mappings", [
            MappingRowFactory.create([ProductFactory.simple("S1", "W1")], version=4),
        ])
        mapping = Mapping(products=[ProductFactory.simple("S1", "W1")])

        result = service.update_mapping(mapping, expected_version=4)

        assert result.version == 5

    def test_rejects_zero_divisor(self, service, mock_db):
        """Bundles with unusable divisors are never stored."""
        mapping = Mapping(products=[ProductFactory.bundle("KIT", [("W1", 0)])])

        with pytest.raises(InvalidMappingError):
            service.update_mapping(mapping)

        assert mock_db.rows("product_mappings") == []

    def test_insert_failure_raises_database_error(self, service, mock_db):
        mock_db.fail_on("product_mappings", "insert")
        mapping = Mapping(products=[ProductFactory.simple("S1", "W1")])

        with pytest.raises(DatabaseError):
            service.update_mapping(mapping)


class TestGetHistory:
    """Tests for get_history()"""

    def test_newest_first_with_limit(self, service, mock_db):
        mock_db.set_table_data("product_mappings", [
            MappingRowFactory.create([ProductFactory.simple("S1", "W1")], version=v)
            for v in (1, 2, 3)
        ])

        history = service.get_history(limit=2)

        assert [h.version for h in history] == [3, 2]
        assert history[0].product_count == 1
