"""
Unit tests for mapping models and legacy row normalisation.

Run: pytest tests/unit/test_mapping_models.py -v
"""

import pytest
from pydantic import ValidationError

from models.mapping import (
    Mapping,
    SimpleProduct,
    BundleProduct,
    normalize_product_row,
)
from tests.factories import ProductFactory


class TestNormalizeProductRow:
    """Tests for normalize_product_row()"""

    def test_legacy_simple_row(self):
        """Old key names become a tagged simple product."""
        row = normalize_product_row({
            "shopify_sku": "S1",
            "flowtrac_sku": "W1",
            "amazon_sku": "AMZ-1",
            "shopify_inventory_item_id": "gid://shopify/InventoryItem/1",
        })

        assert row["kind"] == "simple"
        assert row["channel_sku"] == "S1"
        assert row["warehouse_sku"] == "W1"
        assert row["marketplace_sku"] == "AMZ-1"
        assert row["channel_inventory_location_id"] == "gid://shopify/InventoryItem/1"

    def test_legacy_bundle_row_drops_warehouse_sku(self):
        """Non-empty components win over a warehouse SKU on the same row."""
        row = normalize_product_row({
            "shopify_sku": "KIT",
            "flowtrac_sku": "W9",
            "bundle_components": [{"flowtrac_sku": "W1", "quantity": 2}],
        })

        assert row["kind"] == "bundle"
        assert "warehouse_sku" not in row
        assert row["bundle_components"] == [{"warehouse_sku": "W1", "quantity_per_unit": 2}]

    def test_empty_components_without_warehouse_sku_is_empty_bundle(self):
        row = normalize_product_row({"shopify_sku": "KIT", "bundle_components": []})

        assert row["kind"] == "bundle"

    def test_empty_components_with_warehouse_sku_is_simple(self):
        row = normalize_product_row({
            "shopify_sku": "S1",
            "flowtrac_sku": "W1",
            "bundle_components": [],
        })

        assert row["kind"] == "simple"
        assert "bundle_components" not in row

    def test_row_with_neither_is_rejected(self):
        """A product needs a warehouse SKU or a component list."""
        with pytest.raises(ValueError):
            normalize_product_row({"shopify_sku": "S1"})

    def test_tagged_row_untouched(self):
        row = ProductFactory.simple("S1", "W1")

        assert normalize_product_row(row) is row


class TestMapping:
    """Tests for Mapping"""

    def test_parses_mixed_rows(self):
        """Tagged and legacy rows parse into the variant types."""
        mapping = Mapping(products=[
            ProductFactory.simple("S1", "W1"),
            ProductFactory.legacy_simple("S2", "W2"),
            ProductFactory.bundle("KIT", [("W1", 2)]),
        ])

        assert isinstance(mapping.products[0], SimpleProduct)
        assert isinstance(mapping.products[1], SimpleProduct)
        assert isinstance(mapping.products[2], BundleProduct)

    def test_duplicate_channel_sku_rejected(self):
        with pytest.raises(ValidationError):
            Mapping(products=[
                ProductFactory.simple("S1", "W1"),
                ProductFactory.simple("S1", "W2"),
            ])

    def test_warehouse_skus_ordered_union(self):
        """Product order, components in order, each SKU once."""
        mapping = Mapping(products=[
            ProductFactory.simple("S1", "W2"),
            ProductFactory.bundle("KIT", [("W1", 1), ("W2", 1), ("W3", 1)]),
            ProductFactory.simple("S3", "W1"),
        ])

        assert mapping.warehouse_skus() == ["W2", "W1", "W3"]

    def test_get_product(self):
        mapping = Mapping(products=[ProductFactory.simple("S1", "W1")])

        assert mapping.get_product("S1").warehouse_sku == "W1"
        assert mapping.get_product("NOPE") is None

    def test_to_store_round_trips(self):
        """Stored rows keep their tags and parse back."""
        mapping = Mapping(products=[
            ProductFactory.simple("S1", "W1"),
            ProductFactory.bundle("KIT", [("W1", 2)]),
        ])

        restored = Mapping(**mapping.to_store())

        assert restored.products == mapping.products
