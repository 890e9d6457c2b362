"""
Unit tests for the quantity resolver.

Run: pytest tests/unit/test_quantity_resolver.py -v
"""

import pytest

from models.mapping import Mapping
from services.quantity_resolver import (
    MissingSkuPolicy,
    resolve,
    resolve_product,
    validate_products,
    newly_resolvable,
)
from exceptions import InvalidMappingError
from tests.factories import ProductFactory


def make_products(*rows):
    return Mapping(products=list(rows)).products


class TestResolveSimple:
    """Tests for simple products."""

    def test_simple_uses_snapshot_quantity(self):
        """Simple product resolves to the warehouse quantity."""
        products = make_products(ProductFactory.simple("S1", "W1"))

        assert resolve(products, {"W1": 12}) == {"S1": 12}

    def test_simple_missing_sku_is_zero(self):
        """Absent warehouse SKU counts as out of stock."""
        products = make_products(ProductFactory.simple("S1", "W1"))

        assert resolve(products, {}) == {"S1": 0}

    def test_simple_missing_sku_skipped_under_skip_policy(self):
        """SKIP policy leaves products with unknown stock out."""
        products = make_products(ProductFactory.simple("S1", "W1"))

        assert resolve(products, {}, MissingSkuPolicy.SKIP) == {}

    def test_negative_snapshot_clamped_to_zero(self):
        """Never produces negative quantities."""
        products = make_products(ProductFactory.simple("S1", "W1"))

        assert resolve(products, {"W1": -4}) == {"S1": 0}


class TestResolveBundle:
    """Tests for bundle arithmetic."""

    def test_bundle_takes_binding_component(self):
        """{A: 2, B: 1} with {A: 10, B: 3} resolves to min(5, 3) = 3."""
        products = make_products(ProductFactory.bundle("KIT", [("A", 2), ("B", 1)]))

        assert resolve(products, {"A": 10, "B": 3}) == {"KIT": 3}

    def test_bundle_floors_division(self):
        """Partial bundles are not sellable."""
        products = make_products(ProductFactory.bundle("KIT", [("A", 3)]))

        assert resolve(products, {"A": 8}) == {"KIT": 2}

    def test_bundle_missing_component_is_zero(self):
        """A missing component makes the bundle unavailable."""
        products = make_products(ProductFactory.bundle("KIT", [("A", 1), ("B", 1)]))

        assert resolve(products, {"A": 10}) == {"KIT": 0}

    def test_bundle_missing_component_skipped_under_skip_policy(self):
        """SKIP policy leaves the bundle unresolved."""
        products = make_products(ProductFactory.bundle("KIT", [("A", 1), ("B", 1)]))

        assert resolve(products, {"A": 10}, MissingSkuPolicy.SKIP) == {}

    def test_empty_bundle_resolves_to_zero(self):
        """Bundle with no components resolves to 0."""
        products = make_products(ProductFactory.bundle("KIT", []))

        assert resolve(products, {"A": 10}) == {"KIT": 0}

    def test_zero_divisor_is_configuration_error(self):
        """quantity_per_unit of 0 is rejected, not coerced."""
        products = make_products(ProductFactory.bundle("KIT", [("A", 0)]))

        with pytest.raises(InvalidMappingError) as exc_info:
            resolve(products, {"A": 10})

        assert exc_info.value.details["problems"][0]["warehouse_sku"] == "A"

    def test_missing_divisor_is_configuration_error(self):
        """quantity_per_unit of None is rejected."""
        products = make_products(ProductFactory.bundle("KIT", [("A", None)]))

        with pytest.raises(InvalidMappingError):
            validate_products(products)

    def test_resolve_product_rejects_zero_divisor_directly(self):
        """resolve_product validates even when called on its own."""
        product = make_products(ProductFactory.bundle("KIT", [("A", 0)]))[0]

        with pytest.raises(InvalidMappingError):
            resolve_product(product, {"A": 1})


class TestResolveMapping:
    """Tests over whole mappings."""

    def test_end_to_end_scenario(self):
        """S1 simple on W1, S2 bundle 2xW1 + 1xW2, snapshot {W1: 7, W2: 1}."""
        products = make_products(
            ProductFactory.simple("S1", "W1"),
            ProductFactory.bundle("S2", [("W1", 2), ("W2", 1)]),
        )

        assert resolve(products, {"W1": 7, "W2": 1}) == {"S1": 7, "S2": 1}

    def test_resolve_is_idempotent(self):
        """Same input twice gives the same output."""
        products = make_products(
            ProductFactory.simple("S1", "W1"),
            ProductFactory.bundle("S2", [("W1", 2), ("W2", 1)]),
        )
        snapshot = {"W1": 9, "W2": 4}

        assert resolve(products, snapshot) == resolve(products, snapshot)
        assert snapshot == {"W1": 9, "W2": 4}


class TestNewlyResolvable:
    """Tests for per-batch product selection."""

    def test_product_ready_when_last_sku_covered(self):
        """Bundle becomes ready in the batch that covers its last component."""
        products = make_products(
            ProductFactory.simple("S1", "W1"),
            ProductFactory.bundle("S2", [("W1", 2), ("W3", 1)]),
        )

        first = newly_resolvable(products, [], ["W1", "W2"], first_batch=True)
        second = newly_resolvable(products, ["W1", "W2"], ["W1", "W2", "W3"])

        assert [p.channel_sku for p in first] == ["S1"]
        assert [p.channel_sku for p in second] == ["S2"]

    def test_product_never_repeated(self):
        """Products already covered are not returned again."""
        products = make_products(ProductFactory.simple("S1", "W1"))

        assert newly_resolvable(products, ["W1"], ["W1", "W2"]) == []

    def test_empty_bundle_only_on_first_batch(self):
        """Products without warehouse SKUs resolve with the first batch."""
        products = make_products(ProductFactory.bundle("KIT", []))

        assert len(newly_resolvable(products, [], ["W1"], first_batch=True)) == 1
        assert newly_resolvable(products, ["W1"], ["W1", "W2"]) == []
