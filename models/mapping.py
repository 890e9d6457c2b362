"""
Product mapping schemas.

A mapping row links one channel SKU to the warehouse stock behind it. Rows
are a tagged variant:

    SimpleProduct  one warehouse SKU, sold one-for-one
    BundleProduct  fixed multiples of one or more warehouse SKUs

Rows stored by older tooling use Flowtrac/Shopify/Amazon key names and carry
no tag; normalize_product_row() converts them.
"""

from pydantic import Field, model_validator
from typing import Annotated, Literal, Optional, Union, Any
from datetime import datetime

from models.base import BaseSchema


# Legacy key -> current key
LEGACY_PRODUCT_KEYS = {
    "flowtrac_sku": "warehouse_sku",
    "flowtrac_product_id": "warehouse_product_id",
    "shopify_sku": "channel_sku",
    "shopify_product_id": "channel_product_id",
    "shopify_variant_id": "channel_variant_id",
    "shopify_inventory_item_id": "channel_inventory_location_id",
    "amazon_sku": "marketplace_sku",
}

LEGACY_COMPONENT_KEYS = {
    "flowtrac_sku": "warehouse_sku",
    "flowtrac_product_id": "warehouse_product_id",
    "quantity": "quantity_per_unit",
}


def _rename_keys(row: dict, renames: dict[str, str]) -> dict:
    out = {}
    for key, value in row.items():
        new_key = renames.get(key, key)
        # Current key wins when both spellings are present
        if new_key in out and key != new_key:
            continue
        out[new_key] = value
    return out


def normalize_product_row(row: dict) -> dict:
    """
    Convert a raw mapping row into the tagged shape.

    Rules:
    - A non-empty bundle_components list makes a bundle (any warehouse_sku
      on the same row is dropped).
    - Otherwise a warehouse_sku makes a simple product.
    - An explicit empty bundle_components list with no warehouse_sku is a
      bundle with no components (resolves to 0).
    - A row with neither is rejected.
    """
    if "kind" in row:
        return row

    data = _rename_keys(row, LEGACY_PRODUCT_KEYS)
    components = data.get("bundle_components")

    if isinstance(components, list):
        data["bundle_components"] = [
            _rename_keys(c, LEGACY_COMPONENT_KEYS) if isinstance(c, dict) else c
            for c in components
        ]

    if isinstance(components, list) and (components or not data.get("warehouse_sku")):
        data["kind"] = "bundle"
        data.pop("warehouse_sku", None)
        data.pop("warehouse_product_id", None)
    elif data.get("warehouse_sku"):
        data["kind"] = "simple"
        data.pop("bundle_components", None)
    else:
        raise ValueError(
            f"Product {data.get('channel_sku')!r} has neither warehouse_sku nor bundle_components"
        )

    return data


# ===================
# PRODUCT VARIANTS
# ===================

class BundleComponent(BaseSchema):
    """One warehouse SKU inside a bundle."""

    warehouse_sku: str = Field(..., min_length=1, description="Warehouse SKU")
    quantity_per_unit: Optional[int] = Field(
        None,
        description="Units of this SKU consumed by one bundle (must be > 0)"
    )
    warehouse_product_id: Optional[str] = Field(
        None,
        description="Warehouse-internal product id (self-healed)"
    )


class ProductBase(BaseSchema):
    """Fields shared by every mapping row."""

    channel_sku: str = Field(..., min_length=1, description="SKU on the sales channels")
    product_name: Optional[str] = None
    marketplace_sku: Optional[str] = Field(
        None,
        description="Marketplace (Amazon) SKU; rows without one are not listed there"
    )
    channel_product_id: Optional[str] = None
    channel_variant_id: Optional[str] = Field(
        None,
        description="E-commerce variant handle (self-healed)"
    )
    channel_inventory_location_id: Optional[str] = Field(
        None,
        description="E-commerce inventory item handle used for stock updates (self-healed)"
    )
    season: Optional[str] = None


class SimpleProduct(ProductBase):
    """Channel SKU backed one-for-one by a warehouse SKU."""

    kind: Literal["simple"] = "simple"
    warehouse_sku: str = Field(..., min_length=1)
    warehouse_product_id: Optional[str] = None

    @property
    def warehouse_skus(self) -> list[str]:
        return [self.warehouse_sku]


class BundleProduct(ProductBase):
    """Channel SKU assembled from fixed multiples of warehouse SKUs."""

    kind: Literal["bundle"] = "bundle"
    bundle_components: list[BundleComponent] = Field(default_factory=list)

    @property
    def warehouse_skus(self) -> list[str]:
        seen: list[str] = []
        for component in self.bundle_components:
            if component.warehouse_sku not in seen:
                seen.append(component.warehouse_sku)
        return seen


Product = Annotated[Union[SimpleProduct, BundleProduct], Field(discriminator="kind")]


# ===================
# MAPPING
# ===================

class Mapping(BaseSchema):
    """
    Ordered, versioned product list.

    Owned by the mapping store; the sync engine only writes back
    self-healed identifiers.
    """

    products: list[Product] = Field(default_factory=list)
    version: int = Field(default=0, ge=0)
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_rows(cls, data: Any) -> Any:
        """Accept legacy untagged rows."""
        if isinstance(data, dict) and isinstance(data.get("products"), list):
            data = {
                **data,
                "products": [
                    normalize_product_row(p) if isinstance(p, dict) else p
                    for p in data["products"]
                ],
            }
        return data

    @model_validator(mode="after")
    def unique_channel_skus(self) -> "Mapping":
        """Channel SKUs are unique per channel."""
        seen = set()
        duplicates = []
        for product in self.products:
            if product.channel_sku in seen:
                duplicates.append(product.channel_sku)
            seen.add(product.channel_sku)
        if duplicates:
            raise ValueError(f"Duplicate channel_sku values: {sorted(set(duplicates))}")
        return self

    def warehouse_skus(self) -> list[str]:
        """
        Ordered union of every warehouse SKU in the mapping.

        Order follows product order, components in listed order; each SKU
        appears once.
        """
        ordered: dict[str, None] = {}
        for product in self.products:
            for sku in product.warehouse_skus:
                ordered.setdefault(sku, None)
        return list(ordered)

    def get_product(self, channel_sku: str) -> Optional[Union[SimpleProduct, BundleProduct]]:
        for product in self.products:
            if product.channel_sku == channel_sku:
                return product
        return None

    def to_store(self) -> dict:
        """Serialise products for persistence (version lives in its own column)."""
        return {
            "products": [p.model_dump(mode="json", exclude_none=True) for p in self.products]
        }


# ===================
# API SCHEMAS
# ===================

class MappingResponse(BaseSchema):
    """GET /api/mapping."""

    mapping: Mapping
    source: Literal["database", "file"]
    version: int


class MappingUpdateRequest(BaseSchema):
    """POST /api/mapping."""

    mapping: Mapping
    updated_by: str = Field(default="api", max_length=100)
    expected_version: Optional[int] = Field(
        None,
        ge=0,
        description="Reject the write if the stored version differs"
    )


class MappingUpdateResponse(BaseSchema):
    """Result of a mapping write."""

    success: bool
    version: int
    product_count: int
    updated_at: datetime


class MappingHistoryEntry(BaseSchema):
    """One stored mapping version."""

    version: int
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    product_count: int = 0
