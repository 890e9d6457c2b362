"""
Warehouse inventory schemas.

WarehouseQuantity is what the warehouse client returns per SKU;
InventoryRecord is the persisted row in warehouse_inventory.
"""

from pydantic import Field, field_validator
from typing import Optional
from datetime import datetime

from models.base import BaseSchema


class WarehouseQuantity(BaseSchema):
    """Available quantity for one warehouse SKU, with bin breakdown."""

    sku: str = Field(..., min_length=1)
    quantity: int = Field(default=0, ge=0, description="Available units")
    bins: list[str] = Field(default_factory=list, description="Bins holding stock")
    bin_breakdown: dict[str, int] = Field(
        default_factory=dict,
        description="Units per bin"
    )


class InventoryRecord(BaseSchema):
    """
    One row of the persisted inventory snapshot.

    Keyed by SKU; session_id tags which sync run wrote it.
    """

    sku: str = Field(..., min_length=1)
    quantity: int = Field(default=0, ge=0)
    warehouse: str = Field(default="Manteca")
    bins: list[str] = Field(default_factory=list)
    bin_breakdown: dict[str, int] = Field(default_factory=dict)
    last_updated: Optional[datetime] = None
    source: str = Field(default="flowtrac_api", pattern="^(flowtrac_api|manual_override)$")
    session_id: Optional[str] = None

    @field_validator("bins", mode="before")
    @classmethod
    def none_bins(cls, v):
        """Postgres returns NULL for empty arrays."""
        return v or []

    @field_validator("bin_breakdown", mode="before")
    @classmethod
    def none_breakdown(cls, v):
        return v or {}

    def to_quantity(self) -> WarehouseQuantity:
        return WarehouseQuantity(
            sku=self.sku,
            quantity=self.quantity,
            bins=self.bins,
            bin_breakdown=self.bin_breakdown,
        )


class InventorySummary(BaseSchema):
    """Counts over the persisted snapshot."""

    total_skus: int = 0
    total_quantity: int = 0
    out_of_stock: int = 0
    low_stock: int = 0
    last_updated: Optional[datetime] = None
