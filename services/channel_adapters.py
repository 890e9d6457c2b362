"""
Channel adapters.

Each adapter turns resolved quantities into DispatchItems for its
channel and knows how to write (and optionally read back) one item. The
dispatcher drives them; adapters never catch their own errors.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union
import structlog

from config import settings
from models.mapping import SimpleProduct, BundleProduct
from models.inventory import WarehouseQuantity
from models.sync import Channel
from integrations.shopify import ShopifyClient
from integrations.amazon import AmazonClient
from integrations.shipstation import ShipStationClient, format_location
from services.quantity_resolver import MissingSkuPolicy

logger = structlog.get_logger(__name__)

ProductRow = Union[SimpleProduct, BundleProduct]


@dataclass
class DispatchItem:
    """One update to send to a channel."""
    sku: str                           # key in the outcome map
    identifier: Optional[str]          # channel-side handle; None means unmapped
    quantity: int
    location: Optional[str] = None     # fulfillment bin string


class ChannelAdapter(ABC):
    """Base for channel adapters."""

    channel: Channel
    supports_read_back: bool = True

    @property
    @abstractmethod
    def configured(self) -> bool:
        """Credentials present."""

    @abstractmethod
    def build_items(
        self,
        products: list[ProductRow],
        resolved: dict[str, int],
        batch_skus: list[str],
        warehouse: dict[str, WarehouseQuantity],
        policy: MissingSkuPolicy = MissingSkuPolicy.ZERO
    ) -> list[DispatchItem]:
        """
        Items this channel should receive for one batch.

        Args:
            products: Products newly resolvable in this batch
            resolved: channel_sku -> target quantity for those products
            batch_skus: Warehouse SKUs fetched in this batch
            warehouse: Quantities fetched in this batch
            policy: Missing warehouse SKU policy
        """

    @abstractmethod
    def write(self, item: DispatchItem) -> None:
        """Apply one item. Raises ChannelUpdateError."""

    def read(self, item: DispatchItem) -> Optional[int]:
        """Current quantity on the channel, or None when unknown."""
        return None

    def needs_identifier(self, product: ProductRow) -> bool:
        """True when the product lacks the handle this channel updates by."""
        return False


# ===================
# E-COMMERCE
# ===================

class ShopifyAdapter(ChannelAdapter):
    """Inventory item quantity at the configured location."""

    channel = Channel.SHOPIFY

    def __init__(self, client: Optional[ShopifyClient] = None):
        self.client = client or ShopifyClient()

    @property
    def configured(self) -> bool:
        return self.client.configured

    def build_items(self, products, resolved, batch_skus, warehouse, policy=MissingSkuPolicy.ZERO):
        return [
            DispatchItem(
                sku=p.channel_sku,
                identifier=p.channel_inventory_location_id,
                quantity=resolved[p.channel_sku],
            )
            for p in products
            if p.channel_sku in resolved
        ]

    def write(self, item: DispatchItem) -> None:
        self.client.set_available(item.identifier, item.quantity, sku=item.sku)

    def read(self, item: DispatchItem) -> Optional[int]:
        return self.client.get_available(item.identifier, sku=item.sku)

    def needs_identifier(self, product: ProductRow) -> bool:
        return not product.channel_inventory_location_id


# ===================
# MARKETPLACE
# ===================

class AmazonAdapter(ChannelAdapter):
    """Listing quantity; only products with a marketplace SKU are listed."""

    channel = Channel.AMAZON

    def __init__(self, client: Optional[AmazonClient] = None):
        self.client = client or AmazonClient()

    @property
    def configured(self) -> bool:
        return self.client.configured

    def build_items(self, products, resolved, batch_skus, warehouse, policy=MissingSkuPolicy.ZERO):
        return [
            DispatchItem(
                sku=p.channel_sku,
                identifier=p.marketplace_sku,
                quantity=resolved[p.channel_sku],
            )
            for p in products
            if p.channel_sku in resolved and p.marketplace_sku
        ]

    def write(self, item: DispatchItem) -> None:
        self.client.set_quantity(item.identifier, item.quantity)

    def read(self, item: DispatchItem) -> Optional[int]:
        return self.client.get_quantity(item.identifier)


# ===================
# FULFILLMENT
# ===================

class ShipStationAdapter(ChannelAdapter):
    """Bin locations per warehouse SKU fetched in the batch."""

    channel = Channel.SHIPSTATION
    supports_read_back = False

    def __init__(self, client: Optional[ShipStationClient] = None):
        self.client = client or ShipStationClient()

    @property
    def configured(self) -> bool:
        return self.client.configured

    def build_items(self, products, resolved, batch_skus, warehouse, policy=MissingSkuPolicy.ZERO):
        items = []
        for sku in batch_skus:
            fetched = warehouse.get(sku)
            if fetched is None and policy == MissingSkuPolicy.SKIP:
                continue
            bins = fetched.bins if fetched else []
            items.append(DispatchItem(
                sku=sku,
                identifier=sku,
                quantity=fetched.quantity if fetched else 0,
                location=format_location(bins),
            ))
        return items

    def write(self, item: DispatchItem) -> None:
        self.client.set_location(item.identifier, item.location)


ADAPTERS = {
    Channel.SHOPIFY.value: ShopifyAdapter,
    Channel.AMAZON.value: AmazonAdapter,
    Channel.SHIPSTATION.value: ShipStationAdapter,
}


def build_adapters(channels: Optional[list[str]] = None) -> list[ChannelAdapter]:
    """
    Adapters for the enabled channels, in configured order.

    Unknown channel names are logged and ignored.
    """
    adapters = []
    for name in channels if channels is not None else settings.enabled_channels:
        adapter_class = ADAPTERS.get(name)
        if adapter_class is None:
            logger.warning("unknown_channel_ignored", channel=name)
            continue
        adapters.append(adapter_class())
    return adapters
