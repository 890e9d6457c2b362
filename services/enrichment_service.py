"""
Self-healing enricher.

Backfills identifiers the mapping is missing:
- e-commerce variant / inventory item handles, looked up by channel SKU
- warehouse product ids, from the warehouse product listing

The enriched mapping is written back as a new version, conditional on
the version it was read at. Callers pass the channel SKUs they are about
to update, so one call only looks up those products.
"""

from typing import Iterable, Optional, Union
import structlog

from models.mapping import Mapping, SimpleProduct, BundleProduct
from exceptions import (
    ChannelUpdateError,
    WarehouseFetchError,
    MappingVersionConflictError,
    DatabaseError,
)
from integrations.shopify import ShopifyClient
from integrations.flowtrac import FlowtracClient
from services.mapping_service import MappingService, get_mapping_service

logger = structlog.get_logger(__name__)

ProductRow = Union[SimpleProduct, BundleProduct]


class EnrichmentService:
    """Fills missing channel and warehouse identifiers in a mapping."""

    def __init__(
        self,
        shopify: Optional[ShopifyClient] = None,
        warehouse: Optional[FlowtracClient] = None,
        mapping_service: Optional[MappingService] = None
    ):
        self.shopify = shopify or ShopifyClient()
        self.warehouse = warehouse or FlowtracClient()
        self.mapping_service = mapping_service or get_mapping_service()

    def enrich(
        self,
        mapping: Mapping,
        channel_skus: Optional[Iterable[str]] = None,
        updated_by: str = "sync-enricher"
    ) -> Mapping:
        """
        Backfill identifiers and persist when anything changed.

        Lookup failures leave the field empty; the dispatcher then reports
        the item as missing_identifier.

        Args:
            mapping: Mapping as read from the store
            channel_skus: Only look up these products (all when None)
            updated_by: Author recorded on the new mapping version

        Returns:
            The enriched mapping (with its new version when persisted)
        """
        enriched = mapping.model_copy(deep=True)
        scope = set(channel_skus) if channel_skus is not None else None
        targets = [
            p for p in enriched.products
            if scope is None or p.channel_sku in scope
        ]

        channel_filled = self._fill_channel_ids(targets)
        warehouse_filled = self._fill_warehouse_ids(targets)

        logger.info(
            "mapping_enriched",
            products=len(targets),
            channel_ids_filled=channel_filled,
            warehouse_ids_filled=warehouse_filled
        )

        if not channel_filled and not warehouse_filled:
            return enriched

        try:
            result = self.mapping_service.update_mapping(
                enriched,
                updated_by=updated_by,
                expected_version=mapping.version
            )
            enriched.version = result.version
            enriched.updated_at = result.updated_at
            enriched.updated_by = updated_by
        except (MappingVersionConflictError, DatabaseError) as e:
            # In-memory identifiers still serve the caller
            logger.warning("enriched_mapping_not_persisted", error=e.message)

        return enriched

    def _fill_channel_ids(self, products: list[ProductRow]) -> int:
        if not self.shopify.configured:
            return 0

        filled = 0
        for product in products:
            if product.channel_inventory_location_id and product.channel_variant_id:
                continue
            try:
                found = self.shopify.find_variant(product.channel_sku)
            except ChannelUpdateError as e:
                logger.warning("variant_lookup_failed", sku=product.channel_sku, error=e.message)
                continue

            if not found:
                logger.debug("variant_not_found", sku=product.channel_sku)
                continue

            if found.get("inventory_item_id") and not product.channel_inventory_location_id:
                product.channel_inventory_location_id = found["inventory_item_id"]
                filled += 1
            if found.get("variant_id") and not product.channel_variant_id:
                product.channel_variant_id = found["variant_id"]
            if found.get("product_id") and not product.channel_product_id:
                product.channel_product_id = found["product_id"]

        return filled

    def _fill_warehouse_ids(self, products: list[ProductRow]) -> int:
        needs_ids = any(
            (isinstance(p, SimpleProduct) and not p.warehouse_product_id)
            or (isinstance(p, BundleProduct) and any(not c.warehouse_product_id for c in p.bundle_components))
            for p in products
        )
        if not needs_ids or not self.warehouse.configured:
            return 0

        try:
            index = self.warehouse.product_ids()
        except WarehouseFetchError as e:
            logger.warning("warehouse_id_lookup_failed", error=e.message)
            return 0

        filled = 0
        for product in products:
            if isinstance(product, SimpleProduct):
                if not product.warehouse_product_id and product.warehouse_sku in index:
                    product.warehouse_product_id = index[product.warehouse_sku]
                    filled += 1
                continue
            for component in product.bundle_components:
                if not component.warehouse_product_id and component.warehouse_sku in index:
                    component.warehouse_product_id = index[component.warehouse_sku]
                    filled += 1
        return filled


def known_product_ids(mapping: Mapping) -> dict[str, str]:
    """Warehouse SKU -> product id already stored in the mapping."""
    ids = {}
    for product in mapping.products:
        if isinstance(product, SimpleProduct):
            if product.warehouse_product_id:
                ids[product.warehouse_sku] = product.warehouse_product_id
            continue
        for component in product.bundle_components:
            if component.warehouse_product_id:
                ids.setdefault(component.warehouse_sku, component.warehouse_product_id)
    return ids
