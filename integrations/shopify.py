"""
Shopify Admin API client.

Stock is set per inventory item at one named location. Variant and
inventory item ids are looked up by SKU through GraphQL.
"""

from typing import Optional
import requests
import structlog

from config import settings
from exceptions import ChannelUpdateError
from integrations.http import request, json_body

logger = structlog.get_logger(__name__)

CHANNEL = "shopify"

VARIANT_BY_SKU_QUERY = """
query VariantBySku($query: String!) {
  productVariants(first: 5, query: $query) {
    edges {
      node {
        id
        sku
        product { id }
        inventoryItem { id }
      }
    }
  }
}
"""


def gid_to_id(gid: str) -> str:
    """gid://shopify/InventoryItem/531377 -> 531377"""
    return str(gid).rsplit("/", 1)[-1]


class ShopifyClient:
    """Inventory updates and id lookups for one store."""

    def __init__(
        self,
        store_url: Optional[str] = None,
        access_token: Optional[str] = None,
        api_version: Optional[str] = None,
        location_name: Optional[str] = None,
        timeout: int = 10,
        http: Optional[requests.Session] = None
    ):
        self.store_url = store_url or settings.shopify_store_url
        self.access_token = access_token or settings.shopify_access_token
        self.api_version = api_version or settings.shopify_api_version
        self.location_name = location_name or settings.shopify_location_name
        self.timeout = timeout
        self.http = http or requests.Session()
        self.http.headers.update({
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self.access_token or "",
        })
        self._location_id: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.store_url and self.access_token)

    @property
    def base_url(self) -> str:
        return f"https://{self.store_url}/admin/api/{self.api_version}"

    def _call(self, method: str, path: str, sku: Optional[str] = None, **kwargs) -> dict:
        response = request(
            self.http, CHANNEL, method, f"{self.base_url}{path}",
            timeout=self.timeout, sku=sku, **kwargs
        )
        return json_body(response, CHANNEL, sku)

    # ===================
    # LOCATION
    # ===================

    def location_id(self) -> str:
        """
        Id of the configured location, looked up once per client.

        Raises:
            ChannelUpdateError: Location not found (not_configured)
        """
        if self._location_id:
            return self._location_id

        data = self._call("GET", "/locations.json")
        wanted = self.location_name.lower()
        for location in data.get("locations", []):
            if str(location.get("name", "")).lower() == wanted:
                self._location_id = str(location["id"])
                logger.info("shopify_location_found", location_id=self._location_id)
                return self._location_id

        raise ChannelUpdateError(
            CHANNEL,
            "not_configured",
            f"Location '{self.location_name}' not found in Shopify"
        )

    # ===================
    # INVENTORY
    # ===================

    def get_available(self, inventory_item_id: str, sku: Optional[str] = None) -> Optional[int]:
        """Available quantity of an item at the configured location."""
        data = self._call(
            "GET",
            "/inventory_levels.json",
            sku=sku,
            params={
                "inventory_item_ids": gid_to_id(inventory_item_id),
                "location_ids": self.location_id(),
            }
        )
        levels = data.get("inventory_levels", [])
        if not levels:
            return None
        return levels[0].get("available")

    def set_available(self, inventory_item_id: str, available: int, sku: Optional[str] = None) -> None:
        """Set the available quantity of an item at the configured location."""
        self._call(
            "POST",
            "/inventory_levels/set.json",
            sku=sku,
            json={
                "location_id": self.location_id(),
                "inventory_item_id": gid_to_id(inventory_item_id),
                "available": available,
            }
        )

    # ===================
    # LOOKUPS
    # ===================

    def find_variant(self, sku: str) -> Optional[dict]:
        """
        Variant, product and inventory item ids for a SKU.

        Returns:
            {"variant_id", "product_id", "inventory_item_id"} or None
        """
        data = self._call(
            "POST",
            "/graphql.json",
            sku=sku,
            json={"query": VARIANT_BY_SKU_QUERY, "variables": {"query": f"sku:{sku}"}}
        )

        edges = (data.get("data") or {}).get("productVariants", {}).get("edges", [])
        for edge in edges:
            node = edge.get("node", {})
            if node.get("sku") == sku:
                return {
                    "variant_id": node.get("id"),
                    "product_id": (node.get("product") or {}).get("id"),
                    "inventory_item_id": (node.get("inventoryItem") or {}).get("id"),
                }
        return None
