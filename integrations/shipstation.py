"""
ShipStation client.

The fulfillment channel does not hold stock counts; each warehouse SKU's
product gets its bin list as warehouseLocation.
"""

from typing import Optional
import requests
import structlog

from config import settings
from exceptions import ChannelUpdateError
from integrations.http import request, json_body

logger = structlog.get_logger(__name__)

CHANNEL = "shipstation"
API_BASE = "https://ssapi.shipstation.com"
MAX_LOCATION_LENGTH = 100
OUT_OF_STOCK_LOCATION = "OutofStock"


def format_location(bins: list[str], max_length: int = MAX_LOCATION_LENGTH) -> str:
    """
    Comma-joined bin list for warehouseLocation.

    Truncated at a bin boundary so it fits max_length; "OutofStock" when
    there are no bins.
    """
    if not bins:
        return OUT_OF_STOCK_LOCATION

    location = ""
    for name in bins:
        candidate = f"{location},{name}" if location else name
        if len(candidate) > max_length:
            break
        location = candidate

    return location or bins[0][:max_length]


class ShipStationClient:
    """Product lookups and warehouseLocation updates."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        base_url: str = API_BASE,
        timeout: int = 10,
        http: Optional[requests.Session] = None
    ):
        self.api_key = api_key or settings.shipstation_api_key
        self.api_secret = api_secret or settings.shipstation_api_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()
        self.http.auth = (self.api_key or "", self.api_secret or "")
        self.http.headers.update({"Accept": "application/json"})

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_secret)

    def get_product(self, sku: str) -> dict:
        """
        Product record for a SKU.

        Raises:
            ChannelUpdateError: No product (not_found) or request failed
        """
        response = request(
            self.http, CHANNEL, "GET", f"{self.base_url}/products",
            timeout=self.timeout, sku=sku, params={"sku": sku}
        )
        products = json_body(response, CHANNEL, sku).get("products") or []
        if not products:
            raise ChannelUpdateError(CHANNEL, "not_found", f"No ShipStation product for SKU {sku}", {"sku": sku})
        return products[0]

    def set_location(self, sku: str, location: str) -> None:
        """PUT the full product back with a new warehouseLocation."""
        product = self.get_product(sku)
        request(
            self.http, CHANNEL, "PUT", f"{self.base_url}/products/{product['productId']}",
            timeout=self.timeout, sku=sku, json={**product, "warehouseLocation": location}
        )
