"""
Amazon Selling Partner API client.

Quantities are written with a Listings Items PATCH on the
fulfillment_availability attribute. Access tokens come from Login with
Amazon using the stored refresh token.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import threading
import requests
import structlog

from config import settings
from exceptions import ChannelUpdateError
from integrations.http import request, json_body

logger = structlog.get_logger(__name__)

CHANNEL = "amazon"
LWA_TOKEN_URL = "https://api.amazon.com/auth/o2/token"
LISTINGS_PATH = "/listings/2021-08-01/items"


class AmazonClient:
    """Listings quantity updates for one seller and marketplace."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        refresh_token: Optional[str] = None,
        seller_id: Optional[str] = None,
        marketplace_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: int = 10,
        http: Optional[requests.Session] = None
    ):
        self.client_id = client_id or settings.amazon_client_id
        self.client_secret = client_secret or settings.amazon_client_secret
        self.refresh_token = refresh_token or settings.amazon_refresh_token
        self.seller_id = seller_id or settings.amazon_seller_id
        self.marketplace_id = marketplace_id or settings.amazon_marketplace_id
        self.endpoint = (endpoint or settings.amazon_endpoint).rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()
        self._token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._token_lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token and self.seller_id)

    # ===================
    # AUTH
    # ===================

    def access_token(self) -> str:
        """LWA access token, refreshed a minute before expiry."""
        with self._token_lock:
            now = datetime.now(timezone.utc)
            if self._token and self._token_expires_at and self._token_expires_at > now:
                return self._token

            response = request(
                self.http,
                CHANNEL,
                "POST",
                LWA_TOKEN_URL,
                timeout=self.timeout,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self.refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                }
            )
            data = json_body(response, CHANNEL)
            self._token = data["access_token"]
            self._token_expires_at = now + timedelta(seconds=int(data.get("expires_in", 3600)) - 60)
            logger.info("amazon_token_refreshed")
            return self._token

    def _headers(self) -> dict:
        return {
            "x-amz-access-token": self.access_token(),
            "Content-Type": "application/json",
        }

    def _item_url(self, sku: str) -> str:
        return f"{self.endpoint}{LISTINGS_PATH}/{self.seller_id}/{requests.utils.quote(sku, safe='')}"

    # ===================
    # INVENTORY
    # ===================

    def get_quantity(self, sku: str) -> Optional[int]:
        """Current fulfillment quantity of a listing."""
        response = request(
            self.http,
            CHANNEL,
            "GET",
            self._item_url(sku),
            timeout=self.timeout,
            sku=sku,
            headers=self._headers(),
            params={
                "marketplaceIds": self.marketplace_id,
                "includedData": "fulfillmentAvailability",
            }
        )
        availability = json_body(response, CHANNEL, sku).get("fulfillmentAvailability") or []
        for entry in availability:
            if entry.get("fulfillmentChannelCode") == "DEFAULT":
                return entry.get("quantity")
        return None

    def set_quantity(self, sku: str, quantity: int) -> None:
        """
        Set merchant-fulfilled quantity of a listing.

        Raises:
            ChannelUpdateError: Request failed or the listing rejected it
        """
        response = request(
            self.http,
            CHANNEL,
            "PATCH",
            self._item_url(sku),
            timeout=self.timeout,
            sku=sku,
            headers=self._headers(),
            params={"marketplaceIds": self.marketplace_id},
            json={
                "productType": "PRODUCT",
                "patches": [{
                    "op": "replace",
                    "path": "/attributes/fulfillment_availability",
                    "value": [{
                        "fulfillment_channel_code": "DEFAULT",
                        "quantity": quantity,
                    }],
                }],
            }
        )

        body = json_body(response, CHANNEL, sku)
        if body.get("status") == "INVALID":
            issues = body.get("issues", [])
            raise ChannelUpdateError(
                CHANNEL,
                "validation",
                f"Listing update rejected: {issues[0].get('message') if issues else 'INVALID'}",
                {"sku": sku, "issues": issues}
            )
