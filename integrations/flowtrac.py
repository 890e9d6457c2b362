"""
Flowtrac warehouse client.

Device-login handshake (badge + PIN -> flow_auth cookie), product listing
to resolve product ids, and per-product bin queries. Only bins that are
flagged available, in the configured warehouse and not expired count.
"""

from datetime import date, datetime
from typing import Iterable, Optional
import requests
import structlog

from config import settings
from models.inventory import WarehouseQuantity
from exceptions import WarehouseFetchError

logger = structlog.get_logger(__name__)


def _is_expired(value: Optional[str], today: date) -> bool:
    if not value:
        return False
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date() < today
    except ValueError:
        logger.debug("bin_expiration_unparseable", value=value)
        return False


def summarize_bins(
    bins: list[dict],
    warehouse: str,
    today: Optional[date] = None
) -> tuple[int, dict[str, int]]:
    """
    Available quantity and per-bin breakdown.

    Quantities are summed per bin; bins that end up at zero are dropped.

    Returns:
        (total, {bin: quantity})
    """
    today = today or date.today()
    breakdown: dict[str, int] = {}

    for b in bins:
        if b.get("include_in_available") != "Yes":
            continue
        if b.get("warehouse") != warehouse:
            continue
        if _is_expired(b.get("expiration_date"), today):
            continue
        try:
            quantity = int(float(b.get("quantity") or 0))
        except (TypeError, ValueError):
            quantity = 0
        name = b.get("bin") or "UNKNOWN"
        breakdown[name] = breakdown.get(name, 0) + quantity

    breakdown = {name: q for name, q in breakdown.items() if q > 0}
    return sum(breakdown.values()), breakdown


class FlowtracClient:
    """
    Warehouse inventory client.

    One client per sync invocation; the auth cookie and the product-id
    index live only as long as the instance.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        badge: Optional[str] = None,
        pin: Optional[str] = None,
        warehouse: Optional[str] = None,
        timeout: Optional[int] = None,
        http: Optional[requests.Session] = None
    ):
        self.base_url = (base_url or settings.flowtrac_api_url or "").rstrip("/")
        self.badge = badge or settings.flowtrac_badge
        self.pin = pin or settings.flowtrac_pin
        self.warehouse = warehouse or settings.flowtrac_warehouse
        self.timeout = timeout or settings.flowtrac_timeout_seconds
        self.http = http or requests.Session()
        self._auth_cookie: Optional[str] = None
        self._product_ids: Optional[dict[str, str]] = None

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.badge and self.pin)

    # ===================
    # AUTH
    # ===================

    def login(self) -> str:
        """
        Device login.

        Returns:
            flow_auth cookie value ("flow_auth=...")

        Raises:
            WarehouseFetchError: Not configured, rejected, or no cookie
        """
        if self._auth_cookie:
            return self._auth_cookie

        if not self.configured:
            raise WarehouseFetchError("Warehouse API is not configured")

        try:
            response = self.http.post(
                f"{self.base_url}/device-login/",
                data={"badge": self.badge, "pin": self.pin},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error("flowtrac_login_failed", error=str(e))
            raise WarehouseFetchError(f"Warehouse login failed: {e}")

        token = response.cookies.get("flow_auth")
        if not token:
            raise WarehouseFetchError("No flow_auth cookie from warehouse login")

        self._auth_cookie = f"flow_auth={token}"
        logger.info("flowtrac_logged_in")
        return self._auth_cookie

    def _get(self, path: str, params: Optional[dict] = None):
        response = self.http.get(
            f"{self.base_url}{path}",
            headers={"Cookie": self.login()},
            params=params,
            timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()

    # ===================
    # PRODUCTS
    # ===================

    def list_products(self) -> list[dict]:
        """
        All warehouse products.

        Raises:
            WarehouseFetchError: Listing failed
        """
        try:
            products = self._get("/products")
        except requests.exceptions.RequestException as e:
            logger.error("flowtrac_products_failed", error=str(e))
            raise WarehouseFetchError(f"Warehouse product listing failed: {e}")

        logger.info("flowtrac_products_listed", count=len(products))
        return products

    def product_ids(self) -> dict[str, str]:
        """SKU (product name or barcode) -> product_id, cached per instance."""
        if self._product_ids is None:
            index = {}
            for p in self.list_products():
                pid = p.get("product_id")
                if not pid:
                    continue
                if p.get("product"):
                    index[p["product"]] = str(pid)
                if p.get("barcode"):
                    index.setdefault(p["barcode"], str(pid))
            self._product_ids = index
        return self._product_ids

    # ===================
    # INVENTORY
    # ===================

    def get_bins(self, product_id: str) -> list[dict]:
        """Bin rows for one product."""
        return self._get("/product-warehouse-bins", params={"product_id": product_id})

    def fetch_inventory(
        self,
        skus: Iterable[str],
        known_product_ids: Optional[dict[str, str]] = None
    ) -> dict[str, WarehouseQuantity]:
        """
        Available quantity per SKU.

        SKUs the warehouse does not know, or whose bin query fails, are
        left out of the result.

        Args:
            skus: Warehouse SKUs of one batch
            known_product_ids: Product ids already stored in the mapping

        Returns:
            SKU -> WarehouseQuantity for every SKU found

        Raises:
            WarehouseFetchError: Login or product listing failed
        """
        skus = list(skus)
        known = known_product_ids or {}
        self.login()

        if any(sku not in known for sku in skus):
            index = self.product_ids()
        else:
            index = {}

        today = date.today()
        result: dict[str, WarehouseQuantity] = {}
        missing = []

        for sku in skus:
            product_id = known.get(sku) or index.get(sku)
            if not product_id:
                missing.append(sku)
                continue

            try:
                bins = self.get_bins(product_id)
            except requests.exceptions.RequestException as e:
                logger.warning("flowtrac_bins_failed", sku=sku, error=str(e))
                missing.append(sku)
                continue

            total, breakdown = summarize_bins(bins, self.warehouse, today)
            result[sku] = WarehouseQuantity(
                sku=sku,
                quantity=total,
                bins=list(breakdown),
                bin_breakdown=breakdown,
            )

        logger.info(
            "flowtrac_inventory_fetched",
            requested=len(skus),
            found=len(result),
            missing=len(missing)
        )
        return result
