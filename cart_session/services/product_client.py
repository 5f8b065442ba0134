# cart_session/services/product_client.py
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Protocol

import requests
from requests import RequestException

from cart_session.domain.errors import CatalogUnavailable
from cart_session.utils.logging import get_logger
from cart_session.utils.retry import http_retry
from cart_session.utils.settings import PRODUCT_SERVICE_TIMEOUT, PRODUCT_SERVICE_URL

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProductSnapshot:
    """What the cart needs to know about a product right now."""
    product_id: int
    name: str
    price: Decimal
    exists: bool = True
    in_stock: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "ProductSnapshot":
        try:
            price = Decimal(str(data.get("price", "0")))
        except InvalidOperation:
            price = Decimal("0")
        return cls(
            product_id=int(data["id"]),
            name=str(data.get("name", "")),
            price=price,
            exists=bool(data.get("exists", True)),
            in_stock=bool(data.get("in_stock", True)),
        )


class Catalog(Protocol):
    def resolve_product(self, product_id: int) -> Optional[ProductSnapshot]:
        ...


class ProductClient:
    """HTTP client for the product service. Pricing and stock live there, not here."""

    def __init__(self, base_url: str | None = None, timeout: float = PRODUCT_SERVICE_TIMEOUT):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def fetch_product(self, product_id: int) -> Optional[dict]:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def resolve_product(self, product_id: int) -> Optional[ProductSnapshot]:
        try:
            data = self.fetch_product(product_id)
        except RequestException as e:
            logger.error(f"Product service failed for product {product_id}: {e}")
            raise CatalogUnavailable(f"Product service unavailable: {e}") from e

        if data is None:
            return None

        try:
            return ProductSnapshot.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogUnavailable(f"Unexpected product payload for {product_id}") from e
