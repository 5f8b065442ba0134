# cart_session/services/cart_service.py
import time
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from cart_session.domain.errors import CatalogUnavailable, MutationError, SessionNotFound, StorageUnavailable
from cart_session.domain.session import CartSession
from cart_session.repos.cart_session_repo import CartSessionStore
from cart_session.services.cart_mutations import CartMutationEngine, MutationResult, item_query
from cart_session.services.product_client import Catalog, ProductSnapshot
from cart_session.services.session_resolver import SessionResolver
from cart_session.services.token_codec import TokenCodec
from cart_session.utils.logging import get_logger, short_key

logger = get_logger(__name__)


class CartService:
    """
    Use cases for the token-addressed cart.
    Commands go resolve -> mutate (in memory) -> save (one write).
    The query only resolves, which may still create a fresh session.
    Payloads are reloaded on every request, nothing is cached in-process.
    """

    def __init__(
        self,
        db: Session,
        product_client: Catalog,
        codec: TokenCodec,
        clock: Callable[[], float] = time.time,
    ):
        self.store = CartSessionStore(db, codec, ttl=codec.config.ttl, clock=clock)
        self.resolver = SessionResolver(codec, self.store)
        self.product_client = product_client
        self.engine = CartMutationEngine(product_client)

    # =====================================================
    # QUERY
    # =====================================================
    def get_cart(self, token: Optional[str]) -> Dict[str, Any]:
        session = self._resolve(token)
        return self._cart_out(session)

    # =====================================================
    # COMMANDS
    # =====================================================
    def add_item(
        self,
        token: Optional[str],
        product_id: int,
        quantity: int = 1,
        variation_id: int = 0,
        options: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        session = self._resolve(token)
        result = self._apply(session, self.engine.add_item, product_id, quantity, variation_id, options)

        logger.info(f"Product {product_id} {result.outcome.value} in cart {short_key(session.cart_key)}")

        out = self._cart_out(session, "Product added to cart")
        out["created"] = result.first_line
        return out

    def remove_item(self, token: Optional[str], key: Optional[str] = None, product_id: Optional[int] = None):
        session = self._resolve(token)
        self._apply(session, lambda payload: self.engine.remove_item(payload, item_query(key, product_id)))
        return self._cart_out(session, "Item removed from cart")

    def increment_item(self, token: Optional[str], key: Optional[str] = None, product_id: Optional[int] = None):
        session = self._resolve(token)
        result = self._apply(session, lambda payload: self.engine.increment_item(payload, item_query(key, product_id)))
        quantity = result.payload[result.line_key].quantity
        return self._cart_out(session, f"Quantity increased to {quantity}")

    def decrement_item(self, token: Optional[str], key: Optional[str] = None, product_id: Optional[int] = None):
        session = self._resolve(token)
        self._apply(session, lambda payload: self.engine.decrement_item(payload, item_query(key, product_id)))
        return self._cart_out(session, "Quantity updated")

    def batch_update(self, token: Optional[str], updates: Mapping[str, Any]) -> Dict[str, Any]:
        session = self._resolve(token)
        self._apply(session, self.engine.batch_set_quantities, updates)
        return self._cart_out(session, "Cart quantities updated")

    def clear_cart(self, token: Optional[str]) -> Dict[str, Any]:
        session = self._resolve(token)
        self._apply(session, self.engine.clear)
        return self._cart_out(session, "Cart cleared")

    # =====================================================
    # HELPERS
    # =====================================================
    def _resolve(self, token: Optional[str]) -> CartSession:
        session = self.resolver.resolve(token)
        if session.issued and token:
            logger.info(f"Cart token replaced, client now on cart {short_key(session.cart_key)}")
        return session

    def _apply(self, session: CartSession, op: Callable[..., MutationResult], *args) -> MutationResult:
        try:
            result = op(session.payload, *args)
        except (MutationError, CatalogUnavailable) as e:
            # the session may be brand new, the client still needs its token
            e.token = session.token
            raise

        try:
            session.expiry = self.store.save(session.cart_key, result.payload)
        except (SessionNotFound, StorageUnavailable) as e:
            e.token = session.token
            raise
        session.payload = result.payload
        return result

    def _cart_out(self, session: CartSession, message: Optional[str] = None) -> Dict[str, Any]:
        """Light view of the cart, priced from the catalog at read time."""
        snapshots: Dict[int, Optional[ProductSnapshot]] = {}
        catalog_down = False
        items = []
        total = Decimal("0.00")

        for key, item in session.payload.items():
            if item.product_id not in snapshots and not catalog_down:
                try:
                    snapshots[item.product_id] = self.product_client.resolve_product(item.product_id)
                except CatalogUnavailable:
                    logger.warning("Catalog unavailable, showing cached prices")
                    catalog_down = True

            if catalog_down:
                name, price = "", item.unit_price
            else:
                snapshot = snapshots[item.product_id]
                if snapshot is None or not snapshot.exists:
                    # product gone, the reaper will prune the line
                    continue
                name, price = snapshot.name, snapshot.price

            line_total = price * item.quantity if price is not None else None
            if line_total is not None:
                total += line_total

            items.append({
                "key": key,
                "product_id": item.product_id,
                "variation_id": item.variation_id,
                "options": dict(item.options),
                "quantity": item.quantity,
                "name": name,
                "unit_price": price,
                "line_total": line_total,
            })

        return {
            "cart_key": session.cart_key,
            "token": session.token,
            "items": items,
            "items_count": len(items),
            "total_quantity": sum(i["quantity"] for i in items),
            "total": total,
            "expiry": session.expiry,
            "message": message,
        }
