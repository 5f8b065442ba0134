# cart_session/repos/cart_session_repo.py
import secrets
import string
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cart_session.data.models.cart_session import CartSessionModel
from cart_session.domain.errors import (
    CatalogUnavailable,
    KeyCollision,
    PayloadCorrupt,
    SessionNotFound,
    StorageUnavailable,
)
from cart_session.domain.payload import LineItem, decode_payload, encode_payload
from cart_session.domain.session import CartSession, CleanupReport
from cart_session.services.product_client import Catalog
from cart_session.services.token_codec import TokenCodec
from cart_session.utils.logging import get_logger, short_key
from cart_session.utils.settings import CART_GRACE_TTL_SECONDS, CART_TTL_SECONDS

logger = get_logger(__name__)

_KEY_ALPHABET = string.ascii_letters + string.digits


def generate_cart_key() -> str:
    """Random cart id (not a token)."""
    return "ck_" + "".join(secrets.choice(_KEY_ALPHABET) for _ in range(40))


class CartSessionStore:
    """
    Durable cart storage, one row per cart_key.

    - create / load / save / delete for the request path
    - cleanup for the periodic reaper (needs no codec)

    Writes replace the whole payload in a single UPDATE. There is no row
    version check, so two concurrent saves on the same key are
    last-writer-wins. A conditional write on a version column would be the
    place to harden this if carts ever get shared between devices.
    """

    def __init__(
        self,
        db: Session,
        codec: Optional[TokenCodec] = None,
        ttl: int = CART_TTL_SECONDS,
        grace_ttl: int = CART_GRACE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.codec = codec
        self.ttl = ttl
        self.grace_ttl = grace_ttl
        self.clock = clock

    def _now(self) -> int:
        return int(self.clock())

    @contextmanager
    def _storage(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Cart store {action} failed: {e.__class__.__name__}: {e}")
            raise StorageUnavailable(f"Cart storage unavailable ({action})") from e

    # =====================================================
    # REQUEST PATH
    # =====================================================
    def create(self) -> CartSession:
        if self.codec is None:
            raise RuntimeError("CartSessionStore needs a TokenCodec to create sessions")
        now = self._now()
        expiry = now + self.ttl

        for attempt in (1, 2):
            cart_key = generate_cart_key()
            try:
                row = self._insert(cart_key, expiry)
            except KeyCollision:
                if attempt == 2:
                    raise
                logger.warning("Cart key collision on insert, retrying with a new key")
                continue

            logger.info(f"Created cart session {short_key(cart_key)}")
            return CartSession(
                cart_key=cart_key,
                payload={},
                expiry=expiry,
                token=self.codec.issue(cart_key, self.ttl),
                issued=True,
                created_at=row.created_at,
                updated_at=row.updated_at,
            )

    def _insert(self, cart_key: str, expiry: int) -> CartSessionModel:
        row = CartSessionModel(cart_key=cart_key, payload=encode_payload({}), expiry=expiry)
        with self._storage("create"):
            try:
                self.db.add(row)
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                raise KeyCollision(f"Cart key already exists: {short_key(cart_key)}") from e
        return row

    def load(self, cart_key: str) -> CartSession:
        """
        Fetch a live session. Expired and undecodable rows read as missing;
        they are left in place for the reaper.
        """
        with self._storage("load"):
            row = self.db.execute(
                select(
                    CartSessionModel.cart_key,
                    CartSessionModel.payload,
                    CartSessionModel.expiry,
                    CartSessionModel.created_at,
                    CartSessionModel.updated_at,
                ).where(CartSessionModel.cart_key == cart_key)
            ).one_or_none()

        if row is None:
            logger.info(f"No session found for key={short_key(cart_key)}")
            raise SessionNotFound(cart_key, "missing")

        if row.expiry <= self._now():
            logger.info(f"Session expired for key={short_key(cart_key)}")
            raise SessionNotFound(cart_key, "expired")

        try:
            payload = decode_payload(row.payload)
        except PayloadCorrupt as e:
            logger.warning(f"Unreadable payload for key={short_key(cart_key)}: {e}")
            raise SessionNotFound(cart_key, "corrupt") from e

        return CartSession(
            cart_key=row.cart_key,
            payload=payload,
            expiry=row.expiry,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def save(self, cart_key: str, payload: Mapping[str, LineItem], extend_ttl: bool = True) -> int:
        """Overwrite the payload and slide the expiry. Returns the new expiry."""
        now = self._now()
        expiry = now + (self.ttl if extend_ttl else self.grace_ttl)

        with self._storage("save"):
            result = self.db.execute(
                update(CartSessionModel)
                .where(CartSessionModel.cart_key == cart_key)
                .values(
                    payload=encode_payload(payload),
                    expiry=expiry,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            self.db.commit()

        if result.rowcount == 0:
            raise SessionNotFound(cart_key, "missing")

        return expiry

    def delete(self, cart_key: str) -> bool:
        """Drop a cart (checkout handoff). Deleting a missing key is a no-op."""
        with self._storage("delete"):
            result = self.db.execute(
                delete(CartSessionModel)
                .where(CartSessionModel.cart_key == cart_key)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()

        deleted = result.rowcount > 0
        if deleted:
            logger.info(f"Deleted cart session {short_key(cart_key)}")
        return deleted

    # =====================================================
    # MAINTENANCE
    # =====================================================
    def cleanup(self, catalog: Catalog) -> CleanupReport:
        """
        Reaper pass:
        1) delete expired rows
        2) delete rows whose payload cannot be decoded
        3) drop lines pointing at products the catalog no longer knows

        Steps 2 and 3 only touch a row if its payload is still the text we
        read, so a save that lands mid-sweep wins over the sweep.
        """
        now = self._now()
        report = CleanupReport()

        with self._storage("cleanup"):
            result = self.db.execute(
                delete(CartSessionModel)
                .where(CartSessionModel.expiry < now)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            report.expired_count = result.rowcount or 0

            rows = self.db.execute(select(CartSessionModel.cart_key, CartSessionModel.payload)).all()

        missing: Dict[int, bool] = {}

        for cart_key, raw in rows:
            try:
                payload = decode_payload(raw)
            except PayloadCorrupt:
                if self._delete_if_unchanged(cart_key, raw):
                    report.corrupt_count += 1
                continue

            kept = {
                key: item for key, item in payload.items()
                if not self._product_missing(catalog, item.product_id, missing)
            }
            pruned = len(payload) - len(kept)
            new_raw = encode_payload(kept)

            if new_raw != raw and self._rewrite_if_unchanged(cart_key, raw, new_raw):
                report.pruned_item_count += pruned

        logger.info(
            f"Cleanup completed - expired: {report.expired_count}, "
            f"broken: {report.corrupt_count}, missing_products: {report.pruned_item_count}"
        )
        return report

    def _product_missing(self, catalog: Catalog, product_id: int, memo: Dict[int, bool]) -> bool:
        if product_id not in memo:
            try:
                snapshot = catalog.resolve_product(product_id)
                memo[product_id] = snapshot is None or not snapshot.exists
            except CatalogUnavailable as e:
                # unknown is not missing, keep the line until a later run
                logger.warning(f"Catalog unavailable for product {product_id}, keeping line: {e}")
                memo[product_id] = False
        return memo[product_id]

    def _delete_if_unchanged(self, cart_key: str, raw: str) -> bool:
        with self._storage("cleanup"):
            result = self.db.execute(
                delete(CartSessionModel)
                .where(CartSessionModel.cart_key == cart_key, CartSessionModel.payload == raw)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        return result.rowcount > 0

    def _rewrite_if_unchanged(self, cart_key: str, raw: str, new_raw: str) -> bool:
        with self._storage("cleanup"):
            result = self.db.execute(
                update(CartSessionModel)
                .where(CartSessionModel.cart_key == cart_key, CartSessionModel.payload == raw)
                .values(payload=new_raw, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        return result.rowcount > 0
