# cart_session/services/session_resolver.py
from typing import Optional

from cart_session.domain.errors import SessionNotFound, TokenError
from cart_session.domain.session import CartSession
from cart_session.repos.cart_session_repo import CartSessionStore
from cart_session.services.token_codec import TokenCodec
from cart_session.utils.logging import get_logger, short_key

logger = get_logger(__name__)


class SessionResolver:
    """
    Reuse-or-create: the single way a request gets hold of its cart.

    - no token -> new session
    - token fails verification (any reason) -> new session
    - token ok but row gone/expired -> new session
    - otherwise the stored session, paired with the token the client sent

    A bad token never errors, it only resets the cart. Whenever a new
    session is created the client-visible token changes, so callers must
    echo `session.token` back on every response.
    """

    def __init__(self, codec: TokenCodec, store: CartSessionStore):
        self.codec = codec
        self.store = store

    def resolve(self, inbound_token: Optional[str]) -> CartSession:
        if not inbound_token:
            return self.store.create()

        try:
            claims = self.codec.verify(inbound_token)
        except TokenError as e:
            logger.info(f"Rejected cart token ({e.__class__.__name__}), starting a new cart")
            return self.store.create()

        try:
            session = self.store.load(claims["cart_key"])
        except SessionNotFound as e:
            logger.info(f"Cart {short_key(e.cart_key)} is {e.reason}, starting a new cart")
            return self.store.create()

        # keep the presented token, no churn on reads
        session.token = inbound_token
        return session
