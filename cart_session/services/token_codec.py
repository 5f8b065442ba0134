# cart_session/services/token_codec.py
import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict

from cart_session.domain.errors import BadPayload, BadSignature, MalformedToken, TokenExpired
from cart_session.utils import settings
from cart_session.utils.logging import get_logger

logger = get_logger(__name__)

_HEADER = {"alg": "HS256", "typ": "JWT"}
_DEV_SECRET = "dev-insecure-cart-secret"


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(data: str) -> bytes:
    padding = -len(data) % 4
    return base64.urlsafe_b64decode(data + "=" * padding)


def _compact_json(value: Dict[str, Any]) -> bytes:
    return json.dumps(value, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class TokenConfig:
    secret: bytes
    issuer: str
    ttl: int = settings.CART_TTL_SECONDS


def build_token_config() -> TokenConfig:
    secret = settings.CART_TOKEN_SECRET
    if not secret:
        logger.warning("CART_TOKEN_SECRET is not set, using development secret")
        secret = _DEV_SECRET
    return TokenConfig(
        secret=secret.encode("utf-8"),
        issuer=settings.CART_TOKEN_ISSUER,
        ttl=settings.CART_TTL_SECONDS,
    )


class TokenCodec:
    """
    Signs and verifies compact HS256 cart tokens.

    Format: base64url(header) "." base64url(claims) "." base64url(signature),
    claims = {cart_key, iat, exp, iss}. Verification needs no store lookup.

    The embedded exp only bounds how long the signature is accepted. Whether
    the cart is still alive is decided by the stored row's sliding expiry.
    """

    def __init__(self, config: TokenConfig, clock: Callable[[], float] = time.time):
        self.config = config
        self.clock = clock

    def _sign(self, signing_input: str) -> str:
        digest = hmac.new(self.config.secret, signing_input.encode("utf-8"), hashlib.sha256).digest()
        return b64url_encode(digest)

    def issue(self, cart_key: str, ttl: int | None = None) -> str:
        ttl = self.config.ttl if ttl is None else ttl
        now = int(self.clock())

        claims = {
            "cart_key": cart_key,
            "iat": now,
            "exp": now + ttl,
            "iss": self.config.issuer,
        }

        h = b64url_encode(_compact_json(_HEADER))
        p = b64url_encode(_compact_json(claims))
        return f"{h}.{p}.{self._sign(f'{h}.{p}')}"

    def verify(self, token: str) -> Dict[str, Any]:
        if not token or token.count(".") != 2:
            raise MalformedToken("Malformed token")

        h, p, s = token.split(".")

        # constant time compare on the encoded form
        if not hmac.compare_digest(self._sign(f"{h}.{p}").encode("ascii"), s.encode("utf-8")):
            raise BadSignature("Invalid token signature")

        try:
            claims = json.loads(b64url_decode(p))
        except (binascii.Error, ValueError) as e:
            raise BadPayload("Invalid token payload") from e

        if not isinstance(claims, dict) or not claims.get("cart_key") or not isinstance(claims["cart_key"], str):
            raise BadPayload("Invalid token payload")

        exp = claims.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, int):
            raise BadPayload("Invalid token payload")

        if exp <= int(self.clock()):
            raise TokenExpired("Token expired")

        return claims
