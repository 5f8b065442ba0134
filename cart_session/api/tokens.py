# cart_session/api/tokens.py
from typing import Dict, Mapping, Optional

from fastapi import Request

from cart_session.utils.settings import CART_TOKEN_HEADER

# lookup order: primary header, alias, then standard bearer auth
TOKEN_HEADERS = (CART_TOKEN_HEADER, "Cart-Token", "Authorization")


def token_from_headers(headers: Mapping[str, str]) -> Optional[str]:
    lookup = {k.lower(): v for k, v in headers.items()}

    for name in TOKEN_HEADERS:
        value = (lookup.get(name.lower()) or "").strip()
        if not value:
            continue

        if value.lower().startswith("bearer "):
            return value[7:].strip() or None

        return value

    return None


def cart_token(request: Request) -> Optional[str]:
    return token_from_headers(request.headers)


def token_headers(token: Optional[str]) -> Dict[str, str]:
    return {CART_TOKEN_HEADER: token} if token else {}
