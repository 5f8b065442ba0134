"""
Error taxonomy for cart sessions.

Token errors are absorbed by the session resolver (a bad token only resets
the cart). Mutation errors reach the client as 404s. StorageUnavailable is a
server error and is never retried inside a request.
"""


class CartSessionError(Exception):
    """Base class for every error raised by the cart session core."""


# Token verification
class TokenError(CartSessionError):
    pass


class MalformedToken(TokenError):
    pass


class BadSignature(TokenError):
    pass


class BadPayload(TokenError):
    pass


class TokenExpired(TokenError):
    pass


# Store
class StoreError(CartSessionError):
    pass


class SessionNotFound(StoreError):
    def __init__(self, cart_key: str, reason: str = "missing"):
        super().__init__(f"Cart session not found ({reason})")
        self.cart_key = cart_key
        self.reason = reason


class KeyCollision(StoreError):
    pass


class StorageUnavailable(StoreError):
    pass


# Mutations
class MutationError(CartSessionError):
    """
    Client-visible cart failure.

    `token` is filled in by the service layer so the HTTP response can
    still echo the session token the request ended up using.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.token: str | None = None


class ProductNotFound(MutationError):
    def __init__(self, product_id: int, message: str = "Product not found or invalid"):
        super().__init__(message)
        self.product_id = product_id


class ProductOutOfStock(ProductNotFound):
    def __init__(self, product_id: int):
        super().__init__(product_id, "Product is not purchasable")


class ItemNotFound(MutationError):
    def __init__(self, message: str = "Cart item not found"):
        super().__init__(message)


# Collaborators
class CatalogUnavailable(CartSessionError):
    pass


class PayloadCorrupt(CartSessionError, ValueError):
    """Stored cart payload cannot be decoded at all."""
