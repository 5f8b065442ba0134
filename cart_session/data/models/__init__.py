# import all models so SQLAlchemy registers them in Base.metadata
from cart_session.data.models.cart_session import CartSessionModel

__all__ = ["CartSessionModel"]
