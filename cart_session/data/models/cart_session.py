# cart_session/data/models/cart_session.py
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text

from cart_session.data.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class CartSessionModel(Base):
    __tablename__ = "cart_sessions"

    id = Column(Integer, primary_key=True)
    cart_key = Column(String(64), nullable=False, unique=True)

    # JSON object {line_key: line_item}
    payload = Column(Text, nullable=False, default="{}")
    # unix seconds, row is dead at or after this instant
    expiry = Column(BigInteger, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
