# cart_session/domain/session.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from cart_session.domain.payload import Payload


@dataclass
class CartSession:
    """A cart row as seen by the rest of the service, plus the token in use."""
    cart_key: str
    payload: Payload = field(default_factory=dict)
    expiry: int = 0
    token: Optional[str] = None
    # True when this request created the session (new token for the client)
    issued: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class CleanupReport:
    expired_count: int = 0
    pruned_item_count: int = 0
    corrupt_count: int = 0

    def as_dict(self) -> dict:
        return {
            "expired_count": self.expired_count,
            "pruned_item_count": self.pruned_item_count,
            "corrupt_count": self.corrupt_count,
        }
