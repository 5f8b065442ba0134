# cart_session/domain/schemas.py
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class AddItemIn(BaseModel):
    """Body for POST /cart/add. Accepts `id` or `product_id`."""

    id: Optional[int] = None
    product_id: Optional[int] = None
    quantity: int = Field(1, description="Non-positive values are treated as 1")
    variation_id: int = Field(0, ge=0)
    options: Dict[str, str] = Field(default_factory=dict)

    @property
    def target_id(self) -> int:
        return self.id or self.product_id or 0


class ItemRefIn(BaseModel):
    """Line reference: `key` (line key) first, `id` (product id) as fallback."""

    key: Optional[str] = None
    id: Optional[int] = None


class CartItemOut(BaseModel):
    key: str
    product_id: int
    variation_id: int = 0
    options: Dict[str, str] = Field(default_factory=dict)
    quantity: int
    name: str = ""
    unit_price: Optional[Decimal] = None
    line_total: Optional[Decimal] = None


class CartOut(BaseModel):
    cart_key: str
    token: str
    items: List[CartItemOut]
    items_count: int
    total_quantity: int
    total: Decimal
    expiry: int
    message: Optional[str] = None
