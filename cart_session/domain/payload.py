"""
Cart payload schema and the normalization applied at the storage boundary.

The stored form is a JSON object ``{line_key: line_item}``. Older rows may
hold a JSON array, WooCommerce-shaped items (``variation``, ``data``,
``line_total`` ...) or string quantities; everything is coerced into
``LineItem`` on the way in so the rest of the code only sees the strict shape.
"""

import hashlib
import json
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from cart_session.domain.errors import PayloadCorrupt
from cart_session.utils.logging import get_logger

logger = get_logger(__name__)


class LineItem(BaseModel):
    """One cart line: a product (+ variation/options) and a quantity."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    product_id: int = Field(..., gt=0)
    variation_id: int = Field(0, ge=0)
    options: Dict[str, str] = Field(default_factory=dict)
    quantity: int = Field(..., ge=1)
    # catalog price at the time the line was last added; display fallback only
    unit_price: Optional[Decimal] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_legacy(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "options" not in data and isinstance(data.get("variation"), dict):
            data["options"] = data["variation"]
        if isinstance(data.get("options"), dict):
            data["options"] = {str(k): str(v) for k, v in data["options"].items()}
        elif data.get("options") in (None, []):
            data["options"] = {}
        if data.get("variation_id") in (None, ""):
            data["variation_id"] = 0
        return data

    @property
    def line_key(self) -> str:
        return line_key_for(self.product_id, self.variation_id, self.options)


Payload = Dict[str, LineItem]


def line_key_for(product_id: int, variation_id: int = 0, options: Optional[Mapping[str, str]] = None) -> str:
    """Stable line identifier for a product + chosen options."""
    canonical = json.dumps(
        [int(product_id), int(variation_id or 0), sorted((options or {}).items())],
        separators=(",", ":"),
    )
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()


def normalize_payload(data: Any) -> Payload:
    """
    Coerce decoded JSON into a strict payload.

    Raises PayloadCorrupt when the top level is neither an object nor an
    array. Individual bad lines are dropped and logged.
    """
    if data is None:
        return {}
    if isinstance(data, dict):
        entries = list(data.values())
    elif isinstance(data, list):
        entries = data
    else:
        raise PayloadCorrupt(f"Unexpected payload type: {type(data).__name__}")

    payload: Payload = {}
    for raw in entries:
        if not isinstance(raw, dict):
            logger.warning("Dropping non-object cart line")
            continue

        quantity = raw.get("quantity", 1)
        try:
            quantity = int(quantity)
        except (TypeError, ValueError, OverflowError):
            logger.warning(f"Dropping cart line with bad quantity {quantity!r}")
            continue
        if quantity <= 0:
            continue

        try:
            item = LineItem.model_validate({**raw, "quantity": quantity})
        except ValidationError as e:
            logger.warning(f"Dropping invalid cart line: {e.error_count()} error(s)")
            continue

        key = item.line_key
        if key in payload:
            item = item.model_copy(update={"quantity": payload[key].quantity + item.quantity})
        payload[key] = item

    return payload


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-finite number {name} in payload")


def decode_payload(text: str | bytes | None) -> Payload:
    if text is None or text == "":
        return {}
    try:
        # NaN and Infinity are not JSON, a row holding them is corrupt
        data = json.loads(text, parse_constant=_reject_constant)
    except (TypeError, ValueError) as e:
        raise PayloadCorrupt(f"Payload is not valid JSON: {e}") from e
    return normalize_payload(data)


def encode_payload(payload: Mapping[str, LineItem]) -> str:
    return json.dumps(
        {key: item.model_dump(mode="json") for key, item in payload.items()},
        separators=(",", ":"),
    )
