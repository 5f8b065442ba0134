"""
Cart mutations as pure functions over a payload.

Each operation takes the current ``{line_key: LineItem}`` mapping and returns
a MutationResult holding a new mapping; the input is never modified. Nothing
here touches storage, so an aborted request cannot leave a half-applied cart
behind. Product existence comes from the catalog; quantities and line
identity are decided here.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Union

from cart_session.domain.errors import ItemNotFound, ProductNotFound, ProductOutOfStock
from cart_session.domain.payload import LineItem, Payload, line_key_for
from cart_session.services.product_client import Catalog


class Outcome(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"
    CLEARED = "cleared"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class MutationResult:
    payload: Payload
    outcome: Outcome
    line_key: Optional[str] = None
    # add_item on an empty cart, drives 201 vs 200 upstream
    first_line: bool = False


@dataclass(frozen=True)
class ByKey:
    line_key: str


@dataclass(frozen=True)
class ByProduct:
    product_id: int


ItemQuery = Union[ByKey, ByProduct]


def item_query(key: Optional[str] = None, product_id: Optional[int] = None) -> ItemQuery:
    """Build a lookup from request fields: explicit line key wins over product id."""
    if key:
        return ByKey(key)
    if product_id is not None and product_id > 0:
        return ByProduct(product_id)
    raise ItemNotFound()


def find_line(payload: Mapping[str, LineItem], query: ItemQuery) -> str:
    if isinstance(query, ByKey):
        if query.line_key in payload:
            return query.line_key
    else:
        for key, item in payload.items():
            if item.product_id == query.product_id:
                return key
    raise ItemNotFound()


def add_item(
    payload: Mapping[str, LineItem],
    catalog: Catalog,
    product_id: int,
    quantity: int = 1,
    variation_id: int = 0,
    options: Optional[Mapping[str, str]] = None,
) -> MutationResult:
    snapshot = catalog.resolve_product(product_id)
    if snapshot is None or not snapshot.exists:
        raise ProductNotFound(product_id)
    if not snapshot.in_stock:
        raise ProductOutOfStock(product_id)

    if quantity <= 0:
        quantity = 1

    options = {str(k): str(v) for k, v in (options or {}).items()}
    key = line_key_for(product_id, variation_id, options)
    new_payload: Dict[str, LineItem] = dict(payload)
    existing = new_payload.get(key)

    if existing:
        new_payload[key] = existing.model_copy(
            update={"quantity": existing.quantity + quantity, "unit_price": snapshot.price}
        )
        outcome = Outcome.UPDATED
    else:
        new_payload[key] = LineItem(
            product_id=product_id,
            variation_id=variation_id,
            options=options,
            quantity=quantity,
            unit_price=snapshot.price,
        )
        outcome = Outcome.ADDED

    return MutationResult(new_payload, outcome, key, first_line=not payload)


def remove_item(payload: Mapping[str, LineItem], query: ItemQuery) -> MutationResult:
    key = find_line(payload, query)
    new_payload = {k: v for k, v in payload.items() if k != key}
    return MutationResult(new_payload, Outcome.REMOVED, key)


def increment_item(payload: Mapping[str, LineItem], query: ItemQuery) -> MutationResult:
    key = find_line(payload, query)
    new_payload = dict(payload)
    new_payload[key] = payload[key].model_copy(update={"quantity": payload[key].quantity + 1})
    return MutationResult(new_payload, Outcome.UPDATED, key)


def decrement_item(payload: Mapping[str, LineItem], query: ItemQuery) -> MutationResult:
    """-1 on a line; a line at quantity 1 is removed instead of going to 0."""
    key = find_line(payload, query)
    current = payload[key].quantity

    if current <= 1:
        return remove_item(payload, ByKey(key))

    new_payload = dict(payload)
    new_payload[key] = payload[key].model_copy(update={"quantity": current - 1})
    return MutationResult(new_payload, Outcome.UPDATED, key)


def batch_set_quantities(payload: Mapping[str, LineItem], updates: Mapping[str, object]) -> MutationResult:
    """
    Best-effort client sync. Unknown keys and non-numeric or non-finite
    values are skipped, quantities <= 0 become 1 (removal goes through
    remove_item).
    """
    new_payload = dict(payload)
    changed = False

    for key, qty in updates.items():
        if key not in new_payload:
            continue
        try:
            qty = int(qty)
        except (TypeError, ValueError, OverflowError):
            continue
        qty = 1 if qty <= 0 else qty
        if new_payload[key].quantity != qty:
            new_payload[key] = new_payload[key].model_copy(update={"quantity": qty})
            changed = True

    return MutationResult(new_payload, Outcome.UPDATED if changed else Outcome.UNCHANGED)


def clear(payload: Mapping[str, LineItem]) -> MutationResult:
    return MutationResult({}, Outcome.CLEARED)


class CartMutationEngine:
    """The mutation functions bound to one catalog."""

    def __init__(self, catalog: Catalog):
        self.catalog = catalog

    def add_item(self, payload, product_id: int, quantity: int = 1, variation_id: int = 0, options=None):
        return add_item(payload, self.catalog, product_id, quantity, variation_id, options)

    def remove_item(self, payload, query: ItemQuery):
        return remove_item(payload, query)

    def increment_item(self, payload, query: ItemQuery):
        return increment_item(payload, query)

    def decrement_item(self, payload, query: ItemQuery):
        return decrement_item(payload, query)

    def batch_set_quantities(self, payload, updates):
        return batch_set_quantities(payload, updates)

    def clear(self, payload):
        return clear(payload)
