# Overview: Service-layer operations for product history; append and read primitives only.

from __future__ import annotations

import json
from typing import Any, Optional, Union

from ..extensions import db
from ..models import Product, ProductHistory
from ..money import money_str
from ..validation import NotFoundError
"""
Product History Invariants (authoritative)

- Append-only audit timeline per product. Rows are never updated; they are
  deleted only when their product is permanently deleted.
- No domain/business logic here. Callers append inside the same DB transaction
  as the change they record.
- Value shape is keyed by action:
    created / updated            -> JSON snapshot object (SNAPSHOT_ACTIONS)
    stock_removed / stock_added  -> plain stringified scalar
    restored                     -> no values, note only
- Reads are newest-first (created_at DESC, id DESC).
"""

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_STOCK_REMOVED = "stock_removed"
ACTION_STOCK_ADDED = "stock_added"
ACTION_RESTORED = "restored"

HISTORY_ACTIONS = frozenset({
    ACTION_CREATED,
    ACTION_UPDATED,
    ACTION_STOCK_REMOVED,
    ACTION_STOCK_ADDED,
    ACTION_RESTORED,
})
SNAPSHOT_ACTIONS = frozenset({ACTION_CREATED, ACTION_UPDATED})

SNAPSHOT_FIELDS = ("name", "price", "cost_price", "quantity", "description", "barcode", "photo_url")

HistoryPayload = Union[str, dict, None]


def product_snapshot(values: Union[Product, dict]) -> dict:
    """
    JSON-ready snapshot of the tracked product fields.

    Accepts a Product row or a validated patch dict; money renders as "20.00".
    """
    if isinstance(values, Product):
        values = {f: getattr(values, f) for f in SNAPSHOT_FIELDS}
    return {
        "name": values.get("name"),
        "price": money_str(values.get("price")),
        "cost_price": money_str(values.get("cost_price")),
        "quantity": values.get("quantity") or 0,
        "description": values.get("description"),
        "barcode": values.get("barcode"),
        "photo_url": values.get("photo_url"),
    }


def encode_history_value(action: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if action in SNAPSHOT_ACTIONS:
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return str(value)


def decode_history_value(action: str, raw: Optional[str]) -> HistoryPayload:
    """
    Decode a stored old_value/new_value.

    Snapshot actions yield a dict; everything else yields the scalar string.
    Rows written by older code may hold non-JSON text under a snapshot
    action; those come back unchanged.
    """
    if raw is None:
        return None
    if action in SNAPSHOT_ACTIONS:
        try:
            decoded = json.loads(raw)
        except ValueError:
            return raw
        return decoded if isinstance(decoded, dict) else raw
    return raw


def append_history(
    *,
    product_id: int,
    action: str,
    field_name: Optional[str] = None,
    old_value: Any = None,
    new_value: Any = None,
    note: Optional[str] = None,
) -> ProductHistory:
    """
    Append-only history entry. Does not commit.

    Snapshot actions take dicts (serialized to JSON); stock actions take
    scalars (stringified).
    """
    if action not in HISTORY_ACTIONS:
        raise ValueError(f"Unknown history action: {action}")

    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")

    entry = ProductHistory(
        product_id=product_id,
        action=action,
        field_name=field_name,
        old_value=encode_history_value(action, old_value),
        new_value=encode_history_value(action, new_value),
        note=note,
    )
    db.session.add(entry)
    return entry


def list_for_product(product_id: int) -> list[dict]:
    """Newest-first timeline; works for active and soft-deleted products."""
    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")

    entries = (
        db.session.query(ProductHistory)
        .filter(ProductHistory.product_id == product_id)
        .order_by(ProductHistory.created_at.desc(), ProductHistory.id.desc())
        .all()
    )
    return [e.to_dict() for e in entries]


def delete_for_product(product_id: int) -> int:
    """Only used by permanent product deletion. Does not commit."""
    return (
        db.session.query(ProductHistory)
        .filter(ProductHistory.product_id == product_id)
        .delete(synchronize_session=False)
    )
