# Overview: Service-layer operations for products; create/edit, soft-delete lifecycle and change diffing.

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from ..extensions import db
from ..models import OrderItem, Product
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    drop_blank,
    enforce_rules_product,
    validate_payload,
)
from .concurrency import lock_for_update, run_with_retry
from .history_service import (
    ACTION_CREATED,
    ACTION_RESTORED,
    ACTION_UPDATED,
    SNAPSHOT_FIELDS,
    append_history,
    delete_for_product,
    product_snapshot,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(SNAPSHOT_FIELDS),
    required_on_create=frozenset({"name", "price"}),
)

NUMERIC_FIELDS = frozenset({"price", "cost_price", "quantity"})

RESTORED_NOTE = "Product restored"


def validate_product_input(payload: dict) -> dict:
    """
    Validate a full product payload (create and update share this).

    Returns every tracked field; absent optional fields come back as None and
    an absent quantity as 0.
    """
    patch = validate_payload(
        model=Product,
        payload=drop_blank(payload or {}, "quantity"),
        policy=PRODUCT_POLICY,
        partial=False,
    )
    enforce_rules_product(patch)

    values = {field: patch.get(field) for field in SNAPSHOT_FIELDS}
    if values["quantity"] is None:
        values["quantity"] = 0
    return values


def normalize_field_value(value: Any, numeric: bool):
    """
    Comparable form of a field value.

    None, "" and whitespace are all "absent". Numbers compare by value, so
    12, "12" and Decimal("12.00") are equal. Text compares trimmed.
    """
    if value is None:
        return None
    if isinstance(value, str) and value.strip() == "":
        return None
    if numeric:
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            return None
        return amount if amount.is_finite() else None
    return str(value).strip()


def changed_fields(old: dict, new: dict) -> list[str]:
    """Tracked fields whose normalized values differ, in snapshot order."""
    changed = []
    for field in SNAPSHOT_FIELDS:
        numeric = field in NUMERIC_FIELDS
        if normalize_field_value(old.get(field), numeric) != normalize_field_value(new.get(field), numeric):
            changed.append(field)
    return changed


def _active_query():
    return db.session.query(Product).filter(Product.deleted_at.is_(None))


def _deleted_query():
    return db.session.query(Product).filter(Product.deleted_at.isnot(None))


def list_products(*, deleted: bool = False) -> dict:
    """
    Active products newest-first, or with deleted=True the soft-deleted ones
    most recently deleted first.
    """
    if deleted:
        query = _deleted_query().order_by(Product.deleted_at.desc(), Product.id.desc())
    else:
        query = _active_query().order_by(Product.created_at.desc(), Product.id.desc())

    products = query.all()
    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
    }


def get_product(product_id: int, *, deleted: bool = False) -> dict:
    query = _deleted_query() if deleted else _active_query()
    product = query.filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError(f"{'Deleted product' if deleted else 'Product'} {product_id} not found")
    return product.to_dict()


def create_product(payload: dict) -> dict:
    """
    Create an active product and log a `created` snapshot.

    Raises:
        ValidationError: any field fails validation (nothing is written)
    """
    values = validate_product_input(payload)

    def _op():
        p = Product(**values)
        db.session.add(p)
        db.session.flush()  # ensure p.id exists before history append

        append_history(
            product_id=p.id,
            action=ACTION_CREATED,
            new_value=product_snapshot(values),
        )
        db.session.commit()
        return p.to_dict()

    return run_with_retry(_op)


def update_product(product_id: int, payload: dict) -> dict:
    """
    Replace a product's fields.

    One `updated` history entry (old and new snapshots, comma-joined changed
    field names) is written only when at least one field really changed.

    Raises:
        ValidationError: any field fails validation
        NotFoundError: product missing or soft-deleted
    """
    values = validate_product_input(payload)

    def _op():
        p = lock_for_update(_active_query().filter(Product.id == product_id)).first()
        if p is None:
            raise NotFoundError(f"Product {product_id} not found")

        old_snapshot = product_snapshot(p)
        changed = changed_fields({f: getattr(p, f) for f in SNAPSHOT_FIELDS}, values)
        if not changed:
            db.session.rollback()
            return p.to_dict()

        for field in changed:
            setattr(p, field, values[field])

        append_history(
            product_id=p.id,
            action=ACTION_UPDATED,
            field_name=",".join(changed),
            old_value=old_snapshot,
            new_value=product_snapshot(values),
        )
        db.session.commit()
        return p.to_dict()

    return run_with_retry(_op)


def soft_delete_product(product_id: int) -> None:
    """
    Hide a product from listings and order placement.

    Historical order items keep resolving it. No history entry is written.
    """
    def _op():
        p = lock_for_update(_active_query().filter(Product.id == product_id)).first()
        if p is None:
            raise NotFoundError(f"Product {product_id} not found")

        p.deleted_at = utcnow()
        db.session.commit()

    run_with_retry(_op)


def restore_product(product_id: int) -> dict:
    def _op():
        p = lock_for_update(_deleted_query().filter(Product.id == product_id)).first()
        if p is None:
            raise NotFoundError(f"Deleted product {product_id} not found")

        p.deleted_at = None
        append_history(product_id=p.id, action=ACTION_RESTORED, note=RESTORED_NOTE)
        db.session.commit()
        return p.to_dict()

    return run_with_retry(_op)


def permanently_delete_product(product_id: int) -> None:
    """
    Irreversibly remove a soft-deleted product and its history.

    Raises:
        NotFoundError: product missing or still active (soft-delete it first)
        ConflictError: order items still reference the product
    """
    def _op():
        p = lock_for_update(_deleted_query().filter(Product.id == product_id)).first()
        if p is None:
            raise NotFoundError(f"Deleted product {product_id} not found")

        referenced = db.session.query(OrderItem).filter(OrderItem.product_id == product_id).count()
        if referenced:
            raise ConflictError(
                f"Product {product_id} is referenced by {referenced} order item(s) and cannot be permanently deleted"
            )

        delete_for_product(product_id)
        db.session.delete(p)
        db.session.commit()

    run_with_retry(_op)
