# Overview: Service-layer operations for orders; multi-item placement and cancellation stock reconciliation.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import ORDER_STATUSES, STATUS_CANCELLED, STATUS_PENDING, Order, OrderItem, Product
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    drop_blank,
    enforce_rules_order_customer,
    enforce_rules_order_item,
    validate_payload,
)
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import ensure_available, lock_products, release_stock, reserve_stock
"""
Order / Stock Reconciliation Invariants (authoritative)

- An order is created with >= 1 item, no product twice, and every item's stock
  checked before anything is written. Order row, item rows and stock
  decrements commit together or not at all.
- unit_price is copied from the caller's payload into the item and never
  re-derived from the live product.
- Crossing into `cancelled` releases every item's stock exactly once.
- Crossing out of `cancelled` re-checks every item against current stock and
  re-reserves all of them, or rejects the whole transition (order stays
  cancelled).
- Moves between non-cancelled statuses, and "moves" to the current status,
  never touch stock.
- Deleting a non-cancelled order releases its stock first; deleting a
  cancelled order does not (already released).
"""

CUSTOMER_FIELDS = frozenset({"fb_name", "recipient_name", "phone", "address", "comment"})

ORDER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=CUSTOMER_FIELDS,
    required_on_create=frozenset({"fb_name", "recipient_name", "phone", "address"}),
)

ORDER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=CUSTOMER_FIELDS | {"status"},
)

ORDER_ITEM_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"product_id", "quantity", "unit_price", "courier_price"}),
    required_on_create=frozenset({"product_id", "quantity", "unit_price"}),
)


def reservation_note(order_id: int) -> str:
    return f"Order #{order_id}"


def cancellation_note(order_id: int) -> str:
    return f"Order #{order_id} cancelled"


def uncancel_note(order_id: int) -> str:
    return f"Order #{order_id} restored from cancellation"


def deletion_note(order_id: int) -> str:
    return f"Order #{order_id} deleted"


def validate_status(status) -> str:
    if isinstance(status, str):
        status = status.strip()
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status: {status}. Must be one of: {', '.join(ORDER_STATUSES)}",
            field="status",
        )
    return status


def validate_order_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Order must contain at least one item", field="items")

    cleaned = []
    seen: set[int] = set()
    for index, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {index} is invalid", field="items")
        try:
            patch = validate_payload(
                model=OrderItem,
                payload=drop_blank(raw, "courier_price"),
                policy=ORDER_ITEM_POLICY,
                partial=False,
            )
            enforce_rules_order_item(patch)
        except ValidationError as e:
            raise ValidationError(f"Item {index}: {e}", field=e.field) from e

        if patch["product_id"] in seen:
            raise ValidationError(
                f"Product {patch['product_id']} appears more than once in the order",
                field="items",
            )
        seen.add(patch["product_id"])

        patch.setdefault("courier_price", Decimal("0"))
        cleaned.append(patch)
    return cleaned


def _load_order(order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter(Order.id == order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def _stocked_items(order: Order) -> list[OrderItem]:
    return [item for item in order.items if item.product_id is not None]


def _release_order_stock(order: Order, note: str) -> None:
    items = _stocked_items(order)
    products = lock_products((i.product_id for i in items), require_active=False)
    for item in items:
        release_stock(products[item.product_id], item.quantity, note=note)


def _reserve_order_stock(order: Order, note: str) -> None:
    items = _stocked_items(order)
    products = lock_products((i.product_id for i in items), require_active=False)
    # Check every line before touching any of them
    for item in items:
        ensure_available(products[item.product_id], item.quantity)
    for item in items:
        reserve_stock(products[item.product_id], item.quantity, note=note)


def _apply_status_change(order: Order, new_status: str) -> None:
    """Move order to new_status with its stock side effects. Does not commit."""
    old_status = order.status
    if new_status == old_status:
        return

    if new_status == STATUS_CANCELLED:
        _release_order_stock(order, cancellation_note(order.id))
        current_app.logger.info("Order %d cancelled, stock released", order.id)
    elif old_status == STATUS_CANCELLED:
        _reserve_order_stock(order, uncancel_note(order.id))
        current_app.logger.info("Order %d restored from cancellation, stock reserved", order.id)

    order.status = new_status


def create_order(customer: dict, items: list) -> dict:
    """
    Place an order and reserve its stock.

    Raises:
        ValidationError: customer fields, empty items, duplicate product, bad item values
        ProductNotFoundError: an item references a missing or soft-deleted product
        InsufficientStockError: an item asks for more than is on hand (nothing written)
    """
    customer_patch = validate_payload(
        model=Order, payload=customer or {}, policy=ORDER_CREATE_POLICY, partial=False
    )
    enforce_rules_order_customer(customer_patch)
    item_patches = validate_order_items(items)

    def _op():
        products = lock_products(p["product_id"] for p in item_patches)
        for patch in item_patches:
            ensure_available(products[patch["product_id"]], patch["quantity"])

        order = Order(status=STATUS_PENDING, **customer_patch)
        db.session.add(order)
        db.session.flush()  # ensure order.id exists for item rows and history notes

        for patch in item_patches:
            order.items.append(OrderItem(**patch))
            reserve_stock(products[patch["product_id"]], patch["quantity"], note=reservation_note(order.id))

        db.session.commit()
        current_app.logger.info("Order %d created with %d item(s)", order.id, len(item_patches))
        return order.to_dict()

    return run_with_retry(_op)


def update_order_fields(order_id: int, payload: dict) -> dict:
    """
    Update customer-facing fields and, optionally, status.

    A bundled status change has the same stock effects as set_order_status.
    Items and prices are never edited here.
    """
    patch = validate_payload(model=Order, payload=payload or {}, policy=ORDER_UPDATE_POLICY, partial=True)
    enforce_rules_order_customer(patch)
    new_status = patch.pop("status", None)
    if new_status is not None:
        new_status = validate_status(new_status)

    def _op():
        order = _load_order(order_id, lock=True)
        for key, value in patch.items():
            setattr(order, key, value)
        if new_status is not None:
            _apply_status_change(order, new_status)
        db.session.commit()
        return order.to_dict()

    return run_with_retry(_op)


def set_order_status(order_id: int, status: str) -> dict:
    """
    Status state machine: any status may follow any other.

    Raises:
        ValidationError: unknown status
        NotFoundError: order missing
        InsufficientStockError: leaving `cancelled` while an item is under-stocked
    """
    status = validate_status(status)

    def _op():
        order = _load_order(order_id, lock=True)
        _apply_status_change(order, status)
        db.session.commit()
        return order.to_dict()

    return run_with_retry(_op)


def delete_order(order_id: int) -> None:
    def _op():
        order = _load_order(order_id, lock=True)
        if order.status != STATUS_CANCELLED:
            _release_order_stock(order, deletion_note(order.id))

        db.session.delete(order)
        db.session.commit()
        current_app.logger.info("Order %d deleted", order_id)

    run_with_retry(_op)


def get_order(order_id: int) -> dict:
    return _load_order(order_id).to_dict()


def list_orders(*, status: str | None = None) -> dict:
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == validate_status(status))
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).all()
    return {
        "items": [o.to_dict() for o in orders],
        "count": len(orders),
    }


def list_orders_for_product(product_id: int) -> dict:
    """Orders with a line for the product, newest-first (soft-deleted products included)."""
    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")

    orders = (
        db.session.query(Order)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .filter(OrderItem.product_id == product_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return {
        "items": [o.to_dict() for o in orders],
        "count": len(orders),
    }
