# Overview: Service-layer operations for stock; the only writer of Product.quantity.

from __future__ import annotations

from typing import Iterable

from flask import current_app

from ..extensions import db
from ..models import Product
from ..validation import InsufficientStockError, NotFoundError, ProductNotFoundError, validate_stock_reduction
from .concurrency import lock_for_update, run_with_retry
from .history_service import ACTION_STOCK_ADDED, ACTION_STOCK_REMOVED, append_history
"""
Stock Invariants (authoritative)

- Product.quantity is never negative (also a DB CHECK constraint).
- Every quantity change appends exactly one product_history row
  (stock_removed / stock_added) with the old and new quantity as plain
  scalars, in the same DB transaction.
- Check-then-write sequences lock the product rows first
  (SELECT ... FOR UPDATE, ascending id order) so two writers cannot both
  pass a stock check for the last unit.
- Insufficient stock is a hard error, never a clamp.
- Helpers below named *_locked / reserve / release do not commit; the calling
  operation owns the transaction.
"""


def lock_products(product_ids: Iterable[int], *, require_active: bool = True) -> dict[int, Product]:
    """
    Lock and load products by id, in ascending id order.

    Raises ProductNotFoundError for the first id that is missing (or, with
    require_active, soft-deleted).
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}

    rows = (
        lock_for_update(db.session.query(Product).filter(Product.id.in_(ids)))
        .order_by(Product.id.asc())
        .all()
    )
    products = {p.id: p for p in rows}

    for product_id in ids:
        product = products.get(product_id)
        if product is None or (require_active and product.is_deleted):
            raise ProductNotFoundError(product_id)
    return products


def ensure_available(product: Product, requested: int) -> None:
    if product.quantity < requested:
        raise InsufficientStockError(
            product_id=product.id,
            product_name=product.name,
            available=product.quantity,
            requested=requested,
        )


def reserve_stock(product: Product, quantity: int, *, note: str | None = None) -> Product:
    """Decrement a locked product's stock and log stock_removed. Does not commit."""
    ensure_available(product, quantity)

    old_quantity = product.quantity
    product.quantity = old_quantity - quantity

    append_history(
        product_id=product.id,
        action=ACTION_STOCK_REMOVED,
        field_name="quantity",
        old_value=old_quantity,
        new_value=product.quantity,
        note=note,
    )
    return product


def release_stock(product: Product, quantity: int, *, note: str | None = None) -> Product:
    """Increment a locked product's stock and log stock_added. Does not commit."""
    old_quantity = product.quantity
    product.quantity = old_quantity + quantity

    append_history(
        product_id=product.id,
        action=ACTION_STOCK_ADDED,
        field_name="quantity",
        old_value=old_quantity,
        new_value=product.quantity,
        note=note,
    )
    return product


def adjust_stock(*, product_id: int, reduce_by, note=None) -> dict:
    """
    Manual write-off (damage, shrinkage) independent of orders.

    Raises:
        ValidationError: reduce_by not a positive integer within limits, note too long
        NotFoundError: product missing or soft-deleted
        InsufficientStockError: reduce_by exceeds current stock
    """
    quantity, note = validate_stock_reduction(reduce_by, note)

    def _op():
        product = lock_for_update(
            db.session.query(Product).filter(Product.id == product_id, Product.deleted_at.is_(None))
        ).first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")

        reserve_stock(product, quantity, note=note)
        db.session.commit()

        current_app.logger.info(
            "Wrote off %d unit(s) of product %d, %d left", quantity, product.id, product.quantity
        )
        return product.to_dict()

    return run_with_retry(_op)
