# Overview: Flask API routes for products, stock write-offs and history; parses input and returns JSON responses.

# backend/shopledger/routes/products.py
"""
Product management routes.

Callers are assumed authenticated upstream; these routes only translate HTTP
to products_service / inventory_service / history_service calls.
"""
from flask import Blueprint, current_app, request

from ..services import history_service, inventory_service, orders_service, products_service
from ..validation import ConflictError, InsufficientStockError, NotFoundError, ValidationError

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products.

    Query params:
    - deleted: "true" to list soft-deleted products instead of active ones
    """
    deleted = request.args.get("deleted", "").lower() == "true"
    try:
        return products_service.list_products(deleted=deleted)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return {"error": "Internal server error"}, 500


@products_bp.get("/deleted")
def list_deleted_products():
    try:
        return products_service.list_products(deleted=True)
    except Exception:
        current_app.logger.exception("Failed to list deleted products")
        return {"error": "Internal server error"}, 500


@products_bp.get("/deleted/<int:product_id>")
def get_deleted_product(product_id: int):
    try:
        return products_service.get_product(product_id, deleted=True)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to load deleted product")
        return {"error": "Internal server error"}, 500


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        created = products_service.create_product(payload)
    except ValidationError as e:
        return {"error": str(e), "field": e.field}, 400
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return created, 201


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return products_service.get_product(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to load product")
        return {"error": "Internal server error"}, 500


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        updated = products_service.update_product(product_id, payload)
    except ValidationError as e:
        return {"error": str(e), "field": e.field}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    return updated, 200


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    """Soft-delete: the product can be restored or permanently deleted later."""
    try:
        products_service.soft_delete_product(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return {"error": "Internal server error"}, 500

    return {"ok": True}, 200


@products_bp.post("/<int:product_id>/restore")
def restore_product_route(product_id: int):
    try:
        restored = products_service.restore_product(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to restore product")
        return {"error": "Internal server error"}, 500

    return restored, 200


@products_bp.delete("/<int:product_id>/permanent")
def permanently_delete_product_route(product_id: int):
    """Irreversible. Only allowed after a soft delete."""
    try:
        products_service.permanently_delete_product(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to permanently delete product")
        return {"error": "Internal server error"}, 500

    return {"ok": True}, 200


@products_bp.post("/<int:product_id>/stock")
def reduce_stock_route(product_id: int):
    """
    Write off stock (damage, shrinkage).

    Body: {"quantity": <positive int>, "note": <optional str>}
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    try:
        product = inventory_service.adjust_stock(
            product_id=product_id,
            reduce_by=payload.get("quantity"),
            note=payload.get("note"),
        )
    except ValidationError as e:
        return {"error": str(e), "field": e.field}, 400
    except InsufficientStockError as e:
        return {"error": str(e), "details": e.details}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to reduce stock")
        return {"error": "Internal server error"}, 500

    return product, 200


@products_bp.get("/<int:product_id>/history")
def product_history_route(product_id: int):
    try:
        entries = history_service.list_for_product(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to load product history")
        return {"error": "Internal server error"}, 500

    return {"items": entries, "count": len(entries)}


@products_bp.get("/<int:product_id>/orders")
def product_orders_route(product_id: int):
    try:
        return orders_service.list_orders_for_product(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to list orders for product")
        return {"error": "Internal server error"}, 500
