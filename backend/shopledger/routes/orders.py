# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/shopledger/routes/orders.py
"""Order API routes. Stock effects live in orders_service, never here."""

from flask import Blueprint, current_app, jsonify, request

from ..services import orders_service
from ..validation import InsufficientStockError, NotFoundError, ValidationError

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
def list_orders_route():
    """
    List orders newest-first with items and totals.

    Query params:
    - status: optional status filter
    """
    try:
        result = orders_service.list_orders(status=request.args.get("status") or None)
    except ValidationError as e:
        return jsonify({"error": str(e), "field": e.field}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(result)


@orders_bp.post("")
def create_order_route():
    """
    Create an order.

    Body: customer fields (fb_name, recipient_name, phone, address, comment)
    plus "items": [{product_id, quantity, unit_price, courier_price}, ...]
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    items = data.get("items")
    customer = {k: v for k, v in data.items() if k != "items"}

    try:
        order = orders_service.create_order(customer, items)
    except ValidationError as e:
        return jsonify({"error": str(e), "field": e.field}), 400
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(order), 201


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        return jsonify(orders_service.get_order(order_id))
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>")
def update_order_route(order_id: int):
    """Update customer fields; a "status" key is applied with its stock effects."""
    data = request.get_json(silent=True) or {}

    try:
        order = orders_service.update_order_fields(order_id, data)
    except ValidationError as e:
        return jsonify({"error": str(e), "field": e.field}), 400
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(order), 200


@orders_bp.post("/<int:order_id>/status")
def set_order_status_route(order_id: int):
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        order = orders_service.set_order_status(order_id, data.get("status"))
    except ValidationError as e:
        return jsonify({"error": str(e), "field": e.field}), 400
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to change order status")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(order), 200


@orders_bp.delete("/<int:order_id>")
def delete_order_route(order_id: int):
    try:
        orders_service.delete_order(order_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"ok": True}), 200
