# Overview: Flask API routes for delivery orders; parses input and returns JSON responses.

"""
Order API Routes

DESIGN:
- The caller's identity id is the owning account id; clients never send it
- One credit is debited per created order (see order_service)
- A dispatch failure still returns the order id: the order exists in
  dispatch_error and its credit stays spent
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import order_service
from ..services.account_service import AccountNotFoundError
from ..services.dispatch_service import DispatchFailedError
from ..services.order_service import InsufficientCreditsError, OrderNotFoundError
from ..validation import ValidationError, validate_order_payload
from ..decorators import require_auth


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create a delivery order for the caller's business.

    Request body (the "orderPayload" wrapper used by the web client is accepted too):
    {
        "customerName": "Luis",
        "customerPhone": "5551234567",
        "deliveryAddress": {"description": "...", "lat": 19.4, "lng": -99.1},
        "notes": "Ring twice",          (optional)
        "amountToCollect": 250.00       (optional)
    }

    Returns:
        201: {"orderId", "status": "sent_to_dispatch", "order"}
        400: validation errors
        401: unauthenticated
        402: insufficient credits
        502: order created but dispatch failed ({"orderId", "status": "dispatch_error"})
    """
    try:
        data = request.get_json(silent=True)
        if isinstance(data, dict) and isinstance(data.get("orderPayload"), dict):
            data = data["orderPayload"]
        order_request = validate_order_payload(data)

        order = order_service.create_order(
            account_id=g.current_user.id,
            request=order_request,
            dispatch_client=current_app.extensions["dispatch_client"],
        )
        return jsonify({
            "success": True,
            "orderId": order.id,
            "status": order.status,
            "order": order.to_dict(),
        }), 201

    except ValidationError as e:
        return jsonify({"error": "Validation failed", "code": "validation_error", "fields": e.fields}), 400
    except InsufficientCreditsError as e:
        return jsonify({"error": str(e), "code": "insufficient_credits"}), 402
    except AccountNotFoundError:
        return jsonify({"error": "No business account for this user", "code": "not_found"}), 404
    except DispatchFailedError as e:
        return jsonify({
            "error": str(e),
            "code": "dispatch_failed",
            "orderId": e.order_id,
            "status": e.status,
        }), 502
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    List the caller's orders, newest first.

    Query params:
    - status: processing | sent_to_dispatch | dispatch_error
    - limit: max rows (default 100, capped at 500)
    """
    try:
        limit = max(1, min(request.args.get("limit", 100, type=int) or 100, 500))
        orders = order_service.list_orders(
            g.current_user.id,
            status=request.args.get("status"),
            limit=limit,
        )
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "code": "validation_error", "fields": e.fields}), 400


@orders_bp.get("/<order_id>")
@require_auth
def get_order_route(order_id: str):
    try:
        order = order_service.get_order_for_account(g.current_user.id, order_id)
        return jsonify({"order": order.to_dict()}), 200
    except OrderNotFoundError as e:
        return jsonify({"error": str(e), "code": "not_found"}), 404
