# Overview: Flask API routes for administrator operations; parses input and returns JSON responses.

"""
Admin routes

- POST /api/admin/credits:      AddCredits (admin claim)
- POST /api/admin/roles/admin:  SetAdminRole (admin claim)
- GET  /api/admin/orders:       orders by status, e.g. dispatch_error remediation

The admin check is a policy on the caller's claims and runs before any read.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import credit_service, order_service, permission_service
from ..services.auth_service import IdentityNotFoundError
from ..services.permission_service import PermissionDeniedError
from ..validation import ValidationError
from ..decorators import require_auth, require_admin

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _client_context() -> dict:
    return {
        "resource": request.path,
        "ip_address": request.remote_addr,
        "user_agent": request.headers.get("User-Agent"),
    }


@admin_bp.post("/credits")
@require_auth
def add_credits_route():
    """
    Grant credits to a business account.

    Request body:
    {
        "targetAccountId": "<account id>",   ("businessId" accepted as alias)
        "amount": 10,
        "reason": "Manual top-up, invoice 1042"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        audit = credit_service.add_credits(
            actor_id=g.current_user.id,
            actor_claims=g.claims,
            account_id=data.get("targetAccountId", data.get("businessId")),
            amount=data.get("amount"),
            reason=data.get("reason"),
            **_client_context(),
        )
        return jsonify({"success": True, "audit": audit.to_dict()}), 200

    except PermissionDeniedError as e:
        return jsonify({"error": "Permission denied", "code": "permission_denied", "message": str(e)}), 403
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "code": "validation_error", "fields": e.fields}), 400
    except Exception:
        current_app.logger.exception("Failed to add credits")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@admin_bp.post("/roles/admin")
@require_auth
def set_admin_role_route():
    """Grant the admin claim to the identity with the given email."""
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        if not isinstance(email, str) or not email.strip():
            # Policy first: non-admins learn nothing about input handling
            permission_service.require_admin(g.current_user.id, g.claims, "SET_ADMIN_ROLE", **_client_context())
            return jsonify({"error": "Validation failed", "code": "validation_error",
                            "fields": {"email": "is required"}}), 400

        target = permission_service.grant_admin_role(
            actor_id=g.current_user.id,
            actor_claims=g.claims,
            email=email,
            **_client_context(),
        )
        return jsonify({"success": True, "message": f"{target.email} is now an administrator."}), 200

    except PermissionDeniedError as e:
        return jsonify({"error": "Permission denied", "code": "permission_denied", "message": str(e)}), 403
    except IdentityNotFoundError as e:
        return jsonify({"error": str(e), "code": "not_found"}), 404
    except Exception:
        current_app.logger.exception("Failed to set admin role")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@admin_bp.get("/orders")
@require_auth
@require_admin("LIST_ORDERS")
def list_orders_route():
    """
    Orders across all accounts with the given status (default dispatch_error), oldest first.
    """
    try:
        status = request.args.get("status", "dispatch_error")
        limit = max(1, min(request.args.get("limit", 100, type=int) or 100, 500))
        orders = order_service.list_orders_by_status(status, limit=limit)
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "code": "validation_error", "fields": e.fields}), 400
