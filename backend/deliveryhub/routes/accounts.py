# Overview: Flask API routes for the caller's business account; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import account_service
from ..services.account_service import AccountNotFoundError
from ..validation import ValidationError, validate_profile_update
from ..decorators import require_auth


accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/account")


@accounts_bp.get("")
@require_auth
def get_account_route():
    try:
        account = account_service.get_account(g.current_user.id)
        return jsonify({"account": account.to_dict()}), 200
    except AccountNotFoundError as e:
        return jsonify({"error": str(e), "code": "not_found"}), 404


@accounts_bp.patch("")
@require_auth
def update_account_route():
    """
    Update business profile fields.

    Writable: ownerName, businessName, contactPhone, defaultPickupAddress.
    The new pickup location is used by every order dispatched afterwards.
    """
    try:
        patch = validate_profile_update(request.get_json(silent=True))
        account = account_service.update_profile(g.current_user.id, patch)
        return jsonify({"account": account.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "code": "validation_error", "fields": e.fields}), 400
    except AccountNotFoundError as e:
        return jsonify({"error": str(e), "code": "not_found"}), 404
    except Exception:
        current_app.logger.exception("Failed to update account")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@accounts_bp.get("/credit-audits")
@require_auth
def list_credit_audits_route():
    limit = max(1, min(request.args.get("limit", 100, type=int) or 100, 500))
    audits = account_service.list_credit_audits(g.current_user.id, limit=limit)
    return jsonify({"credit_audits": [a.to_dict() for a in audits]}), 200
