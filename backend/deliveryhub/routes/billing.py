# Overview: Flask API routes for credit purchases and the Stripe webhook; parses input and returns JSON responses.

"""
Billing routes

- GET  /api/billing/plans:            active credit plans
- POST /api/billing/checkout-session: start a Stripe Checkout for a plan
- POST /api/billing/webhook:          Stripe webhook (signature-authenticated)

The webhook must read the RAW body: signature verification is over the exact
bytes Stripe sent, so request.get_json() is never called before it.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import billing_service, plan_service
from ..services.billing_service import (
    CreditGrantFailedError,
    MalformedEventError,
    SignatureInvalidError,
)
from ..services.payment_gateway import PaymentGatewayError
from ..validation import ValidationError
from ..decorators import require_auth


billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")


@billing_bp.get("/plans")
@require_auth
def list_plans_route():
    plans = plan_service.list_active_plans()
    return jsonify({"plans": [p.to_dict() for p in plans]}), 200


@billing_bp.post("/checkout-session")
@require_auth
def create_checkout_session_route():
    """
    Request body:
    {
        "planId": "price_123",
        "successUrl": "https://app.example.com/dashboard/billing?ok=1",
        "cancelUrl": "https://app.example.com/dashboard/billing"
    }

    Returns {"sessionId", "url"}.
    """
    try:
        data = request.get_json(silent=True) or {}
        session = billing_service.create_checkout_session(
            account_id=g.current_user.id,
            customer_email=g.current_user.email,
            plan_id=data.get("planId"),
            success_url=data.get("successUrl"),
            cancel_url=data.get("cancelUrl"),
            gateway=current_app.extensions["payment_gateway"],
        )
        return jsonify(session), 200

    except ValidationError as e:
        return jsonify({"error": "Validation failed", "code": "validation_error", "fields": e.fields}), 400
    except PaymentGatewayError as e:
        current_app.logger.error("Checkout session creation failed: %s", e)
        return jsonify({"error": "Payment provider unavailable", "code": "internal"}), 502
    except Exception:
        current_app.logger.exception("Failed to create checkout session")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@billing_bp.post("/webhook")
def stripe_webhook_route():
    """
    Stripe webhook endpoint.

    Returns:
        200: {"received": true} for every verified, well-formed event
             (including duplicates and zero-credit plans)
        400: bad signature, malformed event, or missing checkout metadata
        500: database failure while granting (Stripe will redeliver)
    """
    payload = request.get_data(cache=False)
    signature = request.headers.get("Stripe-Signature")

    try:
        billing_service.process_webhook(
            payload,
            signature,
            current_app.extensions["payment_gateway"],
        )
    except SignatureInvalidError as e:
        return jsonify({"error": f"Webhook Error: {e}", "code": "signature_invalid"}), 400
    except MalformedEventError as e:
        return jsonify({"error": f"Webhook Error: {e}", "code": "malformed_event"}), 400
    except CreditGrantFailedError as e:
        return jsonify({"error": str(e), "code": "internal"}), 500
    except Exception:
        current_app.logger.exception("Failed to process Stripe webhook")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500

    return jsonify({"received": True}), 200
