# Overview: Flask API routes for registration and sessions; parses input and returns JSON responses.

"""
Authentication API routes

- POST /api/auth/register: RegisterBusiness (identity + business account)
- POST /api/auth/login:    exchange email/password for a bearer token
- POST /api/auth/logout:   revoke the current token
- GET  /api/auth/me:       identity, claims and account of the caller
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import account_service, auth_service, permission_service, session_service
from ..services.account_service import RegistrationFailedError
from ..services.auth_service import EmailAlreadyExistsError
from ..validation import ValidationError, validate_registration
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Register a business owner.

    Request body:
    {
        "email": "owner@example.com",
        "password": "secret1",
        "ownerName": "Ana Pérez",
        "businessName": "Tacos Ana",
        "contactPhone": "5551234567",
        "defaultPickupAddress": {"description": "...", "lat": 19.43, "lng": -99.13}
    }

    Returns:
        201: {"success": true, "userId": "..."}
        400: per-field validation errors
        409: email already in use
    """
    try:
        registration = validate_registration(request.get_json(silent=True))
        account = account_service.register_business(registration)
        return jsonify({"success": True, "userId": account.id}), 201

    except ValidationError as e:
        return jsonify({"error": "Validation failed", "code": "validation_error", "fields": e.fields}), 400
    except EmailAlreadyExistsError as e:
        return jsonify({"error": str(e), "code": "email_already_exists"}), 409
    except RegistrationFailedError as e:
        return jsonify({"error": str(e), "code": "internal"}), 500
    except Exception:
        current_app.logger.exception("Failed to register business")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@auth_bp.post("/login")
def login_route():
    """Authenticate with email + password and create a session token."""
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required", "code": "validation_error"}), 400
        if not isinstance(email, str) or not isinstance(password, str):
            return jsonify({"error": "email and password must be strings", "code": "validation_error"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        user = auth_service.authenticate(email, password)
        if not user:
            permission_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource=request.path,
                action="LOGIN",
                reason=f"Invalid credentials for {auth_service.normalize_email(email)}",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"error": "Invalid credentials", "code": "unauthenticated"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        permission_service.log_security_event(
            user_id=user.id,
            event_type="LOGIN_SUCCESS",
            success=True,
            resource=request.path,
            action="LOGIN",
            ip_address=ip_address,
            user_agent=user_agent,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        token = request.headers["Authorization"].split(" ", 1)[1]
        session_service.revoke_session(token)
        permission_service.log_security_event(
            user_id=g.current_user.id,
            event_type="LOGOUT",
            success=True,
            resource=request.path,
            action="LOGOUT",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({"success": True}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    account = g.current_user.account
    return jsonify({
        "user": g.current_user.to_dict(),
        "claims": g.claims,
        "is_admin": permission_service.is_admin(g.claims),
        "account": account.to_dict() if account else None,
    }), 200
