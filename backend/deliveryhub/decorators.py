# Overview: Request authentication and admin-claim decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service, permission_service
from .services.permission_service import PermissionDeniedError


def _is_authenticated() -> bool:
    return hasattr(g, 'session_context')


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.current_user: the authenticated identity (User)
    - g.claims: the identity's custom claims
    - g.session_context: the full SessionContext

    Returns 401 if the Authorization header is missing, or the token is
    unknown, expired, idle, revoked or belongs to a deactivated identity.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required", "code": "unauthenticated"}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token", "code": "unauthenticated"}), 401

        g.current_user = context.user
        g.claims = context.claims
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_admin(action: str):
    """
    Require the admin claim on the authenticated identity.

    Denials are written to security_events by the policy.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "code": "unauthenticated"}), 401

            try:
                permission_service.require_admin(
                    g.current_user.id,
                    g.claims,
                    action,
                    resource=request.path,
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
            except PermissionDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "code": "permission_denied",
                    "message": str(e),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
