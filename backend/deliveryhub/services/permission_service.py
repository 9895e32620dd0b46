# Overview: Authorization policy and security audit trail.

"""
Authorization Policy

WHY: Administrative privilege is a claim on the authenticated identity
({"admin": true}), evaluated by a policy function that never consults the
business account tables. Denials are written to security_events.
"""

from ..extensions import db
from ..models import SecurityEvent
from ..time_utils import utcnow


CLAIM_ADMIN = "admin"


class PermissionDeniedError(Exception):
    """Raised when the caller lacks a required privilege."""
    pass


def is_admin(claims: dict | None) -> bool:
    """Only a literal boolean true grants admin; "true" or 1 do not."""
    return bool(claims) and claims.get(CLAIM_ADMIN) is True


def log_security_event(
    user_id: str | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Append a security event and commit.

    event_type examples:
    - PERMISSION_DENIED
    - LOGIN_SUCCESS / LOGIN_FAILED
    - LOGOUT
    - ADMIN_ROLE_GRANTED
    - CREDITS_ADDED
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def require_admin(
    user_id: str | None,
    claims: dict | None,
    action: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Raise PermissionDeniedError unless claims carry the admin privilege.

    Must be called before any read or write the action performs.
    """
    if is_admin(claims):
        return

    log_security_event(
        user_id=user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=action,
        reason="Missing admin claim",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    raise PermissionDeniedError(f"Permission denied: {action} requires administrator")


def grant_admin_role(
    *,
    actor_id: str,
    actor_claims: dict,
    email: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
):
    """
    Merge {"admin": true} into the claims of the identity with this email.

    Raises:
        PermissionDeniedError: caller is not an administrator
        IdentityNotFoundError: no identity with that email
    """
    from . import auth_service

    require_admin(
        actor_id, actor_claims, "SET_ADMIN_ROLE",
        resource=resource, ip_address=ip_address, user_agent=user_agent,
    )

    target = auth_service.get_identity_by_email(email or "")
    if target is None:
        raise auth_service.IdentityNotFoundError(f"No user with email {email}")

    auth_service.set_custom_claims(target.id, {CLAIM_ADMIN: True})

    log_security_event(
        user_id=actor_id,
        event_type="ADMIN_ROLE_GRANTED",
        success=True,
        resource=resource,
        action="SET_ADMIN_ROLE",
        reason=f"Granted admin to {target.email} ({target.id})",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return target
