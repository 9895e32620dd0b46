# Overview: Service-layer operations for session tokens; encapsulates business logic and database work.

"""
Session Token Management Service

WHY: Bearer tokens for the web client with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (SESSION_IDLE_TIMEOUT)
- Revocable on logout
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    """
    Authenticated caller: identity, the session used, and the identity's claims
    at validation time.
    """
    user: User
    session: SessionToken
    claims: dict

    @property
    def uid(self) -> str:
        return self.user.id


def generate_token() -> str:
    """64-character hex token (32 bytes of entropy); never stored in plaintext."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is sufficient for high-entropy tokens (unlike passwords)."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: str,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create new session token for an identity.

    Returns (session_record, plaintext_token).
    """
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise ValueError("User not found or inactive")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Validate a bearer token.

    Returns None for unknown, revoked, expired or idle sessions and for
    deactivated identities. Touches last_used_at on success.
    """
    if not token:
        return None

    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return None

    now = utcnow()
    if session.expires_at <= now or session.last_used_at + SESSION_IDLE_TIMEOUT <= now:
        return None

    user = session.user
    if not user or not user.is_active:
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, claims=dict(user.custom_claims or {}))


def revoke_session(token: str) -> bool:
    """Revoke a session by plaintext token. Returns False if unknown."""
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session:
        return False
    if not session.is_revoked:
        session.is_revoked = True
        session.revoked_at = utcnow()
        db.session.commit()
    return True


def cleanup_expired_sessions() -> int:
    """Delete expired or revoked sessions. Returns number deleted."""
    now = utcnow()
    deleted = db.session.query(SessionToken).filter(
        db.or_(SessionToken.expires_at <= now, SessionToken.is_revoked.is_(True))
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
