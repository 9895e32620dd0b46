from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z


class User(db.Model):
    """
    Authentication identity.

    WHY: Every account and every admin action is attributable to exactly one
    identity. Privilege lives in custom_claims (e.g. {"admin": true}), never in
    a column on the business account.
    """
    __tablename__ = "users"

    id = db.Column(db.String(32), primary_key=True, default=lambda: uuid.uuid4().hex)

    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    display_name = db.Column(db.String(120), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    # Claims attached to every session of this identity ({"role": "business"}, {"admin": true})
    custom_claims = db.Column(db.JSON, nullable=False, default=dict)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "claims": dict(self.custom_claims or {}),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at),
        }


class SessionToken(db.Model):
    """
    Bearer session tokens.

    Only the SHA-256 hash of the token is stored; the plaintext goes to the
    client once at login.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_revoked", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(32), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
