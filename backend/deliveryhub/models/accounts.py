from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z


class Account(db.Model):
    """
    Business account holding the credit balance.

    WHY: One account per business owner, paired 1:1 with its identity
    (accounts.id == users.id). The balance is only ever changed with atomic
    SQL increments/decrements; the CHECK constraint makes a negative balance
    unrepresentable even if a caller gets that wrong.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.CheckConstraint("credits >= 0", name="ck_accounts_credits_non_negative"),
    )

    id = db.Column(db.String(32), db.ForeignKey("users.id"), primary_key=True)

    email = db.Column(db.String(255), nullable=False)
    owner_name = db.Column(db.String(120), nullable=False)
    business_name = db.Column(db.String(160), nullable=False)
    contact_phone = db.Column(db.String(10), nullable=False)

    # Default pickup location
    pickup_description = db.Column(db.String(512), nullable=False)
    pickup_lat = db.Column(db.Float, nullable=False)
    pickup_lng = db.Column(db.Float, nullable=False)

    credits = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("account", uselist=False, lazy=True))

    def pickup_location(self) -> dict:
        return {
            "description": self.pickup_description,
            "lat": self.pickup_lat,
            "lng": self.pickup_lng,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "owner_name": self.owner_name,
            "business_name": self.business_name,
            "contact_phone": self.contact_phone,
            "default_pickup_address": self.pickup_location(),
            "credits": self.credits,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CreditAudit(db.Model):
    """
    Audit entry for every balance increase that is not an order debit.

    IMMUTABLE: Written in the same transaction as the increment it documents.
    payment_event_id is unique so a provider event can be credited only once.
    """
    __tablename__ = "credit_audits"
    __table_args__ = (
        db.Index("ix_credit_audits_account_created", "account_id", "created_at"),
        db.CheckConstraint("amount_added > 0", name="ck_credit_audits_amount_positive"),
    )

    id = db.Column(db.String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    account_id = db.Column(db.String(32), db.ForeignKey("accounts.id"), nullable=False, index=True)

    # Admin identity id, or SYSTEM_ACTOR_STRIPE for webhook grants
    actor_id = db.Column(db.String(64), nullable=False)

    event = db.Column(db.String(64), nullable=False)  # admin_adjustment | stripe_payment_completed
    amount_added = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=False)

    plan_id = db.Column(db.String(128), nullable=True)
    checkout_session_id = db.Column(db.String(255), nullable=True)
    payment_event_id = db.Column(db.String(255), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("Account", backref=db.backref("credit_audits", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "actor_id": self.actor_id,
            "event": self.event,
            "amount_added": self.amount_added,
            "reason": self.reason,
            "plan_id": self.plan_id,
            "checkout_session_id": self.checkout_session_id,
            "payment_event_id": self.payment_event_id,
            "created_at": to_utc_z(self.created_at),
        }
