from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class PaymentPlan(db.Model):
    """
    Credit package sold through the payment gateway.

    id is the gateway price id used as the Checkout line item. Read-only for
    request handlers; operators manage rows with `flask plans set`.
    """
    __tablename__ = "payment_plans"

    id = db.Column(db.String(128), primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    credits = db.Column(db.Integer, nullable=False, default=0)
    bonus_credits = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def total_credits(self) -> int:
        return (self.credits or 0) + (self.bonus_credits or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "credits": self.credits,
            "bonus_credits": self.bonus_credits,
            "total_credits": self.total_credits,
            "is_active": self.is_active,
        }


class ProcessedPaymentEvent(db.Model):
    """
    Provider events that already produced a credit grant.

    The primary key on the provider event id turns "check then insert" into a
    single atomic insert inside the grant transaction.
    """
    __tablename__ = "processed_payment_events"

    event_id = db.Column(db.String(255), primary_key=True)
    event_type = db.Column(db.String(128), nullable=False)
    account_id = db.Column(db.String(32), db.ForeignKey("accounts.id"), nullable=False, index=True)
    credits_granted = db.Column(db.Integer, nullable=False)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "account_id": self.account_id,
            "credits_granted": self.credits_granted,
            "processed_at": to_utc_z(self.processed_at),
        }
