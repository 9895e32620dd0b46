from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z


ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_SENT_TO_DISPATCH = "sent_to_dispatch"
ORDER_STATUS_DISPATCH_ERROR = "dispatch_error"

ORDER_STATUSES = (
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_SENT_TO_DISPATCH,
    ORDER_STATUS_DISPATCH_ERROR,
)

# Both outcomes of a dispatch attempt are terminal
ALLOWED_TRANSITIONS = {
    None: {ORDER_STATUS_PROCESSING},
    ORDER_STATUS_PROCESSING: {ORDER_STATUS_SENT_TO_DISPATCH, ORDER_STATUS_DISPATCH_ERROR},
    ORDER_STATUS_SENT_TO_DISPATCH: set(),
    ORDER_STATUS_DISPATCH_ERROR: set(),
}


class InvalidStatusTransition(ValueError):
    """Raised when an order status change is not allowed."""


class Order(db.Model):
    """
    Delivery order created together with a one-credit debit.

    LIFECYCLE:
    - processing: created inside the ledger transaction
    - sent_to_dispatch: accepted by the dispatch provider (dispatch_order_id set)
    - dispatch_error: provider call failed; kept for manual remediation

    account_id is set once at creation and cannot be reassigned.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_account_created", "account_id", "created_at"),
        db.Index("ix_orders_status", "status"),
    )

    id = db.Column(db.String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    account_id = db.Column(db.String(32), db.ForeignKey("accounts.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(160), nullable=False)
    customer_phone = db.Column(db.String(10), nullable=False)

    delivery_description = db.Column(db.String(512), nullable=False)
    delivery_lat = db.Column(db.Float, nullable=False)
    delivery_lng = db.Column(db.Float, nullable=False)

    notes = db.Column(db.Text, nullable=True)
    amount_to_collect = db.Column(db.Numeric(10, 2), nullable=True)

    status = db.Column(db.String(32), nullable=False, default=ORDER_STATUS_PROCESSING)
    dispatch_order_id = db.Column(db.String(128), nullable=True)
    dispatch_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=True)

    account = db.relationship("Account", backref=db.backref("orders", lazy="dynamic"))

    @db.validates("account_id")
    def _validate_account_id(self, key, value):
        if self.account_id is not None and value != self.account_id:
            raise ValueError("Order owner cannot be changed")
        return value

    @db.validates("status")
    def _validate_status(self, key, value):
        if value not in ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidStatusTransition(f"Cannot move order from {self.status} to {value}")
        return value

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.status]

    def delivery_location(self) -> dict:
        return {
            "description": self.delivery_description,
            "lat": self.delivery_lat,
            "lng": self.delivery_lng,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "delivery_address": self.delivery_location(),
            "notes": self.notes,
            "amount_to_collect": float(self.amount_to_collect) if self.amount_to_collect is not None else None,
            "status": self.status,
            "dispatch_order_id": self.dispatch_order_id,
            "dispatch_error": self.dispatch_error,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "dispatched_at": to_utc_z(self.dispatched_at),
        }
