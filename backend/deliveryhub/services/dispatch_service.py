# Overview: Service-layer operations for relaying committed orders to the dispatch provider.

"""
Dispatch Relay

WHY: The credit debit and the order row are committed before the provider is
called, so a provider failure can never leave an order pointing at an
un-debited balance. The relay records the outcome on the order and is the only
writer of order status after creation.

OUTCOMES:
- provider accepted  -> sent_to_dispatch + dispatch_order_id
- provider failed    -> dispatch_error + error message, DispatchFailedError raised
- outcome not saved  -> order stays processing, DispatchFailedError raised
No refund and no automatic retry; dispatch_error orders are remediated outside
the request.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Account, Order
from ..models.orders import (
    ORDER_STATUS_DISPATCH_ERROR,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_SENT_TO_DISPATCH,
    InvalidStatusTransition,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .dispatch_client import DispatchClient, DispatchError


class DispatchFailedError(Exception):
    """The order exists and its credit is spent, but it did not reach sent_to_dispatch.

    status is the order status left behind: dispatch_error, or processing when
    the outcome itself could not be written.
    """

    def __init__(self, order_id: str, message: str, status: str = ORDER_STATUS_DISPATCH_ERROR):
        super().__init__(message)
        self.order_id = order_id
        self.status = status


def build_dispatch_payload(order: Order, account: Account) -> dict:
    """Provider request body from the order and the account's current pickup profile."""
    payload = {
        "orderNumber": order.id,
        "customerName": order.customer_name,
        "customerAddress": order.delivery_description,
        "customerPhoneNumber": order.customer_phone,
        "restaurantName": account.business_name,
        "restaurantAddress": account.pickup_description,
        "restaurantPhoneNumber": account.contact_phone,
        "pickupLatitude": account.pickup_lat,
        "pickupLongitude": account.pickup_lng,
        "deliveryLatitude": order.delivery_lat,
        "deliveryLongitude": order.delivery_lng,
    }
    if order.notes:
        payload["notes"] = order.notes
    if order.amount_to_collect is not None:
        payload["totalOrderCost"] = float(order.amount_to_collect)
    return payload


def _record_outcome(
    order_id: str,
    status: str,
    *,
    dispatch_order_id: str | None = None,
    error: str | None = None,
) -> Order:
    def _op() -> Order:
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).one()
        now = utcnow()
        order.status = status
        order.updated_at = now
        if status == ORDER_STATUS_SENT_TO_DISPATCH:
            order.dispatch_order_id = dispatch_order_id
            order.dispatched_at = now
        else:
            order.dispatch_error = error
        db.session.commit()
        return order

    return run_with_retry(_op)


def _record_outcome_or_fail(order_id: str, status: str, **fields) -> Order:
    """Write the outcome; a database failure leaves the order in `processing`."""
    try:
        return _record_outcome(order_id, status, **fields)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Could not record %s for order %s", status, order_id)
        raise DispatchFailedError(
            order_id,
            "Order created but its dispatch outcome could not be recorded",
            status=ORDER_STATUS_PROCESSING,
        ) from exc


def relay_order(order_id: str, client: DispatchClient) -> Order:
    """
    Make exactly one dispatch attempt for a committed `processing` order.

    Raises:
        InvalidStatusTransition: the order already left `processing`
        DispatchFailedError: provider failure (order now in dispatch_error), or
            the outcome could not be written (order still in processing)
    """
    order = db.session.get(Order, order_id)
    if order is None:
        raise ValueError(f"Order {order_id} not found")
    if order.status != ORDER_STATUS_PROCESSING:
        raise InvalidStatusTransition(f"Order {order_id} is already {order.status}")

    account = db.session.get(Account, order.account_id)
    payload = build_dispatch_payload(order, account)

    try:
        dispatch_order_id = client.create_order(payload)
    except DispatchError as exc:
        current_app.logger.warning("Dispatch failed for order %s: %s", order_id, exc)
        _record_outcome_or_fail(order_id, ORDER_STATUS_DISPATCH_ERROR, error=str(exc))
        raise DispatchFailedError(order_id, "Order created but not yet sent to dispatch") from exc

    current_app.logger.info("Order %s accepted by dispatch as %s", order_id, dispatch_order_id)
    return _record_outcome_or_fail(
        order_id,
        ORDER_STATUS_SENT_TO_DISPATCH,
        dispatch_order_id=dispatch_order_id,
    )
