# Overview: Service-layer operations for orders; encapsulates the credit ledger transaction.

"""
Order Creation (Credit Ledger Transaction)

WHY: One credit buys exactly one order. The balance check, the decrement and
the order insert are one database transaction, so no reader ever sees a debit
without its order or an order without its debit.

CONCURRENCY:
The check and the decrement are a single conditional statement

    UPDATE accounts SET credits = credits - 1 WHERE id = :id AND credits >= 1

so two concurrent requests racing for the last credit cannot both match the
row; the loser sees rowcount == 0 and fails with InsufficientCreditsError.
Lock timeouts/deadlocks are retried by run_with_retry.

After commit the order is handed to the dispatch relay (dispatch_service).
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Account, Order
from ..models.orders import ORDER_STATUS_PROCESSING, ORDER_STATUSES
from ..time_utils import utcnow
from ..validation import OrderRequest, ValidationError
from .account_service import AccountNotFoundError
from .concurrency import run_with_retry
from .dispatch_client import DispatchClient
from . import dispatch_service


ORDER_CREDIT_COST = 1


class OrderError(Exception):
    """Raised for order operation errors."""
    pass


class InsufficientCreditsError(OrderError):
    """Raised when the account balance cannot cover the order."""
    pass


class OrderNotFoundError(OrderError):
    """Raised when the order does not exist for this account."""
    pass


def reserve_credit_and_create_order(account_id: str, request: OrderRequest) -> str:
    """
    Debit one credit and insert a `processing` order atomically.

    Returns the new order id.

    Raises:
        InsufficientCreditsError: balance < 1 at transaction time
        AccountNotFoundError: no account for account_id
    """
    def _op() -> str:
        result = db.session.execute(
            update(Account)
            .where(Account.id == account_id, Account.credits >= ORDER_CREDIT_COST)
            .values(credits=Account.credits - ORDER_CREDIT_COST, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        if not result.rowcount:
            db.session.rollback()
            if db.session.query(Account.id).filter_by(id=account_id).first() is None:
                raise AccountNotFoundError(f"Account {account_id} not found")
            raise InsufficientCreditsError("Insufficient credits")

        order = Order(
            account_id=account_id,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            delivery_description=request.delivery.description,
            delivery_lat=request.delivery.lat,
            delivery_lng=request.delivery.lng,
            notes=request.notes,
            amount_to_collect=request.amount_to_collect,
            status=ORDER_STATUS_PROCESSING,
        )
        db.session.add(order)
        db.session.flush()
        order_id = order.id
        db.session.commit()
        return order_id

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def create_order(account_id: str, request: OrderRequest, dispatch_client: DispatchClient) -> Order:
    """
    Ledger transaction, then one dispatch attempt.

    Returns the order in `sent_to_dispatch`.

    Raises:
        InsufficientCreditsError / AccountNotFoundError: nothing was written
        DispatchFailedError: order committed and left in `dispatch_error`
            (or `processing` if the outcome write failed)
    """
    order_id = reserve_credit_and_create_order(account_id, request)
    current_app.logger.info("Order %s created for account %s", order_id, account_id)
    return dispatch_service.relay_order(order_id, dispatch_client)


def get_order_for_account(account_id: str, order_id: str) -> Order:
    order = db.session.query(Order).filter_by(id=order_id, account_id=account_id).first()
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


def _check_status_filter(status: str | None) -> None:
    if status is not None and status not in ORDER_STATUSES:
        raise ValidationError({"status": f"must be one of {', '.join(ORDER_STATUSES)}"})


def list_orders(account_id: str, status: str | None = None, limit: int = 100) -> list[Order]:
    _check_status_filter(status)
    query = db.session.query(Order).filter_by(account_id=account_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Order.created_at.desc(), Order.id).limit(limit).all()


def list_orders_by_status(status: str, limit: int = 100) -> list[Order]:
    """Cross-account listing for operators (e.g. dispatch_error remediation)."""
    _check_status_filter(status)
    return (
        db.session.query(Order)
        .filter_by(status=status)
        .order_by(Order.created_at.asc(), Order.id)
        .limit(limit)
        .all()
    )
