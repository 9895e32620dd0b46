# Overview: Service-layer operations for credit grants; encapsulates business logic and database work.

"""
Credit Grants

WHY: Every balance increase that is not an order debit leaves exactly one
CreditAudit row, written in the same transaction as the increment.

- add_credits: administrator adjustment (admin claim required)
- apply_credit_grant: shared increment + audit step, also used by the payment
  webhook reconciler (billing_service)
"""

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import Account, CreditAudit
from ..time_utils import utcnow
from ..validation import MAX_CREDIT_BALANCE, MAX_CREDIT_GRANT, ValidationError, parse_positive_int
from . import permission_service
from .account_service import AccountNotFoundError
from .concurrency import run_with_retry


EVENT_ADMIN_ADJUSTMENT = "admin_adjustment"
EVENT_STRIPE_PAYMENT_COMPLETED = "stripe_payment_completed"

# Actor recorded on grants that no person initiated
SYSTEM_ACTOR_STRIPE = "system:stripe"


class CreditLimitExceededError(ValueError):
    """Raised when a grant would push the balance past MAX_CREDIT_BALANCE."""
    pass


def apply_credit_grant(
    *,
    account_id: str,
    amount: int,
    actor_id: str,
    event: str,
    reason: str,
    plan_id: str | None = None,
    checkout_session_id: str | None = None,
    payment_event_id: str | None = None,
) -> CreditAudit:
    """
    Increment the balance and append the audit entry in the caller's transaction.

    Does not commit.

    Raises:
        AccountNotFoundError: the account is missing
        CreditLimitExceededError: the new balance would exceed MAX_CREDIT_BALANCE
    """
    if amount <= 0:
        raise ValueError("Credit grants must be positive")
    if amount > MAX_CREDIT_BALANCE:
        raise CreditLimitExceededError(f"Grant of {amount} exceeds the maximum balance")

    result = db.session.execute(
        update(Account)
        .where(Account.id == account_id, Account.credits <= MAX_CREDIT_BALANCE - amount)
        .values(credits=Account.credits + amount, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        if db.session.query(Account.id).filter_by(id=account_id).first() is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        raise CreditLimitExceededError(
            f"Grant of {amount} would raise account {account_id} above {MAX_CREDIT_BALANCE:,} credits"
        )

    audit = CreditAudit(
        account_id=account_id,
        actor_id=actor_id,
        event=event,
        amount_added=amount,
        reason=reason,
        plan_id=plan_id,
        checkout_session_id=checkout_session_id,
        payment_event_id=payment_event_id,
    )
    db.session.add(audit)
    db.session.flush()
    return audit


def add_credits(
    *,
    actor_id: str,
    actor_claims: dict,
    account_id,
    amount,
    reason,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> CreditAudit:
    """
    Administrator credit adjustment.

    Raises:
        PermissionDeniedError: caller lacks the admin claim (checked first)
        ValidationError: bad amount/reason or unknown target account
    """
    permission_service.require_admin(
        actor_id, actor_claims, "ADD_CREDITS",
        resource=resource, ip_address=ip_address, user_agent=user_agent,
    )

    errors = {}
    try:
        amount = parse_positive_int(amount, "amount", maximum=MAX_CREDIT_GRANT)
    except ValidationError as exc:
        errors.update(exc.fields)
    if not isinstance(reason, str) or not reason.strip():
        errors["reason"] = "is required"
    if not isinstance(account_id, str) or not account_id.strip():
        errors["targetAccountId"] = "is required"
    if errors:
        raise ValidationError(errors)

    account_id = account_id.strip()
    reason = reason.strip()

    def _op() -> CreditAudit:
        try:
            audit = apply_credit_grant(
                account_id=account_id,
                amount=amount,
                actor_id=actor_id,
                event=EVENT_ADMIN_ADJUSTMENT,
                reason=reason,
            )
        except AccountNotFoundError:
            db.session.rollback()
            raise ValidationError({"targetAccountId": "does not match an existing account"})
        except CreditLimitExceededError:
            db.session.rollback()
            raise ValidationError({"amount": f"would raise the balance above {MAX_CREDIT_BALANCE:,}"})
        db.session.commit()
        return audit

    audit = run_with_retry(_op)

    permission_service.log_security_event(
        user_id=actor_id,
        event_type="CREDITS_ADDED",
        success=True,
        resource=resource,
        action="ADD_CREDITS",
        reason=f"+{amount} credits to {account_id}: {reason}",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return audit
