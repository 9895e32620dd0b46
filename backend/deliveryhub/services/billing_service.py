# Overview: Service-layer operations for credit purchases and the payment webhook reconciler.

"""
Payment Webhook Reconciler

WHY: Stripe tells us a checkout completed; we turn that into credits exactly
once per provider event.

FLOW (checkout.session.completed):
1. Verify the Stripe-Signature header against the raw body (no mutation on failure)
2. Read userId / planId from the session metadata (400 when missing)
3. Resolve plan credits + bonus; missing/misconfigured plan -> 0 credits, logged
4. In ONE transaction: increment balance, append CreditAudit, insert
   ProcessedPaymentEvent(event_id). The event id primary key makes a replay
   fail the insert and roll the whole grant back.

Everything past signature + metadata checks is acknowledged to Stripe (200) so
configuration problems do not trigger redelivery. Only a database failure
while granting is reported as 500, which Stripe retries.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import ProcessedPaymentEvent
from ..validation import ValidationError
from .account_service import AccountNotFoundError
from .concurrency import run_with_retry
from .credit_service import (
    EVENT_STRIPE_PAYMENT_COMPLETED,
    SYSTEM_ACTOR_STRIPE,
    CreditLimitExceededError,
    apply_credit_grant,
)
from .payment_gateway import (
    MalformedPayloadError,
    PaymentGateway,
    SignatureVerificationFailed,
)
from . import plan_service


EVENT_CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"

OUTCOME_IGNORED = "ignored"
OUTCOME_GRANTED = "granted"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_NO_CREDITS = "no_credits"
OUTCOME_UNKNOWN_ACCOUNT = "unknown_account"
OUTCOME_LIMIT_EXCEEDED = "limit_exceeded"


class WebhookError(Exception):
    """Raised for webhook processing errors."""
    pass


class SignatureInvalidError(WebhookError):
    """Signature verification failed; nothing was read or written."""
    pass


class MalformedEventError(WebhookError):
    """Verified event lacks the fields needed to act on it."""
    pass


class CreditGrantFailedError(WebhookError):
    """Database failure while granting; the provider should redeliver."""
    pass


@dataclass
class WebhookResult:
    event_id: str
    event_type: str
    outcome: str
    credits_granted: int = 0
    account_id: str | None = None
    plan_id: str | None = None


def _grant_payment_credits(
    *,
    event_id: str,
    event_type: str,
    account_id: str,
    plan_id: str,
    checkout_session_id: str | None,
    credits: int,
) -> str:
    def _op() -> str:
        if db.session.get(ProcessedPaymentEvent, event_id) is not None:
            return OUTCOME_DUPLICATE

        try:
            apply_credit_grant(
                account_id=account_id,
                amount=credits,
                actor_id=SYSTEM_ACTOR_STRIPE,
                event=EVENT_STRIPE_PAYMENT_COMPLETED,
                reason=f"Payment for plan {plan_id} via Stripe.",
                plan_id=plan_id,
                checkout_session_id=checkout_session_id,
                payment_event_id=event_id,
            )
            db.session.add(ProcessedPaymentEvent(
                event_id=event_id,
                event_type=event_type,
                account_id=account_id,
                credits_granted=credits,
            ))
            db.session.commit()
        except AccountNotFoundError:
            db.session.rollback()
            return OUTCOME_UNKNOWN_ACCOUNT
        except CreditLimitExceededError:
            db.session.rollback()
            return OUTCOME_LIMIT_EXCEEDED
        except IntegrityError:
            db.session.rollback()
            # Concurrent delivery of the same event won the insert
            if db.session.get(ProcessedPaymentEvent, event_id) is not None:
                return OUTCOME_DUPLICATE
            raise
        return OUTCOME_GRANTED

    return run_with_retry(_op)


def process_webhook(payload: bytes, signature: str | None, gateway: PaymentGateway) -> WebhookResult:
    """
    Verify and apply a Stripe webhook delivery.

    Raises:
        SignatureInvalidError: bad/missing signature (400)
        MalformedEventError: event or checkout metadata incomplete (400)
        CreditGrantFailedError: database failure while granting (500)
    """
    try:
        event = gateway.construct_event(payload, signature)
    except SignatureVerificationFailed as exc:
        current_app.logger.warning("Stripe webhook signature verification failed: %s", exc)
        raise SignatureInvalidError(str(exc)) from exc
    except MalformedPayloadError as exc:
        raise MalformedEventError(str(exc)) from exc

    event_id = event.get("id")
    event_type = event.get("type")
    if not isinstance(event_id, str) or not event_id or not isinstance(event_type, str):
        raise MalformedEventError("Event is missing id or type")

    if event_type != EVENT_CHECKOUT_SESSION_COMPLETED:
        return WebhookResult(event_id=event_id, event_type=event_type, outcome=OUTCOME_IGNORED)

    data = event.get("data")
    session = data.get("object") if isinstance(data, dict) else None
    if not isinstance(session, dict):
        raise MalformedEventError("Event is missing data.object")
    metadata = session.get("metadata")
    if not metadata or not isinstance(metadata, dict):
        current_app.logger.error(
            "Stripe webhook %s missing metadata (session %s)", event_type, session.get("id")
        )
        raise MalformedEventError("Missing metadata in session.")

    account_id = metadata.get("userId")
    plan_id = metadata.get("planId")
    if not account_id or not plan_id:
        current_app.logger.error(
            "Stripe webhook %s missing userId or planId in metadata: %s", event_type, metadata
        )
        raise MalformedEventError("Missing userId or planId in metadata.")

    result = WebhookResult(
        event_id=event_id,
        event_type=event_type,
        outcome=OUTCOME_NO_CREDITS,
        account_id=account_id,
        plan_id=plan_id,
    )

    credits = plan_service.resolve_plan_credits(plan_id)
    if credits <= 0:
        current_app.logger.warning(
            "No credits added for user %s with plan %s (event %s); check payment plan configuration",
            account_id, plan_id, event_id,
        )
        return result

    try:
        result.outcome = _grant_payment_credits(
            event_id=event_id,
            event_type=event_type,
            account_id=account_id,
            plan_id=plan_id,
            checkout_session_id=session.get("id"),
            credits=credits,
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception(
            "Transaction failed adding credits to %s for plan %s (event %s)", account_id, plan_id, event_id
        )
        raise CreditGrantFailedError("Internal server error during credit update.") from exc

    if result.outcome == OUTCOME_GRANTED:
        result.credits_granted = credits
        current_app.logger.info(
            "Added %s credits to business %s for plan %s (event %s)", credits, account_id, plan_id, event_id
        )
    elif result.outcome == OUTCOME_DUPLICATE:
        current_app.logger.warning("Stripe event %s already processed; skipping", event_id)
    elif result.outcome == OUTCOME_LIMIT_EXCEEDED:
        current_app.logger.error(
            "Stripe event %s: %s credits would exceed the balance limit of account %s; no credits added",
            event_id, credits, account_id,
        )
    else:
        current_app.logger.error(
            "Stripe event %s references unknown account %s; no credits added", event_id, account_id
        )
    return result


def create_checkout_session(
    *,
    account_id: str,
    customer_email: str | None,
    plan_id,
    success_url,
    cancel_url,
    gateway: PaymentGateway,
) -> dict:
    """
    Start a Stripe Checkout for one unit of an active plan.

    The session metadata carries userId/planId back to process_webhook.
    """
    errors = {}
    plan = plan_service.get_plan(plan_id) if isinstance(plan_id, str) and plan_id else None
    if plan is None or not plan.is_active:
        errors["planId"] = "must reference an active plan"
    for key, value in (("successUrl", success_url), ("cancelUrl", cancel_url)):
        if not isinstance(value, str) or not value.startswith(("http://", "https://")):
            errors[key] = "must be an absolute http(s) URL"
    if errors:
        raise ValidationError(errors)

    return gateway.create_checkout_session(
        price_id=plan.id,
        success_url=success_url,
        cancel_url=cancel_url,
        metadata={"userId": account_id, "planId": plan.id},
        customer_email=customer_email,
    )
