# Overview: Service-layer operations for payment plan configuration.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import PaymentPlan
from ..time_utils import utcnow


def get_plan(plan_id: str) -> PaymentPlan | None:
    return db.session.get(PaymentPlan, plan_id)


def list_active_plans() -> list[PaymentPlan]:
    return db.session.query(PaymentPlan).filter_by(is_active=True).order_by(PaymentPlan.credits).all()


def resolve_plan_credits(plan_id: str) -> int:
    """
    Credits (base + bonus) purchased with plan_id.

    Missing, inactive or zero-credit plans resolve to 0 and are logged; the
    caller decides what a zero grant means.
    """
    plan = get_plan(plan_id)
    if plan is None:
        current_app.logger.error("Plan with ID %s not found in payment plan configuration", plan_id)
        return 0
    if not plan.is_active:
        current_app.logger.error("Plan with ID %s is inactive", plan_id)
        return 0
    if not plan.credits or plan.credits <= 0:
        current_app.logger.error("Plan with ID %s has no credits defined", plan_id)
        return 0
    return plan.total_credits


def upsert_plan(
    plan_id: str,
    name: str,
    credits: int,
    bonus_credits: int | None = None,
    is_active: bool = True,
) -> PaymentPlan:
    """Create or replace a plan (operator CLI)."""
    if credits < 0 or (bonus_credits is not None and bonus_credits < 0):
        raise ValueError("Credits cannot be negative")

    plan = get_plan(plan_id)
    if plan is None:
        plan = PaymentPlan(id=plan_id)
        db.session.add(plan)

    plan.name = name
    plan.credits = credits
    plan.bonus_credits = bonus_credits
    plan.is_active = is_active
    plan.updated_at = utcnow()
    db.session.commit()
    return plan
