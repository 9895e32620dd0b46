# Overview: Service-layer operations for business accounts; encapsulates business logic and database work.

"""
Business Account Service

Registration is a two-step saga across the identity store and the account
table:

1. create the identity (committed on its own)
2. tag it with {"role": "business"} and insert the Account with 0 credits

If step 2 fails the identity from step 1 is deleted before the error is
raised, so no identity is left without an account.
"""

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Account, CreditAudit
from ..time_utils import utcnow
from ..validation import RegistrationRequest
from . import auth_service


class AccountError(Exception):
    """Raised for account operation errors."""
    pass


class AccountNotFoundError(AccountError):
    """Raised when the account does not exist."""
    pass


class RegistrationFailedError(AccountError):
    """Raised when the account record could not be created (identity rolled back)."""
    pass


def _create_account_record(user_id: str, request: RegistrationRequest) -> Account:
    auth_service.set_custom_claims(user_id, {"role": auth_service.ROLE_BUSINESS}, merge=False)

    account = Account(
        id=user_id,
        email=request.email,
        owner_name=request.owner_name,
        business_name=request.business_name,
        contact_phone=request.contact_phone,
        pickup_description=request.pickup.description,
        pickup_lat=request.pickup.lat,
        pickup_lng=request.pickup.lng,
        credits=0,
    )
    db.session.add(account)
    db.session.commit()
    return account


def register_business(request: RegistrationRequest) -> Account:
    """
    Register a business owner: identity + role claim + account.

    Raises:
        EmailAlreadyExistsError: email already registered (nothing created)
        RegistrationFailedError: account creation failed; identity removed
    """
    user = auth_service.create_identity(
        email=request.email,
        password=request.password,
        display_name=request.owner_name,
    )
    user_id = user.id

    try:
        return _create_account_record(user_id, request)
    except (SQLAlchemyError, auth_service.AuthError) as exc:
        db.session.rollback()
        current_app.logger.error(
            "Account creation failed for identity %s, removing identity: %s", user_id, exc
        )
        auth_service.delete_identity(user_id)
        raise RegistrationFailedError("Could not create business account") from exc


def get_account(account_id: str) -> Account:
    account = db.session.get(Account, account_id)
    if account is None:
        raise AccountNotFoundError(f"Account {account_id} not found")
    return account


def update_profile(account_id: str, patch: dict) -> Account:
    """
    Apply a validated profile patch (see validation.validate_profile_update).

    Credits are never touched here; a plain ORM update of profile columns
    cannot race with the balance's SQL-level increments.
    """
    account = get_account(account_id)

    for key in ("owner_name", "business_name", "contact_phone"):
        if key in patch:
            setattr(account, key, patch[key])

    pickup = patch.get("pickup")
    if pickup is not None:
        account.pickup_description = pickup.description
        account.pickup_lat = pickup.lat
        account.pickup_lng = pickup.lng

    account.updated_at = utcnow()
    db.session.commit()
    return account


def list_credit_audits(account_id: str, limit: int = 100) -> list[CreditAudit]:
    return (
        db.session.query(CreditAudit)
        .filter_by(account_id=account_id)
        .order_by(CreditAudit.created_at.desc(), CreditAudit.id)
        .limit(limit)
        .all()
    )
