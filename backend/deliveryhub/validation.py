from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^\d{10}$")

MIN_PASSWORD_LENGTH = 6
MIN_NAME_LENGTH = 2

# Largest single credit grant, and the largest balance a grant may produce.
# Both stay well inside a 32-bit INTEGER column (Postgres int4).
MAX_CREDIT_GRANT = 1_000_000
MAX_CREDIT_BALANCE = 2_000_000_000


class ValidationError(ValueError):
    """
    400-level input problem.

    fields maps each offending input field (dotted for nested values, e.g.
    "deliveryAddress.lat") to a human-readable message.
    """

    def __init__(self, fields: dict[str, str] | str):
        if isinstance(fields, str):
            fields = {"_": fields}
        self.fields = dict(fields)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.fields.items()))


@dataclass(frozen=True)
class Location:
    description: str
    lat: float
    lng: float


@dataclass(frozen=True)
class RegistrationRequest:
    email: str
    password: str
    owner_name: str
    business_name: str
    contact_phone: str
    pickup: Location


@dataclass(frozen=True)
class OrderRequest:
    customer_name: str
    customer_phone: str
    delivery: Location
    notes: str | None = None
    amount_to_collect: Decimal | None = None


def _is_number(value: Any) -> bool:
    # bool is an int subclass; "true" is not a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _string(payload: dict, key: str, errors: dict, *, min_length: int = 1, label: str | None = None) -> str:
    label = label or key
    value = payload.get(key)
    if not isinstance(value, str):
        errors[label] = "is required"
        return ""
    value = value.strip()
    if len(value) < min_length:
        errors[label] = "is required" if min_length == 1 else f"must be at least {min_length} characters"
    return value


def _phone(payload: dict, key: str, errors: dict) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not PHONE_RE.match(value.strip()):
        errors[key] = "must be exactly 10 digits"
        return ""
    return value.strip()


def _location(payload: dict, key: str, errors: dict) -> Location | None:
    raw = payload.get(key)
    if not isinstance(raw, dict):
        errors[key] = "must be an object with description, lat and lng"
        return None

    start = len(errors)
    description = _string(raw, "description", errors, label=f"{key}.description")

    lat = raw.get("lat")
    if not _is_number(lat) or not -90 <= lat <= 90:
        errors[f"{key}.lat"] = "must be a number between -90 and 90"
    lng = raw.get("lng")
    if not _is_number(lng) or not -180 <= lng <= 180:
        errors[f"{key}.lng"] = "must be a number between -180 and 180"

    if len(errors) != start:
        return None
    return Location(description=description, lat=float(lat), lng=float(lng))


def _require_object(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def validate_registration(payload: Any) -> RegistrationRequest:
    """Validate a RegisterBusiness request body (camelCase keys, as sent by the web client)."""
    payload = _require_object(payload)
    errors: dict[str, str] = {}

    email = payload.get("email")
    if not isinstance(email, str) or not EMAIL_RE.match(email.strip()):
        errors["email"] = "must be a valid email address"
        email = ""
    else:
        email = email.strip().lower()

    password = payload.get("password")
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = f"must be at least {MIN_PASSWORD_LENGTH} characters"
        password = ""

    owner_name = _string(payload, "ownerName", errors, min_length=MIN_NAME_LENGTH)
    business_name = _string(payload, "businessName", errors, min_length=MIN_NAME_LENGTH)
    contact_phone = _phone(payload, "contactPhone", errors)
    pickup = _location(payload, "defaultPickupAddress", errors)

    if errors:
        raise ValidationError(errors)

    return RegistrationRequest(
        email=email,
        password=password,
        owner_name=owner_name,
        business_name=business_name,
        contact_phone=contact_phone,
        pickup=pickup,
    )


def validate_order_payload(payload: Any) -> OrderRequest:
    """Validate a CreateOrder payload."""
    payload = _require_object(payload)
    errors: dict[str, str] = {}

    customer_name = _string(payload, "customerName", errors)
    customer_phone = _phone(payload, "customerPhone", errors)
    delivery = _location(payload, "deliveryAddress", errors)

    notes = payload.get("notes")
    if notes is not None and not isinstance(notes, str):
        errors["notes"] = "must be a string"
    elif isinstance(notes, str):
        notes = notes.strip() or None

    amount = payload.get("amountToCollect")
    if amount is not None:
        try:
            if isinstance(amount, bool):
                raise InvalidOperation
            amount = Decimal(str(amount))
            if not amount.is_finite() or amount < 0:
                raise InvalidOperation
            amount = amount.quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError):
            errors["amountToCollect"] = "must be a non-negative number"
            amount = None

    if errors:
        raise ValidationError(errors)

    return OrderRequest(
        customer_name=customer_name,
        customer_phone=customer_phone,
        delivery=delivery,
        notes=notes,
        amount_to_collect=amount,
    )


def validate_profile_update(payload: Any) -> dict:
    """
    Validate a partial account profile update.

    Only ownerName, businessName, contactPhone and defaultPickupAddress may be
    changed; email and credits are not client-writable.
    """
    payload = _require_object(payload)
    errors: dict[str, str] = {}
    allowed = {"ownerName", "businessName", "contactPhone", "defaultPickupAddress"}

    for key in payload:
        if key not in allowed:
            errors[key] = "field not allowed"

    patch: dict = {}
    if "ownerName" in payload:
        patch["owner_name"] = _string(payload, "ownerName", errors, min_length=MIN_NAME_LENGTH)
    if "businessName" in payload:
        patch["business_name"] = _string(payload, "businessName", errors, min_length=MIN_NAME_LENGTH)
    if "contactPhone" in payload:
        patch["contact_phone"] = _phone(payload, "contactPhone", errors)
    if "defaultPickupAddress" in payload:
        patch["pickup"] = _location(payload, "defaultPickupAddress", errors)

    if errors:
        raise ValidationError(errors)
    if not patch:
        raise ValidationError("No fields to update")
    return patch


def parse_positive_int(value: Any, field: str, maximum: int | None = None) -> int:
    """
    Strict positive integer: rejects bools, floats, decimals and scientific notation.

    With maximum, larger values are rejected before they reach the database.
    """
    if isinstance(value, bool):
        raise ValidationError({field: "must be a positive integer"})
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.isdecimal():
            raise ValidationError({field: "must be a positive integer"})
        value = int(stripped)
    if not isinstance(value, int) or value <= 0:
        raise ValidationError({field: "must be a positive integer"})
    if maximum is not None and value > maximum:
        raise ValidationError({field: f"must not exceed {maximum:,}"})
    return value
