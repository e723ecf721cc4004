
# app/payments/validation.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.errors import ValidationError

_EMAIL = TypeAdapter(EmailStr)

# Safaricom mobile ranges: 07XXXXXXXX and 01XXXXXXXX (ASCII digits only)
_LOCAL_RE = re.compile(r"^0([17][0-9]{8})$")
_INTL_RE = re.compile(r"^254([17][0-9]{8})$")
_BARE_RE = re.compile(r"^([17][0-9]{8})$")
_SEPARATORS_RE = re.compile(r"[\s\-().]")

MAX_DESCRIPTION_LEN = 100
# Daraja per-transaction ceiling; also keeps amounts inside the integer column
MAX_AMOUNT = 250_000
DEFAULT_DESCRIPTION = "Payment"


@dataclass(frozen=True)
class PaymentRequest:
    phone: str  # canonical 254XXXXXXXXX
    amount: int
    email: str
    description: Optional[str] = None


def normalize_phone(raw: Any) -> str:
    """
    Accepts 07XXXXXXXX / 01XXXXXXXX, 7XXXXXXXX / 1XXXXXXXX or 2547XXXXXXXX / 2541XXXXXXXX
    (optionally with a leading "+", spaces or dashes) and returns 254XXXXXXXXX.
    """
    if raw is None or isinstance(raw, bool):
        raise ValidationError("phone", "Phone number is required")
    if isinstance(raw, int):
        raw = str(raw)
    if not isinstance(raw, str):
        raise ValidationError("phone", "Phone number must be a string")

    value = _SEPARATORS_RE.sub("", raw.strip())
    if value.startswith("+"):
        value = value[1:]

    m = _LOCAL_RE.match(value) or _INTL_RE.match(value) or _BARE_RE.match(value)
    if not m:
        raise ValidationError("phone", "Invalid phone number. Use 07XXXXXXXX or 2547XXXXXXXX")
    return f"254{m.group(1)}"


def validate_amount(raw: Any) -> int:
    if raw is None or isinstance(raw, bool):
        raise ValidationError("amount", "Amount is required")
    if isinstance(raw, float):
        if not raw.is_integer():
            raise ValidationError("amount", "Amount must be a whole number")
        raw = int(raw)
    if isinstance(raw, str):
        text = raw.strip()
        if not (text.isascii() and text.isdigit()):
            raise ValidationError("amount", "Amount must be a positive whole number")
        raw = int(text)
    if not isinstance(raw, int):
        raise ValidationError("amount", "Amount must be a whole number")
    if raw <= 0:
        raise ValidationError("amount", "Amount must be greater than zero")
    if raw > MAX_AMOUNT:
        raise ValidationError("amount", f"Amount must not exceed {MAX_AMOUNT}")
    return raw


def validate_email(raw: Any) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("email", "Email is required")
    try:
        return str(_EMAIL.validate_python(raw.strip()))
    except PydanticValidationError:
        raise ValidationError("email", "Invalid email address") from None


def clean_description(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError("description", "Description must be a string")
    value = " ".join(raw.split())
    return value[:MAX_DESCRIPTION_LEN] or None


def validate_payment_request(*, phone: Any, amount: Any, email: Any, description: Any = None) -> PaymentRequest:
    return PaymentRequest(
        phone=normalize_phone(phone),
        amount=validate_amount(amount),
        email=validate_email(email),
        description=clean_description(description),
    )
