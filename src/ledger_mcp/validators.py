"""Argument validation shared by the ledger store, balance maintainer and server."""

from decimal import Decimal, InvalidOperation

from .exceptions import ValidationError
from .models import TransactionType

# Column widths inherited from the users/accounts/transactions schema
NAME_MAX_LENGTH = 256
EMAIL_MAX_LENGTH = 512


def parse_transaction_type(value: object) -> TransactionType:
    """Return the TransactionType for 0/1 (int or numeric string).

    Booleans are rejected even though ``True == 1``.

    Raises:
        ValidationError: For anything other than exactly 0 or 1.
    """
    if isinstance(value, TransactionType):
        return value
    if isinstance(value, bool):
        raise ValidationError("type must be 0 (out) or 1 (in), got a boolean")
    if isinstance(value, str) and value.strip() in ("0", "1"):
        return TransactionType(int(value.strip()))
    if isinstance(value, int) and value in (0, 1):
        return TransactionType(value)
    raise ValidationError(f"type must be 0 (out) or 1 (in), got {value!r}")


def parse_number(value: object, field: str) -> Decimal:
    """Convert a raw numeric input (int, float, Decimal or string) to a finite Decimal.

    Floats go through their shortest repr, so ``0.1`` becomes ``Decimal("0.1")``.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a numeric value")
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValidationError(f"{field} must be a numeric value") from exc
    else:
        raise ValidationError(f"{field} must be a numeric value")

    if not number.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return number


def parse_amount(value: object, field: str = "amount") -> Decimal:
    """Like parse_number, but the result must be a non-negative magnitude."""
    number = parse_number(value, field)
    if number < 0:
        raise ValidationError(f"{field} must not be negative")
    return number


def parse_id(value: object, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer id")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    else:
        raise ValidationError(f"{field} must be an integer id")
    if number <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return number


def validate_required_str(value: object, field: str, max_length: int) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"{field} cannot be empty")
    if len(trimmed) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return trimmed


def validate_email(value: object) -> str:
    email = validate_required_str(value, "email", EMAIL_MAX_LENGTH)
    local, sep, domain = email.partition("@")
    if not sep or not local or not domain:
        raise ValidationError("email must look like name@domain")
    return email
