"""Pure helpers: transaction naming, signed effects and amount rendering."""

from decimal import Decimal

from .exceptions import ValidationError
from .models import TransactionType
from .validators import NAME_MAX_LENGTH, parse_transaction_type


def effect(tx_type: object, amount: Decimal) -> Decimal:
    """Signed contribution of a transaction to its account balance.

    IN adds the magnitude, OUT subtracts it.
    """
    if parse_transaction_type(tx_type) is TransactionType.IN:
        return amount
    return -amount


def name_prefix(tx_type: object) -> str:
    return f"T{int(parse_transaction_type(tx_type))}-"


def format_transaction_name(tx_type: object, raw_name: str) -> str:
    """Derive the stored display name: ``T{type}-{RAW NAME UPPERCASED}``.

    >>> format_transaction_name(0, "rent")
    'T0-RENT'
    """
    formatted = name_prefix(tx_type) + raw_name.upper()
    if len(formatted) > NAME_MAX_LENGTH:
        raise ValidationError(
            f"formatted transaction name must be at most {NAME_MAX_LENGTH} characters"
        )
    return formatted


def reformat_for_type(stored_name: str, old_type: object, new_type: object) -> str:
    """Swap the type prefix of an already formatted name.

    Names that do not carry the old prefix are kept as the raw part.
    """
    old_prefix = name_prefix(old_type)
    raw = stored_name[len(old_prefix):] if stored_name.startswith(old_prefix) else stored_name
    return format_transaction_name(new_type, raw)


def format_amount(value: object) -> str:
    """Render an amount the way a NUMBER column prints.

    Plain positional digits without trailing zeros or an exponent:
    ``500``, ``12.5``, ``0.00001``.
    """
    number = value if isinstance(value, Decimal) else Decimal(str(value))
    return format(number.normalize(), "f")
