"""Small shared helpers for amounts and timestamps."""

import secrets
import string
import time
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation

from wallet_ledger.core.exceptions import ValidationError

# Amount columns are DECIMAL(32, 8)
AMOUNT_PLACES = 8

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def utc_now() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(UTC).replace(tzinfo=None)


def random_code(length: int = 9) -> str:
    """Random uppercase alphanumeric code."""
    return "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(length))


def timestamped_code(prefix: str, length: int = 9) -> str:
    """Build ``prefix + epoch millis + random code``.

    Example: TXN1760800000000AB12CD34E
    """
    return f"{prefix}{int(time.time() * 1000)}{random_code(length)}"


def to_amount(value: Decimal | int | str) -> Decimal:
    """Convert input to a strictly positive Decimal amount.

    Raises:
        ValidationError: If the value is not a finite positive number
            with at most 8 decimal places
    """
    if isinstance(value, (bool, float)):
        # floats lose precision silently; callers must pass Decimal/str/int
        raise ValidationError("Amount must be a Decimal, int or numeric string")
    try:
        amount = Decimal(value) if not isinstance(value, Decimal) else value
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e

    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    if amount <= 0:
        raise ValidationError("Amount must be positive", {"amount": str(amount)})
    if -amount.as_tuple().exponent > AMOUNT_PLACES:  # type: ignore[operator]
        raise ValidationError(
            f"Amount supports at most {AMOUNT_PLACES} decimal places",
            {"amount": str(amount)},
        )
    return amount
