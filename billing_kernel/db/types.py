"""
Module: billing_kernel.db.types
Responsibility: Annotated column aliases and the ONLY sanctioned conversions
    between decimal dollars and integer cents.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and every module.  MUST NOT import from any of those layers.

Invariants enforced:
    - Canonical unit: every stored or computed money amount is an ``int``
      count of cents.  Dollars exist only at the procedure boundary.
    - Rounding: ROUND_HALF_UP to the cent, in exactly one place
      (``dollars_to_cents`` / ``round_to_cents``).
    - No floats.  ``dollars_to_cents`` rejects float input outright.

Failure modes:
    - TypeError on float input.
    - decimal.InvalidOperation on non-numeric strings.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# Money in cents
Cents = Annotated[int, BigInteger]

# Measured quantity (roof squares)
Quantity = Annotated[Decimal, Numeric(18, 4)]

# Short identifier strings (statuses, types, roles)
ShortCode = Annotated[str, String(50)]

# Long text for descriptions and notes
LongText = Annotated[str, String(4000)]

CENTS_PER_DOLLAR = 100
DEFAULT_ROUNDING = ROUND_HALF_UP
_CENT = Decimal("0.01")


def round_to_cents(value: Decimal) -> int:
    """
    Round a dollar-denominated Decimal to whole cents.

    This is the only rounding function for money in the system.

    Example:
        round_to_cents(Decimal("12.345")) -> 1235
    """
    return int(
        (value * CENTS_PER_DOLLAR).quantize(Decimal("1"), rounding=DEFAULT_ROUNDING)
    )


def dollars_to_cents(value: Decimal | int | str) -> int:
    """
    Convert a dollar amount to integer cents.

    Accepts Decimal, int (whole dollars) or a numeric string.

    Raises:
        TypeError: If value is a float.
    """
    if isinstance(value, (bool, float)):
        raise TypeError(
            f"Money must not be passed as {type(value).__name__}; use Decimal or str"
        )
    return round_to_cents(value if isinstance(value, Decimal) else Decimal(str(value)))


def cents_to_dollars(cents: int) -> Decimal:
    """
    Convert integer cents to a two-place Decimal dollar amount.

    Example:
        cents_to_dollars(650000) -> Decimal("6500.00")
    """
    return (Decimal(cents) / CENTS_PER_DOLLAR).quantize(_CENT)


def format_dollars(cents: int) -> str:
    """Render cents as a signed dollar string, e.g. ``-500.00``."""
    return f"{cents_to_dollars(cents):.2f}"


def multiply_cents(unit_cents: int, quantity: Decimal) -> int:
    """
    Multiply a per-unit cent amount by a decimal quantity.

    The product is rounded half-up to the cent.
    """
    return int(
        (Decimal(unit_cents) * quantity).quantize(Decimal("1"), rounding=DEFAULT_ROUNDING)
    )


def percent_of(cents: int, percent: Decimal) -> int:
    """Return ``percent`` percent of a cent amount, rounded half-up."""
    return multiply_cents(cents, percent / Decimal(100))
