"""
Conversions between API amounts (Decimal) and stored amounts (integer cents).

The API accepts and returns decimals with at most two fractional digits;
the database stores integer cents. Keeping the conversion in one place
means no float ever touches a monetary value.
"""

from decimal import Decimal, InvalidOperation

CENT = Decimal("0.01")


def to_cents(amount: Decimal) -> int:
    """
    Convert a decimal amount to integer cents.

    Raises:
        ValueError: If the amount is not finite or has more than two
                    fractional digits (e.g. 10.005).
    """
    try:
        amount = Decimal(amount)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a decimal amount: {amount!r}") from exc

    if not amount.is_finite():
        raise ValueError(f"Amount must be finite, got {amount}")

    cents = amount * 100
    if cents != cents.to_integral_value():
        raise ValueError(f"Amount {amount} has more than two decimal places")
    return int(cents)


def from_cents(cents: int) -> Decimal:
    """Convert integer cents to a two-place Decimal (1050 -> Decimal("10.50"))."""
    return (Decimal(cents) / 100).quantize(CENT)
