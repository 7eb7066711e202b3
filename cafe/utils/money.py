from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
SECONDS_PER_HOUR = Decimal(3600)


def to_money(value) -> Decimal:
    """Quantize a numeric value to cents, rounding half up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def duration_hours(start_time, end_time) -> Decimal:
    """Length of [start_time, end_time) in hours; fractions are kept."""
    seconds = Decimal(str((end_time - start_time).total_seconds()))
    return seconds / SECONDS_PER_HOUR


def apply_percent_discount(amount, percent) -> tuple:
    """
    Split `amount` into (discount, final) for a whole-number percentage.

    Both parts are rounded to cents and always add back up to the rounded
    original amount.
    """
    amount = to_money(amount)
    discount = to_money(amount * Decimal(percent) / Decimal(100))
    return discount, amount - discount
