from decimal import Decimal, ROUND_HALF_UP

from risk.constants import INFINITE_MARGIN_LEVEL


class InvalidMarginInput(ValueError):
    pass


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # via str so 49.99 stays 49.99
        return Decimal(str(value))
    return Decimal(value)


def calculate_margin_level(equity, margin_used) -> Decimal:
    """
    Margin level % = equity / margin used × 100

    Full precision; round only for storage or display. No margin used
    means nothing can be called, so the level is infinite.
    """

    equity = to_decimal(equity)
    margin_used = to_decimal(margin_used)

    if margin_used < 0:
        raise InvalidMarginInput(f"margin_used must be non-negative, got {margin_used}")

    if margin_used == 0:
        return INFINITE_MARGIN_LEVEL

    return (equity / margin_used) * Decimal("100")


def round_margin_level(level: Decimal) -> Decimal:
    if level.is_infinite():
        return level
    return level.quantize(Decimal("0.01"), ROUND_HALF_UP)
