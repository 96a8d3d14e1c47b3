from decimal import Decimal, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value):
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value):
    return to_decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)
