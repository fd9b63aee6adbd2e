"""
Helpers de dinero: Decimal con 2 decimales, redondeo half-up al persistir y
comparaciones con tolerancia de centavo.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Union

from posledger.core.config import settings

CENT = Decimal("0.01")
QUANTITY_STEP = Decimal("0.001")
ZERO = Decimal("0")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convierte a Decimal sin redondear (floats pasan por str para evitar ruido binario)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Monto inválido: {value!r}")


def to_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_quantity(value: Number) -> Decimal:
    return to_decimal(value).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Number]) -> Decimal:
    return to_money(sum((to_decimal(v) for v in values), ZERO))


def _epsilon() -> Decimal:
    return settings.CURRENCY_EPSILON


def money_eq(a: Number, b: Number) -> bool:
    return abs(to_decimal(a) - to_decimal(b)) < _epsilon()


def money_gt(a: Number, b: Number) -> bool:
    """a > b por al menos un epsilon"""
    return to_decimal(a) - to_decimal(b) >= _epsilon()


def money_lt(a: Number, b: Number) -> bool:
    return money_gt(b, a)


def money_gte(a: Number, b: Number) -> bool:
    return not money_lt(a, b)
