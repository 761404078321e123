"""Scaled-integer arithmetic with explicit rounding.

All values are plain Python ints interpreted against a scalar (``SCALAR_7``
or ``SCALAR_9``). Python ints never wrap, so every result is range-checked
against i128 instead: leaving the range raises ``ArithmeticOverflowError``
rather than saturating.

Rounding direction is part of each call site's contract. Amounts owed by
users round up, amounts owed to users round down.
"""

from lendpool.data.constants import I128_MAX, I128_MIN
from lendpool.protocol.errors import ArithmeticOverflowError


def checked(value: int) -> int:
    """Return *value* if it fits in an i128, else raise."""
    if value < I128_MIN or value > I128_MAX:
        raise ArithmeticOverflowError(f"value out of i128 range: {value}")
    return value


def _floor_div(numerator: int, denominator: int) -> int:
    if denominator == 0:
        raise ArithmeticOverflowError("division by zero")
    return numerator // denominator


def _ceil_div(numerator: int, denominator: int) -> int:
    if denominator == 0:
        raise ArithmeticOverflowError("division by zero")
    return -((-numerator) // denominator)


def mul_floor(x: int, y: int, scalar: int) -> int:
    """``x * y / scalar`` rounded toward negative infinity."""
    return checked(_floor_div(x * y, scalar))


def mul_ceil(x: int, y: int, scalar: int) -> int:
    """``x * y / scalar`` rounded toward positive infinity."""
    return checked(_ceil_div(x * y, scalar))


def div_floor(x: int, y: int, scalar: int) -> int:
    """``x * scalar / y`` rounded toward negative infinity."""
    return checked(_floor_div(x * scalar, y))


def div_ceil(x: int, y: int, scalar: int) -> int:
    """``x * scalar / y`` rounded toward positive infinity."""
    return checked(_ceil_div(x * scalar, y))


def checked_add(x: int, y: int) -> int:
    return checked(x + y)


def checked_sub(x: int, y: int) -> int:
    return checked(x - y)
