"""Decimal arithmetic helpers for currency values.

Every monetary sum in the engine goes through this module so that totals
built from hundreds of transactions never pick up floating-point drift.
Callers may hand in ints, floats, strings or ``Decimal`` values; results
are always ``Decimal``.
"""

from __future__ import annotations

import logging
import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
ONE_HUNDRED = Decimal('100')
CENT = Decimal('0.01')


def to_money(value: Any) -> Decimal:
    """Convert a raw amount into a ``Decimal``.

    Floats are routed through ``str`` so ``0.1`` becomes ``Decimal('0.1')``
    rather than its binary approximation. Values that cannot be read as a
    number (``None``, empty strings, ``NaN``) become zero. Negative values
    are kept as they are.

    Args:
        value: Amount in any numeric or string form

    Returns:
        Decimal representation of the amount

    Example:
        >>> to_money(19.99)
        Decimal('19.99')
        >>> to_money(None)
        Decimal('0')
    """
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return ZERO
        return Decimal(str(value))
    if isinstance(value, int):
        return Decimal(value)
    text = str(value).strip()
    if not text:
        return ZERO
    try:
        result = Decimal(text)
    except InvalidOperation:
        logger.warning("Unreadable amount %r treated as zero", value)
        return ZERO
    return result if result.is_finite() else ZERO


def money_sum(values: Iterable[Any]) -> Decimal:
    """Sum amounts with decimal precision."""
    total = ZERO
    for value in values:
        total += to_money(value)
    return total


def add(left: Any, right: Any) -> Decimal:
    return to_money(left) + to_money(right)


def subtract(left: Any, right: Any) -> Decimal:
    return to_money(left) - to_money(right)


def multiply(left: Any, right: Any) -> Decimal:
    return to_money(left) * to_money(right)


def divide(numerator: Any, denominator: Any) -> Decimal:
    """Divide two amounts, returning zero when the denominator is zero.

    Args:
        numerator: Dividend
        denominator: Divisor

    Returns:
        ``numerator / denominator`` or ``Decimal('0')`` for a zero divisor
    """
    divisor = to_money(denominator)
    if divisor == ZERO:
        return ZERO
    return to_money(numerator) / divisor


def ratio_percent(part: Any, whole: Any) -> Decimal:
    """Express ``part`` as a percentage of ``whole`` (0 when ``whole`` is 0)."""
    return divide(part, whole) * ONE_HUNDRED


def percentage_of(amount: Any, percent: Any) -> Decimal:
    """Return ``percent`` percent of ``amount``."""
    return multiply(amount, percent) / ONE_HUNDRED


def clamp_non_negative(value: Any) -> Decimal:
    amount = to_money(value)
    return amount if amount > ZERO else ZERO


def quantize_cents(value: Any) -> Decimal:
    """Round to whole cents using half-up rounding (display and storage)."""
    return to_money(value).quantize(CENT, rounding=ROUND_HALF_UP)
