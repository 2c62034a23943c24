"""Formatting utilities for currency and period labels.

Only presentation code and chart series use these; calculation results
stay as raw ``Decimal`` values.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from .models import BudgetSettings
from .money import quantize_cents, to_money


def format_currency(amount: Any, settings: Optional[BudgetSettings] = None, include_sign: bool = True) -> str:
    """Format a currency amount with the user's currency symbol.

    Args:
        amount: The amount to format
        settings: Settings carrying the currency symbol (defaults to ``$``)
        include_sign: Whether to include the currency symbol

    Returns:
        Formatted currency string (e.g., "$1,234.56" or "1,234.56")

    Example:
        >>> format_currency(1234.56)
        '$1,234.56'
        >>> format_currency(-5, include_sign=False)
        '-5.00'
    """
    value = quantize_cents(to_money(amount))
    symbol = settings.currency_symbol if settings else '$'
    formatted = f"{abs(value):,.2f}"
    sign = '-' if value < 0 else ''
    return f"{sign}{symbol}{formatted}" if include_sign else f"{sign}{formatted}"


def format_period_label(value: date) -> str:
    """Month label such as ``Jan 2026``."""
    return value.strftime('%b %Y')


def format_day_label(value: date) -> str:
    """Day label such as ``Jan 5``."""
    return f"{value.strftime('%b')} {value.day}"
