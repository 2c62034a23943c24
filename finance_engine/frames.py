"""Tabular view of transaction records.

The calculators filter transactions with boolean masks over a DataFrame,
the same way the dashboard's analytics prepare their data. Amounts stay
``Decimal`` objects (``object`` dtype) and are only ever summed through
``money.money_sum``; dates are parsed one value at a time so a malformed
date becomes ``NaT`` without disturbing its neighbours.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Optional

import pandas as pd

from .models import Transaction, as_transactions
from .money import money_sum
from .periods import parse_date

logger = logging.getLogger(__name__)

FRAME_COLUMNS = [
    'id',
    'type',
    'amount',
    'date',
    'paid_date',
    'is_paid',
    'category_id',
    'custom_budget_id',
    'financial_priority',
    'is_wallet_expense',
    'cash_currency',
    'cash_value',
    'effective_date',
]


def _row(txn: Transaction) -> dict:
    return {
        'id': txn.id,
        'type': txn.type,
        'amount': txn.amount,
        'date': parse_date(txn.date),
        'paid_date': parse_date(txn.paid_date),
        'is_paid': bool(txn.is_paid),
        'category_id': txn.category_id,
        'custom_budget_id': txn.custom_budget_id,
        'financial_priority': txn.financial_priority,
        'is_wallet_expense': txn.is_wallet_expense,
        'cash_currency': txn.cash_currency,
        'cash_value': txn.cash_amount if txn.cash_amount is not None else txn.amount,
    }


def transactions_frame(transactions: Optional[Iterable[Any]]) -> pd.DataFrame:
    """Build a DataFrame of transactions with parsed dates and an effective date.

    Args:
        transactions: ``Transaction`` objects or backend mappings

    Returns:
        DataFrame with ``FRAME_COLUMNS``. ``effective_date`` is the paid date
        for paid expenses that have one, otherwise the transaction date.
    """
    records = as_transactions(transactions)
    if not records:
        empty = pd.DataFrame(columns=FRAME_COLUMNS)
        for column in ('date', 'paid_date', 'effective_date'):
            empty[column] = pd.to_datetime(empty[column])
        for column in ('is_paid', 'is_wallet_expense'):
            empty[column] = empty[column].astype(bool)
        return empty

    frame = pd.DataFrame([_row(txn) for txn in records])
    frame['date'] = pd.to_datetime(frame['date'])
    frame['paid_date'] = pd.to_datetime(frame['paid_date'])

    settled = (frame['type'] == 'expense') & frame['is_paid'] & frame['paid_date'].notna()
    frame['effective_date'] = frame['paid_date'].where(settled, frame['date'])

    unreadable = frame['effective_date'].isna()
    if unreadable.any():
        logger.warning(
            "%d transaction(s) have no readable date and are left out of dated totals: %s",
            int(unreadable.sum()),
            ', '.join(frame.loc[unreadable, 'id'].astype(str)),
        )
    return frame


def date_mask(series: pd.Series, start: Optional[date], end: Optional[date]) -> pd.Series:
    """Inclusive window mask over a datetime column.

    Open bounds are allowed. Rows with ``NaT`` never match a bounded window.
    """
    mask = pd.Series(True, index=series.index)
    if start is None and end is None:
        return mask
    mask &= series.notna()
    if start is not None:
        mask &= series >= pd.Timestamp(start)
    if end is not None:
        mask &= series <= pd.Timestamp(end)
    return mask


def sum_amounts(frame: pd.DataFrame, column: str = 'amount'):
    """Decimal sum of a frame column."""
    if frame.empty:
        return money_sum([])
    return money_sum(frame[column].tolist())
