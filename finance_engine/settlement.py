"""Cross-period settlement labels.

An expense incurred on Jan 31 and paid on Feb 2 counts against February
(its effective date) but belongs logically to January. These helpers only
label such transactions for display; they never change any total.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, Iterable, Optional

from .formatting import format_period_label
from .models import CustomBudget, Transaction, as_custom_budgets, as_transactions
from .periods import is_date_in_range, parse_date, same_calendar_month


@dataclass(frozen=True)
class CrossPeriodInfo:
    is_cross_period: bool = False
    bucket_name: Optional[str] = None
    original_period: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


NOT_CROSS_PERIOD = CrossPeriodInfo()


def _in_window(value: date, start: Optional[date], end: Optional[date]) -> bool:
    if start is None or end is None:
        return False
    return start <= value <= end


def detect_cross_period_settlement(
    transaction: Any,
    month_start: Any,
    month_end: Any,
    budgets: Optional[Iterable[Any]] = None,
) -> CrossPeriodInfo:
    """Decide whether a transaction was incurred in one period and paid in another.

    The transaction is cross-period when its ``date`` and ``paidDate`` fall
    in different calendar months and the custom budget it is attributed to
    covers exactly one of the two dates.

    Args:
        transaction: Transaction or backend mapping
        month_start: First day of the month being viewed
        month_end: Last day of the month being viewed
        budgets: Custom budgets to look the attribution up in

    Returns:
        CrossPeriodInfo; ``original_period`` names the month of the date that
        lies outside the viewed month (``Jan 2026``)
    """
    txn = transaction if isinstance(transaction, Transaction) else Transaction.from_record(transaction)

    incurred = parse_date(txn.date)
    paid = parse_date(txn.paid_date)
    if incurred is None or paid is None or same_calendar_month(incurred, paid):
        return NOT_CROSS_PERIOD
    if not txn.custom_budget_id:
        return NOT_CROSS_PERIOD

    budget: Optional[CustomBudget] = next(
        (b for b in as_custom_budgets(budgets) if b.id == txn.custom_budget_id),
        None,
    )
    if budget is None:
        return NOT_CROSS_PERIOD

    covers_incurred = is_date_in_range(incurred, budget.start_date, budget.end_date)
    covers_paid = is_date_in_range(paid, budget.start_date, budget.end_date)
    if covers_incurred == covers_paid:
        return NOT_CROSS_PERIOD

    view_start, view_end = parse_date(month_start), parse_date(month_end)
    incurred_in_view = _in_window(incurred, view_start, view_end)
    paid_in_view = _in_window(paid, view_start, view_end)
    outside = paid if incurred_in_view and not paid_in_view else incurred

    return CrossPeriodInfo(
        is_cross_period=True,
        bucket_name=budget.name,
        original_period=format_period_label(outside),
    )


def annotate_cross_period(
    transactions: Iterable[Any],
    month_start: Any,
    month_end: Any,
    budgets: Optional[Iterable[Any]] = None,
) -> Dict[str, CrossPeriodInfo]:
    """Map each cross-period transaction id to its label; others are omitted."""
    custom_budgets = as_custom_budgets(budgets)
    labels = {}
    for txn in as_transactions(transactions):
        info = detect_cross_period_settlement(txn, month_start, month_end, custom_budgets)
        if info.is_cross_period:
            labels[txn.id] = info
    return labels
