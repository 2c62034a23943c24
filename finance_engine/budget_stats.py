"""Budget consumption statistics.

This module turns a budget plus its transactions into the numbers the
dashboard shows: allocated, paid, unpaid, remaining or over, and percentage
used. It covers user-authored custom budgets (with per-currency cash
allocations), the needs/wants/savings system budgets, and the monthly
income and expense aggregates that system budget limits are derived from.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import pandas as pd

from .config import get_income_lookback_months
from .frames import date_mask, sum_amounts, transactions_frame
from .models import (
    DEFAULT_PRIORITY,
    BudgetSettings,
    CategoryAllocation,
    CustomBudget,
    SystemBudget,
    as_categories,
    as_custom_budgets,
    as_settings,
)
from .money import (
    ZERO,
    add,
    clamp_non_negative,
    percentage_of,
    ratio_percent,
    subtract,
    to_money,
)
from .periods import add_months, month_boundaries, parse_date, ranges_overlap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BudgetStats:
    """Consumption of a single budget.

    ``remaining`` and ``over_amount`` are both clamped at zero, so at most
    one of them is ever non-zero.
    """

    allocated: Decimal
    paid: Decimal
    unpaid: Decimal
    used: Decimal
    remaining: Decimal
    over_amount: Decimal
    percentage: Decimal
    is_over_budget: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CashAllocationStats:
    currency_code: str
    allocated: Decimal
    spent: Decimal
    remaining: Decimal


@dataclass(frozen=True)
class CustomBudgetStats(BudgetStats):
    budget_id: str = ''
    cash: Tuple[CashAllocationStats, ...] = ()
    total_allocated_units: Decimal = ZERO
    total_spent_units: Decimal = ZERO
    transaction_count: int = 0


@dataclass(frozen=True)
class FinancialBreakdown:
    """Expense totals for one window split by priority and payment state."""

    needs_paid: Decimal = ZERO
    needs_unpaid: Decimal = ZERO
    wants_direct_paid: Decimal = ZERO
    wants_direct_unpaid: Decimal = ZERO
    wants_custom_paid: Decimal = ZERO
    wants_custom_unpaid: Decimal = ZERO
    savings_paid: Decimal = ZERO
    savings_unpaid: Decimal = ZERO

    @property
    def needs_total(self) -> Decimal:
        return self.needs_paid + self.needs_unpaid

    @property
    def wants_total(self) -> Decimal:
        return (
            self.wants_direct_paid
            + self.wants_direct_unpaid
            + self.wants_custom_paid
            + self.wants_custom_unpaid
        )

    @property
    def savings_total(self) -> Decimal:
        return self.savings_paid + self.savings_unpaid

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.update(
            needs_total=self.needs_total,
            wants_total=self.wants_total,
            savings_total=self.savings_total,
        )
        return data


@dataclass(frozen=True)
class AllocationStats:
    total_allocated: Decimal
    unallocated: Decimal
    unallocated_spent: Decimal
    unallocated_remaining: Decimal
    category_spending: Dict[str, BudgetStats] = field(default_factory=dict)


def summarize_usage(allocated: Any, paid: Any, unpaid: Any) -> BudgetStats:
    """Build the shared stats record from an allocation and its paid/unpaid totals.

    Args:
        allocated: Budgeted amount
        paid: Settled spending
        unpaid: Spending that is committed but not yet paid

    Returns:
        BudgetStats with ``used = paid + unpaid``

    Example:
        >>> stats = summarize_usage(1000, 800, 300)
        >>> stats.over_amount == 100, stats.percentage == 110
        (True, True)
    """
    allocated = to_money(allocated)
    paid = to_money(paid)
    unpaid = to_money(unpaid)
    used = paid + unpaid
    return BudgetStats(
        allocated=allocated,
        paid=paid,
        unpaid=unpaid,
        used=used,
        remaining=clamp_non_negative(allocated - used),
        over_amount=clamp_non_negative(used - allocated),
        percentage=ratio_percent(used, allocated),
        is_over_budget=used > allocated,
    )


def _window(start: Any, end: Any) -> Tuple[Optional[date], Optional[date]]:
    lower = parse_date(start) if start is not None else None
    upper = parse_date(end) if end is not None else None
    if (start is not None and lower is None) or (end is not None and upper is None):
        raise ValueError(f"Unreadable evaluation window: {start!r} - {end!r}")
    return lower, upper


def _as_custom_budget(budget: Any) -> CustomBudget:
    return budget if isinstance(budget, CustomBudget) else CustomBudget.from_record(budget)


def _as_system_budget(budget: Any) -> SystemBudget:
    return budget if isinstance(budget, SystemBudget) else SystemBudget.from_record(budget)


def custom_budget_stats(
    budget: Any,
    transactions: Iterable[Any],
    window_start: Any = None,
    window_end: Any = None,
) -> CustomBudgetStats:
    """Calculate statistics for a single custom budget.

    Only expenses linked to the budget through ``customBudgetId`` count.
    Paid spending is limited to expenses whose paid date falls inside the
    evaluation window; unpaid spending counts regardless of date. With no
    window every paid expense counts. Wallet-sourced cash expenses are
    tracked per currency against the budget's cash allocations.

    Args:
        budget: CustomBudget or backend mapping
        transactions: All transactions (filtered here by budget id)
        window_start: First day of the evaluation window
        window_end: Last day of the evaluation window

    Returns:
        CustomBudgetStats for the digital allocation plus cash details
    """
    budget = _as_custom_budget(budget)
    start, end = _window(window_start, window_end)
    frame = transactions_frame(transactions)

    linked = frame[(frame['custom_budget_id'] == budget.id) & (frame['type'] == 'expense')]
    digital = linked[~linked['is_wallet_expense'].astype(bool)]
    cash = linked[linked['is_wallet_expense'].astype(bool)]

    paid_in_window = digital['is_paid'].astype(bool) & date_mask(digital['paid_date'], start, end)
    if start is not None or end is not None:
        undated = digital['is_paid'].astype(bool) & digital['paid_date'].isna()
        if undated.any():
            logger.warning(
                "Budget %s: %d paid expense(s) without a readable paid date skipped",
                budget.id,
                int(undated.sum()),
            )

    paid = sum_amounts(digital[paid_in_window])
    unpaid = sum_amounts(digital[~digital['is_paid'].astype(bool)])
    usage = summarize_usage(budget.allocated_amount, paid, unpaid)

    cash_stats = []
    cash_paid = cash[cash['is_paid'].astype(bool) & date_mask(cash['paid_date'], start, end)]
    for allocation in budget.cash_allocations:
        spent = sum_amounts(cash_paid[cash_paid['cash_currency'] == allocation.currency_code], 'cash_value')
        cash_stats.append(
            CashAllocationStats(
                currency_code=allocation.currency_code,
                allocated=allocation.amount,
                spent=spent,
                remaining=subtract(allocation.amount, spent),
            )
        )

    total_allocated = budget.allocated_amount + sum((c.allocated for c in cash_stats), ZERO)
    total_spent = usage.used + sum((c.spent for c in cash_stats), ZERO)

    return CustomBudgetStats(
        **asdict(usage),
        budget_id=budget.id,
        cash=tuple(cash_stats),
        total_allocated_units=total_allocated,
        total_spent_units=total_spent,
        transaction_count=int(len(linked)),
    )


def _with_priority(frame: pd.DataFrame, categories: Optional[Iterable[Any]]) -> pd.DataFrame:
    """Attach the resolved priority: transaction override, then category, then wants."""
    priority_by_category = {c.id: c.priority for c in as_categories(categories)}
    working = frame.copy()
    from_category = working['category_id'].map(priority_by_category)
    working['priority'] = working['financial_priority'].where(
        working['financial_priority'].notna(), from_category
    )
    working['priority'] = working['priority'].where(working['priority'].notna(), DEFAULT_PRIORITY)
    return working


def overlapping_custom_budget_ids(custom_budgets: Optional[Iterable[Any]], start: Any, end: Any) -> Set[str]:
    """Ids of custom budgets whose date range overlaps ``[start, end]``."""
    return {
        budget.id
        for budget in as_custom_budgets(custom_budgets)
        if ranges_overlap(budget.start_date, budget.end_date, start, end)
    }


def system_budget_expenses(
    system_budget: Any,
    transactions: Iterable[Any],
    categories: Optional[Iterable[Any]] = None,
    custom_budgets: Optional[Iterable[Any]] = None,
) -> pd.DataFrame:
    """Select the expenses that count directly against a system budget.

    An expense counts when its priority matches the budget type, its
    effective date falls inside the budget's window, and it is not already
    attributed to a custom budget overlapping that window. The custom budget
    exclusion is applied here, before any paid/unpaid split.
    """
    system_budget = _as_system_budget(system_budget)
    frame = _with_priority(transactions_frame(transactions), categories)
    start, end = parse_date(system_budget.start_date), parse_date(system_budget.end_date)
    if start is None or end is None:
        logger.warning(
            "System budget %s (%s) has an unreadable window; no expenses attributed",
            system_budget.id,
            system_budget.system_budget_type,
        )
        return frame.iloc[0:0]
    excluded = overlapping_custom_budget_ids(custom_budgets, start, end)

    mask = (
        (frame['type'] == 'expense')
        & (frame['priority'] == system_budget.system_budget_type)
        & date_mask(frame['effective_date'], start, end)
        & ~frame['custom_budget_id'].isin(list(excluded))
    )
    return frame[mask]


def system_budget_stats(
    system_budget: Any,
    transactions: Iterable[Any],
    categories: Optional[Iterable[Any]] = None,
    custom_budgets: Optional[Iterable[Any]] = None,
    monthly_income: Any = None,
    settings: Any = None,
    historical_average: Any = 0,
) -> BudgetStats:
    """Calculate statistics for a needs, wants or savings system budget.

    Args:
        system_budget: SystemBudget or backend mapping
        transactions: All transactions
        categories: Categories used to resolve each expense's priority
        custom_budgets: Custom budgets whose expenses must not be double counted
        monthly_income: When given and the stored ``budgetAmount`` is zero, the
            limit is resolved from the budget's target percentage
        settings: Budget settings used with ``monthly_income``
        historical_average: Baseline income for fixed-lifestyle mode

    Returns:
        BudgetStats for the budget's own window
    """
    system_budget = _as_system_budget(system_budget)
    selected = system_budget_expenses(system_budget, transactions, categories, custom_budgets)
    is_paid = selected['is_paid'].astype(bool)
    paid = sum_amounts(selected[is_paid])
    unpaid = sum_amounts(selected[~is_paid])

    allocated = system_budget.budget_amount
    if monthly_income is not None and allocated == ZERO:
        allocated = resolve_budget_limit(system_budget, monthly_income, settings, historical_average)
    return summarize_usage(allocated, paid, unpaid)


def financial_breakdown(
    transactions: Iterable[Any],
    categories: Optional[Iterable[Any]],
    custom_budgets: Optional[Iterable[Any]],
    start: Any,
    end: Any,
) -> FinancialBreakdown:
    """Split a window's expenses by priority, payment state and custom budget.

    Expenses attributed to a custom budget overlapping the window are
    reported under ``wants_custom_*`` only, never in the direct totals.
    """
    lower, upper = _window(start, end)
    frame = _with_priority(transactions_frame(transactions), categories)
    in_window = frame[(frame['type'] == 'expense') & date_mask(frame['effective_date'], lower, upper)]
    custom_ids = overlapping_custom_budget_ids(custom_budgets, lower, upper)

    is_custom = in_window['custom_budget_id'].isin(list(custom_ids))
    is_paid = in_window['is_paid'].astype(bool)
    direct = in_window[~is_custom]
    direct_paid = is_paid[~is_custom]

    def _direct(priority: str, paid_state: bool) -> Decimal:
        rows = direct[(direct['priority'] == priority) & (direct_paid == paid_state)]
        return sum_amounts(rows)

    return FinancialBreakdown(
        needs_paid=_direct('needs', True),
        needs_unpaid=_direct('needs', False),
        wants_direct_paid=_direct('wants', True),
        wants_direct_unpaid=_direct('wants', False),
        wants_custom_paid=sum_amounts(in_window[is_custom & is_paid]),
        wants_custom_unpaid=sum_amounts(in_window[is_custom & ~is_paid]),
        savings_paid=_direct('savings', True),
        savings_unpaid=_direct('savings', False),
    )


def monthly_income(transactions: Iterable[Any], start: Any, end: Any) -> Decimal:
    """Total income dated inside the window."""
    lower, upper = _window(start, end)
    frame = transactions_frame(transactions)
    rows = frame[(frame['type'] == 'income') & date_mask(frame['date'], lower, upper)]
    return sum_amounts(rows)


def monthly_paid_expenses(transactions: Iterable[Any], start: Any, end: Any) -> Decimal:
    """Total paid expenses whose effective date is inside the window."""
    lower, upper = _window(start, end)
    frame = transactions_frame(transactions)
    rows = frame[
        (frame['type'] == 'expense')
        & frame['is_paid'].astype(bool)
        & date_mask(frame['effective_date'], lower, upper)
    ]
    return sum_amounts(rows)


def total_month_expenses(transactions: Iterable[Any], start: Any, end: Any) -> Decimal:
    """Total paid and unpaid expenses whose effective date is inside the window."""
    lower, upper = _window(start, end)
    frame = transactions_frame(transactions)
    rows = frame[(frame['type'] == 'expense') & date_mask(frame['effective_date'], lower, upper)]
    return sum_amounts(rows)


def historical_average_income(
    transactions: Iterable[Any],
    year: int,
    month: int,
    lookback_months: Optional[int] = None,
) -> Decimal:
    """Average monthly income over the months before ``year``/``month``.

    Used as the baseline for fixed-lifestyle mode. Months with no income
    count as zero.
    """
    lookback = lookback_months if lookback_months is not None else get_income_lookback_months()
    if lookback <= 0:
        return ZERO
    records = list(transactions or [])
    if not records:
        return ZERO
    anchor = date(year, month, 1)
    total = ZERO
    for offset in range(1, lookback + 1):
        prior = add_months(anchor, -offset)
        start, end = month_boundaries(prior.year, prior.month)
        total += monthly_income(records, start, end)
    return total / Decimal(lookback)


def resolve_budget_limit(
    goal: Any,
    monthly_income: Any,
    settings: Any = None,
    historical_average: Any = 0,
) -> Decimal:
    """Resolve a needs/wants/savings limit from its goal and the month's income.

    In absolute mode (``goal_mode`` False) the goal's ``target_amount`` is
    the limit. In fixed-lifestyle mode, when income exceeds the historical
    average, needs and wants are computed from the average and the whole
    overflow goes to savings. Otherwise the limit is ``income × percentage``.

    Args:
        goal: BudgetGoal or SystemBudget (anything with a priority/type,
            ``target_percentage`` and ``target_amount``)
        monthly_income: Income for the month
        settings: BudgetSettings or settings mapping
        historical_average: Baseline income for fixed-lifestyle mode

    Returns:
        The budget limit
    """
    if goal is None:
        return ZERO
    settings = as_settings(settings) if settings is not None else BudgetSettings()
    income = to_money(monthly_income)
    baseline = to_money(historical_average)
    percent = to_money(getattr(goal, 'target_percentage', 0))
    priority = getattr(goal, 'priority', None) or getattr(goal, 'system_budget_type', None)

    if not settings.goal_mode:
        return to_money(getattr(goal, 'target_amount', 0))

    if settings.fixed_lifestyle_mode and baseline > ZERO and income > baseline:
        standard = percentage_of(baseline, percent)
        if priority == 'savings':
            return add(standard, income - baseline)
        return standard

    return percentage_of(income, percent)


def bonus_savings_potential(
    system_budgets: Iterable[Any],
    transactions: Iterable[Any],
    categories: Optional[Iterable[Any]],
    custom_budgets: Optional[Iterable[Any]],
    start: Any,
    end: Any,
    monthly_income: Any = 0,
    settings: Any = None,
    historical_average: Any = 0,
) -> Decimal:
    """Unspent needs and wants headroom: Σ(limit − spending) over both budgets."""
    breakdown = financial_breakdown(transactions, categories, custom_budgets, start, end)
    budgets = {b.system_budget_type: b for b in map(_as_system_budget, system_budgets or [])}
    potential = ZERO
    if 'needs' in budgets:
        limit = resolve_budget_limit(budgets['needs'], monthly_income, settings, historical_average)
        potential += limit - breakdown.needs_total
    if 'wants' in budgets:
        limit = resolve_budget_limit(budgets['wants'], monthly_income, settings, historical_average)
        potential += limit - breakdown.wants_total
    return potential


def custom_budget_allocation_stats(
    budget: Any,
    allocations: Iterable[Any],
    transactions: Iterable[Any],
) -> AllocationStats:
    """Per-category usage inside a custom budget plus the unallocated remainder."""
    budget = _as_custom_budget(budget)
    parsed: List[CategoryAllocation] = [
        a if isinstance(a, CategoryAllocation) else CategoryAllocation.from_record(a)
        for a in allocations or []
    ]
    frame = transactions_frame(transactions)
    linked = frame[(frame['custom_budget_id'] == budget.id) & (frame['type'] == 'expense')]
    is_paid = linked['is_paid'].astype(bool)

    total_allocated = sum((a.allocated_amount for a in parsed), ZERO)
    unallocated = budget.allocated_amount - total_allocated

    category_spending: Dict[str, BudgetStats] = {}
    for allocation in parsed:
        in_category = linked['category_id'] == allocation.category_id
        category_spending[allocation.category_id] = summarize_usage(
            allocation.allocated_amount,
            sum_amounts(linked[in_category & is_paid]),
            sum_amounts(linked[in_category & ~is_paid]),
        )

    allocated_ids = {a.category_id for a in parsed}
    outside = linked[linked['category_id'].isna() | ~linked['category_id'].isin(list(allocated_ids))]
    unallocated_spent = sum_amounts(outside)

    return AllocationStats(
        total_allocated=total_allocated,
        unallocated=unallocated,
        unallocated_spent=unallocated_spent,
        unallocated_remaining=unallocated - unallocated_spent,
        category_spending=category_spending,
    )
