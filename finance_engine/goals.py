"""Savings goal feasibility, progress and deposits.

Every function here is pure: a Goal plus context (income, expenses, other
goals' commitments, the current date) goes in, a number or a new Goal comes
out. Deposits return a copy of the goal with the ledger extended; the input
goal is never mutated.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from .exceptions import InvalidRecordError
from .models import FundingRule, Goal, LedgerEntry, as_goal
from .money import (
    ONE_HUNDRED,
    ZERO,
    clamp_non_negative,
    divide,
    percentage_of,
    ratio_percent,
    to_money,
)
from .periods import (
    add_months,
    add_weeks,
    as_utc_naive,
    calendar_months_between,
    parse_date,
    parse_datetime,
    utc_now,
    whole_weeks_between,
)

logger = logging.getLogger(__name__)

# Average number of each funding period in a calendar month. These are fixed
# engine constants, not settings.
WEEKS_PER_MONTH = Decimal('4.33')
BIWEEKLY_PERIODS_PER_MONTH = Decimal('2.16')
MONTHLY_PERIODS_PER_MONTH = Decimal('1')

PERIODS_PER_MONTH = {
    'weekly': WEEKS_PER_MONTH,
    'biweekly': BIWEEKLY_PERIODS_PER_MONTH,
    'monthly': MONTHLY_PERIODS_PER_MONTH,
}

STATUS_ON_TRACK = 'on_track'
STATUS_FUNDING_GAP = 'funding_gap'
STATUS_OVERFUNDED = 'overfunded'


def periods_per_month(frequency: Optional[str]) -> Decimal:
    """Number of ``frequency`` periods in an average month (monthly for unknown values)."""
    return PERIODS_PER_MONTH.get(frequency or 'monthly', MONTHLY_PERIODS_PER_MONTH)


def _today(today: Optional[date]) -> date:
    return today if today is not None else utc_now().date()


@dataclass(frozen=True)
class RequiredContribution:
    required_per_period: Decimal
    periods_remaining: int
    remaining: Decimal
    is_feasible: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _periods_until(deadline: date, today: date, frequency: str) -> int:
    if frequency == 'weekly':
        periods = whole_weeks_between(deadline, today)
    elif frequency == 'biweekly':
        periods = whole_weeks_between(deadline, today) // 2
    else:
        periods = calendar_months_between(deadline, today)
    return max(1, periods)


def calculate_required_contribution(
    target: Any,
    current_balance: Any,
    deadline: Any,
    frequency: str = 'monthly',
    today: Optional[date] = None,
) -> RequiredContribution:
    """Calculate how much must be saved each period to reach a target on time.

    Args:
        target: Goal target amount
        current_balance: Amount already saved
        deadline: Target date
        frequency: ``weekly``, ``biweekly`` or ``monthly``
        today: Reference date (defaults to today, UTC)

    Returns:
        RequiredContribution. Periods are whole periods between today and the
        deadline, never fewer than one.

    Example:
        >>> result = calculate_required_contribution(6000, 1000, date(2026, 6, 10),
        ...                                          'monthly', today=date(2026, 1, 10))
        >>> result.periods_remaining, result.required_per_period
        (5, Decimal('1000'))
    """
    remaining = to_money(target) - to_money(current_balance)
    if remaining <= ZERO:
        return RequiredContribution(ZERO, 0, ZERO, True)

    today = _today(today)
    due = parse_date(deadline)
    if due is None:
        logger.warning("Unreadable goal deadline %r; treating the goal as infeasible", deadline)
        return RequiredContribution(remaining, 1, remaining, False)

    periods = _periods_until(due, today, frequency)
    return RequiredContribution(
        required_per_period=remaining / Decimal(periods),
        periods_remaining=periods,
        remaining=remaining,
        is_feasible=periods > 0 and due > today,
    )


def _as_funding_rule(rule: Any) -> Optional[FundingRule]:
    if rule is None or isinstance(rule, FundingRule):
        return rule
    return FundingRule.from_record(rule)


def calculate_planned_contribution(funding_rule: Any, monthly_income: Any = 0) -> Decimal:
    """Monthly-equivalent contribution promised by a funding rule.

    A fixed rule's per-period amount is scaled up by the number of periods
    in a month (200 weekly → 866 monthly). A percentage rule is taken from
    monthly income and is already a monthly figure.
    """
    rule = _as_funding_rule(funding_rule)
    if rule is None:
        return ZERO
    if rule.type == 'percentage':
        return percentage_of(monthly_income, rule.percentage)
    return rule.amount * periods_per_month(rule.frequency)


def planned_contribution_per_period(funding_rule: Any, monthly_income: Any = 0) -> Decimal:
    rule = _as_funding_rule(funding_rule)
    if rule is None:
        return ZERO
    return divide(calculate_planned_contribution(rule, monthly_income), periods_per_month(rule.frequency))


@dataclass(frozen=True)
class FeasibilityAudit:
    is_feasible: bool
    timeline_feasible: bool
    funding_feasible: bool
    actual_surplus: Decimal
    required_monthly: Decimal
    planned_contribution: Decimal
    gap: Decimal
    surplus_after_goal: Decimal
    periods_remaining: int
    remaining: Decimal
    status: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def audit_goal_feasibility(
    goal: Any,
    monthly_income: Any,
    monthly_expenses: Any,
    existing_goals_commitment: Any = 0,
    today: Optional[date] = None,
) -> FeasibilityAudit:
    """Check a goal against both its deadline and the money actually available.

    Args:
        goal: Goal or backend mapping
        monthly_income: Income for the month
        monthly_expenses: Expenses for the month
        existing_goals_commitment: Planned monthly contributions of the
            user's other active goals
        today: Reference date

    Returns:
        FeasibilityAudit. ``status`` is ``on_track`` when funding is
        feasible, ``funding_gap`` when the plan falls short, otherwise
        ``overfunded``.
    """
    goal = as_goal(goal)
    required = calculate_required_contribution(
        goal.target_amount, goal.virtual_balance, goal.deadline, goal.frequency, today=today
    )
    actual_surplus = clamp_non_negative(
        to_money(monthly_income) - to_money(monthly_expenses) - to_money(existing_goals_commitment)
    )
    required_monthly = required.required_per_period * periods_per_month(goal.frequency)
    planned = calculate_planned_contribution(goal.funding_rule, monthly_income)
    gap = required_monthly - planned
    funding_feasible = planned <= actual_surplus and planned >= required_monthly

    if funding_feasible:
        status = STATUS_ON_TRACK
    elif gap > ZERO:
        status = STATUS_FUNDING_GAP
    else:
        status = STATUS_OVERFUNDED

    return FeasibilityAudit(
        is_feasible=required.is_feasible and funding_feasible,
        timeline_feasible=required.is_feasible,
        funding_feasible=funding_feasible,
        actual_surplus=actual_surplus,
        required_monthly=required_monthly,
        planned_contribution=planned,
        gap=gap,
        surplus_after_goal=actual_surplus - planned,
        periods_remaining=required.periods_remaining,
        remaining=required.remaining,
        status=status,
    )


def existing_goals_commitment(
    goals: Iterable[Any],
    exclude_goal_id: Optional[str],
    monthly_income: Any = 0,
) -> Decimal:
    """Sum of planned monthly contributions of every other active goal."""
    total = ZERO
    for item in goals or []:
        goal = as_goal(item)
        if goal.id == exclude_goal_id or goal.status != 'active':
            continue
        total += calculate_planned_contribution(goal.funding_rule, monthly_income)
    return total


def calculate_goal_progress(balance: Any, target: Any) -> Decimal:
    """Percentage of the target reached, clamped to ``[0, 100]``."""
    target = to_money(target)
    if target <= ZERO:
        return ZERO
    progress = ratio_percent(balance, target)
    return min(ONE_HUNDRED, clamp_non_negative(progress))


def _advance(start: date, frequency: str, periods: int) -> date:
    if frequency == 'weekly':
        return add_weeks(start, periods)
    if frequency == 'biweekly':
        return add_weeks(start, periods * 2)
    return add_months(start, periods)


def project_completion_date(goal: Any, monthly_income: Any = 0, today: Optional[date] = None) -> Optional[date]:
    """Date the goal is reached at its planned pace, or ``None`` without a plan."""
    goal = as_goal(goal)
    today = _today(today)
    per_period = planned_contribution_per_period(goal.funding_rule, monthly_income)
    if per_period <= ZERO:
        return None
    remaining = goal.target_amount - goal.virtual_balance
    if remaining <= ZERO:
        return today
    periods_needed = math.ceil(remaining / per_period)
    return _advance(today, goal.frequency, periods_needed)


def _advance_datetime(start: datetime, frequency: str) -> datetime:
    if frequency == 'weekly':
        return start + timedelta(weeks=1)
    if frequency == 'biweekly':
        return start + timedelta(weeks=2)
    return add_months(start, 1)


def calculate_next_deposit_date(goal: Any, now: Optional[datetime] = None) -> datetime:
    """Last ledger timestamp (or now, with no usable history) plus one funding period."""
    goal = as_goal(goal)
    now = as_utc_naive(now)
    last = None
    if goal.ledger_history:
        last = parse_datetime(goal.ledger_history[-1].timestamp)
    return _advance_datetime(last or now, goal.frequency)


def needs_settlement(goal: Any, now: Optional[datetime] = None) -> bool:
    goal = as_goal(goal)
    now = as_utc_naive(now)
    return goal.status == 'active' and now >= calculate_next_deposit_date(goal, now)


def format_goal_period(frequency: str, when: Any) -> str:
    """Ledger period label: ``YYYY-MM``, or ISO week ``YYYY-Www`` for weekly goals.

    Example:
        >>> format_goal_period('weekly', date(2026, 1, 7))
        '2026-W02'
    """
    day = parse_date(when) or utc_now().date()
    if frequency in ('weekly', 'biweekly'):
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"
    return f"{day.year:04d}-{day.month:02d}"


def apply_deposit(
    goal: Any,
    amount: Any,
    source: str = 'manual',
    notes: str = '',
    now: Optional[datetime] = None,
) -> Goal:
    """Record a deposit against a goal.

    Each call is a new deposit: the same amount applied twice yields two
    ledger entries. The goal is marked completed once its balance reaches
    the target.

    Args:
        goal: Goal or backend mapping
        amount: Positive deposit amount
        source: Where the deposit came from (``manual``, ``settlement``, ...)
        notes: Free-form note stored on the ledger entry
        now: Deposit timestamp (defaults to now, UTC)

    Returns:
        A new Goal with the balance and ledger updated

    Raises:
        InvalidRecordError: If the amount is not a positive number
    """
    goal = as_goal(goal)
    value = to_money(amount)
    if value <= ZERO:
        raise InvalidRecordError(f"Deposit amount must be positive, got {amount!r}")

    now = as_utc_naive(now)
    entry = LedgerEntry(
        timestamp=now.isoformat(),
        amount=value,
        source=source,
        notes=notes,
        period=format_goal_period(goal.frequency, now),
    )
    balance = goal.virtual_balance + value
    status = 'completed' if balance >= goal.target_amount else goal.status
    if status != goal.status:
        logger.info("Goal %s reached its target of %s", goal.id, goal.target_amount)
    return replace(
        goal,
        virtual_balance=balance,
        ledger_history=goal.ledger_history + (entry,),
        status=status,
    )
