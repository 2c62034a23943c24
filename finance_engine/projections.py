"""Month-end income and expense forecasts.

Two independent heuristics fill in the rest of the month being viewed:

* Income looks for the recurring "anchors" in past months (the salary, the
  occasional large secondary payment, the trickle of small credits) and
  predicts whichever of them has not shown up yet.
* Expenses measure how much is usually spent in a month and on which days
  of the month, then spread whatever is left of that average over the
  remaining days in proportion to those historical weights.

Both return sparse ``{day_of_month: Decimal}`` maps that ``build_projection``
turns into a day-by-day chart frame plus month-level totals.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date
from decimal import ROUND_DOWN, Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .config import get_history_months
from .formatting import format_day_label
from .frames import date_mask, sum_amounts, transactions_frame
from .models import as_transactions
from .money import CENT, ZERO, money_sum, quantize_cents, to_money
from .periods import add_months, days_in_month as month_length, first_day_of_month, month_boundaries, utc_now

logger = logging.getLogger(__name__)

# A month's largest income below this share of the average salary means the
# salary has not arrived yet.
SALARY_SHORTFALL_RATIO = Decimal('0.8')
# Secondary income below this share of its historical median is still expected.
SECONDARY_SHORTFALL_RATIO = Decimal('0.7')
# Secondary income is only predicted when it appeared in more than half the months.
SECONDARY_LIKELIHOOD_THRESHOLD = Decimal('0.5')
# Non-salary income at or above this amount is "secondary", below it is "petty".
SECONDARY_INCOME_FLOOR = Decimal('100')
# Predicted secondary income lands no later than this day (or tomorrow, if later).
SECONDARY_LATEST_DAY = 15
DEFAULT_SALARY_DAY = 25

CHART_COLUMNS = [
    'day',
    'full_date',
    'label',
    'income',
    'expense',
    'predicted_income',
    'predicted_expense',
    'is_future',
    'is_prediction',
]


def _upper_median(values: List[Any]) -> Any:
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


def _by_month(frame: pd.DataFrame) -> Dict[str, List[Tuple[Decimal, int]]]:
    months: Dict[str, List[Tuple[Decimal, int]]] = {}
    for amount, when in zip(frame['amount'], frame['effective_date']):
        months.setdefault(when.strftime('%Y-%m'), []).append((amount, when.day))
    return months


def calculate_income_projections(
    history: Iterable[Any],
    current: Iterable[Any],
    days_in_month: int,
    today_day: int,
) -> Dict[int, Decimal]:
    """Predict the income still to arrive this month.

    Args:
        history: Income transactions from previous months
        current: Income transactions of the current month so far
        days_in_month: Length of the current month
        today_day: Day of month of today

    Returns:
        Sparse map of day of month to predicted income

    Example:
        Three past months each paid a 3000 salary on the 25th. On the 10th
        of a 30-day month with no salary yet, the result is ``{25: 3000}``.
    """
    predictions: Dict[int, Decimal] = {}
    frame = transactions_frame(history)
    frame = frame[(frame['type'] == 'income') & frame['effective_date'].notna()]
    if frame.empty:
        return predictions

    months = _by_month(frame)
    num_months = Decimal(max(1, len(months)))

    salaries = []
    secondary_totals = []
    petty_total = ZERO
    for entries in months.values():
        ordered = sorted(entries, key=lambda entry: entry[0], reverse=True)
        salaries.append(ordered[0])
        others = [amount for amount, _ in ordered[1:]]
        secondary_totals.append(money_sum(a for a in others if a >= SECONDARY_INCOME_FLOOR))
        petty_total += money_sum(a for a in others if a < SECONDARY_INCOME_FLOOR)

    avg_salary = money_sum(amount for amount, _ in salaries) / num_months
    median_salary_day = _upper_median([day for _, day in salaries]) or DEFAULT_SALARY_DAY
    median_secondary = _upper_median(secondary_totals)
    likelihood = Decimal(sum(1 for total in secondary_totals if total > ZERO)) / num_months
    avg_petty = petty_total / num_months

    current_frame = transactions_frame(current)
    current_amounts = current_frame.loc[current_frame['type'] == 'income', 'amount'].tolist()
    current_max = max(current_amounts, default=ZERO)
    salary_threshold = avg_salary * SALARY_SHORTFALL_RATIO
    current_secondary = money_sum(
        a for a in current_amounts if SECONDARY_INCOME_FLOOR <= a < salary_threshold
    )

    def _inject(day: int, amount: Decimal) -> None:
        predictions[day] = quantize_cents(predictions.get(day, ZERO) + amount)

    if current_max < salary_threshold and median_salary_day > today_day:
        _inject(median_salary_day, avg_salary)

    if (
        current_secondary < median_secondary * SECONDARY_SHORTFALL_RATIO
        and likelihood > SECONDARY_LIKELIHOOD_THRESHOLD
    ):
        target_day = min(days_in_month, max(today_day + 1, SECONDARY_LATEST_DAY))
        if target_day > today_day:
            _inject(target_day, median_secondary)

    if avg_petty > ZERO and today_day < days_in_month:
        _inject(days_in_month, avg_petty)

    return predictions


def calculate_expense_projections(
    history: Iterable[Any],
    current: Iterable[Any],
    days_in_month: int,
    today_day: int,
) -> Dict[int, Decimal]:
    """Spread the expected rest-of-month spending over the remaining days.

    Days are weighted by how much was historically spent on them (amount,
    not count). When none of the remaining days carries any weight the gap
    is spread evenly instead. Shares are whole cents that add up to the gap;
    days that receive nothing are left out of the map.

    Args:
        history: Expense transactions from previous months
        current: Expense transactions of the current month so far
        days_in_month: Length of the current month
        today_day: Day of month of today

    Returns:
        Sparse map of day of month to predicted expense
    """
    predictions: Dict[int, Decimal] = {}
    frame = transactions_frame(history)
    frame = frame[(frame['type'] == 'expense') & frame['effective_date'].notna()]
    if frame.empty:
        return predictions

    days = frame['effective_date'].dt.day
    weights = frame.groupby(days)['amount'].agg(money_sum)
    total_history = money_sum(frame['amount'])
    num_months = max(1, frame['effective_date'].dt.strftime('%Y-%m').nunique())
    avg_monthly = total_history / Decimal(num_months)

    current_frame = transactions_frame(current)
    current_total = sum_amounts(current_frame[current_frame['type'] == 'expense'])
    gap = max(ZERO, avg_monthly - current_total)
    if gap <= ZERO:
        return predictions

    future_days = np.arange(today_day + 1, days_in_month + 1)
    if future_days.size == 0:
        return predictions

    future_weights = {int(day): weights.get(int(day), ZERO) for day in future_days}
    total_future_weight = money_sum(future_weights.values())

    if total_future_weight > ZERO:
        shares = {day: weight for day, weight in future_weights.items() if weight > ZERO}
    else:
        shares = {int(day): Decimal(1) for day in future_days}
    return _split_in_cents(quantize_cents(gap), shares)


def _split_in_cents(amount: Decimal, weights: Dict[int, Decimal]) -> Dict[int, Decimal]:
    """Split ``amount`` across days by weight in whole cents.

    Each day gets its share rounded down; the leftover cents go one at a
    time to the days with the largest dropped fraction (earliest day on
    ties), so the parts always add back to ``amount``.
    """
    total = money_sum(weights.values())
    exact = {day: amount * weight / total for day, weight in weights.items()}
    parts = {day: value.quantize(CENT, rounding=ROUND_DOWN) for day, value in exact.items()}
    leftover = int((amount - money_sum(parts.values())) / CENT)
    by_fraction = sorted(parts, key=lambda day: (-(exact[day] - parts[day]), day))
    for day in by_fraction[:leftover]:
        parts[day] += CENT
    return {day: value for day, value in parts.items() if value > ZERO}


@dataclass(frozen=True)
class ProjectionTotals:
    actual_income: Decimal = ZERO
    actual_expense: Decimal = ZERO
    projected_remaining_income: Decimal = ZERO
    projected_remaining_expense: Decimal = ZERO

    @property
    def final_projected_income(self) -> Decimal:
        return self.actual_income + self.projected_remaining_income

    @property
    def final_projected_expense(self) -> Decimal:
        return self.actual_expense + self.projected_remaining_expense

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.update(
            final_projected_income=self.final_projected_income,
            final_projected_expense=self.final_projected_expense,
        )
        return data


@dataclass(frozen=True)
class ProjectionResult:
    chart: pd.DataFrame
    totals: ProjectionTotals

    def to_dict(self) -> Dict[str, Any]:
        return {
            'chart': self.chart.to_dict(orient='records'),
            'totals': self.totals.to_dict(),
        }


def history_window(today: date, months: Optional[int] = None) -> Tuple[date, date]:
    """First and last day of the ``months`` full months before today's month."""
    months = months if months is not None else get_history_months()
    anchor = first_day_of_month(today.year, today.month)
    start = add_months(anchor, -months)
    last_full = add_months(anchor, -1)
    _, end = month_boundaries(last_full.year, last_full.month)
    return start, end


def build_projection(
    current_transactions: Iterable[Any],
    history_transactions: Optional[Iterable[Any]],
    year: int,
    month: int,
    today: Optional[date] = None,
) -> ProjectionResult:
    """Build the day-by-day chart and totals for a month.

    Forecasts are only produced when the month being viewed is the current
    month and history is available; other months show actuals only. Past
    days carry actual amounts and no prediction, today carries its actual
    amount in both series, future days carry predictions and no actuals.

    Args:
        current_transactions: Transactions to chart (filtered to the month here)
        history_transactions: Past transactions, usually ``history_window`` months
        year: Viewed year
        month: Viewed month (1-12)
        today: Reference date

    Returns:
        ProjectionResult with a chart frame (``CHART_COLUMNS``) and totals
    """
    today = today or utc_now().date()
    length = month_length(year, month)
    month_start, month_end = month_boundaries(year, month)

    records = as_transactions(current_transactions)
    frame = transactions_frame(records)
    month_mask = date_mask(frame['effective_date'], month_start, month_end)
    in_month = frame[month_mask]

    income_map: Dict[int, Decimal] = {}
    expense_map: Dict[int, Decimal] = {}
    history = list(history_transactions or [])
    is_current_month = (year, month) == (today.year, today.month)
    if is_current_month and history:
        current_records = [record for record, keep in zip(records, month_mask.tolist()) if keep]
        income_map = calculate_income_projections(
            history, [r for r in current_records if r.type == 'income'], length, today.day
        )
        expense_map = calculate_expense_projections(
            history, [r for r in current_records if r.type == 'expense'], length, today.day
        )
        logger.debug("Projection for %04d-%02d: income %s, expense %s", year, month, income_map, expense_map)

    days = in_month['effective_date'].dt.day
    income_by_day = in_month[in_month['type'] == 'income'].groupby(days)['amount'].agg(money_sum)
    expense_by_day = in_month[in_month['type'] == 'expense'].groupby(days)['amount'].agg(money_sum)

    rows = []
    actual_income = actual_expense = ZERO
    remaining_income = remaining_expense = ZERO
    for day in np.arange(1, length + 1):
        day = int(day)
        current = date(year, month, day)
        is_future = current > today
        income = to_money(income_by_day.get(day, ZERO))
        expense = to_money(expense_by_day.get(day, ZERO))
        actual_income += income
        actual_expense += expense

        if is_future:
            predicted_income = income_map.get(day, ZERO)
            predicted_expense = expense_map.get(day, ZERO)
            remaining_income += predicted_income
            remaining_expense += predicted_expense
        elif current == today:
            predicted_income, predicted_expense = income, expense
        else:
            predicted_income = predicted_expense = None

        rows.append({
            'day': day,
            'full_date': current.isoformat(),
            'label': format_day_label(current),
            'income': None if is_future else income,
            'expense': None if is_future else expense,
            'predicted_income': predicted_income,
            'predicted_expense': predicted_expense,
            'is_future': is_future,
            'is_prediction': is_future and (income_map.get(day, ZERO) > ZERO or expense_map.get(day, ZERO) > ZERO),
        })

    chart = pd.DataFrame(rows, columns=CHART_COLUMNS).astype(
        {'income': object, 'expense': object, 'predicted_income': object, 'predicted_expense': object}
    )
    totals = ProjectionTotals(
        actual_income=actual_income,
        actual_expense=actual_expense,
        projected_remaining_income=remaining_income,
        projected_remaining_expense=remaining_expense,
    )
    return ProjectionResult(chart=chart, totals=totals)
