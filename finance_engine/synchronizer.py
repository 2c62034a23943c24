"""Keep the needs/wants/savings system budgets in step with goals and income.

The synchronizer is the only stateful part of the engine. It reads and
writes through a small store contract (``filter`` / ``create`` /
``update``) so any persistence backend can sit behind it, and it owns a
guard that stops the same synchronization from running twice: once while
it is in flight, and again after it has completed for unchanged inputs.
Without the second check a caller that refetches after our own writes would
trigger us again in a loop.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, replace
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from .budget_stats import resolve_budget_limit
from .config import get_horizon_months, get_sync_tolerance, get_system_budget_labels
from .exceptions import SynchronizationError
from .models import BudgetGoal, BudgetSettings, SystemBudget, as_budget_goals, as_settings
from .money import ZERO, quantize_cents, to_money
from .periods import is_past_month, month_boundaries, month_sequence, utc_now

logger = logging.getLogger(__name__)

IDLE = 'idle'
RUNNING = 'running'

REASON_COMPLETED = 'completed'
REASON_IN_FLIGHT = 'in_flight'
REASON_UP_TO_DATE = 'up_to_date'


class SystemBudgetStore(Protocol):
    """Persistence contract used by the synchronizer."""

    def filter(self, **criteria: Any) -> List[Mapping[str, Any]]:
        ...

    def create(self, record: Mapping[str, Any]) -> Mapping[str, Any]:
        ...

    def update(self, record_id: str, changes: Mapping[str, Any]) -> Any:
        ...


def _month_label(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


@dataclass(frozen=True)
class SyncKey:
    """Everything a synchronization pass depends on."""

    year: int
    month: int
    horizon_start: Tuple[int, int]
    goal_count: int
    goal_fingerprint: Tuple[Tuple[str, str, str], ...]
    income_fingerprint: Tuple[Tuple[str, str], ...]
    goal_mode: bool
    fixed_lifestyle_mode: bool

    @classmethod
    def build(
        cls,
        goals: Iterable[BudgetGoal],
        year: int,
        month: int,
        income_by_month: Mapping[str, Any],
        settings: BudgetSettings,
        historical_average: Any = 0,
        today: Optional[date] = None,
    ) -> 'SyncKey':
        goals = list(goals)
        today = today or utc_now().date()
        goal_fingerprint = tuple(
            sorted((g.priority, str(g.target_percentage), str(g.target_amount)) for g in goals)
        )
        income_fingerprint = tuple(
            sorted((str(k), str(to_money(v))) for k, v in (income_by_month or {}).items())
        ) + (('historical_average', str(to_money(historical_average))),)
        return cls(
            year=year,
            month=month,
            horizon_start=(today.year, today.month),
            goal_count=len(goals),
            goal_fingerprint=goal_fingerprint,
            income_fingerprint=income_fingerprint,
            goal_mode=settings.goal_mode,
            fixed_lifestyle_mode=settings.fixed_lifestyle_mode,
        )


class SyncGuard:
    """Two-state guard (idle/running) plus the last completed key.

    Both transitions happen under a lock so that two threads asking for the
    same key cannot both get in.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.state = IDLE
        self.running_key: Optional[SyncKey] = None
        self.last_completed_key: Optional[SyncKey] = None

    def try_acquire(self, key: SyncKey) -> Optional[str]:
        """Move to running for ``key``; returns the refusal reason, or None on success."""
        with self._lock:
            if self.state == RUNNING:
                return REASON_IN_FLIGHT
            if self.last_completed_key == key:
                return REASON_UP_TO_DATE
            self.state = RUNNING
            self.running_key = key
            return None

    def release(self, key: SyncKey, completed: bool) -> None:
        with self._lock:
            if self.running_key != key:
                return
            if completed:
                self.last_completed_key = key
            self.state = IDLE
            self.running_key = None

    def reset(self) -> None:
        with self._lock:
            self.last_completed_key = None


@dataclass(frozen=True)
class SyncReport:
    key: SyncKey
    ran: bool
    reason: str
    created: Tuple[SystemBudget, ...] = ()
    updated: Tuple[SystemBudget, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _goal_by_priority(goals: Iterable[BudgetGoal]) -> Dict[str, BudgetGoal]:
    return {goal.priority: goal for goal in goals}


def ensure_system_budgets_exist(
    store: SystemBudgetStore,
    goals: Iterable[Any],
    year: int,
    month: int,
    monthly_income: Any = 0,
    settings: Any = None,
    historical_average: Any = 0,
) -> Tuple[List[SystemBudget], List[SystemBudget]]:
    """Insert the month's system budgets that do not exist yet.

    One budget per goal priority. Existing budgets are returned untouched.

    Args:
        store: Persistence backend
        goals: Budget goals (one per priority)
        year: Year of the month to materialize
        month: Month to materialize
        monthly_income: Income the new budgets are sized from
        settings: Budget settings (percentage or absolute mode)
        historical_average: Baseline income for fixed-lifestyle mode

    Returns:
        ``(budgets, created)``: every budget of the month, and the subset
        that was created by this call
    """
    settings = as_settings(settings) if settings is not None else BudgetSettings()
    labels = get_system_budget_labels()
    start, end = month_boundaries(year, month)
    budgets: List[SystemBudget] = []
    created: List[SystemBudget] = []

    for priority, goal in _goal_by_priority(as_budget_goals(goals)).items():
        matches = store.filter(
            systemBudgetType=priority,
            startDate=start.isoformat(),
            endDate=end.isoformat(),
        )
        if matches:
            if len(matches) > 1:
                logger.warning(
                    "%d %s system budgets found for %s; using the first",
                    len(matches),
                    priority,
                    _month_label(year, month),
                )
            budgets.append(SystemBudget.from_record(matches[0]))
            continue

        label = labels.get(priority, {})
        amount = quantize_cents(resolve_budget_limit(goal, monthly_income, settings, historical_average))
        budget = SystemBudget(
            id=None,
            name=label.get('name', priority.title()),
            system_budget_type=priority,
            budget_amount=amount,
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            target_percentage=goal.target_percentage,
            target_amount=goal.target_amount,
            color=label.get('color', ''),
        )
        saved = store.create(budget.to_record())
        if saved:
            budget = SystemBudget.from_record(saved)
        logger.info("Created %s system budget for %s: %s", priority, _month_label(year, month), amount)
        budgets.append(budget)
        created.append(budget)

    return budgets, created


class SystemBudgetSynchronizer:
    """Materialize and refresh system budgets for a rolling horizon of months.

    Example:
        >>> sync = SystemBudgetSynchronizer(store)
        >>> report = sync.synchronize(goals, 2026, 3, {'2026-03': 4000})
        >>> report.reason
        'completed'
    """

    def __init__(
        self,
        store: SystemBudgetStore,
        settings: Any = None,
        horizon_months: Optional[int] = None,
        tolerance: Any = None,
        guard: Optional[SyncGuard] = None,
    ):
        self.store = store
        self.settings = as_settings(settings) if settings is not None else BudgetSettings()
        self.horizon_months = horizon_months if horizon_months is not None else get_horizon_months()
        self.tolerance = to_money(tolerance) if tolerance is not None else get_sync_tolerance()
        self.guard = guard or SyncGuard()

    def months_to_sync(self, year: int, month: int, today: date) -> List[Tuple[int, int]]:
        """The viewed month followed by the horizon starting at today's month."""
        months = [(year, month)]
        for pair in month_sequence(today.year, today.month, self.horizon_months):
            if pair not in months:
                months.append(pair)
        return months

    def synchronize(
        self,
        goals: Iterable[Any],
        year: int,
        month: int,
        income_by_month: Optional[Mapping[str, Any]] = None,
        historical_average: Any = 0,
        today: Optional[date] = None,
    ) -> SyncReport:
        """Run one synchronization pass unless it is in flight or already done.

        Args:
            goals: Active budget goals
            year: Viewed year
            month: Viewed month
            income_by_month: Income per ``YYYY-MM``; months without an entry
                use the viewed month's income
            historical_average: Baseline income for fixed-lifestyle mode
            today: Reference date

        Returns:
            SyncReport describing what was created and updated

        Raises:
            SynchronizationError: If the store fails. The guard is released
                and the pass is retried on the next call.
        """
        goals = as_budget_goals(goals)
        income_by_month = dict(income_by_month or {})
        today = today or utc_now().date()
        key = SyncKey.build(
            goals, year, month, income_by_month, self.settings, historical_average, today=today
        )

        refusal = self.guard.try_acquire(key)
        if refusal is not None:
            logger.debug("Skipping system budget sync for %s: %s", _month_label(year, month), refusal)
            return SyncReport(key=key, ran=False, reason=refusal)

        completed = False
        try:
            logger.info("Synchronizing system budgets from %s", _month_label(year, month))
            created, updated = self._run(goals, year, month, income_by_month, historical_average, today)
            completed = True
        except Exception as exc:
            logger.exception("System budget sync failed for %s", _month_label(year, month))
            raise SynchronizationError(f"System budget sync failed: {exc}", key=key) from exc
        finally:
            self.guard.release(key, completed)

        logger.info("System budget sync done: %d created, %d updated", len(created), len(updated))
        return SyncReport(
            key=key,
            ran=True,
            reason=REASON_COMPLETED,
            created=tuple(created),
            updated=tuple(updated),
        )

    def _run(
        self,
        goals: List[BudgetGoal],
        year: int,
        month: int,
        income_by_month: Dict[str, Any],
        historical_average: Any,
        today: date,
    ) -> Tuple[List[SystemBudget], List[SystemBudget]]:
        goal_lookup = _goal_by_priority(goals)
        fallback_income = income_by_month.get(_month_label(year, month), ZERO)
        created: List[SystemBudget] = []
        updated: List[SystemBudget] = []

        for target_year, target_month in self.months_to_sync(year, month, today):
            income = income_by_month.get(_month_label(target_year, target_month), fallback_income)
            budgets, new = ensure_system_budgets_exist(
                self.store, goals, target_year, target_month, income, self.settings, historical_average
            )
            created.extend(new)

            # Past months keep whatever amount they were materialized with.
            if is_past_month(target_year, target_month, today):
                continue

            for budget in budgets:
                if budget in new or budget.id is None:
                    continue
                goal = goal_lookup.get(budget.system_budget_type)
                target = quantize_cents(resolve_budget_limit(goal, income, self.settings, historical_average))
                if abs(budget.budget_amount - target) <= self.tolerance:
                    continue
                changes = {
                    'budgetAmount': target,
                    'target_percentage': goal.target_percentage,
                    'target_amount': goal.target_amount,
                }
                self.store.update(budget.id, changes)
                logger.info(
                    "Updated %s system budget for %s: %s -> %s",
                    budget.system_budget_type,
                    _month_label(target_year, target_month),
                    budget.budget_amount,
                    target,
                )
                updated.append(
                    replace(
                        budget,
                        budget_amount=target,
                        target_percentage=goal.target_percentage,
                        target_amount=goal.target_amount,
                    )
                )

        return created, updated
