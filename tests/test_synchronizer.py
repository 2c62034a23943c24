import threading
from datetime import date
from decimal import Decimal

import pytest

from finance_engine.exceptions import SynchronizationError
from finance_engine.models import BudgetSettings
from finance_engine.synchronizer import (
    SyncGuard,
    SyncKey,
    SystemBudgetSynchronizer,
    ensure_system_budgets_exist,
)

TODAY = date(2026, 3, 15)

GOALS = [
    {'priority': 'needs', 'target_percentage': 50, 'target_amount': 1800},
    {'priority': 'wants', 'target_percentage': 30, 'target_amount': 1000},
    {'priority': 'savings', 'target_percentage': 20, 'target_amount': 600},
]


class InMemoryStore:
    def __init__(self, records=None):
        self.records = [dict(r) for r in records or []]
        self.creates = 0
        self.updates = []
        self._next_id = 1

    def filter(self, **criteria):
        return [
            dict(r) for r in self.records
            if all(r.get(key) == value for key, value in criteria.items())
        ]

    def create(self, record):
        saved = dict(record, id=f'sb-{self._next_id}')
        self._next_id += 1
        self.records.append(saved)
        self.creates += 1
        return dict(saved)

    def update(self, record_id, changes):
        self.updates.append((record_id, dict(changes)))
        for record in self.records:
            if record['id'] == record_id:
                record.update(changes)

    def amount(self, budget_type, start):
        matches = self.filter(systemBudgetType=budget_type, startDate=start)
        return matches[0]['budgetAmount']


class FailingStore(InMemoryStore):
    def __init__(self, fail_times=1):
        super().__init__()
        self.fail_times = fail_times

    def filter(self, **criteria):
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("backend unavailable")
        return super().filter(**criteria)


def test_ensure_creates_missing_budgets_once():
    store = InMemoryStore()

    budgets, created = ensure_system_budgets_exist(store, GOALS, 2026, 3, monthly_income=4000)
    again, created_again = ensure_system_budgets_exist(store, GOALS, 2026, 3, monthly_income=4000)

    assert len(created) == 3
    assert created_again == []
    assert {b.id for b in again} == {b.id for b in budgets}
    needs = store.filter(systemBudgetType='needs', startDate='2026-03-01')[0]
    assert needs['budgetAmount'] == Decimal('2000.00')
    assert needs['endDate'] == '2026-03-31'
    assert needs['name'] == 'Needs'
    assert needs['color'] == '#EF4444'


def test_ensure_uses_target_amount_in_absolute_mode():
    store = InMemoryStore()
    ensure_system_budgets_exist(store, GOALS, 2026, 3, 4000, BudgetSettings(goal_mode=False))
    assert store.amount('wants', '2026-03-01') == 1000


def test_synchronize_materializes_viewed_month_and_horizon():
    store = InMemoryStore()
    sync = SystemBudgetSynchronizer(store, horizon_months=12, tolerance='0.01')

    report = sync.synchronize(GOALS, 2026, 1, {'2026-01': 4000}, today=TODAY)

    assert report.ran
    assert report.reason == 'completed'
    # January plus March 2026 through February 2027.
    assert store.creates == 13 * 3
    assert store.amount('savings', '2027-02-01') == Decimal('800.00')


def test_completed_key_is_not_repeated_until_inputs_change():
    store = InMemoryStore()
    sync = SystemBudgetSynchronizer(store, horizon_months=2)

    first = sync.synchronize(GOALS, 2026, 3, {'2026-03': 4000}, today=TODAY)
    second = sync.synchronize(GOALS, 2026, 3, {'2026-03': 4000}, today=TODAY)

    assert first.ran
    assert not second.ran
    assert second.reason == 'up_to_date'

    third = sync.synchronize(GOALS, 2026, 3, {'2026-03': 5000}, today=TODAY)
    assert third.ran
    assert store.amount('needs', '2026-03-01') == Decimal('2500.00')
    assert len(third.updated) == 6


def test_month_rollover_extends_the_horizon():
    store = InMemoryStore()
    sync = SystemBudgetSynchronizer(store, horizon_months=2)

    sync.synchronize(GOALS, 2026, 3, {'2026-03': 4000}, today=TODAY)
    assert store.filter(systemBudgetType='needs', startDate='2026-05-01') == []

    rolled = sync.synchronize(GOALS, 2026, 3, {'2026-03': 4000}, today=date(2026, 4, 2))

    assert rolled.ran, "a new month moves the horizon even with unchanged inputs"
    assert store.amount('needs', '2026-05-01') == Decimal('2000.00')
    assert store.creates == 9
    assert sync.synchronize(GOALS, 2026, 3, {'2026-03': 4000}, today=date(2026, 4, 20)).reason == 'up_to_date'


def test_past_months_are_never_rewritten():
    store = InMemoryStore([
        {
            'id': 'feb-needs',
            'name': 'Needs',
            'systemBudgetType': 'needs',
            'budgetAmount': 1500,
            'startDate': '2026-02-01',
            'endDate': '2026-02-28',
        },
        {
            'id': 'mar-needs',
            'name': 'Needs',
            'systemBudgetType': 'needs',
            'budgetAmount': 1500,
            'startDate': '2026-03-01',
            'endDate': '2026-03-31',
        },
    ])
    sync = SystemBudgetSynchronizer(store, horizon_months=1)

    report = sync.synchronize(GOALS[:1], 2026, 2, {'2026-02': 4000, '2026-03': 4000}, today=TODAY)

    assert store.amount('needs', '2026-02-01') == 1500
    assert store.amount('needs', '2026-03-01') == Decimal('2000.00')
    assert [b.id for b in report.updated] == ['mar-needs']
    assert report.updated[0].budget_amount == Decimal('2000.00')


def test_changes_within_tolerance_are_not_written():
    store = InMemoryStore([
        {
            'id': 'mar-needs',
            'systemBudgetType': 'needs',
            'budgetAmount': '2000.004',
            'startDate': '2026-03-01',
            'endDate': '2026-03-31',
        },
    ])
    sync = SystemBudgetSynchronizer(store, horizon_months=1, tolerance='0.01')
    sync.synchronize(GOALS[:1], 2026, 3, {'2026-03': 4000}, today=TODAY)
    assert store.updates == []


def test_failed_sync_releases_guard_and_can_retry():
    store = FailingStore(fail_times=1)
    sync = SystemBudgetSynchronizer(store, horizon_months=1)

    with pytest.raises(SynchronizationError) as excinfo:
        sync.synchronize(GOALS, 2026, 3, {'2026-03': 4000}, today=TODAY)

    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert sync.guard.state == 'idle'
    assert sync.guard.last_completed_key is None

    retry = sync.synchronize(GOALS, 2026, 3, {'2026-03': 4000}, today=TODAY)
    assert retry.ran
    assert store.creates == 3


def test_in_flight_sync_rejects_reentry():
    store = InMemoryStore()
    sync = SystemBudgetSynchronizer(store, horizon_months=1)
    nested = {}

    original_create = store.create

    def reentrant_create(record):
        if 'report' not in nested:
            nested['report'] = sync.synchronize(GOALS, 2026, 3, {'2026-03': 4000}, today=TODAY)
        return original_create(record)

    store.create = reentrant_create
    outer = sync.synchronize(GOALS, 2026, 3, {'2026-03': 4000}, today=TODAY)

    assert outer.ran
    assert nested['report'].reason == 'in_flight'
    assert store.creates == 3


def test_guard_allows_only_one_thread_per_key():
    guard = SyncGuard()
    key = SyncKey.build([], 2026, 3, {}, BudgetSettings(), today=TODAY)
    results = []
    barrier = threading.Barrier(8)

    def attempt():
        barrier.wait()
        results.append(guard.try_acquire(key))

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(None) == 1
    assert results.count('in_flight') == 7


def test_sync_key_tracks_goals_income_and_modes():
    settings = BudgetSettings()
    base = SyncKey.build([], 2026, 3, {'2026-03': 4000}, settings, today=TODAY)
    assert base == SyncKey.build([], 2026, 3, {'2026-03': '4000'}, settings, today=date(2026, 3, 1))
    assert base != SyncKey.build([], 2026, 3, {'2026-03': 4100}, settings, today=TODAY)
    assert base != SyncKey.build(
        [], 2026, 3, {'2026-03': 4000}, BudgetSettings(fixed_lifestyle_mode=True), today=TODAY
    )
    assert base != SyncKey.build([], 2026, 3, {'2026-03': 4000}, settings, today=date(2026, 4, 1))
    assert base.horizon_start == (2026, 3)
