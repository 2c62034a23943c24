from decimal import Decimal

import pytest

from finance_engine.exceptions import InvalidRecordError
from finance_engine.models import (
    BudgetSettings,
    CustomBudget,
    Goal,
    SystemBudget,
    Transaction,
    as_transactions,
)


def test_transaction_reads_backend_field_names():
    txn = Transaction.from_record({
        'id': 't1',
        'type': 'Expense',
        'amount': '12.30',
        'date': '2026-01-31',
        'paidDate': '2026-02-02',
        'isPaid': True,
        'customBudgetId': 'trip',
        'category_id': 'food',
    })
    assert txn.is_expense
    assert txn.amount == Decimal('12.30')
    assert txn.custom_budget_id == 'trip'
    assert not txn.is_wallet_expense


def test_wallet_expense_flag():
    txn = Transaction.from_record({
        'id': 't2',
        'type': 'expense',
        'amount': 5,
        'date': '2026-01-01',
        'isCashTransaction': True,
        'cashTransactionType': 'expense_from_wallet',
    })
    assert txn.is_wallet_expense


def test_unknown_records_are_skipped_when_coercing():
    records = [
        {'id': 'ok', 'type': 'income', 'amount': 10, 'date': '2026-01-01'},
        {'id': 'bad', 'type': 'transfer', 'amount': 10, 'date': '2026-01-01'},
        'not a mapping',
    ]
    assert [t.id for t in as_transactions(records)] == ['ok']


def test_required_identity_fields():
    with pytest.raises(InvalidRecordError):
        CustomBudget.from_record({'name': 'No id'})
    with pytest.raises(InvalidRecordError):
        SystemBudget.from_record({'systemBudgetType': 'fun'})
    with pytest.raises(ValueError):
        Transaction.from_record({'id': 'x', 'type': 'unknown'})


def test_system_budget_round_trips_backend_names():
    budget = SystemBudget.from_record({
        'id': 'sb1',
        'systemBudgetType': 'needs',
        'budgetAmount': 2000,
        'startDate': '2026-03-01',
        'endDate': '2026-03-31',
    })
    record = budget.to_record()
    assert record['id'] == 'sb1'
    assert record['budgetAmount'] == 2000
    assert record['name'] == 'Needs'
    assert SystemBudget.from_record(record) == budget


def test_goal_from_record():
    goal = Goal.from_record({
        'id': 'g1',
        'name': 'Car',
        'target_amount': 5000,
        'funding_rule': {'type': 'fixed', 'amount': 100, 'frequency': 'weekly'},
        'ledger_history': [{'timestamp': '2026-01-01T00:00:00', 'amount': 100}],
    })
    assert goal.frequency == 'weekly'
    assert goal.ledger_history[0].amount == 100
    assert goal.virtual_balance == 0


def test_settings_budget_system_flag():
    assert BudgetSettings.from_record(None).goal_mode
    assert not BudgetSettings.from_record({'budgetSystem': 'absolute'}).goal_mode
    assert BudgetSettings.from_record({'fixedLifestyleMode': True}).fixed_lifestyle_mode
