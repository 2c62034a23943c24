from finance_engine.budget_stats import custom_budget_stats
from finance_engine.settlement import annotate_cross_period, detect_cross_period_settlement

JANUARY_TRIP = {
    'id': 'ski',
    'name': 'Ski week',
    'allocatedAmount': 800,
    'startDate': '2026-01-20',
    'endDate': '2026-01-31',
}


def _expense(txn_id, date, paid_date, budget_id='ski'):
    return {
        'id': txn_id,
        'type': 'expense',
        'amount': 120,
        'date': date,
        'paidDate': paid_date,
        'isPaid': True,
        'customBudgetId': budget_id,
    }


def test_incurred_in_january_paid_in_february_is_cross_period():
    txn = _expense('lift', '2026-01-31', '2026-02-02')

    info = detect_cross_period_settlement(txn, '2026-02-01', '2026-02-28', [JANUARY_TRIP])

    assert info.is_cross_period
    assert info.bucket_name == 'Ski week'
    assert info.original_period == 'Jan 2026'


def test_viewing_the_incurred_month_names_the_payment_month():
    txn = _expense('lift', '2026-01-31', '2026-02-02')
    info = detect_cross_period_settlement(txn, '2026-01-01', '2026-01-31', [JANUARY_TRIP])
    assert info.original_period == 'Feb 2026'


def test_same_month_payment_is_not_cross_period():
    txn = _expense('lift', '2026-01-25', '2026-01-28')
    assert not detect_cross_period_settlement(txn, '2026-01-01', '2026-01-31', [JANUARY_TRIP]).is_cross_period


def test_unattributed_or_fully_covered_transactions_are_not_cross_period():
    loose = _expense('loose', '2026-01-31', '2026-02-02', budget_id=None)
    wide_budget = dict(JANUARY_TRIP, endDate='2026-02-15')
    covered = _expense('covered', '2026-01-31', '2026-02-02')

    assert not detect_cross_period_settlement(loose, '2026-02-01', '2026-02-28', [JANUARY_TRIP]).is_cross_period
    assert not detect_cross_period_settlement(covered, '2026-02-01', '2026-02-28', [wide_budget]).is_cross_period


def test_missing_paid_date_is_not_cross_period():
    txn = _expense('lift', '2026-01-31', None)
    assert not detect_cross_period_settlement(txn, '2026-02-01', '2026-02-28', [JANUARY_TRIP]).is_cross_period


def test_annotation_does_not_change_totals():
    transactions = [
        _expense('lift', '2026-01-31', '2026-02-02'),
        _expense('rental', '2026-01-25', '2026-01-26'),
    ]
    before = custom_budget_stats(JANUARY_TRIP, transactions, '2026-02-01', '2026-02-28')

    labels = annotate_cross_period(transactions, '2026-02-01', '2026-02-28', [JANUARY_TRIP])

    assert set(labels) == {'lift'}
    assert custom_budget_stats(JANUARY_TRIP, transactions, '2026-02-01', '2026-02-28') == before
    assert before.paid == 120
