from datetime import date

import pandas as pd

from finance_engine.frames import FRAME_COLUMNS, date_mask, sum_amounts, transactions_frame


def test_empty_input_gives_typed_empty_frame():
    frame = transactions_frame([])
    assert list(frame.columns) == FRAME_COLUMNS
    assert pd.api.types.is_datetime64_any_dtype(frame['effective_date'])
    assert sum_amounts(frame) == 0


def test_effective_date_and_bad_dates():
    frame = transactions_frame([
        {'id': 'paid', 'type': 'expense', 'amount': 10, 'date': '2026-01-31', 'paidDate': '2026-02-02', 'isPaid': True},
        {'id': 'unpaid', 'type': 'expense', 'amount': 5, 'date': '2026-01-31', 'paidDate': '2026-02-02'},
        {'id': 'broken', 'type': 'expense', 'amount': 7, 'date': 'soon'},
    ]).set_index('id')

    assert frame.loc['paid', 'effective_date'] == pd.Timestamp('2026-02-02')
    assert frame.loc['unpaid', 'effective_date'] == pd.Timestamp('2026-01-31')
    assert pd.isna(frame.loc['broken', 'effective_date'])


def test_date_mask_excludes_missing_dates_from_bounded_windows():
    series = pd.Series(pd.to_datetime(['2026-02-01', None, '2026-03-01']))
    assert date_mask(series, date(2026, 2, 1), date(2026, 2, 28)).tolist() == [True, False, False]
    assert date_mask(series, None, None).tolist() == [True, True, True]
