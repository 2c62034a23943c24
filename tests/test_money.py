from decimal import Decimal

from finance_engine.money import (
    clamp_non_negative,
    divide,
    money_sum,
    percentage_of,
    quantize_cents,
    ratio_percent,
    to_money,
)


def test_floats_are_read_through_their_text_form():
    assert to_money(0.1) == Decimal('0.1')
    assert money_sum([0.1, 0.2]) == Decimal('0.3'), "float drift should not leak into sums"


def test_unreadable_amounts_become_zero():
    assert to_money(None) == 0
    assert to_money('') == 0
    assert to_money('abc') == 0
    assert to_money(float('nan')) == 0
    assert to_money(Decimal('NaN')) == 0


def test_negative_amounts_are_kept():
    assert money_sum([100, -30, '5.50']) == Decimal('75.50')


def test_divide_by_zero_returns_zero():
    assert divide(10, 0) == 0
    assert ratio_percent(50, 0) == 0
    assert ratio_percent(50, 200) == 25


def test_percentage_and_clamp():
    assert percentage_of(4000, 50) == 2000
    assert clamp_non_negative(-1) == 0
    assert clamp_non_negative('3.2') == Decimal('3.2')


def test_quantize_cents_rounds_half_up():
    assert quantize_cents('2.345') == Decimal('2.35')
    assert quantize_cents(-1.005) == Decimal('-1.01')
