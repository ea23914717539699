from __future__ import annotations

from decimal import Decimal

import pytest

from app.domain.money import AmountOverflowError, format_amount, from_cents, multiply, sum_amounts, to_amount, to_cents


def test_to_amount_normalizes_to_two_decimals_half_up():
    assert to_amount("10") == Decimal("10.00")
    assert to_amount(25000.0) == Decimal("25000.00")
    assert to_amount("0.125") == Decimal("0.13")
    assert to_amount("0.124") == Decimal("0.12")
    assert to_amount(Decimal("2.5")) == Decimal("2.50")


@pytest.mark.parametrize("value", [True, "abc", None, "NaN", "Infinity", [1]])
def test_to_amount_rejects_non_numbers(value):
    with pytest.raises(ValueError):
        to_amount(value)


def test_float_prices_do_not_drift_across_many_lines():
    prices = [to_amount(0.1)] * 1000
    assert sum_amounts(prices) == Decimal("100.00")
    assert sum_amounts(multiply(to_amount(0.1), 3) for _ in range(10)) == Decimal("3.00")


def test_multiply_and_sum_are_exact():
    assert multiply(Decimal("19.99"), 3) == Decimal("59.97")
    assert sum_amounts([Decimal("25000.00"), multiply(Decimal("500.00"), 2)]) == Decimal("26000.00")
    assert sum_amounts([]) == Decimal("0.00")


def test_format_and_cents_conversion():
    assert format_amount(Decimal("26000")) == "26000.00"
    assert format_amount(Decimal("0.5")) == "0.50"
    assert to_cents(Decimal("123.45")) == 12345
    assert from_cents(12345) == Decimal("123.45")
    assert format_amount(from_cents(to_cents(Decimal("0.07")))) == "0.07"


def test_to_amount_rejects_values_that_cannot_be_quantized():
    with pytest.raises(AmountOverflowError):
        to_amount("1e40")
