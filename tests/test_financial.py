from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from promeasure.wbs.financial import (
    clamp,
    format_brl,
    format_date,
    format_visual,
    fsum,
    markup_factor,
    mask_currency,
    parse_locale_number,
    percent_of,
    round_money,
    to_decimal,
    truncate,
)


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, Decimal("0.00")),
        ("", Decimal("0.00")),
        ("  12.5 ", Decimal("12.5")),
        (3, Decimal("3")),
        (0.1, Decimal("0.1")),
    ],
)
def test_to_decimal(value, expected):
    assert to_decimal(value) == expected


@pytest.mark.parametrize("value", ["abc", True, "NaN", "Infinity"])
def test_to_decimal_rejects_garbage(value):
    with pytest.raises(ValueError):
        to_decimal(value)


def test_round_money_is_half_up():
    assert round_money("2.345") == Decimal("2.35")
    assert round_money("2.344") == Decimal("2.34")
    assert round_money("-2.345") == Decimal("-2.35")


def test_truncate_never_rounds_up():
    assert truncate("1.239") == Decimal("1.23")
    assert truncate("-1.239") == Decimal("-1.23")


def test_fsum_rounds_once():
    assert fsum(["0.004", "0.004", "0.004"]) == Decimal("0.01")


def test_markup_factor():
    assert markup_factor(25) == Decimal("1.25")
    assert markup_factor(None) == Decimal("1")


def test_percent_of_zero_whole_is_zero():
    assert percent_of(50, 0) == Decimal("0.00")
    assert percent_of(1, 3) == Decimal("33.33")


def test_clamp_low_wins_when_range_is_empty():
    assert clamp(5, 0, 10) == 5
    assert clamp(-1, 0, 10) == 0
    assert clamp(11, 0, 10) == 10
    assert clamp(5, 0, -3) == 0


def test_display_helpers():
    assert format_visual("1234.5") == "1.234,50"
    assert format_visual("-0.5") == "-0,50"
    assert format_brl("1234567.891") == "R$ 1.234.567,89"
    assert format_brl("-10") == "-R$ 10,00"


def test_mask_and_parse_round_trip():
    assert mask_currency("") == "0,00"
    assert mask_currency("1234") == "12,34"
    assert mask_currency("R$ 1.234,56") == "1.234,56"
    assert parse_locale_number("1.234,56") == Decimal("1234.56")
    assert parse_locale_number("garbage") == Decimal("0.00")
    assert parse_locale_number(None) == Decimal("0.00")


def test_format_date():
    assert format_date("2024-03-05") == "05/03/2024"
    assert format_date("2024-03-05T23:30:00-03:00") == "05/03/2024"
    assert format_date(date(2024, 1, 2)) == "02/01/2024"
    assert format_date(None) == "—"
