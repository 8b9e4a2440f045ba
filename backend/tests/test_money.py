"""Money conversion tests: API decimal strings <-> integer cents."""

from decimal import Decimal

import pytest

from pharmapos.money import (
    MoneyError,
    to_cents,
    format_cents,
    apply_rate_cents,
    apply_basis_points,
    MAX_AMOUNT_CENTS,
)


@pytest.mark.parametrize(
    "value,cents",
    [
        ("42.75", 4275),
        ("0.1", 10),
        (" 3 ", 300),
        (7, 700),
        (0.1, 10),
        (19.99, 1999),
        (Decimal("5.50"), 550),
    ],
)
def test_to_cents(value, cents):
    assert to_cents(value) == cents


@pytest.mark.parametrize("value", ["1.005", "-1.00", "abc", "NaN", "Infinity", True, None, [1]])
def test_to_cents_rejects(value):
    with pytest.raises(MoneyError):
        to_cents(value)


def test_negative_allowed_when_asked():
    assert to_cents("-2.50", allow_negative=True) == -250


def test_maximum_amount():
    assert to_cents("99999999.99") == MAX_AMOUNT_CENTS
    with pytest.raises(MoneyError):
        to_cents("100000000.00")


@pytest.mark.parametrize("value", ["1e30", "-1e30", "1E+28", Decimal("9" * 40)])
def test_huge_exponent_is_out_of_range(value):
    with pytest.raises(MoneyError, match="maximum"):
        to_cents(value, allow_negative=True)


def test_error_names_field():
    with pytest.raises(MoneyError, match="unit_cost"):
        to_cents("x", "unit_cost")


@pytest.mark.parametrize("cents,text", [(0, "0.00"), (5, "0.05"), (4275, "42.75"), (None, None)])
def test_format_cents(cents, text):
    assert format_cents(cents) == text


def test_summing_cents_is_exact():
    # 0.1 + 0.2 style drift cannot happen on the cent path
    total = sum(to_cents(v) for v in ("0.10", "0.20"))
    assert format_cents(total) == "0.30"


@pytest.mark.parametrize(
    "cents,multiplier,expected",
    [
        (400, Decimal("1.25"), 500),
        (10, Decimal("1.25"), 13),
        (2, Decimal("1.25"), 3),
        (0, Decimal("1.25"), 0),
    ],
)
def test_apply_rate_rounds_half_up(cents, multiplier, expected):
    assert apply_rate_cents(cents, multiplier) == expected


@pytest.mark.parametrize(
    "cents,bps,expected",
    [
        (2500, 1600, 400),
        (1000, 725, 73),
        (1, 5000, 1),
        (999, 0, 0),
    ],
)
def test_apply_basis_points(cents, bps, expected):
    assert apply_basis_points(cents, bps) == expected
