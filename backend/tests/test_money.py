from decimal import Decimal

import pytest

from tradeflow.money import MAX_MINOR_UNITS, Money, round_half_up
from tradeflow.validation import InvalidAmount


class TestParse:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("12.50", 1250),
            ("0.01", 1),
            ("100", 10000),
            (10, 1000),
            (Decimal("3.5"), 350),
            (0.1, 10),
            (" 7.25 ", 725),
        ],
    )
    def test_accepts_valid_amounts(self, raw, expected):
        assert Money.parse(raw).minor == expected

    @pytest.mark.parametrize("raw", ["1.005", "-1", "abc", "", None, True, "NaN", "Infinity"])
    def test_rejects_invalid_amounts(self, raw):
        with pytest.raises(InvalidAmount):
            Money.parse(raw)

    def test_fewer_places_allowed(self):
        with pytest.raises(InvalidAmount):
            Money.parse("1.5", places=0)
        assert Money.parse("15", places=0).minor == 1500

    def test_rejects_amounts_above_ceiling(self):
        with pytest.raises(InvalidAmount) as exc:
            Money.parse("100000000000000000000")
        assert exc.value.details["max_pence"] == MAX_MINOR_UNITS

        with pytest.raises(InvalidAmount):
            Money.parse("10.01", max_minor=1000)
        assert Money.parse("10.00", max_minor=1000).minor == 1000

    def test_error_names_field(self):
        with pytest.raises(InvalidAmount) as exc:
            Money.parse("-3", field="unit_price")
        assert exc.value.details["field"] == "unit_price"


class TestArithmetic:
    def test_add_and_subtract(self):
        assert (Money(150) + Money(250)).minor == 400
        assert (Money(150) - Money(250)).minor == -100

    def test_multiply_rounds_half_up_once(self):
        assert Money(5).multiply_by_rate(Decimal("0.1")).minor == 1
        assert Money(4).multiply_by_rate(Decimal("0.1")).minor == 0
        assert Money(1250).multiply_by_rate(Decimal("0.2")).minor == 250

    def test_round_half_up(self):
        assert round_half_up(Decimal("2.5")) == 3
        assert round_half_up(Decimal("2.4999")) == 2

    def test_comparison(self):
        assert Money(1) < Money(2)
        assert Money(2) >= Money(2)
        assert Money(3).compare(Money(2)) == 1
        assert Money(2).compare(Money(2)) == 0
        assert Money(-1).is_negative()
        assert Money.zero().is_zero()

    def test_minor_must_be_int(self):
        with pytest.raises(TypeError):
            Money("10")
        with pytest.raises(TypeError):
            Money(True)


def test_display():
    assert str(Money(13410)) == "134.10"
    assert str(Money(-250)) == "-2.50"
    assert Money(5).to_decimal() == Decimal("0.05")
    assert Money.from_minor(250) == Money(250)
