"""
Money value type.

WHY: Every monetary figure on an invoice, quote or certificate is held as an
integer count of pence. Rounding happens exactly once, half-up, at the point
a fractional product (quantity x price, amount x rate) is turned back into
pence. Nothing ever accumulates unrounded remainders.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from .validation import InvalidAmount, to_decimal


MINOR_UNITS = 100
MAX_INPUT_PLACES = 2
# Largest amount a signed 64-bit pence column can hold
MAX_MINOR_UNITS = 2 ** 63 - 1


def round_half_up(value: Decimal) -> int:
    """Round a fractional minor-unit quantity to whole pence."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True, order=False)
class Money:
    minor: int

    def __post_init__(self):
        if isinstance(self.minor, bool) or not isinstance(self.minor, int):
            raise TypeError("Money.minor must be an int")

    # -- construction ---------------------------------------------------

    @classmethod
    def zero(cls) -> "Money":
        return cls(0)

    @classmethod
    def from_minor(cls, minor: int) -> "Money":
        return cls(minor)

    @classmethod
    def parse(
        cls,
        value: Any,
        places: int = MAX_INPUT_PLACES,
        field: str = "amount",
        max_minor: int = MAX_MINOR_UNITS,
    ) -> "Money":
        """
        Build from user input.

        Accepts str / int / Decimal (floats via str). Fails with InvalidAmount
        unless the value is finite, non-negative, no larger than `max_minor`
        pence and has at most `places` fractional digits.
        """
        if places < 0 or places > MAX_INPUT_PLACES:
            raise ValueError(f"places must be between 0 and {MAX_INPUT_PLACES}")
        if isinstance(value, Money):
            return value
        amount = to_decimal(value, field)
        if amount < 0:
            raise InvalidAmount(f"{field} must be >= 0", details={"field": field, "value": str(amount)})
        exponent = amount.normalize().as_tuple().exponent
        if isinstance(exponent, int) and -exponent > places:
            raise InvalidAmount(
                f"{field} allows at most {places} decimal places",
                details={"field": field, "value": str(amount)},
            )
        minor = int(amount * MINOR_UNITS)
        if minor > max_minor:
            raise InvalidAmount(
                f"{field} is too large",
                details={"field": field, "value": str(amount), "max_pence": max_minor},
            )
        return cls(minor)

    # -- arithmetic -----------------------------------------------------

    def add(self, other: "Money") -> "Money":
        return Money(self.minor + other.minor)

    def subtract(self, other: "Money") -> "Money":
        return Money(self.minor - other.minor)

    def multiply_by_rate(self, rate: Decimal) -> "Money":
        """Multiply by a decimal factor, rounding once to the nearest penny."""
        return Money(round_half_up(Decimal(self.minor) * Decimal(rate)))

    def is_negative(self) -> bool:
        return self.minor < 0

    def is_zero(self) -> bool:
        return self.minor == 0

    def compare(self, other: "Money") -> int:
        if self.minor < other.minor:
            return -1
        if self.minor > other.minor:
            return 1
        return 0

    __add__ = add
    __sub__ = subtract

    def __lt__(self, other: "Money") -> bool:
        return self.compare(other) < 0

    def __le__(self, other: "Money") -> bool:
        return self.compare(other) <= 0

    def __gt__(self, other: "Money") -> bool:
        return self.compare(other) > 0

    def __ge__(self, other: "Money") -> bool:
        return self.compare(other) >= 0

    # -- presentation ---------------------------------------------------

    def to_decimal(self) -> Decimal:
        return (Decimal(self.minor) / MINOR_UNITS).quantize(Decimal("0.01"))

    def __str__(self) -> str:
        return str(self.to_decimal())
