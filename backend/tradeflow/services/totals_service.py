# Overview: Line-item calculator shared by invoices, quotes and certificates.

"""
Totals Calculator

One pure function shared by every document class. Every amount is in pence
(Money); each product is rounded half-up exactly once.

TAX POLICY:
- Tax is computed per line on the undiscounted line total.
- The discount applies to the subtotal, and the summed tax is then scaled by
  (subtotal - discount) / subtotal, not "discount each line, then tax it".
  Issued documents depend on these exact figures.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ..money import MAX_MINOR_UNITS, Money, round_half_up
from ..validation import EmptyLineItems, InvalidAmount, InvalidDiscount, to_decimal


HUNDRED = Decimal("100")

# Column precision: quantity Numeric(12, 3), percentages Numeric(5, 2)
QUANTITY_PLACES = 3
QUANTITY_MAX = Decimal("1e9")
PERCENT_PLACES = 2


def decimal_places(value: Decimal) -> int:
    exponent = Decimal(value).normalize().as_tuple().exponent
    return -exponent if isinstance(exponent, int) and exponent < 0 else 0


@dataclass(frozen=True)
class LineItem:
    description: str
    quantity: Decimal
    unit_price: Money
    tax_percent: Decimal = Decimal("0")

    def __post_init__(self):
        if not isinstance(self.unit_price, Money):
            raise TypeError("unit_price must be Money")
        quantity = Decimal(self.quantity)
        if not quantity.is_finite() or quantity < 0:
            raise InvalidAmount("quantity must be >= 0", details={"field": "quantity", "value": str(self.quantity)})
        if quantity >= QUANTITY_MAX or decimal_places(quantity) > QUANTITY_PLACES:
            raise InvalidAmount(
                f"quantity must be below {QUANTITY_MAX:,.0f} with at most {QUANTITY_PLACES} decimal places",
                details={"field": "quantity", "value": str(self.quantity)},
            )
        if self.unit_price.is_negative():
            raise InvalidAmount("unit_price must be >= 0", details={"field": "unit_price", "value": str(self.unit_price)})
        tax = Decimal(self.tax_percent)
        if not tax.is_finite() or tax < 0 or tax > HUNDRED or decimal_places(tax) > PERCENT_PLACES:
            raise InvalidAmount(
                f"tax_percent must be between 0 and 100 with at most {PERCENT_PLACES} decimal places",
                details={"field": "tax_percent", "value": str(self.tax_percent)},
            )


@dataclass(frozen=True)
class LineResult:
    item: LineItem
    line_total: Money
    line_tax: Money


@dataclass(frozen=True)
class TotalsBreakdown:
    subtotal: Money
    tax_total_raw: Money
    tax_total: Money
    discount_amount: Money
    grand_total: Money
    balance_due: Money
    lines: tuple[LineResult, ...] = ()

    def to_dict(self) -> dict:
        return {
            "subtotal_pence": self.subtotal.minor,
            "tax_total_raw_pence": self.tax_total_raw.minor,
            "tax_total_pence": self.tax_total.minor,
            "discount_pence": self.discount_amount.minor,
            "grand_total_pence": self.grand_total.minor,
            "balance_due_pence": self.balance_due.minor,
        }


def validate_discount(discount_percent) -> Decimal:
    discount = to_decimal(discount_percent, "discount_percent", error_cls=InvalidDiscount)
    if not discount.is_finite() or discount < 0 or discount > HUNDRED or decimal_places(discount) > PERCENT_PLACES:
        raise InvalidDiscount(
            f"discount_percent must be between 0 and 100 with at most {PERCENT_PLACES} decimal places",
            details={"discount_percent": str(discount_percent)},
        )
    return discount


def compute_line(item: LineItem) -> LineResult:
    line_total = Money(round_half_up(Decimal(item.unit_price.minor) * Decimal(item.quantity)))
    line_tax = line_total.multiply_by_rate(Decimal(item.tax_percent) / HUNDRED)
    return LineResult(item=item, line_total=line_total, line_tax=line_tax)


def _check_ceiling(lines, subtotal: Money, tax_total_raw: Money, grand_total: Money, max_minor: int) -> None:
    for index, line in enumerate(lines):
        if line.line_total.minor > max_minor:
            raise InvalidAmount(
                f"items[{index}] total is too large",
                details={"field": f"items[{index}]", "line_total_pence": line.line_total.minor, "max_pence": max_minor},
            )
    for name, amount in (("subtotal", subtotal), ("tax_total", tax_total_raw), ("grand_total", grand_total)):
        if amount.minor > max_minor:
            raise InvalidAmount(
                f"{name} is too large",
                details={"field": name, "max_pence": max_minor},
            )


def compute(
    items: Iterable[LineItem],
    discount_percent,
    partial_payment: Money,
    *,
    require_items: bool = False,
    max_minor: int = MAX_MINOR_UNITS,
) -> TotalsBreakdown:
    """
    Map line items + discount % + amount already paid to a totals breakdown.

    Invariants:
    - grand_total == subtotal - discount_amount + tax_total, exactly (pence)
    - balance_due == grand_total - partial_payment; negative means overpaid
    - no line total, subtotal or grand total exceeds max_minor pence
    """
    items = list(items)
    if require_items and not items:
        raise EmptyLineItems("At least one line item is required")
    discount = validate_discount(discount_percent)

    lines = tuple(compute_line(item) for item in items)

    subtotal = Money.zero()
    tax_total_raw = Money.zero()
    for line in lines:
        subtotal = subtotal + line.line_total
        tax_total_raw = tax_total_raw + line.line_tax

    discount_amount = subtotal.multiply_by_rate(discount / HUNDRED)

    if subtotal.minor > 0:
        # Single division of exact integers so half-penny ties round correctly
        scaled = Decimal(tax_total_raw.minor * (subtotal.minor - discount_amount.minor)) / Decimal(subtotal.minor)
        tax_total = Money(round_half_up(scaled))
    else:
        tax_total = Money.zero()

    grand_total = subtotal - discount_amount + tax_total
    _check_ceiling(lines, subtotal, tax_total_raw, grand_total, max_minor)
    balance_due = grand_total - partial_payment

    return TotalsBreakdown(
        subtotal=subtotal,
        tax_total_raw=tax_total_raw,
        tax_total=tax_total,
        discount_amount=discount_amount,
        grand_total=grand_total,
        balance_due=balance_due,
        lines=lines,
    )
