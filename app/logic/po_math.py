"""
============================================================================
SiteLedger - Purchase Order Line Arithmetic
============================================================================

    base     = qty x rate
    discount = base x discount% / 100
    taxable  = base - discount
    cgst/sgst/igst = taxable x pct / 100
    amount   = taxable + cgst + sgst + igst

Every money figure is rounded to 2 dp (ROUND_HALF_UP) before it is summed.

============================================================================
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from app.logic.amount_words import amount_in_words
from app.logic.decimal_gateway import ZERO, to_money, to_qty


@dataclass(frozen=True)
class LineAmounts:
    qty: Decimal
    rate: Decimal
    discount_percent: Decimal
    disc_amount: Decimal
    taxable_amount: Decimal
    cgst_percent: Decimal
    cgst_amt: Decimal
    sgst_percent: Decimal
    sgst_amt: Decimal
    igst_percent: Decimal
    igst_amt: Decimal
    amount: Decimal


@dataclass(frozen=True)
class OrderTotals:
    amount: Decimal
    total_cgst_amount: Decimal
    total_sgst_amount: Decimal
    total_igst_amount: Decimal
    amount_in_words: str


def _pct(value) -> Decimal:
    pct = to_money(value or 0)
    if pct < ZERO or pct > Decimal("100"):
        raise ValueError(f"Percentage out of range: {pct}")
    return pct


def calculate_line(qty, rate, discount_percent=0, cgst_percent=0, sgst_percent=0, igst_percent=0) -> LineAmounts:
    q = to_qty(qty)
    r = to_money(rate)
    disc_pct = _pct(discount_percent)
    cgst_pct, sgst_pct, igst_pct = _pct(cgst_percent), _pct(sgst_percent), _pct(igst_percent)

    base = to_money(q * r)
    disc = to_money(base * disc_pct / 100)
    taxable = to_money(base - disc)
    cgst = to_money(taxable * cgst_pct / 100)
    sgst = to_money(taxable * sgst_pct / 100)
    igst = to_money(taxable * igst_pct / 100)
    return LineAmounts(
        qty=q,
        rate=r,
        discount_percent=disc_pct,
        disc_amount=disc,
        taxable_amount=taxable,
        cgst_percent=cgst_pct,
        cgst_amt=cgst,
        sgst_percent=sgst_pct,
        sgst_amt=sgst,
        igst_percent=igst_pct,
        igst_amt=igst,
        amount=to_money(taxable + cgst + sgst + igst),
    )


def order_totals(lines: Iterable[LineAmounts]) -> OrderTotals:
    amount = cgst = sgst = igst = ZERO
    for line in lines:
        amount += line.amount
        cgst += line.cgst_amt
        sgst += line.sgst_amt
        igst += line.igst_amt
    amount = to_money(amount)
    return OrderTotals(amount, to_money(cgst), to_money(sgst), to_money(igst), amount_in_words(amount))
