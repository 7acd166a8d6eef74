"""
============================================================================
SiteLedger - Ledger Arithmetic
============================================================================

Reliability Level: STANDARD
Decimal Integrity: decimal.Decimal with ROUND_HALF_UP throughout
Side Effects: None (pure functions)

Sequential aggregations shared by the services and the batch job:

    running_balances()      cashbook opening/closing carry-forward
    closing_position()      site item closing stock from ledger sums
    receive_into_stock()    moving weighted average on receipt
    issue_from_stock()      stock reduction at the current unit rate

============================================================================
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from app.logic.decimal_gateway import ZERO, safe_divide, to_money, to_qty, to_rate


# =============================================================================
# Cashbook running balances
# =============================================================================

@dataclass(frozen=True)
class BalanceMovement:
    """One cashbook detail in ledger order."""
    detail_id: int
    amount_received: Optional[Decimal]
    amount_paid: Optional[Decimal]


@dataclass(frozen=True)
class BalanceLine:
    detail_id: int
    opening_balance: Decimal
    closing_balance: Decimal


def running_balances(seed: Optional[Decimal], movements: Iterable[BalanceMovement]) -> List[BalanceLine]:
    """
    Carry a balance forward over movements already sorted in ledger order.

    opening = round2(running); closing = round2(opening + received - paid).
    Missing amounts count as zero; a missing seed starts at zero.
    """
    running = to_money(seed)
    lines: List[BalanceLine] = []
    for movement in movements:
        opening = to_money(running)
        closing = to_money(opening + to_money(movement.amount_received) - to_money(movement.amount_paid))
        lines.append(BalanceLine(movement.detail_id, opening, closing))
        running = closing
    return lines


# =============================================================================
# Stock positions
# =============================================================================

@dataclass(frozen=True)
class StockPosition:
    stock: Decimal
    value: Decimal
    unit_rate: Decimal


@dataclass(frozen=True)
class LedgerTotals:
    """Sums over one site item's ledger rows."""
    received_qty: Decimal = ZERO
    issued_qty: Decimal = ZERO
    received_value: Decimal = ZERO
    issued_value: Decimal = ZERO
    row_count: int = 0


def closing_position(
    opening_stock,
    opening_value,
    opening_rate,
    totals: Optional[LedgerTotals]
) -> StockPosition:
    """
    Closing stock of a site item.

    Without ledger rows the opening position is the closing position.
    Otherwise closing = opening + received - issued, value likewise, and the
    unit rate is value / closing (zero when closing is zero).
    """
    if totals is None or totals.row_count == 0:
        return StockPosition(to_qty(opening_stock), to_money(opening_value), to_rate(opening_rate))

    closing = to_qty(to_qty(opening_stock) + totals.received_qty - totals.issued_qty)
    value = to_money(to_money(opening_value) + totals.received_value - totals.issued_value)
    rate = to_rate(value / closing) if closing != ZERO else to_rate(0)
    return StockPosition(closing, value, rate)


def receive_into_stock(current: Optional[StockPosition], qty, amount) -> StockPosition:
    """Add a receipt; the unit rate becomes the moving weighted average."""
    base_stock = current.stock if current else ZERO
    base_value = current.value if current else ZERO
    stock = to_qty(base_stock + to_qty(qty))
    value = to_qty(base_value + to_qty(amount))
    return StockPosition(stock, value, safe_divide(value, stock))


def issue_from_stock(current: Optional[StockPosition], qty, rate) -> StockPosition:
    """Issue qty at rate; stock never goes below zero."""
    base_stock = current.stock if current else ZERO
    stock = to_qty(max(ZERO, base_stock - to_qty(qty)))
    rate = to_money(rate)
    return StockPosition(stock, to_money(stock * rate), to_rate(rate))


def issue_at_value(current: Optional[StockPosition], qty, amount) -> StockPosition:
    """Issue for stock adjustments: subtract qty and amount, recompute the rate."""
    base_stock = current.stock if current else ZERO
    base_value = current.value if current else ZERO
    stock = to_qty(base_stock - to_qty(qty))
    value = to_qty(base_value - to_qty(amount))
    return StockPosition(stock, value, safe_divide(value, stock))


def line_amount(qty, rate) -> Decimal:
    return to_money(to_qty(qty) * to_money(rate))


def sum_money(values: Iterable) -> Decimal:
    total = ZERO
    for v in values:
        total += to_money(v)
    return to_money(total)


def split_totals(rows: Iterable[Tuple[object, object, object]]) -> LedgerTotals:
    """Build LedgerTotals from (received_qty, issued_qty, unit_rate) rows."""
    recv = issued = recv_val = issued_val = ZERO
    count = 0
    for received_qty, issued_qty, unit_rate in rows:
        r = to_qty(received_qty)
        i = to_qty(issued_qty)
        rate = to_qty(unit_rate)
        recv += r
        issued += i
        recv_val += r * rate
        issued_val += i * rate
        count += 1
    return LedgerTotals(recv, issued, recv_val, issued_val, count)
