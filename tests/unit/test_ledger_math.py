"""
Unit Tests for Ledger Arithmetic

Reliability Level: STANDARD

- Cashbook running balances carry forward with 2 dp rounding
- Closing stock positions from opening figures and ledger sums
- Moving weighted average on receipt, clamped issue, valued issue
"""

import os
import sys
from decimal import Decimal

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.logic.ledger_math import (
    BalanceMovement,
    LedgerTotals,
    StockPosition,
    closing_position,
    issue_at_value,
    issue_from_stock,
    line_amount,
    receive_into_stock,
    running_balances,
    split_totals,
    sum_money,
)


# =============================================================================
# Running balances
# =============================================================================

class TestRunningBalances:

    def test_starts_at_zero_without_seed(self) -> None:
        lines = running_balances(None, [
            BalanceMovement(1, Decimal("100"), None),
            BalanceMovement(2, None, Decimal("30")),
            BalanceMovement(3, Decimal("5.555"), Decimal("0")),
        ])
        assert [(l.detail_id, l.opening_balance, l.closing_balance) for l in lines] == [
            (1, Decimal("0.00"), Decimal("100.00")),
            (2, Decimal("100.00"), Decimal("70.00")),
            (3, Decimal("70.00"), Decimal("75.56")),
        ]

    def test_seed_becomes_first_opening(self) -> None:
        lines = running_balances(Decimal("50.00"), [BalanceMovement(9, None, Decimal("80"))])
        assert lines[0].opening_balance == Decimal("50.00")
        assert lines[0].closing_balance == Decimal("-30.00")

    def test_each_opening_equals_previous_closing(self) -> None:
        movements = [BalanceMovement(i, Decimal(i), Decimal("1.25")) for i in range(1, 8)]
        lines = running_balances(Decimal("10"), movements)
        for previous, current in zip(lines, lines[1:]):
            assert current.opening_balance == previous.closing_balance

    def test_no_movements(self) -> None:
        assert running_balances(Decimal("12"), []) == []


# =============================================================================
# Closing position
# =============================================================================

class TestClosingPosition:

    def test_split_totals_values_rows_at_their_rate(self) -> None:
        totals = split_totals([(Decimal("5"), Decimal("0"), Decimal("12")), (None, Decimal("3"), Decimal("10"))])
        assert totals.received_qty == Decimal("5")
        assert totals.issued_qty == Decimal("3")
        assert totals.received_value == Decimal("60")
        assert totals.issued_value == Decimal("30")
        assert totals.row_count == 2

    def test_without_rows_opening_is_closing(self) -> None:
        position = closing_position("10", "100", "10", None)
        assert position == StockPosition(Decimal("10.0000"), Decimal("100.00"), Decimal("10.0000"))
        assert closing_position("10", "100", "10", LedgerTotals()) == position

    def test_with_rows(self) -> None:
        totals = split_totals([(5, 0, 12), (0, 3, 10)])
        position = closing_position(10, 100, 10, totals)
        assert position.stock == Decimal("12.0000")
        assert position.value == Decimal("130.00")
        assert position.unit_rate == Decimal("10.8333")

    def test_zero_closing_has_zero_rate(self) -> None:
        position = closing_position(0, 0, 0, split_totals([(4, 0, 10), (0, 4, 10)]))
        assert position.stock == Decimal("0.0000")
        assert position.unit_rate == Decimal("0.0000")


# =============================================================================
# Receipts and issues
# =============================================================================

class TestStockMovements:

    def test_first_receipt(self) -> None:
        position = receive_into_stock(None, 10, 1000)
        assert position == StockPosition(Decimal("10.0000"), Decimal("1000.0000"), Decimal("100.0000"))

    def test_receipt_uses_weighted_average(self) -> None:
        current = StockPosition(Decimal("10"), Decimal("1000"), Decimal("100"))
        position = receive_into_stock(current, 10, 1200)
        assert position.stock == Decimal("20.0000")
        assert position.unit_rate == Decimal("110.0000")

    def test_issue_never_goes_negative(self) -> None:
        current = StockPosition(Decimal("5"), Decimal("500"), Decimal("100"))
        position = issue_from_stock(current, 8, 100)
        assert position.stock == Decimal("0.0000")
        assert position.value == Decimal("0.00")
        assert position.unit_rate == Decimal("100.0000")

    def test_issue_values_remaining_stock_at_rate(self) -> None:
        current = StockPosition(Decimal("10"), Decimal("1000"), Decimal("100"))
        position = issue_from_stock(current, 3, "99.995")
        assert position.stock == Decimal("7.0000")
        assert position.value == Decimal("700.00")

    def test_issue_at_value_recomputes_rate(self) -> None:
        current = StockPosition(Decimal("10"), Decimal("1000"), Decimal("100"))
        position = issue_at_value(current, 4, 300)
        assert position.stock == Decimal("6.0000")
        assert position.value == Decimal("700.0000")
        assert position.unit_rate == Decimal("116.6667")


class TestHelpers:

    def test_line_amount(self) -> None:
        assert line_amount("2.5", "10.005") == Decimal("25.03")

    def test_sum_money_rounds_each_value(self) -> None:
        assert sum_money(["0.005", "0.005", None]) == Decimal("0.02")
