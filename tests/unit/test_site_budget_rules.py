"""
Unit Tests for Site Budget Rules

- Quantity limit check and its violation message
- Requested quantity aggregation per item
- Consumption percentages and threshold crossings
"""

import os
import sys
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.logic.site_budget_rules import (
    ALERT_KIND_QTY,
    ALERT_KIND_VALUE,
    average_rate,
    check_item_qty,
    consumed_percent,
    evaluate_thresholds,
    format_budget_qty_violations,
    requested_lines,
)

ALL_ON = {
    (ALERT_KIND_QTY, 50): True,
    (ALERT_KIND_VALUE, 50): True,
    (ALERT_KIND_QTY, 75): True,
    (ALERT_KIND_VALUE, 75): True,
}


# =============================================================================
# Quantity limit
# =============================================================================

class TestCheckItemQty:

    def test_request_within_available(self) -> None:
        assert check_item_qty(1, 100, 40, 60) is None

    def test_request_above_available(self) -> None:
        violation = check_item_qty(1, 100, 40, "60.0001")
        assert violation is not None
        assert violation.available_qty == Decimal("60.0000")
        assert violation.message == "40.00/100.00, available:60.00"

    def test_zero_budget_rejects_any_request(self) -> None:
        violation = check_item_qty(7, 0, 0, 1)
        assert violation.message == "0.00/0.00, available:0.00"

    def test_overordered_budget_reports_zero_available(self) -> None:
        violation = check_item_qty(3, 10, 12, 1)
        assert violation.available_qty == Decimal("-2.0000")
        assert violation.message.endswith("available:0.00")

    def test_to_dict_uses_strings(self) -> None:
        data = check_item_qty(5, 10, 5, 6).to_dict()
        assert data["itemId"] == 5
        assert data["requestedQty"] == "6.0000"
        assert data["availableQty"] == "5.0000"

    def test_violation_summary(self) -> None:
        violations = [check_item_qty(1, 10, 5, 6), check_item_qty(2, 0, 0, 1)]
        assert format_budget_qty_violations(violations) == (
            "Item limit exceeded -> 1: 5.00/10.00, available:5.00, 2: 0.00/0.00, available:0.00"
        )


class TestRequestedLines:

    def test_keeps_lines_and_skips_invalid_rows(self) -> None:
        lines = requested_lines([
            (1, 2), ("1", "3"), (0, 5), (2, -1), ("x", 1), (3, "abc"), (4, None),
        ])
        assert lines == [(1, Decimal("2.0000")), (1, Decimal("3.0000"))]


# =============================================================================
# Consumption thresholds
# =============================================================================

class TestThresholds:

    @pytest.mark.parametrize("consumed,budget,expected", [
        (50, 100, "50.00"),
        (1, 3, "33.33"),
        (2, 3, "66.67"),
        (10, 0, "0.00"),
        (150, 100, "150.00"),
    ])
    def test_consumed_percent(self, consumed, budget, expected) -> None:
        assert consumed_percent(consumed, budget) == Decimal(expected)

    def test_crossings_in_threshold_order(self) -> None:
        crossings = evaluate_thresholds(100, 1000, 60, 800, ALL_ON, (75, 50))
        assert [(c.kind, c.threshold) for c in crossings] == [
            (ALERT_KIND_QTY, 50),
            (ALERT_KIND_VALUE, 50),
            (ALERT_KIND_VALUE, 75),
        ]
        assert crossings[2].consumed_percent == Decimal("80.00")

    def test_switched_off_pairs_are_skipped(self) -> None:
        switches = dict(ALL_ON)
        switches[(ALERT_KIND_VALUE, 50)] = False
        crossings = evaluate_thresholds(100, 1000, 60, 600, switches, (50, 75))
        assert [(c.kind, c.threshold) for c in crossings] == [(ALERT_KIND_QTY, 50)]

    def test_already_raised_pairs_fire_once(self) -> None:
        crossings = evaluate_thresholds(
            100, 1000, 90, 900, ALL_ON, (50, 75),
            already_raised={(ALERT_KIND_QTY, 50), (ALERT_KIND_VALUE, 50)},
        )
        assert [(c.kind, c.threshold) for c in crossings] == [
            (ALERT_KIND_QTY, 75),
            (ALERT_KIND_VALUE, 75),
        ]

    def test_thresholds_without_switch_are_evaluated(self) -> None:
        crossings = evaluate_thresholds(100, 1000, 95, 950, ALL_ON, (90,))
        assert {c.kind for c in crossings} == {ALERT_KIND_QTY, ALERT_KIND_VALUE}

    def test_below_threshold_raises_nothing(self) -> None:
        assert evaluate_thresholds(100, 1000, 49.99, 499, ALL_ON, (50, 75)) == []


class TestAverageRate:

    def test_value_over_qty(self) -> None:
        assert average_rate(1000, 3) == Decimal("333.33")

    def test_zero_qty(self) -> None:
        assert average_rate(1000, 0) == Decimal("0.00")
