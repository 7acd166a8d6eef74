"""
============================================================================
SiteLedger - Site Budget Rules
============================================================================

Reliability Level: STANDARD
Decimal Integrity: Quantities at 4 dp, percentages at 2 dp (ROUND_HALF_UP)
Side Effects: None (pure functions)

RULES:
    Quantity limit:
        checked per requested line, so one item can yield several violations
        available = round4(budget_qty - ordered_qty)
        violation when budget_qty <= 0 and requested > 0,
                   or requested > available (1e-9 tolerance)
    Threshold alerts:
        consumed% = ordered / budget * 100 for QTY and VALUE
        an alert fires once per (kind, threshold) when consumed% >= threshold
        and the alert switch for that pair is on

============================================================================
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set, Tuple

from app.logic.decimal_gateway import ZERO, to_decimal, to_qty

TOLERANCE = Decimal("0.000000001")
PERCENT_PRECISION = Decimal("0.01")

ALERT_KIND_QTY = "QTY"
ALERT_KIND_VALUE = "VALUE"


@dataclass(frozen=True)
class BudgetQtyViolation:
    item_id: int
    budget_qty: Decimal
    ordered_qty: Decimal
    available_qty: Decimal
    requested_qty: Decimal
    message: str

    def to_dict(self) -> dict:
        return {
            "itemId": self.item_id,
            "budgetQty": str(self.budget_qty),
            "orderedQty": str(self.ordered_qty),
            "availableQty": str(self.available_qty),
            "requestedQty": str(self.requested_qty),
            "message": self.message,
        }


def check_item_qty(
    item_id: int,
    budget_qty,
    ordered_qty,
    requested_qty
) -> Optional[BudgetQtyViolation]:
    """Return a violation when requested_qty does not fit the remaining budget."""
    budget = to_qty(budget_qty)
    ordered = to_qty(ordered_qty)
    requested = to_qty(requested_qty)
    available = to_qty(budget - ordered)

    exceeded = (budget <= ZERO and requested > ZERO) or requested > available + TOLERANCE
    if not exceeded:
        return None

    message = f"{ordered:.2f}/{budget:.2f}, available:{max(ZERO, available):.2f}"
    return BudgetQtyViolation(item_id, budget, ordered, available, requested, message)


def requested_lines(items: Iterable[Tuple[object, object]]) -> List[Tuple[int, Decimal]]:
    """Valid (item_id, qty) lines in request order, skipping non-positive item ids and quantities."""
    lines: List[Tuple[int, Decimal]] = []
    for item_id, qty in items:
        try:
            item_key = int(item_id)
        except (TypeError, ValueError):
            continue
        if item_key <= 0:
            continue
        try:
            amount = to_qty(qty)
        except ValueError:
            continue
        if amount <= ZERO:
            continue
        lines.append((item_key, amount))
    return lines


def format_budget_qty_violations(violations: Iterable[BudgetQtyViolation]) -> str:
    return "Item limit exceeded -> " + ", ".join(
        f"{v.item_id}: {v.message}" for v in violations
    )


def consumed_percent(consumed, budget) -> Decimal:
    base = to_decimal(budget, Decimal("0.0001"))
    if base <= ZERO:
        return to_decimal(0, PERCENT_PRECISION)
    return to_decimal(to_decimal(consumed, Decimal("0.0001")) / base * 100, PERCENT_PRECISION)


@dataclass(frozen=True)
class ThresholdCrossing:
    kind: str
    threshold: int
    consumed_percent: Decimal


def evaluate_thresholds(
    budget_qty,
    budget_value,
    ordered_qty,
    ordered_value,
    switches: Dict[Tuple[str, int], bool],
    thresholds: Iterable[int],
    already_raised: Optional[Set[Tuple[str, int]]] = None
) -> List[ThresholdCrossing]:
    """
    New threshold crossings for one site budget line.

    switches holds the per-(kind, threshold) alert switches; thresholds
    without a switch entry are always evaluated.
    """
    raised = already_raised or set()
    percents = {
        ALERT_KIND_QTY: consumed_percent(ordered_qty, budget_qty),
        ALERT_KIND_VALUE: consumed_percent(ordered_value, budget_value),
    }
    crossings: List[ThresholdCrossing] = []
    for threshold in sorted(thresholds):
        for kind in (ALERT_KIND_QTY, ALERT_KIND_VALUE):
            key = (kind, threshold)
            if key in raised or not switches.get(key, True):
                continue
            if percents[kind] >= Decimal(threshold):
                crossings.append(ThresholdCrossing(kind, threshold, percents[kind]))
    return crossings


def average_rate(total_value, total_qty) -> Decimal:
    qty = to_decimal(total_qty, Decimal("0.0001"))
    if qty == ZERO:
        return to_decimal(0)
    return to_decimal(to_decimal(total_value) / qty)
