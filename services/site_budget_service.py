"""
============================================================================
SiteLedger - Site Budget Service
============================================================================

Reliability Level: STANDARD
Decimal Integrity: Quantities 4 dp, values 2 dp (ROUND_HALF_UP)

RESPONSIBILITIES:
    - Site budget lines per (site, BOQ, item) with budget value = qty x rate
    - Ordered quantity/value from non-suspended purchase orders
    - 50% / 75% consumption alerts (one alert per kind and threshold)
    - Quantity limit validation for purchase order lines

ERROR CODES:
    SB-001: Site budget not found
    SB-002: Budget for this site and item combination already exists
    SB-003: Quantity and rates must be positive
    SB-004: Purchase order exceeds site budget quantity

============================================================================
"""

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.auth.access_control import AuthenticatedUser, assigned_site_ids
from app.database.models import (
    Item,
    PurchaseOrder,
    PurchaseOrderDetail,
    Site,
    SiteBudget,
    SiteBudgetAlert,
)
from app.logic.decimal_gateway import ZERO, to_money, to_qty
from app.logic.site_budget_rules import (
    ALERT_KIND_QTY,
    ALERT_KIND_VALUE,
    BudgetQtyViolation,
    average_rate,
    check_item_qty,
    evaluate_thresholds,
    format_budget_qty_violations,
    requested_lines,
)
from app.observability.metrics import record_budget_alert
from services.erp_config import get_erp_config
from services.erp_errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class SiteBudgetErrorCode:
    NOT_FOUND = "SB-001"
    DUPLICATE = "SB-002"
    NOT_POSITIVE = "SB-003"
    QTY_EXCEEDED = "SB-004"


def _nullable_eq(column, value):
    return column.is_(None) if value is None else column == value


def _require_positive(**values) -> Dict[str, Decimal]:
    parsed = {}
    for name, raw in values.items():
        try:
            amount = to_qty(raw)
        except ValueError:
            amount = ZERO
        if amount <= ZERO:
            raise ValidationError(f"{name} must be greater than 0", SiteBudgetErrorCode.NOT_POSITIVE)
        parsed[name] = amount
    return parsed


# =============================================================================
# CRUD
# =============================================================================

def get_site_budget(db: Session, site_budget_id: int) -> SiteBudget:
    budget = db.get(SiteBudget, site_budget_id)
    if budget is None:
        raise NotFoundError("Site budget not found", SiteBudgetErrorCode.NOT_FOUND)
    return budget


def create_site_budget(
    db: Session,
    site_id: int,
    item_id: int,
    budget_qty,
    budget_rate,
    purchase_rate,
    boq_id: Optional[int] = None,
    alerts: Optional[Mapping[str, bool]] = None,
) -> SiteBudget:
    """Create a budget line; ordered figures start at zero."""
    values = _require_positive(budgetQty=budget_qty, budgetRate=budget_rate, purchaseRate=purchase_rate)

    duplicate = db.execute(
        select(SiteBudget.id).where(
            SiteBudget.site_id == site_id,
            SiteBudget.item_id == item_id,
            _nullable_eq(SiteBudget.boq_id, boq_id),
        )
    ).first()
    if duplicate is not None:
        raise ConflictError(
            "Budget for this site and item combination already exists",
            SiteBudgetErrorCode.DUPLICATE,
        )

    alerts = alerts or {}
    rate = to_money(values["budgetRate"])
    budget = SiteBudget(
        site_id=site_id,
        boq_id=boq_id,
        item_id=item_id,
        budget_qty=values["budgetQty"],
        budget_rate=rate,
        purchase_rate=to_money(values["purchaseRate"]),
        budget_value=to_money(values["budgetQty"] * rate),
        ordered_qty=ZERO,
        avg_rate=ZERO,
        ordered_value=ZERO,
        qty50_alert=bool(alerts.get("qty50_alert", False)),
        value50_alert=bool(alerts.get("value50_alert", False)),
        qty75_alert=bool(alerts.get("qty75_alert", False)),
        value75_alert=bool(alerts.get("value75_alert", False)),
    )
    db.add(budget)
    db.flush()
    refresh_site_budget_consumption(db, site_id, [item_id])
    db.commit()
    db.refresh(budget)
    logger.info(
        f"[SITE-BUDGET] Budget line created | id={budget.id} | site_id={site_id} | "
        f"item_id={item_id} | budget_value={budget.budget_value}"
    )
    return budget


def update_site_budget(db: Session, site_budget_id: int, changes: Mapping[str, Any]) -> SiteBudget:
    budget = get_site_budget(db, site_budget_id)

    qty = changes.get("budget_qty", budget.budget_qty)
    rate = changes.get("budget_rate", budget.budget_rate)
    purchase = changes.get("purchase_rate", budget.purchase_rate)
    values = _require_positive(budgetQty=qty, budgetRate=rate, purchaseRate=purchase)

    budget.budget_qty = values["budgetQty"]
    budget.budget_rate = to_money(values["budgetRate"])
    budget.purchase_rate = to_money(values["purchaseRate"])
    budget.budget_value = to_money(values["budgetQty"] * budget.budget_rate)
    for flag in ("qty50_alert", "value50_alert", "qty75_alert", "value75_alert"):
        if flag in changes and changes[flag] is not None:
            setattr(budget, flag, bool(changes[flag]))

    db.flush()
    refresh_site_budget_consumption(db, budget.site_id, [budget.item_id])
    db.commit()
    db.refresh(budget)
    return budget


def delete_site_budget(db: Session, site_budget_id: int) -> None:
    db.delete(get_site_budget(db, site_budget_id))
    db.commit()


# =============================================================================
# Ordered quantities
# =============================================================================

def ordered_totals(
    db: Session,
    site_id: int,
    boq_id: Optional[int],
    item_ids: Iterable[int],
    exclude_purchase_order_id: Optional[int] = None,
    match_boq: bool = True,
) -> Dict[int, Tuple[Decimal, Decimal]]:
    """(ordered qty, ordered value) per item from non-suspended purchase orders."""
    ids = sorted(set(item_ids))
    if not ids:
        return {}
    stmt = (
        select(
            PurchaseOrderDetail.item_id,
            func.coalesce(func.sum(PurchaseOrderDetail.qty), 0),
            func.coalesce(func.sum(PurchaseOrderDetail.amount), 0),
        )
        .join(PurchaseOrder, PurchaseOrderDetail.purchase_order_id == PurchaseOrder.id)
        .where(
            PurchaseOrder.site_id == site_id,
            PurchaseOrder.is_suspended.is_(False),
            PurchaseOrderDetail.item_id.in_(ids),
        )
        .group_by(PurchaseOrderDetail.item_id)
    )
    if match_boq:
        stmt = stmt.where(_nullable_eq(PurchaseOrder.boq_id, boq_id))
    if exclude_purchase_order_id:
        stmt = stmt.where(PurchaseOrder.id != exclude_purchase_order_id)

    return {
        int(item_id): (to_qty(qty), to_money(value))
        for item_id, qty, value in db.execute(stmt).all()
    }


def refresh_site_budget_consumption(
    db: Session,
    site_id: int,
    item_ids: Optional[Iterable[int]] = None,
) -> List[SiteBudgetAlert]:
    """
    Recompute ordered figures of a site's budget lines and raise new alerts.

    A line with a BOQ counts purchase orders of that BOQ; a line without a
    BOQ counts every purchase order of the site.
    """
    stmt = select(SiteBudget).where(SiteBudget.site_id == site_id)
    if item_ids is not None:
        ids = sorted(set(item_ids))
        if not ids:
            return []
        stmt = stmt.where(SiteBudget.item_id.in_(ids))
    budgets = db.execute(stmt).scalars().all()

    raised: List[SiteBudgetAlert] = []
    for budget in budgets:
        totals = ordered_totals(
            db, site_id, budget.boq_id, [budget.item_id], match_boq=budget.boq_id is not None
        )
        qty, value = totals.get(budget.item_id, (ZERO, ZERO))
        budget.ordered_qty = qty
        budget.ordered_value = value
        budget.avg_rate = average_rate(value, qty)
        raised.extend(_raise_alerts(db, budget))

    db.flush()
    return raised


def _raise_alerts(db: Session, budget: SiteBudget) -> List[SiteBudgetAlert]:
    config = get_erp_config(validate=False)
    switches = {
        (ALERT_KIND_QTY, 50): budget.qty50_alert,
        (ALERT_KIND_VALUE, 50): budget.value50_alert,
        (ALERT_KIND_QTY, 75): budget.qty75_alert,
        (ALERT_KIND_VALUE, 75): budget.value75_alert,
    }
    already = {(a.kind, a.threshold) for a in budget.alerts}
    crossings = evaluate_thresholds(
        budget.budget_qty,
        budget.budget_value,
        budget.ordered_qty,
        budget.ordered_value,
        switches,
        config.budget_alert_thresholds,
        already,
    )
    alerts = []
    for crossing in crossings:
        alert = SiteBudgetAlert(
            kind=crossing.kind,
            threshold=crossing.threshold,
            consumed_percent=crossing.consumed_percent,
        )
        budget.alerts.append(alert)
        alerts.append(alert)
        record_budget_alert(crossing.kind, crossing.threshold)
        logger.warning(
            f"[SITE-BUDGET] Threshold reached | site_budget_id={budget.id} | "
            f"site_id={budget.site_id} | item_id={budget.item_id} | kind={crossing.kind} | "
            f"threshold={crossing.threshold}% | consumed={crossing.consumed_percent}%"
        )
    return alerts


# =============================================================================
# Quantity validation
# =============================================================================

def validate_site_boq_budget_qty_for_items(
    db: Session,
    site_id: Optional[int],
    boq_id: Optional[int],
    items: Sequence[Tuple[Any, Any]],
    exclude_purchase_order_id: Optional[int] = None,
) -> List[BudgetQtyViolation]:
    """
    Check each requested (item_id, qty) line against the site + BOQ budget.

    Returns the violations; an empty list when site/BOQ is not set or no
    valid item was requested.
    """
    if not site_id or site_id <= 0 or not boq_id or boq_id <= 0:
        return []
    lines = requested_lines(items)
    if not lines:
        return []
    item_ids = sorted({item_id for item_id, _ in lines})

    budget_rows = db.execute(
        select(SiteBudget.item_id, func.coalesce(func.sum(SiteBudget.budget_qty), 0))
        .where(
            SiteBudget.site_id == site_id,
            SiteBudget.boq_id == boq_id,
            SiteBudget.item_id.in_(item_ids),
        )
        .group_by(SiteBudget.item_id)
    ).all()
    budget_qty = {int(item_id): to_qty(qty) for item_id, qty in budget_rows}
    ordered = ordered_totals(db, site_id, boq_id, item_ids, exclude_purchase_order_id)

    violations: List[BudgetQtyViolation] = []
    for item_id, qty in lines:
        violation = check_item_qty(
            item_id,
            budget_qty.get(item_id, ZERO),
            ordered.get(item_id, (ZERO, ZERO))[0],
            qty,
        )
        if violation is not None:
            violations.append(violation)
    return violations


def enforce_site_budget(
    db: Session,
    site_id: Optional[int],
    boq_id: Optional[int],
    items: Sequence[Tuple[Any, Any]],
    exclude_purchase_order_id: Optional[int] = None,
) -> None:
    """Raise SB-004 when validation is enabled and any item exceeds the budget."""
    if not get_erp_config(validate=False).site_budget_validation_enabled:
        return
    violations = validate_site_boq_budget_qty_for_items(
        db, site_id, boq_id, items, exclude_purchase_order_id
    )
    if violations:
        message = format_budget_qty_violations(violations)
        logger.warning(f"[{SiteBudgetErrorCode.QTY_EXCEEDED}] {message} | site_id={site_id} | boq_id={boq_id}")
        raise ValidationError(
            message,
            SiteBudgetErrorCode.QTY_EXCEEDED,
            extra={"violations": [v.to_dict() for v in violations]},
        )


# =============================================================================
# Summary & listing
# =============================================================================

def site_budget_summary(db: Session, site_id: int) -> Dict[str, Any]:
    count, total_value, total_qty = db.execute(
        select(
            func.count(SiteBudget.id),
            func.coalesce(func.sum(SiteBudget.budget_value), 0),
            func.coalesce(func.sum(SiteBudget.budget_qty), 0),
        ).where(SiteBudget.site_id == site_id)
    ).one()
    return {
        "siteId": site_id,
        "totalItems": int(count),
        "totalBudgetValue": str(to_money(total_value)),
        "avgBudgetRate": str(average_rate(total_value, total_qty)),
    }


SITE_BUDGET_SORT_COLUMNS = {
    "createdAt": SiteBudget.created_at,
    "budgetValue": SiteBudget.budget_value,
    "budgetQty": SiteBudget.budget_qty,
}
SITE_BUDGET_DEFAULT_SORT = "createdAt"


def site_budget_list_query(
    db: Session,
    user: AuthenticatedUser,
    search: str = "",
    site_id: Optional[int] = None,
    boq_id: Optional[int] = None,
):
    stmt = select(SiteBudget).join(Item, SiteBudget.item_id == Item.id).join(Site, SiteBudget.site_id == Site.id)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Item.item.ilike(pattern), Item.item_code.ilike(pattern), Site.site.ilike(pattern)))
    if site_id:
        stmt = stmt.where(SiteBudget.site_id == site_id)
    if boq_id:
        stmt = stmt.where(SiteBudget.boq_id == boq_id)
    visible = assigned_site_ids(db, user)
    if visible is not None:
        if not visible:
            return None
        stmt = stmt.where(SiteBudget.site_id.in_(visible))
    return stmt


def serialize_site_budget(budget: SiteBudget) -> Dict[str, Any]:
    return {
        "id": budget.id,
        "siteId": budget.site_id,
        "site": budget.site.site if budget.site else None,
        "boqId": budget.boq_id,
        "itemId": budget.item_id,
        "item": budget.item.item if budget.item else None,
        "budgetQty": str(to_qty(budget.budget_qty)),
        "budgetRate": str(to_money(budget.budget_rate)),
        "purchaseRate": str(to_money(budget.purchase_rate)),
        "budgetValue": str(to_money(budget.budget_value)),
        "orderedQty": str(to_qty(budget.ordered_qty)),
        "avgRate": str(to_money(budget.avg_rate)),
        "orderedValue": str(to_money(budget.ordered_value)),
        "qty50Alert": budget.qty50_alert,
        "value50Alert": budget.value50_alert,
        "qty75Alert": budget.qty75_alert,
        "value75Alert": budget.value75_alert,
        "alerts": [
            {
                "kind": a.kind,
                "threshold": a.threshold,
                "consumedPercent": str(a.consumed_percent),
                "raisedAt": a.raised_at.isoformat() if a.raised_at else None,
            }
            for a in budget.alerts
        ],
    }
