"""
============================================================================
SiteLedger - Cashbook Budget Service
============================================================================

Reliability Level: STANDARD
Decimal Integrity: Amounts are decimal.Decimal, 2 dp, ROUND_HALF_UP

A cashbook budget plans monthly spend per cashbook head for one
(site, BOQ) context. Its received amounts mirror the cashbook:

    item.received_amount   = Σ amount_received of details whose voucher
                             matches site/BOQ and was created in the month
    total_received_amount  = Σ item.received_amount

ACTIONS:
    approve    items required; approved_amount per item, approver + time
    approve_1  items required; approved1_amount per item, approver + time
    accept     acceptor + time

ERROR CODES:
    CBB-001: Budget not found
    CBB-002: Invalid month (expected MM-YYYY)
    CBB-003: Budget needs at least one item
    CBB-004: Invalid action
    CBB-005: Budget already exists for month/site/BOQ

============================================================================
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging
import re
import time

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.auth.access_control import AuthenticatedUser, assigned_site_ids, ensure_site_access
from app.database.models import (
    Cashbook,
    CashbookBudget,
    CashbookBudgetItem,
    CashbookDetail,
    Site,
    utcnow,
)
from app.logic.decimal_gateway import ZERO, to_money
from app.logic.ledger_math import sum_money
from app.observability.metrics import record_approval_action, record_ledger_recompute
from services.erp_errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class CashbookBudgetErrorCode:
    NOT_FOUND = "CBB-001"
    INVALID_MONTH = "CBB-002"
    NO_ITEMS = "CBB-003"
    INVALID_ACTION = "CBB-004"
    DUPLICATE = "CBB-005"


BUDGET_ACTIONS = ("approve", "approve_1", "accept")

_MONTH_RE = re.compile(r"^(0[1-9]|1[0-2])-(\d{4})$")


# =============================================================================
# Month helpers
# =============================================================================

def month_key(moment: datetime) -> str:
    """'MM-YYYY' for a timestamp."""
    return f"{moment.month:02d}-{moment.year}"


def validate_month(month: str) -> str:
    if not month or not _MONTH_RE.match(month):
        raise ValidationError("Month must be in MM-YYYY format", CashbookBudgetErrorCode.INVALID_MONTH)
    return month


def month_range(month: str) -> Tuple[datetime, datetime]:
    """[start, end) of an 'MM-YYYY' month."""
    validate_month(month)
    mm, yyyy = month.split("-")
    m, y = int(mm), int(yyyy)
    start = datetime(y, m, 1)
    end = datetime(y + 1, 1, 1) if m == 12 else datetime(y, m + 1, 1)
    return start, end


def _nullable_eq(column, value):
    return column.is_(None) if value is None else column == value


def find_budget(db: Session, site_id: Optional[int], boq_id: Optional[int], month: str) -> Optional[CashbookBudget]:
    return db.execute(
        select(CashbookBudget).where(
            CashbookBudget.month == month,
            _nullable_eq(CashbookBudget.site_id, site_id),
            _nullable_eq(CashbookBudget.boq_id, boq_id),
        )
    ).scalars().first()


# =============================================================================
# Received-amount recomputation
# =============================================================================

def recompute_budget_for_context(
    db: Session,
    site_id: Optional[int],
    boq_id: Optional[int],
    month: str,
    cashbook_head_ids: Iterable[int],
) -> Optional[CashbookBudget]:
    """Refresh received amounts of the given heads, then the budget total."""
    head_ids = sorted({int(h) for h in cashbook_head_ids if h})
    if not month or not head_ids:
        return None

    budget = find_budget(db, site_id, boq_id, month)
    if budget is None:
        return None

    started = time.perf_counter()
    start, end = month_range(month)
    db.flush()

    for head_id in head_ids:
        received = db.execute(
            select(func.coalesce(func.sum(CashbookDetail.amount_received), 0))
            .join(Cashbook, CashbookDetail.cashbook_id == Cashbook.id)
            .where(
                CashbookDetail.cashbook_head_id == head_id,
                CashbookDetail.amount_received.isnot(None),
                _nullable_eq(Cashbook.site_id, site_id),
                _nullable_eq(Cashbook.boq_id, boq_id),
                Cashbook.created_at >= start,
                Cashbook.created_at < end,
            )
        ).scalar_one()
        for item in budget.items:
            if item.cashbook_head_id == head_id:
                item.received_amount = to_money(received)

    budget.total_received_amount = sum_money(i.received_amount for i in budget.items)
    db.flush()

    record_ledger_recompute("cashbook_budget", len(head_ids), time.perf_counter() - started)
    logger.info(
        f"[CASHBOOK-BUDGET] Received amounts recomputed | budget_id={budget.id} | "
        f"month={month} | heads={head_ids} | total_received={budget.total_received_amount}"
    )
    return budget


def recompute_budget_by_key(
    db: Session,
    site_id: Optional[int],
    boq_id: Optional[int],
    month: str,
) -> Optional[CashbookBudget]:
    """Recompute every head of the budget identified by (site, BOQ, month)."""
    if not month:
        return None
    budget = find_budget(db, site_id, boq_id, month)
    if budget is None:
        return None
    head_ids = {i.cashbook_head_id for i in budget.items}
    if not head_ids:
        budget.total_received_amount = ZERO
        db.flush()
        return budget
    return recompute_budget_for_context(db, site_id, boq_id, month, head_ids)


def recompute_budget_for_cashbook(
    db: Session,
    cashbook_id: int,
    extra_contexts: Optional[Sequence[Tuple[Optional[int], Optional[int]]]] = None,
) -> None:
    """
    Recompute the budget a voucher counts towards (month of its creation).

    extra_contexts lists further (site, BOQ) pairs for the same month, used
    when a voucher moved between contexts.
    """
    cashbook = db.get(Cashbook, cashbook_id)
    if cashbook is None:
        return
    month = month_key(cashbook.created_at)
    contexts = [(cashbook.site_id, cashbook.boq_id)]
    for ctx in extra_contexts or []:
        if ctx not in contexts:
            contexts.append(ctx)
    for site_id, boq_id in contexts:
        recompute_budget_by_key(db, site_id, boq_id, month)


# =============================================================================
# CRUD
# =============================================================================

def get_budget(db: Session, budget_id: int) -> CashbookBudget:
    budget = db.get(CashbookBudget, budget_id)
    if budget is None:
        raise NotFoundError("Budget not found", CashbookBudgetErrorCode.NOT_FOUND)
    return budget


def _build_items(rows: Sequence[Mapping[str, Any]]) -> List[CashbookBudgetItem]:
    if not rows:
        raise ValidationError("At least one budget item is required", CashbookBudgetErrorCode.NO_ITEMS)
    return [
        CashbookBudgetItem(
            cashbook_head_id=int(row["cashbook_head_id"]),
            description=row.get("description"),
            amount=to_money(row.get("amount")),
            received_amount=ZERO,
        )
        for row in rows
    ]


def create_budget(
    db: Session,
    name: str,
    month: str,
    site_id: int,
    items: Sequence[Mapping[str, Any]],
    boq_id: Optional[int] = None,
    remarks: Optional[str] = None,
) -> CashbookBudget:
    validate_month(month)
    if find_budget(db, site_id, boq_id, month) is not None:
        raise ConflictError(
            "Budget for this month, site and BOQ already exists", CashbookBudgetErrorCode.DUPLICATE
        )

    built = _build_items(items)
    budget = CashbookBudget(
        name=name,
        month=month,
        site_id=site_id,
        boq_id=boq_id,
        remarks=remarks,
        items=built,
        total_budget=sum_money(i.amount for i in built),
        total_received_amount=ZERO,
    )
    db.add(budget)
    db.flush()
    recompute_budget_by_key(db, site_id, boq_id, month)
    db.commit()
    db.refresh(budget)
    logger.info(
        f"[CASHBOOK-BUDGET] Budget created | budget_id={budget.id} | month={month} | "
        f"site_id={site_id} | boq_id={boq_id} | total_budget={budget.total_budget}"
    )
    return budget


def delete_budget(db: Session, budget_id: int) -> None:
    budget = get_budget(db, budget_id)
    db.delete(budget)
    db.commit()


# =============================================================================
# Approval actions
# =============================================================================

def apply_budget_action(
    db: Session,
    budget_id: int,
    action: str,
    user: AuthenticatedUser,
    items: Optional[Sequence[Mapping[str, Any]]] = None,
) -> CashbookBudget:
    """
    Apply approve / approve_1 / accept.

    items: [{"id": budget item id, "approved_amount": amount}] for the
    approval actions.
    """
    if action not in BUDGET_ACTIONS:
        raise ValidationError("Invalid action", CashbookBudgetErrorCode.INVALID_ACTION)

    budget = get_budget(db, budget_id)
    ensure_site_access(db, user, budget.site_id)
    now = utcnow()

    if action in ("approve", "approve_1"):
        if not items:
            record_approval_action("cashbook_budget", action, CashbookBudgetErrorCode.NO_ITEMS)
            raise ValidationError("budgetItems are required", CashbookBudgetErrorCode.NO_ITEMS)

        by_id = {i.id: i for i in budget.items}
        for row in items:
            item = by_id.get(int(row["id"]))
            if item is None:
                continue
            amount = to_money(row.get("approved_amount"))
            if action == "approve":
                item.approved_amount = amount
            else:
                item.approved1_amount = amount

        if action == "approve":
            budget.approved_budget_amount = sum_money(i.approved_amount for i in budget.items)
            budget.approved_by_id = user.id
            budget.approved_datetime = now
        else:
            budget.approved1_budget_amount = sum_money(i.approved1_amount for i in budget.items)
            budget.approved1_by_id = user.id
            budget.approved1_datetime = now
        budget.total_budget = sum_money(i.amount for i in budget.items)
    else:
        budget.accepted_by_id = user.id
        budget.accepted_datetime = now

    db.commit()
    db.refresh(budget)
    record_approval_action("cashbook_budget", action, "applied")
    logger.info(
        f"[CASHBOOK-BUDGET] Action applied | budget_id={budget_id} | action={action} | user_id={user.id}"
    )
    return budget


# =============================================================================
# Listing
# =============================================================================

BUDGET_SORT_COLUMNS = {
    "name": CashbookBudget.name,
    "month": CashbookBudget.month,
    "createdAt": CashbookBudget.created_at,
}
BUDGET_DEFAULT_SORT = "createdAt"


def budget_list_query(db: Session, user: AuthenticatedUser, search: str = "", site_id: Optional[int] = None):
    stmt = select(CashbookBudget).join(Site, CashbookBudget.site_id == Site.id)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(CashbookBudget.name.ilike(pattern), CashbookBudget.month.ilike(pattern), Site.site.ilike(pattern))
        )
    if site_id:
        stmt = stmt.where(CashbookBudget.site_id == site_id)
    visible = assigned_site_ids(db, user)
    if visible is not None:
        if not visible:
            return None
        stmt = stmt.where(CashbookBudget.site_id.in_(visible))
    return stmt


def _m(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(to_money(value))


def serialize_budget(budget: CashbookBudget) -> Dict[str, Any]:
    return {
        "id": budget.id,
        "name": budget.name,
        "month": budget.month,
        "siteId": budget.site_id,
        "site": budget.site.site if budget.site else None,
        "boqId": budget.boq_id,
        "boqNo": budget.boq.boq_no if budget.boq else None,
        "totalBudget": _m(budget.total_budget),
        "approvedBudgetAmount": _m(budget.approved_budget_amount),
        "approved1BudgetAmount": _m(budget.approved1_budget_amount),
        "totalReceivedAmount": _m(budget.total_received_amount),
        "approvedById": budget.approved_by_id,
        "approvedDatetime": budget.approved_datetime.isoformat() if budget.approved_datetime else None,
        "approved1ById": budget.approved1_by_id,
        "approved1Datetime": budget.approved1_datetime.isoformat() if budget.approved1_datetime else None,
        "acceptedById": budget.accepted_by_id,
        "acceptedDatetime": budget.accepted_datetime.isoformat() if budget.accepted_datetime else None,
        "remarks": budget.remarks,
        "budgetItems": [
            {
                "id": i.id,
                "cashbookHeadId": i.cashbook_head_id,
                "cashbookHead": i.cashbook_head.cashbook_head_name if i.cashbook_head else None,
                "description": i.description,
                "amount": _m(i.amount),
                "approvedAmount": _m(i.approved_amount),
                "approved1Amount": _m(i.approved1_amount),
                "receivedAmount": _m(i.received_amount),
            }
            for i in budget.items
        ],
    }
