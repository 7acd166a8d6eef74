"""
============================================================================
SiteLedger - Cashbook Ledger Service
============================================================================

Reliability Level: STANDARD
Decimal Integrity: Balances are decimal.Decimal, 2 dp, ROUND_HALF_UP
Traceability: Recomputations log site, heads and rows rewritten

CASHBOOK RUNNING BALANCE:
    Per (site, optional BOQ, cashbook head) the details form one ledger,
    ordered by (voucher date, cashbook id, detail id).

    seed     = closing balance of the last detail before the start day
    opening  = round2(running)
    closing  = round2(opening + received - paid)
    running  = closing

    Only rows whose stored opening/closing differ are written. Callers
    commit; the recompute never commits on its own so a failure rolls back
    the whole voucher operation.

ERROR CODES:
    CB-001: Cashbook not found
    CB-002: Voucher must carry at least one detail
    CB-003: Invalid site / cashbook head for last balance
    CB-004: Approval out of order or repeated

============================================================================
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union
import logging
import time
import uuid

from sqlalchemy import and_, exists, not_, or_, select
from sqlalchemy.orm import Session

from app.auth.access_control import ADMIN_ONLY, AuthenticatedUser, assigned_site_ids
from app.database.models import Boq, Cashbook, CashbookDetail, Site, utcnow
from app.logic.decimal_gateway import to_money
from app.logic.ledger_math import BalanceMovement, running_balances
from app.logic.numbering import format_voucher_no
from app.observability.metrics import record_approval_action, record_ledger_recompute
from services.cashbook_budget_service import (
    month_key,
    recompute_budget_by_key,
    recompute_budget_for_cashbook,
)
from services.erp_errors import InvalidTransitionError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class CashbookErrorCode:
    NOT_FOUND = "CB-001"
    NO_DETAILS = "CB-002"
    INVALID_LAST_BALANCE_QUERY = "CB-003"
    APPROVAL_ORDER = "CB-004"


class _AnyBoq:
    """Sentinel: do not filter ledger rows by BOQ."""

    def __repr__(self) -> str:
        return "ANY_BOQ"


ANY_BOQ = _AnyBoq()

BoqFilter = Union[int, None, _AnyBoq]


def _boq_clause(boq_id: BoqFilter):
    if isinstance(boq_id, _AnyBoq):
        return None
    if boq_id is None:
        return Cashbook.boq_id.is_(None)
    return Cashbook.boq_id == boq_id


def _positive_ids(ids: Optional[Iterable[Any]]) -> List[int]:
    cleaned: Set[int] = set()
    for raw in ids or []:
        try:
            value = int(raw)
        except (TypeError, ValueError):
            continue
        if value > 0:
            cleaned.add(value)
    return sorted(cleaned)


def _as_date(value: Union[date, datetime, str]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()


# =============================================================================
# Running balance recomputation
# =============================================================================

def recompute_cashbook_balances(
    db: Session,
    site_id: Optional[int],
    boq_id: BoqFilter,
    cashbook_head_ids: Iterable[Any],
    from_voucher_date: Union[date, datetime, str],
    correlation_id: Optional[str] = None,
) -> int:
    """
    Recalculate opening/closing balances from the start of from_voucher_date.

    Returns:
        Number of cashbook detail rows rewritten
    """
    if not site_id or int(site_id) <= 0:
        return 0
    head_ids = _positive_ids(cashbook_head_ids)
    if not head_ids:
        return 0

    correlation_id = correlation_id or str(uuid.uuid4())
    start_day = _as_date(from_voucher_date)
    started = time.perf_counter()
    boq_clause = _boq_clause(boq_id)
    rewritten = 0

    db.flush()

    for head_id in head_ids:
        context = [Cashbook.site_id == site_id, CashbookDetail.cashbook_head_id == head_id]
        if boq_clause is not None:
            context.append(boq_clause)

        seed = db.execute(
            select(CashbookDetail.closing_balance)
            .join(Cashbook, CashbookDetail.cashbook_id == Cashbook.id)
            .where(*context, Cashbook.voucher_date < start_day)
            .order_by(
                Cashbook.voucher_date.desc(),
                Cashbook.id.desc(),
                CashbookDetail.id.desc(),
            )
            .limit(1)
        ).scalar_one_or_none()

        details = db.execute(
            select(CashbookDetail)
            .join(Cashbook, CashbookDetail.cashbook_id == Cashbook.id)
            .where(*context, Cashbook.voucher_date >= start_day)
            .order_by(
                Cashbook.voucher_date.asc(),
                Cashbook.id.asc(),
                CashbookDetail.id.asc(),
            )
        ).scalars().all()

        lines = running_balances(
            seed,
            (BalanceMovement(d.id, d.amount_received, d.amount_paid) for d in details),
        )

        for detail, line in zip(details, lines):
            current_opening = None if detail.opening_balance is None else to_money(detail.opening_balance)
            current_closing = None if detail.closing_balance is None else to_money(detail.closing_balance)
            if current_opening != line.opening_balance or current_closing != line.closing_balance:
                detail.opening_balance = line.opening_balance
                detail.closing_balance = line.closing_balance
                rewritten += 1

    db.flush()

    duration = time.perf_counter() - started
    record_ledger_recompute("cashbook", rewritten, duration, correlation_id)
    logger.info(
        f"[CASHBOOK-LEDGER] Recompute complete | site_id={site_id} | boq_id={boq_id} | "
        f"heads={head_ids} | from={start_day.isoformat()} | rows_rewritten={rewritten} | "
        f"correlation_id={correlation_id}"
    )
    return rewritten


# =============================================================================
# Voucher numbering
# =============================================================================

def _month_bounds(day: date):
    start = day.replace(day=1)
    end = date(start.year + 1, 1, 1) if start.month == 12 else date(start.year, start.month + 1, 1)
    return start, end


def generate_voucher_no(db: Session, voucher_date: date) -> str:
    start, end = _month_bounds(voucher_date)
    existing = db.execute(
        select(Cashbook.voucher_no).where(
            Cashbook.voucher_date >= start, Cashbook.voucher_date < end
        )
    ).scalars().all()
    return format_voucher_no(voucher_date, existing)


# =============================================================================
# Voucher CRUD
# =============================================================================

def _build_details(rows: Sequence[Mapping[str, Any]]) -> List[CashbookDetail]:
    if not rows:
        raise ValidationError(
            "At least one cashbook detail is required", CashbookErrorCode.NO_DETAILS
        )
    details = []
    for row in rows:
        head_id = int(row.get("cashbook_head_id") or 0)
        if head_id < 1:
            raise ValidationError("Cashbook head is required", CashbookErrorCode.NO_DETAILS)
        received = row.get("amount_received")
        paid = row.get("amount_paid")
        details.append(
            CashbookDetail(
                cashbook_head_id=head_id,
                description=row.get("description"),
                amount_received=None if received is None else to_money(received),
                amount_paid=None if paid is None else to_money(paid),
                document_url=row.get("document_url"),
            )
        )
    return details


def get_cashbook(db: Session, cashbook_id: int) -> Cashbook:
    cashbook = db.get(Cashbook, cashbook_id)
    if cashbook is None:
        raise NotFoundError("Cashbook not found", CashbookErrorCode.NOT_FOUND)
    return cashbook


def create_cashbook(
    db: Session,
    voucher_date: Union[date, datetime, str],
    details: Sequence[Mapping[str, Any]],
    site_id: Optional[int] = None,
    boq_id: Optional[int] = None,
    attach_voucher_copy_url: Optional[str] = None,
    user: Optional[AuthenticatedUser] = None,
) -> Cashbook:
    """Create a voucher, number it and recompute the affected ledgers."""
    day = _as_date(voucher_date)
    built = _build_details(details)

    cashbook = Cashbook(
        voucher_no=generate_voucher_no(db, day),
        voucher_date=day,
        site_id=site_id,
        boq_id=boq_id,
        attach_voucher_copy_url=attach_voucher_copy_url,
        created_by_id=user.id if user else None,
        details=built,
    )
    db.add(cashbook)
    db.flush()

    recompute_cashbook_balances(
        db, site_id, boq_id, [d.cashbook_head_id for d in built], day
    )
    recompute_budget_for_cashbook(db, cashbook.id)
    db.commit()
    db.refresh(cashbook)

    logger.info(
        f"[CASHBOOK] Voucher created | cashbook_id={cashbook.id} | "
        f"voucher_no={cashbook.voucher_no} | site_id={site_id} | details={len(built)}"
    )
    return cashbook


def update_cashbook(
    db: Session,
    cashbook_id: int,
    voucher_date: Union[date, datetime, str],
    details: Sequence[Mapping[str, Any]],
    site_id: Optional[int] = None,
    boq_id: Optional[int] = None,
    attach_voucher_copy_url: Optional[str] = None,
) -> Cashbook:
    """
    Replace a voucher's header and details.

    Both the previous and the new (site, BOQ) ledgers are recomputed from
    the earlier of the two voucher dates for every head involved.
    """
    cashbook = get_cashbook(db, cashbook_id)
    new_day = _as_date(voucher_date)
    old_day = cashbook.voucher_date
    old_site, old_boq = cashbook.site_id, cashbook.boq_id
    old_heads = {d.cashbook_head_id for d in cashbook.details}

    built = _build_details(details)
    cashbook.details.clear()
    db.flush()

    cashbook.voucher_date = new_day
    cashbook.site_id = site_id
    cashbook.boq_id = boq_id
    cashbook.attach_voucher_copy_url = attach_voucher_copy_url
    cashbook.details.extend(built)
    db.flush()

    heads = old_heads | {d.cashbook_head_id for d in built}
    from_day = min(old_day, new_day)
    recompute_cashbook_balances(db, old_site, old_boq, heads, from_day)
    if (old_site, old_boq) != (site_id, boq_id):
        recompute_cashbook_balances(db, site_id, boq_id, heads, from_day)

    recompute_budget_for_cashbook(db, cashbook.id, extra_contexts=[(old_site, old_boq)])
    db.commit()
    db.refresh(cashbook)
    return cashbook


def delete_cashbook(db: Session, cashbook_id: int) -> None:
    cashbook = get_cashbook(db, cashbook_id)
    site_id, boq_id, day = cashbook.site_id, cashbook.boq_id, cashbook.voucher_date
    heads = [d.cashbook_head_id for d in cashbook.details]
    month = month_key(cashbook.created_at)

    db.delete(cashbook)
    db.flush()

    recompute_cashbook_balances(db, site_id, boq_id, heads, day)
    if site_id:
        recompute_budget_by_key(db, site_id, boq_id, month)
    db.commit()
    logger.info(f"[CASHBOOK] Voucher deleted | cashbook_id={cashbook_id} | site_id={site_id}")


# =============================================================================
# Last balance
# =============================================================================

def last_balance(
    db: Session,
    site_id: Optional[int],
    cashbook_head_id: Optional[int],
    boq_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Closing balance of the most recent detail for (site, head[, boq])."""
    if not site_id or site_id <= 0 or not cashbook_head_id or cashbook_head_id <= 0:
        raise ValidationError(
            "siteId and cashbookHeadId are required",
            CashbookErrorCode.INVALID_LAST_BALANCE_QUERY,
        )

    conditions = [
        Cashbook.site_id == site_id,
        CashbookDetail.cashbook_head_id == cashbook_head_id,
    ]
    if boq_id:
        conditions.append(Cashbook.boq_id == boq_id)

    row = db.execute(
        select(CashbookDetail)
        .join(Cashbook, CashbookDetail.cashbook_id == Cashbook.id)
        .where(*conditions)
        .order_by(Cashbook.id.desc(), CashbookDetail.id.desc())
        .limit(1)
    ).scalar_one_or_none()

    if row is None:
        return {"closingBalance": None, "id": None, "cashbookId": None}
    return {
        "closingBalance": None if row.closing_balance is None else str(to_money(row.closing_balance)),
        "id": row.id,
        "cashbookId": row.cashbook_id,
    }


# =============================================================================
# Approval
# =============================================================================

def approve_cashbook(db: Session, cashbook_id: int, level: int, user: AuthenticatedUser) -> Cashbook:
    """Level 1 then level 2; each level can be granted once."""
    cashbook = get_cashbook(db, cashbook_id)
    now = utcnow()

    if level == 1:
        if cashbook.is_approved1:
            record_approval_action("cashbook", "approve1", CashbookErrorCode.APPROVAL_ORDER)
            raise InvalidTransitionError("Voucher already approved (level 1)", CashbookErrorCode.APPROVAL_ORDER)
        cashbook.is_approved1 = True
        cashbook.approved1_by_id = user.id
        cashbook.approved1_at = now
    elif level == 2:
        if not cashbook.is_approved1 or cashbook.is_approved2:
            record_approval_action("cashbook", "approve2", CashbookErrorCode.APPROVAL_ORDER)
            raise InvalidTransitionError(
                "Only level 1 approved vouchers can be approved (level 2)",
                CashbookErrorCode.APPROVAL_ORDER,
            )
        cashbook.is_approved2 = True
        cashbook.approved2_by_id = user.id
        cashbook.approved2_at = now
    else:
        raise ValidationError(f"Unknown approval level: {level}", CashbookErrorCode.APPROVAL_ORDER)

    db.commit()
    db.refresh(cashbook)
    record_approval_action("cashbook", f"approve{level}", "applied")
    logger.info(f"[CASHBOOK] Voucher approved | cashbook_id={cashbook_id} | level={level} | user_id={user.id}")
    return cashbook


# =============================================================================
# Listing
# =============================================================================

CASHBOOK_SORT_COLUMNS = {
    "voucherNo": Cashbook.voucher_no,
    "voucherDate": Cashbook.voucher_date,
    "createdAt": Cashbook.created_at,
}
CASHBOOK_DEFAULT_SORT = "voucherDate"


def cashbook_list_query(
    db: Session,
    user: AuthenticatedUser,
    search: str = "",
    is_voucher: str = "",
    site_id: Optional[int] = None,
):
    """
    Select statement for the voucher list, or None when the user sees no site.

    Only admins see every site.
    """
    stmt = (
        select(Cashbook)
        .outerjoin(Site, Cashbook.site_id == Site.id)
        .outerjoin(Boq, Cashbook.boq_id == Boq.id)
    )

    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                Cashbook.voucher_no.ilike(pattern),
                Site.site.ilike(pattern),
                Boq.boq_no.ilike(pattern),
            )
        )

    has_document = exists().where(
        and_(CashbookDetail.cashbook_id == Cashbook.id, CashbookDetail.document_url.isnot(None))
    )
    if is_voucher == "yes":
        stmt = stmt.where(or_(Cashbook.attach_voucher_copy_url.isnot(None), has_document))
    elif is_voucher == "no":
        stmt = stmt.where(Cashbook.attach_voucher_copy_url.is_(None), not_(has_document))

    if site_id:
        stmt = stmt.where(Cashbook.site_id == site_id)

    visible = assigned_site_ids(db, user, privileged_roles=ADMIN_ONLY)
    if visible is not None:
        if not visible:
            return None
        stmt = stmt.where(Cashbook.site_id.in_(visible))
    return stmt


def _money_str(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(to_money(value))


def serialize_cashbook(cashbook: Cashbook, with_details: bool = True) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": cashbook.id,
        "voucherNo": cashbook.voucher_no,
        "voucherDate": cashbook.voucher_date.isoformat(),
        "siteId": cashbook.site_id,
        "site": cashbook.site.site if cashbook.site else None,
        "boqId": cashbook.boq_id,
        "boqNo": cashbook.boq.boq_no if cashbook.boq else None,
        "attachVoucherCopyUrl": cashbook.attach_voucher_copy_url,
        "isApproved1": cashbook.is_approved1,
        "approved1ById": cashbook.approved1_by_id,
        "approved1At": cashbook.approved1_at.isoformat() if cashbook.approved1_at else None,
        "isApproved2": cashbook.is_approved2,
        "approved2ById": cashbook.approved2_by_id,
        "approved2At": cashbook.approved2_at.isoformat() if cashbook.approved2_at else None,
        "createdAt": cashbook.created_at.isoformat() if cashbook.created_at else None,
    }
    if with_details:
        data["cashbookDetails"] = [
            {
                "id": d.id,
                "cashbookHeadId": d.cashbook_head_id,
                "cashbookHead": d.cashbook_head.cashbook_head_name if d.cashbook_head else None,
                "description": d.description,
                "openingBalance": _money_str(d.opening_balance),
                "closingBalance": _money_str(d.closing_balance),
                "amountReceived": _money_str(d.amount_received),
                "amountPaid": _money_str(d.amount_paid),
                "documentUrl": d.document_url,
            }
            for d in cashbook.details
        ]
    return data
