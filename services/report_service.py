"""
============================================================================
SiteLedger - Report Data
============================================================================

Collects the rows behind the Excel and PDF reports. Rendering lives in
app/reports; this module only queries and shapes data.

ERROR CODES:
    RPT-001: Invalid report parameters

============================================================================
"""

from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.database.models import Cashbook, CashbookDetail, Site, SiteBudget
from app.logic.decimal_gateway import ZERO, to_money
from services.erp_errors import NotFoundError, ValidationError
from services.site_budget_service import serialize_site_budget


class ReportErrorCode:
    INVALID_PARAMS = "RPT-001"


def cashbook_detail_rows(
    db: Session,
    site_id: int,
    from_date: date,
    to_date: date,
    boq_id: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Cashbook details in ledger order with their stored running balances."""
    if from_date > to_date:
        raise ValidationError("fromDate must not be after toDate", ReportErrorCode.INVALID_PARAMS)
    stmt = (
        select(CashbookDetail, Cashbook)
        .join(Cashbook, CashbookDetail.cashbook_id == Cashbook.id)
        .where(
            Cashbook.site_id == site_id,
            Cashbook.voucher_date >= from_date,
            Cashbook.voucher_date <= to_date,
        )
        .order_by(Cashbook.voucher_date.asc(), Cashbook.id.asc(), CashbookDetail.id.asc())
    )
    if boq_id:
        stmt = stmt.where(Cashbook.boq_id == boq_id)

    rows = []
    for detail, cashbook in db.execute(stmt).all():
        rows.append({
            "voucherDate": cashbook.voucher_date,
            "voucherNo": cashbook.voucher_no,
            "cashbookHead": detail.cashbook_head.cashbook_head_name if detail.cashbook_head else "",
            "description": detail.description or "",
            "openingBalance": to_money(detail.opening_balance),
            "amountReceived": to_money(detail.amount_received),
            "amountPaid": to_money(detail.amount_paid),
            "closingBalance": to_money(detail.closing_balance),
        })
    return rows


def cashbook_totals(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    received = sum((r["amountReceived"] for r in rows), ZERO)
    paid = sum((r["amountPaid"] for r in rows), ZERO)
    return {"amountReceived": to_money(received), "amountPaid": to_money(paid)}


def site_name(db: Session, site_id: int) -> str:
    site = db.get(Site, site_id)
    if site is None:
        raise NotFoundError("Site not found", ReportErrorCode.INVALID_PARAMS)
    return site.site


def site_budget_rows(db: Session, site_id: int, boq_id: Optional[int] = None) -> List[Dict[str, Any]]:
    stmt = select(SiteBudget).where(SiteBudget.site_id == site_id).order_by(SiteBudget.id)
    if boq_id:
        stmt = stmt.where(SiteBudget.boq_id == boq_id)
    return [serialize_site_budget(b) for b in db.execute(stmt).scalars().unique().all()]
