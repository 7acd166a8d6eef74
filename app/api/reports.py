"""
============================================================================
SiteLedger - Report Downloads
============================================================================

ENDPOINTS:
    GET /api/reports/cashbook-details.xlsx      siteId, fromDate, toDate, boqId?
    GET /api/reports/daily-cashbook.pdf         siteId, date
    GET /api/reports/cashbook-budgets/{id}.xlsx
    GET /api/reports/cashbook-budgets/{id}.pdf
    GET /api/reports/site-budgets.xlsx          siteId, boqId?
    GET /api/reports/overall-stock.xlsx

Files are streamed with a Content-Disposition attachment header.

============================================================================
"""

from datetime import date
from io import BytesIO
from typing import Optional
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.auth.access_control import AuthenticatedUser, assigned_site_ids, ensure_site_access, guard_api_access
from app.database.session import get_db
from app.observability.metrics import record_report_export
from app.reports.excel import (
    XLSX_MEDIA_TYPE,
    cashbook_budget_workbook,
    cashbook_details_workbook,
    overall_stock_workbook,
    site_budget_workbook,
)
from app.reports.pdf import PDF_MEDIA_TYPE, cashbook_budget_pdf, daily_cashbook_pdf
from services.cashbook_budget_service import get_budget, serialize_budget
from services.report_service import cashbook_detail_rows, cashbook_totals, site_budget_rows, site_name
from services.stock_ledger_service import overall_stock

logger = logging.getLogger(__name__)

router = APIRouter()


def _download(content: bytes, media_type: str, filename: str, report: str, fmt: str) -> StreamingResponse:
    record_report_export(report, fmt)
    logger.info(f"[REPORTS] Export generated | report={report} | format={fmt} | bytes={len(content)}")
    return StreamingResponse(
        BytesIO(content),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _check_site(db: Session, user: AuthenticatedUser, site_id: int) -> None:
    if not user.is_privileged:
        ensure_site_access(db, user, site_id)


@router.get("/reports/cashbook-details.xlsx", tags=["Reports"])
def cashbook_details_report(
    siteId: int = Query(...),
    fromDate: date = Query(...),
    toDate: date = Query(...),
    boqId: Optional[int] = Query(None),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    _check_site(db, user, siteId)
    site = site_name(db, siteId)
    rows = cashbook_detail_rows(db, siteId, fromDate, toDate, boqId)
    content = cashbook_details_workbook(
        site, f"{fromDate:%d-%m-%Y} to {toDate:%d-%m-%Y}", rows, cashbook_totals(rows)
    )
    return _download(content, XLSX_MEDIA_TYPE, "cashbook-details.xlsx", "cashbook_details", "xlsx")


@router.get("/reports/daily-cashbook.pdf", tags=["Reports"])
def daily_cashbook_report(
    siteId: int = Query(...),
    day: date = Query(..., alias="date"),
    boqId: Optional[int] = Query(None),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    _check_site(db, user, siteId)
    site = site_name(db, siteId)
    rows = cashbook_detail_rows(db, siteId, day, day, boqId)
    content = daily_cashbook_pdf(site, f"{day:%d-%m-%Y}", rows, cashbook_totals(rows))
    return _download(content, PDF_MEDIA_TYPE, f"daily-cashbook-{day.isoformat()}.pdf", "daily_cashbook", "pdf")


@router.get("/reports/cashbook-budgets/{budget_id}.xlsx", tags=["Reports"])
def cashbook_budget_excel(
    budget_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    budget = get_budget(db, budget_id)
    _check_site(db, user, budget.site_id)
    content = cashbook_budget_workbook(serialize_budget(budget))
    return _download(content, XLSX_MEDIA_TYPE, f"cashbook-budget-{budget_id}.xlsx", "cashbook_budget", "xlsx")


@router.get("/reports/cashbook-budgets/{budget_id}.pdf", tags=["Reports"])
def cashbook_budget_report_pdf(
    budget_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    budget = get_budget(db, budget_id)
    _check_site(db, user, budget.site_id)
    content = cashbook_budget_pdf(serialize_budget(budget))
    return _download(content, PDF_MEDIA_TYPE, f"cashbook-budget-{budget_id}.pdf", "cashbook_budget", "pdf")


@router.get("/reports/site-budgets.xlsx", tags=["Reports"])
def site_budget_report(
    siteId: int = Query(...),
    boqId: Optional[int] = Query(None),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    _check_site(db, user, siteId)
    content = site_budget_workbook(site_name(db, siteId), site_budget_rows(db, siteId, boqId))
    return _download(content, XLSX_MEDIA_TYPE, "site-budget.xlsx", "site_budget", "xlsx")


@router.get("/reports/overall-stock.xlsx", tags=["Reports"])
def overall_stock_report(
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    content = overall_stock_workbook(overall_stock(db, assigned_site_ids(db, user)))
    return _download(content, XLSX_MEDIA_TYPE, "overall-stock.xlsx", "overall_stock", "xlsx")
