"""
============================================================================
SiteLedger - Cashbook API
============================================================================

ENDPOINTS:
    GET    /api/cashbooks                    Paged voucher list
    GET    /api/cashbooks/last-balance       Latest closing balance for a head
    GET    /api/cashbooks/{id}               One voucher with details
    POST   /api/cashbooks                    Create voucher (recomputes ledger)
    PUT    /api/cashbooks/{id}               Replace voucher (recomputes ledger)
    DELETE /api/cashbooks/{id}               Delete voucher (recomputes ledger)
    PATCH  /api/cashbooks/approvals/{id}     Level 1 / level 2 approval
    GET/POST/PUT/DELETE /api/cashbook-heads  Cashbook head masters

ERROR CODES:
    CB-xxx   see services/cashbook_ledger.py
    MST-xxx  see services/master_data_service.py

============================================================================
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.pagination import PageParams, empty_page, page_params, paginate
from app.auth.access_control import (
    PERMISSIONS,
    AuthenticatedUser,
    ensure_site_access,
    guard_api_access,
    require_permission,
)
from app.database.models import Cashbook
from app.database.session import get_db
from services.cashbook_ledger import (
    CASHBOOK_DEFAULT_SORT,
    CASHBOOK_SORT_COLUMNS,
    approve_cashbook,
    cashbook_list_query,
    create_cashbook,
    delete_cashbook,
    get_cashbook,
    last_balance,
    serialize_cashbook,
    update_cashbook,
)
from services.master_data_service import (
    CASHBOOK_HEAD_SORT_COLUMNS,
    cashbook_head_list_query,
    delete_cashbook_head,
    get_cashbook_head,
    save_cashbook_head,
    serialize_cashbook_head,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class CashbookDetailIn(BaseModel):
    cashbook_head_id: int = Field(..., gt=0)
    description: Optional[str] = None
    amount_received: Optional[Decimal] = None
    amount_paid: Optional[Decimal] = None
    document_url: Optional[str] = None


class CashbookIn(BaseModel):
    voucher_date: date
    site_id: Optional[int] = None
    boq_id: Optional[int] = None
    attach_voucher_copy_url: Optional[str] = None
    details: List[CashbookDetailIn] = Field(..., min_length=1)


class ApprovalIn(BaseModel):
    level: int = Field(..., ge=1, le=2)


class CashbookHeadIn(BaseModel):
    cashbook_head_name: str = Field(..., min_length=1)


# ============================================================================
# Vouchers
# ============================================================================

@router.get("/cashbooks", tags=["Cashbooks"])
def list_cashbooks(
    isVoucher: str = Query("", description="yes | no"),
    siteId: Optional[int] = Query(None),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = cashbook_list_query(db, user, params.search, isVoucher, siteId)
    if stmt is None:
        return empty_page(params)
    return paginate(
        db, stmt, params, CASHBOOK_SORT_COLUMNS, CASHBOOK_DEFAULT_SORT,
        lambda c: serialize_cashbook(c, with_details=False), tiebreaker=Cashbook.id,
    )


@router.get("/cashbooks/last-balance", tags=["Cashbooks"])
def get_last_balance(
    siteId: int = Query(...),
    cashbookHeadId: int = Query(...),
    boqId: Optional[int] = Query(None),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    ensure_site_access(db, user, siteId)
    return last_balance(db, siteId, cashbookHeadId, boqId)


@router.get("/cashbooks/{cashbook_id}", tags=["Cashbooks"])
def read_cashbook(
    cashbook_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    cashbook = get_cashbook(db, cashbook_id)
    ensure_site_access(db, user, cashbook.site_id)
    return serialize_cashbook(cashbook)


@router.post("/cashbooks", status_code=201, tags=["Cashbooks"])
def add_cashbook(
    body: CashbookIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    ensure_site_access(db, user, body.site_id)
    cashbook = create_cashbook(
        db,
        voucher_date=body.voucher_date,
        details=[d.model_dump() for d in body.details],
        site_id=body.site_id,
        boq_id=body.boq_id,
        attach_voucher_copy_url=body.attach_voucher_copy_url,
        user=user,
    )
    return serialize_cashbook(cashbook)


@router.put("/cashbooks/{cashbook_id}", tags=["Cashbooks"])
def edit_cashbook(
    cashbook_id: int,
    body: CashbookIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    ensure_site_access(db, user, get_cashbook(db, cashbook_id).site_id)
    ensure_site_access(db, user, body.site_id)
    cashbook = update_cashbook(
        db,
        cashbook_id,
        voucher_date=body.voucher_date,
        details=[d.model_dump() for d in body.details],
        site_id=body.site_id,
        boq_id=body.boq_id,
        attach_voucher_copy_url=body.attach_voucher_copy_url,
    )
    return serialize_cashbook(cashbook)


@router.delete("/cashbooks/{cashbook_id}", tags=["Cashbooks"])
def remove_cashbook(
    cashbook_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    ensure_site_access(db, user, get_cashbook(db, cashbook_id).site_id)
    delete_cashbook(db, cashbook_id)
    return {"message": "Cashbook deleted"}


@router.patch("/cashbooks/approvals/{cashbook_id}", tags=["Cashbooks"])
def approve_voucher(
    cashbook_id: int,
    body: ApprovalIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    permission = PERMISSIONS.APPROVE_CASHBOOKS_L1 if body.level == 1 else PERMISSIONS.APPROVE_CASHBOOKS_L2
    require_permission(user, permission, f"Not allowed to approve vouchers (level {body.level})")
    return serialize_cashbook(approve_cashbook(db, cashbook_id, body.level, user))


# ============================================================================
# Cashbook heads
# ============================================================================

@router.get("/cashbook-heads", tags=["Cashbook Heads"])
def list_cashbook_heads(
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return paginate(
        db, cashbook_head_list_query(params.search), params,
        CASHBOOK_HEAD_SORT_COLUMNS, "cashbookHeadName", serialize_cashbook_head,
    )


@router.get("/cashbook-heads/{head_id}", tags=["Cashbook Heads"])
def read_cashbook_head(
    head_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return serialize_cashbook_head(get_cashbook_head(db, head_id))


@router.post("/cashbook-heads", status_code=201, tags=["Cashbook Heads"])
def add_cashbook_head(
    body: CashbookHeadIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return serialize_cashbook_head(save_cashbook_head(db, body.cashbook_head_name))


@router.put("/cashbook-heads/{head_id}", tags=["Cashbook Heads"])
def edit_cashbook_head(
    head_id: int,
    body: CashbookHeadIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return serialize_cashbook_head(save_cashbook_head(db, body.cashbook_head_name, head_id))


@router.delete("/cashbook-heads/{head_id}", tags=["Cashbook Heads"])
def remove_cashbook_head(
    head_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    delete_cashbook_head(db, head_id)
    return {"message": "Cashbook head deleted"}
