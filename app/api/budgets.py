"""
============================================================================
SiteLedger - Budget API
============================================================================

ENDPOINTS:
    GET    /api/cashbook-budgets                  Paged monthly budgets
    GET    /api/cashbook-budgets/{id}             One budget with items
    POST   /api/cashbook-budgets                  Create (received amounts computed)
    DELETE /api/cashbook-budgets/{id}             Delete
    PATCH  /api/cashbook-budgets/actions/{id}     approve | approve_1 | accept

    GET    /api/site-budgets                      Paged item budgets with alerts
    GET    /api/site-budgets/summary              Totals for one site
    GET    /api/site-budgets/{id}                 One item budget
    POST   /api/site-budgets                      Create (consumption refreshed)
    PUT    /api/site-budgets/{id}                 Update qty / rates / switches
    DELETE /api/site-budgets/{id}                 Delete
    POST   /api/site-budgets/validate             Check requested qty vs budget

ERROR CODES:
    CBB-xxx  see services/cashbook_budget_service.py
    SB-xxx   see services/site_budget_service.py

============================================================================
"""

from decimal import Decimal
from typing import List, Optional

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
from app.database.models import CashbookBudget, SiteBudget
from app.database.session import get_db
from app.logic.site_budget_rules import format_budget_qty_violations
from services.cashbook_budget_service import (
    BUDGET_DEFAULT_SORT,
    BUDGET_SORT_COLUMNS,
    apply_budget_action,
    budget_list_query,
    create_budget,
    delete_budget,
    get_budget,
    serialize_budget,
)
from services.site_budget_service import (
    SITE_BUDGET_DEFAULT_SORT,
    SITE_BUDGET_SORT_COLUMNS,
    create_site_budget,
    delete_site_budget,
    get_site_budget,
    serialize_site_budget,
    site_budget_list_query,
    site_budget_summary,
    update_site_budget,
    validate_site_boq_budget_qty_for_items,
)

router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class BudgetItemIn(BaseModel):
    cashbook_head_id: int = Field(..., gt=0)
    description: Optional[str] = None
    amount: Decimal = Field(..., ge=0)


class CashbookBudgetIn(BaseModel):
    name: str = Field(..., min_length=1)
    month: str = Field(..., description="MM-YYYY")
    site_id: int
    boq_id: Optional[int] = None
    remarks: Optional[str] = None
    items: List[BudgetItemIn] = Field(..., min_length=1)


class ApprovedAmountIn(BaseModel):
    id: int
    approved_amount: Decimal


class BudgetActionIn(BaseModel):
    action: str = Field(..., description="approve | approve_1 | accept")
    budget_items: Optional[List[ApprovedAmountIn]] = None


class SiteBudgetIn(BaseModel):
    site_id: int
    item_id: int
    boq_id: Optional[int] = None
    budget_qty: Decimal
    budget_rate: Decimal
    purchase_rate: Decimal
    qty50_alert: bool = False
    value50_alert: bool = False
    qty75_alert: bool = False
    value75_alert: bool = False


class SiteBudgetUpdate(BaseModel):
    budget_qty: Optional[Decimal] = None
    budget_rate: Optional[Decimal] = None
    purchase_rate: Optional[Decimal] = None
    qty50_alert: Optional[bool] = None
    value50_alert: Optional[bool] = None
    qty75_alert: Optional[bool] = None
    value75_alert: Optional[bool] = None


class RequestedItem(BaseModel):
    item_id: int
    qty: Decimal


class BudgetValidationIn(BaseModel):
    site_id: int
    boq_id: Optional[int] = None
    exclude_purchase_order_id: Optional[int] = None
    items: List[RequestedItem] = Field(default_factory=list)


# ============================================================================
# Cashbook budgets
# ============================================================================

@router.get("/cashbook-budgets", tags=["Cashbook Budgets"])
def list_cashbook_budgets(
    siteId: Optional[int] = Query(None),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = budget_list_query(db, user, params.search, siteId)
    if stmt is None:
        return empty_page(params)
    return paginate(
        db, stmt, params, BUDGET_SORT_COLUMNS, BUDGET_DEFAULT_SORT, serialize_budget,
        tiebreaker=CashbookBudget.id,
    )


@router.get("/cashbook-budgets/{budget_id}", tags=["Cashbook Budgets"])
def read_cashbook_budget(
    budget_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return serialize_budget(get_budget(db, budget_id))


@router.post("/cashbook-budgets", status_code=201, tags=["Cashbook Budgets"])
def add_cashbook_budget(
    body: CashbookBudgetIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    budget = create_budget(
        db,
        name=body.name,
        month=body.month,
        site_id=body.site_id,
        items=[i.model_dump() for i in body.items],
        boq_id=body.boq_id,
        remarks=body.remarks,
    )
    return serialize_budget(budget)


@router.delete("/cashbook-budgets/{budget_id}", tags=["Cashbook Budgets"])
def remove_cashbook_budget(
    budget_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    delete_budget(db, budget_id)
    return {"message": "Cashbook budget deleted"}


@router.patch("/cashbook-budgets/actions/{budget_id}", tags=["Cashbook Budgets"])
def act_on_cashbook_budget(
    budget_id: int,
    body: BudgetActionIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    if body.action in ("approve", "approve_1"):
        require_permission(user, PERMISSIONS.APPROVE_CASHBOOK_BUDGETS, "Not allowed to approve cashbook budgets")
    else:
        require_permission(user, PERMISSIONS.EDIT_CASHBOOK_BUDGETS, "Not allowed to accept cashbook budgets")
    items = [i.model_dump() for i in body.budget_items] if body.budget_items else None
    return serialize_budget(apply_budget_action(db, budget_id, body.action, user, items))


# ============================================================================
# Site budgets
# ============================================================================

@router.get("/site-budgets", tags=["Site Budgets"])
def list_site_budgets(
    siteId: Optional[int] = Query(None),
    boqId: Optional[int] = Query(None),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = site_budget_list_query(db, user, params.search, siteId, boqId)
    if stmt is None:
        return empty_page(params)
    return paginate(
        db, stmt, params, SITE_BUDGET_SORT_COLUMNS, SITE_BUDGET_DEFAULT_SORT, serialize_site_budget,
        tiebreaker=SiteBudget.id,
    )


@router.get("/site-budgets/summary", tags=["Site Budgets"])
def read_site_budget_summary(
    siteId: int = Query(...),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return site_budget_summary(db, siteId)


@router.get("/site-budgets/{site_budget_id}", tags=["Site Budgets"])
def read_site_budget(
    site_budget_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return serialize_site_budget(get_site_budget(db, site_budget_id))


@router.post("/site-budgets", status_code=201, tags=["Site Budgets"])
def add_site_budget(
    body: SiteBudgetIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    budget = create_site_budget(
        db,
        site_id=body.site_id,
        item_id=body.item_id,
        budget_qty=body.budget_qty,
        budget_rate=body.budget_rate,
        purchase_rate=body.purchase_rate,
        boq_id=body.boq_id,
        alerts={
            "qty50_alert": body.qty50_alert,
            "value50_alert": body.value50_alert,
            "qty75_alert": body.qty75_alert,
            "value75_alert": body.value75_alert,
        },
    )
    return serialize_site_budget(budget)


@router.put("/site-budgets/{site_budget_id}", tags=["Site Budgets"])
def edit_site_budget(
    site_budget_id: int,
    body: SiteBudgetUpdate,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    changes = body.model_dump(exclude_none=True)
    return serialize_site_budget(update_site_budget(db, site_budget_id, changes))


@router.delete("/site-budgets/{site_budget_id}", tags=["Site Budgets"])
def remove_site_budget(
    site_budget_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    delete_site_budget(db, site_budget_id)
    return {"message": "Site budget deleted"}


@router.post("/site-budgets/validate", tags=["Site Budgets"])
def validate_site_budget(
    body: BudgetValidationIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    if not user.is_privileged:
        ensure_site_access(db, user, body.site_id)
    violations = validate_site_boq_budget_qty_for_items(
        db,
        body.site_id,
        body.boq_id,
        [(i.item_id, i.qty) for i in body.items],
        exclude_purchase_order_id=body.exclude_purchase_order_id,
    )
    return {
        "ok": not violations,
        "message": format_budget_qty_violations(violations) if violations else None,
        "violations": [v.to_dict() for v in violations],
    }
