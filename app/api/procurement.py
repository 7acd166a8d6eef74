"""
============================================================================
SiteLedger - Procurement API
============================================================================

ENDPOINTS:
    GET    /api/purchase-orders                Paged orders (siteId, status filters)
    GET    /api/purchase-orders/{id}           One order with lines
    POST   /api/purchase-orders                Create (budget enforced when enabled)
    PUT    /api/purchase-orders/{id}           Replace lines of a draft order
    PATCH  /api/purchase-orders/{id}           Status action
    DELETE /api/purchase-orders/{id}           Delete a draft order
    GET/POST/PUT/DELETE /api/indents           Material requests
    PATCH  /api/indents/{id}                   Status action (optional approved qty)

Status actions: approve1 | approve2 | complete | suspend | unsuspend

ERROR CODES:
    PO-xxx   see services/purchase_order_service.py
    IND-xxx  see services/indent_service.py

============================================================================
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional
import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.pagination import PageParams, empty_page, page_params, paginate
from app.auth.access_control import AuthenticatedUser, guard_api_access
from app.database.models import Indent, PurchaseOrder
from app.database.session import get_db
from services.indent_service import (
    INDENT_DEFAULT_SORT,
    INDENT_SORT_COLUMNS,
    apply_indent_action,
    create_indent,
    delete_indent,
    get_indent,
    indent_list_query,
    serialize_indent,
    update_indent,
)
from services.purchase_order_service import (
    PURCHASE_ORDER_DEFAULT_SORT,
    PURCHASE_ORDER_SORT_COLUMNS,
    apply_purchase_order_action,
    create_purchase_order,
    delete_purchase_order,
    get_purchase_order,
    purchase_order_list_query,
    serialize_purchase_order,
    update_purchase_order,
)

router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class PurchaseOrderLineIn(BaseModel):
    item_id: int
    qty: Decimal
    rate: Decimal
    discount_percent: Decimal = Decimal("0")
    cgst_percent: Decimal = Decimal("0")
    sgst_percent: Decimal = Decimal("0")
    igst_percent: Decimal = Decimal("0")
    remark: Optional[str] = None


class PurchaseOrderIn(BaseModel):
    site_id: int
    vendor_id: int
    purchase_order_date: date
    boq_id: Optional[int] = None
    indent_id: Optional[int] = None
    delivery_date: Optional[date] = None
    remarks: Optional[str] = None
    details: List[PurchaseOrderLineIn] = Field(..., min_length=1)


class StatusActionIn(BaseModel):
    status_action: str = Field(..., description="approve1 | approve2 | complete | suspend | unsuspend")


class IndentItemIn(BaseModel):
    item_id: int
    indent_qty: Decimal
    delivery_date: Optional[date] = None
    remark: Optional[str] = None


class IndentIn(BaseModel):
    site_id: int
    indent_date: date
    delivery_date: Optional[date] = None
    remarks: Optional[str] = None
    items: List[IndentItemIn] = Field(..., min_length=1)


class ApprovedQtyIn(BaseModel):
    id: int
    approved_qty: Optional[Decimal] = None


class IndentActionIn(StatusActionIn):
    items: Optional[List[ApprovedQtyIn]] = None


# ============================================================================
# Purchase orders
# ============================================================================

@router.get("/purchase-orders", tags=["Purchase Orders"])
def list_purchase_orders(
    siteId: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = purchase_order_list_query(db, user, params.search, siteId, status)
    if stmt is None:
        return empty_page(params)
    return paginate(
        db, stmt, params, PURCHASE_ORDER_SORT_COLUMNS, PURCHASE_ORDER_DEFAULT_SORT,
        serialize_purchase_order, tiebreaker=PurchaseOrder.id,
    )


@router.get("/purchase-orders/{purchase_order_id}", tags=["Purchase Orders"])
def read_purchase_order(
    purchase_order_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return serialize_purchase_order(get_purchase_order(db, purchase_order_id))


@router.post("/purchase-orders", status_code=201, tags=["Purchase Orders"])
def add_purchase_order(
    body: PurchaseOrderIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    po = create_purchase_order(
        db,
        site_id=body.site_id,
        vendor_id=body.vendor_id,
        purchase_order_date=body.purchase_order_date,
        lines=[d.model_dump() for d in body.details],
        boq_id=body.boq_id,
        indent_id=body.indent_id,
        delivery_date=body.delivery_date,
        remarks=body.remarks,
        user=user,
    )
    return serialize_purchase_order(po)


@router.put("/purchase-orders/{purchase_order_id}", tags=["Purchase Orders"])
def edit_purchase_order(
    purchase_order_id: int,
    body: PurchaseOrderIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    changes = body.model_dump(exclude={"details", "site_id"})
    po = update_purchase_order(db, purchase_order_id, [d.model_dump() for d in body.details], changes)
    return serialize_purchase_order(po)


@router.patch("/purchase-orders/{purchase_order_id}", tags=["Purchase Orders"])
def act_on_purchase_order(
    purchase_order_id: int,
    body: StatusActionIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    po = apply_purchase_order_action(
        db, purchase_order_id, body.status_action, user, correlation_id=str(uuid.uuid4())
    )
    return serialize_purchase_order(po)


@router.delete("/purchase-orders/{purchase_order_id}", tags=["Purchase Orders"])
def remove_purchase_order(
    purchase_order_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    delete_purchase_order(db, purchase_order_id)
    return {"message": "Purchase order deleted"}


# ============================================================================
# Indents
# ============================================================================

@router.get("/indents", tags=["Indents"])
def list_indents(
    siteId: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = indent_list_query(db, user, params.search, siteId, status)
    if stmt is None:
        return empty_page(params)
    return paginate(
        db, stmt, params, INDENT_SORT_COLUMNS, INDENT_DEFAULT_SORT, serialize_indent, tiebreaker=Indent.id,
    )


@router.get("/indents/{indent_id}", tags=["Indents"])
def read_indent(indent_id: int, user: AuthenticatedUser = Depends(guard_api_access), db: Session = Depends(get_db)):
    return serialize_indent(get_indent(db, indent_id))


@router.post("/indents", status_code=201, tags=["Indents"])
def add_indent(body: IndentIn, user: AuthenticatedUser = Depends(guard_api_access), db: Session = Depends(get_db)):
    indent = create_indent(
        db,
        site_id=body.site_id,
        indent_date=body.indent_date,
        items=[i.model_dump() for i in body.items],
        delivery_date=body.delivery_date,
        remarks=body.remarks,
        user=user,
    )
    return serialize_indent(indent)


@router.put("/indents/{indent_id}", tags=["Indents"])
def edit_indent(
    indent_id: int,
    body: IndentIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    changes = body.model_dump(exclude={"items", "site_id"})
    return serialize_indent(update_indent(db, indent_id, [i.model_dump() for i in body.items], changes))


@router.patch("/indents/{indent_id}", tags=["Indents"])
def act_on_indent(
    indent_id: int,
    body: IndentActionIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    items = [i.model_dump() for i in body.items] if body.items else None
    indent = apply_indent_action(
        db, indent_id, body.status_action, user, items=items, correlation_id=str(uuid.uuid4())
    )
    return serialize_indent(indent)


@router.delete("/indents/{indent_id}", tags=["Indents"])
def remove_indent(indent_id: int, user: AuthenticatedUser = Depends(guard_api_access), db: Session = Depends(get_db)):
    delete_indent(db, indent_id)
    return {"message": "Indent deleted"}
