"""
============================================================================
SiteLedger - Stock API
============================================================================

ENDPOINTS:
    GET    /api/stocks                             Site stock (siteId) or overall stock
    GET    /api/stocks/closing                     Ledger closing qty per item
    POST   /api/stocks/update-closing-stock        Rebuild closing positions
    POST   /api/opening-stocks                     Set opening stock for a site
    GET/POST /api/inward-delivery-challans         Receipts against PO lines
    GET/POST /api/daily-consumptions               Site consumption
    GET/POST /api/stock-adjustments                Manual corrections

ERROR CODES:
    STK-xxx  see services/stock_ledger_service.py

============================================================================
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional
import logging
import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.pagination import PageParams, empty_page, page_params, paginate
from app.auth.access_control import AuthenticatedUser, assigned_site_ids, ensure_site_access, guard_api_access
from app.database.models import DailyConsumption, InwardDeliveryChallan, StockAdjustment
from app.database.session import get_db
from services.stock_ledger_service import (
    DAILY_CONSUMPTION_SORT_COLUMNS,
    INWARD_CHALLAN_SORT_COLUMNS,
    STOCK_ADJUSTMENT_SORT_COLUMNS,
    closing_stock_by_item,
    daily_consumption_list_query,
    get_document,
    inward_challan_list_query,
    overall_stock,
    record_daily_consumption,
    record_inward_challan,
    record_opening_stock,
    record_stock_adjustment,
    serialize_daily_consumption,
    serialize_inward_challan,
    serialize_site_item,
    serialize_stock_adjustment,
    site_stock,
    stock_adjustment_list_query,
    update_closing_stock,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class OpeningStockLine(BaseModel):
    item_id: int
    opening_stock: Decimal = Field(..., ge=0)
    opening_rate: Decimal = Field(..., ge=0)


class OpeningStockIn(BaseModel):
    site_id: int
    items: List[OpeningStockLine] = Field(..., min_length=1)


class InwardLine(BaseModel):
    po_details_id: int
    receiving_qty: Decimal


class InwardChallanIn(BaseModel):
    purchase_order_id: int
    challan_no: str = Field(..., min_length=1)
    challan_date: date
    inward_challan_date: date
    inward_challan_no: Optional[str] = None
    remarks: Optional[str] = None
    details: List[InwardLine] = Field(..., min_length=1)


class ConsumptionLine(BaseModel):
    item_id: int
    qty: Decimal


class DailyConsumptionIn(BaseModel):
    site_id: int
    daily_consumption_date: date
    daily_consumption_no: Optional[str] = None
    details: List[ConsumptionLine] = Field(..., min_length=1)


class AdjustmentLine(BaseModel):
    item_id: int
    received_qty: Optional[Decimal] = None
    issued_qty: Optional[Decimal] = None
    rate: Decimal = Decimal("0")
    remarks: Optional[str] = None


class StockAdjustmentIn(BaseModel):
    site_id: int
    adjustment_date: date
    details: List[AdjustmentLine] = Field(..., min_length=1)


# ============================================================================
# Stock views
# ============================================================================

@router.get("/stocks", tags=["Stocks"])
def read_stock(
    siteId: Optional[int] = Query(None),
    search: str = Query(""),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    if siteId:
        if not user.is_privileged:
            ensure_site_access(db, user, siteId)
        return {"data": site_stock(db, siteId, search.strip())}
    return {"data": overall_stock(db, assigned_site_ids(db, user))}


@router.get("/stocks/closing", tags=["Stocks"])
def read_closing_by_item(
    siteId: int = Query(...),
    itemIds: List[int] = Query(...),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    closing = closing_stock_by_item(db, siteId, itemIds)
    return {"siteId": siteId, "closing": {str(k): str(v) for k, v in closing.items()}}


@router.post("/stocks/update-closing-stock", tags=["Stocks"])
def rebuild_closing_stock(
    siteId: Optional[int] = Query(None),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    correlation_id = str(uuid.uuid4())
    logger.info(
        f"[STOCK-API] POST /stocks/update-closing-stock | user_id={user.id} | "
        f"site_id={siteId} | correlation_id={correlation_id}"
    )
    result = update_closing_stock(db, site_id=siteId, correlation_id=correlation_id)
    db.commit()
    return result


@router.post("/opening-stocks", status_code=201, tags=["Stocks"])
def save_opening_stock(
    body: OpeningStockIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    site_items = record_opening_stock(db, body.site_id, [i.model_dump() for i in body.items])
    return {"data": [serialize_site_item(si) for si in site_items]}


# ============================================================================
# Inward delivery challans
# ============================================================================

@router.get("/inward-delivery-challans", tags=["Inward Delivery Challans"])
def list_inward_challans(
    siteId: Optional[int] = Query(None),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = inward_challan_list_query(db, user, params.search, siteId)
    if stmt is None:
        return empty_page(params)
    return paginate(
        db, stmt, params, INWARD_CHALLAN_SORT_COLUMNS, "createdAt", serialize_inward_challan,
        tiebreaker=InwardDeliveryChallan.id,
    )


@router.get("/inward-delivery-challans/{challan_id}", tags=["Inward Delivery Challans"])
def read_inward_challan(
    challan_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return serialize_inward_challan(get_document(db, InwardDeliveryChallan, challan_id))


@router.post("/inward-delivery-challans", status_code=201, tags=["Inward Delivery Challans"])
def add_inward_challan(
    body: InwardChallanIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    challan = record_inward_challan(
        db,
        purchase_order_id=body.purchase_order_id,
        challan_no=body.challan_no,
        challan_date=body.challan_date,
        inward_challan_date=body.inward_challan_date,
        lines=[d.model_dump() for d in body.details],
        remarks=body.remarks,
        inward_challan_no=body.inward_challan_no,
        user=user,
    )
    return serialize_inward_challan(challan)


# ============================================================================
# Daily consumptions
# ============================================================================

@router.get("/daily-consumptions", tags=["Daily Consumptions"])
def list_daily_consumptions(
    siteId: Optional[int] = Query(None),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = daily_consumption_list_query(db, user, params.search, siteId)
    if stmt is None:
        return empty_page(params)
    return paginate(
        db, stmt, params, DAILY_CONSUMPTION_SORT_COLUMNS, "createdAt", serialize_daily_consumption,
        tiebreaker=DailyConsumption.id,
    )


@router.get("/daily-consumptions/{consumption_id}", tags=["Daily Consumptions"])
def read_daily_consumption(
    consumption_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return serialize_daily_consumption(get_document(db, DailyConsumption, consumption_id))


@router.post("/daily-consumptions", status_code=201, tags=["Daily Consumptions"])
def add_daily_consumption(
    body: DailyConsumptionIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    consumption = record_daily_consumption(
        db,
        site_id=body.site_id,
        consumption_date=body.daily_consumption_date,
        lines=[d.model_dump() for d in body.details],
        daily_consumption_no=body.daily_consumption_no,
        user=user,
    )
    return serialize_daily_consumption(consumption)


# ============================================================================
# Stock adjustments
# ============================================================================

@router.get("/stock-adjustments", tags=["Stock Adjustments"])
def list_stock_adjustments(
    siteId: Optional[int] = Query(None),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = stock_adjustment_list_query(db, user, params.search, siteId)
    if stmt is None:
        return empty_page(params)
    return paginate(
        db, stmt, params, STOCK_ADJUSTMENT_SORT_COLUMNS, "createdAt", serialize_stock_adjustment,
        tiebreaker=StockAdjustment.id,
    )


@router.get("/stock-adjustments/{adjustment_id}", tags=["Stock Adjustments"])
def read_stock_adjustment(
    adjustment_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return serialize_stock_adjustment(get_document(db, StockAdjustment, adjustment_id))


@router.post("/stock-adjustments", status_code=201, tags=["Stock Adjustments"])
def add_stock_adjustment(
    body: StockAdjustmentIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    adjustment = record_stock_adjustment(
        db,
        site_id=body.site_id,
        adjustment_date=body.adjustment_date,
        lines=[d.model_dump() for d in body.details],
        user=user,
    )
    return serialize_stock_adjustment(adjustment)
