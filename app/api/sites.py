"""
============================================================================
SiteLedger - Sites & BOQ API
============================================================================

ENDPOINTS:
    GET/POST/PUT/DELETE /api/sites           Site masters
    PUT    /api/sites/{id}/employees         Replace assigned users
    GET/POST/PUT/DELETE /api/boqs            Bills of quantities
    GET    /api/boqs/{id}/work-done          Executed vs remaining per item
    PUT    /api/boqs/{id}/work-done          Record executed quantities

============================================================================
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.pagination import PageParams, empty_page, page_params, paginate
from app.auth.access_control import AuthenticatedUser, guard_api_access
from app.database.models import Boq, Site
from app.database.session import get_db
from services.boq_service import (
    BOQ_DEFAULT_SORT,
    BOQ_SORT_COLUMNS,
    boq_list_query,
    create_boq,
    delete_boq,
    get_boq,
    record_work_done,
    serialize_boq,
    update_boq,
    work_done,
)
from services.master_data_service import (
    SITE_DEFAULT_SORT,
    SITE_SORT_COLUMNS,
    create_site,
    delete_site,
    get_site,
    serialize_site,
    set_site_employees,
    site_employee_ids,
    site_list_query,
    update_site,
)

router = APIRouter()


class SiteIn(BaseModel):
    site: str = Field(..., min_length=1)
    site_code: Optional[str] = None
    short_name: Optional[str] = None
    status: str = "Ongoing"


class SiteEmployeesIn(BaseModel):
    user_ids: List[int] = Field(default_factory=list)


class BoqItemIn(BaseModel):
    item: str
    qty: Decimal = Decimal("0")
    rate: Decimal = Decimal("0")
    unit_id: Optional[int] = None
    activity_id: Optional[str] = None
    client_sr_no: Optional[str] = None
    is_group: bool = False


class BoqIn(BaseModel):
    boq_no: str = Field(..., min_length=1)
    site_id: int
    work_name: Optional[str] = None
    work_order_no: Optional[str] = None
    work_order_date: Optional[date] = None
    gst_rate: Decimal = Decimal("0")
    items: List[BoqItemIn] = Field(default_factory=list)


class WorkDoneRow(BaseModel):
    id: int
    executed_qty: Decimal


class WorkDoneIn(BaseModel):
    items: List[WorkDoneRow] = Field(..., min_length=1)


# ============================================================================
# Sites
# ============================================================================

@router.get("/sites", tags=["Sites"])
def list_sites(
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = site_list_query(db, user, params.search)
    if stmt is None:
        return empty_page(params)
    return paginate(db, stmt, params, SITE_SORT_COLUMNS, SITE_DEFAULT_SORT, serialize_site, tiebreaker=Site.id)


@router.get("/sites/{site_id}", tags=["Sites"])
def read_site(site_id: int, user: AuthenticatedUser = Depends(guard_api_access), db: Session = Depends(get_db)):
    data = serialize_site(get_site(db, site_id))
    data["employeeIds"] = list(site_employee_ids(db, site_id))
    return data


@router.post("/sites", status_code=201, tags=["Sites"])
def add_site(body: SiteIn, user: AuthenticatedUser = Depends(guard_api_access), db: Session = Depends(get_db)):
    return serialize_site(create_site(db, body.site, body.site_code, body.short_name, body.status))


@router.put("/sites/{site_id}", tags=["Sites"])
def edit_site(
    site_id: int,
    body: SiteIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return serialize_site(update_site(db, site_id, body.model_dump()))


@router.put("/sites/{site_id}/employees", tags=["Sites"])
def edit_site_employees(
    site_id: int,
    body: SiteEmployeesIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    set_site_employees(db, site_id, body.user_ids)
    return {"siteId": site_id, "employeeIds": list(site_employee_ids(db, site_id))}


@router.delete("/sites/{site_id}", tags=["Sites"])
def remove_site(site_id: int, user: AuthenticatedUser = Depends(guard_api_access), db: Session = Depends(get_db)):
    delete_site(db, site_id)
    return {"message": "Site deleted"}


# ============================================================================
# BOQs
# ============================================================================

@router.get("/boqs", tags=["BOQ"])
def list_boqs(
    siteId: Optional[int] = Query(None),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = boq_list_query(db, user, params.search, siteId)
    if stmt is None:
        return empty_page(params)
    return paginate(
        db, stmt, params, BOQ_SORT_COLUMNS, BOQ_DEFAULT_SORT,
        lambda b: serialize_boq(b, with_items=False), tiebreaker=Boq.id,
    )


@router.get("/boqs/{boq_id}", tags=["BOQ"])
def read_boq(boq_id: int, user: AuthenticatedUser = Depends(guard_api_access), db: Session = Depends(get_db)):
    return serialize_boq(get_boq(db, boq_id))


@router.post("/boqs", status_code=201, tags=["BOQ"])
def add_boq(body: BoqIn, user: AuthenticatedUser = Depends(guard_api_access), db: Session = Depends(get_db)):
    boq = create_boq(
        db,
        boq_no=body.boq_no,
        site_id=body.site_id,
        items=[i.model_dump() for i in body.items],
        work_name=body.work_name,
        work_order_no=body.work_order_no,
        work_order_date=body.work_order_date,
        gst_rate=body.gst_rate,
    )
    return serialize_boq(boq)


@router.put("/boqs/{boq_id}", tags=["BOQ"])
def edit_boq(
    boq_id: int,
    body: BoqIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    changes = body.model_dump(exclude={"items", "site_id"})
    return serialize_boq(update_boq(db, boq_id, changes, [i.model_dump() for i in body.items]))


@router.delete("/boqs/{boq_id}", tags=["BOQ"])
def remove_boq(boq_id: int, user: AuthenticatedUser = Depends(guard_api_access), db: Session = Depends(get_db)):
    delete_boq(db, boq_id)
    return {"message": "BOQ deleted"}


@router.get("/boqs/{boq_id}/work-done", tags=["BOQ"])
def read_work_done(boq_id: int, user: AuthenticatedUser = Depends(guard_api_access), db: Session = Depends(get_db)):
    return work_done(get_boq(db, boq_id))


@router.put("/boqs/{boq_id}/work-done", tags=["BOQ"])
def edit_work_done(
    boq_id: int,
    body: WorkDoneIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return work_done(record_work_done(db, boq_id, [r.model_dump() for r in body.items]))
