"""
============================================================================
SiteLedger - Manpower & Asset API
============================================================================

ENDPOINTS:
    GET    /api/manpower-assignments           Active assignments
    POST   /api/manpower-assignments           Assign workers to a site
    DELETE /api/manpower-assignments           Unassign workers
    GET    /api/manpower-transfers             Transfer challans
    POST   /api/manpower-transfers             Create transfer (Pending)
    PATCH  /api/manpower-transfers/{id}        Accepted | Rejected
    DELETE /api/manpower-transfers/{id}        Delete a Pending transfer
    GET    /api/assets                        Asset master (search, status filters)
    GET    /api/assets/{id}                   One asset
    POST   /api/assets                        Register an asset (AST-00001, ...)
    PATCH  /api/assets/{id}                   Edit asset details
    DELETE /api/assets/{id}                   Delete an asset without transfer history
    GET    /api/asset-transfers                Asset challans
    GET    /api/asset-transfers/{id}           One challan
    POST   /api/asset-transfers                New Assign | Transfer
    PATCH  /api/asset-transfers/{id}           Accepted | Rejected
    DELETE /api/asset-transfers/{id}           Delete a Pending challan

ERROR CODES:
    MP-xxx   see services/manpower_service.py
    AST-xxx  see services/asset_service.py

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
from app.database.models import Asset, AssetTransfer, ManpowerAssignment, ManpowerTransfer
from app.database.session import get_db
from services.asset_service import (
    ASSET_SORT_COLUMNS,
    ASSET_TRANSFER_SORT_COLUMNS,
    asset_list_query,
    asset_transfer_list_query,
    create_asset,
    create_asset_transfer,
    delete_asset,
    delete_asset_transfer,
    get_asset,
    get_asset_transfer,
    serialize_asset,
    serialize_asset_transfer,
    update_asset,
    update_asset_transfer_status,
)
from services.manpower_service import (
    ASSIGNMENT_SORT_COLUMNS,
    TRANSFER_SORT_COLUMNS,
    assign_manpower,
    assignment_list_query,
    create_manpower_transfer,
    decide_manpower_transfer,
    delete_manpower_transfer,
    serialize_assignment,
    serialize_transfer,
    transfer_list_query,
    unassign_manpower,
)

router = APIRouter()


class AssignmentIn(BaseModel):
    manpower_id: int
    category: Optional[str] = None
    skill_set: Optional[str] = None
    wage: Optional[Decimal] = None
    min_wage: Optional[Decimal] = None
    hours: Optional[Decimal] = None
    esic: Optional[Decimal] = None
    pf: Optional[bool] = None
    pt: Optional[Decimal] = None
    hra: Optional[Decimal] = None
    mlwf: Optional[Decimal] = None


class AssignManpowerIn(BaseModel):
    site_id: int
    manpower: List[AssignmentIn] = Field(..., min_length=1)


class UnassignManpowerIn(BaseModel):
    manpower_ids: List[int] = Field(..., min_length=1)


class ManpowerTransferIn(BaseModel):
    from_site_id: int
    to_site_id: int
    challan_date: date
    manpower_ids: List[int] = Field(..., min_length=1)
    remarks: Optional[str] = None


class DecisionIn(BaseModel):
    status: str = Field(..., description="Accepted | Rejected")
    remarks: Optional[str] = None


class AssetIn(BaseModel):
    asset_name: str = Field(..., min_length=1)
    make: Optional[str] = None
    description: Optional[str] = None
    purchase_date: Optional[date] = None
    invoice_no: Optional[str] = None
    supplier: Optional[str] = None
    next_maintenance_date: Optional[date] = None
    status: str = "Working"
    use_status: str = "In Use"


class AssetUpdateIn(BaseModel):
    asset_name: Optional[str] = None
    make: Optional[str] = None
    description: Optional[str] = None
    purchase_date: Optional[date] = None
    invoice_no: Optional[str] = None
    supplier: Optional[str] = None
    next_maintenance_date: Optional[date] = None
    status: Optional[str] = None
    use_status: Optional[str] = None


class AssetTransferIn(BaseModel):
    transfer_type: str = Field(..., description="New Assign | Transfer")
    to_site_id: int
    from_site_id: Optional[int] = None
    challan_date: date
    asset_ids: List[int] = Field(..., min_length=1)
    remarks: Optional[str] = None


# ============================================================================
# Manpower
# ============================================================================

@router.get("/manpower-assignments", tags=["Manpower"])
def list_assignments(
    siteId: Optional[int] = Query(None),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = assignment_list_query(db, user, params.search, siteId)
    if stmt is None:
        return empty_page(params)
    return paginate(
        db, stmt, params, ASSIGNMENT_SORT_COLUMNS, "assignedAt", serialize_assignment,
        tiebreaker=ManpowerAssignment.id,
    )


@router.post("/manpower-assignments", status_code=201, tags=["Manpower"])
def add_assignments(
    body: AssignManpowerIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    created = assign_manpower(db, body.site_id, [m.model_dump() for m in body.manpower])
    return {"data": [serialize_assignment(a) for a in created]}


@router.delete("/manpower-assignments", tags=["Manpower"])
def remove_assignments(
    body: UnassignManpowerIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    count = unassign_manpower(db, body.manpower_ids)
    return {"message": f"Unassigned {count} manpower", "unassigned": count}


@router.get("/manpower-transfers", tags=["Manpower"])
def list_manpower_transfers(
    status: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = transfer_list_query(db, user, params.search, status)
    if stmt is None:
        return empty_page(params)
    return paginate(
        db, stmt, params, TRANSFER_SORT_COLUMNS, "createdAt", serialize_transfer,
        tiebreaker=ManpowerTransfer.id,
    )


@router.post("/manpower-transfers", status_code=201, tags=["Manpower"])
def add_manpower_transfer(
    body: ManpowerTransferIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    transfer = create_manpower_transfer(
        db, body.from_site_id, body.to_site_id, body.challan_date, body.manpower_ids, body.remarks
    )
    return serialize_transfer(transfer)


@router.patch("/manpower-transfers/{transfer_id}", tags=["Manpower"])
def decide_transfer(
    transfer_id: int,
    body: DecisionIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return serialize_transfer(decide_manpower_transfer(db, transfer_id, body.status, user))


@router.delete("/manpower-transfers/{transfer_id}", tags=["Manpower"])
def remove_manpower_transfer(
    transfer_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    delete_manpower_transfer(db, transfer_id)
    return {"message": "Manpower transfer deleted"}


# ============================================================================
# Assets
# ============================================================================

@router.get("/assets", tags=["Assets"])
def list_assets(
    status: Optional[str] = Query(None),
    transferStatus: Optional[str] = Query(None),
    currentSiteId: Optional[int] = Query(None),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = asset_list_query(params.search, status, transferStatus, currentSiteId)
    return paginate(
        db, stmt, params, ASSET_SORT_COLUMNS, "createdAt", serialize_asset, tiebreaker=Asset.id,
    )


@router.get("/assets/{asset_id}", tags=["Assets"])
def read_asset(asset_id: int, user: AuthenticatedUser = Depends(guard_api_access), db: Session = Depends(get_db)):
    return serialize_asset(get_asset(db, asset_id))


@router.post("/assets", status_code=201, tags=["Assets"])
def add_asset(body: AssetIn, user: AuthenticatedUser = Depends(guard_api_access), db: Session = Depends(get_db)):
    return serialize_asset(create_asset(db, **body.model_dump()))


@router.patch("/assets/{asset_id}", tags=["Assets"])
def edit_asset(
    asset_id: int,
    body: AssetUpdateIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return serialize_asset(update_asset(db, asset_id, body.model_dump(exclude_unset=True)))


@router.delete("/assets/{asset_id}", tags=["Assets"])
def remove_asset(asset_id: int, user: AuthenticatedUser = Depends(guard_api_access), db: Session = Depends(get_db)):
    delete_asset(db, asset_id)
    return {"message": "Asset deleted"}


@router.get("/asset-transfers", tags=["Assets"])
def list_asset_transfers(
    status: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    stmt = asset_transfer_list_query(db, user, params.search, status)
    if stmt is None:
        return empty_page(params)
    return paginate(
        db, stmt, params, ASSET_TRANSFER_SORT_COLUMNS, "createdAt", serialize_asset_transfer,
        tiebreaker=AssetTransfer.id,
    )


@router.get("/asset-transfers/{transfer_id}", tags=["Assets"])
def read_asset_transfer(
    transfer_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    return serialize_asset_transfer(get_asset_transfer(db, transfer_id))


@router.post("/asset-transfers", status_code=201, tags=["Assets"])
def add_asset_transfer(
    body: AssetTransferIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    transfer = create_asset_transfer(
        db,
        transfer_type=body.transfer_type,
        to_site_id=body.to_site_id,
        challan_date=body.challan_date,
        asset_ids=body.asset_ids,
        from_site_id=body.from_site_id,
        remarks=body.remarks,
    )
    return serialize_asset_transfer(transfer)


@router.patch("/asset-transfers/{transfer_id}", tags=["Assets"])
def decide_asset_transfer(
    transfer_id: int,
    body: DecisionIn,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    transfer = update_asset_transfer_status(db, transfer_id, body.status, user, body.remarks)
    return serialize_asset_transfer(transfer)


@router.delete("/asset-transfers/{transfer_id}", tags=["Assets"])
def remove_asset_transfer(
    transfer_id: int,
    user: AuthenticatedUser = Depends(guard_api_access),
    db: Session = Depends(get_db),
):
    delete_asset_transfer(db, transfer_id)
    return {"message": "Asset transfer deleted"}
