"""
============================================================================
SiteLedger - Asset Service
============================================================================

ASSET MASTER:
    Assets are numbered AST-00001, ... after the latest asset. New assets
    are Working, In Use and Available. Transfer state and current site are
    owned by the transfer challans below and cannot be edited directly.

TRANSFERS:
    New Assign: Available assets -> to-site
    Transfer:   Assigned assets at the from-site -> to-site

    Creating a challan (CHN-00001, ...) puts its assets In Transit. A Pending
    challan is then Accepted (assets Assigned at the to-site) or Rejected
    (assets Available again, back at the from-site when there is one).
    Deleting a Pending challan returns its assets to Available.

ERROR CODES:
    AST-001: Asset transfer / asset not found
    AST-002: Invalid transfer request
    AST-003: Assets not in the required state
    AST-004: Transfer is no longer Pending
    AST-005: Asset has transfer history and cannot be deleted

============================================================================
"""

from datetime import date
from typing import Any, Dict, Mapping, Optional, Sequence
import logging

from sqlalchemy import exists, or_, select
from sqlalchemy.orm import Session

from app.auth.access_control import AuthenticatedUser, assigned_site_ids
from app.database.models import Asset, AssetTransfer, AssetTransferItem, Site, utcnow
from app.logic.numbering import ASSET_PREFIX, ASSET_TRANSFER_PREFIX, format_serial_no
from services.erp_errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class AssetErrorCode:
    NOT_FOUND = "AST-001"
    INVALID_REQUEST = "AST-002"
    WRONG_ASSET_STATE = "AST-003"
    NOT_PENDING = "AST-004"
    IN_USE = "AST-005"


NEW_ASSIGN = "New Assign"
TRANSFER = "Transfer"

ASSET_AVAILABLE = "Available"
ASSET_ASSIGNED = "Assigned"
ASSET_IN_TRANSIT = "In Transit"

STATUS_PENDING = "Pending"
STATUS_ACCEPTED = "Accepted"
STATUS_REJECTED = "Rejected"

ASSET_EDITABLE_FIELDS = (
    "asset_name", "make", "description", "purchase_date", "invoice_no",
    "supplier", "next_maintenance_date", "status", "use_status",
)


# =============================================================================
# Asset master
# =============================================================================

def get_asset(db: Session, asset_id: int) -> Asset:
    asset = db.get(Asset, asset_id)
    if asset is None:
        raise NotFoundError("Asset not found", AssetErrorCode.NOT_FOUND)
    return asset


def _next_asset_no(db: Session) -> str:
    last = db.execute(select(Asset.asset_no).order_by(Asset.id.desc()).limit(1)).scalar_one_or_none()
    return format_serial_no(ASSET_PREFIX, last)


def _asset_name(value: Any) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError("Asset name is required", AssetErrorCode.INVALID_REQUEST)
    return name


def create_asset(db: Session, asset_name: str, **fields: Any) -> Asset:
    """Register an asset; it starts Available with no current site."""
    values = {k: v for k, v in fields.items() if k in ASSET_EDITABLE_FIELDS and v is not None}
    asset = Asset(
        asset_no=_next_asset_no(db),
        asset_name=_asset_name(asset_name),
        transfer_status=ASSET_AVAILABLE,
        **values,
    )
    db.add(asset)
    db.commit()
    db.refresh(asset)
    logger.info(f"[ASSET] Created | id={asset.id} | asset_no={asset.asset_no}")
    return asset


def update_asset(db: Session, asset_id: int, changes: Mapping[str, Any]) -> Asset:
    asset = get_asset(db, asset_id)
    for field_name in ASSET_EDITABLE_FIELDS:
        if field_name not in changes:
            continue
        value = changes[field_name]
        if field_name == "asset_name":
            value = _asset_name(value)
        elif field_name in ("status", "use_status") and not value:
            continue
        setattr(asset, field_name, value)
    db.commit()
    db.refresh(asset)
    return asset


def delete_asset(db: Session, asset_id: int) -> None:
    asset = get_asset(db, asset_id)
    on_transfer = db.execute(
        select(exists().where(AssetTransferItem.asset_id == asset.id))
    ).scalar()
    if on_transfer:
        raise ConflictError(
            "Asset has transfer history and cannot be deleted", AssetErrorCode.IN_USE
        )
    asset_no = asset.asset_no
    db.delete(asset)
    db.commit()
    logger.info(f"[ASSET] Deleted | id={asset_id} | asset_no={asset_no}")


ASSET_SORT_COLUMNS = {
    "assetNo": Asset.asset_no,
    "assetName": Asset.asset_name,
    "createdAt": Asset.created_at,
}


def asset_list_query(
    search: str = "",
    status: Optional[str] = None,
    transfer_status: Optional[str] = None,
    current_site_id: Optional[int] = None,
):
    stmt = select(Asset)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            Asset.asset_no.ilike(pattern),
            Asset.asset_name.ilike(pattern),
            Asset.make.ilike(pattern),
            Asset.supplier.ilike(pattern),
            Asset.invoice_no.ilike(pattern),
        ))
    if status:
        stmt = stmt.where(Asset.status == status)
    if transfer_status:
        stmt = stmt.where(Asset.transfer_status == transfer_status)
    if current_site_id:
        stmt = stmt.where(Asset.current_site_id == current_site_id)
    return stmt


def serialize_asset(asset: Asset) -> Dict[str, Any]:
    return {
        "id": asset.id,
        "assetNo": asset.asset_no,
        "assetName": asset.asset_name,
        "make": asset.make,
        "description": asset.description,
        "purchaseDate": asset.purchase_date.isoformat() if asset.purchase_date else None,
        "invoiceNo": asset.invoice_no,
        "supplier": asset.supplier,
        "nextMaintenanceDate": (
            asset.next_maintenance_date.isoformat() if asset.next_maintenance_date else None
        ),
        "status": asset.status,
        "useStatus": asset.use_status,
        "transferStatus": asset.transfer_status,
        "currentSiteId": asset.current_site_id,
    }


# =============================================================================
# Transfers
# =============================================================================

def get_asset_transfer(db: Session, transfer_id: int) -> AssetTransfer:
    transfer = db.get(AssetTransfer, transfer_id)
    if transfer is None:
        raise NotFoundError("Asset transfer not found", AssetErrorCode.NOT_FOUND)
    return transfer


def _next_challan_no(db: Session) -> str:
    last = db.execute(
        select(AssetTransfer.challan_no).order_by(AssetTransfer.id.desc()).limit(1)
    ).scalar_one_or_none()
    return format_serial_no(ASSET_TRANSFER_PREFIX, last)


def create_asset_transfer(
    db: Session,
    transfer_type: str,
    to_site_id: int,
    challan_date: date,
    asset_ids: Sequence[int],
    from_site_id: Optional[int] = None,
    remarks: Optional[str] = None,
) -> AssetTransfer:
    if transfer_type not in (NEW_ASSIGN, TRANSFER):
        raise ValidationError(
            f"Transfer type must be '{NEW_ASSIGN}' or '{TRANSFER}'", AssetErrorCode.INVALID_REQUEST
        )
    ids = sorted({int(i) for i in asset_ids})
    if not ids:
        raise ValidationError("At least one asset is required", AssetErrorCode.INVALID_REQUEST)
    if db.get(Site, to_site_id) is None:
        raise NotFoundError("To site not found", AssetErrorCode.NOT_FOUND)
    if transfer_type == TRANSFER:
        if not from_site_id:
            raise ValidationError("From site is required for a transfer", AssetErrorCode.INVALID_REQUEST)
        if from_site_id == to_site_id:
            raise ValidationError("From and to site must differ", AssetErrorCode.INVALID_REQUEST)
    else:
        from_site_id = None

    stmt = select(Asset).where(Asset.id.in_(ids))
    if transfer_type == NEW_ASSIGN:
        stmt = stmt.where(Asset.transfer_status == ASSET_AVAILABLE)
    else:
        stmt = stmt.where(Asset.transfer_status == ASSET_ASSIGNED, Asset.current_site_id == from_site_id)
    assets = db.execute(stmt).scalars().all()
    if len(assets) != len(ids):
        required = ASSET_AVAILABLE if transfer_type == NEW_ASSIGN else f"{ASSET_ASSIGNED} at the from site"
        raise ValidationError(f"All assets must be {required}", AssetErrorCode.WRONG_ASSET_STATE)

    transfer = AssetTransfer(
        challan_no=_next_challan_no(db),
        challan_date=challan_date,
        transfer_type=transfer_type,
        from_site_id=from_site_id,
        to_site_id=to_site_id,
        status=STATUS_PENDING,
        remarks=remarks,
        items=[AssetTransferItem(asset_id=a.id) for a in assets],
    )
    for asset in assets:
        asset.transfer_status = ASSET_IN_TRANSIT
    db.add(transfer)
    db.commit()
    db.refresh(transfer)
    logger.info(
        f"[ASSET-TRANSFER] Created | id={transfer.id} | challan_no={transfer.challan_no} | "
        f"type={transfer_type} | assets={ids}"
    )
    return transfer


def _require_pending(transfer: AssetTransfer) -> None:
    if transfer.status != STATUS_PENDING:
        raise InvalidTransitionError(
            f"Only Pending transfers can be changed (status {transfer.status})", AssetErrorCode.NOT_PENDING
        )


def update_asset_transfer_status(
    db: Session,
    transfer_id: int,
    status: str,
    user: AuthenticatedUser,
    remarks: Optional[str] = None,
) -> AssetTransfer:
    if status not in (STATUS_ACCEPTED, STATUS_REJECTED):
        raise ValidationError("Status must be Accepted or Rejected", AssetErrorCode.INVALID_REQUEST)
    transfer = get_asset_transfer(db, transfer_id)
    _require_pending(transfer)

    for item in transfer.items:
        asset = item.asset
        if status == STATUS_ACCEPTED:
            asset.current_site_id = transfer.to_site_id
            asset.transfer_status = ASSET_ASSIGNED
        else:
            asset.transfer_status = ASSET_AVAILABLE
            if transfer.from_site_id:
                asset.current_site_id = transfer.from_site_id

    transfer.status = status
    transfer.approved_by_id = user.id
    transfer.approved_at = utcnow()
    if remarks is not None:
        transfer.remarks = remarks
    db.commit()
    db.refresh(transfer)
    logger.info(f"[ASSET-TRANSFER] Decided | id={transfer.id} | status={status} | user_id={user.id}")
    return transfer


def delete_asset_transfer(db: Session, transfer_id: int) -> None:
    transfer = get_asset_transfer(db, transfer_id)
    _require_pending(transfer)
    for item in transfer.items:
        item.asset.transfer_status = ASSET_AVAILABLE
    db.delete(transfer)
    db.commit()
    logger.info(f"[ASSET-TRANSFER] Deleted | id={transfer_id}")


ASSET_TRANSFER_SORT_COLUMNS = {
    "challanNo": AssetTransfer.challan_no,
    "challanDate": AssetTransfer.challan_date,
    "createdAt": AssetTransfer.created_at,
}


def asset_transfer_list_query(db: Session, user: AuthenticatedUser, search: str = "", status: Optional[str] = None):
    stmt = select(AssetTransfer)
    if search:
        stmt = stmt.where(AssetTransfer.challan_no.ilike(f"%{search}%"))
    if status:
        stmt = stmt.where(AssetTransfer.status == status)
    visible = assigned_site_ids(db, user)
    if visible is not None:
        if not visible:
            return None
        stmt = stmt.where(or_(AssetTransfer.from_site_id.in_(visible), AssetTransfer.to_site_id.in_(visible)))
    return stmt


def serialize_asset_transfer(transfer: AssetTransfer) -> Dict[str, Any]:
    return {
        "id": transfer.id,
        "challanNo": transfer.challan_no,
        "challanDate": transfer.challan_date.isoformat(),
        "transferType": transfer.transfer_type,
        "fromSiteId": transfer.from_site_id,
        "toSiteId": transfer.to_site_id,
        "status": transfer.status,
        "approvedById": transfer.approved_by_id,
        "approvedAt": transfer.approved_at.isoformat() if transfer.approved_at else None,
        "remarks": transfer.remarks,
        "assets": [
            {
                "assetId": i.asset_id,
                "assetNo": i.asset.asset_no,
                "assetName": i.asset.asset_name,
                "transferStatus": i.asset.transfer_status,
            }
            for i in transfer.items
        ],
    }
