"""
============================================================================
SiteLedger - Manpower Assignment Service
============================================================================

Contracted workers are assigned to one site at a time. Every assignment
row keeps the wage and statutory metadata agreed for that site (category,
skill set, wage, minimum wage, hours, ESIC, PF, PT, HRA, MLWF).

TRANSFERS:
    A transfer challan (MPT-00001, ...) lists workers currently assigned
    at the from-site. It starts Pending; Accepted moves the assignments to
    the to-site, Rejected leaves them where they are. Accepting fails when
    a listed worker is no longer active at the from-site. Only Pending
    transfers can be deleted.

ERROR CODES:
    MP-001: Manpower / site / transfer not found
    MP-002: Manpower already assigned or not available
    MP-003: Invalid transfer request
    MP-004: Transfer already decided

============================================================================
"""

from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence
import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.auth.access_control import AuthenticatedUser, assigned_site_ids
from app.database.models import (
    Manpower,
    ManpowerAssignment,
    ManpowerTransfer,
    ManpowerTransferItem,
    Site,
    utcnow,
)
from app.logic.decimal_gateway import to_money
from app.logic.numbering import MANPOWER_TRANSFER_PREFIX, format_serial_no
from services.erp_errors import InvalidTransitionError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class ManpowerErrorCode:
    NOT_FOUND = "MP-001"
    NOT_AVAILABLE = "MP-002"
    INVALID_TRANSFER = "MP-003"
    ALREADY_DECIDED = "MP-004"


TRANSFER_PENDING = "Pending"
TRANSFER_ACCEPTED = "Accepted"
TRANSFER_REJECTED = "Rejected"

WAGE_FIELDS = ("category", "skill_set", "wage", "min_wage", "hours", "esic", "pf", "pt", "hra", "mlwf")
_MONEY_FIELDS = {"wage", "min_wage", "hours", "esic", "pt", "hra", "mlwf"}


def _wage_metadata(source: Any, overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Wage fields from source (manpower or assignment), overridden by request values."""
    data = {name: getattr(source, name) for name in WAGE_FIELDS}
    for name, value in (overrides or {}).items():
        if name in WAGE_FIELDS and value is not None:
            data[name] = to_money(value) if name in _MONEY_FIELDS else value
    data["pf"] = bool(data["pf"])
    return data


def _require_site(db: Session, site_id: int) -> Site:
    site = db.get(Site, site_id)
    if site is None:
        raise ValidationError("Site not found", ManpowerErrorCode.NOT_FOUND)
    return site


# =============================================================================
# Assignment
# =============================================================================

def assign_manpower(
    db: Session,
    site_id: int,
    assignments: Sequence[Mapping[str, Any]],
) -> List[ManpowerAssignment]:
    """
    Assign workers to a site.

    assignments: [{"manpower_id", optional wage fields}]. Every worker must
    exist and be unassigned.
    """
    ids = [int(a.get("manpower_id") or 0) for a in assignments]
    if not ids or len(set(ids)) != len(ids):
        raise ValidationError("A list of distinct manpower ids is required", ManpowerErrorCode.NOT_AVAILABLE)

    available = {
        m.id: m
        for m in db.execute(
            select(Manpower).where(Manpower.id.in_(ids), Manpower.is_assigned.is_(False))
        ).scalars().all()
    }
    if len(available) != len(ids):
        raise ValidationError(
            "Some manpower are already assigned or not found", ManpowerErrorCode.NOT_AVAILABLE
        )
    site = _require_site(db, site_id)

    now = utcnow()
    created = []
    for request in assignments:
        worker = available[int(request["manpower_id"])]
        metadata = _wage_metadata(worker, request)
        for name, value in metadata.items():
            setattr(worker, name, value)
        worker.is_assigned = True
        worker.current_site_id = site_id
        worker.assigned_at = now

        assignment = ManpowerAssignment(site_id=site_id, manpower_id=worker.id, assigned_at=now, **metadata)
        db.add(assignment)
        created.append(assignment)

    db.commit()
    logger.info(f"[MANPOWER] Assigned | site_id={site_id} | site={site.site} | count={len(created)}")
    return created


def unassign_manpower(db: Session, manpower_ids: Sequence[int]) -> int:
    """Deactivate the active assignments of the workers and clear their site."""
    ids = sorted({int(i) for i in manpower_ids})
    workers = db.execute(select(Manpower).where(Manpower.id.in_(ids))).scalars().all()
    if len(workers) != len(ids):
        raise NotFoundError("Some manpower were not found", ManpowerErrorCode.NOT_FOUND)

    now = utcnow()
    active = db.execute(
        select(ManpowerAssignment).where(
            ManpowerAssignment.manpower_id.in_(ids), ManpowerAssignment.is_active.is_(True)
        )
    ).scalars().all()
    for assignment in active:
        assignment.is_active = False
        assignment.unassigned_at = now
    for worker in workers:
        worker.is_assigned = False
        worker.current_site_id = None
        worker.assigned_at = None

    db.commit()
    logger.info(f"[MANPOWER] Unassigned | manpower_ids={ids} | assignments_closed={len(active)}")
    return len(active)


# =============================================================================
# Transfers
# =============================================================================

def _next_challan_no(db: Session) -> str:
    last = db.execute(
        select(ManpowerTransfer.challan_no).order_by(ManpowerTransfer.id.desc()).limit(1)
    ).scalar_one_or_none()
    return format_serial_no(MANPOWER_TRANSFER_PREFIX, last)


def get_manpower_transfer(db: Session, transfer_id: int) -> ManpowerTransfer:
    transfer = db.get(ManpowerTransfer, transfer_id)
    if transfer is None:
        raise NotFoundError("Manpower transfer not found", ManpowerErrorCode.NOT_FOUND)
    return transfer


def create_manpower_transfer(
    db: Session,
    from_site_id: int,
    to_site_id: int,
    challan_date: date,
    manpower_ids: Sequence[int],
    remarks: Optional[str] = None,
) -> ManpowerTransfer:
    if from_site_id == to_site_id:
        raise ValidationError("From and to site must differ", ManpowerErrorCode.INVALID_TRANSFER)
    ids = sorted({int(i) for i in manpower_ids})
    if not ids:
        raise ValidationError("At least one manpower is required", ManpowerErrorCode.INVALID_TRANSFER)
    _require_site(db, from_site_id)
    _require_site(db, to_site_id)

    assignments = {
        a.manpower_id: a
        for a in db.execute(
            select(ManpowerAssignment).where(
                ManpowerAssignment.manpower_id.in_(ids),
                ManpowerAssignment.site_id == from_site_id,
                ManpowerAssignment.is_active.is_(True),
            )
        ).scalars().all()
    }
    if len(assignments) != len(ids):
        raise ValidationError(
            "Some manpower are not available for transfer from the selected site",
            ManpowerErrorCode.NOT_AVAILABLE,
        )

    transfer = ManpowerTransfer(
        challan_no=_next_challan_no(db),
        challan_date=challan_date,
        from_site_id=from_site_id,
        to_site_id=to_site_id,
        status=TRANSFER_PENDING,
        remarks=remarks,
        items=[
            ManpowerTransferItem(manpower_id=mid, **_wage_metadata(assignments[mid]))
            for mid in ids
        ],
    )
    db.add(transfer)
    db.commit()
    db.refresh(transfer)
    logger.info(
        f"[MANPOWER] Transfer created | id={transfer.id} | challan_no={transfer.challan_no} | "
        f"from_site_id={from_site_id} | to_site_id={to_site_id} | count={len(ids)}"
    )
    return transfer


def decide_manpower_transfer(
    db: Session,
    transfer_id: int,
    status: str,
    user: AuthenticatedUser,
) -> ManpowerTransfer:
    """Accept or reject a pending transfer."""
    if status not in (TRANSFER_ACCEPTED, TRANSFER_REJECTED):
        raise ValidationError("Status must be Accepted or Rejected", ManpowerErrorCode.INVALID_TRANSFER)
    transfer = get_manpower_transfer(db, transfer_id)
    if transfer.status != TRANSFER_PENDING:
        raise InvalidTransitionError(
            f"Transfer already {transfer.status}", ManpowerErrorCode.ALREADY_DECIDED
        )

    now = utcnow()
    if status == TRANSFER_ACCEPTED:
        ids = [item.manpower_id for item in transfer.items]
        active = db.execute(
            select(ManpowerAssignment).where(
                ManpowerAssignment.manpower_id.in_(ids),
                ManpowerAssignment.site_id == transfer.from_site_id,
                ManpowerAssignment.is_active.is_(True),
            )
        ).scalars().all()
        # every worker must still be active at the from-site
        missing = sorted(set(ids) - {a.manpower_id for a in active})
        if missing:
            raise ValidationError(
                "Some manpower are no longer assigned at the from site",
                ManpowerErrorCode.NOT_AVAILABLE,
                {"manpowerIds": missing},
            )
        for assignment in active:
            assignment.is_active = False
            assignment.unassigned_at = now

        for item in transfer.items:
            worker = db.get(Manpower, item.manpower_id)
            worker.is_assigned = True
            worker.current_site_id = transfer.to_site_id
            worker.assigned_at = now
            db.add(ManpowerAssignment(
                site_id=transfer.to_site_id,
                manpower_id=item.manpower_id,
                assigned_at=now,
                **_wage_metadata(item),
            ))

    transfer.status = status
    transfer.approved_by_id = user.id
    transfer.approved_at = now
    db.commit()
    db.refresh(transfer)
    logger.info(
        f"[MANPOWER] Transfer decided | id={transfer.id} | status={status} | user_id={user.id}"
    )
    return transfer


def delete_manpower_transfer(db: Session, transfer_id: int) -> None:
    transfer = get_manpower_transfer(db, transfer_id)
    if transfer.status != TRANSFER_PENDING:
        raise InvalidTransitionError(
            "Only pending transfers can be deleted", ManpowerErrorCode.ALREADY_DECIDED
        )
    challan_no = transfer.challan_no
    db.delete(transfer)
    db.commit()
    logger.info(f"[MANPOWER] Transfer deleted | id={transfer_id} | challan_no={challan_no}")


# =============================================================================
# Listing
# =============================================================================

ASSIGNMENT_SORT_COLUMNS = {
    "assignedAt": ManpowerAssignment.assigned_at,
    "firstName": Manpower.first_name,
}
TRANSFER_SORT_COLUMNS = {
    "challanNo": ManpowerTransfer.challan_no,
    "challanDate": ManpowerTransfer.challan_date,
    "createdAt": ManpowerTransfer.created_at,
}


def assignment_list_query(db: Session, user: AuthenticatedUser, search: str = "", site_id: Optional[int] = None):
    stmt = (
        select(ManpowerAssignment)
        .join(Manpower, ManpowerAssignment.manpower_id == Manpower.id)
        .where(ManpowerAssignment.is_active.is_(True))
    )
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Manpower.first_name.ilike(pattern), Manpower.last_name.ilike(pattern)))
    if site_id:
        stmt = stmt.where(ManpowerAssignment.site_id == site_id)
    visible = assigned_site_ids(db, user)
    if visible is not None:
        if not visible:
            return None
        stmt = stmt.where(ManpowerAssignment.site_id.in_(visible))
    return stmt


def transfer_list_query(db: Session, user: AuthenticatedUser, search: str = "", status: Optional[str] = None):
    stmt = select(ManpowerTransfer)
    if search:
        stmt = stmt.where(ManpowerTransfer.challan_no.ilike(f"%{search}%"))
    if status:
        stmt = stmt.where(ManpowerTransfer.status == status)
    visible = assigned_site_ids(db, user)
    if visible is not None:
        if not visible:
            return None
        stmt = stmt.where(or_(
            ManpowerTransfer.from_site_id.in_(visible), ManpowerTransfer.to_site_id.in_(visible)
        ))
    return stmt


def _wage_dict(source: Any) -> Dict[str, Any]:
    return {
        "category": source.category,
        "skillSet": source.skill_set,
        "wage": None if source.wage is None else str(to_money(source.wage)),
        "minWage": None if source.min_wage is None else str(to_money(source.min_wage)),
        "hours": None if source.hours is None else str(to_money(source.hours)),
        "esic": None if source.esic is None else str(to_money(source.esic)),
        "pf": source.pf,
        "pt": None if source.pt is None else str(to_money(source.pt)),
        "hra": None if source.hra is None else str(to_money(source.hra)),
        "mlwf": None if source.mlwf is None else str(to_money(source.mlwf)),
    }


def serialize_assignment(assignment: ManpowerAssignment) -> Dict[str, Any]:
    worker = assignment.manpower
    data = {
        "id": assignment.id,
        "siteId": assignment.site_id,
        "site": assignment.site.site if assignment.site else None,
        "manpowerId": assignment.manpower_id,
        "name": " ".join(p for p in (worker.first_name, worker.middle_name, worker.last_name) if p),
        "assignedAt": assignment.assigned_at.isoformat(),
        "isActive": assignment.is_active,
    }
    data.update(_wage_dict(assignment))
    return data


def serialize_transfer(transfer: ManpowerTransfer) -> Dict[str, Any]:
    return {
        "id": transfer.id,
        "challanNo": transfer.challan_no,
        "challanDate": transfer.challan_date.isoformat(),
        "fromSiteId": transfer.from_site_id,
        "toSiteId": transfer.to_site_id,
        "status": transfer.status,
        "approvedById": transfer.approved_by_id,
        "approvedAt": transfer.approved_at.isoformat() if transfer.approved_at else None,
        "remarks": transfer.remarks,
        "items": [dict(manpowerId=i.manpower_id, **_wage_dict(i)) for i in transfer.items],
    }
