"""
============================================================================
SiteLedger - Master Data Service
============================================================================

Sites (with their employee links) and cashbook heads.

ERROR CODES:
    MST-001: Record not found
    MST-002: Duplicate site code / head name
    MST-003: Invalid master data

============================================================================
"""

from typing import Any, Dict, Mapping, Optional, Sequence
import logging

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from app.auth.access_control import AuthenticatedUser, assigned_site_ids
from app.database.models import CashbookHead, Site, SiteEmployee, User
from services.erp_errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class MasterErrorCode:
    NOT_FOUND = "MST-001"
    DUPLICATE = "MST-002"
    INVALID = "MST-003"


# =============================================================================
# Sites
# =============================================================================

def get_site(db: Session, site_id: int) -> Site:
    site = db.get(Site, site_id)
    if site is None:
        raise NotFoundError("Site not found", MasterErrorCode.NOT_FOUND)
    return site


def _check_site_code(db: Session, site_code: Optional[str], exclude_id: Optional[int] = None) -> None:
    if not site_code:
        return
    stmt = select(Site.id).where(Site.site_code == site_code)
    if exclude_id:
        stmt = stmt.where(Site.id != exclude_id)
    if db.execute(stmt).first() is not None:
        raise ConflictError(f"Site code {site_code} already exists", MasterErrorCode.DUPLICATE)


def create_site(
    db: Session,
    site: str,
    site_code: Optional[str] = None,
    short_name: Optional[str] = None,
    status: str = "Ongoing",
) -> Site:
    if not (site or "").strip():
        raise ValidationError("Site name is required", MasterErrorCode.INVALID)
    _check_site_code(db, site_code)
    record = Site(site=site.strip(), site_code=site_code, short_name=short_name, status=status)
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(f"[MASTER] Site created | id={record.id} | site_code={site_code}")
    return record


def update_site(db: Session, site_id: int, changes: Mapping[str, Any]) -> Site:
    record = get_site(db, site_id)
    if "site_code" in changes:
        _check_site_code(db, changes["site_code"], exclude_id=site_id)
    for field_name in ("site", "site_code", "short_name", "status"):
        if field_name in changes and changes[field_name] is not None:
            setattr(record, field_name, changes[field_name])
    db.commit()
    db.refresh(record)
    return record


def delete_site(db: Session, site_id: int) -> None:
    db.delete(get_site(db, site_id))
    db.commit()


def set_site_employees(db: Session, site_id: int, user_ids: Sequence[int]) -> Site:
    """Replace the users assigned to a site."""
    record = get_site(db, site_id)
    ids = sorted({int(u) for u in user_ids})
    found = db.execute(select(User.id).where(User.id.in_(ids))).scalars().all() if ids else []
    if len(found) != len(ids):
        raise ValidationError("Unknown user in employee list", MasterErrorCode.INVALID)
    db.execute(delete(SiteEmployee).where(SiteEmployee.site_id == site_id))
    for user_id in ids:
        db.add(SiteEmployee(site_id=site_id, user_id=user_id))
    db.commit()
    db.refresh(record)
    logger.info(f"[MASTER] Site employees set | site_id={site_id} | users={ids}")
    return record


def site_employee_ids(db: Session, site_id: int):
    return db.execute(
        select(SiteEmployee.user_id).where(SiteEmployee.site_id == site_id).order_by(SiteEmployee.user_id)
    ).scalars().all()


SITE_SORT_COLUMNS = {
    "site": Site.site,
    "siteCode": Site.site_code,
    "createdAt": Site.created_at,
}
SITE_DEFAULT_SORT = "createdAt"


def site_list_query(db: Session, user: AuthenticatedUser, search: str = ""):
    stmt = select(Site)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Site.site.ilike(pattern), Site.site_code.ilike(pattern), Site.short_name.ilike(pattern)))
    visible = assigned_site_ids(db, user)
    if visible is not None:
        if not visible:
            return None
        stmt = stmt.where(Site.id.in_(visible))
    return stmt


def serialize_site(site: Site) -> Dict[str, Any]:
    return {
        "id": site.id,
        "site": site.site,
        "siteCode": site.site_code,
        "shortName": site.short_name,
        "status": site.status,
    }


# =============================================================================
# Cashbook heads
# =============================================================================

def get_cashbook_head(db: Session, head_id: int) -> CashbookHead:
    head = db.get(CashbookHead, head_id)
    if head is None:
        raise NotFoundError("Cashbook head not found", MasterErrorCode.NOT_FOUND)
    return head


def save_cashbook_head(db: Session, name: str, head_id: Optional[int] = None) -> CashbookHead:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Cashbook head name is required", MasterErrorCode.INVALID)
    stmt = select(CashbookHead.id).where(CashbookHead.cashbook_head_name == name)
    if head_id:
        stmt = stmt.where(CashbookHead.id != head_id)
    if db.execute(stmt).first() is not None:
        raise ConflictError("Cashbook head already exists", MasterErrorCode.DUPLICATE)

    head = get_cashbook_head(db, head_id) if head_id else CashbookHead()
    head.cashbook_head_name = name
    if head_id is None:
        db.add(head)
    db.commit()
    db.refresh(head)
    return head


def delete_cashbook_head(db: Session, head_id: int) -> None:
    db.delete(get_cashbook_head(db, head_id))
    db.commit()


CASHBOOK_HEAD_SORT_COLUMNS = {
    "cashbookHeadName": CashbookHead.cashbook_head_name,
    "id": CashbookHead.id,
}


def cashbook_head_list_query(search: str = ""):
    stmt = select(CashbookHead)
    if search:
        stmt = stmt.where(CashbookHead.cashbook_head_name.ilike(f"%{search}%"))
    return stmt


def serialize_cashbook_head(head: CashbookHead) -> Dict[str, Any]:
    return {"id": head.id, "cashbookHeadName": head.cashbook_head_name}
