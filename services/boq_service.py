"""
============================================================================
SiteLedger - Bill of Quantities Service
============================================================================

A BOQ is the client's priced list of work items for one site. Group rows
(is_group) are headings and carry no amount.

    amount            = qty x rate        (non-group items)
    total_work_value  = sum(amount)
    executed value    = executed qty x rate
    remaining qty     = qty - executed qty
    remaining value   = amount - executed value

ERROR CODES:
    BOQ-001: BOQ not found
    BOQ-002: Invalid BOQ items
    BOQ-003: BOQ number already exists

============================================================================
"""

from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence
import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.auth.access_control import AuthenticatedUser, assigned_site_ids
from app.database.models import Boq, BoqItem, Site
from app.logic.decimal_gateway import ZERO, to_money, to_qty
from app.logic.ledger_math import line_amount, sum_money
from services.erp_errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class BoqErrorCode:
    NOT_FOUND = "BOQ-001"
    INVALID_ITEMS = "BOQ-002"
    DUPLICATE = "BOQ-003"


def get_boq(db: Session, boq_id: int) -> Boq:
    boq = db.get(Boq, boq_id)
    if boq is None:
        raise NotFoundError("BOQ not found", BoqErrorCode.NOT_FOUND)
    return boq


def _build_items(rows: Sequence[Mapping[str, Any]]) -> List[BoqItem]:
    items = []
    for idx, row in enumerate(rows, start=1):
        is_group = bool(row.get("is_group", False))
        text = (row.get("item") or "").strip()
        if not text:
            raise ValidationError(f"Row {idx}: item description is required", BoqErrorCode.INVALID_ITEMS)
        qty = ZERO if is_group else to_qty(row.get("qty") or 0)
        rate = ZERO if is_group else to_money(row.get("rate") or 0)
        if qty < ZERO or rate < ZERO:
            raise ValidationError(f"Row {idx}: qty and rate cannot be negative", BoqErrorCode.INVALID_ITEMS)
        items.append(
            BoqItem(
                activity_id=row.get("activity_id"),
                client_sr_no=row.get("client_sr_no"),
                item=text,
                unit_id=row.get("unit_id"),
                qty=qty,
                rate=rate,
                amount=ZERO if is_group else line_amount(qty, rate),
                executed_qty=ZERO,
                is_group=is_group,
            )
        )
    return items


def _refresh_total(boq: Boq) -> None:
    boq.total_work_value = sum_money(i.amount for i in boq.items if not i.is_group)


def create_boq(
    db: Session,
    boq_no: str,
    site_id: int,
    items: Sequence[Mapping[str, Any]],
    work_name: Optional[str] = None,
    work_order_no: Optional[str] = None,
    work_order_date: Optional[date] = None,
    gst_rate=0,
) -> Boq:
    if db.get(Site, site_id) is None:
        raise NotFoundError("Site not found", BoqErrorCode.NOT_FOUND)
    if db.execute(select(Boq.id).where(Boq.boq_no == boq_no)).first() is not None:
        raise ConflictError("BOQ number already exists", BoqErrorCode.DUPLICATE)

    boq = Boq(
        boq_no=boq_no,
        site_id=site_id,
        work_name=work_name,
        work_order_no=work_order_no,
        work_order_date=work_order_date,
        gst_rate=to_money(gst_rate or 0),
        items=_build_items(items),
    )
    _refresh_total(boq)
    db.add(boq)
    db.commit()
    db.refresh(boq)
    logger.info(f"[BOQ] Created | id={boq.id} | boq_no={boq_no} | total_work_value={boq.total_work_value}")
    return boq


def update_boq(db: Session, boq_id: int, changes: Mapping[str, Any], items: Optional[Sequence[Mapping[str, Any]]] = None) -> Boq:
    """Header fields in changes are applied; items, when given, replace the existing ones."""
    boq = get_boq(db, boq_id)
    for field_name in ("boq_no", "work_name", "work_order_no", "work_order_date"):
        if field_name in changes:
            setattr(boq, field_name, changes[field_name])
    if "gst_rate" in changes:
        boq.gst_rate = to_money(changes["gst_rate"] or 0)
    if items is not None:
        built = _build_items(items)
        boq.items.clear()
        db.flush()
        boq.items.extend(built)
    _refresh_total(boq)
    db.commit()
    db.refresh(boq)
    return boq


def delete_boq(db: Session, boq_id: int) -> None:
    db.delete(get_boq(db, boq_id))
    db.commit()


# =============================================================================
# Work done
# =============================================================================

def record_work_done(db: Session, boq_id: int, rows: Sequence[Mapping[str, Any]]) -> Boq:
    """Set executed qty per BOQ item: [{"id", "executed_qty"}]."""
    boq = get_boq(db, boq_id)
    by_id = {item.id: item for item in boq.items}
    for row in rows:
        item = by_id.get(int(row.get("id") or 0))
        if item is None or item.is_group:
            raise ValidationError(f"Unknown BOQ item: {row.get('id')}", BoqErrorCode.INVALID_ITEMS)
        executed = to_qty(row.get("executed_qty") or 0)
        if executed < ZERO:
            raise ValidationError("Executed qty cannot be negative", BoqErrorCode.INVALID_ITEMS)
        item.executed_qty = executed
    db.commit()
    db.refresh(boq)
    return boq


def work_done(boq: Boq) -> Dict[str, Any]:
    rows = []
    executed_total = ZERO
    for item in boq.items:
        if item.is_group:
            rows.append({"id": item.id, "item": item.item, "isGroup": True})
            continue
        executed_value = line_amount(item.executed_qty, item.rate)
        executed_total += executed_value
        rows.append({
            "id": item.id,
            "activityId": item.activity_id,
            "clientSrNo": item.client_sr_no,
            "item": item.item,
            "isGroup": False,
            "unit": item.unit.unit_name if item.unit else None,
            "qty": str(to_qty(item.qty)),
            "rate": str(to_money(item.rate)),
            "amount": str(to_money(item.amount)),
            "executedQty": str(to_qty(item.executed_qty)),
            "executedValue": str(executed_value),
            "remainingQty": str(to_qty(to_qty(item.qty) - to_qty(item.executed_qty))),
            "remainingValue": str(to_money(to_money(item.amount) - executed_value)),
        })
    total = to_money(boq.total_work_value)
    return {
        "boqId": boq.id,
        "boqNo": boq.boq_no,
        "totalWorkValue": str(total),
        "executedValue": str(to_money(executed_total)),
        "remainingValue": str(to_money(total - executed_total)),
        "items": rows,
    }


# =============================================================================
# Listing
# =============================================================================

BOQ_SORT_COLUMNS = {
    "boqNo": Boq.boq_no,
    "totalWorkValue": Boq.total_work_value,
    "createdAt": Boq.created_at,
}
BOQ_DEFAULT_SORT = "createdAt"


def boq_list_query(db: Session, user: AuthenticatedUser, search: str = "", site_id: Optional[int] = None):
    stmt = select(Boq).join(Site, Boq.site_id == Site.id)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Boq.boq_no.ilike(pattern), Boq.work_name.ilike(pattern), Site.site.ilike(pattern)))
    if site_id:
        stmt = stmt.where(Boq.site_id == site_id)
    visible = assigned_site_ids(db, user)
    if visible is not None:
        if not visible:
            return None
        stmt = stmt.where(Boq.site_id.in_(visible))
    return stmt


def serialize_boq(boq: Boq, with_items: bool = True) -> Dict[str, Any]:
    data = {
        "id": boq.id,
        "boqNo": boq.boq_no,
        "siteId": boq.site_id,
        "site": boq.site.site if boq.site else None,
        "workName": boq.work_name,
        "workOrderNo": boq.work_order_no,
        "workOrderDate": boq.work_order_date.isoformat() if boq.work_order_date else None,
        "totalWorkValue": str(to_money(boq.total_work_value)),
        "gstRate": str(boq.gst_rate),
    }
    if with_items:
        data["items"] = [
            {
                "id": i.id,
                "activityId": i.activity_id,
                "clientSrNo": i.client_sr_no,
                "item": i.item,
                "unitId": i.unit_id,
                "qty": str(to_qty(i.qty)),
                "rate": str(to_money(i.rate)),
                "amount": str(to_money(i.amount)),
                "executedQty": str(to_qty(i.executed_qty)),
                "isGroup": i.is_group,
            }
            for i in boq.items
        ]
    return data
