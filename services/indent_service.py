"""
============================================================================
SiteLedger - Indent Service
============================================================================

Indents are internal material requests raised by a site. Each item
records the site's closing stock at the time the indent is raised.

    DRAFT --approve1--> APPROVED_1 --approve2--> APPROVED_2 --complete--> COMPLETED

Suspension is a flag next to the status: a suspended indent keeps its
status but no approval action runs until it is unsuspended.

ERROR CODES:
    IND-001: Indent not found
    IND-002: Invalid indent items
    IND-003: Action not allowed
    IND-004: Approved qty missing on an item

============================================================================
"""

from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence
import logging
import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.auth.access_control import AuthenticatedUser, assigned_site_ids
from app.database.models import Indent, IndentItem, Item, Site, SiteItem, utcnow
from app.logic.approval_state_machine import INDENT_WORKFLOW, IndentStatus
from app.logic.decimal_gateway import ZERO, to_qty
from app.logic.numbering import format_indent_no
from app.observability.metrics import record_approval_action
from services.erp_errors import InvalidTransitionError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class IndentErrorCode:
    NOT_FOUND = "IND-001"
    INVALID_ITEMS = "IND-002"
    ACTION_NOT_ALLOWED = "IND-003"
    APPROVED_QTY_REQUIRED = "IND-004"


INDENT_ACTIONS = ("approve1", "approve2", "complete", "suspend", "unsuspend")

_APPROVAL_STAMPS = {
    "approve1": ("approved1_by_id", "approved1_at"),
    "approve2": ("approved2_by_id", "approved2_at"),
    "complete": ("completed_by_id", "completed_at"),
}


def get_indent(db: Session, indent_id: int) -> Indent:
    indent = db.get(Indent, indent_id)
    if indent is None:
        raise NotFoundError("Indent not found", IndentErrorCode.NOT_FOUND)
    return indent


def _build_items(db: Session, site_id: int, rows: Sequence[Mapping[str, Any]]) -> List[IndentItem]:
    if not rows:
        raise ValidationError("At least one indent item is required", IndentErrorCode.INVALID_ITEMS)

    item_ids = {int(r.get("item_id") or 0) for r in rows}
    items = {i.id: i for i in db.execute(select(Item).where(Item.id.in_(item_ids))).scalars().all()}
    closing = dict(
        db.execute(
            select(SiteItem.item_id, SiteItem.closing_stock)
            .where(SiteItem.site_id == site_id, SiteItem.item_id.in_(item_ids))
        ).all()
    )

    built = []
    for idx, row in enumerate(rows, start=1):
        item = items.get(int(row.get("item_id") or 0))
        qty = to_qty(row.get("indent_qty") or 0)
        if item is None or qty <= ZERO:
            raise ValidationError(
                f"Row {idx}: a valid item and indent qty greater than 0 are required",
                IndentErrorCode.INVALID_ITEMS,
            )
        built.append(
            IndentItem(
                item_id=item.id,
                unit_id=item.unit_id,
                closing_stock=to_qty(closing.get(item.id, ZERO)),
                indent_qty=qty,
                delivery_date=row.get("delivery_date"),
                remark=row.get("remark"),
            )
        )
    return built


def create_indent(
    db: Session,
    site_id: int,
    indent_date: date,
    items: Sequence[Mapping[str, Any]],
    delivery_date: Optional[date] = None,
    remarks: Optional[str] = None,
    user: Optional[AuthenticatedUser] = None,
) -> Indent:
    if db.get(Site, site_id) is None:
        raise NotFoundError("Site not found", IndentErrorCode.NOT_FOUND)

    existing = db.execute(select(func.count(Indent.id))).scalar_one()
    indent = Indent(
        indent_no=format_indent_no(existing),
        indent_date=indent_date,
        site_id=site_id,
        delivery_date=delivery_date,
        remarks=remarks,
        status=IndentStatus.DRAFT.value,
        created_by_id=user.id if user else None,
        items=_build_items(db, site_id, items),
    )
    db.add(indent)
    db.commit()
    db.refresh(indent)
    logger.info(f"[INDENT] Created | id={indent.id} | no={indent.indent_no} | site_id={site_id}")
    return indent


def update_indent(
    db: Session,
    indent_id: int,
    items: Sequence[Mapping[str, Any]],
    changes: Optional[Mapping[str, Any]] = None,
) -> Indent:
    indent = get_indent(db, indent_id)
    if indent.status != IndentStatus.DRAFT.value or indent.is_suspended:
        raise InvalidTransitionError("Only draft indents can be edited", IndentErrorCode.ACTION_NOT_ALLOWED)

    for field_name in ("indent_date", "delivery_date", "remarks"):
        if changes and field_name in changes:
            setattr(indent, field_name, changes[field_name])
    built = _build_items(db, indent.site_id, items)
    indent.items.clear()
    db.flush()
    indent.items.extend(built)
    db.commit()
    db.refresh(indent)
    return indent


def delete_indent(db: Session, indent_id: int) -> None:
    indent = get_indent(db, indent_id)
    if indent.status != IndentStatus.DRAFT.value:
        raise InvalidTransitionError("Only draft indents can be deleted", IndentErrorCode.ACTION_NOT_ALLOWED)
    db.delete(indent)
    db.commit()


def _apply_approved_quantities(indent: Indent, rows: Sequence[Mapping[str, Any]]) -> None:
    by_id = {int(r.get("id") or 0): r for r in rows}
    missing = []
    for item in indent.items:
        row = by_id.get(item.id)
        if row is None or row.get("approved_qty") is None:
            missing.append(item.id)
            continue
        approved = to_qty(row["approved_qty"])
        if approved < ZERO:
            raise ValidationError(
                f"Approved qty cannot be negative (item {item.id})", IndentErrorCode.INVALID_ITEMS
            )
        item.approved_qty = approved
    if missing:
        raise ValidationError(
            "Approved qty is required for every item",
            IndentErrorCode.APPROVED_QTY_REQUIRED,
            extra={"itemIds": missing},
        )


def apply_indent_action(
    db: Session,
    indent_id: int,
    action: str,
    user: AuthenticatedUser,
    items: Optional[Sequence[Mapping[str, Any]]] = None,
    correlation_id: Optional[str] = None,
) -> Indent:
    """
    approve1 / approve2 / complete / suspend / unsuspend.

    When an approval action carries items, every indent item needs an
    approved qty; the quantities are stored with the approval.
    """
    correlation_id = correlation_id or str(uuid.uuid4())
    if action not in INDENT_ACTIONS:
        raise ValidationError(f"Unknown action: {action}", IndentErrorCode.ACTION_NOT_ALLOWED)

    indent = get_indent(db, indent_id)
    allowed, error_code = INDENT_WORKFLOW.validate_action(indent.status, action, correlation_id)
    if allowed and action == "suspend" and indent.is_suspended:
        allowed, error_code = False, IndentErrorCode.ACTION_NOT_ALLOWED
    if allowed and action == "unsuspend" and not indent.is_suspended:
        allowed, error_code = False, IndentErrorCode.ACTION_NOT_ALLOWED
    if allowed and action in _APPROVAL_STAMPS and indent.is_suspended:
        allowed, error_code = False, IndentErrorCode.ACTION_NOT_ALLOWED
    if not allowed:
        record_approval_action("indent", action, error_code)
        raise InvalidTransitionError(
            f"Cannot {action} indent {indent.indent_no} (status {indent.status}, "
            f"suspended={indent.is_suspended})",
            IndentErrorCode.ACTION_NOT_ALLOWED,
        )

    now = utcnow()
    if action == "suspend":
        indent.is_suspended = True
        indent.suspended_by_id = user.id
        indent.suspended_at = now
    elif action == "unsuspend":
        indent.is_suspended = False
        indent.suspended_by_id = None
        indent.suspended_at = None
    else:
        if items:
            _apply_approved_quantities(indent, items)
        by_field, at_field = _APPROVAL_STAMPS[action]
        setattr(indent, by_field, user.id)
        setattr(indent, at_field, now)
        indent.status = INDENT_WORKFLOW.target_state(action)

    db.commit()
    db.refresh(indent)
    record_approval_action("indent", action, "applied")
    logger.info(
        f"[INDENT] Action applied | id={indent.id} | action={action} | status={indent.status} | "
        f"suspended={indent.is_suspended} | user_id={user.id} | correlation_id={correlation_id}"
    )
    return indent


INDENT_SORT_COLUMNS = {
    "indentNo": Indent.indent_no,
    "indentDate": Indent.indent_date,
    "createdAt": Indent.created_at,
}
INDENT_DEFAULT_SORT = "createdAt"


def indent_list_query(
    db: Session,
    user: AuthenticatedUser,
    search: str = "",
    site_id: Optional[int] = None,
    status: Optional[str] = None,
):
    stmt = select(Indent).join(Site, Indent.site_id == Site.id)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Indent.indent_no.ilike(pattern), Site.site.ilike(pattern)))
    if site_id:
        stmt = stmt.where(Indent.site_id == site_id)
    if status:
        stmt = stmt.where(Indent.status == status)
    visible = assigned_site_ids(db, user)
    if visible is not None:
        if not visible:
            return None
        stmt = stmt.where(Indent.site_id.in_(visible))
    return stmt


def serialize_indent(indent: Indent) -> Dict[str, Any]:
    return {
        "id": indent.id,
        "indentNo": indent.indent_no,
        "indentDate": indent.indent_date.isoformat(),
        "siteId": indent.site_id,
        "site": indent.site.site if indent.site else None,
        "deliveryDate": indent.delivery_date.isoformat() if indent.delivery_date else None,
        "remarks": indent.remarks,
        "status": indent.status,
        "isSuspended": indent.is_suspended,
        "items": [
            {
                "id": i.id,
                "itemId": i.item_id,
                "unitId": i.unit_id,
                "closingStock": str(to_qty(i.closing_stock)),
                "indentQty": str(to_qty(i.indent_qty)),
                "approvedQty": None if i.approved_qty is None else str(to_qty(i.approved_qty)),
                "deliveryDate": i.delivery_date.isoformat() if i.delivery_date else None,
                "remark": i.remark,
            }
            for i in indent.items
        ],
    }
