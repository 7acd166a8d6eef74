"""
============================================================================
SiteLedger - Purchase Order Service
============================================================================

Reliability Level: STANDARD
Decimal Integrity: Line and header amounts 2 dp (ROUND_HALF_UP)

PURCHASE ORDER LIFECYCLE:
    DRAFT --approve1--> APPROVED_LEVEL_1 --approve2--> APPROVED_LEVEL_2
          --complete--> COMPLETED

    approve1 jumps straight to APPROVED_LEVEL_2 when the order amount is
    within PO_AUTO_APPROVE_LIMIT or the approver is a project director
    holding the level 2 permission.

    suspend (any state but COMPLETED) -> SUSPENDED
    unsuspend -> status derived from the approval flags

    Create, update, delete, suspend and unsuspend refresh the site budget
    consumption of the order's items.

ERROR CODES:
    PO-001: Purchase order / site / vendor not found
    PO-002: Invalid order lines
    PO-003: Site code missing, cannot number the order
    PO-004: Approver not allowed (creator or same approver)
    PO-005: Action not allowed from the current status
    PO-006: Only draft orders can be edited or deleted

============================================================================
"""

from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence
import logging
import uuid

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.auth.access_control import (
    PERMISSIONS,
    ROLES,
    AuthenticatedUser,
    assigned_site_ids,
    require_permission,
)
from app.database.models import PurchaseOrder, PurchaseOrderDetail, Site, Vendor, utcnow
from app.logic.approval_state_machine import (
    PURCHASE_ORDER_WORKFLOW,
    PurchaseOrderStatus,
    restore_purchase_order_status,
)
from app.logic.decimal_gateway import ZERO, to_money, to_qty
from app.logic.numbering import (
    financial_year_label,
    format_purchase_order_no,
    purchase_order_prefix,
)
from app.logic.po_math import LineAmounts, calculate_line, order_totals
from app.observability.metrics import record_approval_action
from services.erp_config import get_erp_config
from services.erp_errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from services.site_budget_service import enforce_site_budget, refresh_site_budget_consumption

logger = logging.getLogger(__name__)


class PurchaseOrderErrorCode:
    NOT_FOUND = "PO-001"
    INVALID_LINES = "PO-002"
    SITE_CODE_MISSING = "PO-003"
    APPROVER_NOT_ALLOWED = "PO-004"
    INVALID_TRANSITION = "PO-005"
    NOT_EDITABLE = "PO-006"


PO_ACTIONS = ("approve1", "approve2", "complete", "suspend", "unsuspend")

_ACTION_PERMISSIONS = {
    "approve1": (PERMISSIONS.APPROVE_PURCHASE_ORDERS_L1, "Level 1 approval permission required"),
    "approve2": (PERMISSIONS.APPROVE_PURCHASE_ORDERS_L2, "Level 2 approval permission required"),
    "complete": (PERMISSIONS.COMPLETE_PURCHASE_ORDERS, "Complete permission required"),
    "suspend": (PERMISSIONS.SUSPEND_PURCHASE_ORDERS, "Suspend permission required"),
    "unsuspend": (PERMISSIONS.SUSPEND_PURCHASE_ORDERS, "Suspend permission required"),
}


# =============================================================================
# Numbering
# =============================================================================

def generate_purchase_order_no(db: Session, site: Site, today: Optional[date] = None) -> str:
    """'{COMPANY}/{FY}/{site_code}/{seq:05d}', sequence per prefix."""
    if not site.site_code:
        raise ValidationError("SITE_CODE_MISSING", PurchaseOrderErrorCode.SITE_CODE_MISSING)
    config = get_erp_config(validate=False)
    prefix = purchase_order_prefix(
        config.company_code, financial_year_label(today or date.today()), site.site_code
    )
    last = db.execute(
        select(PurchaseOrder.purchase_order_no)
        .where(PurchaseOrder.purchase_order_no.like(f"{prefix}%"))
        .order_by(PurchaseOrder.purchase_order_no.desc())
        .limit(1)
    ).scalar_one_or_none()
    return format_purchase_order_no(prefix, last)


# =============================================================================
# Lines
# =============================================================================

def _calculate_lines(lines: Sequence[Mapping[str, Any]]) -> List[tuple]:
    if not lines:
        raise ValidationError("At least one order line is required", PurchaseOrderErrorCode.INVALID_LINES)
    calculated = []
    for idx, line in enumerate(lines, start=1):
        item_id = int(line.get("item_id") or 0)
        try:
            amounts = calculate_line(
                line.get("qty"),
                line.get("rate"),
                line.get("discount_percent"),
                line.get("cgst_percent"),
                line.get("sgst_percent"),
                line.get("igst_percent"),
            )
        except ValueError as e:
            raise ValidationError(f"Row {idx}: {e}", PurchaseOrderErrorCode.INVALID_LINES)
        if item_id <= 0 or amounts.qty <= ZERO or amounts.rate < ZERO:
            raise ValidationError(
                f"Row {idx}: item and a positive qty are required",
                PurchaseOrderErrorCode.INVALID_LINES,
            )
        calculated.append((item_id, line.get("remark"), amounts))
    return calculated


def _detail(serial_no: int, item_id: int, remark: Optional[str], a: LineAmounts) -> PurchaseOrderDetail:
    return PurchaseOrderDetail(
        serial_no=serial_no,
        item_id=item_id,
        remark=remark,
        qty=a.qty,
        rate=a.rate,
        discount_percent=a.discount_percent,
        disc_amount=a.disc_amount,
        taxable_amount=a.taxable_amount,
        cgst_percent=a.cgst_percent,
        cgst_amt=a.cgst_amt,
        sgst_percent=a.sgst_percent,
        sgst_amt=a.sgst_amt,
        igst_percent=a.igst_percent,
        igst_amt=a.igst_amt,
        amount=a.amount,
        received_qty=ZERO,
    )


def _apply_totals(po: PurchaseOrder, amounts: Sequence[LineAmounts]) -> None:
    totals = order_totals(amounts)
    po.amount = totals.amount
    po.total_cgst_amount = totals.total_cgst_amount
    po.total_sgst_amount = totals.total_sgst_amount
    po.total_igst_amount = totals.total_igst_amount
    po.amount_in_words = totals.amount_in_words


# =============================================================================
# CRUD
# =============================================================================

def get_purchase_order(db: Session, purchase_order_id: int) -> PurchaseOrder:
    po = db.get(PurchaseOrder, purchase_order_id)
    if po is None:
        raise NotFoundError("Purchase order not found", PurchaseOrderErrorCode.NOT_FOUND)
    return po


def create_purchase_order(
    db: Session,
    site_id: int,
    vendor_id: int,
    purchase_order_date: date,
    lines: Sequence[Mapping[str, Any]],
    boq_id: Optional[int] = None,
    indent_id: Optional[int] = None,
    delivery_date: Optional[date] = None,
    remarks: Optional[str] = None,
    user: Optional[AuthenticatedUser] = None,
) -> PurchaseOrder:
    site = db.get(Site, site_id)
    if site is None:
        raise NotFoundError("Site not found", PurchaseOrderErrorCode.NOT_FOUND)
    if db.get(Vendor, vendor_id) is None:
        raise NotFoundError("Vendor not found", PurchaseOrderErrorCode.NOT_FOUND)

    calculated = _calculate_lines(lines)
    enforce_site_budget(db, site_id, boq_id, [(item_id, a.qty) for item_id, _r, a in calculated])

    po = PurchaseOrder(
        purchase_order_no=generate_purchase_order_no(db, site),
        purchase_order_date=purchase_order_date,
        delivery_date=delivery_date,
        site_id=site_id,
        boq_id=boq_id,
        vendor_id=vendor_id,
        indent_id=indent_id,
        remarks=remarks,
        status=PurchaseOrderStatus.DRAFT.value,
        created_by_id=user.id if user else None,
        details=[_detail(n, item_id, remark, a) for n, (item_id, remark, a) in enumerate(calculated, start=1)],
    )
    _apply_totals(po, [a for _i, _r, a in calculated])
    db.add(po)
    db.flush()

    refresh_site_budget_consumption(db, site_id, [item_id for item_id, _r, _a in calculated])
    db.commit()
    db.refresh(po)
    logger.info(
        f"[PURCHASE-ORDER] Created | id={po.id} | no={po.purchase_order_no} | site_id={site_id} | "
        f"amount={po.amount} | lines={len(calculated)}"
    )
    return po


def update_purchase_order(
    db: Session,
    purchase_order_id: int,
    lines: Sequence[Mapping[str, Any]],
    changes: Optional[Mapping[str, Any]] = None,
) -> PurchaseOrder:
    """Replace the lines of a draft order; header fields in changes are applied as given."""
    po = get_purchase_order(db, purchase_order_id)
    if po.status != PurchaseOrderStatus.DRAFT.value or po.is_suspended:
        raise InvalidTransitionError("Only draft purchase orders can be edited", PurchaseOrderErrorCode.NOT_EDITABLE)

    changes = changes or {}
    boq_id = changes.get("boq_id", po.boq_id)
    calculated = _calculate_lines(lines)
    enforce_site_budget(
        db, po.site_id, boq_id, [(item_id, a.qty) for item_id, _r, a in calculated],
        exclude_purchase_order_id=po.id,
    )

    old_items = {d.item_id for d in po.details}
    for field_name in ("vendor_id", "purchase_order_date", "delivery_date", "remarks", "indent_id"):
        if field_name in changes:
            setattr(po, field_name, changes[field_name])
    po.boq_id = boq_id

    po.details.clear()
    db.flush()
    po.details.extend(
        _detail(n, item_id, remark, a) for n, (item_id, remark, a) in enumerate(calculated, start=1)
    )
    _apply_totals(po, [a for _i, _r, a in calculated])
    db.flush()

    refresh_site_budget_consumption(db, po.site_id, old_items | {i for i, _r, _a in calculated})
    db.commit()
    db.refresh(po)
    return po


def delete_purchase_order(db: Session, purchase_order_id: int) -> None:
    """Delete a draft order that has received nothing; its items' budget consumption is refreshed."""
    po = get_purchase_order(db, purchase_order_id)
    if po.status != PurchaseOrderStatus.DRAFT.value or po.is_suspended or po.is_complete:
        raise InvalidTransitionError(
            "Only draft purchase orders can be deleted", PurchaseOrderErrorCode.NOT_EDITABLE
        )
    if any(d.received_qty and d.received_qty > ZERO for d in po.details):
        raise InvalidTransitionError(
            "Purchase order has received material and cannot be deleted",
            PurchaseOrderErrorCode.NOT_EDITABLE,
        )

    site_id, number = po.site_id, po.purchase_order_no
    item_ids = {d.item_id for d in po.details}
    db.delete(po)
    db.flush()
    refresh_site_budget_consumption(db, site_id, item_ids)
    db.commit()
    logger.info(f"[PURCHASE-ORDER] Deleted | id={purchase_order_id} | no={number}")


# =============================================================================
# Status actions
# =============================================================================

def apply_purchase_order_action(
    db: Session,
    purchase_order_id: int,
    action: str,
    user: AuthenticatedUser,
    correlation_id: Optional[str] = None,
) -> PurchaseOrder:
    """
    Run one status action on a purchase order.

    Raises:
        ValidationError: unknown action
        PermissionDeniedError: permission missing or approver not allowed
        InvalidTransitionError: action not allowed from the current status
    """
    correlation_id = correlation_id or str(uuid.uuid4())
    if action not in PO_ACTIONS:
        raise ValidationError(f"Unknown action: {action}", PurchaseOrderErrorCode.INVALID_TRANSITION)

    po = get_purchase_order(db, purchase_order_id)
    permission, message = _ACTION_PERMISSIONS[action]
    try:
        require_permission(user, permission, message)
    except PermissionDeniedError:
        record_approval_action("purchase_order", action, "forbidden")
        raise

    allowed, error_code = PURCHASE_ORDER_WORKFLOW.validate_action(po.status, action, correlation_id)
    if not allowed:
        record_approval_action("purchase_order", action, error_code)
        raise InvalidTransitionError(
            f"Cannot {action} a purchase order in status {po.status}",
            PurchaseOrderErrorCode.INVALID_TRANSITION,
        )

    now = utcnow()
    if action == "approve1":
        if po.created_by_id == user.id:
            record_approval_action("purchase_order", action, PurchaseOrderErrorCode.APPROVER_NOT_ALLOWED)
            raise PermissionDeniedError(
                "Creator cannot approve the purchase order", PurchaseOrderErrorCode.APPROVER_NOT_ALLOWED
            )
        po.is_approved1 = True
        po.approved1_by_id = user.id
        po.approved1_at = now
        po.status = PurchaseOrderStatus.APPROVED_LEVEL_1.value

        limit = get_erp_config(validate=False).po_auto_approve_limit
        director = user.role == ROLES.PROJECT_DIRECTOR and user.has(PERMISSIONS.APPROVE_PURCHASE_ORDERS_L2)
        if to_money(po.amount) <= limit or director:
            po.is_approved2 = True
            po.approved2_by_id = user.id
            po.approved2_at = now
            po.status = PurchaseOrderStatus.APPROVED_LEVEL_2.value
            logger.info(
                f"[PURCHASE-ORDER] Auto level 2 approval | id={po.id} | amount={po.amount} | "
                f"limit={limit} | director={director} | correlation_id={correlation_id}"
            )

    elif action == "approve2":
        if user.id in (po.created_by_id, po.approved1_by_id):
            record_approval_action("purchase_order", action, PurchaseOrderErrorCode.APPROVER_NOT_ALLOWED)
            raise PermissionDeniedError(
                "Level 2 approver must differ from the creator and the level 1 approver",
                PurchaseOrderErrorCode.APPROVER_NOT_ALLOWED,
            )
        po.is_approved2 = True
        po.approved2_by_id = user.id
        po.approved2_at = now
        po.status = PurchaseOrderStatus.APPROVED_LEVEL_2.value

    elif action == "complete":
        po.is_complete = True
        po.completed_by_id = user.id
        po.completed_at = now
        po.status = PurchaseOrderStatus.COMPLETED.value

    elif action == "suspend":
        po.is_suspended = True
        po.suspended_by_id = user.id
        po.suspended_at = now
        po.status = PurchaseOrderStatus.SUSPENDED.value

    else:
        po.is_suspended = False
        po.suspended_by_id = None
        po.suspended_at = None
        po.status = restore_purchase_order_status(po.is_complete, po.is_approved2, po.is_approved1)

    db.flush()
    if action in ("suspend", "unsuspend"):
        refresh_site_budget_consumption(db, po.site_id, [d.item_id for d in po.details])
    db.commit()
    db.refresh(po)

    record_approval_action("purchase_order", action, "applied")
    logger.info(
        f"[PURCHASE-ORDER] Action applied | id={po.id} | action={action} | status={po.status} | "
        f"user_id={user.id} | correlation_id={correlation_id}"
    )
    return po


# =============================================================================
# Listing
# =============================================================================

PURCHASE_ORDER_SORT_COLUMNS = {
    "purchaseOrderNo": PurchaseOrder.purchase_order_no,
    "purchaseOrderDate": PurchaseOrder.purchase_order_date,
    "amount": PurchaseOrder.amount,
    "createdAt": PurchaseOrder.created_at,
}
PURCHASE_ORDER_DEFAULT_SORT = "createdAt"


def purchase_order_list_query(
    db: Session,
    user: AuthenticatedUser,
    search: str = "",
    site_id: Optional[int] = None,
    status: Optional[str] = None,
):
    stmt = select(PurchaseOrder).join(Vendor, PurchaseOrder.vendor_id == Vendor.id)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(PurchaseOrder.purchase_order_no.ilike(pattern), Vendor.vendor_name.ilike(pattern)))
    if site_id:
        stmt = stmt.where(PurchaseOrder.site_id == site_id)
    if status:
        stmt = stmt.where(PurchaseOrder.status == status)
    visible = assigned_site_ids(db, user)
    if visible is not None:
        if not visible:
            return None
        stmt = stmt.where(PurchaseOrder.site_id.in_(visible))
    return stmt


def serialize_purchase_order(po: PurchaseOrder) -> Dict[str, Any]:
    return {
        "id": po.id,
        "purchaseOrderNo": po.purchase_order_no,
        "purchaseOrderDate": po.purchase_order_date.isoformat(),
        "deliveryDate": po.delivery_date.isoformat() if po.delivery_date else None,
        "siteId": po.site_id,
        "site": po.site.site if po.site else None,
        "boqId": po.boq_id,
        "vendorId": po.vendor_id,
        "vendor": po.vendor.vendor_name if po.vendor else None,
        "indentId": po.indent_id,
        "amount": str(to_money(po.amount)),
        "totalCgstAmount": str(to_money(po.total_cgst_amount)),
        "totalSgstAmount": str(to_money(po.total_sgst_amount)),
        "totalIgstAmount": str(to_money(po.total_igst_amount)),
        "amountInWords": po.amount_in_words,
        "status": po.status,
        "isApproved1": po.is_approved1,
        "isApproved2": po.is_approved2,
        "isComplete": po.is_complete,
        "isSuspended": po.is_suspended,
        "remarks": po.remarks,
        "details": [
            {
                "id": d.id,
                "serialNo": d.serial_no,
                "itemId": d.item_id,
                "item": d.item.item if d.item else None,
                "remark": d.remark,
                "qty": str(to_qty(d.qty)),
                "rate": str(to_money(d.rate)),
                "discountPercent": str(d.discount_percent),
                "discAmount": str(to_money(d.disc_amount)),
                "taxableAmount": str(to_money(d.taxable_amount)),
                "cgstPercent": str(d.cgst_percent),
                "cgstAmt": str(to_money(d.cgst_amt)),
                "sgstPercent": str(d.sgst_percent),
                "sgstAmt": str(to_money(d.sgst_amt)),
                "igstPercent": str(d.igst_percent),
                "igstAmt": str(to_money(d.igst_amt)),
                "amount": str(to_money(d.amount)),
                "receivedQty": str(to_qty(d.received_qty)),
            }
            for d in po.details
        ],
    }
