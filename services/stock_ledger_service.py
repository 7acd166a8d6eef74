"""
============================================================================
SiteLedger - Stock Ledger Service
============================================================================

Reliability Level: STANDARD
Decimal Integrity: Quantities and unit rates 4 dp, values 2 dp
Traceability: Every stock movement writes a stock_ledgers row tagged with
              its document type and source document id

SITE ITEM POSITION:
    Each (site, item) keeps opening stock/rate/value and a closing
    position (stock, value, unit rate) updated incrementally by documents:

    INWARD DELIVERY CHALLAN  stock += qty, value += amount, rate = value/stock
    DAILY CONSUMPTION        stock = max(0, stock - qty), value = stock x rate
    STOCK ADJUSTMENT         receive first, then issue at the line rate

    update_closing_stock() rebuilds every closing position from the opening
    figures plus the ledger sums.

ERROR CODES:
    STK-001: Document / site item not found
    STK-002: Line validation failed
    STK-003: Receiving qty exceeds pending purchase order qty
    STK-004: Purchase order line does not belong to the purchase order
    STK-005: Document carries no movement

============================================================================
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging
import time
import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.auth.access_control import AuthenticatedUser, assigned_site_ids
from app.database.models import (
    DailyConsumption,
    DailyConsumptionDetail,
    InwardDeliveryChallan,
    InwardDeliveryChallanDetail,
    Item,
    PurchaseOrder,
    PurchaseOrderDetail,
    Site,
    SiteItem,
    StockAdjustment,
    StockAdjustmentDetail,
    StockLedger,
)
from app.logic.decimal_gateway import ZERO, safe_divide, to_money, to_qty, to_rate
from app.logic.ledger_math import (
    StockPosition,
    closing_position,
    issue_at_value,
    issue_from_stock,
    line_amount,
    receive_into_stock,
    split_totals,
    sum_money,
)
from app.logic.numbering import format_paired_serial_no
from app.observability.metrics import record_ledger_recompute
from services.erp_errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class StockErrorCode:
    NOT_FOUND = "STK-001"
    INVALID_LINES = "STK-002"
    RECEIVING_EXCEEDS_PENDING = "STK-003"
    PO_LINE_MISMATCH = "STK-004"
    NO_MOVEMENT = "STK-005"


DOC_INWARD_CHALLAN = "INWARD DELIVERY CHALLAN"
DOC_DAILY_CONSUMPTION = "DAILY CONSUMPTION"
DOC_STOCK_ADJUSTMENT = "STOCK ADJUSTMENT"

LOG_CLOSING_STOCK_UPDATE = "CLOSING_STOCK_UPDATE"
LOG_OPENING_STOCK = "OPENING STOCK"


# =============================================================================
# Site item helpers
# =============================================================================

def get_site_item(db: Session, site_id: int, item_id: int) -> Optional[SiteItem]:
    return db.execute(
        select(SiteItem).where(SiteItem.site_id == site_id, SiteItem.item_id == item_id)
    ).scalar_one_or_none()


def _position(site_item: Optional[SiteItem]) -> Optional[StockPosition]:
    if site_item is None:
        return None
    return StockPosition(
        to_qty(site_item.closing_stock),
        to_money(site_item.closing_value),
        to_rate(site_item.unit_rate),
    )


def _store_position(
    db: Session,
    site_item: Optional[SiteItem],
    site_id: int,
    item_id: int,
    position: StockPosition,
    log: str,
) -> SiteItem:
    if site_item is None:
        site_item = SiteItem(site_id=site_id, item_id=item_id)
        db.add(site_item)
    site_item.closing_stock = position.stock
    site_item.closing_value = to_money(position.value)
    site_item.unit_rate = position.unit_rate
    site_item.log = log
    return site_item


def _latest_numbers(db: Session, column) -> List[str]:
    return db.execute(
        select(column).where(column.like("%-%")).order_by(column.desc()).limit(50)
    ).scalars().all()


def _ledger_row(site_id: int, item_id: int, day: date, document_type: str, **values) -> StockLedger:
    return StockLedger(
        site_id=site_id,
        item_id=item_id,
        transaction_date=day,
        document_type=document_type,
        **values,
    )


# =============================================================================
# Inward delivery challan
# =============================================================================

def record_inward_challan(
    db: Session,
    purchase_order_id: int,
    challan_no: str,
    challan_date: date,
    inward_challan_date: date,
    lines: Sequence[Mapping[str, Any]],
    remarks: Optional[str] = None,
    inward_challan_no: Optional[str] = None,
    user: Optional[AuthenticatedUser] = None,
) -> InwardDeliveryChallan:
    """
    Receive material against purchase order lines.

    lines: [{"po_details_id", "receiving_qty"}]. The receiving rate is the
    PO line amount / qty (tax inclusive, 4 dp).
    """
    po = db.get(PurchaseOrder, purchase_order_id)
    if po is None:
        raise NotFoundError("Purchase order not found", StockErrorCode.NOT_FOUND)

    po_lines = {d.id: d for d in po.details}
    errors: List[str] = []
    receipts: List[Tuple[PurchaseOrderDetail, Decimal, Decimal]] = []
    for idx, line in enumerate(lines, start=1):
        po_line = po_lines.get(int(line.get("po_details_id") or 0))
        if po_line is None:
            raise ValidationError(
                f"Row {idx}: purchase order line does not belong to purchase order {po.purchase_order_no}",
                StockErrorCode.PO_LINE_MISMATCH,
            )
        qty = to_qty(line.get("receiving_qty") or 0)
        if qty < ZERO:
            errors.append(f"Row {idx}: Receiving qty cannot be negative")
            continue
        if qty == ZERO:
            continue
        pending = to_qty(to_qty(po_line.qty) - to_qty(po_line.received_qty))
        if qty > pending:
            raise ValidationError(
                f"Item {po_line.item_id}: Receiving qty ({qty}) exceeds pending qty ({pending})",
                StockErrorCode.RECEIVING_EXCEEDS_PENDING,
            )
        rate = safe_divide(po_line.amount, po_line.qty)
        receipts.append((po_line, qty, rate))

    if errors:
        raise ValidationError("; ".join(errors), StockErrorCode.INVALID_LINES, extra={"errors": errors})
    if not receipts:
        raise ValidationError("At least one line must receive a quantity", StockErrorCode.NO_MOVEMENT)

    challan = InwardDeliveryChallan(
        inward_challan_no=(inward_challan_no or "").strip()
        or format_paired_serial_no(_latest_numbers(db, InwardDeliveryChallan.inward_challan_no)),
        inward_challan_date=inward_challan_date,
        challan_no=challan_no,
        challan_date=challan_date,
        site_id=po.site_id,
        purchase_order_id=po.id,
        vendor_id=po.vendor_id,
        remarks=remarks,
        created_by_id=user.id if user else None,
    )
    db.add(challan)
    db.flush()

    amounts = []
    for po_line, qty, rate in receipts:
        amount = to_money(qty * rate)
        amounts.append(amount)
        challan.details.append(
            InwardDeliveryChallanDetail(
                po_details_id=po_line.id,
                item_id=po_line.item_id,
                receiving_qty=qty,
                rate=to_money(rate),
                amount=amount,
            )
        )
        po_line.received_qty = to_qty(to_qty(po_line.received_qty) + qty)
        db.add(_ledger_row(
            po.site_id, po_line.item_id, inward_challan_date, DOC_INWARD_CHALLAN,
            received_qty=qty, issued_qty=ZERO, unit_rate=rate,
            inward_delivery_challan_id=challan.id,
        ))

        site_item = get_site_item(db, po.site_id, po_line.item_id)
        position = receive_into_stock(_position(site_item), qty, amount)
        _store_position(db, site_item, po.site_id, po_line.item_id, position,
                        "IDC Old" if site_item else "IDC New")
        db.flush()

    challan.total_amount = sum_money(amounts)
    db.commit()
    db.refresh(challan)
    logger.info(
        f"[STOCK-LEDGER] Inward challan recorded | id={challan.id} | "
        f"no={challan.inward_challan_no} | purchase_order_id={po.id} | "
        f"lines={len(receipts)} | total={challan.total_amount}"
    )
    return challan


# =============================================================================
# Daily consumption
# =============================================================================

def record_daily_consumption(
    db: Session,
    site_id: int,
    consumption_date: date,
    lines: Sequence[Mapping[str, Any]],
    daily_consumption_no: Optional[str] = None,
    user: Optional[AuthenticatedUser] = None,
) -> DailyConsumption:
    """
    Issue material consumed on site.

    All row errors are collected and reported together; nothing is written
    unless every row passes.
    """
    if not lines:
        raise ValidationError("At least one consumption line is required", StockErrorCode.NO_MOVEMENT)

    requested: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    parsed: List[Tuple[int, Decimal]] = []
    for line in lines:
        item_id = int(line.get("item_id") or 0)
        qty = to_qty(line.get("qty") or 0)
        parsed.append((item_id, qty))
        if qty > ZERO:
            requested[item_id] = to_qty(requested[item_id] + qty)

    site_items = {
        si.item_id: si
        for si in db.execute(
            select(SiteItem).where(SiteItem.site_id == site_id, SiteItem.item_id.in_(list(requested) or [0]))
        ).scalars().all()
    }

    errors: List[str] = []
    reported = set()
    for idx, (item_id, qty) in enumerate(parsed, start=1):
        if qty <= ZERO:
            errors.append(f"Row {idx}: Qty must be greater than 0")
            continue
        closing = to_qty(site_items[item_id].closing_stock) if item_id in site_items else ZERO
        if requested[item_id] > closing and item_id not in reported:
            reported.add(item_id)
            errors.append(f"Item {item_id}: Qty cannot exceed closing ({closing})")
    if errors:
        logger.warning(f"[{StockErrorCode.INVALID_LINES}] Daily consumption rejected | site_id={site_id} | errors={errors}")
        raise ValidationError("; ".join(errors), StockErrorCode.INVALID_LINES, extra={"errors": errors})

    consumption = DailyConsumption(
        daily_consumption_no=(daily_consumption_no or "").strip()
        or format_paired_serial_no(_latest_numbers(db, DailyConsumption.daily_consumption_no)),
        daily_consumption_date=consumption_date,
        site_id=site_id,
        created_by_id=user.id if user else None,
    )
    db.add(consumption)
    db.flush()

    amounts = []
    for item_id, qty in parsed:
        site_item = site_items[item_id]
        rate = to_money(site_item.unit_rate)
        amount = line_amount(qty, rate)
        amounts.append(amount)
        consumption.details.append(
            DailyConsumptionDetail(item_id=item_id, qty=qty, rate=rate, amount=amount)
        )
        db.add(_ledger_row(
            site_id, item_id, consumption_date, DOC_DAILY_CONSUMPTION,
            received_qty=ZERO, issued_qty=qty, unit_rate=rate,
            daily_consumption_id=consumption.id,
        ))
        position = issue_from_stock(_position(site_item), qty, rate)
        _store_position(db, site_item, site_id, item_id, position, DOC_DAILY_CONSUMPTION)

    consumption.total_amount = sum_money(amounts)
    db.commit()
    db.refresh(consumption)
    logger.info(
        f"[STOCK-LEDGER] Daily consumption recorded | id={consumption.id} | "
        f"no={consumption.daily_consumption_no} | site_id={site_id} | total={consumption.total_amount}"
    )
    return consumption


# =============================================================================
# Stock adjustment
# =============================================================================

def record_stock_adjustment(
    db: Session,
    site_id: int,
    adjustment_date: date,
    lines: Sequence[Mapping[str, Any]],
    user: Optional[AuthenticatedUser] = None,
) -> StockAdjustment:
    """
    Correct site stock with received and/or issued quantities at a given rate.

    The received part is applied first. On a site without any ledger rows
    yet, a receipt replaces the current position instead of adding to it.
    """
    if not lines:
        raise ValidationError("At least one adjustment line is required", StockErrorCode.NO_MOVEMENT)

    site_has_ledger = db.execute(
        select(func.count(StockLedger.id)).where(StockLedger.site_id == site_id)
    ).scalar_one() > 0

    adjustment = StockAdjustment(
        date=adjustment_date,
        site_id=site_id,
        created_by_id=user.id if user else None,
    )
    db.add(adjustment)
    db.flush()

    for idx, line in enumerate(lines, start=1):
        item_id = int(line.get("item_id") or 0)
        received = to_qty(line.get("received_qty") or 0)
        issued = to_qty(line.get("issued_qty") or 0)
        rate = to_rate(line.get("rate") or 0)
        if item_id <= 0 or received < ZERO or issued < ZERO or rate < ZERO:
            raise ValidationError(f"Row {idx}: invalid item, quantity or rate", StockErrorCode.INVALID_LINES)

        received_amount = line_amount(received, rate)
        issued_amount = line_amount(issued, rate)
        adjustment.details.append(
            StockAdjustmentDetail(
                item_id=item_id,
                received_qty=received,
                issued_qty=issued,
                rate=to_money(rate),
                amount=to_money(received_amount - issued_amount),
                remarks=line.get("remarks"),
            )
        )
        if received > ZERO:
            db.add(_ledger_row(
                site_id, item_id, adjustment_date, DOC_STOCK_ADJUSTMENT,
                received_qty=received, issued_qty=ZERO, unit_rate=rate,
                stock_adjustment_id=adjustment.id,
            ))
        if issued > ZERO:
            db.add(_ledger_row(
                site_id, item_id, adjustment_date, DOC_STOCK_ADJUSTMENT,
                received_qty=ZERO, issued_qty=issued, unit_rate=rate,
                stock_adjustment_id=adjustment.id,
            ))

        site_item = get_site_item(db, site_id, item_id)
        position = _position(site_item) or StockPosition(ZERO, ZERO, ZERO)
        if received > ZERO:
            base = position if site_has_ledger else None
            position = receive_into_stock(base, received, received_amount)
        if issued > ZERO:
            position = issue_at_value(position, issued, issued_amount)

        if issued > ZERO and received == ZERO:
            log = "SA Issue Update" if site_item else "SA Issue Init"
        else:
            log = "SA Update" if site_item else "SA Init"
        _store_position(db, site_item, site_id, item_id, position, log)
        db.flush()

    db.commit()
    db.refresh(adjustment)
    logger.info(
        f"[STOCK-LEDGER] Stock adjustment recorded | id={adjustment.id} | site_id={site_id} | "
        f"lines={len(lines)} | site_had_ledger={site_has_ledger}"
    )
    return adjustment


# =============================================================================
# Opening stock
# =============================================================================

def record_opening_stock(
    db: Session,
    site_id: int,
    lines: Sequence[Mapping[str, Any]],
) -> List[SiteItem]:
    """Set opening stock/rate/value per item and reset the closing position to it."""
    site_items = []
    for idx, line in enumerate(lines, start=1):
        item_id = int(line.get("item_id") or 0)
        qty = to_qty(line.get("opening_stock") or 0)
        rate = to_rate(line.get("opening_rate") or 0)
        if item_id <= 0 or qty < ZERO or rate < ZERO:
            raise ValidationError(f"Row {idx}: invalid item, opening stock or rate", StockErrorCode.INVALID_LINES)
        value = line_amount(qty, rate)

        site_item = get_site_item(db, site_id, item_id)
        if site_item is None:
            site_item = SiteItem(site_id=site_id, item_id=item_id)
            db.add(site_item)
        site_item.opening_stock = qty
        site_item.opening_rate = rate
        site_item.opening_value = value
        site_item.closing_stock = qty
        site_item.closing_value = value
        site_item.unit_rate = rate
        site_item.log = LOG_OPENING_STOCK
        site_items.append(site_item)

    db.commit()
    logger.info(f"[STOCK-LEDGER] Opening stock saved | site_id={site_id} | items={len(site_items)}")
    return site_items


# =============================================================================
# Closing stock aggregation
# =============================================================================

def update_closing_stock(
    db: Session,
    site_id: Optional[int] = None,
    correlation_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Rebuild closing stock of every site item from opening figures and the
    stock ledger. Flushes only; callers commit.

    Returns:
        {"updated": n, "message": "Closing stock updated for n items"}
    """
    correlation_id = correlation_id or str(uuid.uuid4())
    started = time.perf_counter()

    stmt = select(SiteItem).order_by(SiteItem.id)
    ledger_stmt = select(
        StockLedger.site_id, StockLedger.item_id,
        StockLedger.received_qty, StockLedger.issued_qty, StockLedger.unit_rate,
    )
    if site_id is not None:
        stmt = stmt.where(SiteItem.site_id == site_id)
        ledger_stmt = ledger_stmt.where(StockLedger.site_id == site_id)

    rows_by_key: Dict[Tuple[int, int], List[Tuple[Any, Any, Any]]] = defaultdict(list)
    for row_site, row_item, received, issued, rate in db.execute(ledger_stmt).all():
        rows_by_key[(row_site, row_item)].append((received, issued, rate))

    updated = 0
    for site_item in db.execute(stmt).scalars().all():
        totals = split_totals(rows_by_key.get((site_item.site_id, site_item.item_id), []))
        position = closing_position(
            site_item.opening_stock, site_item.opening_value, site_item.opening_rate, totals
        )
        site_item.closing_stock = position.stock
        site_item.closing_value = position.value
        site_item.unit_rate = position.unit_rate
        site_item.log = LOG_CLOSING_STOCK_UPDATE
        updated += 1

    db.flush()
    record_ledger_recompute("stock", updated, time.perf_counter() - started, correlation_id)
    logger.info(
        f"[STOCK-LEDGER] Closing stock rebuilt | site_id={site_id} | items={updated} | "
        f"correlation_id={correlation_id}"
    )
    return {"updated": updated, "message": f"Closing stock updated for {updated} items"}


def closing_stock_by_item(db: Session, site_id: int, item_ids: Iterable[int]) -> Dict[int, Decimal]:
    """Σ received - Σ issued per item from the site's ledger rows (4 dp)."""
    ids = sorted({int(i) for i in item_ids if i and int(i) > 0})
    result = {item_id: ZERO for item_id in ids}
    if not ids:
        return result
    rows = db.execute(
        select(
            StockLedger.item_id,
            func.coalesce(func.sum(StockLedger.received_qty), 0),
            func.coalesce(func.sum(StockLedger.issued_qty), 0),
        )
        .where(StockLedger.site_id == site_id, StockLedger.item_id.in_(ids))
        .group_by(StockLedger.item_id)
    ).all()
    for item_id, received, issued in rows:
        result[int(item_id)] = to_qty(to_qty(received) - to_qty(issued))
    return result


# =============================================================================
# Stock views
# =============================================================================

def serialize_site_item(site_item: SiteItem) -> Dict[str, Any]:
    item = site_item.item
    return {
        "id": site_item.id,
        "siteId": site_item.site_id,
        "itemId": site_item.item_id,
        "itemCode": item.item_code if item else None,
        "item": item.item if item else None,
        "unit": item.unit.unit_name if item and item.unit else None,
        "openingStock": str(to_qty(site_item.opening_stock)),
        "openingRate": str(to_rate(site_item.opening_rate)),
        "openingValue": str(to_money(site_item.opening_value)),
        "closingStock": str(to_qty(site_item.closing_stock)),
        "closingValue": str(to_money(site_item.closing_value)),
        "unitRate": str(to_rate(site_item.unit_rate)),
        "log": site_item.log,
    }


def site_stock(db: Session, site_id: int, search: str = "") -> List[Dict[str, Any]]:
    stmt = (
        select(SiteItem)
        .join(Item, SiteItem.item_id == Item.id)
        .where(SiteItem.site_id == site_id)
        .order_by(Item.item.asc())
    )
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Item.item.ilike(pattern), Item.item_code.ilike(pattern)))
    return [serialize_site_item(si) for si in db.execute(stmt).scalars().all()]


def overall_stock(db: Session, site_ids: Optional[Sequence[int]] = None) -> List[Dict[str, Any]]:
    """Closing stock and value per item summed over sites; rate = value / stock."""
    stmt = (
        select(
            Item.id,
            Item.item_code,
            Item.item,
            func.coalesce(func.sum(SiteItem.closing_stock), 0),
            func.coalesce(func.sum(SiteItem.closing_value), 0),
        )
        .join(SiteItem, SiteItem.item_id == Item.id)
        .group_by(Item.id, Item.item_code, Item.item)
        .order_by(Item.item.asc())
    )
    if site_ids is not None:
        stmt = stmt.where(SiteItem.site_id.in_(list(site_ids) or [0]))
    rows = []
    for item_id, code, name, stock, value in db.execute(stmt).all():
        rows.append({
            "itemId": item_id,
            "itemCode": code,
            "item": name,
            "closingStock": str(to_qty(stock)),
            "closingValue": str(to_money(value)),
            "unitRate": str(safe_divide(value, stock)),
        })
    return rows


# =============================================================================
# Document listings
# =============================================================================

def _visible(db: Session, user: AuthenticatedUser, stmt, site_column, site_id: Optional[int]):
    if site_id:
        stmt = stmt.where(site_column == site_id)
    visible = assigned_site_ids(db, user)
    if visible is not None:
        if not visible:
            return None
        stmt = stmt.where(site_column.in_(visible))
    return stmt


INWARD_CHALLAN_SORT_COLUMNS = {
    "inwardChallanNo": InwardDeliveryChallan.inward_challan_no,
    "inwardChallanDate": InwardDeliveryChallan.inward_challan_date,
    "challanNo": InwardDeliveryChallan.challan_no,
    "createdAt": InwardDeliveryChallan.created_at,
}


def inward_challan_list_query(db: Session, user: AuthenticatedUser, search: str = "", site_id: Optional[int] = None):
    stmt = select(InwardDeliveryChallan)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            InwardDeliveryChallan.inward_challan_no.ilike(pattern),
            InwardDeliveryChallan.challan_no.ilike(pattern),
        ))
    return _visible(db, user, stmt, InwardDeliveryChallan.site_id, site_id)


def serialize_inward_challan(challan: InwardDeliveryChallan) -> Dict[str, Any]:
    return {
        "id": challan.id,
        "inwardChallanNo": challan.inward_challan_no,
        "inwardChallanDate": challan.inward_challan_date.isoformat(),
        "challanNo": challan.challan_no,
        "challanDate": challan.challan_date.isoformat(),
        "siteId": challan.site_id,
        "purchaseOrderId": challan.purchase_order_id,
        "vendorId": challan.vendor_id,
        "totalAmount": str(to_money(challan.total_amount)),
        "remarks": challan.remarks,
        "details": [
            {
                "id": d.id,
                "poDetailsId": d.po_details_id,
                "itemId": d.item_id,
                "receivingQty": str(to_qty(d.receiving_qty)),
                "rate": str(to_money(d.rate)),
                "amount": str(to_money(d.amount)),
            }
            for d in challan.details
        ],
    }


DAILY_CONSUMPTION_SORT_COLUMNS = {
    "dailyConsumptionNo": DailyConsumption.daily_consumption_no,
    "dailyConsumptionDate": DailyConsumption.daily_consumption_date,
    "createdAt": DailyConsumption.created_at,
}


def daily_consumption_list_query(db: Session, user: AuthenticatedUser, search: str = "", site_id: Optional[int] = None):
    stmt = select(DailyConsumption)
    if search:
        stmt = stmt.where(DailyConsumption.daily_consumption_no.ilike(f"%{search}%"))
    return _visible(db, user, stmt, DailyConsumption.site_id, site_id)


def serialize_daily_consumption(consumption: DailyConsumption) -> Dict[str, Any]:
    return {
        "id": consumption.id,
        "dailyConsumptionNo": consumption.daily_consumption_no,
        "dailyConsumptionDate": consumption.daily_consumption_date.isoformat(),
        "siteId": consumption.site_id,
        "totalAmount": str(to_money(consumption.total_amount)),
        "details": [
            {
                "id": d.id,
                "itemId": d.item_id,
                "qty": str(to_qty(d.qty)),
                "rate": str(to_money(d.rate)),
                "amount": str(to_money(d.amount)),
            }
            for d in consumption.details
        ],
    }


STOCK_ADJUSTMENT_SORT_COLUMNS = {
    "date": StockAdjustment.date,
    "createdAt": StockAdjustment.created_at,
}


def stock_adjustment_list_query(db: Session, user: AuthenticatedUser, search: str = "", site_id: Optional[int] = None):
    stmt = select(StockAdjustment).join(Site, StockAdjustment.site_id == Site.id)
    if search:
        stmt = stmt.where(Site.site.ilike(f"%{search}%"))
    return _visible(db, user, stmt, StockAdjustment.site_id, site_id)


def serialize_stock_adjustment(adjustment: StockAdjustment) -> Dict[str, Any]:
    return {
        "id": adjustment.id,
        "date": adjustment.date.isoformat(),
        "siteId": adjustment.site_id,
        "details": [
            {
                "id": d.id,
                "itemId": d.item_id,
                "receivedQty": str(to_qty(d.received_qty or 0)),
                "issuedQty": str(to_qty(d.issued_qty or 0)),
                "rate": str(to_money(d.rate)),
                "amount": str(to_money(d.amount)),
                "remarks": d.remarks,
            }
            for d in adjustment.details
        ],
    }


def get_document(db: Session, model, document_id: int):
    document = db.get(model, document_id)
    if document is None:
        raise NotFoundError(f"{model.__name__} not found", StockErrorCode.NOT_FOUND)
    return document
