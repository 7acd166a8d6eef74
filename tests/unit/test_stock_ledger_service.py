"""
Unit Tests for the Stock Ledger Service

Reliability Level: STANDARD

- Inward challans receive against pending purchase order quantity
- Daily consumption never exceeds closing stock
- Stock adjustments: receipts first, replace position on a fresh site
- update_closing_stock rebuilds positions from opening + ledger sums
"""

import os
import sys
from datetime import date
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from sqlalchemy import select

from app.database.models import StockLedger
from services.erp_errors import NotFoundError, ValidationError
from services.purchase_order_service import create_purchase_order
from services.stock_ledger_service import (
    DOC_DAILY_CONSUMPTION,
    DOC_INWARD_CHALLAN,
    LOG_CLOSING_STOCK_UPDATE,
    StockErrorCode,
    closing_stock_by_item,
    daily_consumption_list_query,
    get_site_item,
    inward_challan_list_query,
    overall_stock,
    record_daily_consumption,
    record_inward_challan,
    record_opening_stock,
    record_stock_adjustment,
    serialize_inward_challan,
    site_stock,
    update_closing_stock,
)

DAY = date(2025, 6, 10)


@pytest.fixture
def opening(db_session, seed):
    return record_opening_stock(db_session, seed.site_a.id, [
        {"item_id": seed.cement.id, "opening_stock": "100", "opening_rate": "400"},
    ])


@pytest.fixture
def po(db_session, seed):
    return create_purchase_order(
        db_session, seed.site_a.id, seed.vendor.id, date(2025, 6, 1),
        [{"item_id": seed.cement.id, "qty": 50, "rate": "420"}],
        user=seed.auth["purchase"],
    )


def _receive(db, po, qty, **kwargs):
    return record_inward_challan(
        db, po.id, "VCH-778", DAY, DAY,
        [{"po_details_id": po.details[0].id, "receiving_qty": qty}],
        **kwargs,
    )


# =============================================================================
# Opening stock
# =============================================================================

class TestOpeningStock:

    def test_opening_sets_closing_position(self, db_session, seed, opening) -> None:
        site_item = opening[0]
        assert site_item.opening_value == Decimal("40000.00")
        assert site_item.closing_stock == Decimal("100.0000")
        assert site_item.unit_rate == Decimal("400.0000")
        assert site_item.log == "OPENING STOCK"

    def test_opening_is_replaced_not_duplicated(self, db_session, seed, opening) -> None:
        record_opening_stock(db_session, seed.site_a.id, [
            {"item_id": seed.cement.id, "opening_stock": "80", "opening_rate": "410"},
        ])
        site_item = get_site_item(db_session, seed.site_a.id, seed.cement.id)
        assert site_item.opening_stock == Decimal("80.0000")
        assert site_item.closing_value == Decimal("32800.00")

    def test_invalid_opening_line(self, db_session, seed) -> None:
        with pytest.raises(ValidationError):
            record_opening_stock(db_session, seed.site_a.id, [{"item_id": seed.cement.id, "opening_stock": "-1"}])


# =============================================================================
# Inward delivery challans
# =============================================================================

class TestInwardChallan:

    def test_receipt_updates_stock_and_po(self, db_session, seed, opening, po) -> None:
        challan = _receive(db_session, po, 30)

        assert challan.inward_challan_no == "0001-0001"
        assert challan.total_amount == Decimal("12600.00")
        assert challan.details[0].rate == Decimal("420.00")

        db_session.refresh(po)
        assert po.details[0].received_qty == Decimal("30.0000")

        site_item = get_site_item(db_session, seed.site_a.id, seed.cement.id)
        assert site_item.closing_stock == Decimal("130.0000")
        assert site_item.closing_value == Decimal("52600.00")
        assert site_item.unit_rate == Decimal("404.6154")
        assert site_item.log == "IDC Old"

        ledger = db_session.execute(select(StockLedger)).scalars().one()
        assert ledger.document_type == DOC_INWARD_CHALLAN
        assert ledger.inward_delivery_challan_id == challan.id

    def test_rate_includes_tax(self, db_session, seed) -> None:
        taxed = create_purchase_order(
            db_session, seed.site_a.id, seed.vendor.id, date(2025, 6, 1),
            [{"item_id": seed.steel.id, "qty": 2, "rate": "50000", "cgst_percent": 9, "sgst_percent": 9}],
        )
        challan = _receive(db_session, taxed, 1)
        assert challan.total_amount == Decimal("59000.00")
        site_item = get_site_item(db_session, seed.site_a.id, seed.steel.id)
        assert site_item.log == "IDC New"
        assert site_item.unit_rate == Decimal("59000.0000")

    def test_numbers_follow_previous_challan(self, db_session, seed, po) -> None:
        _receive(db_session, po, 10)
        assert _receive(db_session, po, 10).inward_challan_no == "0001-0002"
        assert _receive(db_session, po, 10, inward_challan_no=" GRN/77 ").inward_challan_no == "GRN/77"

    def test_cannot_exceed_pending(self, db_session, seed, po) -> None:
        _receive(db_session, po, 30)
        with pytest.raises(ValidationError) as exc_info:
            _receive(db_session, po, "20.0001")
        assert exc_info.value.error_code == StockErrorCode.RECEIVING_EXCEEDS_PENDING

    def test_line_of_another_order(self, db_session, seed, po) -> None:
        with pytest.raises(ValidationError) as exc_info:
            record_inward_challan(db_session, po.id, "V", DAY, DAY, [{"po_details_id": 999, "receiving_qty": 1}])
        assert exc_info.value.error_code == StockErrorCode.PO_LINE_MISMATCH

    def test_nothing_received(self, db_session, seed, po) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _receive(db_session, po, 0)
        assert exc_info.value.error_code == StockErrorCode.NO_MOVEMENT

    def test_negative_receipt(self, db_session, seed, po) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _receive(db_session, po, -1)
        assert exc_info.value.error_code == StockErrorCode.INVALID_LINES
        assert exc_info.value.extra["errors"] == ["Row 1: Receiving qty cannot be negative"]

    def test_unknown_order(self, db_session, seed) -> None:
        with pytest.raises(NotFoundError):
            record_inward_challan(db_session, 999, "V", DAY, DAY, [])

    def test_listing_and_serialization(self, db_session, seed, po) -> None:
        challan = _receive(db_session, po, 5)
        rows = db_session.execute(inward_challan_list_query(db_session, seed.auth["store"], search="778")).scalars().all()
        assert [c.id for c in rows] == [challan.id]
        data = serialize_inward_challan(challan)
        assert data["details"][0]["receivingQty"] == "5.0000"
        assert data["totalAmount"] == "2100.00"


# =============================================================================
# Daily consumption
# =============================================================================

class TestDailyConsumption:

    def test_issue_at_current_rate(self, db_session, seed, opening, po) -> None:
        _receive(db_session, po, 30)
        consumption = record_daily_consumption(db_session, seed.site_a.id, DAY, [{"item_id": seed.cement.id, "qty": 10}])

        assert consumption.daily_consumption_no == "0001-0001"
        assert consumption.details[0].rate == Decimal("404.62")
        assert consumption.total_amount == Decimal("4046.20")

        site_item = get_site_item(db_session, seed.site_a.id, seed.cement.id)
        assert site_item.closing_stock == Decimal("120.0000")
        assert site_item.closing_value == Decimal("48554.40")
        assert site_item.log == DOC_DAILY_CONSUMPTION

    def test_requested_total_per_item_checked(self, db_session, seed, opening) -> None:
        with pytest.raises(ValidationError) as exc_info:
            record_daily_consumption(db_session, seed.site_a.id, DAY, [
                {"item_id": seed.cement.id, "qty": 60},
                {"item_id": seed.cement.id, "qty": 50},
                {"item_id": seed.sand.id, "qty": 0},
            ])
        assert exc_info.value.error_code == StockErrorCode.INVALID_LINES
        assert exc_info.value.extra["errors"] == [
            f"Item {seed.cement.id}: Qty cannot exceed closing (100.0000)",
            "Row 3: Qty must be greater than 0",
        ]

    def test_item_without_stock(self, db_session, seed) -> None:
        with pytest.raises(ValidationError) as exc_info:
            record_daily_consumption(db_session, seed.site_a.id, DAY, [{"item_id": seed.sand.id, "qty": 1}])
        assert "exceed closing (0)" in exc_info.value.message

    def test_empty_document(self, db_session, seed) -> None:
        with pytest.raises(ValidationError) as exc_info:
            record_daily_consumption(db_session, seed.site_a.id, DAY, [])
        assert exc_info.value.error_code == StockErrorCode.NO_MOVEMENT

    def test_listing_hides_other_sites(self, db_session, seed, opening) -> None:
        record_daily_consumption(db_session, seed.site_a.id, DAY, [{"item_id": seed.cement.id, "qty": 1}])
        assert db_session.execute(
            daily_consumption_list_query(db_session, seed.auth["store"], site_id=seed.site_b.id)
        ).scalars().all() == []


# =============================================================================
# Stock adjustments
# =============================================================================

class TestStockAdjustment:

    def test_first_receipt_on_fresh_site_replaces_position(self, db_session, seed) -> None:
        record_opening_stock(db_session, seed.site_b.id, [
            {"item_id": seed.sand.id, "opening_stock": "5", "opening_rate": "10"},
        ])
        record_stock_adjustment(db_session, seed.site_b.id, DAY, [
            {"item_id": seed.sand.id, "received_qty": 10, "rate": 50},
        ])
        site_item = get_site_item(db_session, seed.site_b.id, seed.sand.id)
        assert site_item.closing_stock == Decimal("10.0000")
        assert site_item.closing_value == Decimal("500.00")
        assert site_item.log == "SA Update"

    def test_issue_values_at_line_rate(self, db_session, seed) -> None:
        record_stock_adjustment(db_session, seed.site_b.id, DAY, [
            {"item_id": seed.sand.id, "received_qty": 10, "rate": 50},
        ])
        adjustment = record_stock_adjustment(db_session, seed.site_b.id, DAY, [
            {"item_id": seed.sand.id, "issued_qty": 4, "rate": 50, "remarks": "Spillage"},
        ])
        assert adjustment.details[0].amount == Decimal("-200.00")

        site_item = get_site_item(db_session, seed.site_b.id, seed.sand.id)
        assert site_item.closing_stock == Decimal("6.0000")
        assert site_item.closing_value == Decimal("300.00")
        assert site_item.unit_rate == Decimal("50.0000")
        assert site_item.log == "SA Issue Update"

    def test_receipt_and_issue_on_one_line(self, db_session, seed, opening, po) -> None:
        _receive(db_session, po, 1)
        adjustment = record_stock_adjustment(db_session, seed.site_a.id, DAY, [
            {"item_id": seed.steel.id, "received_qty": 2, "issued_qty": 1, "rate": 60},
        ])
        assert adjustment.details[0].amount == Decimal("60.00")
        rows = db_session.execute(
            select(StockLedger).where(StockLedger.stock_adjustment_id == adjustment.id)
        ).scalars().all()
        assert sorted((r.received_qty, r.issued_qty) for r in rows) == [
            (Decimal("0.0000"), Decimal("1.0000")),
            (Decimal("2.0000"), Decimal("0.0000")),
        ]
        site_item = get_site_item(db_session, seed.site_a.id, seed.steel.id)
        assert site_item.closing_stock == Decimal("1.0000")
        assert site_item.log == "SA Init"

    def test_invalid_line(self, db_session, seed) -> None:
        with pytest.raises(ValidationError):
            record_stock_adjustment(db_session, seed.site_a.id, DAY, [{"item_id": seed.sand.id, "received_qty": -1}])


# =============================================================================
# Closing stock aggregation
# =============================================================================

class TestClosingStock:

    def test_rebuild_from_opening_and_ledger(self, db_session, seed, opening, po) -> None:
        _receive(db_session, po, 30)
        record_daily_consumption(db_session, seed.site_a.id, DAY, [{"item_id": seed.cement.id, "qty": 10}])

        result = update_closing_stock(db_session, seed.site_a.id)
        db_session.commit()

        assert result == {"updated": 1, "message": "Closing stock updated for 1 items"}
        site_item = get_site_item(db_session, seed.site_a.id, seed.cement.id)
        assert site_item.closing_stock == Decimal("120.0000")
        assert site_item.closing_value == Decimal("48553.80")
        assert site_item.unit_rate == Decimal("404.6150")
        assert site_item.log == LOG_CLOSING_STOCK_UPDATE

    def test_item_without_ledger_keeps_opening(self, db_session, seed, opening) -> None:
        update_closing_stock(db_session)
        site_item = get_site_item(db_session, seed.site_a.id, seed.cement.id)
        assert site_item.closing_stock == Decimal("100.0000")
        assert site_item.closing_value == Decimal("40000.00")

    def test_closing_stock_by_item_uses_ledger_only(self, db_session, seed, opening, po) -> None:
        _receive(db_session, po, 30)
        record_daily_consumption(db_session, seed.site_a.id, DAY, [{"item_id": seed.cement.id, "qty": 10}])
        assert closing_stock_by_item(db_session, seed.site_a.id, [seed.cement.id, seed.sand.id, 0, None]) == {
            seed.cement.id: Decimal("20.0000"),
            seed.sand.id: Decimal("0"),
        }


class TestStockViews:

    def test_site_and_overall_stock(self, db_session, seed, opening) -> None:
        record_opening_stock(db_session, seed.site_b.id, [
            {"item_id": seed.cement.id, "opening_stock": "50", "opening_rate": "380"},
        ])

        rows = site_stock(db_session, seed.site_a.id, search="cem")
        assert [(r["itemCode"], r["closingStock"], r["unit"]) for r in rows] == [("CEM-53", "100.0000", "Bag")]

        overall = overall_stock(db_session)
        assert overall == [{
            "itemId": seed.cement.id,
            "itemCode": "CEM-53",
            "item": "Cement OPC 53",
            "closingStock": "150.0000",
            "closingValue": "59000.00",
            "unitRate": "393.3333",
        }]
        assert overall_stock(db_session, [seed.site_b.id])[0]["closingStock"] == "50.0000"
        assert overall_stock(db_session, []) == []
