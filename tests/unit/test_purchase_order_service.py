"""
Unit Tests for the Purchase Order Service

Reliability Level: STANDARD

- Numbering per company, financial year and site code
- Line and header amounts, amount in words
- Approval rules: creator cannot approve, auto level 2 within the limit
- Suspend / unsuspend, draft-only edits and deletes
"""

import os
import sys
from datetime import date
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from sqlalchemy import select

from app.auth.access_control import AccessErrorCode
from app.database.models import PurchaseOrderDetail
from app.logic.numbering import financial_year_label
from services.erp_config import reset_erp_config
from services.erp_errors import InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from services.purchase_order_service import (
    PurchaseOrderErrorCode,
    apply_purchase_order_action,
    create_purchase_order,
    delete_purchase_order,
    generate_purchase_order_no,
    get_purchase_order,
    purchase_order_list_query,
    serialize_purchase_order,
    update_purchase_order,
)
from services.site_budget_service import create_site_budget


def _po(db, seed, qty=10, rate="100", site=None, user="purchase", **line):
    return create_purchase_order(
        db,
        site_id=(site or seed.site_a).id,
        vendor_id=seed.vendor.id,
        purchase_order_date=date(2025, 6, 1),
        lines=[dict({"item_id": seed.cement.id, "qty": qty, "rate": rate}, **line)],
        user=seed.auth[user],
    )


def _prefix(site_code: str) -> str:
    return f"DCTPL/{financial_year_label(date.today())}/{site_code}/"


# =============================================================================
# Numbering
# =============================================================================

class TestNumbering:

    def test_sequence_per_site(self, db_session, seed) -> None:
        first = _po(db_session, seed)
        second = _po(db_session, seed)
        other = _po(db_session, seed, site=seed.site_b)
        assert first.purchase_order_no == _prefix("PUN") + "00001"
        assert second.purchase_order_no == _prefix("PUN") + "00002"
        assert other.purchase_order_no == _prefix("MUM") + "00001"

    def test_company_code_from_config(self, db_session, seed, monkeypatch) -> None:
        monkeypatch.setenv("SITELEDGER_COMPANY_CODE", "ACME")
        reset_erp_config()
        assert generate_purchase_order_no(db_session, seed.site_a, date(2025, 6, 1)) == "ACME/25-26/PUN/00001"

    def test_site_without_code(self, db_session, seed) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _po(db_session, seed, site=seed.site_nocode)
        assert exc_info.value.error_code == PurchaseOrderErrorCode.SITE_CODE_MISSING


# =============================================================================
# Amounts
# =============================================================================

class TestAmounts:

    def test_line_and_header_totals(self, db_session, seed) -> None:
        po = _po(db_session, seed, discount_percent=10, cgst_percent=9, sgst_percent=9)
        detail = po.details[0]
        assert detail.taxable_amount == Decimal("900.00")
        assert detail.amount == Decimal("1062.00")
        assert po.amount == Decimal("1062.00")
        assert po.total_cgst_amount == Decimal("81.00")
        assert po.amount_in_words == "Rupees One Thousand Sixty Two Only"
        assert po.status == "DRAFT"

    @pytest.mark.parametrize("line", [
        {"qty": 0},
        {"qty": "-2"},
        {"item_id": None},
        {"cgst_percent": 120},
    ])
    def test_invalid_lines(self, db_session, seed, line) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _po(db_session, seed, **line)
        assert exc_info.value.error_code == PurchaseOrderErrorCode.INVALID_LINES

    def test_unknown_vendor(self, db_session, seed) -> None:
        with pytest.raises(NotFoundError):
            create_purchase_order(db_session, seed.site_a.id, 999, date(2025, 6, 1), [{"item_id": 1, "qty": 1, "rate": 1}])


# =============================================================================
# Approvals
# =============================================================================

class TestApprovals:

    def test_creator_cannot_approve(self, db_session, seed) -> None:
        po = _po(db_session, seed)
        with pytest.raises(PermissionDeniedError) as exc_info:
            apply_purchase_order_action(db_session, po.id, "approve1", seed.auth["purchase"])
        assert exc_info.value.error_code == PurchaseOrderErrorCode.APPROVER_NOT_ALLOWED

    def test_missing_permission(self, db_session, seed) -> None:
        po = _po(db_session, seed)
        with pytest.raises(PermissionDeniedError) as exc_info:
            apply_purchase_order_action(db_session, po.id, "approve1", seed.auth["store"])
        assert exc_info.value.error_code == AccessErrorCode.FORBIDDEN

    def test_small_order_auto_approves_level_two(self, db_session, seed) -> None:
        po = _po(db_session, seed)
        approved = apply_purchase_order_action(db_session, po.id, "approve1", seed.auth["admin"])
        assert approved.status == "APPROVED_LEVEL_2"
        assert approved.is_approved1 and approved.is_approved2
        assert approved.approved2_by_id == seed.users["admin"].id

    def test_large_order_needs_second_approver(self, db_session, seed) -> None:
        po = _po(db_session, seed, qty=300, rate="400")
        assert po.amount == Decimal("120000.00")

        approved = apply_purchase_order_action(db_session, po.id, "approve1", seed.auth["admin"])
        assert approved.status == "APPROVED_LEVEL_1"

        with pytest.raises(PermissionDeniedError) as exc_info:
            apply_purchase_order_action(db_session, po.id, "approve2", seed.auth["admin"])
        assert exc_info.value.error_code == PurchaseOrderErrorCode.APPROVER_NOT_ALLOWED

        approved = apply_purchase_order_action(db_session, po.id, "approve2", seed.auth["director"])
        assert approved.status == "APPROVED_LEVEL_2"
        assert approved.approved2_by_id == seed.users["director"].id

    def test_director_approves_both_levels(self, db_session, seed) -> None:
        po = _po(db_session, seed, qty=300, rate="400")
        approved = apply_purchase_order_action(db_session, po.id, "approve1", seed.auth["director"])
        assert approved.status == "APPROVED_LEVEL_2"

    def test_limit_from_config(self, db_session, seed, monkeypatch) -> None:
        monkeypatch.setenv("PO_AUTO_APPROVE_LIMIT", "500")
        reset_erp_config()
        po = _po(db_session, seed)
        assert apply_purchase_order_action(db_session, po.id, "approve1", seed.auth["admin"]).status == "APPROVED_LEVEL_1"

    def test_complete_then_no_suspend(self, db_session, seed) -> None:
        po = _po(db_session, seed)
        apply_purchase_order_action(db_session, po.id, "approve1", seed.auth["admin"])
        completed = apply_purchase_order_action(db_session, po.id, "complete", seed.auth["director"])
        assert completed.status == "COMPLETED"
        assert completed.is_complete is True

        with pytest.raises(InvalidTransitionError) as exc_info:
            apply_purchase_order_action(db_session, po.id, "suspend", seed.auth["director"])
        assert exc_info.value.error_code == PurchaseOrderErrorCode.INVALID_TRANSITION

    def test_out_of_order_action(self, db_session, seed) -> None:
        po = _po(db_session, seed)
        with pytest.raises(InvalidTransitionError):
            apply_purchase_order_action(db_session, po.id, "complete", seed.auth["director"])

    def test_unknown_action(self, db_session, seed) -> None:
        po = _po(db_session, seed)
        with pytest.raises(ValidationError):
            apply_purchase_order_action(db_session, po.id, "archive", seed.auth["admin"])

    def test_unsuspend_restores_previous_status(self, db_session, seed) -> None:
        po = _po(db_session, seed, qty=300, rate="400")
        apply_purchase_order_action(db_session, po.id, "approve1", seed.auth["admin"])
        suspended = apply_purchase_order_action(db_session, po.id, "suspend", seed.auth["director"])
        assert suspended.status == "SUSPENDED"
        assert suspended.is_suspended is True

        restored = apply_purchase_order_action(db_session, po.id, "unsuspend", seed.auth["director"])
        assert restored.status == "APPROVED_LEVEL_1"
        assert restored.is_suspended is False
        assert restored.suspended_by_id is None


# =============================================================================
# Edits and listing
# =============================================================================

class TestUpdate:

    def test_draft_lines_replaced(self, db_session, seed) -> None:
        po = _po(db_session, seed)
        updated = update_purchase_order(
            db_session, po.id,
            [{"item_id": seed.steel.id, "qty": 2, "rate": "60000"}, {"item_id": seed.sand.id, "qty": 5, "rate": "1500"}],
            {"remarks": "Revised quote"},
        )
        assert [d.serial_no for d in updated.details] == [1, 2]
        assert updated.amount == Decimal("127500.00")
        assert updated.remarks == "Revised quote"
        assert updated.purchase_order_no == po.purchase_order_no

    def test_approved_order_is_locked(self, db_session, seed) -> None:
        po = _po(db_session, seed)
        apply_purchase_order_action(db_session, po.id, "approve1", seed.auth["admin"])
        with pytest.raises(InvalidTransitionError) as exc_info:
            update_purchase_order(db_session, po.id, [{"item_id": seed.cement.id, "qty": 1, "rate": 1}])
        assert exc_info.value.error_code == PurchaseOrderErrorCode.NOT_EDITABLE


class TestDelete:

    def test_draft_deleted_and_budget_released(self, db_session, seed) -> None:
        budget = create_site_budget(db_session, seed.site_a.id, seed.cement.id, 100, 400, 380)
        po = _po(db_session, seed, qty=25)
        db_session.refresh(budget)
        assert budget.ordered_qty == Decimal("25.0000")

        delete_purchase_order(db_session, po.id)

        with pytest.raises(NotFoundError):
            get_purchase_order(db_session, po.id)
        db_session.refresh(budget)
        assert budget.ordered_qty == Decimal("0.0000")
        assert db_session.execute(select(PurchaseOrderDetail)).scalars().all() == []

    @pytest.mark.parametrize("action", ["approve1", "suspend"])
    def test_only_drafts(self, db_session, seed, action) -> None:
        po = _po(db_session, seed)
        apply_purchase_order_action(db_session, po.id, action, seed.auth["admin"])
        with pytest.raises(InvalidTransitionError) as exc_info:
            delete_purchase_order(db_session, po.id)
        assert exc_info.value.error_code == PurchaseOrderErrorCode.NOT_EDITABLE
        assert get_purchase_order(db_session, po.id).id == po.id

    def test_received_draft_kept(self, db_session, seed) -> None:
        po = _po(db_session, seed)
        po.details[0].received_qty = Decimal("1")
        db_session.commit()
        with pytest.raises(InvalidTransitionError):
            delete_purchase_order(db_session, po.id)

    def test_unknown(self, db_session, seed) -> None:
        with pytest.raises(NotFoundError):
            delete_purchase_order(db_session, 999)


class TestListing:

    def test_visibility_status_and_search(self, db_session, seed) -> None:
        own = _po(db_session, seed)
        _po(db_session, seed, site=seed.site_b)

        rows = db_session.execute(purchase_order_list_query(db_session, seed.auth["purchase"])).scalars().all()
        assert [p.id for p in rows] == [own.id]

        rows = db_session.execute(
            purchase_order_list_query(db_session, seed.auth["admin"], search="shree", status="DRAFT")
        ).scalars().all()
        assert len(rows) == 2

        assert purchase_order_list_query(db_session, seed.auth["admin"], status="COMPLETED") is not None

    def test_serialize(self, db_session, seed) -> None:
        data = serialize_purchase_order(_po(db_session, seed))
        assert data["vendor"] == "Shree Traders"
        assert data["amount"] == "1000.00"
        assert data["details"][0]["qty"] == "10.0000"
        assert data["details"][0]["item"] == "Cement OPC 53"
