"""
============================================================================
SiteLedger v1.0.0
Integration Test: ERP API Endpoints
============================================================================

Reliability Level: STANDARD
Input Constraints: FastAPI TestClient, in-memory SQLite session
Side Effects: None (per-test database)

COVERS:
- 401 / 404 / 403 from the access guard and the domain error handler
- Error detail shape {"error_code", "message", "timestamp"}
- Pagination envelope and meta
- Voucher create / back-dated create / approve through the API
- Site budget validation endpoint
- Purchase order delete and the asset master
- Excel and PDF report downloads
============================================================================
"""

import os
import sys

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.api import API_ROUTERS
from app.api.errors import erp_error_handler
from app.database.session import get_db
from app.reports.excel import XLSX_MEDIA_TYPE
from app.reports.pdf import PDF_MEDIA_TYPE
from services.boq_service import create_boq
from services.erp_errors import ERPError
from services.site_budget_service import create_site_budget


# ============================================================================
# Test App Setup
# ============================================================================

def create_test_app() -> FastAPI:
    """FastAPI app with every ERP router and the domain error handler."""
    app = FastAPI(title="SiteLedger API Test")
    app.add_exception_handler(ERPError, erp_error_handler)
    for router in API_ROUTERS:
        app.include_router(router, prefix="/api")
    return app


@pytest.fixture
def client(db_session, seed):
    app = create_test_app()
    app.dependency_overrides[get_db] = lambda: db_session
    return TestClient(app)


def auth(seed, key):
    return {"Authorization": f"Bearer {seed.users[key].id}"}


def voucher_body(seed, day, received=None, paid=None, site=None):
    return {
        "voucher_date": day,
        "site_id": (site or seed.site_a).id,
        "details": [{
            "cashbook_head_id": seed.labour.id,
            "description": "labour advance",
            "amount_received": received,
            "amount_paid": paid,
        }],
    }


def assert_error(response, status_code, error_code):
    assert response.status_code == status_code
    detail = response.json()["detail"]
    assert detail["error_code"] == error_code
    assert detail["message"]
    assert "timestamp" in detail


# ============================================================================
# Authentication & Access
# ============================================================================

class TestAccessGuard:

    def test_missing_header(self, client) -> None:
        assert_error(client.get("/api/cashbooks"), 401, "AUTH-001")

    def test_non_numeric_token(self, client) -> None:
        assert_error(client.get("/api/cashbooks", headers={"Authorization": "Bearer abc"}), 401, "AUTH-001")

    def test_unknown_user(self, client) -> None:
        assert_error(client.get("/api/cashbooks", headers={"Authorization": "Bearer 999"}), 404, "AUTH-002")

    def test_missing_permission(self, client, seed) -> None:
        assert_error(client.get("/api/cashbooks", headers=auth(seed, "store")), 403, "AUTH-003")

    def test_unassigned_site(self, client, seed) -> None:
        response = client.post(
            "/api/cashbooks",
            json=voucher_body(seed, "2025-04-05", received="100", site=seed.site_b),
            headers=auth(seed, "accountant"),
        )
        assert_error(response, 403, "AUTH-004")

    def test_unknown_record(self, client, seed) -> None:
        assert_error(client.get("/api/cashbooks/999", headers=auth(seed, "admin")), 404, "CB-001")


# ============================================================================
# Cashbooks
# ============================================================================

class TestCashbookApi:

    def test_backdated_voucher_rebalances(self, client, seed) -> None:
        headers = auth(seed, "accountant")
        first = client.post("/api/cashbooks", json=voucher_body(seed, "2025-04-10", paid="300"), headers=headers)
        assert first.status_code == 201
        assert first.json()["voucherNo"] == "A/10/1"
        assert first.json()["cashbookDetails"][0]["closingBalance"] == "-300.00"

        client.post("/api/cashbooks", json=voucher_body(seed, "2025-04-05", received="1000"), headers=headers)

        later = client.get(f"/api/cashbooks/{first.json()['id']}", headers=headers).json()
        detail = later["cashbookDetails"][0]
        assert (detail["openingBalance"], detail["closingBalance"]) == ("1000.00", "700.00")

        balance = client.get(
            "/api/cashbooks/last-balance",
            params={"siteId": seed.site_a.id, "cashbookHeadId": seed.labour.id},
            headers=headers,
        )
        assert balance.status_code == 200

    def test_last_balance_other_site(self, client, seed) -> None:
        response = client.get(
            "/api/cashbooks/last-balance",
            params={"siteId": seed.site_b.id, "cashbookHeadId": seed.labour.id},
            headers=auth(seed, "accountant"),
        )
        assert_error(response, 403, "AUTH-004")

    def test_pagination_meta(self, client, seed) -> None:
        headers = auth(seed, "accountant")
        for day in ("2025-04-05", "2025-04-06", "2025-04-07"):
            client.post("/api/cashbooks", json=voucher_body(seed, day, received="10"), headers=headers)

        body = client.get("/api/cashbooks", params={"perPage": 2, "page": 2}, headers=headers).json()
        assert body["meta"] == {"page": 2, "perPage": 2, "total": 3, "totalPages": 2}
        assert len(body["data"]) == 1
        assert "cashbookDetails" not in body["data"][0]

    def test_unassigned_director_sees_empty_page(self, client, seed) -> None:
        client.post("/api/cashbooks", json=voucher_body(seed, "2025-04-05", received="10"), headers=auth(seed, "accountant"))
        body = client.get("/api/cashbooks", headers=auth(seed, "director")).json()
        assert body == {"data": [], "meta": {"page": 1, "perPage": 10, "total": 0, "totalPages": 0}}

    def test_empty_details_rejected(self, client, seed) -> None:
        body = voucher_body(seed, "2025-04-05")
        body["details"] = []
        response = client.post("/api/cashbooks", json=body, headers=auth(seed, "accountant"))
        assert response.status_code == 422

    def test_approval_levels(self, client, seed) -> None:
        headers = auth(seed, "accountant")
        created = client.post("/api/cashbooks", json=voucher_body(seed, "2025-04-05", received="10"), headers=headers).json()
        url = f"/api/cashbooks/approvals/{created['id']}"

        assert_error(client.patch(url, json={"level": 2}, headers=headers), 403, "AUTH-003")
        assert_error(client.patch(url, json={"level": 2}, headers=auth(seed, "director")), 400, "CB-004")

        approved = client.patch(url, json={"level": 1}, headers=headers)
        assert approved.status_code == 200
        assert approved.json()["isApproved1"] is True

        approved = client.patch(url, json={"level": 2}, headers=auth(seed, "director"))
        assert approved.json()["isApproved2"] is True

    def test_delete(self, client, seed) -> None:
        headers = auth(seed, "accountant")
        created = client.post("/api/cashbooks", json=voucher_body(seed, "2025-04-05", received="10"), headers=headers).json()
        assert client.delete(f"/api/cashbooks/{created['id']}", headers=headers).json() == {"message": "Cashbook deleted"}
        assert_error(client.get(f"/api/cashbooks/{created['id']}", headers=headers), 404, "CB-001")


# ============================================================================
# Site budgets
# ============================================================================

class TestSiteBudgetValidation:

    def test_validate_reports_violations(self, client, db_session, seed) -> None:
        boq = create_boq(db_session, "BOQ-PUN-01", seed.site_a.id, [{"item": "Excavation", "qty": 1, "rate": 1}])
        create_site_budget(db_session, seed.site_a.id, seed.cement.id, 100, 400, 380, boq_id=boq.id)

        body = {"site_id": seed.site_a.id, "boq_id": boq.id, "items": [{"item_id": seed.cement.id, "qty": "150"}]}
        response = client.post("/api/site-budgets/validate", json=body, headers=auth(seed, "purchase"))
        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is False
        assert data["message"].startswith("Item limit exceeded -> ")
        assert len(data["violations"]) == 1

        body["items"][0]["qty"] = "100"
        assert client.post("/api/site-budgets/validate", json=body, headers=auth(seed, "purchase")).json() == {
            "ok": True, "message": None, "violations": [],
        }

    def test_validate_other_site(self, client, seed) -> None:
        body = {"site_id": seed.site_b.id, "boq_id": 1, "items": []}
        response = client.post("/api/site-budgets/validate", json=body, headers=auth(seed, "purchase"))
        assert_error(response, 403, "AUTH-004")


# ============================================================================
# Reports
# ============================================================================

class TestReports:

    def test_cashbook_details_workbook(self, client, seed) -> None:
        client.post("/api/cashbooks", json=voucher_body(seed, "2025-04-05", received="1000"), headers=auth(seed, "accountant"))
        response = client.get(
            "/api/reports/cashbook-details.xlsx",
            params={"siteId": seed.site_a.id, "fromDate": "2025-04-01", "toDate": "2025-04-30"},
            headers=auth(seed, "accountant"),
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == XLSX_MEDIA_TYPE
        assert 'filename="cashbook-details.xlsx"' in response.headers["content-disposition"]
        assert response.content[:2] == b"PK"

    def test_daily_cashbook_pdf(self, client, seed) -> None:
        client.post("/api/cashbooks", json=voucher_body(seed, "2025-04-05", received="1000"), headers=auth(seed, "accountant"))
        response = client.get(
            "/api/reports/daily-cashbook.pdf",
            params={"siteId": seed.site_a.id, "date": "2025-04-05"},
            headers=auth(seed, "accountant"),
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == PDF_MEDIA_TYPE
        assert response.content[:4] == b"%PDF"

    def test_reversed_range(self, client, seed) -> None:
        response = client.get(
            "/api/reports/cashbook-details.xlsx",
            params={"siteId": seed.site_a.id, "fromDate": "2025-05-01", "toDate": "2025-04-01"},
            headers=auth(seed, "accountant"),
        )
        assert_error(response, 400, "RPT-001")

    def test_overall_stock_for_admin(self, client, seed) -> None:
        response = client.get("/api/reports/overall-stock.xlsx", headers=auth(seed, "admin"))
        assert response.status_code == 200
        assert response.content[:2] == b"PK"


# ============================================================================
# Purchase orders and assets
# ============================================================================

class TestPurchaseOrderApi:

    def _create(self, client, seed):
        body = {
            "site_id": seed.site_a.id,
            "vendor_id": seed.vendor.id,
            "purchase_order_date": "2025-06-01",
            "details": [{"item_id": seed.cement.id, "qty": "10", "rate": "100"}],
        }
        response = client.post("/api/purchase-orders", json=body, headers=auth(seed, "purchase"))
        assert response.status_code == 201
        return response.json()["id"]

    def test_delete_draft(self, client, seed) -> None:
        po_id = self._create(client, seed)
        response = client.delete(f"/api/purchase-orders/{po_id}", headers=auth(seed, "purchase"))
        assert response.json() == {"message": "Purchase order deleted"}
        assert client.get(f"/api/purchase-orders/{po_id}", headers=auth(seed, "purchase")).status_code == 404

    def test_delete_approved(self, client, seed) -> None:
        po_id = self._create(client, seed)
        client.patch(f"/api/purchase-orders/{po_id}", json={"status_action": "approve1"}, headers=auth(seed, "admin"))
        assert_error(client.delete(f"/api/purchase-orders/{po_id}", headers=auth(seed, "admin")), 400, "PO-006")

    def test_delete_needs_permission(self, client, seed) -> None:
        po_id = self._create(client, seed)
        assert_error(client.delete(f"/api/purchase-orders/{po_id}", headers=auth(seed, "store")), 403, "AUTH-003")


class TestAssetApi:

    def test_asset_master(self, client, seed) -> None:
        created = client.post(
            "/api/assets",
            json={"asset_name": "Tower Crane", "make": "Potain", "purchase_date": "2024-11-02"},
            headers=auth(seed, "store"),
        )
        assert created.status_code == 201
        data = created.json()
        assert data["assetNo"] == "AST-00003"
        assert (data["status"], data["useStatus"], data["transferStatus"]) == ("Working", "In Use", "Available")

        url = f"/api/assets/{data['id']}"
        edited = client.patch(url, json={"status": "Under Repair"}, headers=auth(seed, "store"))
        assert edited.json()["status"] == "Under Repair"
        assert edited.json()["make"] == "Potain"

        page = client.get("/api/assets", params={"search": "crane"}, headers=auth(seed, "engineer")).json()
        assert [a["assetNo"] for a in page["data"]] == ["AST-00003"]

        assert_error(client.delete(url, headers=auth(seed, "store")), 403, "AUTH-003")
        assert client.delete(url, headers=auth(seed, "admin")).json() == {"message": "Asset deleted"}
        assert_error(client.get(url, headers=auth(seed, "admin")), 404, "AST-001")

    def test_blank_name(self, client, seed) -> None:
        response = client.post("/api/assets", json={"asset_name": ""}, headers=auth(seed, "store"))
        assert response.status_code == 422
