"""
Unit Tests for the Master Data Service (sites, site employees, cashbook heads)
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.auth.access_control import assigned_site_ids
from services.erp_errors import ConflictError, NotFoundError, ValidationError
from services.master_data_service import (
    MasterErrorCode,
    cashbook_head_list_query,
    create_site,
    delete_cashbook_head,
    save_cashbook_head,
    serialize_site,
    set_site_employees,
    site_employee_ids,
    site_list_query,
    update_site,
)


class TestSites:

    def test_create_and_serialize(self, db_session, seed) -> None:
        site = create_site(db_session, "  Nagpur Ring Road ", site_code="NAG", short_name="NRR")
        assert serialize_site(site) == {
            "id": site.id,
            "site": "Nagpur Ring Road",
            "siteCode": "NAG",
            "shortName": "NRR",
            "status": "Ongoing",
        }

    def test_duplicate_code(self, db_session, seed) -> None:
        with pytest.raises(ConflictError) as exc_info:
            create_site(db_session, "Another Pune Site", site_code="PUN")
        assert exc_info.value.error_code == MasterErrorCode.DUPLICATE

    def test_name_required(self, db_session, seed) -> None:
        with pytest.raises(ValidationError):
            create_site(db_session, "   ")

    def test_update_keeps_own_code(self, db_session, seed) -> None:
        updated = update_site(db_session, seed.site_a.id, {"site_code": "PUN", "status": "Completed", "short_name": None})
        assert updated.status == "Completed"
        assert updated.short_name == "PMP4"

        with pytest.raises(ConflictError):
            update_site(db_session, seed.site_a.id, {"site_code": "MUM"})

    def test_update_unknown(self, db_session, seed) -> None:
        with pytest.raises(NotFoundError):
            update_site(db_session, 999, {"site": "x"})

    def test_list_visibility(self, db_session, seed) -> None:
        rows = db_session.execute(site_list_query(db_session, seed.auth["engineer"])).scalars().all()
        assert [s.id for s in rows] == [seed.site_a.id]

        rows = db_session.execute(site_list_query(db_session, seed.auth["admin"], search="mum")).scalars().all()
        assert [s.id for s in rows] == [seed.site_b.id]


class TestSiteEmployees:

    def test_replaces_assignments(self, db_session, seed) -> None:
        engineer = seed.users["engineer"].id
        director = seed.users["director"].id
        set_site_employees(db_session, seed.site_b.id, [director, engineer, engineer])

        assert site_employee_ids(db_session, seed.site_b.id) == sorted([director, engineer])
        assert sorted(assigned_site_ids(db_session, seed.auth["engineer"])) == sorted([seed.site_a.id, seed.site_b.id])

        set_site_employees(db_session, seed.site_b.id, [])
        assert site_employee_ids(db_session, seed.site_b.id) == []

    def test_unknown_user(self, db_session, seed) -> None:
        with pytest.raises(ValidationError) as exc_info:
            set_site_employees(db_session, seed.site_b.id, [999])
        assert exc_info.value.error_code == MasterErrorCode.INVALID
        # previous links untouched
        assert len(site_employee_ids(db_session, seed.site_a.id)) == 4


class TestCashbookHeads:

    def test_create_and_rename(self, db_session, seed) -> None:
        head = save_cashbook_head(db_session, " Diesel ")
        assert head.cashbook_head_name == "Diesel"

        renamed = save_cashbook_head(db_session, "Diesel & Fuel", head_id=head.id)
        assert renamed.id == head.id
        assert renamed.cashbook_head_name == "Diesel & Fuel"

        # renaming to its own name is not a duplicate
        save_cashbook_head(db_session, "Diesel & Fuel", head_id=head.id)

    @pytest.mark.parametrize("name,error", [("Labour", ConflictError), ("", ValidationError)])
    def test_rejected_names(self, db_session, seed, name, error) -> None:
        with pytest.raises(error):
            save_cashbook_head(db_session, name)

    def test_rename_unknown(self, db_session, seed) -> None:
        with pytest.raises(NotFoundError):
            save_cashbook_head(db_session, "Scaffolding", head_id=999)

    def test_delete_and_list(self, db_session, seed) -> None:
        delete_cashbook_head(db_session, seed.material.id)
        rows = db_session.execute(cashbook_head_list_query("a")).scalars().all()
        assert [h.cashbook_head_name for h in rows] == ["Labour"]
