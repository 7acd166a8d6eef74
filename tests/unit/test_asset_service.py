"""
Unit Tests for the Asset Service (asset master and transfer challans)
"""

import os
import sys
from datetime import date

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from services.asset_service import (
    AssetErrorCode,
    asset_list_query,
    asset_transfer_list_query,
    create_asset,
    create_asset_transfer,
    delete_asset,
    delete_asset_transfer,
    get_asset,
    serialize_asset,
    serialize_asset_transfer,
    update_asset,
    update_asset_transfer_status,
)
from services.erp_errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError

DAY = date(2025, 6, 7)


def _assign(db, seed, asset_ids, site=None):
    transfer = create_asset_transfer(db, "New Assign", (site or seed.site_a).id, DAY, asset_ids)
    return update_asset_transfer_status(db, transfer.id, "Accepted", seed.auth["director"])


class TestAssetMaster:

    def test_create_numbers_after_latest(self, db_session, seed) -> None:
        asset = create_asset(
            db_session, " Tower Crane ", make="Potain", purchase_date=date(2024, 11, 2), status=None,
        )
        assert asset.asset_no == "AST-00003"
        assert (asset.status, asset.use_status, asset.transfer_status) == ("Working", "In Use", "Available")
        assert asset.current_site_id is None
        assert create_asset(db_session, "Dewatering Pump").asset_no == "AST-00004"

        data = serialize_asset(asset)
        assert data["assetName"] == "Tower Crane"
        assert data["purchaseDate"] == "2024-11-02"
        assert data["transferStatus"] == "Available"

    def test_name_required(self, db_session, seed) -> None:
        with pytest.raises(ValidationError) as exc_info:
            create_asset(db_session, "   ")
        assert exc_info.value.error_code == AssetErrorCode.INVALID_REQUEST

    def test_update_leaves_transfer_state(self, db_session, seed) -> None:
        mixer = seed.assets[0]
        updated = update_asset(db_session, mixer.id, {
            "status": "Under Repair", "supplier": "Ajax Fiori", "use_status": None,
            "transfer_status": "Assigned", "current_site_id": seed.site_b.id,
        })
        assert updated.status == "Under Repair"
        assert updated.supplier == "Ajax Fiori"
        assert updated.use_status == "In Use"
        assert (updated.transfer_status, updated.current_site_id) == ("Available", None)

        with pytest.raises(ValidationError):
            update_asset(db_session, mixer.id, {"asset_name": ""})
        with pytest.raises(NotFoundError):
            update_asset(db_session, 999, {"status": "Working"})

    def test_delete(self, db_session, seed) -> None:
        asset = create_asset(db_session, "Plate Compactor")
        delete_asset(db_session, asset.id)
        with pytest.raises(NotFoundError):
            get_asset(db_session, asset.id)

    def test_delete_with_transfer_history(self, db_session, seed) -> None:
        _assign(db_session, seed, [seed.assets[0].id])
        with pytest.raises(ConflictError) as exc_info:
            delete_asset(db_session, seed.assets[0].id)
        assert exc_info.value.error_code == AssetErrorCode.IN_USE

    def test_list_filters(self, db_session, seed) -> None:
        _assign(db_session, seed, [seed.assets[1].id], site=seed.site_b)

        rows = db_session.execute(asset_list_query(search="mixer")).scalars().all()
        assert [a.asset_no for a in rows] == ["AST-0001"]

        rows = db_session.execute(asset_list_query(transfer_status="Assigned", current_site_id=seed.site_b.id)).scalars().all()
        assert [a.id for a in rows] == [seed.assets[1].id]


class TestNewAssign:

    def test_assets_in_transit_until_accepted(self, db_session, seed) -> None:
        ids = [a.id for a in seed.assets]
        transfer = create_asset_transfer(db_session, "New Assign", seed.site_a.id, DAY, ids, from_site_id=seed.site_b.id)
        assert transfer.challan_no == "CHN-00001"
        assert transfer.from_site_id is None
        assert {i.asset.transfer_status for i in transfer.items} == {"In Transit"}

        accepted = update_asset_transfer_status(db_session, transfer.id, "Accepted", seed.auth["director"], "Received at gate")
        assert accepted.status == "Accepted"
        assert accepted.remarks == "Received at gate"
        assert {(i.asset.transfer_status, i.asset.current_site_id) for i in accepted.items} == {
            ("Assigned", seed.site_a.id),
        }

    def test_only_available_assets(self, db_session, seed) -> None:
        create_asset_transfer(db_session, "New Assign", seed.site_a.id, DAY, [seed.assets[0].id])
        with pytest.raises(ValidationError) as exc_info:
            create_asset_transfer(db_session, "New Assign", seed.site_b.id, DAY, [seed.assets[0].id])
        assert exc_info.value.error_code == AssetErrorCode.WRONG_ASSET_STATE

    def test_rejected_assets_return_to_available(self, db_session, seed) -> None:
        transfer = create_asset_transfer(db_session, "New Assign", seed.site_a.id, DAY, [seed.assets[0].id])
        rejected = update_asset_transfer_status(db_session, transfer.id, "Rejected", seed.auth["director"])
        asset = rejected.items[0].asset
        assert asset.transfer_status == "Available"
        assert asset.current_site_id is None


class TestTransfer:

    def test_transfer_between_sites(self, db_session, seed) -> None:
        _assign(db_session, seed, [seed.assets[0].id])
        transfer = create_asset_transfer(
            db_session, "Transfer", seed.site_b.id, DAY, [seed.assets[0].id], from_site_id=seed.site_a.id,
        )
        assert transfer.challan_no == "CHN-00002"
        accepted = update_asset_transfer_status(db_session, transfer.id, "Accepted", seed.auth["director"])
        assert accepted.items[0].asset.current_site_id == seed.site_b.id

    def test_rejected_transfer_goes_back_to_from_site(self, db_session, seed) -> None:
        _assign(db_session, seed, [seed.assets[0].id])
        transfer = create_asset_transfer(
            db_session, "Transfer", seed.site_b.id, DAY, [seed.assets[0].id], from_site_id=seed.site_a.id,
        )
        rejected = update_asset_transfer_status(db_session, transfer.id, "Rejected", seed.auth["director"])
        asset = rejected.items[0].asset
        assert asset.transfer_status == "Available"
        assert asset.current_site_id == seed.site_a.id

    def test_asset_must_be_at_from_site(self, db_session, seed) -> None:
        _assign(db_session, seed, [seed.assets[0].id])
        with pytest.raises(ValidationError) as exc_info:
            create_asset_transfer(db_session, "Transfer", seed.site_a.id, DAY, [seed.assets[0].id], from_site_id=seed.site_b.id)
        assert exc_info.value.error_code == AssetErrorCode.WRONG_ASSET_STATE

    @pytest.mark.parametrize("from_site", [None, "site_b"])
    def test_from_site_required_and_different(self, db_session, seed, from_site) -> None:
        from_site_id = getattr(seed, from_site).id if from_site else None
        with pytest.raises(ValidationError) as exc_info:
            create_asset_transfer(db_session, "Transfer", seed.site_b.id, DAY, [seed.assets[0].id], from_site_id=from_site_id)
        assert exc_info.value.error_code == AssetErrorCode.INVALID_REQUEST


class TestValidationAndDelete:

    @pytest.mark.parametrize("transfer_type,asset_ids", [("Loan", [1]), ("New Assign", [])])
    def test_invalid_request(self, db_session, seed, transfer_type, asset_ids) -> None:
        with pytest.raises(ValidationError):
            create_asset_transfer(db_session, transfer_type, seed.site_a.id, DAY, asset_ids)

    def test_unknown_to_site(self, db_session, seed) -> None:
        with pytest.raises(NotFoundError):
            create_asset_transfer(db_session, "New Assign", 999, DAY, [seed.assets[0].id])

    def test_decided_transfer_is_final(self, db_session, seed) -> None:
        accepted = _assign(db_session, seed, [seed.assets[0].id])
        with pytest.raises(InvalidTransitionError) as exc_info:
            update_asset_transfer_status(db_session, accepted.id, "Rejected", seed.auth["director"])
        assert exc_info.value.error_code == AssetErrorCode.NOT_PENDING
        with pytest.raises(InvalidTransitionError):
            delete_asset_transfer(db_session, accepted.id)

    def test_invalid_status(self, db_session, seed) -> None:
        transfer = create_asset_transfer(db_session, "New Assign", seed.site_a.id, DAY, [seed.assets[0].id])
        with pytest.raises(ValidationError):
            update_asset_transfer_status(db_session, transfer.id, "Lost", seed.auth["director"])

    def test_delete_pending_releases_assets(self, db_session, seed) -> None:
        transfer = create_asset_transfer(db_session, "New Assign", seed.site_a.id, DAY, [seed.assets[0].id])
        delete_asset_transfer(db_session, transfer.id)
        db_session.refresh(seed.assets[0])
        assert seed.assets[0].transfer_status == "Available"
        with pytest.raises(NotFoundError):
            delete_asset_transfer(db_session, transfer.id)


class TestListing:

    def test_visibility_and_serialization(self, db_session, seed) -> None:
        own = create_asset_transfer(db_session, "New Assign", seed.site_a.id, DAY, [seed.assets[0].id])
        create_asset_transfer(db_session, "New Assign", seed.site_b.id, DAY, [seed.assets[1].id])

        rows = db_session.execute(asset_transfer_list_query(db_session, seed.auth["engineer"])).scalars().all()
        assert [t.id for t in rows] == [own.id]

        data = serialize_asset_transfer(own)
        assert data["transferType"] == "New Assign"
        assert data["assets"] == [{
            "assetId": seed.assets[0].id,
            "assetNo": "AST-0001",
            "assetName": "Concrete Mixer",
            "transferStatus": "In Transit",
        }]
