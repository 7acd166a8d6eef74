"""
Unit Tests for Access Control

Reliability Level: STANDARD

- Longest prefix wins, per-method lists override fallback permissions
- Effective permissions join role defaults, role grants and user grants
- Site visibility for privileged and assigned users
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.auth.access_control import (
    PERMISSIONS,
    ROLE_PERMISSIONS,
    ROLES,
    AccessErrorCode,
    AuthenticatedUser,
    assigned_site_ids,
    effective_permissions,
    ensure_site_access,
    find_access_rule,
    require_permission,
)
from app.database.models import Permission
from services.erp_errors import PermissionDeniedError

P = PERMISSIONS


# =============================================================================
# Rule resolution
# =============================================================================

class TestFindAccessRule:

    @pytest.mark.parametrize("path,method,expected", [
        ("/api/cashbooks", "GET", [P.READ_CASHBOOKS]),
        ("/api/cashbooks/12", "DELETE", [P.DELETE_CASHBOOKS]),
        ("/api/cashbooks/approvals/12", "PATCH", [P.READ_CASHBOOKS]),
        ("/api/cashbooks/last-balance", "GET", [P.READ_CASHBOOKS]),
        ("/api/cashbook-budgets/actions/3", "PATCH", [P.READ_CASHBOOK_BUDGETS]),
        ("/api/cashbook-budgets", "POST", [P.EDIT_CASHBOOK_BUDGETS]),
        ("/api/boqs/3", "DELETE", [P.DELETE_BOQS]),
        ("/api/sites/1", "delete", [P.EDIT_SITES]),
        ("/api/reports/stock", "GET", [P.READ_REPORTS]),
        ("/api/reports/cashbook-budgets/xlsx", "GET", [P.GENERATE_CASHBOOK_BUDGET_REPORT]),
        ("/api/manpower-transfers/4", "PATCH", [P.APPROVE_MANPOWER_TRANSFERS]),
        ("/api/manpower-transfers/4", "DELETE", [P.DELETE_MANPOWER_TRANSFERS]),
        ("/api/purchase-orders/7", "DELETE", [P.DELETE_PURCHASE_ORDERS]),
        ("/api/assets/2", "PATCH", [P.EDIT_ASSETS]),
        ("/api/asset-transfers/2", "PATCH", [P.APPROVE_ASSET_TRANSFERS]),
    ])
    def test_resolves_permissions(self, path, method, expected) -> None:
        assert find_access_rule(path, method) == expected

    def test_unlisted_method_uses_fallback(self) -> None:
        assert find_access_rule("/api/purchase-orders/1", "HEAD") == []

    def test_unknown_path(self) -> None:
        assert find_access_rule("/api/unknown", "GET") is None

    def test_cashbook_heads_not_shadowed_by_cashbooks(self) -> None:
        assert find_access_rule("/api/cashbook-heads", "POST") == [P.EDIT_CASHBOOKS]


# =============================================================================
# Permissions
# =============================================================================

class TestPermissions:

    def test_admin_holds_everything(self) -> None:
        assert set(ROLE_PERMISSIONS[ROLES.ADMIN]) == set(P.all())

    def test_effective_permissions_join_grants(self, db_session, seed) -> None:
        engineer = seed.users["engineer"]
        engineer.role.permissions.append(Permission(name=P.READ_REPORTS))
        engineer.permissions.append(Permission(name=P.READ_CASHBOOKS))
        db_session.commit()

        perms = effective_permissions(engineer)
        assert P.CREATE_INDENTS in perms
        assert P.READ_REPORTS in perms
        assert P.READ_CASHBOOKS in perms
        assert P.EDIT_CASHBOOKS not in perms

    def test_require_permission(self) -> None:
        user = AuthenticatedUser(1, "Viewer", ROLES.STORE_KEEPER, frozenset({P.READ_STOCKS}))
        require_permission(user, P.READ_STOCKS, "allowed")
        with pytest.raises(PermissionDeniedError) as exc_info:
            require_permission(user, P.EDIT_STOCKS, "Cannot edit stock")
        assert exc_info.value.error_code == AccessErrorCode.FORBIDDEN
        assert exc_info.value.message == "Cannot edit stock"


# =============================================================================
# Site visibility
# =============================================================================

class TestSiteVisibility:

    def test_privileged_roles_see_all_sites(self, db_session, seed) -> None:
        assert assigned_site_ids(db_session, seed.auth["admin"]) is None
        assert assigned_site_ids(db_session, seed.auth["director"]) is None

    def test_assigned_user_sees_own_sites(self, db_session, seed) -> None:
        assert assigned_site_ids(db_session, seed.auth["accountant"]) == [seed.site_a.id]

    def test_custom_privileged_set(self, db_session, seed) -> None:
        sites = assigned_site_ids(db_session, seed.auth["director"], privileged_roles=frozenset({ROLES.ADMIN}))
        assert sites == []

    def test_admin_skips_site_check(self, db_session, seed) -> None:
        ensure_site_access(db_session, seed.auth["admin"], seed.site_b.id)

    def test_director_needs_assignment(self, db_session, seed) -> None:
        with pytest.raises(PermissionDeniedError) as exc_info:
            ensure_site_access(db_session, seed.auth["director"], seed.site_a.id)
        assert exc_info.value.error_code == AccessErrorCode.SITE_NOT_ASSIGNED

    def test_assigned_site_passes(self, db_session, seed) -> None:
        ensure_site_access(db_session, seed.auth["engineer"], seed.site_a.id)

    @pytest.mark.parametrize("site_attr", ["site_b", None])
    def test_other_or_missing_site_fails(self, db_session, seed, site_attr) -> None:
        site_id = getattr(seed, site_attr).id if site_attr else None
        with pytest.raises(PermissionDeniedError):
            ensure_site_access(db_session, seed.auth["engineer"], site_id)
