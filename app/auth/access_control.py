"""
============================================================================
SiteLedger - Access Control
Role/Permission Guard for API Routes
============================================================================

Reliability Level: STANDARD
Input Constraints: Authorization: Bearer <user_id>
Side Effects: Reads users, roles and site assignments

MANDATE:
- Every /api route resolves the longest matching rule prefix
- Per-method permissions override the rule's fallback permission list
- ALL required permissions must be held (role permissions ∪ user permissions)
- Non-privileged users only see sites they are assigned to

ERROR CODES:
    AUTH-001: Missing or malformed Authorization header (401)
    AUTH-002: User not found or inactive (404)
    AUTH-003: Missing permission (403)
    AUTH-004: Site not assigned to user (403)

============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Sequence
import logging

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.database.models import SiteEmployee, User
from app.database.session import get_db
from services.erp_errors import PermissionDeniedError

logger = logging.getLogger(__name__)


# ============================================================================
# Error Codes
# ============================================================================

class AccessErrorCode:
    UNAUTHENTICATED = "AUTH-001"
    USER_NOT_FOUND = "AUTH-002"
    FORBIDDEN = "AUTH-003"
    SITE_NOT_ASSIGNED = "AUTH-004"


# ============================================================================
# Permissions & Roles
# ============================================================================

class PERMISSIONS:
    READ_SITES = "READ:SITES"
    EDIT_SITES = "EDIT:SITES"
    READ_BOQS = "READ:BOQS"
    EDIT_BOQS = "EDIT:BOQS"
    DELETE_BOQS = "DELETE:BOQS"
    READ_CASHBOOKS = "READ:CASHBOOKS"
    CREATE_CASHBOOKS = "CREATE:CASHBOOKS"
    EDIT_CASHBOOKS = "EDIT:CASHBOOKS"
    DELETE_CASHBOOKS = "DELETE:CASHBOOKS"
    APPROVE_CASHBOOKS_L1 = "APPROVE:CASHBOOKS:L1"
    APPROVE_CASHBOOKS_L2 = "APPROVE:CASHBOOKS:L2"
    READ_CASHBOOK_BUDGETS = "READ:CASHBOOK:BUDGETS"
    EDIT_CASHBOOK_BUDGETS = "EDIT:CASHBOOK:BUDGETS"
    APPROVE_CASHBOOK_BUDGETS = "APPROVE:CASHBOOK:BUDGETS"
    GENERATE_CASHBOOK_BUDGET_REPORT = "GENERATE:CASHBOOK:BUDGET:REPORT"
    READ_SITE_BUDGETS = "READ:SITE:BUDGETS"
    EDIT_SITE_BUDGETS = "EDIT:SITE:BUDGETS"
    DELETE_SITE_BUDGETS = "DELETE:SITE:BUDGETS"
    READ_STOCKS = "READ:STOCKS"
    EDIT_STOCKS = "EDIT:STOCKS"
    READ_INWARD_DELIVERY_CHALLANS = "READ:INWARD:DELIVERY:CHALLANS"
    CREATE_INWARD_DELIVERY_CHALLANS = "CREATE:INWARD:DELIVERY:CHALLANS"
    READ_DAILY_CONSUMPTIONS = "READ:DAILY:CONSUMPTIONS"
    CREATE_DAILY_CONSUMPTIONS = "CREATE:DAILY:CONSUMPTIONS"
    READ_STOCK_ADJUSTMENTS = "READ:STOCK:ADJUSTMENTS"
    CREATE_STOCK_ADJUSTMENTS = "CREATE:STOCK:ADJUSTMENTS"
    READ_PURCHASE_ORDERS = "READ:PURCHASE:ORDERS"
    CREATE_PURCHASE_ORDERS = "CREATE:PURCHASE:ORDERS"
    EDIT_PURCHASE_ORDERS = "EDIT:PURCHASE:ORDERS"
    APPROVE_PURCHASE_ORDERS_L1 = "APPROVE:PURCHASE:ORDERS:L1"
    APPROVE_PURCHASE_ORDERS_L2 = "APPROVE:PURCHASE:ORDERS:L2"
    COMPLETE_PURCHASE_ORDERS = "COMPLETE:PURCHASE:ORDERS"
    SUSPEND_PURCHASE_ORDERS = "SUSPEND:PURCHASE:ORDERS"
    DELETE_PURCHASE_ORDERS = "DELETE:PURCHASE:ORDERS"
    READ_INDENTS = "READ:INDENTS"
    CREATE_INDENTS = "CREATE:INDENTS"
    EDIT_INDENTS = "EDIT:INDENTS"
    DELETE_INDENTS = "DELETE:INDENTS"
    READ_MANPOWER_ASSIGNMENTS = "READ:MANPOWER:ASSIGNMENTS"
    CREATE_MANPOWER_ASSIGNMENTS = "CREATE:MANPOWER:ASSIGNMENTS"
    DELETE_MANPOWER_ASSIGNMENTS = "DELETE:MANPOWER:ASSIGNMENTS"
    READ_MANPOWER_TRANSFERS = "READ:MANPOWER:TRANSFERS"
    CREATE_MANPOWER_TRANSFERS = "CREATE:MANPOWER:TRANSFERS"
    APPROVE_MANPOWER_TRANSFERS = "APPROVE:MANPOWER:TRANSFERS"
    DELETE_MANPOWER_TRANSFERS = "DELETE:MANPOWER:TRANSFERS"
    READ_ASSETS = "READ:ASSETS"
    CREATE_ASSETS = "CREATE:ASSETS"
    EDIT_ASSETS = "EDIT:ASSETS"
    DELETE_ASSETS = "DELETE:ASSETS"
    READ_ASSET_TRANSFERS = "READ:ASSET:TRANSFERS"
    CREATE_ASSET_TRANSFERS = "CREATE:ASSET:TRANSFERS"
    APPROVE_ASSET_TRANSFERS = "APPROVE:ASSET:TRANSFERS"
    DELETE_ASSET_TRANSFERS = "DELETE:ASSET:TRANSFERS"
    READ_REPORTS = "READ:REPORTS"

    @classmethod
    def all(cls) -> List[str]:
        return [v for k, v in vars(cls).items() if k.isupper() and isinstance(v, str)]


class ROLES:
    ADMIN = "admin"
    PROJECT_DIRECTOR = "project_director"
    SITE_ENGINEER = "site_engineer"
    STORE_KEEPER = "store_keeper"
    ACCOUNTANT = "accountant"
    PURCHASE_OFFICER = "purchase_officer"


# Roles that see every site regardless of site assignments
PRIVILEGED_ROLES: FrozenSet[str] = frozenset({ROLES.ADMIN, ROLES.PROJECT_DIRECTOR})
ADMIN_ONLY: FrozenSet[str] = frozenset({ROLES.ADMIN})

P = PERMISSIONS

_READ_ALL = [v for v in P.all() if v.startswith("READ:")]

ROLE_PERMISSIONS: Dict[str, List[str]] = {
    ROLES.ADMIN: P.all(),
    ROLES.PROJECT_DIRECTOR: _READ_ALL + [
        P.APPROVE_CASHBOOKS_L1, P.APPROVE_CASHBOOKS_L2, P.APPROVE_CASHBOOK_BUDGETS,
        P.GENERATE_CASHBOOK_BUDGET_REPORT, P.APPROVE_PURCHASE_ORDERS_L1,
        P.APPROVE_PURCHASE_ORDERS_L2, P.COMPLETE_PURCHASE_ORDERS, P.SUSPEND_PURCHASE_ORDERS,
        P.EDIT_INDENTS, P.EDIT_SITE_BUDGETS, P.APPROVE_MANPOWER_TRANSFERS,
        P.APPROVE_ASSET_TRANSFERS,
    ],
    ROLES.SITE_ENGINEER: [
        P.READ_SITES, P.READ_BOQS, P.READ_STOCKS, P.READ_INDENTS, P.CREATE_INDENTS,
        P.EDIT_INDENTS, P.READ_DAILY_CONSUMPTIONS, P.CREATE_DAILY_CONSUMPTIONS,
        P.READ_MANPOWER_ASSIGNMENTS, P.CREATE_MANPOWER_ASSIGNMENTS,
        P.READ_MANPOWER_TRANSFERS, P.CREATE_MANPOWER_TRANSFERS, P.DELETE_MANPOWER_TRANSFERS,
        P.READ_ASSET_TRANSFERS, P.CREATE_ASSET_TRANSFERS, P.READ_SITE_BUDGETS, P.READ_ASSETS,
    ],
    ROLES.STORE_KEEPER: [
        P.READ_SITES, P.READ_STOCKS, P.EDIT_STOCKS, P.READ_INWARD_DELIVERY_CHALLANS,
        P.CREATE_INWARD_DELIVERY_CHALLANS, P.READ_DAILY_CONSUMPTIONS,
        P.CREATE_DAILY_CONSUMPTIONS, P.READ_STOCK_ADJUSTMENTS, P.CREATE_STOCK_ADJUSTMENTS,
        P.READ_PURCHASE_ORDERS, P.READ_INDENTS, P.READ_REPORTS, P.READ_ASSETS,
        P.CREATE_ASSETS, P.EDIT_ASSETS,
    ],
    ROLES.ACCOUNTANT: [
        P.READ_SITES, P.READ_BOQS, P.READ_CASHBOOKS, P.CREATE_CASHBOOKS, P.EDIT_CASHBOOKS,
        P.DELETE_CASHBOOKS, P.APPROVE_CASHBOOKS_L1, P.READ_CASHBOOK_BUDGETS,
        P.EDIT_CASHBOOK_BUDGETS, P.GENERATE_CASHBOOK_BUDGET_REPORT, P.READ_REPORTS,
    ],
    ROLES.PURCHASE_OFFICER: [
        P.READ_SITES, P.READ_BOQS, P.READ_STOCKS, P.READ_SITE_BUDGETS,
        P.READ_PURCHASE_ORDERS, P.CREATE_PURCHASE_ORDERS, P.EDIT_PURCHASE_ORDERS,
        P.DELETE_PURCHASE_ORDERS, P.APPROVE_PURCHASE_ORDERS_L1, P.READ_INDENTS, P.READ_REPORTS,
    ],
}


# ============================================================================
# API Access Rules
# ============================================================================

@dataclass(frozen=True)
class ApiAccessRule:
    prefix: str
    permissions: Sequence[str] = ()
    methods: Dict[str, Sequence[str]] = field(default_factory=dict)


def _crud(read: str, create: str, edit: Optional[str] = None, delete: Optional[str] = None) -> Dict[str, Sequence[str]]:
    methods: Dict[str, Sequence[str]] = {"GET": [read], "POST": [create]}
    methods["PATCH"] = [edit or create]
    methods["PUT"] = [edit or create]
    methods["DELETE"] = [delete or edit or create]
    return methods


API_ACCESS_RULES: List[ApiAccessRule] = [
    ApiAccessRule("/api/sites", methods=_crud(P.READ_SITES, P.EDIT_SITES)),
    ApiAccessRule("/api/boqs", methods=_crud(P.READ_BOQS, P.EDIT_BOQS, delete=P.DELETE_BOQS)),
    ApiAccessRule(
        "/api/cashbooks",
        methods=_crud(P.READ_CASHBOOKS, P.CREATE_CASHBOOKS, P.EDIT_CASHBOOKS, P.DELETE_CASHBOOKS),
    ),
    ApiAccessRule("/api/cashbooks/last-balance", permissions=[P.READ_CASHBOOKS]),
    ApiAccessRule("/api/cashbooks/approvals", permissions=[P.READ_CASHBOOKS]),
    ApiAccessRule("/api/cashbook-heads", methods=_crud(P.READ_CASHBOOKS, P.EDIT_CASHBOOKS)),
    ApiAccessRule(
        "/api/cashbook-budgets",
        methods=_crud(P.READ_CASHBOOK_BUDGETS, P.EDIT_CASHBOOK_BUDGETS),
    ),
    ApiAccessRule("/api/cashbook-budgets/actions", permissions=[P.READ_CASHBOOK_BUDGETS]),
    ApiAccessRule(
        "/api/site-budgets",
        methods=_crud(P.READ_SITE_BUDGETS, P.EDIT_SITE_BUDGETS, delete=P.DELETE_SITE_BUDGETS),
    ),
    ApiAccessRule("/api/site-budgets/validate", permissions=[P.READ_SITE_BUDGETS]),
    ApiAccessRule("/api/stocks", methods=_crud(P.READ_STOCKS, P.EDIT_STOCKS)),
    ApiAccessRule("/api/opening-stocks", methods=_crud(P.READ_STOCKS, P.EDIT_STOCKS)),
    ApiAccessRule(
        "/api/inward-delivery-challans",
        methods=_crud(P.READ_INWARD_DELIVERY_CHALLANS, P.CREATE_INWARD_DELIVERY_CHALLANS),
    ),
    ApiAccessRule(
        "/api/daily-consumptions",
        methods=_crud(P.READ_DAILY_CONSUMPTIONS, P.CREATE_DAILY_CONSUMPTIONS),
    ),
    ApiAccessRule(
        "/api/stock-adjustments",
        methods=_crud(P.READ_STOCK_ADJUSTMENTS, P.CREATE_STOCK_ADJUSTMENTS),
    ),
    ApiAccessRule(
        "/api/purchase-orders",
        methods={"GET": [P.READ_PURCHASE_ORDERS], "POST": [P.CREATE_PURCHASE_ORDERS],
                 "PATCH": [P.READ_PURCHASE_ORDERS], "PUT": [P.EDIT_PURCHASE_ORDERS],
                 "DELETE": [P.DELETE_PURCHASE_ORDERS]},
    ),
    ApiAccessRule(
        "/api/indents",
        methods=_crud(P.READ_INDENTS, P.CREATE_INDENTS, P.EDIT_INDENTS, P.DELETE_INDENTS),
    ),
    ApiAccessRule(
        "/api/manpower-assignments",
        methods=_crud(P.READ_MANPOWER_ASSIGNMENTS, P.CREATE_MANPOWER_ASSIGNMENTS,
                      delete=P.DELETE_MANPOWER_ASSIGNMENTS),
    ),
    ApiAccessRule(
        "/api/manpower-transfers",
        methods={"GET": [P.READ_MANPOWER_TRANSFERS], "POST": [P.CREATE_MANPOWER_TRANSFERS],
                 "PATCH": [P.APPROVE_MANPOWER_TRANSFERS],
                 "DELETE": [P.DELETE_MANPOWER_TRANSFERS]},
    ),
    ApiAccessRule(
        "/api/assets",
        methods=_crud(P.READ_ASSETS, P.CREATE_ASSETS, P.EDIT_ASSETS, P.DELETE_ASSETS),
    ),
    ApiAccessRule(
        "/api/asset-transfers",
        methods={"GET": [P.READ_ASSET_TRANSFERS], "POST": [P.CREATE_ASSET_TRANSFERS],
                 "PATCH": [P.APPROVE_ASSET_TRANSFERS], "DELETE": [P.DELETE_ASSET_TRANSFERS]},
    ),
    ApiAccessRule("/api/reports", permissions=[P.READ_REPORTS]),
    ApiAccessRule(
        "/api/reports/cashbook-budgets",
        permissions=[P.GENERATE_CASHBOOK_BUDGET_REPORT],
    ),
]


def find_access_rule(path: str, method: str) -> Optional[List[str]]:
    """
    Required permissions for (path, method), or None when no rule matches.

    The longest matching prefix wins; its per-method list is used when the
    method is listed, else its fallback permissions.
    """
    match: Optional[ApiAccessRule] = None
    for rule in API_ACCESS_RULES:
        if path.startswith(rule.prefix):
            if match is None or len(rule.prefix) > len(match.prefix):
                match = rule
    if match is None:
        return None
    per_method = match.methods.get(method.upper())
    if per_method is not None:
        return list(per_method)
    return list(match.permissions)


# ============================================================================
# Authenticated User
# ============================================================================

@dataclass(frozen=True)
class AuthenticatedUser:
    id: int
    name: str
    role: str
    permissions: FrozenSet[str]

    @property
    def is_admin(self) -> bool:
        return self.role == ROLES.ADMIN

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    def has(self, permission: str) -> bool:
        return permission in self.permissions


def effective_permissions(user: User) -> FrozenSet[str]:
    """Role permissions (table + defaults for the role name) joined with user permissions."""
    perms = set(ROLE_PERMISSIONS.get(user.role.name, []))
    perms.update(p.name for p in user.role.permissions)
    perms.update(p.name for p in user.permissions)
    return frozenset(perms)


def _auth_error(status_code: int, error_code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={
            "error_code": error_code,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


def get_current_user(
    authorization: Optional[str] = Header(None, description="Bearer <user_id>"),
    db: Session = Depends(get_db),
) -> AuthenticatedUser:
    """Resolve the calling user from the Bearer header."""
    if not authorization or not authorization.startswith("Bearer "):
        logger.warning(f"[{AccessErrorCode.UNAUTHENTICATED}] Missing or malformed Authorization header")
        raise _auth_error(401, AccessErrorCode.UNAUTHENTICATED,
                          "Authorization header required. Use: Bearer <user_id>")

    token = authorization[7:].strip()
    if not token.isdigit():
        logger.warning(f"[{AccessErrorCode.UNAUTHENTICATED}] Invalid bearer token")
        raise _auth_error(401, AccessErrorCode.UNAUTHENTICATED, "Invalid bearer token")

    user = db.get(User, int(token))
    if user is None or not user.is_active:
        logger.warning(f"[{AccessErrorCode.USER_NOT_FOUND}] Unknown or inactive user | user_id={token}")
        raise _auth_error(404, AccessErrorCode.USER_NOT_FOUND, "User not found")

    return AuthenticatedUser(
        id=user.id,
        name=user.name,
        role=user.role.name,
        permissions=effective_permissions(user),
    )


def guard_api_access(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """Router-level dependency enforcing API_ACCESS_RULES."""
    required = find_access_rule(request.url.path, request.method) or []
    missing = [p for p in required if not user.has(p)]
    if missing:
        logger.warning(
            f"[{AccessErrorCode.FORBIDDEN}] Permission denied | user_id={user.id} | "
            f"path={request.url.path} | method={request.method} | missing={missing}"
        )
        raise _auth_error(403, AccessErrorCode.FORBIDDEN, "Forbidden")
    return user


def require_permission(user: AuthenticatedUser, permission: str, message: str) -> None:
    """Service-level permission check raising a domain error."""
    if not user.has(permission):
        raise PermissionDeniedError(message, AccessErrorCode.FORBIDDEN)


# ============================================================================
# Site Visibility
# ============================================================================

def _site_links(db: Session, user_id: int) -> List[int]:
    rows = db.execute(
        select(SiteEmployee.site_id).where(SiteEmployee.user_id == user_id)
    ).scalars().all()
    return sorted(set(rows))


def assigned_site_ids(
    db: Session,
    user: AuthenticatedUser,
    privileged_roles: FrozenSet[str] = PRIVILEGED_ROLES,
) -> Optional[List[int]]:
    """
    Site ids the user may see; None means every site.

    An empty list means the user sees nothing.
    """
    if user.role in privileged_roles:
        return None
    return _site_links(db, user.id)


def ensure_site_access(db: Session, user: AuthenticatedUser, site_id: Optional[int]) -> None:
    """Raise AUTH-004 when a non-admin user is not assigned to site_id."""
    if user.is_admin:
        return
    if site_id is None or site_id not in _site_links(db, user.id):
        raise PermissionDeniedError(
            "You are not assigned to this site", AccessErrorCode.SITE_NOT_ASSIGNED
        )
