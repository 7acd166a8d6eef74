# ============================================================================
# SiteLedger - Access Control Module
# ============================================================================

from app.auth.access_control import (
    AuthenticatedUser,
    PERMISSIONS,
    ROLES,
    get_current_user,
    guard_api_access,
)

__all__ = ["AuthenticatedUser", "PERMISSIONS", "ROLES", "get_current_user", "guard_api_access"]
