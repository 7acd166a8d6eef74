"""
============================================================================
SiteLedger - Domain Exceptions
============================================================================

Every service raises one of these with an error code; the API layer maps
the class to an HTTP status (see app/api/errors.py).

ERROR CODE PREFIXES:
    AUTH-xxx  Access control
    CB-xxx    Cashbook and voucher ledger
    CBB-xxx   Cashbook budget
    SB-xxx    Site budget
    STK-xxx   Stock ledger
    PO-xxx    Purchase orders
    IND-xxx   Indents
    MP-xxx    Manpower
    AST-xxx   Assets
    BOQ-xxx   Bill of quantities
    SYS-500   Unhandled failure

============================================================================
"""

from typing import Any, Dict, Optional


class ERPError(Exception):
    """Base class for domain errors carrying an error code."""

    def __init__(self, message: str, error_code: str, extra: Optional[Dict[str, Any]] = None):
        self.error_code = error_code
        self.message = message
        self.extra = extra or {}
        super().__init__(f"[{error_code}] {message}")


class NotFoundError(ERPError):
    pass


class ValidationError(ERPError):
    pass


class ConflictError(ERPError):
    pass


class PermissionDeniedError(ERPError):
    pass


class InvalidTransitionError(ERPError):
    pass


__all__ = [
    "ERPError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "PermissionDeniedError",
    "InvalidTransitionError",
]
