"""
============================================================================
SiteLedger - Document Approval State Machines
============================================================================

Reliability Level: STANDARD
Traceability: All validations accept a correlation_id for audit logging

PURCHASE ORDER LIFECYCLE:
    DRAFT → APPROVED_LEVEL_1          (approve1)
    APPROVED_LEVEL_1 → APPROVED_LEVEL_2 (approve2)
    APPROVED_LEVEL_2 → COMPLETED      (complete)
    DRAFT / APPROVED_LEVEL_1 / APPROVED_LEVEL_2 → SUSPENDED (suspend)
    SUSPENDED → previous state        (unsuspend, restored from flags)

INDENT LIFECYCLE:
    DRAFT → APPROVED_1 → APPROVED_2 → COMPLETED
    Suspension is a flag beside the status; COMPLETED cannot be suspended.

ERROR CODES:
    - APR-001: Action not allowed from the current state
    - APR-002: Unknown action

============================================================================
"""

from typing import Dict, FrozenSet, List, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class ApprovalErrorCode:
    INVALID_TRANSITION = "APR-001"
    UNKNOWN_ACTION = "APR-002"


# =============================================================================
# Enums
# =============================================================================

class PurchaseOrderStatus(str, Enum):
    DRAFT = "DRAFT"
    APPROVED_LEVEL_1 = "APPROVED_LEVEL_1"
    APPROVED_LEVEL_2 = "APPROVED_LEVEL_2"
    COMPLETED = "COMPLETED"
    SUSPENDED = "SUSPENDED"


class IndentStatus(str, Enum):
    DRAFT = "DRAFT"
    APPROVED_1 = "APPROVED_1"
    APPROVED_2 = "APPROVED_2"
    COMPLETED = "COMPLETED"


# =============================================================================
# Workflow Definition
# =============================================================================

@dataclass(frozen=True)
class ApprovalWorkflow:
    """
    Action table for one document type.

    transitions maps an action name to (allowed source states, target state).
    A target of None means the service computes the target itself.
    """
    name: str
    transitions: Dict[str, Tuple[FrozenSet[str], Optional[str]]] = field(default_factory=dict)

    @property
    def actions(self) -> List[str]:
        return list(self.transitions.keys())

    def validate_action(
        self,
        current_state: str,
        action: str,
        correlation_id: Optional[str] = None
    ) -> Tuple[bool, Optional[str]]:
        """
        Check whether action may run from current_state.

        Returns:
            (True, None) when allowed, otherwise (False, error_code)
        """
        if action not in self.transitions:
            logger.error(
                f"[{ApprovalErrorCode.UNKNOWN_ACTION}] Unknown {self.name} action: {action} | "
                f"valid_actions={self.actions} | correlation_id={correlation_id}"
            )
            return (False, ApprovalErrorCode.UNKNOWN_ACTION)

        sources, _target = self.transitions[action]
        if current_state not in sources:
            logger.error(
                f"[{ApprovalErrorCode.INVALID_TRANSITION}] "
                f"{self.name} action '{action}' not allowed from {current_state} | "
                f"allowed_from={sorted(sources)} | correlation_id={correlation_id}"
            )
            return (False, ApprovalErrorCode.INVALID_TRANSITION)

        logger.debug(
            f"[APPROVAL] {self.name} action validated: {action} from {current_state} | "
            f"correlation_id={correlation_id}"
        )
        return (True, None)

    def target_state(self, action: str) -> Optional[str]:
        return self.transitions[action][1]


PO = PurchaseOrderStatus
IND = IndentStatus

PURCHASE_ORDER_WORKFLOW = ApprovalWorkflow(
    name="purchase_order",
    transitions={
        "approve1": (frozenset({PO.DRAFT.value}), PO.APPROVED_LEVEL_1.value),
        "approve2": (frozenset({PO.APPROVED_LEVEL_1.value}), PO.APPROVED_LEVEL_2.value),
        "complete": (frozenset({PO.APPROVED_LEVEL_2.value}), PO.COMPLETED.value),
        "suspend": (
            frozenset({PO.DRAFT.value, PO.APPROVED_LEVEL_1.value, PO.APPROVED_LEVEL_2.value}),
            PO.SUSPENDED.value,
        ),
        "unsuspend": (frozenset({PO.SUSPENDED.value}), None),
    },
)

INDENT_WORKFLOW = ApprovalWorkflow(
    name="indent",
    transitions={
        "approve1": (frozenset({IND.DRAFT.value}), IND.APPROVED_1.value),
        "approve2": (frozenset({IND.APPROVED_1.value}), IND.APPROVED_2.value),
        "complete": (frozenset({IND.APPROVED_2.value}), IND.COMPLETED.value),
        # suspension flags do not change the status
        "suspend": (frozenset({IND.DRAFT.value, IND.APPROVED_1.value, IND.APPROVED_2.value}), None),
        "unsuspend": (frozenset(s.value for s in IndentStatus), None),
    },
)


def restore_purchase_order_status(
    is_complete: bool,
    is_approved2: bool,
    is_approved1: bool
) -> str:
    """Status a suspended purchase order returns to, derived from its approval flags."""
    if is_complete:
        return PO.COMPLETED.value
    if is_approved2:
        return PO.APPROVED_LEVEL_2.value
    if is_approved1:
        return PO.APPROVED_LEVEL_1.value
    return PO.DRAFT.value


__all__ = [
    "ApprovalErrorCode",
    "ApprovalWorkflow",
    "PurchaseOrderStatus",
    "IndentStatus",
    "PURCHASE_ORDER_WORKFLOW",
    "INDENT_WORKFLOW",
    "restore_purchase_order_status",
]
