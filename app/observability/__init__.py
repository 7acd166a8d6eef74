"""
============================================================================
SiteLedger - Observability Module
============================================================================

Side Effects: Exposes Prometheus metrics

============================================================================
"""

from app.observability.metrics import (
    record_ledger_recompute,
    record_budget_alert,
    record_approval_action,
    record_report_export,
)

__all__ = [
    "record_ledger_recompute",
    "record_budget_alert",
    "record_approval_action",
    "record_report_export",
]
