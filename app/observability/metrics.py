"""
============================================================================
SiteLedger - Prometheus Metrics
============================================================================

Reliability Level: STANDARD
Input Constraints: Label values are short strings
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- siteledger_ledger_recomputes_total: Ledger recomputations by ledger type
- siteledger_ledger_rows_rewritten_total: Rows whose balances changed
- siteledger_ledger_recompute_seconds: Recompute duration histogram
- siteledger_budget_alerts_total: Site budget threshold alerts raised
- siteledger_approval_actions_total: Workflow actions by document and outcome
- siteledger_report_exports_total: Excel/PDF exports by report and format

Metric failures never interrupt the calling operation; they are logged
with OBS-001.

============================================================================
"""

import logging
from typing import Optional

from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

LEDGER_RECOMPUTES = Counter(
    "siteledger_ledger_recomputes_total",
    "Ledger recomputations executed",
    ["ledger"]
)

LEDGER_ROWS_REWRITTEN = Counter(
    "siteledger_ledger_rows_rewritten_total",
    "Ledger rows whose stored balances were rewritten",
    ["ledger"]
)

LEDGER_RECOMPUTE_SECONDS = Histogram(
    "siteledger_ledger_recompute_seconds",
    "Duration of ledger recomputations",
    ["ledger"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0]
)

BUDGET_ALERTS = Counter(
    "siteledger_budget_alerts_total",
    "Site budget consumption alerts raised",
    ["kind", "threshold"]
)

APPROVAL_ACTIONS = Counter(
    "siteledger_approval_actions_total",
    "Approval workflow actions",
    ["document", "action", "outcome"]
)

REPORT_EXPORTS = Counter(
    "siteledger_report_exports_total",
    "Report exports generated",
    ["report", "format"]
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_ledger_recompute(
    ledger: str,
    rows_rewritten: int,
    duration_seconds: float,
    correlation_id: Optional[str] = None
) -> None:
    """
    Record one ledger recomputation.

    Args:
        ledger: "cashbook", "cashbook_budget", "stock"
        rows_rewritten: Rows whose values changed
        duration_seconds: Wall time of the recomputation
        correlation_id: Optional tracking ID
    """
    try:
        LEDGER_RECOMPUTES.labels(ledger=ledger).inc()
        if rows_rewritten:
            LEDGER_ROWS_REWRITTEN.labels(ledger=ledger).inc(rows_rewritten)
        LEDGER_RECOMPUTE_SECONDS.labels(ledger=ledger).observe(duration_seconds)
        logger.debug(
            "Metric: ledger_recompute | ledger=%s | rows=%s | correlation_id=%s",
            ledger, rows_rewritten, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record ledger_recompute metric | error=%s",
            str(e)
        )


def record_budget_alert(kind: str, threshold: int) -> None:
    try:
        BUDGET_ALERTS.labels(kind=kind, threshold=str(threshold)).inc()
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record budget_alert metric | error=%s",
            str(e)
        )


def record_approval_action(document: str, action: str, outcome: str) -> None:
    """outcome is "applied" or the rejecting error code."""
    try:
        APPROVAL_ACTIONS.labels(document=document, action=action, outcome=outcome).inc()
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record approval_action metric | error=%s",
            str(e)
        )


def record_report_export(report: str, fmt: str) -> None:
    try:
        REPORT_EXPORTS.labels(report=report, format=fmt).inc()
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record report_export metric | error=%s",
            str(e)
        )
