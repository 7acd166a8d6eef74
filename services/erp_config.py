"""
============================================================================
SiteLedger - Configuration
============================================================================

Reliability Level: STANDARD
Decimal Integrity: Monetary limits are parsed as decimal.Decimal
Side Effects: Reads environment variables (after load_dotenv)

This module provides configuration management for the ERP services:
- Environment variable parsing with type safety
- Default values for optional configuration
- Validation of ranges with fail-closed behavior (CFG-001)

ENVIRONMENT VARIABLES:
    - SITELEDGER_COMPANY_CODE: Prefix of purchase order numbers (default: DCTPL)
    - PO_AUTO_APPROVE_LIMIT: PO amount up to which level-1 approval also
      grants level 2 (default: 100000.00)
    - SITE_BUDGET_VALIDATION_ENABLED: Block POs exceeding site budget qty
      (default: false)
    - DEFAULT_PAGE_SIZE: Default list page size (default: 10)
    - MAX_PAGE_SIZE: Upper bound for perPage (default: 100)
    - BUDGET_ALERT_THRESHOLDS: Comma-separated consumption percentages
      that raise site budget alerts (default: 50,75)

ERROR CODES:
    - CFG-001: Configuration value out of range

============================================================================
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional, List, Tuple
from dataclasses import dataclass, field
import logging
import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class ERPConfigErrorCode:
    """Configuration error codes for audit logging."""
    OUT_OF_RANGE = "CFG-001"


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_COMPANY_CODE = "DCTPL"
DEFAULT_PO_AUTO_APPROVE_LIMIT = Decimal("100000.00")
DEFAULT_SITE_BUDGET_VALIDATION_ENABLED = False
DEFAULT_PAGE_SIZE = 10
DEFAULT_MAX_PAGE_SIZE = 100
DEFAULT_BUDGET_ALERT_THRESHOLDS: Tuple[int, ...] = (50, 75)


# =============================================================================
# Configuration Exception
# =============================================================================

class ERPConfigurationError(Exception):
    """Raised when a configuration value cannot be used."""

    def __init__(self, message: str, error_code: str = ERPConfigErrorCode.OUT_OF_RANGE):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


def _parse_bool(raw: str) -> bool:
    return raw.lower().strip() in ("true", "1", "yes", "on")


def _parse_int(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(
            f"[ERP-CONFIG] Invalid {name} value: {raw}, using default: {default}"
        )
        return default


def _parse_thresholds(raw: str) -> Tuple[int, ...]:
    values: List[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            values.append(int(part))
        except ValueError:
            logger.warning(
                f"[ERP-CONFIG] Invalid BUDGET_ALERT_THRESHOLDS entry: {part}, "
                f"using default: {DEFAULT_BUDGET_ALERT_THRESHOLDS}"
            )
            return DEFAULT_BUDGET_ALERT_THRESHOLDS
    return tuple(sorted(set(values))) or DEFAULT_BUDGET_ALERT_THRESHOLDS


# =============================================================================
# ERPConfig Class
# =============================================================================

@dataclass
class ERPConfig:
    """
    ERP service configuration.

    ============================================================================
    CONFIGURATION PARAMETERS:
    ============================================================================
    - company_code: Purchase order number prefix
    - po_auto_approve_limit: Level-1 approval auto-advances to level 2 when
      the PO amount is at or below this limit
    - site_budget_validation_enabled: Enforce site budget qty on POs
    - default_page_size / max_page_size: Pagination bounds
    - budget_alert_thresholds: Consumption percentages raising alerts
    ============================================================================
    """

    company_code: str = DEFAULT_COMPANY_CODE
    po_auto_approve_limit: Decimal = field(default_factory=lambda: DEFAULT_PO_AUTO_APPROVE_LIMIT)
    site_budget_validation_enabled: bool = DEFAULT_SITE_BUDGET_VALIDATION_ENABLED
    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE
    budget_alert_thresholds: Tuple[int, ...] = DEFAULT_BUDGET_ALERT_THRESHOLDS

    def __post_init__(self) -> None:
        if not isinstance(self.po_auto_approve_limit, Decimal):
            self.po_auto_approve_limit = Decimal(str(self.po_auto_approve_limit))
        self.po_auto_approve_limit = self.po_auto_approve_limit.quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )

    def validate(self) -> None:
        """
        Validate configuration ranges.

        Raises:
            ERPConfigurationError: CFG-001 if any value is out of range
        """
        errors: List[str] = []

        if not self.company_code.strip():
            errors.append("SITELEDGER_COMPANY_CODE must not be empty")

        if self.po_auto_approve_limit < Decimal("0"):
            errors.append(
                f"PO_AUTO_APPROVE_LIMIT must be non-negative, got: {self.po_auto_approve_limit}"
            )

        if self.max_page_size < 1:
            errors.append(f"MAX_PAGE_SIZE must be positive, got: {self.max_page_size}")

        if not 1 <= self.default_page_size <= max(self.max_page_size, 1):
            errors.append(
                f"DEFAULT_PAGE_SIZE must be between 1 and {self.max_page_size}, "
                f"got: {self.default_page_size}"
            )

        for threshold in self.budget_alert_thresholds:
            if not 0 < threshold <= 100:
                errors.append(
                    f"BUDGET_ALERT_THRESHOLDS entries must be in (0, 100], got: {threshold}"
                )

        if errors:
            error_msg = "ERP configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{ERPConfigErrorCode.OUT_OF_RANGE}] {error_msg}")
            raise ERPConfigurationError(error_msg)

        logger.info(
            f"[ERP-CONFIG] Configuration validated | "
            f"company_code={self.company_code} | "
            f"po_auto_approve_limit={self.po_auto_approve_limit} | "
            f"site_budget_validation_enabled={self.site_budget_validation_enabled} | "
            f"budget_alert_thresholds={list(self.budget_alert_thresholds)}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "ERPConfig":
        """
        Load configuration from environment variables.

        Args:
            validate: Whether to validate configuration after loading

        Returns:
            ERPConfig instance with values from environment
        """
        company_code = os.environ.get("SITELEDGER_COMPANY_CODE", DEFAULT_COMPANY_CODE).strip()

        limit_str = os.environ.get("PO_AUTO_APPROVE_LIMIT", str(DEFAULT_PO_AUTO_APPROVE_LIMIT))
        try:
            po_auto_approve_limit = Decimal(limit_str.strip())
        except InvalidOperation:
            logger.warning(
                f"[ERP-CONFIG] Invalid PO_AUTO_APPROVE_LIMIT value: {limit_str}, "
                f"using default: {DEFAULT_PO_AUTO_APPROVE_LIMIT}"
            )
            po_auto_approve_limit = DEFAULT_PO_AUTO_APPROVE_LIMIT

        validation_enabled = _parse_bool(
            os.environ.get("SITE_BUDGET_VALIDATION_ENABLED", "false")
        )

        thresholds = _parse_thresholds(
            os.environ.get(
                "BUDGET_ALERT_THRESHOLDS",
                ",".join(str(t) for t in DEFAULT_BUDGET_ALERT_THRESHOLDS),
            )
        )

        config = cls(
            company_code=company_code,
            po_auto_approve_limit=po_auto_approve_limit,
            site_budget_validation_enabled=validation_enabled,
            default_page_size=_parse_int("DEFAULT_PAGE_SIZE", DEFAULT_PAGE_SIZE),
            max_page_size=_parse_int("MAX_PAGE_SIZE", DEFAULT_MAX_PAGE_SIZE),
            budget_alert_thresholds=thresholds,
        )

        logger.info(
            f"[ERP-CONFIG] Loading configuration from environment | "
            f"SITELEDGER_COMPANY_CODE={config.company_code} | "
            f"SITE_BUDGET_VALIDATION_ENABLED={config.site_budget_validation_enabled}"
        )

        if validate:
            config.validate()

        return config

    def to_dict(self) -> dict:
        return {
            "company_code": self.company_code,
            "po_auto_approve_limit": str(self.po_auto_approve_limit),
            "site_budget_validation_enabled": self.site_budget_validation_enabled,
            "default_page_size": self.default_page_size,
            "max_page_size": self.max_page_size,
            "budget_alert_thresholds": list(self.budget_alert_thresholds),
        }


# =============================================================================
# Module-Level Configuration Instance
# =============================================================================

_config_instance: Optional[ERPConfig] = None


def get_erp_config(validate: bool = True) -> ERPConfig:
    """Return the process-wide configuration, loading it on first access."""
    global _config_instance

    if _config_instance is None:
        _config_instance = ERPConfig.from_environment(validate=validate)

    return _config_instance


def reset_erp_config() -> None:
    """Drop the cached configuration (used by tests)."""
    global _config_instance
    _config_instance = None
    logger.debug("[ERP-CONFIG] Configuration instance reset")


__all__ = [
    "ERPConfig",
    "ERPConfigurationError",
    "ERPConfigErrorCode",
    "DEFAULT_COMPANY_CODE",
    "DEFAULT_PO_AUTO_APPROVE_LIMIT",
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_MAX_PAGE_SIZE",
    "DEFAULT_BUDGET_ALERT_THRESHOLDS",
    "get_erp_config",
    "reset_erp_config",
]
