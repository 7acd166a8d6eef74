# ============================================================================
# SiteLedger - Decimal Gateway
# ============================================================================
#
# Reliability Level: STANDARD
# Purpose: Every amount, quantity and rate enters the ledgers as decimal.Decimal
#
# RULES:
#   - Money (INR) uses 2 decimal places (0.01)
#   - Quantities and unit rates use 4 decimal places (0.0001)
#   - Rounding is ROUND_HALF_UP, matching the ledger's running balances
#   - Floats are converted through str() only
#
# Error Codes:
#   - DEC-001: Decimal conversion failed
#
# ============================================================================

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional, Union, Any
import logging

logger = logging.getLogger(__name__)

Number = Union[Decimal, str, int, float, None]

MONEY_PRECISION = Decimal('0.01')
QTY_PRECISION = Decimal('0.0001')
RATE_PRECISION = Decimal('0.0001')
ZERO = Decimal('0')


class DecimalGateway:
    """
    Central conversion layer for ledger numbers.

    Example Usage:
        gateway = DecimalGateway()
        amount = gateway.to_money(1234.565)   # Decimal('1234.57')
        qty = gateway.to_qty("12.34567")      # Decimal('12.3457')
    """

    MONEY_PRECISION = MONEY_PRECISION
    QTY_PRECISION = QTY_PRECISION
    RATE_PRECISION = RATE_PRECISION

    def to_decimal(
        self,
        value: Number,
        precision: Optional[Decimal] = None,
        correlation_id: Optional[str] = None
    ) -> Decimal:
        """
        Convert any numeric value to Decimal with ROUND_HALF_UP.

        None converts to zero. Booleans are rejected.

        Raises:
            ValueError: If value cannot be converted (DEC-001)
        """
        if precision is None:
            precision = self.MONEY_PRECISION

        if value is None:
            return ZERO.quantize(precision, rounding=ROUND_HALF_UP)

        try:
            if isinstance(value, bool):
                raise TypeError("boolean is not a number")
            decimal_value = value if isinstance(value, Decimal) else Decimal(str(value).strip())
            if not decimal_value.is_finite():
                raise InvalidOperation("non-finite value")
            return decimal_value.quantize(precision, rounding=ROUND_HALF_UP)

        except (InvalidOperation, ValueError, TypeError) as e:
            logger.error(
                f"[DEC-001] Decimal conversion failed | "
                f"value={value!r} | type={type(value).__name__} | "
                f"correlation_id={correlation_id} | error={e}"
            )
            raise ValueError(f"DEC-001: Cannot convert '{value}' to Decimal") from e

    def to_money(self, value: Number, correlation_id: Optional[str] = None) -> Decimal:
        return self.to_decimal(value, self.MONEY_PRECISION, correlation_id)

    def to_qty(self, value: Number, correlation_id: Optional[str] = None) -> Decimal:
        return self.to_decimal(value, self.QTY_PRECISION, correlation_id)

    def to_rate(self, value: Number, correlation_id: Optional[str] = None) -> Decimal:
        return self.to_decimal(value, self.RATE_PRECISION, correlation_id)

    def safe_divide(
        self,
        numerator: Number,
        denominator: Number,
        precision: Optional[Decimal] = None
    ) -> Decimal:
        """
        Divide two values, returning zero when the denominator is not positive.

        Used for moving-average unit rates (value / stock).
        """
        den = self.to_decimal(denominator, Decimal('0.00000001'))
        if den <= ZERO:
            return self.to_decimal(0, precision or self.RATE_PRECISION)
        num = self.to_decimal(numerator, Decimal('0.00000001'))
        return (num / den).quantize(precision or self.RATE_PRECISION, rounding=ROUND_HALF_UP)

    def validate_decimal(
        self,
        value: Any,
        field_name: str,
        correlation_id: Optional[str] = None
    ) -> bool:
        """Return True when value is already a Decimal; log DEC-001 otherwise."""
        if not isinstance(value, Decimal):
            logger.error(
                f"[DEC-001] Non-Decimal value detected | "
                f"field={field_name} | type={type(value).__name__} | "
                f"value={value} | correlation_id={correlation_id}"
            )
            return False
        return True

    def format_inr(self, value: Number, correlation_id: Optional[str] = None) -> str:
        """Format as an INR string with Indian digit grouping, e.g. "Rs 12,34,567.50"."""
        amount = self.to_money(value, correlation_id)
        sign = "-" if amount < ZERO else ""
        whole, _, fraction = f"{abs(amount):.2f}".partition(".")
        if len(whole) > 3:
            head, tail = whole[:-3], whole[-3:]
            groups = []
            while len(head) > 2:
                groups.insert(0, head[-2:])
                head = head[:-2]
            if head:
                groups.insert(0, head)
            whole = ",".join(groups + [tail])
        return f"Rs {sign}{whole}.{fraction}"


# ============================================================================
# Module-level convenience functions
# ============================================================================

_gateway = DecimalGateway()


def to_decimal(
    value: Number,
    precision: Optional[Decimal] = None,
    correlation_id: Optional[str] = None
) -> Decimal:
    return _gateway.to_decimal(value, precision, correlation_id)


def to_money(value: Number, correlation_id: Optional[str] = None) -> Decimal:
    return _gateway.to_money(value, correlation_id)


def to_qty(value: Number, correlation_id: Optional[str] = None) -> Decimal:
    return _gateway.to_qty(value, correlation_id)


def to_rate(value: Number, correlation_id: Optional[str] = None) -> Decimal:
    return _gateway.to_rate(value, correlation_id)


def safe_divide(numerator: Number, denominator: Number, precision: Optional[Decimal] = None) -> Decimal:
    return _gateway.safe_divide(numerator, denominator, precision)


def format_inr(value: Number) -> str:
    return _gateway.format_inr(value)
