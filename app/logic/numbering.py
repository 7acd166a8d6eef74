# ============================================================================
# SiteLedger - Document Numbering
# ============================================================================
#
# Pure helpers building and parsing document numbers. Sequence lookups
# happen in the services; these functions only format and parse.
#
#   Voucher:          {month_code}/{day}/{seq}        e.g. A/5/3
#   Purchase order:   {company}/{fy}/{site_code}/{seq:05d}  e.g. DCTPL/25-26/PUN/00012
#   Indent:           IND-{n:05d}
#   Asset transfer:   CHN-{n:05d}
#   Manpower transfer MPT-{n:05d}
#   Inward challan:   NNNN-NNNN       e.g. 0001-0042
#   Daily consumption NNNN-NNNN
#
# Voucher month codes follow the financial year: April=A ... December=I,
# January=J, February=K, March=L.
#
# ============================================================================

from datetime import date
import re
from typing import Iterable, Optional

# Indexed by calendar month - 1
VOUCHER_MONTH_CODES = ("J", "K", "L", "A", "B", "C", "D", "E", "F", "G", "H", "I")

INDENT_PREFIX = "IND"
ASSET_PREFIX = "AST"
ASSET_TRANSFER_PREFIX = "CHN"
MANPOWER_TRANSFER_PREFIX = "MPT"
PAIRED_SERIAL_RE = re.compile(r"^(\d{4})-(\d{4})$")


def voucher_month_code(voucher_date: date) -> str:
    return VOUCHER_MONTH_CODES[voucher_date.month - 1]


def parse_voucher_sequence(voucher_no: Optional[str]) -> int:
    """Sequence part of a voucher number; 0 when it cannot be read."""
    if not voucher_no:
        return 0
    parts = voucher_no.split("/")
    if len(parts) < 3:
        return 0
    try:
        return int(parts[2])
    except ValueError:
        return 0


def format_voucher_no(voucher_date: date, existing_voucher_nos: Iterable[Optional[str]]) -> str:
    """
    Next voucher number for voucher_date.

    existing_voucher_nos are the numbers of vouchers dated in the same
    calendar month; the sequence continues from their maximum.
    """
    last_seq = max((parse_voucher_sequence(v) for v in existing_voucher_nos), default=0)
    return f"{voucher_month_code(voucher_date)}/{voucher_date.day}/{last_seq + 1}"


def financial_year_label(today: date) -> str:
    """Financial year (1 April - 31 March) as 'YY-YY'."""
    start_year = today.year if today.month >= 4 else today.year - 1
    return f"{start_year % 100:02d}-{(start_year + 1) % 100:02d}"


def purchase_order_prefix(company_code: str, fy_label: str, site_code: str) -> str:
    return f"{company_code}/{fy_label}/{site_code}/"


def format_purchase_order_no(prefix: str, last_po_no: Optional[str]) -> str:
    """Next PO number under prefix given the highest existing number with that prefix."""
    next_seq = 1
    if last_po_no and last_po_no.startswith(prefix):
        tail = last_po_no[len(prefix):]
        if tail.isdigit():
            next_seq = int(tail) + 1
    return f"{prefix}{next_seq:05d}"


def format_serial_no(prefix: str, last_no: Optional[str]) -> str:
    """Next '{prefix}-{n:05d}' number after last_no (the latest issued number)."""
    next_number = 1
    if last_no:
        match = re.match(rf"^{re.escape(prefix)}-(\d+)$", last_no)
        if match:
            next_number = int(match.group(1)) + 1
    return f"{prefix}-{next_number:05d}"


def format_indent_no(existing_count: int) -> str:
    return f"{INDENT_PREFIX}-{existing_count + 1:05d}"


def format_paired_serial_no(latest_numbers: Iterable[Optional[str]]) -> str:
    """
    Next 'NNNN-NNNN' number used by inward challans and daily consumptions.

    The right part counts 1..9999 and then rolls over into the left part.
    latest_numbers are candidates in descending order; the first one that
    matches the pattern is the latest issued number.
    """
    left, right = 1, 1
    for number in latest_numbers:
        match = PAIRED_SERIAL_RE.match(number or "")
        if match:
            left, right = int(match.group(1)), int(match.group(2)) + 1
            if right > 9999:
                left, right = left + 1, 1
            break
    return f"{left:04d}-{right:04d}"
