"""
============================================================================
SiteLedger - Excel Reports
============================================================================

openpyxl workbooks returned as bytes:

    cashbook_details_workbook()   voucher details with running balances
    cashbook_budget_workbook()    one monthly cashbook budget
    site_budget_workbook()        site budget lines with consumption
    overall_stock_workbook()      closing stock per item over all sites

============================================================================
"""

from io import BytesIO
from typing import Any, Dict, Iterable, List, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2C3E50", end_color="2C3E50", fill_type="solid")
TITLE_FONT = Font(bold=True, size=14)
TOTAL_FONT = Font(bold=True)
CENTER = Alignment(horizontal="center", vertical="center")
THIN_BORDER = Border(
    left=Side(style="thin"), right=Side(style="thin"), top=Side(style="thin"), bottom=Side(style="thin")
)
MONEY_FORMAT = "#,##0.00"
QTY_FORMAT = "#,##0.0000"


def _sheet(wb: Workbook, title: str, heading: str, headers: Sequence[str]):
    ws = wb.active
    ws.title = title[:31]
    ws.cell(row=1, column=1, value=heading).font = TITLE_FONT
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(headers))
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=3, column=col, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = CENTER
        cell.border = THIN_BORDER
    return ws


def _write_rows(ws, rows: Iterable[Sequence[Any]], formats: Dict[int, str], start_row: int = 4) -> int:
    row_idx = start_row
    for values in rows:
        for col, value in enumerate(values, 1):
            cell = ws.cell(row=row_idx, column=col, value=value)
            cell.border = THIN_BORDER
            if col in formats:
                cell.number_format = formats[col]
        row_idx += 1
    return row_idx


def _finish(ws, widths: Sequence[int]) -> bytes:
    for col, width in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(col)].width = width
    ws.freeze_panes = "A4"
    buffer = BytesIO()
    ws.parent.save(buffer)
    return buffer.getvalue()


def _num(value: Any) -> float:
    return float(value or 0)


def cashbook_details_workbook(site: str, period: str, rows: List[Dict[str, Any]], totals: Dict[str, Any]) -> bytes:
    wb = Workbook()
    headers = ["Date", "Voucher No", "Cashbook Head", "Description", "Opening", "Received", "Paid", "Closing"]
    ws = _sheet(wb, "Cashbook Details", f"Cashbook Details - {site} ({period})", headers)
    next_row = _write_rows(
        ws,
        (
            [r["voucherDate"], r["voucherNo"], r["cashbookHead"], r["description"],
             _num(r["openingBalance"]), _num(r["amountReceived"]), _num(r["amountPaid"]),
             _num(r["closingBalance"])]
            for r in rows
        ),
        {1: "DD-MM-YYYY", 5: MONEY_FORMAT, 6: MONEY_FORMAT, 7: MONEY_FORMAT, 8: MONEY_FORMAT},
    )
    ws.cell(row=next_row, column=4, value="Total").font = TOTAL_FONT
    for col, key in ((6, "amountReceived"), (7, "amountPaid")):
        cell = ws.cell(row=next_row, column=col, value=_num(totals[key]))
        cell.font = TOTAL_FONT
        cell.number_format = MONEY_FORMAT
    return _finish(ws, [12, 14, 24, 40, 14, 14, 14, 14])


def cashbook_budget_workbook(budget: Dict[str, Any]) -> bytes:
    wb = Workbook()
    headers = ["Sr", "Cashbook Head", "Description", "Amount", "Approved (L1)", "Approved", "Received"]
    ws = _sheet(
        wb,
        "Cashbook Budget",
        f"{budget['name']} - {budget.get('site') or ''} ({budget['month']})",
        headers,
    )
    next_row = _write_rows(
        ws,
        (
            [n, item.get("cashbookHead") or "", item.get("description") or "", _num(item["amount"]),
             _num(item.get("approved1Amount")), _num(item.get("approvedAmount")),
             _num(item.get("receivedAmount"))]
            for n, item in enumerate(budget["budgetItems"], 1)
        ),
        {4: MONEY_FORMAT, 5: MONEY_FORMAT, 6: MONEY_FORMAT, 7: MONEY_FORMAT},
    )
    ws.cell(row=next_row, column=3, value="Total").font = TOTAL_FONT
    for col, key in ((4, "totalBudget"), (5, "approved1BudgetAmount"),
                     (6, "approvedBudgetAmount"), (7, "totalReceivedAmount")):
        cell = ws.cell(row=next_row, column=col, value=_num(budget.get(key)))
        cell.font = TOTAL_FONT
        cell.number_format = MONEY_FORMAT
    return _finish(ws, [6, 26, 40, 14, 14, 14, 14])


def site_budget_workbook(site: str, rows: List[Dict[str, Any]]) -> bytes:
    wb = Workbook()
    headers = ["Item", "Budget Qty", "Budget Rate", "Budget Value", "Ordered Qty",
               "Avg Rate", "Ordered Value", "Qty %", "Value %"]
    ws = _sheet(wb, "Site Budget", f"Site Budget - {site}", headers)

    def pct(part: Any, whole: Any) -> float:
        whole = _num(whole)
        return round(_num(part) / whole * 100, 2) if whole else 0.0

    _write_rows(
        ws,
        (
            [r["item"], _num(r["budgetQty"]), _num(r["budgetRate"]), _num(r["budgetValue"]),
             _num(r["orderedQty"]), _num(r["avgRate"]), _num(r["orderedValue"]),
             pct(r["orderedQty"], r["budgetQty"]), pct(r["orderedValue"], r["budgetValue"])]
            for r in rows
        ),
        {2: QTY_FORMAT, 3: MONEY_FORMAT, 4: MONEY_FORMAT, 5: QTY_FORMAT, 6: MONEY_FORMAT,
         7: MONEY_FORMAT, 8: "0.00", 9: "0.00"},
    )
    return _finish(ws, [32, 14, 14, 16, 14, 14, 16, 10, 10])


def overall_stock_workbook(rows: List[Dict[str, Any]]) -> bytes:
    wb = Workbook()
    headers = ["Item Code", "Item", "Closing Stock", "Unit Rate", "Closing Value"]
    ws = _sheet(wb, "Overall Stock", "Overall Stock", headers)
    next_row = _write_rows(
        ws,
        (
            [r["itemCode"], r["item"], _num(r["closingStock"]), _num(r["unitRate"]), _num(r["closingValue"])]
            for r in rows
        ),
        {3: QTY_FORMAT, 4: MONEY_FORMAT, 5: MONEY_FORMAT},
    )
    ws.cell(row=next_row, column=2, value="Total").font = TOTAL_FONT
    cell = ws.cell(row=next_row, column=5, value=sum(_num(r["closingValue"]) for r in rows))
    cell.font = TOTAL_FONT
    cell.number_format = MONEY_FORMAT
    return _finish(ws, [16, 36, 16, 14, 16])
