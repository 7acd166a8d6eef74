"""
============================================================================
SiteLedger - PDF Reports
============================================================================

reportlab documents returned as bytes:

    daily_cashbook_pdf()     vouchers of one day with running balances
    cashbook_budget_pdf()    one monthly cashbook budget

============================================================================
"""

from io import BytesIO
from typing import Any, Dict, List

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.logic.amount_words import amount_in_words
from app.logic.decimal_gateway import format_inr

PDF_MEDIA_TYPE = "application/pdf"

HEADER_BG = colors.HexColor("#2C3E50")


def _table_style() -> TableStyle:
    return TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_BG),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
        ("ALIGN", (-4, 1), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ])


def _build(elements: List[Any], pagesize=A4) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=pagesize, rightMargin=30, leftMargin=30, topMargin=30, bottomMargin=30)
    doc.build(elements)
    return buffer.getvalue()


def _styles():
    styles = getSampleStyleSheet()
    title = ParagraphStyle("SLTitle", parent=styles["Title"], fontSize=16, textColor=HEADER_BG)
    sub = ParagraphStyle("SLSub", parent=styles["Normal"], fontSize=9, textColor=colors.HexColor("#7F8C8D"))
    return title, sub, styles["Normal"]


def daily_cashbook_pdf(site: str, day: str, rows: List[Dict[str, Any]], totals: Dict[str, Any]) -> bytes:
    title, sub, normal = _styles()
    elements: List[Any] = [
        Paragraph("Daily Cashbook", title),
        Paragraph(f"Site: {site} | Date: {day}", sub),
        Spacer(1, 12),
    ]
    data = [["Voucher No", "Cashbook Head", "Description", "Opening", "Received", "Paid", "Closing"]]
    for r in rows:
        data.append([
            r["voucherNo"] or "",
            r["cashbookHead"],
            Paragraph(r["description"], normal),
            format_inr(r["openingBalance"]),
            format_inr(r["amountReceived"]),
            format_inr(r["amountPaid"]),
            format_inr(r["closingBalance"]),
        ])
    data.append(["", "", "Total", "", format_inr(totals["amountReceived"]), format_inr(totals["amountPaid"]), ""])

    table = Table(data, colWidths=[70, 110, 260, 80, 80, 80, 80], repeatRows=1)
    table.setStyle(_table_style())
    elements.append(table)
    return _build(elements, landscape(A4))


def cashbook_budget_pdf(budget: Dict[str, Any]) -> bytes:
    title, sub, normal = _styles()
    elements: List[Any] = [
        Paragraph(f"Cashbook Budget: {budget['name']}", title),
        Paragraph(f"Site: {budget.get('site') or ''} | Month: {budget['month']}", sub),
        Spacer(1, 12),
    ]
    data = [["Sr", "Cashbook Head", "Description", "Amount", "Approved (L1)", "Approved", "Received"]]
    for n, item in enumerate(budget["budgetItems"], 1):
        data.append([
            str(n),
            item.get("cashbookHead") or "",
            Paragraph(item.get("description") or "", normal),
            format_inr(item["amount"]),
            format_inr(item.get("approved1Amount") or 0),
            format_inr(item.get("approvedAmount") or 0),
            format_inr(item.get("receivedAmount") or 0),
        ])
    data.append([
        "", "", "Total",
        format_inr(budget.get("totalBudget") or 0),
        format_inr(budget.get("approved1BudgetAmount") or 0),
        format_inr(budget.get("approvedBudgetAmount") or 0),
        format_inr(budget.get("totalReceivedAmount") or 0),
    ])

    table = Table(data, colWidths=[25, 90, 150, 60, 60, 60, 60], repeatRows=1)
    table.setStyle(_table_style())
    elements.append(table)
    elements.append(Spacer(1, 10))
    elements.append(Paragraph(amount_in_words(budget.get("totalBudget") or 0), normal))
    if budget.get("remarks"):
        elements.append(Paragraph(f"Remarks: {budget['remarks']}", normal))
    return _build(elements)
