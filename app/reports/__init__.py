# ============================================================================
# SiteLedger - Report Writers
# Excel (openpyxl) and PDF (reportlab) renderers returning bytes
# ============================================================================
