# ============================================================================
# SiteLedger - API Routes Module
# ============================================================================

from app.api.budgets import router as budgets_router
from app.api.cashbooks import router as cashbooks_router
from app.api.procurement import router as procurement_router
from app.api.reports import router as reports_router
from app.api.sites import router as sites_router
from app.api.stocks import router as stocks_router
from app.api.workforce import router as workforce_router

API_ROUTERS = [
    sites_router,
    cashbooks_router,
    budgets_router,
    stocks_router,
    procurement_router,
    workforce_router,
    reports_router,
]

__all__ = ["API_ROUTERS"]
