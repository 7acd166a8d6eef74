"""
============================================================================
SiteLedger v1.0.0
FastAPI Application Entry Point
============================================================================

Reliability Level: STANDARD
Input Constraints: JSON over HTTPS, Authorization: Bearer <user_id>
Side Effects: Database writes through the service layer

MANDATE:
- Every /api route passes the access guard (permissions + site visibility)
- Money and quantities cross the boundary as Decimal strings
- Ledger recomputations commit with the write that triggered them
- Domain errors surface as {"error_code", "message", "timestamp"}

============================================================================
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.api import API_ROUTERS
from app.api.errors import erp_error_handler, error_detail
from app.database.session import check_database_connection, engine
from services.erp_config import get_erp_config
from services.erp_errors import ERPError

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"


# ============================================================================
# APPLICATION LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
        - Validate ERP configuration
        - Verify database connectivity
    Shutdown:
        - Dispose the connection pool
    """
    logger.info(f"[STARTUP] SiteLedger v{APP_VERSION} | time={datetime.now(timezone.utc).isoformat()}")

    config = get_erp_config(validate=True)
    logger.info(
        f"[STARTUP] Config loaded | company_code={config.company_code} | "
        f"po_auto_approve_limit={config.po_auto_approve_limit} | "
        f"site_budget_validation={config.site_budget_validation_enabled}"
    )

    try:
        check_database_connection()
        logger.info("[STARTUP] Database connection verified")
    except Exception as e:
        logger.critical(f"[DB-001] Database connection failed: {e}")
        raise

    yield

    engine.dispose()
    logger.info("[SHUTDOWN] Database connections closed")


# ============================================================================
# APPLICATION
# ============================================================================

app = FastAPI(
    title="SiteLedger",
    description=(
        "Construction site-management ERP backend.\n\n"
        "Cashbooks with running balances, monthly cashbook budgets, site item "
        "budgets with consumption alerts, stock ledgers, purchase orders, "
        "indents, manpower and asset transfers, Excel/PDF reports."
    ),
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

app.add_exception_handler(ERPError, erp_error_handler)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """No silent failures: log and return SYS-500."""
    error_code = "SYS-500"
    logger.exception(f"[{error_code}] Unhandled exception | path={request.url.path} | error={exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": error_detail(error_code, "Internal server error. This incident has been logged.")},
    )


# ============================================================================
# ROUTERS
# ============================================================================

for router in API_ROUTERS:
    app.include_router(router, prefix="/api")


# ============================================================================
# SYSTEM ENDPOINTS
# ============================================================================

@app.get("/", summary="System Status", tags=["System"])
async def root():
    return {
        "service": "SiteLedger",
        "version": APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get(
    "/health",
    summary="Health Check",
    description="Lightweight health check for load balancers and monitoring.",
    tags=["System"],
)
async def health_check():
    try:
        check_database_connection()
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected", "error": str(e)},
        )


@app.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="Exposes Prometheus metrics for observability.",
    tags=["Observability"],
)
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
