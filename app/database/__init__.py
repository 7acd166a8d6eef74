# ============================================================================
# SiteLedger - Database Module
# SQLAlchemy Session Management & ORM Models
# ============================================================================

from app.database.session import get_db, engine, SessionLocal
from app.database.models import Base

__all__ = ["get_db", "engine", "SessionLocal", "Base"]
