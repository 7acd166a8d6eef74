"""
============================================================================
SiteLedger - Database Session
SQLAlchemy Engine & Session Management
============================================================================

Reliability Level: STANDARD
Input Constraints: PostgreSQL connection (DATABASE_URL or DB_* variables)
Side Effects: Database connections

MANDATE:
- Every request runs inside one session; exceptions roll it back so ledger
  recomputations never apply partially
- All timestamps are stored in UTC

============================================================================
"""

import os
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================

def get_database_url() -> str:
    """
    Resolve the database URL.

    DATABASE_URL wins when set; otherwise a PostgreSQL URL is built from
    DB_HOST (localhost), DB_PORT (5432), DB_NAME (siteledger),
    DB_USER (siteledger) and DB_PASSWORD.
    """
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit

    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "siteledger")
    user = os.getenv("DB_USER", "siteledger")
    password = os.getenv("DB_PASSWORD", "")

    return f"postgresql://{user}:{password}@{host}:{port}/{name}"


def build_engine(url: str) -> Engine:
    """Create an engine; SQLite URLs skip the connection pool settings."""
    echo = os.getenv("DB_ECHO", "false").lower() == "true"

    if url.startswith("sqlite"):
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=echo,
        execution_options={
            "isolation_level": "READ COMMITTED"
        }
    )


# ============================================================================
# SQLALCHEMY ENGINE
# ============================================================================

DATABASE_URL = get_database_url()

# create_engine does not connect until first use
engine = build_engine(DATABASE_URL)


# ============================================================================
# SESSION FACTORY
# ============================================================================

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================

def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database session injection.

    Yields:
        Session: SQLAlchemy database session

    The session is rolled back on any exception and always closed.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ============================================================================
# CONNECTION EVENT LISTENERS
# ============================================================================

@event.listens_for(engine, "connect")
def set_timezone(dbapi_connection, connection_record):
    """Pin PostgreSQL sessions to UTC."""
    if engine.dialect.name != "postgresql":
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("SET timezone TO 'UTC'")
    cursor.close()


# ============================================================================
# HEALTH CHECK
# ============================================================================

def check_database_connection() -> bool:
    """
    Verify database connectivity.

    Raises:
        ConnectionError: If database connection fails
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        raise ConnectionError(f"Database connection failed: {e}") from e
