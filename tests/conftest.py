"""
============================================================================
SiteLedger - Shared Test Fixtures
============================================================================

Every test gets its own in-memory SQLite database with the full schema,
a clean ERP configuration and a seeded set of masters:

    sites       site_a (PUN), site_b (MUM), site_nocode (no site code)
    users       one per role; engineer/accountant/store keeper/purchase
                officer are assigned to site_a only
    items       cement, steel, sand (+ units)
    heads       Labour, Material
    manpower    three unassigned workers
    assets      two available assets

============================================================================
"""

import os
import sys
from types import SimpleNamespace

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# app.database.session builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.access_control import ROLES, AuthenticatedUser, effective_permissions
from app.database.models import (
    Asset,
    Base,
    CashbookHead,
    Item,
    Manpower,
    Role,
    Site,
    SiteEmployee,
    Unit,
    User,
    Vendor,
)
from services.erp_config import reset_erp_config


ERP_ENV_VARS = [
    "SITELEDGER_COMPANY_CODE",
    "PO_AUTO_APPROVE_LIMIT",
    "SITE_BUDGET_VALIDATION_ENABLED",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "BUDGET_ALERT_THRESHOLDS",
]


# ============================================================================
# Configuration isolation
# ============================================================================

@pytest.fixture(autouse=True)
def clean_erp_env():
    """Remove ERP variables and drop the cached configuration around each test."""
    saved = {name: os.environ.pop(name) for name in ERP_ENV_VARS if name in os.environ}
    reset_erp_config()
    yield
    for name in ERP_ENV_VARS:
        os.environ.pop(name, None)
    os.environ.update(saved)
    reset_erp_config()


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    factory = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)
    session = factory()
    try:
        yield session
    finally:
        session.close()


def as_authenticated(user: User) -> AuthenticatedUser:
    return AuthenticatedUser(
        id=user.id,
        name=user.name,
        role=user.role.name,
        permissions=effective_permissions(user),
    )


@pytest.fixture
def seed(db_session):
    """Masters shared by the service and API tests."""
    db = db_session

    roles = {name: Role(name=name) for name in (
        ROLES.ADMIN, ROLES.PROJECT_DIRECTOR, ROLES.SITE_ENGINEER,
        ROLES.STORE_KEEPER, ROLES.ACCOUNTANT, ROLES.PURCHASE_OFFICER,
    )}
    db.add_all(roles.values())

    site_a = Site(site="Pune Metro Package 4", site_code="PUN", short_name="PMP4")
    site_b = Site(site="Mumbai Coastal Road", site_code="MUM", short_name="MCR")
    site_nocode = Site(site="Nashik Warehouse", site_code=None)
    db.add_all([site_a, site_b, site_nocode])

    users = {
        "admin": User(name="Asha Admin", email="admin@example.com", role=roles[ROLES.ADMIN]),
        "director": User(name="Dev Director", email="director@example.com", role=roles[ROLES.PROJECT_DIRECTOR]),
        "engineer": User(name="Esha Engineer", email="engineer@example.com", role=roles[ROLES.SITE_ENGINEER]),
        "store": User(name="Sam Store", email="store@example.com", role=roles[ROLES.STORE_KEEPER]),
        "accountant": User(name="Anil Accounts", email="accounts@example.com", role=roles[ROLES.ACCOUNTANT]),
        "purchase": User(name="Priya Purchase", email="purchase@example.com", role=roles[ROLES.PURCHASE_OFFICER]),
    }
    db.add_all(users.values())

    bag = Unit(unit_name="Bag")
    mt = Unit(unit_name="MT")
    cum = Unit(unit_name="CUM")
    db.add_all([bag, mt, cum])

    cement = Item(item_code="CEM-53", item="Cement OPC 53", unit=bag)
    steel = Item(item_code="TMT-12", item="TMT Steel 12mm", unit=mt)
    sand = Item(item_code="SND-01", item="River Sand", unit=cum)
    db.add_all([cement, steel, sand])

    vendor = Vendor(vendor_name="Shree Traders", gst_no="27AAACS1234A1Z5")
    labour = CashbookHead(cashbook_head_name="Labour")
    material = CashbookHead(cashbook_head_name="Material")
    db.add_all([vendor, labour, material])

    workers = [
        Manpower(first_name="Ramesh", last_name="Patil", category="Skilled", skill_set="Mason"),
        Manpower(first_name="Suresh", last_name="Jadhav", category="Unskilled", skill_set="Helper"),
        Manpower(first_name="Mahesh", last_name="Kale", category="Skilled", skill_set="Carpenter"),
    ]
    assets = [
        Asset(asset_no="AST-0001", asset_name="Concrete Mixer"),
        Asset(asset_no="AST-0002", asset_name="Bar Bending Machine"),
    ]
    db.add_all(workers + assets)
    db.flush()

    for key in ("engineer", "store", "accountant", "purchase"):
        db.add(SiteEmployee(site_id=site_a.id, user_id=users[key].id))
    db.commit()

    return SimpleNamespace(
        site_a=site_a,
        site_b=site_b,
        site_nocode=site_nocode,
        users=users,
        auth={key: as_authenticated(user) for key, user in users.items()},
        cement=cement,
        steel=steel,
        sand=sand,
        vendor=vendor,
        labour=labour,
        material=material,
        workers=workers,
        assets=assets,
    )
