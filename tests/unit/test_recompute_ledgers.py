"""
Unit Tests for the Ledger Rebuild Job

Validates:
- Tampered balances, budget receipts and closing stock are rebuilt
- A clean database rebuilds without rewriting cashbook rows
- The CLI commits (or rolls back on --dry-run) and exits 0
"""

import os
import sys
from datetime import date
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from app.database.models import Base, CashbookBudgetItem, CashbookDetail, Site, SiteItem, utcnow
from jobs.recompute_ledgers import main, rebuild_ledgers
from services.cashbook_budget_service import create_budget, month_key
from services.cashbook_ledger import create_cashbook
from services.site_budget_service import create_site_budget
from services.stock_ledger_service import record_opening_stock


@pytest.fixture
def ledgers(db_session, seed):
    create_cashbook(db_session, date(2025, 4, 5), [{"cashbook_head_id": seed.labour.id, "amount_received": "1000"}], seed.site_a.id)
    create_cashbook(db_session, date(2025, 4, 9), [{"cashbook_head_id": seed.labour.id, "amount_paid": "300"}], seed.site_a.id)
    create_cashbook(db_session, date(2025, 4, 7), [{"cashbook_head_id": seed.material.id, "amount_received": "50"}], seed.site_b.id)
    create_budget(
        db_session, name="Labour plan", month=month_key(utcnow()), site_id=seed.site_a.id,
        items=[{"cashbook_head_id": seed.labour.id, "amount": "5000"}],
    )
    create_site_budget(db_session, seed.site_a.id, seed.cement.id, 100, 400, 380)
    record_opening_stock(db_session, seed.site_a.id, [
        {"item_id": seed.cement.id, "opening_stock": "100", "opening_rate": "400"},
    ])
    record_opening_stock(db_session, seed.site_b.id, [
        {"item_id": seed.sand.id, "opening_stock": "8", "opening_rate": "1500"},
    ])


def _tamper(db):
    detail = db.execute(select(CashbookDetail).order_by(CashbookDetail.id.asc())).scalars().all()[1]
    detail.closing_balance = Decimal("1.00")
    budget_item = db.execute(select(CashbookBudgetItem)).scalars().one()
    budget_item.received_amount = Decimal("0.00")
    site_item = db.execute(select(SiteItem).order_by(SiteItem.id)).scalars().first()
    site_item.closing_stock = Decimal("0.0000")
    db.commit()
    return detail, budget_item, site_item


class TestRebuild:

    def test_rebuilds_tampered_figures(self, db_session, seed, ledgers) -> None:
        detail, budget_item, site_item = _tamper(db_session)

        summary = rebuild_ledgers(db_session, site_id=seed.site_a.id)
        db_session.commit()

        assert summary == {"cashbookRows": 1, "budgets": 1, "siteBudgetSites": 1, "siteItems": 1}
        assert detail.closing_balance == Decimal("700.00")
        assert budget_item.received_amount == Decimal("1000.00")
        assert site_item.closing_stock == Decimal("100.0000")

    def test_clean_database(self, db_session, seed, ledgers) -> None:
        summary = rebuild_ledgers(db_session)
        assert summary == {"cashbookRows": 0, "budgets": 1, "siteBudgetSites": 1, "siteItems": 2}

    def test_empty_database(self, db_session) -> None:
        assert rebuild_ledgers(db_session) == {
            "cashbookRows": 0, "budgets": 0, "siteBudgetSites": 0, "siteItems": 0,
        }


class TestCli:

    @pytest.fixture
    def db_url(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'ledger.db'}"
        engine = create_engine(url)
        Base.metadata.create_all(engine)
        factory = sessionmaker(bind=engine)
        with factory() as db:
            db.add(Site(site="Pune Metro Package 4", site_code="PUN"))
            db.commit()
        engine.dispose()
        return url

    @pytest.mark.parametrize("extra", [[], ["--dry-run"], ["--site-id", "1", "--verbose"]])
    def test_exits_zero(self, monkeypatch, db_url, extra) -> None:
        monkeypatch.setattr(sys, "argv", ["siteledger-recompute", "--db-url", db_url] + extra)
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 0

    def test_missing_schema_exits_one(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setattr(sys, "argv", ["siteledger-recompute", "--db-url", f"sqlite:///{tmp_path / 'empty.db'}"])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
