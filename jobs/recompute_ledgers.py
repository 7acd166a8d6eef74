"""
SiteLedger - Ledger Rebuild Job

Recomputes every derived figure from the source rows, in one transaction:

    1. Cashbook running balances per (site, BOQ, head) from the first voucher
    2. Received amounts of every monthly cashbook budget
    3. Site budget consumption (ordered qty / value / alerts)
    4. Closing stock of every site item

Usage:
    siteledger-recompute [--site-id N] [--db-url URL] [--dry-run] [--verbose]

Exit code 0 on success, 1 when the rebuild failed and was rolled back.
"""

import argparse
import logging
import sys
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from app.database.models import Cashbook, CashbookBudget, CashbookDetail, SiteBudget
from app.database.session import SessionLocal, build_engine
from services.cashbook_budget_service import recompute_budget_by_key
from services.cashbook_ledger import recompute_cashbook_balances
from services.site_budget_service import refresh_site_budget_consumption
from services.stock_ledger_service import update_closing_stock

logger = logging.getLogger(__name__)


def rebuild_ledgers(
    db: Session,
    site_id: Optional[int] = None,
    correlation_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Run the full rebuild on db. Flushes only; the caller commits.

    Returns:
        Counts per step: cashbookRows, budgets, siteBudgetSites, siteItems
    """
    correlation_id = correlation_id or str(uuid.uuid4())
    logger.info(f"[LEDGER-REBUILD] Started | site_id={site_id} | correlation_id={correlation_id}")

    # Cashbook contexts with their first voucher date
    context_stmt = (
        select(
            Cashbook.site_id,
            Cashbook.boq_id,
            CashbookDetail.cashbook_head_id,
            func.min(Cashbook.voucher_date),
        )
        .join(CashbookDetail, CashbookDetail.cashbook_id == Cashbook.id)
        .where(Cashbook.site_id.isnot(None))
        .group_by(Cashbook.site_id, Cashbook.boq_id, CashbookDetail.cashbook_head_id)
    )
    if site_id is not None:
        context_stmt = context_stmt.where(Cashbook.site_id == site_id)

    cashbook_rows = 0
    for ctx_site, ctx_boq, head_id, first_day in db.execute(context_stmt).all():
        cashbook_rows += recompute_cashbook_balances(
            db, ctx_site, ctx_boq, [head_id], first_day, correlation_id=correlation_id
        )

    budget_stmt = select(CashbookBudget.site_id, CashbookBudget.boq_id, CashbookBudget.month)
    if site_id is not None:
        budget_stmt = budget_stmt.where(CashbookBudget.site_id == site_id)
    budgets = 0
    for b_site, b_boq, month in db.execute(budget_stmt).all():
        if recompute_budget_by_key(db, b_site, b_boq, month) is not None:
            budgets += 1

    budget_sites_stmt = select(SiteBudget.site_id).distinct()
    if site_id is not None:
        budget_sites_stmt = budget_sites_stmt.where(SiteBudget.site_id == site_id)
    budget_sites = db.execute(budget_sites_stmt).scalars().all()
    for b_site in budget_sites:
        refresh_site_budget_consumption(db, b_site)

    stock = update_closing_stock(db, site_id=site_id, correlation_id=correlation_id)

    summary = {
        "cashbookRows": cashbook_rows,
        "budgets": budgets,
        "siteBudgetSites": len(budget_sites),
        "siteItems": stock["updated"],
    }
    logger.info(
        f"[LEDGER-REBUILD] Complete | cashbook_rows={cashbook_rows} | budgets={budgets} | "
        f"site_budget_sites={len(budget_sites)} | site_items={stock['updated']} | "
        f"correlation_id={correlation_id}"
    )
    return summary


# =============================================================================
# CLI Entry Point
# =============================================================================

def main():
    """CLI entry point for the ledger rebuild."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    parser = argparse.ArgumentParser(
        description="Recompute cashbook balances, budgets and closing stock"
    )
    parser.add_argument(
        "--site-id",
        type=int,
        default=None,
        help="Limit the rebuild to one site (default: all sites)"
    )
    parser.add_argument(
        "--db-url",
        type=str,
        default=None,
        help="Database URL (default: DATABASE_URL / DB_* environment)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute and report, then roll back"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    factory = sessionmaker(bind=build_engine(args.db_url)) if args.db_url else SessionLocal
    db = factory()
    success = True
    try:
        summary = rebuild_ledgers(db, site_id=args.site_id)
        if args.dry_run:
            db.rollback()
            logger.info(f"[LEDGER-REBUILD] Dry run, rolled back | summary={summary}")
        else:
            db.commit()
            logger.info(f"[LEDGER-REBUILD] Committed | summary={summary}")
    except Exception as e:
        db.rollback()
        logger.error(f"[LEDGER-REBUILD] Failed, rolled back | error={e}")
        success = False
    finally:
        db.close()

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
