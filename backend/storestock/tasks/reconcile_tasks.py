"""storestock — Celery task checking materialized balances against the ledger.

- reconcile_stock_balances: Celery Beat runs it every RECONCILE_INTERVAL_SECONDS.
  Drift is logged and summarized in Redis under ``reconcile:last``; nothing is
  corrected automatically.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from storestock.worker import celery_app

logger = logging.getLogger(__name__)

RECONCILE_KEY = "reconcile:last"


def _sync_engine():
    """Create a sync engine for Celery tasks (workers cannot use async)."""
    from sqlalchemy import create_engine
    from storestock.config import get_settings
    settings = get_settings()
    sync_url = (
        settings.DATABASE_URL
        .replace("+asyncpg", "+psycopg2")
        .replace("+aiosqlite", "")
    )
    return create_engine(sync_url, pool_pre_ping=True)


def _sync_redis():
    """Get a sync Redis client for Celery tasks."""
    import redis
    from storestock.config import get_settings
    settings = get_settings()
    return redis.from_url(settings.REDIS_URL, decode_responses=True)


def run_reconciliation(db) -> dict:
    """Compare balances with ledger sums on a sync Session. Returns the summary."""
    from storestock.services.stock_service import compare_balances, drift_statements

    balances_q, ledger_q = drift_statements()
    drift = compare_balances(db.execute(balances_q).all(), db.execute(ledger_q).all())
    for d in drift:
        logger.error(
            "Stock drift: business=%s product=%s location=%s balance=%s ledger=%s",
            d.business_id, d.product_id, d.location_id, d.balance_quantity, d.ledger_quantity,
        )
    return {
        "checked_at": datetime.now(timezone.utc).isoformat(),
        "drift_count": len(drift),
        "drift": [d.model_dump(mode="json") for d in drift],
    }


@celery_app.task(bind=True, max_retries=2)
def reconcile_stock_balances(self):
    """Ledger/balance equivalence check across all businesses."""
    from sqlalchemy.exc import OperationalError
    from sqlalchemy.orm import Session

    engine = _sync_engine()
    try:
        with Session(engine) as db:
            summary = run_reconciliation(db)
    except OperationalError as exc:
        logger.warning("Reconciliation could not reach the database: %s", exc)
        raise self.retry(exc=exc)
    finally:
        engine.dispose()

    _sync_redis().set(RECONCILE_KEY, json.dumps(summary))
    if summary["drift_count"]:
        logger.error("Reconciliation found %d drifting balance(s)", summary["drift_count"])
    else:
        logger.info("Reconciliation clean")
    return {"drift_count": summary["drift_count"]}
