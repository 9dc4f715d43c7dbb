"""Spoilage sweep worker.

Periodically applies the spoilage rule to every opened, unflagged stock row:
1. Takes a short Redis lock (SET NX) so only one worker sweeps per interval
2. Flags rows open longer than their category shelf life
3. Emits an "ingredient spoiling" notification per newly flagged row
4. Commits the batch (conflicting concurrent writes are retried)

Usage:
    python -m larder.worker
"""

import logging
import time
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from .db import init_engine, session_factory
from .infra.redis_client import get_sync_redis
from .infra.transactions import run_in_transaction
from .services import stock_ledger
from .settings import settings

logger = logging.getLogger("larder.worker")

WORKER_ID = f"worker-{uuid.uuid4().hex[:8]}"
LOCK_KEY = "larder:spoilage-sweep"


def acquire_sweep_lock(ttl_sec: int) -> bool:
    r = get_sync_redis()
    return bool(r.set(LOCK_KEY, WORKER_ID, ex=max(1, ttl_sec), nx=True))


def run_sweep(db: Session, now: Optional[datetime] = None) -> int:
    """One sweep over all users. Returns the number of rows flagged."""
    flagged = run_in_transaction(
        db,
        lambda: stock_ledger.sweep_spoilage(db, now),
        context={"worker": WORKER_ID},
    )
    for row in flagged:
        logger.info(f"[{WORKER_ID}] Flagged user_ingredient={row.id} user={row.user_id}")
    return len(flagged)


def main():
    """Main worker loop."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    interval = settings.spoilage_sweep_interval
    logger.info(f"[{WORKER_ID}] Starting (interval: {interval}s)")

    init_engine()

    while True:
        try:
            if acquire_sweep_lock(interval):
                with session_factory()() as db:
                    count = run_sweep(db)
                logger.info(f"[{WORKER_ID}] Sweep done, {count} rows flagged")
            else:
                logger.info(f"[{WORKER_ID}] Another worker holds the sweep lock")
        except Exception:
            logger.exception(f"[{WORKER_ID}] Sweep failed")

        time.sleep(interval)


if __name__ == "__main__":
    main()
