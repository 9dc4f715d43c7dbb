"""Optimistic read-modify-write unit of work.

Ledger and shopping-list writes are low-contention and human-paced, so
instead of holding locks we let concurrent writers race and detect the loser
at flush time through SQLAlchemy version counters (`User.revision`,
`UserIngredient.version`, `ShoppingListItem.version`). The loser rolls back
and re-runs the whole operation from a fresh read.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.timeutil import utcnow
from ..errors import ConflictError
from ..models import User
from ..settings import settings

logger = logging.getLogger("larder.transactions")

T = TypeVar("T")


def bump_revision(db: Session, user: User, now: Optional[datetime] = None) -> None:
    """Mark the user's ledger as written in this transaction.

    Forces an UPDATE guarded by the user's revision, so two passes over the
    same user's stock or shopping list cannot both commit.
    """
    user.ledger_updated_at = now or utcnow()


def run_in_transaction(
    db: Session,
    operation: Callable[[], T],
    *,
    attempts: Optional[int] = None,
    context: Optional[dict] = None,
) -> T:
    """Run `operation` and commit it as one batch, retrying on write conflicts.

    `operation` must re-read everything it depends on, since each attempt
    starts from a rolled-back session. Any non-conflict error rolls back and
    propagates unchanged, so no partial batch is ever committed.
    """
    attempts = attempts or settings.max_conflict_retries
    last_error: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except (StaleDataError, IntegrityError) as e:
            db.rollback()
            last_error = e
            logger.warning(
                f"Write conflict (attempt {attempt}/{attempts}) {context or {}}: {e.__class__.__name__}"
            )
        except BaseException:
            db.rollback()
            raise

    raise ConflictError(
        f"Gave up after {attempts} conflicting attempts",
        attempts=attempts,
        cause=str(last_error) if last_error else None,
        **(context or {}),
    )
