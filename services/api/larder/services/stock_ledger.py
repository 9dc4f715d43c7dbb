"""Stock Ledger: per-user ingredient quantities and open/spoilage lifecycle.

Quantities are stored in the canonical unit of the ingredient's category
(see unit_conversion). Functions here never commit; callers run them inside
`run_in_transaction` so a failed step leaves nothing behind.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.timeutil import utcnow, as_utc
from ..errors import ValidationError, NotFoundError, InsufficientStockError
from ..infra.transactions import bump_revision
from ..models import User, BaseIngredient, UserIngredient, StockTransaction
from ..settings import settings
from . import notifications
from .unit_conversion import normalize_quantity

logger = logging.getLogger("larder.stock")

CENT = Decimal("0.01")
ZERO = Decimal("0")


def quantize(qty: Decimal) -> Decimal:
    """Round to the 2 decimal places the ledger columns hold."""
    return qty.quantize(CENT, rounding=ROUND_HALF_UP)


def _validated_quantity(quantity, field: str = "quantity") -> Decimal:
    if quantity is None:
        raise ValidationError(f"{field} is required", field=field)
    try:
        value = Decimal(str(quantity))
    except ArithmeticError:
        raise ValidationError(f"{field} must be a number", field=field, value=str(quantity))
    if not value.is_finite():
        raise ValidationError(f"{field} must be finite", field=field, value=str(quantity))
    if value < 0:
        raise ValidationError(f"{field} must be >= 0", field=field, value=str(quantity))
    return value


def _check_invariants(row: UserIngredient) -> None:
    # Pre-validated by add_stock/consume; reaching this is a bug, not bad input
    if row.total_quantity < 0 or row.portion_quantity < 0:
        raise AssertionError(
            f"Negative stock for user_ingredient {row.id}: "
            f"total={row.total_quantity} portion={row.portion_quantity}"
        )


def load_ingredient(db: Session, user: User, ingredient_id: str) -> BaseIngredient:
    """Fetch an ingredient the user may reference (global or their own)."""
    ingredient = db.get(BaseIngredient, ingredient_id)
    if not ingredient or (
        ingredient.created_by_user is not None and ingredient.created_by_user != user.id
    ):
        raise NotFoundError("Ingredient not found", user_id=user.id, ingredient_id=ingredient_id)
    return ingredient


def get_stock(db: Session, user_id: str, ingredient_id: str) -> Optional[UserIngredient]:
    return db.scalar(
        select(UserIngredient).where(
            UserIngredient.user_id == user_id,
            UserIngredient.base_ingredient_id == ingredient_id,
        )
    )


def list_stock(db: Session, user_id: str, *, spoiled_only: bool = False) -> list[UserIngredient]:
    stmt = select(UserIngredient).where(UserIngredient.user_id == user_id)
    if spoiled_only:
        stmt = stmt.where(UserIngredient.spoilage_flagged.is_(True))
    return list(db.scalars(stmt.order_by(UserIngredient.base_ingredient_id)).unique().all())


def available_quantities(db: Session, user_id: str, ingredient_ids) -> dict[str, Decimal]:
    """Current total_quantity per ingredient (missing rows count as zero)."""
    ids = list(ingredient_ids)
    if not ids:
        return {}
    rows = db.scalars(
        select(UserIngredient).where(
            UserIngredient.user_id == user_id,
            UserIngredient.base_ingredient_id.in_(ids),
        )
    ).unique().all()
    found = {r.base_ingredient_id: Decimal(r.total_quantity or 0) for r in rows}
    return {i: found.get(i, ZERO) for i in ids}


def _record(
    db: Session,
    row: UserIngredient,
    source: str,
    delta: Optional[Decimal],
    unit: Optional[str],
    note: Optional[str] = None,
    ref_id: Optional[str] = None,
) -> None:
    db.add(StockTransaction(
        user_id=row.user_id,
        user_ingredient_id=row.id,
        source=source,
        delta_qty=delta,
        unit=unit,
        note=note,
        ref_id=ref_id,
    ))


def add_stock(
    db: Session,
    user: User,
    ingredient_id: str,
    quantity,
    unit: str,
    *,
    portion_quantity=None,
    now: Optional[datetime] = None,
) -> UserIngredient:
    """Add `quantity` `unit` to the user's stock, creating the row if needed.

    Restocking a spoiled or empty row starts a fresh package: the opened and
    spoilage state is cleared. Otherwise the lifecycle state is kept.
    """
    now = now or utcnow()
    qty = _validated_quantity(quantity)
    ingredient = load_ingredient(db, user, ingredient_id)
    normalized = normalize_quantity(qty, unit, ingredient.category)
    delta = quantize(normalized.qty)

    portion = None
    if portion_quantity is not None:
        portion = quantize(
            normalize_quantity(_validated_quantity(portion_quantity, "portion_quantity"), unit, ingredient.category).qty
        )

    row = get_stock(db, user.id, ingredient.id)
    if row is None:
        row = UserIngredient(
            user_id=user.id,
            base_ingredient_id=ingredient.id,
            total_quantity=ZERO,
            portion_quantity=ZERO,
            is_opened=False,
            spoilage_flagged=False,
        )
        db.add(row)
        db.flush()

    if delta > 0 and (row.spoilage_flagged or Decimal(row.total_quantity) == 0):
        row.is_opened = False
        row.opened_at = None
        row.spoilage_flagged = False

    row.total_quantity = Decimal(row.total_quantity) + delta
    if portion is not None:
        row.portion_quantity = portion
    row.updated_at = now
    _check_invariants(row)

    _record(db, row, "add", delta, normalized.unit)
    bump_revision(db, user, now)
    logger.info(f"add_stock user={user.id} ingredient={ingredient.id} +{delta}{normalized.unit}")
    return row


def consume(
    db: Session,
    user: User,
    ingredient_id: str,
    quantity,
    unit: str,
    *,
    now: Optional[datetime] = None,
    source: str = "consume",
    ref_id: Optional[str] = None,
) -> UserIngredient:
    """Subtract `quantity` `unit` from the user's stock.

    Raises InsufficientStockError (stock untouched) instead of clamping, so the
    caller decides between partial consumption and aborting. A zero quantity is
    a no-op that returns the row unchanged; with no stock row at all it raises
    NotFoundError like any other consume, since there is no row to return.
    """
    now = now or utcnow()
    qty = _validated_quantity(quantity)
    ingredient = load_ingredient(db, user, ingredient_id)
    normalized = normalize_quantity(qty, unit, ingredient.category)
    delta = quantize(normalized.qty)

    row = get_stock(db, user.id, ingredient.id)
    available = Decimal(row.total_quantity) if row is not None else ZERO
    if delta > available:
        raise InsufficientStockError(
            f"Cannot consume {delta}{normalized.unit} of '{ingredient.name}': only {available} available",
            requested=float(delta),
            available=float(available),
            user_id=user.id,
            ingredient_id=ingredient.id,
        )
    if row is None:
        raise NotFoundError("No stock recorded for ingredient", user_id=user.id, ingredient_id=ingredient.id)
    if delta == 0:
        return row

    row.total_quantity = available - delta
    row.updated_at = now
    _check_invariants(row)

    _record(db, row, source, -delta, normalized.unit, ref_id=ref_id)
    bump_revision(db, user, now)
    logger.info(f"consume user={user.id} ingredient={ingredient.id} -{delta}{normalized.unit}")
    return row


def mark_opened(db: Session, user: User, ingredient_id: str, now: Optional[datetime] = None) -> UserIngredient:
    """Flag the stock row as opened. Opening an opened row is a no-op."""
    ingredient = load_ingredient(db, user, ingredient_id)
    row = get_stock(db, user.id, ingredient.id)
    if row is None:
        raise NotFoundError("No stock recorded for ingredient", user_id=user.id, ingredient_id=ingredient.id)

    if row.is_opened:
        return row

    now = now or utcnow()
    row.is_opened = True
    row.opened_at = now
    row.updated_at = now
    _record(db, row, "open", None, None)
    bump_revision(db, user, now)
    return row


def shelf_life_for(ingredient: BaseIngredient) -> Optional[timedelta]:
    """Shelf life after opening, or None for non-perishables."""
    key = (ingredient.category or "").strip().lower()
    days = settings.shelf_life_days.get(key)
    if days is None:
        if not ingredient.default_spoilage_flag:
            return None
        days = settings.default_shelf_life_days
    return timedelta(days=days)


def _evaluate_row(db: Session, row: UserIngredient, now: datetime) -> bool:
    """Flag `row` if it has been open longer than its shelf life.

    Returns True only on the unflagged -> flagged transition. Never clears the
    flag; only a restock does that.
    """
    if row.spoilage_flagged or not row.is_opened or row.opened_at is None:
        return False

    shelf_life = shelf_life_for(row.ingredient)
    if shelf_life is None:
        return False

    open_for = as_utc(now) - as_utc(row.opened_at)
    if open_for <= shelf_life:
        return False

    row.spoilage_flagged = True
    _record(db, row, "spoilage", None, None, note=f"open for {open_for.days} days")
    notifications.emit(
        db,
        user_id=row.user_id,
        kind=notifications.INGREDIENT_SPOILING,
        message=(
            f"{row.ingredient.name} has been open {open_for.days} days, "
            f"past its {shelf_life.days}-day shelf life"
        ),
    )
    return True


def evaluate_spoilage(
    db: Session, user: User, ingredient_id: str, now: Optional[datetime] = None
) -> UserIngredient:
    """Apply the time-based spoilage rule to one stock row."""
    ingredient = load_ingredient(db, user, ingredient_id)
    row = get_stock(db, user.id, ingredient.id)
    if row is None:
        raise NotFoundError("No stock recorded for ingredient", user_id=user.id, ingredient_id=ingredient.id)
    _evaluate_row(db, row, now or utcnow())
    return row


def sweep_spoilage(db: Session, now: Optional[datetime] = None, user_id: Optional[str] = None) -> list[UserIngredient]:
    """Evaluate every opened, unflagged row (optionally for one user).

    Returns the rows flagged by this pass.
    """
    now = now or utcnow()
    stmt = select(UserIngredient).where(
        UserIngredient.is_opened.is_(True),
        UserIngredient.spoilage_flagged.is_(False),
    )
    if user_id:
        stmt = stmt.where(UserIngredient.user_id == user_id)

    flagged = []
    for row in db.scalars(stmt.order_by(UserIngredient.id)).unique().all():
        if _evaluate_row(db, row, now):
            flagged.append(row)
    return flagged
