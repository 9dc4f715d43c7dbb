"""Shopping List Reconciler.

Aligns the user's reconciler-generated shopping-list items with the deficit
between what the meal plan needs and what the stock holds:

    deficit = max(0, required - available)

Properties the rest of the system relies on:
- Re-running with unchanged stock and plans leaves the list unchanged.
- Manually added items are never modified or removed.
- Purchased items are ignored; purchasing does not credit stock.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.timeutil import utcnow
from ..errors import ValidationError, NotFoundError
from ..infra.transactions import bump_revision
from ..models import User, ShoppingListItem
from . import notifications
from .recipe_resolver import Requirement
from .stock_ledger import available_quantities, quantize, load_ingredient, ZERO
from .unit_conversion import normalize_quantity

logger = logging.getLogger("larder.shopping")

SOURCE_MANUAL = "manual"
SOURCE_RECONCILER = "reconciler"


@dataclass
class ReconcileResult:
    created: list[ShoppingListItem] = field(default_factory=list)
    updated: list[ShoppingListItem] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)  # ingredient ids whose generated item was deleted
    unchanged: list[ShoppingListItem] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.removed)


def _required_quantity(value) -> Decimal:
    if isinstance(value, Requirement):
        return value.quantity
    return Decimal(str(value))


def list_items(db: Session, user_id: str, include_purchased: bool = True) -> list[ShoppingListItem]:
    stmt = select(ShoppingListItem).where(ShoppingListItem.user_id == user_id)
    if not include_purchased:
        stmt = stmt.where(ShoppingListItem.purchased.is_(False))
    return list(db.scalars(
        stmt.order_by(ShoppingListItem.added_at, ShoppingListItem.id)
    ).unique().all())


def reconcile(
    db: Session,
    user: User,
    required: Mapping[str, object],
    now: Optional[datetime] = None,
) -> ReconcileResult:
    """Bring generated shopping-list items in line with `required`.

    `required` maps ingredient id -> Requirement (or a bare canonical
    quantity), as returned by meal_plan_aggregator.aggregate. Ingredients not
    in `required` need nothing, so their generated items are removed.
    Nothing is committed here; run inside run_in_transaction.
    """
    now = now or utcnow()
    needed: dict[str, Decimal] = {}
    for ingredient_id, value in required.items():
        qty = _required_quantity(value)
        if qty < 0:
            raise ValidationError(
                "Required quantity must be >= 0",
                user_id=user.id,
                ingredient_id=ingredient_id,
            )
        needed[ingredient_id] = qty

    # Unpurchased generated items, grouped per ingredient
    generated: dict[str, list[ShoppingListItem]] = {}
    for item in db.scalars(
        select(ShoppingListItem)
        .where(
            ShoppingListItem.user_id == user.id,
            ShoppingListItem.source == SOURCE_RECONCILER,
            ShoppingListItem.purchased.is_(False),
        )
        .order_by(ShoppingListItem.added_at, ShoppingListItem.id)
    ).unique().all():
        generated.setdefault(item.base_ingredient_id, []).append(item)

    available = available_quantities(db, user.id, needed.keys())
    result = ReconcileResult()

    for ingredient_id in sorted(set(needed) | set(generated)):
        deficit = quantize(max(ZERO, needed.get(ingredient_id, ZERO) - available.get(ingredient_id, ZERO)))
        existing = generated.get(ingredient_id, [])

        if deficit > 0:
            if existing:
                # Oldest item carries the deficit; duplicates collapse into it
                keep, extras = existing[0], existing[1:]
                for extra in extras:
                    db.delete(extra)
                if extras or Decimal(keep.quantity) != deficit:
                    keep.quantity = deficit
                    result.updated.append(keep)
                else:
                    result.unchanged.append(keep)
            else:
                item = ShoppingListItem(
                    user_id=user.id,
                    base_ingredient_id=ingredient_id,
                    quantity=deficit,
                    added_at=now,
                    purchased=False,
                    source=SOURCE_RECONCILER,
                )
                db.add(item)
                result.created.append(item)
        elif existing:
            for item in existing:
                db.delete(item)
            result.removed.append(ingredient_id)

    if result.changed:
        bump_revision(db, user, now)
        notifications.emit(
            db,
            user_id=user.id,
            kind=notifications.SHOPPING_LIST_UPDATED,
            message=(
                f"Shopping list updated: {len(result.created)} added, "
                f"{len(result.updated)} changed, {len(result.removed)} removed"
            ),
        )
    db.flush()

    logger.info(
        f"reconcile user={user.id} created={len(result.created)} updated={len(result.updated)} "
        f"removed={len(result.removed)} unchanged={len(result.unchanged)}"
    )
    return result


def add_manual_item(
    db: Session,
    user: User,
    ingredient_id: str,
    quantity,
    unit: str,
    now: Optional[datetime] = None,
) -> ShoppingListItem:
    """Add a user-authored item. The reconciler never touches these."""
    ingredient = load_ingredient(db, user, ingredient_id)
    qty = Decimal(str(quantity))
    if not qty.is_finite() or qty <= 0:
        raise ValidationError("quantity must be > 0", ingredient_id=ingredient_id)
    normalized = normalize_quantity(qty, unit, ingredient.category)

    now = now or utcnow()
    item = ShoppingListItem(
        user_id=user.id,
        base_ingredient_id=ingredient.id,
        quantity=quantize(normalized.qty),
        added_at=now,
        purchased=False,
        source=SOURCE_MANUAL,
    )
    db.add(item)
    bump_revision(db, user, now)
    db.flush()
    return item


def _get_item(db: Session, user: User, item_id: str) -> ShoppingListItem:
    item = db.scalar(
        select(ShoppingListItem).where(
            ShoppingListItem.id == item_id,
            ShoppingListItem.user_id == user.id,
        )
    )
    if not item:
        raise NotFoundError("Shopping list item not found", item_id=item_id)
    return item


def mark_purchased(db: Session, user: User, item_id: str, now: Optional[datetime] = None) -> ShoppingListItem:
    """Mark an item bought. Stock is updated separately through add_stock."""
    item = _get_item(db, user, item_id)
    if not item.purchased:
        now = now or utcnow()
        item.purchased = True
        item.purchased_at = now
        bump_revision(db, user, now)
    return item


def delete_manual_item(db: Session, user: User, item_id: str) -> None:
    item = _get_item(db, user, item_id)
    if item.is_system_generated:
        raise ValidationError(
            "Generated items are managed by reconciliation",
            item_id=item_id,
            ingredient_id=item.base_ingredient_id,
        )
    db.delete(item)
    bump_revision(db, user)
