"""Meal Plan Aggregator.

Sums the resolved ingredient requirements of a user's scheduled, uncompleted
meal plans over an inclusive date window.
"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..core.timeutil import utcnow
from ..errors import ValidationError, NotFoundError
from ..models import User, MealPlan, BaseRecipe, RecipeIngredient
from . import stock_ledger
from .recipe_resolver import Requirement, resolve, load_recipe

logger = logging.getLogger("larder.meal_plans")


def pending_plans(db: Session, user_id: str, start: date, end: date) -> list[MealPlan]:
    """Uncompleted plans with start <= scheduled_for <= end, in a stable order."""
    stmt = (
        select(MealPlan)
        .options(
            selectinload(MealPlan.recipe)
            .selectinload(BaseRecipe.ingredients)
            .joinedload(RecipeIngredient.ingredient)
        )
        .where(
            MealPlan.user_id == user_id,
            MealPlan.completed_at.is_(None),
            MealPlan.scheduled_for >= start,
            MealPlan.scheduled_for <= end,
        )
        .order_by(MealPlan.scheduled_for, MealPlan.created_at, MealPlan.id)
    )
    return list(db.scalars(stmt).all())


def aggregate(db: Session, user: User, start: date, end: date) -> dict[str, Requirement]:
    """Total normalized requirement per ingredient id for the window.

    An empty window (no plans) yields {}. The result is keyed and ordered by
    ingredient id so identical inputs give identical output.
    """
    if start is None or end is None:
        raise ValidationError("Both start and end dates are required", user_id=user.id)
    if start > end:
        raise ValidationError(
            "start must not be after end",
            user_id=user.id,
            start=start.isoformat(),
            end=end.isoformat(),
        )

    totals: dict[str, Requirement] = {}
    plans = pending_plans(db, user.id, start, end)
    for plan in plans:
        if plan.recipe is None:
            raise NotFoundError(
                "Meal plan references a missing recipe",
                meal_plan_id=plan.id,
                recipe_id=plan.base_recipe_id,
            )
        for req in resolve(plan.recipe, plan.servings):
            current = totals.get(req.ingredient_id)
            if current is None:
                totals[req.ingredient_id] = req
            else:
                totals[req.ingredient_id] = Requirement(
                    ingredient_id=current.ingredient_id,
                    ingredient_name=current.ingredient_name,
                    quantity=current.quantity + req.quantity,
                    unit=current.unit,
                )

    logger.info(f"aggregate user={user.id} {start}..{end}: {len(plans)} plans, {len(totals)} ingredients")
    return {key: totals[key] for key in sorted(totals)}


def create_meal_plan(
    db: Session,
    user: User,
    recipe_id: str,
    scheduled_for: date,
    servings: Optional[int] = None,
    meal_type: Optional[str] = None,
    notes: Optional[str] = None,
) -> MealPlan:
    recipe = load_recipe(db, user, recipe_id)
    if servings is None:
        servings = recipe.default_servings
    if servings <= 0:
        raise ValidationError("servings must be > 0", recipe_id=recipe_id)

    plan = MealPlan(
        user_id=user.id,
        base_recipe_id=recipe.id,
        scheduled_for=scheduled_for,
        servings=servings,
        meal_type=meal_type,
        notes=notes,
    )
    db.add(plan)
    db.flush()
    return plan


def get_meal_plan(db: Session, user: User, plan_id: str) -> MealPlan:
    plan = db.scalar(
        select(MealPlan).where(MealPlan.id == plan_id, MealPlan.user_id == user.id)
    )
    if not plan:
        raise NotFoundError("Meal plan not found", meal_plan_id=plan_id)
    return plan


def complete_meal_plan(
    db: Session,
    user: User,
    plan_id: str,
    *,
    consume_stock: bool = False,
    now: Optional[datetime] = None,
) -> MealPlan:
    """Mark a plan as cooked. Terminal: completed plans drop out of aggregation.

    With consume_stock the resolved requirements are taken out of the ledger
    in the same batch; any shortfall aborts the whole completion.
    """
    now = now or utcnow()
    plan = get_meal_plan(db, user, plan_id)
    if plan.completed_at is not None:
        raise ValidationError("Meal plan already completed", meal_plan_id=plan.id)

    if consume_stock:
        for req in resolve(plan.recipe, plan.servings):
            stock_ledger.consume(
                db, user, req.ingredient_id, req.quantity, req.unit,
                now=now, source="meal_plan", ref_id=plan.id,
            )

    plan.completed_at = now
    return plan
