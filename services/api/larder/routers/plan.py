from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import models, schemas
from ..deps import get_db, get_current_user
from ..infra.transactions import run_in_transaction
from ..services import meal_plan_aggregator
from ..services.recipe_resolver import Requirement

router = APIRouter()


def requirement_to_out(req: Requirement) -> schemas.RequirementOut:
    return schemas.RequirementOut(
        ingredient_id=req.ingredient_id,
        ingredient_name=req.ingredient_name,
        quantity=float(req.quantity),
        unit=req.unit,
    )


@router.get("/meal-plans", response_model=list[schemas.MealPlanOut])
def list_meal_plans(
    start: date,
    end: date,
    include_completed: bool = False,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the caller's meal plans in [start, end]."""
    stmt = select(models.MealPlan).where(
        models.MealPlan.user_id == user.id,
        models.MealPlan.scheduled_for >= start,
        models.MealPlan.scheduled_for <= end,
    )
    if not include_completed:
        stmt = stmt.where(models.MealPlan.completed_at.is_(None))
    return db.scalars(stmt.order_by(models.MealPlan.scheduled_for, models.MealPlan.created_at)).all()


@router.post("/meal-plans", response_model=schemas.MealPlanOut, status_code=status.HTTP_201_CREATED)
def create_meal_plan(
    plan_in: schemas.MealPlanCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Schedule a recipe (servings default to the recipe's)."""
    return run_in_transaction(
        db,
        lambda: meal_plan_aggregator.create_meal_plan(
            db, user,
            recipe_id=plan_in.recipe_id,
            scheduled_for=plan_in.scheduled_for,
            servings=plan_in.servings,
            meal_type=plan_in.meal_type,
            notes=plan_in.notes,
        ),
        context={"user_id": user.id, "recipe_id": plan_in.recipe_id},
    )


@router.get("/meal-plans/requirements", response_model=schemas.AggregateOut)
def get_requirements(
    start: date = Query(...),
    end: date = Query(...),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Total ingredient requirements of uncompleted plans in [start, end]."""
    totals = meal_plan_aggregator.aggregate(db, user, start, end)
    return schemas.AggregateOut(
        start=start,
        end=end,
        items=[requirement_to_out(r) for r in totals.values()],
    )


@router.post("/meal-plans/{plan_id}/complete", response_model=schemas.MealPlanOut)
def complete_meal_plan(
    plan_id: str,
    body: Optional[schemas.MealPlanComplete] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark cooked; optionally consume the ingredients from stock."""
    return run_in_transaction(
        db,
        lambda: meal_plan_aggregator.complete_meal_plan(
            db, user, plan_id, consume_stock=bool(body and body.consume_stock)
        ),
        context={"user_id": user.id, "meal_plan_id": plan_id},
    )
