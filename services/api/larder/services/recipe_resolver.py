from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ..errors import ValidationError, NotFoundError, UnitMismatchError
from ..models import BaseRecipe, User
from .unit_conversion import normalize_quantity


@dataclass(frozen=True)
class Requirement:
    """A normalized quantity of one ingredient."""
    ingredient_id: str
    ingredient_name: str
    quantity: Decimal
    unit: str


def load_recipe(db: Session, user: Optional[User], recipe_id: str) -> BaseRecipe:
    """Fetch a recipe visible to `user` (global or their own)."""
    recipe = db.get(BaseRecipe, recipe_id)
    if not recipe or (
        recipe.created_by_user is not None and (user is None or recipe.created_by_user != user.id)
    ):
        raise NotFoundError("Recipe not found", recipe_id=recipe_id)
    return recipe


def resolve(recipe: BaseRecipe, target_servings) -> list[Requirement]:
    """Expand a recipe into normalized ingredient quantities for `target_servings`.

    Lines keep the recipe's order. Every quantity is scaled by
    target_servings / default_servings before normalization.
    """
    if target_servings is None or isinstance(target_servings, bool):
        raise ValidationError("target_servings is required", recipe_id=recipe.id)
    try:
        servings = Decimal(str(target_servings))
    except ArithmeticError:
        raise ValidationError("target_servings must be a number", recipe_id=recipe.id)
    if not servings.is_finite() or servings <= 0:
        raise ValidationError(
            "target_servings must be > 0",
            recipe_id=recipe.id,
            target_servings=str(target_servings),
        )

    scale = servings / Decimal(recipe.default_servings)

    requirements = []
    for line in recipe.ingredients:
        ingredient = line.ingredient
        if ingredient is None:
            raise NotFoundError(
                "Recipe references a missing ingredient",
                recipe_id=recipe.id,
                ingredient_id=line.base_ingredient_id,
            )
        try:
            normalized = normalize_quantity(
                Decimal(str(line.quantity)) * scale, line.unit, ingredient.category
            )
        except UnitMismatchError as e:
            raise e.with_context(recipe_id=recipe.id, ingredient_id=ingredient.id) from e

        requirements.append(Requirement(
            ingredient_id=ingredient.id,
            ingredient_name=ingredient.name,
            quantity=normalized.qty,
            unit=normalized.unit,
        ))

    return requirements
