"""Ingredient and recipe catalog writes.

Thin persistence helpers; the interesting rules are the (name, owner)
uniqueness and the ownership check in `ownership`.
"""

from typing import Optional, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import ValidationError, PermissionDeniedError, UnitMismatchError
from ..models import (
    User, BaseIngredient, BaseRecipe, RecipeIngredient, UserRecipe, UserIngredient, ShoppingListItem,
)
from .ownership import ensure_can_modify
from .recipe_resolver import load_recipe
from .stock_ledger import load_ingredient
from .unit_conversion import category_dimension


def _owner_for(actor: User, is_global: bool) -> Optional[str]:
    if is_global:
        if not actor.is_admin:
            raise PermissionDeniedError("Only admins create global entries", user_id=actor.id)
        return None
    return actor.id


def _ensure_unique_name(db: Session, model, name: str, owner_id: Optional[str], exclude_id: Optional[str] = None):
    # Checked explicitly: NULL owners never collide in a SQL unique constraint
    stmt = select(model.id).where(model.name == name)
    if owner_id is None:
        stmt = stmt.where(model.created_by_user.is_(None))
    else:
        stmt = stmt.where(model.created_by_user == owner_id)
    if exclude_id:
        stmt = stmt.where(model.id != exclude_id)
    if db.scalar(stmt):
        raise ValidationError(
            f"{model.__name__} named '{name}' already exists for this owner",
            name=name,
            owner_id=owner_id,
        )


def visible_ingredients(db: Session, user: User) -> list[BaseIngredient]:
    return list(db.scalars(
        select(BaseIngredient)
        .where((BaseIngredient.created_by_user.is_(None)) | (BaseIngredient.created_by_user == user.id))
        .order_by(BaseIngredient.name, BaseIngredient.id)
    ).all())


def create_ingredient(
    db: Session,
    actor: User,
    name: str,
    category: Optional[str] = None,
    default_spoilage_flag: bool = False,
    is_global: bool = False,
) -> BaseIngredient:
    name = name.strip()
    owner_id = _owner_for(actor, is_global)
    _ensure_unique_name(db, BaseIngredient, name, owner_id)

    ingredient = BaseIngredient(
        name=name,
        category=category.strip().lower() if category else None,
        default_spoilage_flag=default_spoilage_flag,
        is_global=owner_id is None,
        created_by_user=owner_id,
    )
    db.add(ingredient)
    db.flush()
    return ingredient


def _ensure_no_stored_quantities(db: Session, ingredient: BaseIngredient, category: Optional[str]) -> None:
    """Stock and shopping rows hold canonical quantities of the current dimension."""
    in_stock = db.scalar(
        select(UserIngredient.id).where(UserIngredient.base_ingredient_id == ingredient.id).limit(1)
    )
    on_list = db.scalar(
        select(ShoppingListItem.id).where(ShoppingListItem.base_ingredient_id == ingredient.id).limit(1)
    )
    if in_stock or on_list:
        raise UnitMismatchError(
            f"Cannot move '{ingredient.name}' from {category_dimension(ingredient.category)} "
            f"to {category_dimension(category)}: stock or shopping-list quantities exist",
            category=category,
            ingredient_id=ingredient.id,
        )


def update_ingredient(db: Session, actor: User, ingredient_id: str, changes: dict) -> BaseIngredient:
    ingredient = load_ingredient(db, actor, ingredient_id)
    ensure_can_modify(actor, ingredient)

    if "name" in changes and changes["name"]:
        name = changes["name"].strip()
        _ensure_unique_name(db, BaseIngredient, name, ingredient.created_by_user, exclude_id=ingredient.id)
        ingredient.name = name
    if "category" in changes:
        category = changes["category"].strip().lower() if changes["category"] else None
        if category_dimension(category) != category_dimension(ingredient.category):
            _ensure_no_stored_quantities(db, ingredient, category)
        ingredient.category = category
    if changes.get("default_spoilage_flag") is not None:
        ingredient.default_spoilage_flag = changes["default_spoilage_flag"]
    return ingredient


def visible_recipes(db: Session, user: User) -> list[BaseRecipe]:
    return list(db.scalars(
        select(BaseRecipe)
        .where((BaseRecipe.created_by_user.is_(None)) | (BaseRecipe.created_by_user == user.id))
        .order_by(BaseRecipe.name, BaseRecipe.id)
    ).all())


def _build_lines(
    db: Session, actor: User, lines: Iterable[dict], owner_id: Optional[str]
) -> list[RecipeIngredient]:
    built = []
    for position, line in enumerate(lines):
        ingredient = load_ingredient(db, actor, line["ingredient_id"])
        # Global recipes are resolved for every user, so every line must be global too
        if owner_id is None and ingredient.created_by_user is not None:
            raise ValidationError(
                "Global recipes may only use global ingredients",
                ingredient_id=ingredient.id,
            )
        if line["quantity"] is None or line["quantity"] <= 0:
            raise ValidationError("Ingredient quantity must be > 0", ingredient_id=ingredient.id)
        built.append(RecipeIngredient(
            ingredient=ingredient,
            quantity=float(line["quantity"]),
            unit=line["unit"],
            position=position,
        ))
    return built


def create_recipe(
    db: Session,
    actor: User,
    name: str,
    default_servings: int,
    ingredients: Iterable[dict] = (),
    steps: Optional[str] = None,
    preparation_time: Optional[int] = None,
    preparation_time_unit: Optional[str] = None,
    is_global: bool = False,
) -> BaseRecipe:
    if default_servings is None or default_servings <= 0:
        raise ValidationError("default_servings must be > 0", name=name)
    name = name.strip()
    owner_id = _owner_for(actor, is_global)
    _ensure_unique_name(db, BaseRecipe, name, owner_id)

    recipe = BaseRecipe(
        name=name,
        is_global=owner_id is None,
        created_by_user=owner_id,
        default_servings=default_servings,
        steps=steps,
        preparation_time=preparation_time,
        preparation_time_unit=preparation_time_unit,
    )
    recipe.ingredients = _build_lines(db, actor, ingredients, owner_id)
    db.add(recipe)
    db.flush()
    return recipe


def update_recipe(db: Session, actor: User, recipe_id: str, changes: dict) -> BaseRecipe:
    recipe = load_recipe(db, actor, recipe_id)
    ensure_can_modify(actor, recipe)

    if changes.get("name"):
        name = changes["name"].strip()
        _ensure_unique_name(db, BaseRecipe, name, recipe.created_by_user, exclude_id=recipe.id)
        recipe.name = name
    if changes.get("default_servings") is not None:
        if changes["default_servings"] <= 0:
            raise ValidationError("default_servings must be > 0", recipe_id=recipe.id)
        recipe.default_servings = changes["default_servings"]
    for field in ("steps", "preparation_time", "preparation_time_unit"):
        if field in changes:
            setattr(recipe, field, changes[field])
    if changes.get("ingredients") is not None:
        recipe.ingredients = _build_lines(db, actor, changes["ingredients"], recipe.created_by_user)

    db.flush()
    return recipe


def annotate_recipe(
    db: Session,
    user: User,
    recipe_id: str,
    notes: Optional[str] = None,
    photo_url: Optional[str] = None,
    rating: Optional[int] = None,
) -> UserRecipe:
    """Upsert the user's private notes / photo / rating for a recipe."""
    recipe = load_recipe(db, user, recipe_id)
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationError("rating must be between 1 and 5", recipe_id=recipe.id, rating=rating)

    annotation = db.scalar(
        select(UserRecipe).where(
            UserRecipe.user_id == user.id,
            UserRecipe.base_recipe_id == recipe.id,
        )
    )
    if annotation is None:
        annotation = UserRecipe(user_id=user.id, base_recipe_id=recipe.id)
        db.add(annotation)

    annotation.notes = notes
    annotation.photo_url = photo_url
    annotation.rating = rating
    db.flush()
    return annotation
