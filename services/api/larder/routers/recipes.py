from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..deps import get_db, get_current_user
from ..infra.transactions import run_in_transaction
from ..services import catalog
from ..services.recipe_resolver import load_recipe, resolve
from .plan import requirement_to_out

router = APIRouter()


@router.get("/recipes", response_model=list[schemas.RecipeOut])
def list_recipes(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Global recipes plus the caller's own."""
    return catalog.visible_recipes(db, user)


@router.post("/recipes", response_model=schemas.RecipeOut, status_code=status.HTTP_201_CREATED)
def create_recipe(
    recipe_in: schemas.RecipeCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    data = recipe_in.model_dump()
    lines = data.pop("ingredients")
    return run_in_transaction(
        db,
        lambda: catalog.create_recipe(db, user, ingredients=lines, **data),
        context={"user_id": user.id},
    )


@router.get("/recipes/{recipe_id}", response_model=schemas.RecipeOut)
def get_recipe(
    recipe_id: str,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return load_recipe(db, user, recipe_id)


@router.patch("/recipes/{recipe_id}", response_model=schemas.RecipeOut)
def update_recipe(
    recipe_id: str,
    patch: schemas.RecipePatch,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update a recipe the caller owns (admins: global recipes)."""
    changes = patch.model_dump(exclude_unset=True)
    return run_in_transaction(
        db,
        lambda: catalog.update_recipe(db, user, recipe_id, changes),
        context={"user_id": user.id, "recipe_id": recipe_id},
    )


@router.get("/recipes/{recipe_id}/requirements", response_model=schemas.RecipeRequirementsOut)
def get_recipe_requirements(
    recipe_id: str,
    servings: float = Query(..., description="Target servings"),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Ingredient quantities for `servings`, in canonical units."""
    recipe = load_recipe(db, user, recipe_id)
    return schemas.RecipeRequirementsOut(
        recipe_id=recipe.id,
        servings=servings,
        items=[requirement_to_out(r) for r in resolve(recipe, servings)],
    )


@router.put("/recipes/{recipe_id}/annotation", response_model=schemas.RecipeAnnotationOut)
def annotate_recipe(
    recipe_id: str,
    annotation_in: schemas.RecipeAnnotationIn,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Set the caller's notes / photo / rating for a recipe."""
    return run_in_transaction(
        db,
        lambda: catalog.annotate_recipe(db, user, recipe_id, **annotation_in.model_dump()),
        context={"user_id": user.id, "recipe_id": recipe_id},
    )
