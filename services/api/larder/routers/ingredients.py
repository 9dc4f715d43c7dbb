from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..deps import get_db, get_current_user
from ..infra.transactions import run_in_transaction
from ..services import catalog
from ..services.stock_ledger import load_ingredient

router = APIRouter()


@router.get("/", response_model=list[schemas.IngredientOut])
def list_ingredients(
    q: Optional[str] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Global ingredients plus the caller's own, optionally filtered by name."""
    items = catalog.visible_ingredients(db, user)
    if q:
        needle = q.lower()
        items = [i for i in items if needle in i.name.lower()]
    return items


@router.post("/", response_model=schemas.IngredientOut, status_code=status.HTTP_201_CREATED)
def create_ingredient(
    item_in: schemas.IngredientCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a personal ingredient (admins may create global ones)."""
    return run_in_transaction(
        db,
        lambda: catalog.create_ingredient(db, user, **item_in.model_dump()),
        context={"user_id": user.id},
    )


@router.get("/{ingredient_id}", response_model=schemas.IngredientOut)
def get_ingredient(
    ingredient_id: str,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return load_ingredient(db, user, ingredient_id)


@router.patch("/{ingredient_id}", response_model=schemas.IngredientOut)
def update_ingredient(
    ingredient_id: str,
    patch: schemas.IngredientPatch,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update an ingredient the caller owns (admins: global ingredients)."""
    changes = patch.model_dump(exclude_unset=True)
    return run_in_transaction(
        db,
        lambda: catalog.update_ingredient(db, user, ingredient_id, changes),
        context={"user_id": user.id, "ingredient_id": ingredient_id},
    )
