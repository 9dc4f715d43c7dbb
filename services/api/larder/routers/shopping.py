from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..deps import get_db, get_current_user
from ..infra.transactions import run_in_transaction
from ..services import meal_plan_aggregator, shopping_reconciler
from ..services.unit_conversion import canonical_unit

router = APIRouter()


def item_to_out(item: models.ShoppingListItem) -> schemas.ShoppingItemOut:
    ingredient = item.ingredient
    return schemas.ShoppingItemOut(
        id=item.id,
        base_ingredient_id=item.base_ingredient_id,
        ingredient_name=ingredient.name if ingredient else None,
        quantity=float(item.quantity),
        unit=canonical_unit(ingredient.category) if ingredient else None,
        purchased=item.purchased,
        purchased_at=item.purchased_at,
        source=item.source,
        added_at=item.added_at,
    )


@router.get("/", response_model=list[schemas.ShoppingItemOut])
def get_shopping_list(
    include_purchased: bool = True,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the caller's shopping list."""
    items = shopping_reconciler.list_items(db, user.id, include_purchased=include_purchased)
    return [item_to_out(i) for i in items]


@router.post("/", response_model=schemas.ShoppingItemOut, status_code=status.HTTP_201_CREATED)
def add_item(
    item_in: schemas.ShoppingItemCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Add a manual item (never touched by reconciliation)."""
    item = run_in_transaction(
        db,
        lambda: shopping_reconciler.add_manual_item(
            db, user, item_in.ingredient_id, item_in.quantity, item_in.unit
        ),
        context={"user_id": user.id, "ingredient_id": item_in.ingredient_id},
    )
    return item_to_out(item)


@router.post("/reconcile", response_model=schemas.ReconcileOut)
def reconcile(
    request: schemas.ReconcileRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Aggregate the plan window and reconcile it against stock in one batch."""
    def operation():
        required = meal_plan_aggregator.aggregate(db, user, request.start, request.end)
        return shopping_reconciler.reconcile(db, user, required)

    result = run_in_transaction(
        db, operation, context={"user_id": user.id, "start": str(request.start), "end": str(request.end)}
    )
    return schemas.ReconcileOut(
        created=[item_to_out(i) for i in result.created],
        updated=[item_to_out(i) for i in result.updated],
        unchanged=[item_to_out(i) for i in result.unchanged],
        removed_ingredient_ids=result.removed,
    )


@router.post("/{item_id}/purchase", response_model=schemas.ShoppingItemOut)
def purchase_item(
    item_id: str,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark purchased. Stock is not credited; call /stock/{id}/add for that."""
    item = run_in_transaction(
        db,
        lambda: shopping_reconciler.mark_purchased(db, user, item_id),
        context={"user_id": user.id, "item_id": item_id},
    )
    return item_to_out(item)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(
    item_id: str,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a manual item."""
    run_in_transaction(
        db,
        lambda: shopping_reconciler.delete_manual_item(db, user, item_id),
        context={"user_id": user.id, "item_id": item_id},
    )
