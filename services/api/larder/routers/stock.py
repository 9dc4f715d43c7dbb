from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .. import models, schemas
from ..core.timeutil import as_utc
from ..deps import get_db, get_current_user
from ..errors import LarderError, ConflictError
from ..infra.idempotency import idempotency_precheck, idempotency_store_result, idempotency_clear_key
from ..infra.transactions import run_in_transaction
from ..services import stock_ledger
from ..services.unit_conversion import canonical_unit

router = APIRouter()


def stock_to_out(row: models.UserIngredient) -> schemas.StockOut:
    ingredient = row.ingredient
    return schemas.StockOut(
        id=row.id,
        base_ingredient_id=row.base_ingredient_id,
        ingredient_name=ingredient.name if ingredient else None,
        total_quantity=float(row.total_quantity),
        portion_quantity=float(row.portion_quantity),
        unit=canonical_unit(ingredient.category) if ingredient else None,
        is_opened=row.is_opened,
        opened_at=as_utc(row.opened_at),
        spoilage_flagged=row.spoilage_flagged,
        updated_at=as_utc(row.updated_at),
    )


@router.get("/", response_model=list[schemas.StockOut])
def list_stock(
    spoiled: bool = False,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the caller's stock rows."""
    return [stock_to_out(r) for r in stock_ledger.list_stock(db, user.id, spoiled_only=spoiled)]


@router.get("/{ingredient_id}", response_model=schemas.StockOut)
def get_stock(
    ingredient_id: str,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    stock_ledger.load_ingredient(db, user, ingredient_id)
    row = stock_ledger.get_stock(db, user.id, ingredient_id)
    if row is None:
        raise HTTPException(status_code=404, detail="No stock recorded for ingredient")
    return stock_to_out(row)


async def _idempotent_write(request: Request, user: models.User, route_key: str, write):
    """Run `write()` under the Idempotency-Key protocol (if the header is set)."""
    pre = await idempotency_precheck(request, user_id=user.id, route_key=route_key)
    if isinstance(pre, JSONResponse):
        return pre

    try:
        out = write()
    except ConflictError:
        # Retryable: release the key so the same request can run again
        if pre:
            await idempotency_clear_key(pre[0])
        raise
    except LarderError as e:
        # Business errors are final for this payload: store them too
        if pre:
            await idempotency_store_result(pre[0], pre[1], status=e.status_code, body=e.to_dict())
        raise
    except Exception:
        if pre:
            await idempotency_clear_key(pre[0])
        raise

    if pre:
        await idempotency_store_result(pre[0], pre[1], status=200, body=out.model_dump(mode="json"))
    return out


@router.post("/{ingredient_id}/add", response_model=schemas.StockOut)
async def add_stock(
    ingredient_id: str,
    payload: schemas.StockAdd,
    request: Request,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Add stock. Send an Idempotency-Key header to make retries safe."""
    def write():
        row = run_in_transaction(
            db,
            lambda: stock_ledger.add_stock(
                db, user, ingredient_id, payload.quantity, payload.unit,
                portion_quantity=payload.portion_quantity,
            ),
            context={"user_id": user.id, "ingredient_id": ingredient_id},
        )
        return stock_to_out(row)

    return await _idempotent_write(request, user, f"stock_add:{ingredient_id}", write)


@router.post("/{ingredient_id}/consume", response_model=schemas.StockOut)
async def consume_stock(
    ingredient_id: str,
    payload: schemas.StockConsume,
    request: Request,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Consume stock; 409 insufficient_stock leaves the quantity unchanged."""
    def write():
        row = run_in_transaction(
            db,
            lambda: stock_ledger.consume(db, user, ingredient_id, payload.quantity, payload.unit),
            context={"user_id": user.id, "ingredient_id": ingredient_id},
        )
        return stock_to_out(row)

    return await _idempotent_write(request, user, f"stock_consume:{ingredient_id}", write)


@router.post("/{ingredient_id}/open", response_model=schemas.StockOut)
def open_stock(
    ingredient_id: str,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark opened (idempotent)."""
    row = run_in_transaction(
        db,
        lambda: stock_ledger.mark_opened(db, user, ingredient_id),
        context={"user_id": user.id, "ingredient_id": ingredient_id},
    )
    return stock_to_out(row)


@router.post("/{ingredient_id}/spoilage", response_model=schemas.StockOut)
def evaluate_spoilage(
    ingredient_id: str,
    now: Optional[datetime] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Apply the spoilage rule to one row now (or at `now`)."""
    row = run_in_transaction(
        db,
        lambda: stock_ledger.evaluate_spoilage(db, user, ingredient_id, now),
        context={"user_id": user.id, "ingredient_id": ingredient_id},
    )
    return stock_to_out(row)


@router.post("/spoilage/sweep", response_model=schemas.SpoilageSweepOut)
def sweep_my_spoilage(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Evaluate all of the caller's opened rows."""
    flagged = run_in_transaction(
        db,
        lambda: stock_ledger.sweep_spoilage(db, user_id=user.id),
        context={"user_id": user.id},
    )
    return schemas.SpoilageSweepOut(flagged=[stock_to_out(r) for r in flagged])
