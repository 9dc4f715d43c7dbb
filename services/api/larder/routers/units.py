"""
Router for unit conversion utilities.
"""

from fastapi import APIRouter, HTTPException

from ..schemas import UnitConvertRequest, UnitConvertResponse
from ..services.unit_conversion import convert_unit, normalize_quantity

router = APIRouter()


@router.post("/convert", response_model=UnitConvertResponse)
def convert_units(req: UnitConvertRequest):
    """
    Convert a quantity to `to_unit`, or to the canonical unit of `category`.
    """
    if req.to_unit:
        qty = convert_unit(req.qty, req.from_unit, req.to_unit)
        return UnitConvertResponse(qty=float(qty), unit=req.to_unit)

    if req.category is None:
        raise HTTPException(status_code=400, detail="Provide to_unit or category")

    normalized = normalize_quantity(req.qty, req.from_unit, req.category)
    return UnitConvertResponse(qty=float(normalized.qty), unit=normalized.unit)
