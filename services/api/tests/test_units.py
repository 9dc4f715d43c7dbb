"""
Tests for unit normalization.
"""

from decimal import Decimal

import pytest

from larder.errors import UnitMismatchError
from larder.services.unit_conversion import (
    normalize_unit,
    normalize_quantity,
    convert_unit,
    canonical_unit,
    category_dimension,
)


@pytest.mark.parametrize("raw,expected", [
    ("g", "g"),
    ("Grams", "gram"),
    ("kg.", "kg"),
    ("cups", "cup"),
    ("cloves", "clove"),
    ("T", "tbsp"),
    ("t", "tsp"),
    ("lbs", "lb"),
    ("furlong", None),
    ("", None),
    (None, None),
])
def test_normalize_unit(raw, expected):
    assert normalize_unit(raw) == expected


def test_canonical_units_per_category():
    assert canonical_unit("baking") == "g"
    assert canonical_unit("dairy") == "ml"
    assert canonical_unit("eggs") == "each"
    # Unknown / missing categories fall back to mass
    assert canonical_unit("mystery") == "g"
    assert canonical_unit(None) == "g"


def test_category_is_case_insensitive():
    assert category_dimension("  Dairy ") == "volume"


def test_normalize_kg_to_grams():
    result = normalize_quantity(1.5, "kg", "baking")
    assert result.qty == Decimal("1500")
    assert result.unit == "g"
    assert result.dimension == "mass"


def test_normalize_volume():
    result = normalize_quantity(2, "cups", "dairy")
    assert result.unit == "ml"
    assert result.qty == Decimal("473.176")


def test_normalize_dozen_eggs():
    result = normalize_quantity(1, "dozen", "eggs")
    assert result.qty == Decimal("12")
    assert result.unit == "each"


def test_cloves_of_mass_category_is_a_mismatch():
    with pytest.raises(UnitMismatchError) as exc:
        normalize_quantity(2, "cloves", "vegetables")
    assert exc.value.unit == "cloves"
    assert exc.value.category == "vegetables"
    assert exc.value.status_code == 422


def test_unknown_unit_is_a_mismatch():
    with pytest.raises(UnitMismatchError):
        normalize_quantity(1, "handful", "baking")


def test_category_dimension_override(monkeypatch):
    from larder.settings import settings
    monkeypatch.setattr(settings, "category_dimensions", {"garlic": "count"})
    assert normalize_quantity(2, "cloves", "garlic").qty == Decimal("2")


def test_convert_unit_same_dimension():
    assert convert_unit(1, "kg", "g") == Decimal("1000")
    assert abs(convert_unit(1, "tbsp", "tsp") - Decimal("3")) < Decimal("0.01")


def test_convert_unit_cross_dimension():
    with pytest.raises(UnitMismatchError):
        convert_unit(1, "cup", "g")


# --- API ---

def test_convert_endpoint_to_unit(client):
    response = client.post("/api/units/convert", json={"qty": 1, "from_unit": "lb", "to_unit": "g"})
    assert response.status_code == 200
    data = response.json()
    assert data["unit"] == "g"
    assert abs(data["qty"] - 453.592) < 0.001


def test_convert_endpoint_to_category(client):
    response = client.post("/api/units/convert", json={"qty": 250, "from_unit": "ml", "category": "dairy"})
    assert response.status_code == 200
    assert response.json() == {"qty": 250.0, "unit": "ml"}


def test_convert_endpoint_mismatch(client):
    response = client.post("/api/units/convert", json={"qty": 2, "from_unit": "cloves", "category": "baking"})
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "unit_mismatch"
    assert body["context"]["unit"] == "cloves"


def test_convert_endpoint_needs_target(client):
    response = client.post("/api/units/convert", json={"qty": 1, "from_unit": "g"})
    assert response.status_code == 400
