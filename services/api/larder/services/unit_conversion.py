"""
Unit Normalizer.

Turns (quantity, unit, ingredient category) into a quantity in the category's
canonical unit so that recipe lines, stock rows and shopping-list entries are
directly comparable. Pure functions over static tables; no I/O.
"""

from decimal import Decimal
from typing import Optional, Literal, NamedTuple

from ..errors import UnitMismatchError
from ..settings import settings

# --- Types ---

Dimension = Literal["mass", "volume", "count"]


class NormalizedQuantity(NamedTuple):
    qty: Decimal
    unit: str
    dimension: str


# --- Data Tables ---

# Canonical unit per dimension
CANONICAL_UNITS: dict[str, str] = {
    "mass": "g",
    "volume": "ml",
    "count": "each",
}

# Normalized unit -> (dimension, factor_to_canonical)
UNITS_DB: dict[str, tuple[str, Decimal]] = {
    # Mass (canonical: g)
    "g": ("mass", Decimal("1")),
    "gram": ("mass", Decimal("1")),
    "kg": ("mass", Decimal("1000")),
    "kilogram": ("mass", Decimal("1000")),
    "mg": ("mass", Decimal("0.001")),
    "milligram": ("mass", Decimal("0.001")),
    "oz": ("mass", Decimal("28.3495")),
    "ounce": ("mass", Decimal("28.3495")),
    "lb": ("mass", Decimal("453.592")),
    "pound": ("mass", Decimal("453.592")),

    # Volume (canonical: ml)
    "ml": ("volume", Decimal("1")),
    "milliliter": ("volume", Decimal("1")),
    "cl": ("volume", Decimal("10")),
    "dl": ("volume", Decimal("100")),
    "l": ("volume", Decimal("1000")),
    "liter": ("volume", Decimal("1000")),
    "tsp": ("volume", Decimal("4.92892")),
    "teaspoon": ("volume", Decimal("4.92892")),
    "tbsp": ("volume", Decimal("14.7868")),
    "tablespoon": ("volume", Decimal("14.7868")),
    "fl oz": ("volume", Decimal("29.5735")),
    "fluid ounce": ("volume", Decimal("29.5735")),
    "cup": ("volume", Decimal("236.588")),
    "pint": ("volume", Decimal("473.176")),
    "quart": ("volume", Decimal("946.353")),
    "gallon": ("volume", Decimal("3785.41")),

    # Count (canonical: each)
    "each": ("count", Decimal("1")),
    "pc": ("count", Decimal("1")),
    "piece": ("count", Decimal("1")),
    "clove": ("count", Decimal("1")),
    "slice": ("count", Decimal("1")),
    "can": ("count", Decimal("1")),
    "egg": ("count", Decimal("1")),
    "dozen": ("count", Decimal("12")),
}

# Input spellings that are not a plural of a UNITS_DB key
SYNONYMS = {
    "T": "tbsp",
    "t": "tsp",
    "tbl": "tbsp",
    "c": "cup",
    "pt": "pint",
    "qt": "quart",
    "gal": "gallon",
    "lbs": "lb",
    "pcs": "pc",
    "litre": "liter",
    "litres": "liter",
    "millilitre": "milliliter",
    "millilitres": "milliliter",
    "unit": "each",
    "units": "each",
    "x": "each",
}

# Ingredient category -> dimension of its canonical unit
CATEGORY_DIMENSIONS: dict[str, str] = {
    "baking": "mass",
    "grains": "mass",
    "pasta": "mass",
    "meat": "mass",
    "seafood": "mass",
    "cheese": "mass",
    "vegetables": "mass",
    "fruit": "mass",
    "spices": "mass",
    "nuts": "mass",
    "dairy": "volume",
    "beverages": "volume",
    "oils": "volume",
    "sauces": "volume",
    "condiments": "volume",
    "eggs": "count",
    "bakery": "count",
    "canned": "count",
    "produce_count": "count",
}


# --- Core Functions ---

def normalize_unit(unit: Optional[str]) -> Optional[str]:
    """Normalize a unit string to a key in UNITS_DB, or None if unknown."""
    if not unit:
        return None

    # Case-sensitive synonyms first ('T' vs 't')
    raw_clean = unit.strip().rstrip('.')
    if raw_clean in SYNONYMS:
        return SYNONYMS[raw_clean]

    u = raw_clean.lower()
    if u in UNITS_DB:
        return u
    if u in SYNONYMS:
        return SYNONYMS[u]

    # Plurals: grams, cloves, cups
    if u.endswith('s') and u[:-1] in UNITS_DB:
        return u[:-1]
    if u.endswith('es') and u[:-2] in UNITS_DB:
        return u[:-2]

    return None


def category_dimension(category: Optional[str]) -> str:
    """Dimension of the canonical unit for an ingredient category."""
    key = (category or "").strip().lower()
    overrides = settings.category_dimensions
    if key in overrides:
        return overrides[key]
    return CATEGORY_DIMENSIONS.get(key, settings.default_category_dimension)


def canonical_unit(category: Optional[str]) -> str:
    return CANONICAL_UNITS[category_dimension(category)]


def normalize_quantity(qty, unit: Optional[str], category: Optional[str]) -> NormalizedQuantity:
    """Convert `qty` `unit` into the canonical unit of `category`.

    Raises UnitMismatchError when the unit is unknown or measures a different
    dimension than the category (e.g. cloves of a mass-only ingredient).
    """
    norm = normalize_unit(unit)
    if norm is None:
        raise UnitMismatchError(f"Unknown unit '{unit}'", unit=unit, category=category)

    unit_dimension, factor = UNITS_DB[norm]
    target_dimension = category_dimension(category)
    if unit_dimension != target_dimension:
        raise UnitMismatchError(
            f"Unit '{unit}' measures {unit_dimension} but category "
            f"'{category or 'uncategorized'}' is measured by {target_dimension}",
            unit=unit,
            category=category,
        )

    return NormalizedQuantity(
        qty=Decimal(str(qty)) * factor,
        unit=CANONICAL_UNITS[target_dimension],
        dimension=target_dimension,
    )


def convert_unit(qty, from_unit: str, to_unit: str) -> Decimal:
    """Convert between two units of the same dimension."""
    norm_from = normalize_unit(from_unit)
    norm_to = normalize_unit(to_unit)
    if norm_from is None or norm_to is None:
        raise UnitMismatchError(
            f"Unknown unit '{from_unit if norm_from is None else to_unit}'",
            unit=from_unit if norm_from is None else to_unit,
        )

    dim_from, factor_from = UNITS_DB[norm_from]
    dim_to, factor_to = UNITS_DB[norm_to]
    if dim_from != dim_to:
        raise UnitMismatchError(
            f"Cannot convert {dim_from} ({from_unit}) to {dim_to} ({to_unit})",
            unit=from_unit,
        )

    return Decimal(str(qty)) * factor_from / factor_to
