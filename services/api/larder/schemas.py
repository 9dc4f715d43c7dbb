"""Pydantic schemas for the Larder API.

Request/response models for:
- Users
- Ingredients and stock
- Recipes, annotations and resolved requirements
- Meal plans and aggregated requirements
- Shopping list and reconciliation
- Notifications
"""

from datetime import datetime, date
from typing import Optional, Literal

from pydantic import BaseModel, ConfigDict, Field


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- User ---

class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    role: Literal["user", "admin"] = "user"


class UserOut(ORMModel):
    id: str
    email: str
    role: str
    created_at: Optional[datetime] = None


# --- Ingredient ---

class IngredientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category: Optional[str] = Field(None, max_length=50)
    default_spoilage_flag: bool = False
    is_global: bool = False


class IngredientPatch(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    category: Optional[str] = Field(None, max_length=50)
    default_spoilage_flag: Optional[bool] = None


class IngredientOut(ORMModel):
    id: str
    name: str
    category: Optional[str]
    is_global: bool
    default_spoilage_flag: bool
    created_by_user: Optional[str]


# --- Stock ---

class StockAdd(BaseModel):
    quantity: float = Field(..., ge=0)
    unit: str = Field(..., min_length=1, max_length=20)
    portion_quantity: Optional[float] = Field(None, ge=0)


class StockConsume(BaseModel):
    quantity: float = Field(..., ge=0)
    unit: str = Field(..., min_length=1, max_length=20)


class StockOut(ORMModel):
    id: str
    base_ingredient_id: str
    ingredient_name: Optional[str] = None
    total_quantity: float
    portion_quantity: float
    unit: Optional[str] = None
    is_opened: bool
    opened_at: Optional[datetime]
    spoilage_flagged: bool
    updated_at: Optional[datetime]


class SpoilageSweepOut(BaseModel):
    flagged: list[StockOut]


# --- Recipe ---

class RecipeIngredientIn(BaseModel):
    ingredient_id: str
    quantity: float = Field(..., gt=0)
    unit: str = Field(..., min_length=1, max_length=255)


class RecipeIngredientOut(ORMModel):
    id: str
    base_ingredient_id: str
    quantity: float
    unit: str
    position: int


class RecipeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    default_servings: int = Field(..., ge=1)
    preparation_time: Optional[int] = Field(None, ge=0)
    preparation_time_unit: Optional[str] = None
    steps: Optional[str] = None
    is_global: bool = False
    ingredients: list[RecipeIngredientIn] = []


class RecipePatch(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    default_servings: Optional[int] = Field(None, ge=1)
    preparation_time: Optional[int] = Field(None, ge=0)
    preparation_time_unit: Optional[str] = None
    steps: Optional[str] = None
    ingredients: Optional[list[RecipeIngredientIn]] = None  # Replaces all lines if provided


class RecipeOut(ORMModel):
    id: str
    name: str
    is_global: bool
    created_by_user: Optional[str]
    default_servings: int
    preparation_time: Optional[int]
    preparation_time_unit: Optional[str]
    steps: Optional[str]
    ingredients: list[RecipeIngredientOut] = []


class RecipeAnnotationIn(BaseModel):
    notes: Optional[str] = None
    photo_url: Optional[str] = Field(None, max_length=255)
    rating: Optional[int] = Field(None, ge=1, le=5)


class RecipeAnnotationOut(ORMModel):
    id: str
    base_recipe_id: str
    notes: Optional[str]
    photo_url: Optional[str]
    rating: Optional[int]


class RequirementOut(BaseModel):
    ingredient_id: str
    ingredient_name: str
    quantity: float
    unit: str


class RecipeRequirementsOut(BaseModel):
    recipe_id: str
    servings: float
    items: list[RequirementOut]


# --- Meal Plan ---

class MealPlanCreate(BaseModel):
    recipe_id: str
    scheduled_for: date
    servings: Optional[int] = Field(None, ge=1)
    meal_type: Optional[str] = None
    notes: Optional[str] = None


class MealPlanComplete(BaseModel):
    consume_stock: bool = False


class MealPlanOut(ORMModel):
    id: str
    base_recipe_id: str
    scheduled_for: date
    meal_type: Optional[str]
    servings: int
    completed_at: Optional[datetime]
    notes: Optional[str]


class AggregateOut(BaseModel):
    start: date
    end: date
    items: list[RequirementOut]


# --- Shopping List ---

class ShoppingItemCreate(BaseModel):
    ingredient_id: str
    quantity: float = Field(..., gt=0)
    unit: str = Field(..., min_length=1, max_length=20)


class ShoppingItemOut(ORMModel):
    id: str
    base_ingredient_id: str
    ingredient_name: Optional[str] = None
    quantity: float
    unit: Optional[str] = None
    purchased: bool
    purchased_at: Optional[datetime]
    source: str
    added_at: Optional[datetime]


class ReconcileRequest(BaseModel):
    start: date
    end: date


class ReconcileOut(BaseModel):
    created: list[ShoppingItemOut]
    updated: list[ShoppingItemOut]
    unchanged: list[ShoppingItemOut]
    removed_ingredient_ids: list[str]


# --- Units ---

class UnitConvertRequest(BaseModel):
    qty: float
    from_unit: str
    to_unit: Optional[str] = None
    category: Optional[str] = None  # when set and to_unit is empty, convert to the category's canonical unit


class UnitConvertResponse(BaseModel):
    qty: float
    unit: str


# --- Notifications ---

class NotificationOut(ORMModel):
    id: str
    kind: str
    message: str
    sent_at: Optional[datetime]
    read_at: Optional[datetime]
