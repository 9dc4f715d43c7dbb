"""SQLAlchemy ORM models for Larder.

Tables:
- users: identity + role; `revision` serializes a user's ledger writes
- base_ingredients / base_recipes: global (created_by_user NULL) or user-owned
- user_ingredients: per-user stock in canonical units
- stock_transactions: audit log for every ledger mutation
- recipe_ingredients: required ingredient lines in the author's units
- user_recipes: per-user notes / photo / rating
- meal_plans: scheduled recipe instances
- shopping_list: items to buy (manual or reconciler-generated)
- notifications: informational sink
"""

from __future__ import annotations

import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Text,
    Integer,
    Boolean,
    Float,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
    UniqueConstraint,
    desc,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func, false

from .db import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Account owning all per-user data.

    Credentials are issued and checked by the external auth service; only the
    hash is stored here so the row mirrors the upstream schema.
    """
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin')", name="valid_role"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False, default="")
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="user")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Bumped by every stock / shopping-list write so that concurrent
    # read-modify-write passes for one user collide instead of interleaving.
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    ledger_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __mapper_args__ = {"version_id_col": revision}

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class BaseIngredient(Base):
    """Named ingredient; global when created_by_user is NULL."""
    __tablename__ = "base_ingredients"
    __table_args__ = (
        UniqueConstraint("name", "created_by_user", name="unique_ingredient_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_global: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    default_spoilage_flag: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by_user: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    @property
    def owner_id(self) -> Optional[str]:
        return self.created_by_user


class UserIngredient(Base):
    """Current stock of one ingredient for one user (canonical units)."""
    __tablename__ = "user_ingredients"
    __table_args__ = (
        UniqueConstraint("user_id", "base_ingredient_id", name="uq_user_ingredient"),
        CheckConstraint(
            "total_quantity >= 0 AND portion_quantity >= 0", name="positive_quantities"
        ),
        Index("ix_user_ingredients_opened", "is_opened", "spoilage_flagged"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    base_ingredient_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("base_ingredients.id", ondelete="CASCADE"), nullable=False
    )

    total_quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    portion_quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    is_opened: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false(), default=False)
    opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    spoilage_flagged: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false(), default=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    ingredient: Mapped["BaseIngredient"] = relationship("BaseIngredient", lazy="joined")


class StockTransaction(Base):
    """Audit log for ledger mutations."""
    __tablename__ = "stock_transactions"
    __table_args__ = (
        Index("ix_stock_transactions_user_item", "user_id", "user_ingredient_id", desc("created_at")),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_ingredient_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_ingredients.id", ondelete="CASCADE"), nullable=False
    )

    source: Mapped[str] = mapped_column(String(50), nullable=False)  # add | consume | open | spoilage | meal_plan
    delta_qty: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    ref_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class BaseRecipe(Base):
    """Recipe; global when created_by_user is NULL."""
    __tablename__ = "base_recipes"
    __table_args__ = (
        UniqueConstraint("name", "created_by_user", name="unique_recipe_name"),
        CheckConstraint("default_servings > 0", name="positive_default_servings"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_global: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by_user: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    preparation_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    preparation_time_unit: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    default_servings: Mapped[int] = mapped_column(Integer, nullable=False)
    steps: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    ingredients: Mapped[list["RecipeIngredient"]] = relationship(
        "RecipeIngredient", back_populates="recipe", cascade="all, delete-orphan",
        order_by="[RecipeIngredient.position, RecipeIngredient.id]"
    )

    @property
    def owner_id(self) -> Optional[str]:
        return self.created_by_user


class RecipeIngredient(Base):
    """One required ingredient line, in the recipe author's unit."""
    __tablename__ = "recipe_ingredients"
    __table_args__ = (
        Index("ix_recipe_ingredients_recipe_id", "base_recipe_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    base_recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("base_recipes.id", ondelete="CASCADE"), nullable=False
    )
    base_ingredient_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("base_ingredients.id", ondelete="CASCADE"), nullable=False
    )
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recipe: Mapped["BaseRecipe"] = relationship("BaseRecipe", back_populates="ingredients")
    ingredient: Mapped["BaseIngredient"] = relationship("BaseIngredient", lazy="joined")


class UserRecipe(Base):
    """Per-user annotations on a recipe."""
    __tablename__ = "user_recipes"
    __table_args__ = (
        UniqueConstraint("user_id", "base_recipe_id", name="uq_user_recipe"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="valid_rating"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    base_recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("base_recipes.id", ondelete="CASCADE"), nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    photo_url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class MealPlan(Base):
    """A recipe scheduled for a user on a date."""
    __tablename__ = "meal_plans"
    __table_args__ = (
        Index("ix_meal_plans_user_scheduled", "user_id", "scheduled_for"),
        CheckConstraint("servings > 0", name="positive_servings"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    base_recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("base_recipes.id", ondelete="CASCADE"), nullable=False
    )
    scheduled_for: Mapped[date] = mapped_column(Date, nullable=False)
    meal_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # breakfast | lunch | dinner ...
    servings: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    recipe: Mapped["BaseRecipe"] = relationship("BaseRecipe")


class ShoppingListItem(Base):
    """Quantity of an ingredient to buy.

    source: manual (user-authored, never touched by the reconciler)
          | reconciler (system-generated deficit)
    """
    __tablename__ = "shopping_list"
    __table_args__ = (
        Index("ix_shopping_list_user_ingredient", "user_id", "base_ingredient_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    base_ingredient_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("base_ingredients.id", ondelete="CASCADE"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    purchased: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false(), default=False)
    purchased_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="manual")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    ingredient: Mapped["BaseIngredient"] = relationship("BaseIngredient", lazy="joined")

    @property
    def is_system_generated(self) -> bool:
        return self.source == "reconciler"


class Notification(Base):
    """Informational message for a user; delivery happens elsewhere."""
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_sent", "user_id", desc("sent_at")),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)  # shopping_list_updated | ingredient_spoiling
    message: Mapped[str] = mapped_column(Text, nullable=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
