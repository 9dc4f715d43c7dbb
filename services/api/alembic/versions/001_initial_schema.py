"""Initial schema: users, catalog, stock ledger, meal plans, shopping list, notifications

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("password_hash", sa.Text, nullable=False, server_default=""),
        sa.Column("role", sa.String(50), nullable=False, server_default="user"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("revision", sa.Integer, nullable=False, server_default="1"),
        sa.Column("ledger_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("role IN ('user', 'admin')", name="valid_role"),
    )

    # Catalog: ingredients and recipes (created_by_user NULL = global)
    op.create_table(
        "base_ingredients",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("is_global", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("default_spoilage_flag", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_by_user", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("name", "created_by_user", name="unique_ingredient_name"),
    )

    op.create_table(
        "base_recipes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_global", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_by_user", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("preparation_time", sa.Integer, nullable=True),
        sa.Column("preparation_time_unit", sa.String(255), nullable=True),
        sa.Column("default_servings", sa.Integer, nullable=False),
        sa.Column("steps", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("name", "created_by_user", name="unique_recipe_name"),
        sa.CheckConstraint("default_servings > 0", name="positive_default_servings"),
    )

    op.create_table(
        "recipe_ingredients",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("base_recipe_id", sa.String(36), sa.ForeignKey("base_recipes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("base_ingredient_id", sa.String(36), sa.ForeignKey("base_ingredients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quantity", sa.Float, nullable=False),
        sa.Column("unit", sa.String(255), nullable=False),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
    )
    op.create_index("ix_recipe_ingredients_recipe_id", "recipe_ingredients", ["base_recipe_id"])

    op.create_table(
        "user_recipes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("base_recipe_id", sa.String(36), sa.ForeignKey("base_recipes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("photo_url", sa.String(255), nullable=True),
        sa.Column("rating", sa.Integer, nullable=True),
        sa.UniqueConstraint("user_id", "base_recipe_id", name="uq_user_recipe"),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="valid_rating"),
    )

    # Stock ledger
    op.create_table(
        "user_ingredients",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("base_ingredient_id", sa.String(36), sa.ForeignKey("base_ingredients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("total_quantity", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("portion_quantity", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("is_opened", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("spoilage_flagged", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.UniqueConstraint("user_id", "base_ingredient_id", name="uq_user_ingredient"),
        sa.CheckConstraint("total_quantity >= 0 AND portion_quantity >= 0", name="positive_quantities"),
    )
    op.create_index("ix_user_ingredients_opened", "user_ingredients", ["is_opened", "spoilage_flagged"])

    op.create_table(
        "stock_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_ingredient_id", sa.String(36), sa.ForeignKey("user_ingredients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("delta_qty", sa.Numeric(10, 2), nullable=True),
        sa.Column("unit", sa.String(20), nullable=True),
        sa.Column("ref_id", sa.String(36), nullable=True),
        sa.Column("note", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_stock_transactions_user_item",
        "stock_transactions",
        ["user_id", "user_ingredient_id", sa.text("created_at DESC")],
    )

    # Meal plans
    op.create_table(
        "meal_plans",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("base_recipe_id", sa.String(36), sa.ForeignKey("base_recipes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("scheduled_for", sa.Date, nullable=False),
        sa.Column("meal_type", sa.Text, nullable=True),
        sa.Column("servings", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.CheckConstraint("servings > 0", name="positive_servings"),
    )
    op.create_index("ix_meal_plans_user_scheduled", "meal_plans", ["user_id", "scheduled_for"])

    # Shopping list
    op.create_table(
        "shopping_list",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("base_ingredient_id", sa.String(36), sa.ForeignKey("base_ingredients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 2), nullable=False),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("purchased", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("source", sa.String(20), nullable=False, server_default="manual"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
    )
    op.create_index("ix_shopping_list_user_ingredient", "shopping_list", ["user_id", "base_ingredient_id"])

    # Notifications
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notifications_user_sent", "notifications", ["user_id", sa.text("sent_at DESC")])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("shopping_list")
    op.drop_table("meal_plans")
    op.drop_table("stock_transactions")
    op.drop_table("user_ingredients")
    op.drop_table("user_recipes")
    op.drop_table("recipe_ingredients")
    op.drop_table("base_recipes")
    op.drop_table("base_ingredients")
    op.drop_table("users")
