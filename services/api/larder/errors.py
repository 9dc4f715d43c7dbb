"""Error taxonomy for the inventory reconciliation engine.

Every error carries a machine-readable ``code`` and a ``context`` dict
(user, ingredient, recipe ids ...) so callers can report precisely and
retry safely. The HTTP status each one maps to lives next to it; the
handlers in ``larder.main`` use it to build the response.
"""

from typing import Any, Optional


class LarderError(Exception):
    code = "larder_error"
    status_code = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "error": self.code, "context": self.context}


class ValidationError(LarderError):
    """Bad input shape or range (caller error)."""
    code = "validation_error"
    status_code = 400


class NotFoundError(ValidationError):
    """A referenced entity does not exist."""
    code = "not_found"
    status_code = 404


class PermissionDeniedError(LarderError):
    code = "permission_denied"
    status_code = 403


class UnitMismatchError(LarderError):
    """Recipe/ingredient definitions disagree on a unit or its dimension."""
    code = "unit_mismatch"
    status_code = 422

    def __init__(
        self,
        message: str,
        *,
        unit: Optional[str] = None,
        category: Optional[str] = None,
        recipe_id: Optional[str] = None,
        ingredient_id: Optional[str] = None,
    ):
        super().__init__(
            message,
            unit=unit,
            category=category,
            recipe_id=recipe_id,
            ingredient_id=ingredient_id,
        )
        self.unit = unit
        self.category = category
        self.recipe_id = recipe_id
        self.ingredient_id = ingredient_id

    def with_context(self, *, recipe_id: str, ingredient_id: str) -> "UnitMismatchError":
        return UnitMismatchError(
            f"Recipe {recipe_id}, ingredient {ingredient_id}: {self.message}",
            unit=self.unit,
            category=self.category,
            recipe_id=recipe_id,
            ingredient_id=ingredient_id,
        )


class InsufficientStockError(LarderError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, message: str, *, requested: float, available: float, **context: Any):
        super().__init__(message, requested=requested, available=available, **context)
        self.requested = requested
        self.available = available


class ConflictError(LarderError):
    """Concurrent writes kept colliding after the bounded retry count."""
    code = "conflict"
    status_code = 409
