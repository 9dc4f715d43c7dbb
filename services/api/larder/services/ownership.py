"""Single capability check for global vs user-owned catalog entities.

Ingredients and recipes are one entity type each with an owner field
(`created_by_user`, NULL for global). Mutation is gated here rather than by
subclassing.
"""

from typing import Optional, Protocol

from ..errors import PermissionDeniedError
from ..models import User


class Owned(Protocol):
    id: str

    @property
    def owner_id(self) -> Optional[str]: ...


def can_modify(actor: User, entity: Owned) -> bool:
    """Global entities are admin-curated; user entities belong to their creator."""
    if entity.owner_id is None:
        return actor.is_admin
    return entity.owner_id == actor.id


def ensure_can_modify(actor: User, entity: Owned) -> None:
    if not can_modify(actor, entity):
        raise PermissionDeniedError(
            f"User may not modify {type(entity).__name__} {entity.id}",
            user_id=actor.id,
            entity_id=entity.id,
        )
