"""FastAPI dependencies for the Larder API.

Provides:
- Database session dependency
- Current user resolution (identity supplied by the upstream auth service)
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .db import get_db
from .models import User


def get_current_user(
    db: Session = Depends(get_db),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> User:
    """Resolve the caller from the X-User-Id header.

    The auth gateway in front of this service authenticates the request and
    forwards the user id; no credential checks happen here.

    Raises:
        HTTPException 401 if the header is missing
        HTTPException 404 if no such user exists
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")

    user = db.get(User, x_user_id.strip())
    if user is None:
        raise HTTPException(status_code=404, detail=f"User '{x_user_id}' not found")
    return user

