"""User provisioning.

Accounts are mirrored from the auth service, which calls POST /users when a
user signs up; credentials never pass through here.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import models, schemas
from ..deps import get_db, get_current_user

router = APIRouter()


@router.post("/users", response_model=schemas.UserOut, status_code=201)
def create_user(
    user_in: schemas.UserCreate,
    db: Session = Depends(get_db),
):
    email = user_in.email.strip().lower()
    if db.scalar(select(models.User).where(models.User.email == email)):
        raise HTTPException(status_code=409, detail=f"User '{email}' already exists")

    user = models.User(email=email, role=user_in.role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.get("/users/me", response_model=schemas.UserOut)
def get_me(user: models.User = Depends(get_current_user)):
    return user
