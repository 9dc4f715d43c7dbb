from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import models, schemas
from ..deps import get_db, get_current_user
from ..services import notifications

router = APIRouter()


@router.get("/", response_model=list[schemas.NotificationOut])
def list_notifications(
    unread: bool = False,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Newest first."""
    return notifications.list_notifications(db, user.id, unread_only=unread)


@router.post("/{notification_id}/read", response_model=schemas.NotificationOut)
def mark_read(
    notification_id: str,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = notifications.mark_read(db, user.id, notification_id)
    db.commit()
    return notification
