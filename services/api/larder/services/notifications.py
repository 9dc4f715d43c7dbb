from typing import Optional
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.timeutil import utcnow
from ..errors import NotFoundError
from ..models import Notification

logger = logging.getLogger("larder.notifications")

SHOPPING_LIST_UPDATED = "shopping_list_updated"
INGREDIENT_SPOILING = "ingredient_spoiling"

MAX_MESSAGE_SIZE = 1000


def emit(db: Session, *, user_id: str, kind: str, message: str) -> Notification:
    """Record a notification for the user.

    Formatting and delivery belong to the notification service; this only
    stores the event. Not committed here: the row joins the caller's
    transaction, so a rolled-back batch emits nothing.
    """
    if len(message) > MAX_MESSAGE_SIZE:
        message = message[: MAX_MESSAGE_SIZE - 3] + "..."

    notification = Notification(
        user_id=user_id,
        kind=kind,
        message=message,
        sent_at=utcnow(),
    )
    db.add(notification)
    logger.info(f"[{kind}] user={user_id} {message}")
    return notification


def list_notifications(db: Session, user_id: str, unread_only: bool = False) -> list[Notification]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.read_at.is_(None))
    return list(db.scalars(stmt.order_by(Notification.sent_at.desc(), Notification.id)).all())


def mark_read(db: Session, user_id: str, notification_id: str) -> Notification:
    notification = db.scalar(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    if not notification:
        raise NotFoundError("Notification not found", notification_id=notification_id)
    if notification.read_at is None:
        notification.read_at = utcnow()
    return notification
