from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    *,
    user_id: str,
    title: str,
    message: str,
    notification_type: NotificationType,
) -> Notification | None:
    """Record an in-app notification without ever failing the caller.

    The insert runs in a SAVEPOINT so a failure only discards the notification,
    not the absence or schedule change that triggered it.
    """
    try:
        with db.begin_nested():
            record = Notification(
                user_id=user_id,
                title=title,
                message=message,
                notification_type=notification_type,
            )
            db.add(record)
            db.flush()
    except Exception:
        logger.warning(
            "Dropping %s notification for user %s",
            notification_type.value,
            user_id,
            exc_info=True,
        )
        return None

    logger.info("Queued %s notification for user %s", notification_type.value, user_id)
    return record
