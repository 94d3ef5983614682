"""
In-app notifications, stored for the recipient's notification feed.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.models.activity import Notification

logger = get_logger(__name__)


async def notify(
    db: AsyncSession,
    user_id: str,
    type: str,
    title: str,
    message: str,
    link: Optional[str] = None,
    details: Optional[dict] = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        link=link,
        details=details or {},
    )
    db.add(notification)
    await db.flush()
    logger.info("notification_created", user_id=user_id, type=type, notification_id=notification.id)
    return notification
