"""
Notification service for user notifications.

Stores in-app notifications and delivers them as Expo push messages.
Push delivery is fire-and-forget: failures are logged and never propagate
to the action that triggered the notification.
"""

from typing import List, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_
from reelrank.database.models import Notification, PushToken
from reelrank.utils.constants import PUSH_CHUNK_SIZE, PUSH_TIMEOUT_SECONDS
from reelrank.utils.datetime_utils import utcnow, isoformat_or_none
import httpx
import json
import logging
import os

logger = logging.getLogger(__name__)

EXPO_PUSH_URL = os.getenv("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")


def _format_notification(notification: Notification) -> Dict:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": json.loads(notification.data) if notification.data else None,
        "is_read": notification.is_read,
        "read_at": isoformat_or_none(notification.read_at),
        "created_at": isoformat_or_none(notification.created_at),
    }


async def create_notification(
    session: AsyncSession,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: Optional[Dict] = None,
) -> Dict:
    """
    Create a single notification for a user and push it to their devices.

    The row is flushed in the caller's transaction, so database errors
    propagate to the caller. Push delivery failures are only logged.

    Args:
        session: Database session
        user_id: ID of the user to notify
        type: Notification type (NotificationType enum value)
        title: Notification title
        message: Notification message text
        data: Optional JSON metadata (dict will be serialized to JSON string)

    Returns:
        Dict containing the created notification data

    Raises:
        ValueError: If required fields are missing
    """
    if not user_id:
        raise ValueError("user_id is required")
    if not type:
        raise ValueError("type is required")
    if not title:
        raise ValueError("title is required")
    if not message:
        raise ValueError("message is required")

    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=json.dumps(data) if data is not None else None,
        is_read=False,
    )
    session.add(notification)
    await session.flush()
    await session.refresh(notification)

    notification_dict = _format_notification(notification)

    # Push delivery is best effort
    try:
        tokens = await get_push_tokens(session, [user_id])
        await send_push_notifications(
            [
                {"to": token, "sound": "default", "title": title, "body": message, "data": data or {}}
                for token in tokens
            ]
        )
    except Exception as e:
        logger.warning(f"Failed to push notification to user {user_id}: {e}")

    return notification_dict


async def get_push_tokens(session: AsyncSession, user_ids: List[int]) -> List[str]:
    """Get all registered push tokens for the given users."""
    if not user_ids:
        return []
    result = await session.execute(select(PushToken.token).where(PushToken.user_id.in_(user_ids)))
    return list(result.scalars().all())


async def register_push_token(session: AsyncSession, user_id: int, token: str) -> None:
    """
    Register (or move) a device push token for a user.

    A token belongs to one device, so re-registering it under another
    user reassigns it.
    """
    if not token:
        raise ValueError("token is required")

    result = await session.execute(select(PushToken).where(PushToken.token == token))
    existing = result.scalar_one_or_none()
    if existing:
        existing.user_id = user_id
    else:
        session.add(PushToken(user_id=user_id, token=token))
    await session.flush()


async def send_push_notifications(messages: List[Dict]) -> None:
    """
    Send push messages through the Expo push API in chunks.

    Never raises: delivery errors are logged per chunk.
    """
    if not messages:
        return

    async with httpx.AsyncClient(timeout=PUSH_TIMEOUT_SECONDS) as client:
        for start in range(0, len(messages), PUSH_CHUNK_SIZE):
            chunk = messages[start:start + PUSH_CHUNK_SIZE]
            try:
                response = await client.post(
                    EXPO_PUSH_URL,
                    json=chunk,
                    headers={"Accept": "application/json", "Content-Type": "application/json"},
                )
                response.raise_for_status()
                logger.debug(f"Expo push response: {response.json()}")
            except Exception as e:
                logger.warning(f"Error sending {len(chunk)} push notification(s): {e}")


async def get_user_notifications(
    session: AsyncSession, user_id: int, limit: int = 50, offset: int = 0, unread_only: bool = False
) -> List[Dict]:
    """Get a user's notifications, newest first."""
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    result = await session.execute(
        query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).offset(offset)
    )
    return [_format_notification(n) for n in result.scalars().all()]


async def mark_as_read(session: AsyncSession, notification_id: int, user_id: int) -> bool:
    """Mark a notification as read. Returns False if it doesn't belong to the user."""
    result = await session.execute(
        update(Notification)
        .where(and_(Notification.id == notification_id, Notification.user_id == user_id))
        .values(is_read=True, read_at=utcnow())
    )
    await session.flush()
    return result.rowcount > 0
