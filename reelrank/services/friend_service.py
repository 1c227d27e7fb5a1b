"""
Friend service for managing friendships.

Handles sending/accepting/declining requests, removing friends and
resolving the accepted friend graph used by the friends leaderboard.
"""

from typing import Dict, List, Optional, Set
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, and_, or_, case
from reelrank.database.models import (
    Friendship,
    FriendshipStatus,
    User,
    NotificationType,
)
from reelrank.services import notification_service
from reelrank.utils.datetime_utils import utcnow, isoformat_or_none
import logging

logger = logging.getLogger(__name__)


async def get_friend_ids(session: AsyncSession, user_id: int) -> Set[int]:
    """
    Get the set of all accepted friend user_ids for a given user.

    A friendship row is directed (requester -> receiver) but once accepted it
    counts in both directions.

    Args:
        session: Database session
        user_id: User to look up friends for

    Returns:
        Set of friend user IDs
    """
    result = await session.execute(
        select(
            case(
                (Friendship.user_id == user_id, Friendship.friend_id),
                else_=Friendship.user_id,
            )
        ).where(
            and_(
                Friendship.status == FriendshipStatus.ACCEPTED.value,
                or_(Friendship.user_id == user_id, Friendship.friend_id == user_id),
            )
        )
    )
    return set(result.scalars().all())


async def get_friendship(
    session: AsyncSession, user_id: int, other_user_id: int
) -> Optional[Friendship]:
    """
    Get the friendship row between two users (in either direction).

    Args:
        session: Database session
        user_id: First user ID
        other_user_id: Second user ID

    Returns:
        Friendship or None
    """
    result = await session.execute(
        select(Friendship).where(
            or_(
                and_(Friendship.user_id == user_id, Friendship.friend_id == other_user_id),
                and_(Friendship.user_id == other_user_id, Friendship.friend_id == user_id),
            )
        )
    )
    return result.scalars().first()


async def send_friend_request(session: AsyncSession, user_id: int, friend_id: int) -> Dict:
    """
    Send a friend request from one user to another.

    Args:
        session: Database session
        user_id: User sending the request
        friend_id: User receiving the request

    Returns:
        Dict with friendship data

    Raises:
        ValueError: If the request is to yourself or a friendship already exists
    """
    if user_id == friend_id:
        raise ValueError("Cannot send a friend request to yourself")

    if await get_friendship(session, user_id, friend_id):
        raise ValueError("Friendship already exists")

    friendship = Friendship(
        user_id=user_id,
        friend_id=friend_id,
        status=FriendshipStatus.PENDING.value,
    )
    session.add(friendship)
    await session.flush()
    await session.refresh(friendship)

    sender_name = await get_display_name(session, user_id)
    await notification_service.create_notification(
        session=session,
        user_id=friend_id,
        type=NotificationType.FRIEND_REQUEST.value,
        title="Friend Request",
        message=f"{sender_name} sent you a friend request",
        data={"friendship_id": friendship.id, "user_id": user_id},
    )

    return _format_friendship(friendship)


async def accept_friend_request(session: AsyncSession, friendship_id: int, user_id: int) -> Dict:
    """
    Accept a pending friend request addressed to user_id.

    Raises:
        ValueError: If request not found, wrong receiver, or not pending
    """
    friendship = await _get_pending_for_receiver(session, friendship_id, user_id)

    friendship.status = FriendshipStatus.ACCEPTED.value
    friendship.responded_at = utcnow()
    await session.flush()

    receiver_name = await get_display_name(session, user_id)
    await notification_service.create_notification(
        session=session,
        user_id=friendship.user_id,
        type=NotificationType.FRIEND_ACCEPTED.value,
        title="Friend Request Accepted",
        message=f"{receiver_name} accepted your friend request",
        data={"user_id": user_id},
    )

    return _format_friendship(friendship)


async def decline_friend_request(session: AsyncSession, friendship_id: int, user_id: int) -> None:
    """
    Decline a pending friend request by deleting it so the sender can re-send later.

    Raises:
        ValueError: If request not found, wrong receiver, or not pending
    """
    friendship = await _get_pending_for_receiver(session, friendship_id, user_id)
    await session.delete(friendship)
    await session.flush()


async def remove_friend(session: AsyncSession, user_id: int, friend_id: int) -> None:
    """
    Remove an accepted friendship between two users.

    Raises:
        ValueError: If not currently friends
    """
    friendship = await get_friendship(session, user_id, friend_id)
    if not friendship or friendship.status != FriendshipStatus.ACCEPTED.value:
        raise ValueError("Not friends with this user")

    await session.execute(delete(Friendship).where(Friendship.id == friendship.id))
    await session.flush()


async def get_friends(session: AsyncSession, user_id: int) -> List[Dict]:
    """Get the accepted friends of a user with basic profile fields."""
    friend_ids = await get_friend_ids(session, user_id)
    if not friend_ids:
        return []

    result = await session.execute(
        select(User).where(User.id.in_(friend_ids)).order_by(User.username)
    )
    return [
        {
            "id": friend.id,
            "username": friend.username,
            "display_name": friend.display_name,
            "avatar_url": friend.avatar_url,
            "state": friend.state,
        }
        for friend in result.scalars().all()
    ]


async def _get_pending_for_receiver(
    session: AsyncSession, friendship_id: int, user_id: int
) -> Friendship:
    result = await session.execute(select(Friendship).where(Friendship.id == friendship_id))
    friendship = result.scalar_one_or_none()

    if not friendship:
        raise ValueError("Friend request not found")
    if friendship.friend_id != user_id:
        raise ValueError("Not authorized to respond to this request")
    if friendship.status != FriendshipStatus.PENDING.value:
        raise ValueError("Friend request is no longer pending")
    return friendship


async def get_display_name(session: AsyncSession, user_id: int) -> str:
    result = await session.execute(
        select(User.display_name, User.username).where(User.id == user_id)
    )
    row = result.first()
    if not row:
        return "Someone"
    return row.display_name or row.username


def _format_friendship(friendship: Friendship) -> Dict:
    return {
        "id": friendship.id,
        "user_id": friendship.user_id,
        "friend_id": friendship.friend_id,
        "status": friendship.status,
        "created_at": isoformat_or_none(friendship.created_at),
        "responded_at": isoformat_or_none(friendship.responded_at),
    }
