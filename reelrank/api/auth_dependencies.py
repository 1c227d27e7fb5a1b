"""
Caller identity dependencies for FastAPI routes.

Authentication happens upstream (API gateway / auth service), which
forwards the authenticated user's id in the X-User-Id header.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.database.db import get_db_session
from reelrank.database.models import User


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_db_session),
) -> dict:
    """
    Dependency to get the current user from the forwarded identity header.

    Returns:
        User dictionary

    Raises:
        HTTPException: If the header is missing/invalid or the user not found
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-Id header",
        )

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name,
        "state": user.state,
    }


async def require_user(user: dict = Depends(get_current_user)) -> dict:
    """Require any identified user."""
    return user
