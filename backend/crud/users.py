"""
CRUD operations for User entities.
"""

from typing import Optional

import models
from sqlalchemy.ext.asyncio import AsyncSession


async def upsert_user(db: AsyncSession, user_id: str, display_name: str) -> models.User:
    """Create a user or rename an existing one."""
    user = await db.get(models.User, user_id)
    if user is None:
        user = models.User(id=user_id, display_name=display_name)
        db.add(user)
    else:
        user.display_name = display_name
    await db.commit()
    return user


async def get_user_display_name(db: AsyncSession, user_id: str) -> Optional[str]:
    user = await db.get(models.User, user_id)
    return user.display_name if user else None
