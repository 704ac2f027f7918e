from __future__ import annotations
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mindjournal.models import User

logger = logging.getLogger(__name__)


async def get_user_by_telegram_id(db: AsyncSession, telegram_id: str) -> User | None:
    res = await db.execute(select(User).where(User.telegram_id == telegram_id))
    return res.scalar_one_or_none()


async def resolve_user(db: AsyncSession, telegram_id: str, name: str) -> User:
    """Return the user for a verified Telegram id, creating it on first sight.

    A different non-empty ``name`` overwrites the stored one.
    """
    telegram_id = str(telegram_id)
    user = await get_user_by_telegram_id(db, telegram_id)
    if user is not None:
        if name and user.name != name:
            user.name = name
            await db.commit()
        return user

    user = User(telegram_id=telegram_id, name=name or "", role="client")
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # another request created the same user first
        await db.rollback()
        user = await get_user_by_telegram_id(db, telegram_id)
        if user is None:
            raise
        return user
    logger.info("created user id=%s telegram_id=%s", user.id, telegram_id)
    return user
