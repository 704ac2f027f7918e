from __future__ import annotations
import re
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mindjournal.errors import ValidationError
from mindjournal.models import NotificationSettings, User

HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
THERAPIST_MODES = ("per_client", "batch_digest")


async def ensure_settings(db: AsyncSession, user: User) -> NotificationSettings:
    """Return the user's settings row, creating it with the defaults if missing."""
    q = select(NotificationSettings).where(NotificationSettings.user_id == user.id)
    settings = (await db.execute(q)).scalar_one_or_none()
    if settings is not None:
        return settings

    settings = NotificationSettings(user_id=user.id)
    db.add(settings)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        settings = (await db.execute(q)).scalar_one()
    return settings


async def update_settings(db: AsyncSession, user: User, changes: dict[str, Any]) -> NotificationSettings:
    for key in ("reminder_time", "batch_time"):
        value = changes.get(key)
        if value is not None and not HHMM.match(value):
            raise ValidationError(f"{key} must be HH:MM")
    mode = changes.get("therapist_mode")
    if mode is not None and mode not in THERAPIST_MODES:
        raise ValidationError("therapistMode must be per_client or batch_digest")

    settings = await ensure_settings(db, user)
    for key, value in changes.items():
        if value is not None:
            setattr(settings, key, value)
    await db.commit()
    return settings
