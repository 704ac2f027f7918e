from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from mindjournal.db import get_db
from mindjournal.models import User
from mindjournal.schemas import NotificationSettingsOut, NotificationSettingsUpdate
from mindjournal.services.auth_service import get_current_user
from mindjournal.services.settings_service import ensure_settings, update_settings

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("/settings", response_model=NotificationSettingsOut)
async def get_notification_settings(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await ensure_settings(db, current_user)


@router.put("/settings", response_model=NotificationSettingsOut)
async def put_notification_settings(
    req: NotificationSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await update_settings(db, current_user, req.model_dump(exclude_unset=True))
