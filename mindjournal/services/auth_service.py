import json
import logging

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mindjournal.config import Settings
from mindjournal.db import get_db
from mindjournal.errors import AuthenticationDenied, MalformedPayload
from mindjournal.models import User
from mindjournal.services.init_data import TelegramIdentity, verify_init_data
from mindjournal.services.users import resolve_user

logger = logging.getLogger(__name__)

INIT_DATA_HEADER = "x-telegram-init-data"
DEV_USER_HEADER = "x-dev-user"


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def identify(request: Request, settings: Settings) -> TelegramIdentity:
    """Extract the caller's Telegram identity from the request headers."""
    dev_user = request.headers.get(DEV_USER_HEADER)
    if dev_user and settings.dev_bypass_enabled:
        try:
            return TelegramIdentity.from_dict(json.loads(dev_user))
        except ValueError:
            raise MalformedPayload("Invalid x-dev-user header")

    return verify_init_data(request.headers.get(INIT_DATA_HEADER), settings.bot_token)


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    """
    Verifies the Telegram initData of the request and returns the matching
    User row (created on first sight).
    """
    try:
        identity = identify(request, settings)
    except AuthenticationDenied as e:
        logger.info("auth denied: %s", e.detail)
        raise
    return await resolve_user(db, identity.id, identity.display_name)
