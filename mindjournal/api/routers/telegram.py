import hmac
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mindjournal.db import get_db
from mindjournal.errors import AuthenticationDenied
from mindjournal.services.bot import handle_update, notify_new_entry
from mindjournal.services.notifier import notify_quietly

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telegram", tags=["telegram"])


@router.post("/webhook")
async def telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    update: Dict[str, Any] = Body(...),
    secret: Optional[str] = Header(None, alias="X-Telegram-Bot-Api-Secret-Token"),
    db: AsyncSession = Depends(get_db),
):
    """Receives bot updates pushed by Telegram (setWebhook)."""
    state = request.app.state
    expected = state.settings.webhook_secret
    if expected and not hmac.compare_digest((secret or "").encode(), expected.encode()):
        raise AuthenticationDenied("Invalid webhook secret")

    today = datetime.now(state.settings.tz).date()
    reply, created = await handle_update(
        db, update, mini_app_url=state.settings.mini_app_url, today=today
    )

    if reply is not None:
        background_tasks.add_task(
            notify_quietly, state.notifier, reply.chat_id, reply.text, reply.action_link
        )
    if created is not None:
        background_tasks.add_task(
            notify_new_entry, state.sessionmaker, state.notifier, created, state.settings.mini_app_url
        )
    # Telegram retries anything but 200
    return {"ok": True}
