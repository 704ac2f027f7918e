"""
Handling of Telegram bot updates.

* ``/start <token>`` redeems an invite link.
* ``/start`` greets the user.
* any other text message becomes a journal entry for today.

Replies are returned as ``Reply`` objects so the caller can send them after
the database work is done.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mindjournal.errors import InviteNotFound, JournalError, SelfInvite
from mindjournal.models import NotificationSettings, Relationship, User
from mindjournal.services import journal, pairing
from mindjournal.services.init_data import TelegramIdentity
from mindjournal.services.notifier import Notifier, notify_quietly
from mindjournal.services.users import resolve_user

logger = logging.getLogger(__name__)


@dataclass
class Reply:
    chat_id: str
    text: str
    action_link: Optional[str] = None


@dataclass
class CreatedEntry:
    entry_id: int
    author_id: int
    author_name: str


def entry_link(mini_app_url: str, entry_id: int) -> str:
    return f"{mini_app_url}?startapp=entry_{entry_id}"


async def handle_update(
    db: AsyncSession,
    update: dict[str, Any],
    *,
    mini_app_url: str,
    today: date,
) -> tuple[Optional[Reply], Optional[CreatedEntry]]:
    """Process one bot update.

    Updates that cannot be turned into a user or an entry are dropped, since
    Telegram redelivers anything not answered with 200.
    """
    message = update.get("message") or {}
    text = message.get("text")
    sender = message.get("from")
    if not text or not sender:
        return None, None
    try:
        return await _handle_message(db, message, text, sender, mini_app_url, today)
    except JournalError as e:
        logger.info("bot update %s dropped: %s", update.get("update_id"), e.detail)
        return None, None


async def _handle_message(
    db: AsyncSession,
    message: dict[str, Any],
    text: str,
    sender: dict[str, Any],
    mini_app_url: str,
    today: date,
) -> tuple[Optional[Reply], Optional[CreatedEntry]]:
    identity = TelegramIdentity.from_dict(sender)
    chat_id = str((message.get("chat") or {}).get("id") or identity.id)
    user = await resolve_user(db, identity.id, identity.display_name)
    name = user.name

    if text.startswith("/start"):
        token = text[len("/start"):].strip()
        if token:
            return await _redeem(db, user, token, chat_id, mini_app_url), None
        return Reply(
            chat_id,
            f"👋 Hello, *{name}*! Welcome to your Emotional Journal.\n\n"
            "Send me any message and I'll save it as a journal entry. Or open your journal directly:",
            mini_app_url,
        ), None

    if text.startswith("/"):
        return None, None

    entry = await journal.create_entry(db, user, text, None, today=today)
    label = f"{entry.entry_date.day} {entry.entry_date:%B %Y}"
    reply = Reply(chat_id, f"✅ Saved for *{label}*", entry_link(mini_app_url, entry.id))
    return reply, CreatedEntry(entry.id, user.id, name)


async def _redeem(db: AsyncSession, user: User, token: str, chat_id: str, mini_app_url: str) -> Reply:
    try:
        result = await pairing.redeem_invite(db, token, user)
    except InviteNotFound:
        return Reply(chat_id, "❌ This invite link is invalid or has expired.")
    except SelfInvite:
        return Reply(chat_id, "⚠️ You cannot accept your own invite.")

    if result.already_connected:
        return Reply(chat_id, "✅ You are already connected!")
    if result.redeemer_role == "therapist":
        role_text = "the therapist for"
    else:
        role_text = "a client of"
    return Reply(
        chat_id,
        f"✅ Connected! You are now {role_text} *{result.inviter.name}*.\n\nOpen your journal below 👇",
        mini_app_url,
    )


async def therapists_to_notify(db: AsyncSession, client_id: int) -> list[str]:
    """Telegram ids of connected therapists who want a message per new entry."""
    q = (
        select(User.telegram_id)
        .join(Relationship, Relationship.therapist_id == User.id)
        .outerjoin(NotificationSettings, NotificationSettings.user_id == User.id)
        .where(Relationship.client_id == client_id)
        .where(
            (NotificationSettings.id.is_(None))
            | (
                NotificationSettings.enabled.is_(True)
                & (NotificationSettings.therapist_mode == "per_client")
            )
        )
    )
    return list((await db.execute(q)).scalars().all())


async def notify_new_entry(
    session_factory: async_sessionmaker[AsyncSession],
    notifier: Notifier,
    created: CreatedEntry,
    mini_app_url: str,
) -> None:
    """Background task run after an entry is saved."""
    async with session_factory() as db:
        recipients = await therapists_to_notify(db, created.author_id)
    for telegram_id in recipients:
        await notify_quietly(
            notifier,
            telegram_id,
            f"📝 *{created.author_name}* just added a new journal entry.",
            entry_link(mini_app_url, created.entry_id),
        )
