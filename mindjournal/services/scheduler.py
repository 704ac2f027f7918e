"""
Minute-by-minute reminder and digest notifications.

``run_tick`` does all the matching for a given ``now`` and is what the tests
drive. ``NotificationScheduler`` only wires it to an APScheduler cron job that
fires at the top of every minute.

A reminder or digest fires only in the minute whose ``HH:MM`` equals the
configured time; a skipped minute is not caught up.
"""
from __future__ import annotations
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mindjournal.models import (
    DEFAULT_REMINDER_TIME, JournalEntry, NotificationSettings, Relationship, User,
)
from mindjournal.services.notifier import Notifier, notify_quietly

logger = logging.getLogger(__name__)

JOB_ID = "notification_tick"


@dataclass
class TickReport:
    """Messages actually delivered during one tick."""
    reminders: int = 0
    digests: int = 0


def _plural(n: int) -> str:
    return "entry" if n == 1 else "entries"


def compose_reminder(name: str, entry_count: int) -> Optional[str]:
    if entry_count == 0:
        return (
            f"🌿 Hey {name}, you haven't written anything today yet.\n\n"
            "How are you feeling? Even a few words can help. 💙"
        )
    if entry_count < 3:
        return (
            f"🌿 You've written {entry_count} {_plural(entry_count)} today — great start!\n\n"
            "Want to add more before the day ends? 📝"
        )
    return None


def compose_digest(counts: "OrderedDict[str, int]") -> str:
    lines = "\n".join(f"• {name}: {n} {_plural(n)}" for name, n in counts.items())
    total = sum(counts.values())
    return f"📊 *Today's Client Summary*\n\n{lines}\n\nTotal: {total} new {_plural(total)}"


def _enabled():
    # users without a settings row get the defaults, which are enabled
    return or_(NotificationSettings.id.is_(None), NotificationSettings.enabled.is_(True))


async def _clients_to_remind(db: AsyncSession, today: date, hhmm: str) -> list[tuple[User, int]]:
    q = (
        select(User, func.count(JournalEntry.id))
        .select_from(User)
        .outerjoin(NotificationSettings, NotificationSettings.user_id == User.id)
        .outerjoin(
            JournalEntry,
            and_(JournalEntry.user_id == User.id, JournalEntry.entry_date == today),
        )
        .where(
            User.role == "client",
            _enabled(),
            func.coalesce(NotificationSettings.reminder_time, DEFAULT_REMINDER_TIME) == hhmm,
        )
        .group_by(User.id)
    )
    return [(u, n) for u, n in (await db.execute(q)).all()]


async def _digest_therapists(db: AsyncSession, hhmm: str) -> list[User]:
    q = (
        select(User)
        .join(NotificationSettings, NotificationSettings.user_id == User.id)
        .where(
            User.role == "therapist",
            NotificationSettings.enabled.is_(True),
            NotificationSettings.therapist_mode == "batch_digest",
            NotificationSettings.batch_time == hhmm,
        )
    )
    return list((await db.execute(q)).scalars().all())


async def _client_entry_counts(db: AsyncSession, therapist_id: int, today: date) -> "OrderedDict[str, int]":
    q = (
        select(User.name, JournalEntry.id)
        .select_from(JournalEntry)
        .join(User, User.id == JournalEntry.user_id)
        .join(Relationship, Relationship.client_id == JournalEntry.user_id)
        .where(Relationship.therapist_id == therapist_id, JournalEntry.entry_date == today)
        .order_by(User.name, JournalEntry.created_at)
    )
    counts: OrderedDict[str, int] = OrderedDict()
    for name, _ in (await db.execute(q)).all():
        counts[name] = counts.get(name, 0) + 1
    return counts


async def run_tick(
    session_factory: async_sessionmaker[AsyncSession],
    notifier: Notifier,
    now: datetime,
    *,
    mini_app_url: Optional[str] = None,
) -> TickReport:
    """Run one scheduler pass for the wall-clock minute ``now``."""
    today = now.date()
    hhmm = now.strftime("%H:%M")
    report = TickReport()

    async with session_factory() as db:
        clients = await _clients_to_remind(db, today, hhmm)
        therapists = await _digest_therapists(db, hhmm)
        digests = [(t, await _client_entry_counts(db, t.id, today)) for t in therapists]

    for client, entry_count in clients:
        text = compose_reminder(client.name, entry_count)
        if text is None:
            continue
        link = mini_app_url if entry_count == 0 else None
        if await notify_quietly(notifier, client.telegram_id, text, link):
            report.reminders += 1

    for therapist, counts in digests:
        if not counts:
            continue
        if await notify_quietly(notifier, therapist.telegram_id, compose_digest(counts)):
            report.digests += 1

    if report.reminders or report.digests:
        logger.info("tick %s %s: %d reminders, %d digests", today, hhmm, report.reminders, report.digests)
    return report


class NotificationScheduler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier,
        *,
        tz=None,
        mini_app_url: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.tz = tz
        self.mini_app_url = mini_app_url
        self.scheduler = AsyncIOScheduler(timezone=tz) if tz else AsyncIOScheduler()

    async def tick(self) -> TickReport:
        now = datetime.now(self.tz) if self.tz else datetime.now()
        return await run_tick(self.session_factory, self.notifier, now, mini_app_url=self.mini_app_url)

    def start(self) -> None:
        if self.scheduler.running:
            return
        self.scheduler.add_job(
            self.tick,
            trigger="cron",
            minute="*",
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
        )
        self.scheduler.start()
        logger.info("notification scheduler started")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
