"""
Journal entries and day ratings, filtered through the access rules.
"""
from __future__ import annotations
import logging
import re
from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mindjournal.errors import NotFound, ValidationError
from mindjournal.models import DayRating, JournalEntry, User
from mindjournal.services.access import Action, Decision, authorize, check_writable, redact

logger = logging.getLogger(__name__)

ENTRY_LIST_LIMIT = 100
RATING_LIST_LIMIT = 60
MONTH = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def entry_to_dict(entry: JournalEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "text": entry.text,
        "entry_date": entry.entry_date,
        "therapist_comments": entry.therapist_comments,
        "is_highlighted": entry.is_highlighted,
        "created_at": entry.created_at,
        "updated_at": entry.updated_at,
    }


def rating_to_dict(rating: DayRating) -> dict[str, Any]:
    return {
        "id": rating.id,
        "user_id": rating.user_id,
        "date": rating.date,
        "client_rating": rating.client_rating,
        "therapist_rating": rating.therapist_rating,
    }


def month_bounds(month: str) -> tuple[date, date]:
    if not MONTH.match(month):
        raise ValidationError("month must be YYYY-MM")
    year, mon = (int(p) for p in month.split("-"))
    start = date(year, mon, 1)
    end = date(year + 1, 1, 1) if mon == 12 else date(year, mon + 1, 1)
    return start, end


def validate_rating(name: str, value: Optional[int]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
        raise ValidationError(f"{name} must be 1–5")


# ── entries ───────────────────────────────────────────────────────────────────

async def list_entries(
    db: AsyncSession, actor: User, owner_id: Optional[int] = None, month: Optional[str] = None
) -> list[dict[str, Any]]:
    owner_id = owner_id or actor.id
    decision = await authorize(db, actor, owner_id, Action.READ)

    q = select(JournalEntry).where(JournalEntry.user_id == owner_id)
    if month:
        start, end = month_bounds(month)
        q = q.where(JournalEntry.entry_date >= start, JournalEntry.entry_date < end)
    q = q.order_by(JournalEntry.entry_date.desc(), JournalEntry.created_at.desc(), JournalEntry.id.desc())
    if not month:
        q = q.limit(ENTRY_LIST_LIMIT)

    entries = (await db.execute(q)).scalars().all()
    return [redact(entry_to_dict(e), decision) for e in entries]


async def _load_entry(db: AsyncSession, entry_id: int) -> JournalEntry:
    entry = await db.get(JournalEntry, entry_id)
    if entry is None:
        raise NotFound("Entry not found")
    return entry


async def get_entry(db: AsyncSession, actor: User, entry_id: int) -> dict[str, Any]:
    entry = await _load_entry(db, entry_id)
    decision = await authorize(db, actor, entry.user_id, Action.READ)
    return redact(entry_to_dict(entry), decision)


async def create_entry(
    db: AsyncSession, author: User, text: Optional[str], entry_date: Optional[date], *, today: date
) -> JournalEntry:
    if not text or not text.strip():
        raise ValidationError("Entry text is required")
    entry = JournalEntry(user_id=author.id, text=text.strip(), entry_date=entry_date or today)
    db.add(entry)
    await db.commit()
    logger.info("entry %s created by user %s", entry.id, author.id)
    return entry


async def update_entry(
    db: AsyncSession, actor: User, entry_id: int, changes: dict[str, Any]
) -> dict[str, Any]:
    entry = await _load_entry(db, entry_id)
    decision = await authorize(db, actor, entry.user_id, Action.WRITE)
    check_writable(changes, decision)

    if "text" in changes:
        text = (changes["text"] or "").strip()
        if not text:
            raise ValidationError("Entry text is required")
        entry.text = text
    if "entry_date" in changes and changes["entry_date"] is not None:
        entry.entry_date = changes["entry_date"]
    if "therapist_comments" in changes:
        entry.therapist_comments = changes["therapist_comments"]
    if "is_highlighted" in changes:
        entry.is_highlighted = bool(changes["is_highlighted"])
    await db.commit()

    # the therapist may have been disconnected meanwhile; re-read with a read decision
    view = await authorize(db, actor, entry.user_id, Action.READ)
    return redact(entry_to_dict(entry), view)


async def delete_entry(db: AsyncSession, actor: User, entry_id: int) -> None:
    entry = await _load_entry(db, entry_id)
    await authorize(db, actor, entry.user_id, Action.DELETE)
    await db.delete(entry)
    await db.commit()


# ── ratings ───────────────────────────────────────────────────────────────────

async def list_ratings(
    db: AsyncSession, actor: User, owner_id: Optional[int] = None, month: Optional[str] = None
) -> list[dict[str, Any]]:
    owner_id = owner_id or actor.id
    decision = await authorize(db, actor, owner_id, Action.READ)

    q = select(DayRating).where(DayRating.user_id == owner_id)
    if month:
        start, end = month_bounds(month)
        q = q.where(DayRating.date >= start, DayRating.date < end).order_by(DayRating.date)
    else:
        q = q.order_by(DayRating.date.desc()).limit(RATING_LIST_LIMIT)
    ratings = (await db.execute(q)).scalars().all()
    return [redact(rating_to_dict(r), decision) for r in ratings]


async def upsert_rating(
    db: AsyncSession,
    actor: User,
    day: date,
    *,
    owner_id: Optional[int] = None,
    client_rating: Optional[int] = None,
    therapist_rating: Optional[int] = None,
) -> dict[str, Any]:
    """Set the caller's half of the rating for ``day``.

    Without ``owner_id`` the caller rates their own day (``client_rating``).
    With it, a connected therapist sets ``therapist_rating`` for that client.
    Supplying the other side's rating is an ``AccessDenied``.
    """
    owner_id = owner_id or actor.id
    changes: dict[str, Any] = {}
    if client_rating is not None:
        changes["client_rating"] = client_rating
    if therapist_rating is not None:
        changes["therapist_rating"] = therapist_rating
    for name, value in changes.items():
        validate_rating(name, value)

    decision: Decision = await authorize(db, actor, owner_id, Action.WRITE)
    check_writable(changes, decision)

    q = select(DayRating).where(DayRating.user_id == owner_id, DayRating.date == day)
    rating = (await db.execute(q)).scalar_one_or_none()
    if changes:
        if rating is None:
            rating = DayRating(user_id=owner_id, date=day, **changes)
            db.add(rating)
        else:
            for key, value in changes.items():
                setattr(rating, key, value)
        try:
            await db.commit()
        except IntegrityError:
            # concurrent first insert for the same day
            await db.rollback()
            await db.refresh(actor)
            rating = (await db.execute(q)).scalar_one()
            for key, value in changes.items():
                setattr(rating, key, value)
            await db.commit()

    if rating is None:
        return {}
    view = await authorize(db, actor, owner_id, Action.READ)
    return redact(rating_to_dict(rating), view)
