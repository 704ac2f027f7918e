"""
Client–therapist pairing through single-use invite links.

An inviter issues a token of one of two types:

* ``invite_therapist`` – a client asks someone to become their therapist.
  Whoever redeems it is promoted to the therapist role.
* ``invite_client`` – a therapist asks someone to become their client.

Tokens live for 48 hours and can be redeemed once. Absent, used and expired
tokens are indistinguishable to callers (``InviteNotFound``).
"""
from __future__ import annotations
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from mindjournal.errors import AccessDenied, InviteNotFound, NotFound, SelfInvite, ValidationError
from mindjournal.models import InviteToken, Relationship, User, utcnow

logger = logging.getLogger(__name__)

INVITE_TTL = timedelta(hours=48)
INVITE_TYPES = ("invite_therapist", "invite_client")


@dataclass
class IssuedInvite:
    token: str
    link: str
    expires_at: datetime


@dataclass
class InvitePreview:
    inviter: User
    invite_type: str
    expires_at: datetime


@dataclass
class Redemption:
    relationship: Relationship
    inviter: User
    invite_type: str
    already_connected: bool = False

    @property
    def redeemer_role(self) -> str:
        return "therapist" if self.invite_type == "invite_therapist" else "client"


def invite_link(bot_username: str, token: str) -> str:
    return f"https://t.me/{bot_username}?start={token}"


async def issue_invite(
    db: AsyncSession,
    inviter: User,
    invite_type: str,
    *,
    bot_username: str,
    now: Optional[datetime] = None,
) -> IssuedInvite:
    if invite_type not in INVITE_TYPES:
        raise ValidationError("inviteType must be invite_therapist or invite_client")

    token = secrets.token_hex(16)
    expires_at = (now or utcnow()) + INVITE_TTL
    db.add(InviteToken(
        token=token,
        inviter_id=inviter.id,
        invite_type=invite_type,
        expires_at=expires_at,
    ))
    await db.commit()
    logger.info("invite issued inviter=%s type=%s", inviter.id, invite_type)
    return IssuedInvite(token=token, link=invite_link(bot_username, token), expires_at=expires_at)


async def _live_invite(db: AsyncSession, token: str, now: datetime) -> InviteToken:
    q = (
        select(InviteToken)
        .options(joinedload(InviteToken.inviter))
        .where(
            InviteToken.token == token,
            InviteToken.used_at.is_(None),
            InviteToken.expires_at > now,
        )
    )
    invite = (await db.execute(q)).scalar_one_or_none()
    if invite is None or invite.inviter is None:
        raise InviteNotFound()
    return invite


async def preview_invite(
    db: AsyncSession, token: str, *, now: Optional[datetime] = None
) -> InvitePreview:
    invite = await _live_invite(db, token, now or utcnow())
    return InvitePreview(
        inviter=invite.inviter,
        invite_type=invite.invite_type,
        expires_at=invite.expires_at,
    )


async def find_relationship(db: AsyncSession, client_id: int, therapist_id: int) -> Relationship | None:
    q = select(Relationship).where(
        Relationship.client_id == client_id,
        Relationship.therapist_id == therapist_id,
    )
    return (await db.execute(q)).scalar_one_or_none()


async def redeem_invite(
    db: AsyncSession,
    token: str,
    redeemer: User,
    *,
    now: Optional[datetime] = None,
) -> Redemption:
    """Consume an invite and connect the inviter and the redeemer.

    Claiming the token, promoting the redeemer and inserting the relationship
    are committed together; any failure rolls all of them back.
    """
    now = now or utcnow()
    invite = await _live_invite(db, token, now)
    inviter = invite.inviter

    if inviter.id == redeemer.id:
        raise SelfInvite()

    # a rollback expires loaded objects, so keep plain values
    invite_id, invite_type = invite.id, invite.invite_type
    if invite_type == "invite_therapist":
        client_id, therapist_id = inviter.id, redeemer.id
    else:
        client_id, therapist_id = redeemer.id, inviter.id

    try:
        await _claim(db, invite_id, now)

        existing = await find_relationship(db, client_id, therapist_id)
        if existing is not None:
            await db.commit()
            return Redemption(existing, inviter, invite_type, already_connected=True)

        if invite_type == "invite_therapist":
            redeemer.role = "therapist"

        rel = Relationship(client_id=client_id, therapist_id=therapist_id)
        db.add(rel)
        await db.commit()
    except IntegrityError:
        # the pair was inserted concurrently; the rollback released our claim
        await db.rollback()
        existing = await find_relationship(db, client_id, therapist_id)
        if existing is None:
            raise
        try:
            await _claim(db, invite_id, now)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await db.refresh(inviter)
        await db.refresh(redeemer)
        return Redemption(existing, inviter, invite_type, already_connected=True)
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "invite redeemed type=%s client=%s therapist=%s relationship=%s",
        invite_type, client_id, therapist_id, rel.id,
    )
    return Redemption(rel, inviter, invite_type)


async def _claim(db: AsyncSession, invite_id: int, now: datetime) -> None:
    claimed = await db.execute(
        update(InviteToken)
        .where(InviteToken.id == invite_id, InviteToken.used_at.is_(None))
        .values(used_at=now)
    )
    if claimed.rowcount != 1:
        # lost a race with a concurrent redemption
        raise InviteNotFound()


async def disconnect(db: AsyncSession, relationship_id: int, actor: User) -> None:
    rel = await db.get(Relationship, relationship_id)
    if rel is None:
        raise NotFound("Relationship not found")
    if actor.id not in (rel.client_id, rel.therapist_id):
        raise AccessDenied()
    await db.delete(rel)
    await db.commit()
    logger.info("relationship %s removed by user %s", relationship_id, actor.id)


async def list_clients_of(db: AsyncSession, therapist: User) -> list[tuple[User, Relationship]]:
    if therapist.role != "therapist":
        raise AccessDenied("Only therapists can list clients")
    q = (
        select(User, Relationship)
        .select_from(User)
        .join(Relationship, Relationship.client_id == User.id)
        .where(Relationship.therapist_id == therapist.id)
        .order_by(User.name)
    )
    return [(u, r) for u, r in (await db.execute(q)).all()]


async def get_therapist_of(db: AsyncSession, client: User) -> tuple[User, Relationship] | None:
    q = (
        select(User, Relationship)
        .select_from(User)
        .join(Relationship, Relationship.therapist_id == User.id)
        .where(Relationship.client_id == client.id)
        .order_by(Relationship.connected_at.desc(), Relationship.id.desc())
        .limit(1)
    )
    row = (await db.execute(q)).first()
    return (row[0], row[1]) if row else None


async def is_therapist_of(db: AsyncSession, therapist_id: int, client_id: int) -> bool:
    return await find_relationship(db, client_id, therapist_id) is not None
