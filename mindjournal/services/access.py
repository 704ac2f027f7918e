"""
Relationship-scoped authorization for journal entries and day ratings.

Rules, first match wins:

1. The owner may read and write their own fields. A client-role owner never
   sees therapist-authored fields.
2. A therapist connected to the owner may read everything and may write only
   therapist-authored fields.
3. Everyone else is denied.

Deleting is reserved to the owner.
"""
from __future__ import annotations
import enum
from dataclasses import dataclass, field
from typing import Any, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from mindjournal.errors import AccessDenied
from mindjournal.models import User
from mindjournal.services.pairing import is_therapist_of

OWNER_FIELDS = frozenset({"text", "entry_date", "client_rating"})
THERAPIST_FIELDS = frozenset({"therapist_comments", "is_highlighted", "therapist_rating"})
# hidden from clients; the highlight flag stays visible
CLIENT_HIDDEN_FIELDS = frozenset({"therapist_comments", "therapist_rating"})


class Action(str, enum.Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    redactions: frozenset[str] = field(default_factory=frozenset)
    writable: frozenset[str] = field(default_factory=frozenset)
    as_therapist: bool = False

    @classmethod
    def deny(cls) -> "Decision":
        return cls(allowed=False)


async def decide(db: AsyncSession, actor: User, owner_id: int, action: Action) -> Decision:
    if actor.id == owner_id:
        redactions = CLIENT_HIDDEN_FIELDS if actor.role == "client" else frozenset()
        if action is Action.WRITE:
            return Decision(True, redactions, writable=OWNER_FIELDS)
        return Decision(True, redactions)

    if actor.role == "therapist" and await is_therapist_of(db, actor.id, owner_id):
        if action is Action.DELETE:
            return Decision.deny()
        if action is Action.WRITE:
            return Decision(True, writable=THERAPIST_FIELDS, as_therapist=True)
        return Decision(True, as_therapist=True)

    return Decision.deny()


async def authorize(db: AsyncSession, actor: User, owner_id: int, action: Action) -> Decision:
    decision = await decide(db, actor, owner_id, action)
    if not decision.allowed:
        if action is Action.DELETE:
            raise AccessDenied("Only the owner can delete this")
        raise AccessDenied()
    return decision


def redact(payload: Mapping[str, Any], decision: Decision) -> dict[str, Any]:
    return {k: v for k, v in payload.items() if k not in decision.redactions}


def check_writable(changes: Mapping[str, Any], decision: Decision) -> None:
    forbidden = sorted(set(changes) - decision.writable)
    if forbidden:
        raise AccessDenied(f"Not allowed to modify: {', '.join(forbidden)}")
