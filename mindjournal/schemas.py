from __future__ import annotations
import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mindjournal.models import InviteType, Role, TherapistMode


class CamelModel(BaseModel):
    """The mini app speaks camelCase; python code uses snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# users
class UserPublic(CamelModel):
    id: int
    name: str
    role: Role


# journal entries
class EntryCreate(CamelModel):
    text: Optional[str] = None
    entry_date: Optional[dt.date] = None


class EntryUpdate(CamelModel):
    text: Optional[str] = None
    entry_date: Optional[dt.date] = None
    therapist_comments: Optional[str] = None
    is_highlighted: Optional[bool] = None


class EntryOut(CamelModel):
    id: int
    user_id: int
    text: str
    entry_date: dt.date
    # absent when redacted
    therapist_comments: Optional[str] = None
    is_highlighted: bool = False
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


# day ratings
class RatingUpsert(CamelModel):
    date: dt.date
    client_rating: Optional[int] = None
    therapist_rating: Optional[int] = None
    client_id: Optional[int] = None


class RatingOut(CamelModel):
    id: int
    user_id: int
    date: dt.date
    client_rating: Optional[int] = None
    therapist_rating: Optional[int] = None


# pairing
class InviteCreate(CamelModel):
    invite_type: str


class InviteCreated(CamelModel):
    token: str
    link: str
    expires_at: dt.datetime


class InvitePreviewOut(CamelModel):
    inviter: UserPublic
    invite_type: InviteType
    expires_at: dt.datetime


class RedemptionOut(CamelModel):
    status: Literal["connected", "already_connected"]
    relationship_id: int
    role: Role
    inviter: UserPublic


class ClientInfo(CamelModel):
    id: int
    name: str
    telegram_id: str
    connected_at: Optional[dt.datetime] = None
    relationship_id: int


class TherapistInfo(CamelModel):
    id: int
    name: str
    connected_at: Optional[dt.datetime] = None
    relationship_id: int


# notification settings
class NotificationSettingsOut(CamelModel):
    enabled: bool
    reminder_time: str
    therapist_mode: TherapistMode
    batch_time: str


class NotificationSettingsUpdate(CamelModel):
    enabled: Optional[bool] = None
    reminder_time: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    therapist_mode: Optional[TherapistMode] = None
    batch_time: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
