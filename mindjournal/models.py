from __future__ import annotations
import datetime as dt
from typing import Literal, Optional

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String, Text, Integer, Date, DateTime, Boolean, CheckConstraint,
    ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.sql import func

from mindjournal.db import Base, BigIntId

Role = Literal["client", "therapist"]
InviteType = Literal["invite_therapist", "invite_client"]
TherapistMode = Literal["per_client", "batch_digest"]

DEFAULT_REMINDER_TIME = "20:00"
DEFAULT_BATCH_TIME = "18:00"
DEFAULT_THERAPIST_MODE = "per_client"


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role in ('client','therapist')", name="ck_users_role"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    telegram_id: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String, default="", nullable=False)
    role: Mapped[str] = mapped_column(String, default="client", nullable=False)
    created_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    settings: Mapped[Optional["NotificationSettings"]] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )


class Relationship(Base):
    """
    Client–therapist pairing. Created by invite redemption, removed by either party.
    """
    __tablename__ = "relationships"
    __table_args__ = (
        UniqueConstraint("client_id", "therapist_id", name="uq_relationships_pair"),
        Index("idx_relationships_client", "client_id"),
        Index("idx_relationships_therapist", "therapist_id"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    client_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    therapist_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    connected_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    client: Mapped["User"] = relationship(foreign_keys=[client_id])
    therapist: Mapped["User"] = relationship(foreign_keys=[therapist_id])


class InviteToken(Base):
    __tablename__ = "invite_tokens"
    __table_args__ = (
        CheckConstraint(
            "invite_type in ('invite_therapist','invite_client')",
            name="ck_invite_tokens_type",
        ),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    token: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    inviter_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    invite_type: Mapped[str] = mapped_column(String, nullable=False)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    inviter: Mapped["User"] = relationship()


class NotificationSettings(Base):
    __tablename__ = "notification_settings"
    __table_args__ = (
        CheckConstraint(
            "therapist_mode in ('per_client','batch_digest')",
            name="ck_notification_settings_mode",
        ),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    reminder_time: Mapped[str] = mapped_column(String(5), default=DEFAULT_REMINDER_TIME, nullable=False)
    therapist_mode: Mapped[str] = mapped_column(String, default=DEFAULT_THERAPIST_MODE, nullable=False)
    batch_time: Mapped[str] = mapped_column(String(5), default=DEFAULT_BATCH_TIME, nullable=False)

    user: Mapped["User"] = relationship(back_populates="settings")


class JournalEntry(Base):
    __tablename__ = "journal_entries"
    __table_args__ = (
        Index("idx_entries_user_date", "user_id", "entry_date"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    entry_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    # therapist-authored
    therapist_comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_highlighted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class DayRating(Base):
    __tablename__ = "day_ratings"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_day_ratings_user_date"),
        CheckConstraint(
            "client_rating is null or client_rating between 1 and 5",
            name="ck_day_ratings_client",
        ),
        CheckConstraint(
            "therapist_rating is null or therapist_rating between 1 and 5",
            name="ck_day_ratings_therapist",
        ),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    client_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    therapist_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
