from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from .common import utcnow


class Event(SQLModel, table=True):
    """
    A dated occurrence people are confirmed for.

    Aggregate counters (total_confirmations, total_attendees) are not stored;
    the `events` resource reads through a view that counts contact rows.
    """

    __tablename__ = "events"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    event_timestamp: datetime = Field(index=True)

    total_confirmations_target: int = Field(default=0)
    total_attendance_target: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class EventMemberTarget(SQLModel, table=True):
    """Per-member goals for one event. Totals are computed by the targets view."""

    __tablename__ = "event_member_targets"

    id: Optional[int] = Field(default=None, primary_key=True)

    event_id: int = Field(foreign_key="events.id", index=True)
    member_id: int = Field(foreign_key="members.id", index=True)

    confirmations_target: int = Field(default=0)
    attendance_target: int = Field(default=0)
