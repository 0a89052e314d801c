from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from .common import utcnow


class CallOutcome(SQLModel, table=True):
    __tablename__ = "call_outcomes"

    id: Optional[int] = Field(default=None, primary_key=True)
    description: str
    is_successful: bool = Field(default=False)


class Call(SQLModel, table=True):
    """A telepastoring phone call from a member to a contact."""

    __tablename__ = "calls"

    id: Optional[int] = Field(default=None, primary_key=True)

    caller_member_id: int = Field(foreign_key="members.id", index=True)
    callee_contact_id: int = Field(foreign_key="contacts.id", index=True)

    call_timestamp: datetime = Field(default_factory=utcnow, index=True)
    outcome_id: Optional[int] = Field(default=None, foreign_key="call_outcomes.id", index=True)
    notes: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
