from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from .common import utcnow


class Contact(SQLModel, table=True):
    """
    A person reached out to (and possibly confirmed) for an event.

    Notes:
    - confirmed_at / transport_arranged_at presence is the status; there is no boolean.
    - The legacy `confirmations` resource is a view over this table that renames
      contacted_by_member_id to confirmed_by_member_id.
    """

    __tablename__ = "contacts"

    id: Optional[int] = Field(default=None, primary_key=True)

    event_id: int = Field(foreign_key="events.id", index=True)
    contacted_by_member_id: int = Field(foreign_key="members.id", index=True)

    first_name: str = Field(index=True)
    last_name: Optional[str] = Field(default=None, index=True)
    contact_number: Optional[str] = Field(default=None, index=True)
    notes: Optional[str] = Field(default=None)

    attended: bool = Field(default=False, index=True)
    is_first_time: bool = Field(default=False, index=True)

    confirmed_at: Optional[datetime] = Field(default=None, index=True)
    transport_arranged_at: Optional[datetime] = Field(default=None, index=True)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
