from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from .common import utcnow


class Visit(SQLModel, table=True):
    """
    An in-person visit. Visitors (members) and visitees (contacts) live in
    the two join tables below; they must be deleted before the visit.
    """

    __tablename__ = "visits"

    id: Optional[int] = Field(default=None, primary_key=True)

    visit_timestamp: datetime = Field(default_factory=utcnow, index=True)
    location: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class VisitVisitor(SQLModel, table=True):
    __tablename__ = "visit_visitors"

    id: Optional[int] = Field(default=None, primary_key=True)
    visit_id: int = Field(foreign_key="visits.id", index=True)
    member_id: int = Field(foreign_key="members.id", index=True)


class VisitVisitee(SQLModel, table=True):
    __tablename__ = "visit_visitees"

    id: Optional[int] = Field(default=None, primary_key=True)
    visit_id: int = Field(foreign_key="visits.id", index=True)
    contact_id: int = Field(foreign_key="contacts.id", index=True)
