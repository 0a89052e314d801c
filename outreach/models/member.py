from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from .common import utcnow


class Bacenta(SQLModel, table=True):
    """An organizational sub-unit. Members belong to at most one."""

    __tablename__ = "bacentas"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)

    created_at: datetime = Field(default_factory=utcnow, index=True)


class Member(SQLModel, table=True):
    """
    A staff/volunteer identity that contacts, calls and visits people.

    Notes:
    - full_name is optional; display falls back to "first last".
    - Read-only from the client layer (no write resource is registered).
    """

    __tablename__ = "members"

    id: Optional[int] = Field(default=None, primary_key=True)

    first_name: str
    last_name: str = Field(default="")
    full_name: Optional[str] = Field(default=None, index=True)

    bacenta_id: Optional[int] = Field(default=None, foreign_key="bacentas.id", index=True)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    def display_name(self) -> str:
        return self.full_name or f"{self.first_name} {self.last_name}".strip()
