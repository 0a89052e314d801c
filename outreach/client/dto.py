"""
Response DTOs, validated at the client boundary.

Rows come back from /rest as plain JSON; every read parses them into one of
these models. Relation expansions are optional nested fields, so a row read
without `expand` simply has them set to None / [].
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T", bound=BaseModel)


class _Row(BaseModel):
    model_config = ConfigDict(extra="ignore")


def parse_rows(model: Type[T], rows: Iterable[Any]) -> List[T]:
    return [model.model_validate(r) for r in rows]


def display_name(first_name: Optional[str], last_name: Optional[str], full_name: Optional[str] = None) -> str:
    if full_name:
        return full_name
    return f"{first_name or ''} {last_name or ''}".strip()


# -----------------------------
# Lookups
# -----------------------------

class BacentaDTO(_Row):
    id: int
    name: str


class CallOutcomeDTO(_Row):
    id: int
    description: str
    is_successful: bool = False


class MemberDTO(_Row):
    id: int
    first_name: str = ""
    last_name: Optional[str] = ""
    full_name: Optional[str] = None
    bacenta_id: Optional[int] = None
    bacenta: Optional[BacentaDTO] = None

    @property
    def display_name(self) -> str:
        return display_name(self.first_name, self.last_name, self.full_name)


# -----------------------------
# Events + aggregates
# -----------------------------

class EventDTO(_Row):
    id: int
    name: str
    event_timestamp: datetime
    total_confirmations_target: int = 0
    total_attendance_target: int = 0
    total_confirmations: int = 0
    total_attendees: int = 0


class EventMemberTargetDTO(_Row):
    id: int
    event_id: int
    member_id: int
    confirmations_target: int = 0
    attendance_target: int = 0
    total_confirmations: int = 0
    total_attendees: int = 0
    member: Optional[MemberDTO] = None

    # Flattened from `member` when read with include_bacenta_name
    member_full_name: Optional[str] = None
    bacenta_name: Optional[str] = None


class BacentaTargetDTO(_Row):
    event_id: int
    bacenta_id: Optional[int] = None
    confirmations_target: int = 0
    attendance_target: int = 0
    total_confirmations: int = 0
    total_attendees: int = 0
    total_first_timers: int = 0
    bacenta: Optional[BacentaDTO] = None
    bacenta_name: Optional[str] = None


class CumulativeDTO(_Row):
    event_id: int
    day: date
    daily_confirmations: int = 0
    cumulative_confirmations: int = 0


# -----------------------------
# Contacts / confirmations
# -----------------------------

class ContactStatus(str, Enum):
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"
    ADVANCED = "advanced"


def contact_status(confirmed_at: Optional[datetime], transport_arranged_at: Optional[datetime]) -> ContactStatus:
    if confirmed_at is None:
        return ContactStatus.UNCONFIRMED
    if transport_arranged_at is None:
        return ContactStatus.CONFIRMED
    return ContactStatus.ADVANCED


class _ContactFields(_Row):
    id: int
    event_id: int
    first_name: str
    last_name: Optional[str] = None
    contact_number: Optional[str] = None
    notes: Optional[str] = None
    attended: bool = False
    is_first_time: bool = False
    confirmed_at: Optional[datetime] = None
    transport_arranged_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    member: Optional[MemberDTO] = None

    @property
    def display_name(self) -> str:
        return display_name(self.first_name, self.last_name)

    @property
    def status(self) -> ContactStatus:
        return contact_status(self.confirmed_at, self.transport_arranged_at)


class ContactDTO(_ContactFields):
    contacted_by_member_id: int


class ConfirmationDTO(_ContactFields):
    """Legacy shape of a contact."""
    confirmed_by_member_id: int


class ContactRef(_Row):
    id: int
    first_name: str = ""
    last_name: Optional[str] = None
    contact_number: Optional[str] = None
    event_id: Optional[int] = None
    contacted_by_member_id: Optional[int] = None

    @property
    def display_name(self) -> str:
        return display_name(self.first_name, self.last_name)


# -----------------------------
# Telepastoring
# -----------------------------

class CallDTO(_Row):
    id: int
    caller_member_id: int
    callee_contact_id: int
    call_timestamp: datetime
    outcome_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    caller: Optional[MemberDTO] = None
    outcome: Optional[CallOutcomeDTO] = None
    callee: Optional[ContactRef] = None


class VisitDTO(_Row):
    id: int
    visit_timestamp: datetime
    location: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    visitors: List[MemberDTO] = []
    visitees: List[ContactRef] = []


class VisitLinkDTO(_Row):
    id: int
    visit_id: int
    contact_id: int
