from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field as PydField, field_validator

from ..models.common import to_naive_utc, utcnow


# -----------------------------
# Schemas (do NOT use DB model as input)
# -----------------------------

class _WriteSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    @field_validator("*", mode="after")
    @classmethod
    def _naive_utc(cls, v: Any) -> Any:
        # Timestamps are stored naive UTC
        if isinstance(v, datetime):
            return to_naive_utc(v)
        return v

    @field_validator("first_name", mode="before", check_fields=False)
    @classmethod
    def _strip_first_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


# -----------------------------
# Contacts / confirmations
# -----------------------------

class ContactCreate(_WriteSchema):
    event_id: int
    contacted_by_member_id: int

    first_name: str = PydField(..., min_length=1)
    last_name: Optional[str] = None
    contact_number: Optional[str] = None
    notes: Optional[str] = None

    attended: bool = False
    is_first_time: bool = False

    confirmed_at: Optional[datetime] = None
    transport_arranged_at: Optional[datetime] = None


class ContactPatch(_WriteSchema):
    """
    Partial update. Omitted fields are left unchanged; an explicit null clears
    a nullable field (e.g. confirmed_at back to unconfirmed).
    """
    event_id: Optional[int] = None
    contacted_by_member_id: Optional[int] = None

    first_name: Optional[str] = PydField(default=None, min_length=1)
    last_name: Optional[str] = None
    contact_number: Optional[str] = None
    notes: Optional[str] = None

    attended: Optional[bool] = None
    is_first_time: Optional[bool] = None

    confirmed_at: Optional[datetime] = None
    transport_arranged_at: Optional[datetime] = None


class ConfirmationCreate(_WriteSchema):
    """Legacy shape. A confirmation is confirmed by definition, so confirmed_at defaults to now."""
    event_id: int
    confirmed_by_member_id: int

    first_name: str = PydField(..., min_length=1)
    last_name: Optional[str] = None
    contact_number: Optional[str] = None
    notes: Optional[str] = None

    attended: bool = False
    is_first_time: bool = False

    confirmed_at: Optional[datetime] = PydField(default_factory=utcnow)
    transport_arranged_at: Optional[datetime] = None


class ConfirmationPatch(_WriteSchema):
    event_id: Optional[int] = None
    confirmed_by_member_id: Optional[int] = None

    first_name: Optional[str] = PydField(default=None, min_length=1)
    last_name: Optional[str] = None
    contact_number: Optional[str] = None
    notes: Optional[str] = None

    attended: Optional[bool] = None
    is_first_time: Optional[bool] = None

    confirmed_at: Optional[datetime] = None
    transport_arranged_at: Optional[datetime] = None


# -----------------------------
# Calls
# -----------------------------

class CallCreate(_WriteSchema):
    caller_member_id: int
    callee_contact_id: int
    call_timestamp: datetime = PydField(default_factory=utcnow)
    outcome_id: Optional[int] = None
    notes: Optional[str] = None


class CallPatch(_WriteSchema):
    caller_member_id: Optional[int] = None
    callee_contact_id: Optional[int] = None
    call_timestamp: Optional[datetime] = None
    outcome_id: Optional[int] = None
    notes: Optional[str] = None


# -----------------------------
# Visits (+ join rows)
# -----------------------------

class VisitCreate(_WriteSchema):
    visit_timestamp: datetime = PydField(default_factory=utcnow)
    location: Optional[str] = None
    notes: Optional[str] = None


class VisitPatch(_WriteSchema):
    visit_timestamp: Optional[datetime] = None
    location: Optional[str] = None
    notes: Optional[str] = None


class VisitVisitorCreate(_WriteSchema):
    visit_id: int
    member_id: int


class VisitVisiteeCreate(_WriteSchema):
    visit_id: int
    contact_id: int
