"""
Typed codecs for list-page filter state kept in the URL query string.

Each page model parses a query string (unknown or malformed values fall back
to their defaults, since users edit URLs by hand), serializes back with only
non-default values, and converts itself into the QueryFilter its reads use.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, TypeVar, Union
from urllib.parse import parse_qsl, urlencode

from pydantic import BaseModel, ConfigDict, Field as PydField

from ..filters import OrderBy, QueryFilter, RangeBound
from ..models.common import to_naive_utc
from .dto import ContactStatus

logger = logging.getLogger(__name__)

Q = TypeVar("Q", bound="PageQuery")

QueryInput = Union[str, Mapping[str, str], None]


# -----------------------------
# Small primitives
# -----------------------------

def split_csv(raw: str) -> List[str]:
    if not raw:
        return []
    parts = [p.strip() for p in raw.split(",")]
    return [p for p in parts if p]


def split_ids(raw: str) -> List[int]:
    ids: List[int] = []
    for part in split_csv(raw):
        try:
            ids.append(int(part))
        except ValueError:
            logger.debug("Dropping non-numeric id %r from query string", part)
    return ids


def parse_iso_dt(s: Optional[str]) -> Tuple[Optional[datetime], bool]:
    """
    Accepts ISO strings like:
      2025-12-29T18:30        (datetime-local input)
      2025-12-29T00:00:00Z
      2025-12-29
    Returns (naive_utc_datetime_or_none, parsed_ok).
    """
    if not s:
        return None, True
    s = s.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        if len(s) == 10:  # YYYY-MM-DD
            return datetime.fromisoformat(s + "T00:00:00"), True
        return to_naive_utc(datetime.fromisoformat(s)), True
    except ValueError:
        return None, False


def parse_date(s: Optional[str]) -> Optional[date]:
    if not s:
        return None
    try:
        return date.fromisoformat(s.strip()[:10])
    except ValueError:
        return None


def parse_bool(s: Optional[str]) -> Optional[bool]:
    v = (s or "").strip().lower()
    if v == "true":
        return True
    if v == "false":
        return False
    return None


def parse_enum(enum_cls: Type[Enum], s: Optional[str], default: Any) -> Any:
    try:
        return enum_cls((s or "").strip())
    except ValueError:
        return default


def parse_int(s: Optional[str]) -> Optional[int]:
    try:
        return int((s or "").strip())
    except ValueError:
        return None


def to_params(query: QueryInput) -> Dict[str, str]:
    if query is None:
        return {}
    if isinstance(query, str):
        return dict(parse_qsl(query.lstrip("?"), keep_blank_values=True))
    return {str(k): str(v) for k, v in query.items()}


def set_param(query: QueryInput, key: str, value: Optional[Any]) -> str:
    """Return the query string with `key` set, or removed when value is empty."""
    params = to_params(query)
    if value is None or value == "" or value == []:
        params.pop(key, None)
    elif isinstance(value, (list, tuple)):
        params[key] = ",".join(str(v) for v in value)
    else:
        params[key] = str(value)
    return urlencode(params)


def _end_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min) + timedelta(days=1) - timedelta(microseconds=1)


# -----------------------------
# Base
# -----------------------------

class PageQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    @classmethod
    def parse(cls: Type[Q], query: QueryInput) -> Q:
        return cls.from_params(to_params(query))

    @classmethod
    def from_params(cls: Type[Q], params: Mapping[str, str]) -> Q:
        raise NotImplementedError

    def to_params(self) -> Dict[str, str]:
        raise NotImplementedError

    def serialize(self) -> str:
        return urlencode(self.to_params())


# -----------------------------
# /contacts
# -----------------------------

class ContactSort(str, Enum):
    CREATED_DESC = "created_desc"
    CREATED_ASC = "created_asc"
    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"


CONTACT_ORDER = {
    ContactSort.CREATED_DESC: [OrderBy(column="created_at", ascending=False)],
    ContactSort.CREATED_ASC: [OrderBy(column="created_at", ascending=True)],
    ContactSort.NAME_ASC: [OrderBy(column="first_name", ascending=True), OrderBy(column="last_name", ascending=True)],
    ContactSort.NAME_DESC: [OrderBy(column="first_name", ascending=False), OrderBy(column="last_name", ascending=False)],
}


class ContactsQuery(PageQuery):
    members: List[int] = PydField(default_factory=list)
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    first_timer: Optional[bool] = None
    attended: Optional[bool] = None
    status: Optional[ContactStatus] = None
    sort: ContactSort = ContactSort.CREATED_DESC
    show_filters: bool = False
    edit: Optional[int] = None

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "ContactsQuery":
        return cls(
            members=split_ids(params.get("members", "")),
            from_date=parse_date(params.get("from")),
            to_date=parse_date(params.get("to")),
            first_timer=parse_bool(params.get("first_timer")),
            attended=parse_bool(params.get("attended")),
            status=parse_enum(ContactStatus, params.get("status"), None),
            sort=parse_enum(ContactSort, params.get("sort"), ContactSort.CREATED_DESC),
            show_filters=params.get("filters") == "1",
            edit=parse_int(params.get("edit")),
        )

    def to_params(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        if self.members:
            out["members"] = ",".join(str(m) for m in self.members)
        if self.from_date:
            out["from"] = self.from_date.isoformat()
        if self.to_date:
            out["to"] = self.to_date.isoformat()
        if self.first_timer is not None:
            out["first_timer"] = "true" if self.first_timer else "false"
        if self.attended is not None:
            out["attended"] = "true" if self.attended else "false"
        if self.status is not None:
            out["status"] = self.status.value
        if self.sort != ContactSort.CREATED_DESC:
            out["sort"] = self.sort.value
        if self.show_filters:
            out["filters"] = "1"
        if self.edit is not None:
            out["edit"] = str(self.edit)
        return out

    @property
    def active_filter_count(self) -> int:
        return sum(
            1
            for v in (self.members, self.from_date, self.to_date, self.first_timer, self.attended, self.status)
            if v not in (None, [])
        )

    def to_filter(self, limit: Optional[int] = None) -> QueryFilter:
        equals: Dict[str, Any] = {}
        not_null: List[str] = []
        if self.first_timer is not None:
            equals["is_first_time"] = self.first_timer
        if self.attended is not None:
            equals["attended"] = self.attended

        if self.status == ContactStatus.UNCONFIRMED:
            equals["confirmed_at"] = None
        elif self.status == ContactStatus.CONFIRMED:
            not_null.append("confirmed_at")
            equals["transport_arranged_at"] = None
        elif self.status == ContactStatus.ADVANCED:
            not_null.extend(["confirmed_at", "transport_arranged_at"])

        ranges: Dict[str, RangeBound] = {}
        if self.from_date or self.to_date:
            ranges["created_at"] = RangeBound(
                gte=datetime.combine(self.from_date, time.min) if self.from_date else None,
                lte=_end_of_day(self.to_date) if self.to_date else None,
            )

        return QueryFilter(
            equals=equals,
            in_={"contacted_by_member_id": list(self.members)} if self.members else {},
            range=ranges,
            not_null=not_null,
            order_by=CONTACT_ORDER[self.sort],
            limit=limit,
        )


# -----------------------------
# /telepastoring
# -----------------------------

NOT_CALLED = "none"


class TelepastoringQuery(PageQuery):
    from_dt: Optional[datetime] = None
    to_dt: Optional[datetime] = None
    # "" = all outcomes, "none" = not called, otherwise an outcome id
    outcome: str = ""
    members: List[int] = PydField(default_factory=list)
    show_filters: bool = False
    edit: Optional[int] = None

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "TelepastoringQuery":
        from_dt, _ = parse_iso_dt(params.get("from_dt"))
        to_dt, _ = parse_iso_dt(params.get("to_dt"))
        raw_outcome = (params.get("outcome") or "").strip()
        if raw_outcome != NOT_CALLED and parse_int(raw_outcome) is None:
            raw_outcome = ""
        return cls(
            from_dt=from_dt,
            to_dt=to_dt,
            outcome=raw_outcome,
            members=split_ids(params.get("members", "")),
            show_filters=params.get("filters") == "1",
            edit=parse_int(params.get("edit")),
        )

    def to_params(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        if self.from_dt:
            out["from_dt"] = self.from_dt.strftime("%Y-%m-%dT%H:%M")
        if self.to_dt:
            out["to_dt"] = self.to_dt.strftime("%Y-%m-%dT%H:%M")
        if self.outcome:
            out["outcome"] = self.outcome
        if self.members:
            out["members"] = ",".join(str(m) for m in self.members)
        if self.show_filters:
            out["filters"] = "1"
        if self.edit is not None:
            out["edit"] = str(self.edit)
        return out

    @property
    def not_called(self) -> bool:
        return self.outcome == NOT_CALLED

    @property
    def outcome_id(self) -> Optional[int]:
        return None if self.not_called else parse_int(self.outcome)

    def to_calls_filter(self, limit: int = 5000) -> QueryFilter:
        ranges: Dict[str, RangeBound] = {}
        if self.from_dt or self.to_dt:
            ranges["call_timestamp"] = RangeBound(gte=self.from_dt, lte=self.to_dt)
        return QueryFilter(
            equals={"outcome_id": self.outcome_id} if self.outcome_id is not None else {},
            in_={"caller_member_id": list(self.members)} if self.members else {},
            range=ranges,
            order_by=[OrderBy(column="call_timestamp", ascending=False)],
            limit=limit,
        )

    def to_contacts_filter(self, event_id: int, limit: int = 1000) -> QueryFilter:
        return QueryFilter(
            equals={"event_id": event_id},
            in_={"contacted_by_member_id": list(self.members)} if self.members else {},
            order_by=[OrderBy(column="created_at", ascending=False)],
            limit=limit,
        )


# -----------------------------
# /members
# -----------------------------

class MemberSort(str, Enum):
    PCT_DESC = "pct_desc"
    PCT_ASC = "pct_asc"
    CONF_DESC = "conf_desc"
    CONF_ASC = "conf_asc"
    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"


class MembersQuery(PageQuery):
    members: List[int] = PydField(default_factory=list)
    bacentas: List[int] = PydField(default_factory=list)
    sort: MemberSort = MemberSort.PCT_DESC
    show_filters: bool = False

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "MembersQuery":
        return cls(
            members=split_ids(params.get("members", "")),
            bacentas=split_ids(params.get("bacentas", "")),
            sort=parse_enum(MemberSort, params.get("sort"), MemberSort.PCT_DESC),
            show_filters=params.get("filters") == "1",
        )

    def to_params(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        if self.members:
            out["members"] = ",".join(str(m) for m in self.members)
        if self.bacentas:
            out["bacentas"] = ",".join(str(b) for b in self.bacentas)
        if self.sort != MemberSort.PCT_DESC:
            out["sort"] = self.sort.value
        if self.show_filters:
            out["filters"] = "1"
        return out
