"""
Resource registry for the /rest surface.

Every resource the client layer can name is declared here once:
- where its rows come from (a table, or an aggregate view subquery)
- whether it accepts writes (model + create/patch schemas)
- which relations a select may inline (`expand`)
- public <-> stored column renames (the legacy confirmations shape)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Type

from pydantic import BaseModel
from sqlalchemy.sql.expression import FromClause
from sqlmodel import SQLModel

from ..models import (
    Bacenta,
    Call,
    CallOutcome,
    Contact,
    Member,
    Visit,
    VisitVisitee,
    VisitVisitor,
)
from ..services import views
from ..services.expansions import Expansion, Through
from . import schemas


@dataclass(frozen=True)
class Resource:
    name: str
    source: Callable[[], FromClause]
    model: Optional[Type[SQLModel]] = None
    create_schema: Optional[Type[BaseModel]] = None
    patch_schema: Optional[Type[BaseModel]] = None
    renames: Mapping[str, str] = field(default_factory=dict)
    expansions: Mapping[str, Expansion] = field(default_factory=dict)

    @property
    def writable(self) -> bool:
        return self.model is not None

    def to_storage(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        return {self.renames.get(k, k): v for k, v in data.items()}

    def to_public(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        reverse = {stored: public for public, stored in self.renames.items()}
        return {reverse.get(k, k): v for k, v in data.items()}


def _table(model: Type[SQLModel]) -> Callable[[], FromClause]:
    return lambda: model.__table__


# -----------------------------
# Relation expansions
# -----------------------------

BACENTA = Expansion(
    target=Bacenta.__table__,
    fields=("id", "name"),
    local_key="bacenta_id",
)

MEMBER_FIELDS = ("id", "first_name", "last_name", "full_name", "bacenta_id")

CONTACT_FIELDS = ("id", "event_id", "contacted_by_member_id", "first_name", "last_name", "contact_number")


def _member(local_key: str, with_bacenta: bool = False) -> Expansion:
    return Expansion(
        target=Member.__table__,
        fields=MEMBER_FIELDS,
        local_key=local_key,
        nested=(("bacenta", BACENTA),) if with_bacenta else (),
    )


CALL_EXPANSIONS = {
    "caller": _member("caller_member_id"),
    "outcome": Expansion(
        target=CallOutcome.__table__,
        fields=("id", "description", "is_successful"),
        local_key="outcome_id",
    ),
    "callee": Expansion(
        target=Contact.__table__,
        fields=CONTACT_FIELDS,
        local_key="callee_contact_id",
    ),
}

VISIT_EXPANSIONS = {
    "visitors": Expansion(
        target=Member.__table__,
        fields=MEMBER_FIELDS,
        local_key="id",
        through=Through(VisitVisitor.__table__, "visit_id", "member_id"),
    ),
    "visitees": Expansion(
        target=Contact.__table__,
        fields=CONTACT_FIELDS,
        local_key="id",
        through=Through(VisitVisitee.__table__, "visit_id", "contact_id"),
    ),
}


# -----------------------------
# Registry
# -----------------------------

RESOURCES: Dict[str, Resource] = {
    r.name: r
    for r in (
        Resource("bacentas", _table(Bacenta)),
        Resource("members", _table(Member), expansions={"bacenta": BACENTA}),
        Resource("events", views.events_view),
        Resource(
            "event_member_targets",
            views.event_member_targets_view,
            expansions={"member": _member("member_id", with_bacenta=True)},
        ),
        Resource(
            "event_bacenta_targets_view",
            views.event_bacenta_targets_view,
            expansions={"bacenta": BACENTA},
        ),
        Resource("event_cumulative_view", views.event_cumulative_view),
        Resource(
            "contacts",
            views.contacts_table,
            model=Contact,
            create_schema=schemas.ContactCreate,
            patch_schema=schemas.ContactPatch,
            expansions={"member": _member("contacted_by_member_id", with_bacenta=True)},
        ),
        Resource(
            "confirmations",
            views.confirmations_view,
            model=Contact,
            create_schema=schemas.ConfirmationCreate,
            patch_schema=schemas.ConfirmationPatch,
            renames={"confirmed_by_member_id": "contacted_by_member_id"},
            expansions={"member": _member("confirmed_by_member_id", with_bacenta=True)},
        ),
        Resource("call_outcomes", _table(CallOutcome)),
        Resource(
            "calls",
            _table(Call),
            model=Call,
            create_schema=schemas.CallCreate,
            patch_schema=schemas.CallPatch,
            expansions=CALL_EXPANSIONS,
        ),
        Resource(
            "visits",
            _table(Visit),
            model=Visit,
            create_schema=schemas.VisitCreate,
            patch_schema=schemas.VisitPatch,
            expansions=VISIT_EXPANSIONS,
        ),
        Resource(
            "visit_visitors",
            _table(VisitVisitor),
            model=VisitVisitor,
            create_schema=schemas.VisitVisitorCreate,
        ),
        Resource(
            "visit_visitees",
            _table(VisitVisitee),
            model=VisitVisitee,
            create_schema=schemas.VisitVisiteeCreate,
        ),
    )
}


def get_resource(name: str) -> Optional[Resource]:
    return RESOURCES.get((name or "").strip())
