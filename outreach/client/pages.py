"""
Page view-models.

A page owns the reads its route needs, loads them concurrently and exposes
each as a Section with its own state and message. One failed read leaves
the other sections rendering. Pages that need an identity report
`redirect == "/identity"` when the session has none.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from ..filters import OrderBy, QueryFilter
from .context import ClientContext
from .dto import ContactDTO, EventDTO, EventMemberTargetDTO, MemberDTO
from .forms import AddCallForm, AddConfirmationForm, AddContactForm, AddVisitForm, EditContactForm
from .identity import IdentityFlow
from .querystring import ContactsQuery, MembersQuery, QueryInput, TelepastoringQuery
from .reads import (
    ReadQuery,
    use_bacenta_targets,
    use_bacentas,
    use_call_outcomes,
    use_calls,
    use_calls_by_contact,
    use_confirmation_by_id,
    use_confirmations,
    use_contact_by_id,
    use_contacts,
    use_cumulative_confirmations,
    use_event_members,
    use_events,
    use_members,
    use_visits_by_contact,
)
from .reports import dashboard, leaderboard, telepastoring
from .reports.clipboard import Clipboard, copy_text
from .reports.timeline import TimelineEntry, build_timeline

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOADING = "loading"
ERROR = "error"
EMPTY = "empty"
NOT_FOUND = "not_found"
READY = "ready"
IDLE = "idle"

IDENTITY_ROUTE = "/identity"


class Section(Generic[T]):
    """
    Render state for one read:
      idle -> "Select an event to view data."
      loading -> "Loading…"
      error -> "Failed to load <noun>"
      empty -> "No <noun> yet." (lists) / not_found -> "<Noun> not found" (detail reads)
      ready -> data
    """

    def __init__(self, noun: str, query: ReadQuery[T], *, detail: bool = False):
        self.noun = noun
        self.query = query
        self.detail = detail

    @property
    def data(self) -> Optional[T]:
        return self.query.data

    @property
    def state(self) -> str:
        q = self.query
        if q.status == IDLE:
            return IDLE
        if q.is_loading:
            return LOADING
        if q.is_error and q.data is None:
            return ERROR
        if self.detail and q.data is None:
            return NOT_FOUND
        if not self.detail and not q.data:
            return EMPTY
        return READY

    @property
    def message(self) -> Optional[str]:
        return {
            IDLE: "Select an event to view data.",
            LOADING: "Loading…",
            ERROR: f"Failed to load {self.noun}",
            EMPTY: f"No {self.noun} yet.",
            NOT_FOUND: f"{self.noun[:1].upper()}{self.noun[1:]} not found",
        }.get(self.state)


class Page:
    requires_identity = True

    def __init__(self, ctx: ClientContext):
        self.ctx = ctx
        self.event: Optional[EventDTO] = ctx.session.current_event
        self.member: Optional[MemberDTO] = ctx.session.current_member

    @property
    def redirect(self) -> Optional[str]:
        if self.requires_identity and self.event is None:
            return IDENTITY_ROUTE
        return None

    def sections(self) -> List[Section]:
        return []

    async def load(self) -> None:
        await asyncio.gather(*(s.query.load() for s in self.sections()))

    async def refresh(self) -> None:
        await asyncio.gather(*(s.query.refetch() for s in self.sections()))

    def open(self) -> None:
        """Start observing (and polling, where configured) every section's read."""
        for s in self.sections():
            s.query.subscribe()

    def close(self) -> None:
        for s in self.sections():
            s.query.unsubscribe()


def _event_id(page: Page) -> Optional[int]:
    return page.event.id if page.event else None


# -----------------------------
# /identity
# -----------------------------

class IdentityPage(Page):
    requires_identity = False

    def __init__(self, ctx: ClientContext):
        super().__init__(ctx)
        self.flow = IdentityFlow(ctx)
        self.events = Section("events", self.flow.events_query)

    def sections(self) -> List[Section]:
        return [self.events]


# -----------------------------
# / (home)
# -----------------------------

class HomePage(Page):
    def __init__(self, ctx: ClientContext):
        super().__init__(ctx)
        flt = QueryFilter(equals={"event_id": _event_id(self), "member_id": self.member.id if self.member else None})
        self.progress = Section(
            "your progress",
            use_event_members(ctx, flt, enabled=self.event is not None and self.member is not None),
        )
        self.add_form = AddConfirmationForm(ctx)

    @property
    def redirect(self) -> Optional[str]:
        if self.member is None or self.event is None:
            return IDENTITY_ROUTE
        return None

    def sections(self) -> List[Section]:
        return [self.progress]

    @property
    def my_target(self) -> Optional[EventMemberTargetDTO]:
        rows = self.progress.data or []
        return rows[0] if rows else None


# -----------------------------
# /contacts, /confirmations
# -----------------------------

class ContactsPage(Page):
    limit = 500

    def __init__(self, ctx: ClientContext, query: QueryInput = None):
        super().__init__(ctx)
        self.query = ContactsQuery.parse(query)
        self.contacts = Section("contacts", use_contacts(ctx, self.query.to_filter(self.limit)))
        self.members = Section("members", use_members(ctx))
        self.add_form = AddContactForm(ctx)
        self.edit_form: Optional[EditContactForm] = None

    def sections(self) -> List[Section]:
        return [self.contacts, self.members]

    async def load(self) -> None:
        await super().load()
        if self.query.edit is not None:
            contact = next((c for c in self.contacts.data or [] if c.id == self.query.edit), None)
            self.edit_form = EditContactForm(self.ctx, contact) if contact else None
            if self.edit_form is not None:
                self.edit_form.open()


class ConfirmationsPage(Page):
    def __init__(self, ctx: ClientContext):
        super().__init__(ctx)
        flt = QueryFilter(
            equals={"event_id": _event_id(self)},
            order_by=[OrderBy(column="created_at", ascending=False)],
        )
        self.confirmations = Section("confirmations", use_confirmations(ctx, flt, enabled=self.event is not None))
        self.members = Section("members", use_members(ctx))

    def sections(self) -> List[Section]:
        return [self.confirmations, self.members]


class ContactDetailPage(Page):
    noun = "contact"

    def __init__(self, ctx: ClientContext, contact_id: int):
        super().__init__(ctx)
        self.contact_id = contact_id
        self.contact = Section(self.noun, self._detail_read(ctx, contact_id), detail=True)
        self.calls = Section("calls", use_calls_by_contact(ctx, contact_id))
        self.visits = Section("visits", use_visits_by_contact(ctx, contact_id))
        self.outcomes = Section("call outcomes", use_call_outcomes(ctx))
        self.add_call = AddCallForm(ctx, contact_id)
        self.add_visit = AddVisitForm(ctx, contact_id)

    def _detail_read(self, ctx: ClientContext, contact_id: int) -> ReadQuery[Any]:
        return use_contact_by_id(ctx, contact_id)

    def sections(self) -> List[Section]:
        return [self.contact, self.calls, self.visits, self.outcomes]

    @property
    def timeline(self) -> List[TimelineEntry]:
        return build_timeline(self.calls.data or [], self.visits.data or [])

    @property
    def activity_message(self) -> Optional[str]:
        return None if self.timeline else "No activity yet."

    def edit_visit(self, visit_id: int) -> Optional[AddVisitForm]:
        visit = next((v for v in self.visits.data or [] if v.id == visit_id), None)
        if visit is None:
            return None
        form = AddVisitForm(self.ctx, self.contact_id, visit)
        form.open()
        return form


class ConfirmationDetailPage(ContactDetailPage):
    noun = "confirmation"

    def _detail_read(self, ctx: ClientContext, contact_id: int) -> ReadQuery[Any]:
        return use_confirmation_by_id(ctx, contact_id)


# -----------------------------
# /telepastoring
# -----------------------------

class TelepastoringPage(Page):
    def __init__(self, ctx: ClientContext, query: QueryInput = None):
        super().__init__(ctx)
        self.query = TelepastoringQuery.parse(query)
        self.search_text = ""
        has_event = self.event is not None

        self.members = Section("members", use_members(ctx))
        self.bacentas = Section("bacentas", use_bacentas(ctx, QueryFilter(order_by=[OrderBy(column="name")])))
        self.outcomes = Section("call outcomes", use_call_outcomes(ctx))
        self.contacts = Section(
            "contacts",
            use_contacts(ctx, self.query.to_contacts_filter(_event_id(self) or 0), enabled=has_event),
        )
        self.calls = Section("calls", use_calls(ctx, self.query.to_calls_filter(), enabled=has_event))

    def sections(self) -> List[Section]:
        return [self.members, self.bacentas, self.outcomes, self.contacts, self.calls]

    @property
    def is_loading(self) -> bool:
        return self.contacts.state == LOADING or self.calls.state == LOADING

    @property
    def error(self) -> Optional[BaseException]:
        return self.contacts.query.error or self.calls.query.error

    @property
    def results(self) -> List[ContactDTO]:
        found = telepastoring.results(
            self.contacts.data,
            self.calls.data,
            not_called=self.query.not_called,
            member_ids=self.query.members,
        )
        return telepastoring.search(found, self.search_text)

    def search(self, text: str) -> List[ContactDTO]:
        self.search_text = text or ""
        return self.results

    @property
    def selection(self) -> str:
        return telepastoring.describe_selection(self.members.data or [], self.bacentas.data or [], self.query.members)

    def summary_text(self, now: Optional[datetime] = None) -> str:
        if self.event is None or self.members.data is None or self.contacts.data is None:
            return ""
        return telepastoring.summary_text(
            self.members.data,
            self.bacentas.data or [],
            self.contacts.data,
            self.calls.data or [],
            self.query.members,
            now,
        )

    def copy_summary(self, clipboard: Optional[Clipboard], now: Optional[datetime] = None) -> bool:
        return copy_text(self.summary_text(now), clipboard)


# -----------------------------
# /members
# -----------------------------

class MembersPage(Page):
    def __init__(self, ctx: ClientContext, query: QueryInput = None):
        super().__init__(ctx)
        self.query = MembersQuery.parse(query)
        event_id = _event_id(self)
        has_event = event_id is not None

        self.targets = Section(
            "members",
            use_event_members(
                ctx, QueryFilter(equals={"event_id": event_id}), include_bacenta_name=True, enabled=has_event
            ),
        )
        self.members = Section("members", use_members(ctx))
        self.bacentas = Section("bacentas", use_bacentas(ctx, QueryFilter(order_by=[OrderBy(column="name")])))
        self.recent = Section(
            "confirmations",
            use_confirmations(
                ctx,
                QueryFilter(
                    equals={"event_id": event_id},
                    order_by=[
                        OrderBy(column="confirmed_by_member_id"),
                        OrderBy(column="created_at", ascending=False),
                    ],
                    limit=1000,
                ),
                enabled=has_event,
            ),
        )

    def sections(self) -> List[Section]:
        return [self.targets, self.members, self.bacentas, self.recent]

    @property
    def rows(self) -> List[leaderboard.LeaderboardRow]:
        return leaderboard.leaderboard(
            self.targets.data or [],
            self.members.data or [],
            self.recent.data or [],
            member_ids=self.query.members,
            bacenta_ids=self.query.bacentas,
            sort=self.query.sort,
        )


# -----------------------------
# /data
# -----------------------------

class DataPage(Page):
    def __init__(self, ctx: ClientContext):
        super().__init__(ctx)
        event_id = _event_id(self)
        has_event = event_id is not None

        self.event_data = Section(
            "event data", use_events(ctx, QueryFilter(equals={"id": event_id}, limit=1), enabled=has_event)
        )
        self.cumulative = Section(
            "chart",
            use_cumulative_confirmations(ctx, QueryFilter(equals={"event_id": event_id}), enabled=has_event),
        )
        self.by_bacenta = Section(
            "chart",
            use_bacenta_targets(
                ctx,
                QueryFilter(
                    equals={"event_id": event_id},
                    order_by=[OrderBy(column="confirmations_target", ascending=False)],
                ),
                include_bacenta_name=True,
                enabled=has_event,
            ),
        )

    def sections(self) -> List[Section]:
        return [self.event_data, self.cumulative, self.by_bacenta]

    def summary(self, today: Optional[date] = None) -> Optional[dashboard.EventSummary]:
        rows = self.event_data.data or []
        if not rows:
            return None
        return dashboard.event_summary(rows[0], self.cumulative.data or [], self.by_bacenta.data or [], today)

    def copy_summary(self, clipboard: Optional[Clipboard], now: Optional[datetime] = None) -> bool:
        summary = self.summary(now.date() if now else None)
        return copy_text(summary.text(now) if summary else "", clipboard)


# -----------------------------
# /live
# -----------------------------

class LivePage(Page):
    def __init__(self, ctx: ClientContext):
        super().__init__(ctx)
        event_id = _event_id(self)
        poll: Dict[str, Any] = {"enabled": event_id is not None, "refetch_interval": ctx.settings.poll_interval_s}

        self.event_data = Section("event data", use_events(ctx, QueryFilter(equals={"id": event_id}, limit=1), **poll))
        self.advanced = Section(
            "confirmations",
            use_confirmations(ctx, QueryFilter(equals={"event_id": event_id}), transport_arranged_only=True, **poll),
        )
        self.attended = Section(
            "attendees",
            use_contacts(
                ctx,
                QueryFilter(
                    equals={"event_id": event_id, "attended": True},
                    order_by=[OrderBy(column="created_at", ascending=False)],
                ),
                **poll,
            ),
        )
        self.by_bacenta = Section(
            "chart",
            use_bacenta_targets(
                ctx,
                QueryFilter(
                    equals={"event_id": event_id},
                    order_by=[OrderBy(column="attendance_target", ascending=False)],
                ),
                include_bacenta_name=True,
                **poll,
            ),
        )

    def sections(self) -> List[Section]:
        return [self.event_data, self.advanced, self.attended, self.by_bacenta]

    @property
    def board(self) -> dashboard.LiveAttendance:
        return dashboard.live_attendance(
            self.advanced.data or [],
            self.attended.data or [],
            self.by_bacenta.data or [],
        )


__all__ = [
    "ConfirmationDetailPage",
    "ConfirmationsPage",
    "ContactDetailPage",
    "ContactsPage",
    "DataPage",
    "HomePage",
    "IdentityPage",
    "LivePage",
    "MembersPage",
    "Page",
    "Section",
    "TelepastoringPage",
]
