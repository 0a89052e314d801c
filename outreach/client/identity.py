from __future__ import annotations

import logging
from typing import List, Optional

from ..filters import OrderBy, QueryFilter
from .context import ClientContext
from .dto import EventDTO, MemberDTO, parse_rows
from .reads import ReadQuery, use_event_members, use_events, use_members

logger = logging.getLogger(__name__)


class IdentityError(ValueError):
    pass


class IdentityFlow:
    """
    The /identity page: pick an event, then pick yourself from the members
    who have a target for that event, then confirm.

        flow = IdentityFlow(ctx)
        await flow.load_events()
        await flow.select_event(event_id)
        flow.search("kofi")
        flow.select_member(member_id)
        flow.confirm()
    """

    def __init__(self, ctx: ClientContext):
        self.ctx = ctx
        self.events_query: ReadQuery[List[EventDTO]] = use_events(
            ctx, QueryFilter(order_by=[OrderBy(column="event_timestamp", ascending=False)])
        )
        self.members_query: Optional[ReadQuery[List[MemberDTO]]] = None
        self.event: Optional[EventDTO] = None
        self.member: Optional[MemberDTO] = None
        self.query = ""

        # Pre-select whatever the session already holds
        current_member, current_event = ctx.session.identity()
        self.event = current_event
        self.member = current_member

    # -------------------------
    # Events
    # -------------------------

    @property
    def events(self) -> List[EventDTO]:
        return self.events_query.data or []

    async def load_events(self) -> List[EventDTO]:
        await self.events_query.load()
        return self.events

    async def select_event(self, event_id: int) -> List[MemberDTO]:
        event = next((e for e in self.events if e.id == event_id), None)
        if event is None:
            raise IdentityError(f"Unknown event {event_id}")
        if self.event is None or self.event.id != event.id:
            self.member = None
        self.event = event

        targets_query = use_event_members(ctx=self.ctx, flt=QueryFilter(equals={"event_id": event.id}))
        targets = await targets_query.load() or []
        member_ids = sorted({t.member_id for t in targets})

        self.members_query = use_members(
            self.ctx,
            QueryFilter(in_={"id": member_ids}, order_by=[OrderBy(column="full_name")]),
            # An empty id list would select every member
            enabled=bool(member_ids),
        )
        await self.members_query.load()
        return self.members

    # -------------------------
    # Members
    # -------------------------

    @property
    def members(self) -> List[MemberDTO]:
        if self.members_query is None:
            return []
        return self.members_query.data or []

    def search(self, query: str) -> List[MemberDTO]:
        self.query = query or ""
        return self.visible_members

    @property
    def visible_members(self) -> List[MemberDTO]:
        needle = self.query.strip().lower()
        if not needle:
            return self.members
        return [m for m in self.members if needle in m.display_name.lower()]

    def select_member(self, member_id: int) -> MemberDTO:
        member = next((m for m in self.members if m.id == member_id), None)
        if member is None:
            raise IdentityError(f"Member {member_id} has no target for this event")
        self.member = member
        return member

    @property
    def can_confirm(self) -> bool:
        return self.event is not None and self.member is not None

    def confirm(self) -> None:
        if self.event is None or self.member is None:
            raise IdentityError("Choose an event and a member first")
        self.ctx.session.choose_identity(self.member, self.event)
