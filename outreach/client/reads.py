"""
Read hooks: one per resource or aggregate view.

Each use_* function returns a ReadQuery bound to one cache entry. Nothing is
fetched until load() (or subscribe(), for polled reads) is called. Reads on
event-owned data scope themselves to the session's current event unless the
filter already pins `event_id`; with no current event such a read is disabled.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from ..filters import FilterLike, OrderBy, QueryFilter, as_filter
from .cache import ERROR, LOADING, SUCCESS, QueryState
from .context import ClientContext
from .dto import (
    BacentaDTO,
    BacentaTargetDTO,
    CallDTO,
    CallOutcomeDTO,
    ConfirmationDTO,
    ContactDTO,
    CumulativeDTO,
    EventDTO,
    EventMemberTargetDTO,
    MemberDTO,
    VisitDTO,
    VisitLinkDTO,
    parse_rows,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

IDLE = "idle"


class ReadQuery(Generic[T]):
    """
    loading: no data yet
    error:   last attempt failed (previous data, if any, is kept)
    success: data present, possibly stale until the next refetch
    idle:    disabled and never loaded
    """

    def __init__(
        self,
        ctx: ClientContext,
        resource: str,
        params: Dict[str, Any],
        fetch: Callable[[], Awaitable[T]],
        *,
        enabled: bool = True,
        stale_time: float = 0.0,
        refetch_interval: Optional[float] = None,
    ):
        self.ctx = ctx
        self.resource = resource
        self.params = params
        self.enabled = enabled
        self.stale_time = stale_time
        self.refetch_interval = refetch_interval
        self._fetch = fetch
        self._poller: Optional["asyncio.Task[None]"] = None
        self._subscribed = False
        self.state: Optional[QueryState] = ctx.cache.entry(resource, params) if enabled else None

    # -------------------------
    # State
    # -------------------------

    @property
    def status(self) -> str:
        if self.state is None:
            return IDLE
        return self.state.status

    @property
    def data(self) -> Optional[T]:
        return self.state.data if self.state else None

    @property
    def error(self) -> Optional[BaseException]:
        return self.state.error if self.state else None

    @property
    def is_loading(self) -> bool:
        return self.status == LOADING

    @property
    def is_error(self) -> bool:
        return self.status == ERROR

    @property
    def is_success(self) -> bool:
        return self.status == SUCCESS

    # -------------------------
    # Fetching
    # -------------------------

    async def load(self, force: bool = False) -> Optional[T]:
        if self.state is None:
            return None
        try:
            return await self.ctx.cache.fetch(self.state, self._fetch, stale_time=self.stale_time, force=force)
        except Exception:
            # Read errors stay on the query state (status "error"); siblings keep rendering
            return self.state.data

    async def refetch(self) -> Optional[T]:
        return await self.load(force=True)

    def subscribe(self) -> None:
        """Mark the entry as observed (refetched on invalidation) and start polling if configured."""
        if self.state is None or self._subscribed:
            return
        self._subscribed = True
        self.ctx.cache.observe(self.state)
        if self.refetch_interval:
            self._poller = asyncio.ensure_future(self._poll(self.refetch_interval))

    def unsubscribe(self) -> None:
        if self.state is None or not self._subscribed:
            return
        self._subscribed = False
        self.ctx.cache.unobserve(self.state)
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None

    async def _poll(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.refetch()


# -----------------------------
# Helpers
# -----------------------------

def _scope_to_event(
    ctx: ClientContext,
    flt: QueryFilter,
    scope_to_current_event: bool,
    enabled: bool,
) -> Tuple[QueryFilter, bool]:
    should_scope = scope_to_current_event and not flt.pins("event_id")
    event = ctx.session.current_event
    if should_scope and event is not None:
        flt = flt.with_equals(event_id=event.id)
    return flt, enabled and (not should_scope or event is not None)


def _default_order(flt: QueryFilter, *order: OrderBy) -> QueryFilter:
    if flt.order_by:
        return flt
    return flt.model_copy(update={"order_by": list(order)})


def _list_read(
    ctx: ClientContext,
    resource: str,
    model: Type[Any],
    flt: QueryFilter,
    *,
    cache_name: Optional[str] = None,
    expand: Sequence[str] = (),
    extra: Optional[Dict[str, Any]] = None,
    transform: Optional[Callable[[List[Any]], Any]] = None,
    enabled: bool = True,
    stale_time: float = 0.0,
    refetch_interval: Optional[float] = None,
) -> ReadQuery[Any]:
    params: Dict[str, Any] = {"filter": flt.to_wire()}
    if expand:
        params["expand"] = list(expand)
    params.update(extra or {})

    async def fetch() -> Any:
        rows = await ctx.backend.select(resource, flt, expand)
        parsed = parse_rows(model, rows)
        return transform(parsed) if transform else parsed

    return ReadQuery(
        ctx,
        cache_name or resource,
        params,
        fetch,
        enabled=enabled,
        stale_time=stale_time,
        refetch_interval=refetch_interval,
    )


def _first(rows: List[Any]) -> Optional[Any]:
    return rows[0] if rows else None


# -----------------------------
# Lookups
# -----------------------------

def use_members(ctx: ClientContext, flt: FilterLike = None, **opts: Any) -> ReadQuery[List[MemberDTO]]:
    return _list_read(ctx, "members", MemberDTO, as_filter(flt), **opts)


def use_bacentas(ctx: ClientContext, flt: FilterLike = None, **opts: Any) -> ReadQuery[List[BacentaDTO]]:
    return _list_read(ctx, "bacentas", BacentaDTO, as_filter(flt), **opts)


def use_call_outcomes(ctx: ClientContext, flt: FilterLike = None, **opts: Any) -> ReadQuery[List[CallOutcomeDTO]]:
    flt = _default_order(as_filter(flt), OrderBy(column="description"))
    opts.setdefault("stale_time", ctx.settings.outcomes_stale_s)
    return _list_read(ctx, "call_outcomes", CallOutcomeDTO, flt, **opts)


def use_events(ctx: ClientContext, flt: FilterLike = None, **opts: Any) -> ReadQuery[List[EventDTO]]:
    return _list_read(ctx, "events", EventDTO, as_filter(flt), **opts)


# -----------------------------
# Contacts / confirmations
# -----------------------------

def use_contacts(
    ctx: ClientContext,
    flt: FilterLike = None,
    *,
    scope_to_current_event: bool = True,
    with_member: bool = False,
    enabled: bool = True,
    **opts: Any,
) -> ReadQuery[List[ContactDTO]]:
    flt, enabled = _scope_to_event(ctx, as_filter(flt), scope_to_current_event, enabled)
    expand = ("member",) if with_member else ()
    return _list_read(ctx, "contacts", ContactDTO, flt, expand=expand, enabled=enabled, **opts)


def use_contact_by_id(ctx: ClientContext, contact_id: Optional[int], **opts: Any) -> ReadQuery[Optional[ContactDTO]]:
    """data is None when the contact does not exist (not-found, not an error)."""
    flt = QueryFilter(equals={"id": contact_id}, limit=1)
    return _list_read(
        ctx,
        "contacts",
        ContactDTO,
        flt,
        cache_name="contact",
        extra={"id": contact_id},
        transform=_first,
        enabled=opts.pop("enabled", True) and contact_id is not None,
        **opts,
    )


def use_confirmations(
    ctx: ClientContext,
    flt: FilterLike = None,
    *,
    scope_to_current_event: bool = False,
    transport_arranged_only: bool = False,
    enabled: bool = True,
    **opts: Any,
) -> ReadQuery[List[ConfirmationDTO]]:
    flt, enabled = _scope_to_event(ctx, as_filter(flt), scope_to_current_event, enabled)
    if transport_arranged_only and "transport_arranged_at" not in flt.not_null:
        flt = flt.model_copy(update={"not_null": [*flt.not_null, "transport_arranged_at"]})
    return _list_read(ctx, "confirmations", ConfirmationDTO, flt, enabled=enabled, **opts)


def use_confirmation_by_id(
    ctx: ClientContext, confirmation_id: Optional[int], **opts: Any
) -> ReadQuery[Optional[ConfirmationDTO]]:
    flt = QueryFilter(equals={"id": confirmation_id}, limit=1)
    return _list_read(
        ctx,
        "confirmations",
        ConfirmationDTO,
        flt,
        cache_name="confirmation",
        extra={"id": confirmation_id},
        transform=_first,
        enabled=opts.pop("enabled", True) and confirmation_id is not None,
        **opts,
    )


def use_cumulative_contacts(
    ctx: ClientContext,
    flt: FilterLike = None,
    *,
    scope_to_current_event: bool = True,
    enabled: bool = True,
    **opts: Any,
) -> ReadQuery[List[CumulativeDTO]]:
    flt, enabled = _scope_to_event(ctx, as_filter(flt), scope_to_current_event, enabled)
    flt = _default_order(flt, OrderBy(column="day"))
    return _list_read(ctx, "event_cumulative_view", CumulativeDTO, flt, enabled=enabled, **opts)


def use_cumulative_confirmations(ctx: ClientContext, flt: FilterLike = None, **opts: Any) -> ReadQuery[List[CumulativeDTO]]:
    opts.setdefault("scope_to_current_event", False)
    return use_cumulative_contacts(ctx, flt, **opts)


# -----------------------------
# Targets
# -----------------------------

def _flatten_member_names(rows: List[EventMemberTargetDTO]) -> List[EventMemberTargetDTO]:
    out = []
    for row in rows:
        member = row.member
        out.append(
            row.model_copy(
                update={
                    "member_full_name": member.display_name if member else None,
                    "bacenta_name": member.bacenta.name if member and member.bacenta else None,
                }
            )
        )
    return out


def _flatten_bacenta_names(rows: List[BacentaTargetDTO]) -> List[BacentaTargetDTO]:
    return [r.model_copy(update={"bacenta_name": r.bacenta.name if r.bacenta else None}) for r in rows]


def use_event_members(
    ctx: ClientContext,
    flt: FilterLike = None,
    *,
    include_bacenta_name: bool = False,
    **opts: Any,
) -> ReadQuery[List[EventMemberTargetDTO]]:
    return _list_read(
        ctx,
        "event_member_targets",
        EventMemberTargetDTO,
        as_filter(flt),
        expand=("member",) if include_bacenta_name else (),
        transform=_flatten_member_names if include_bacenta_name else None,
        **opts,
    )


def use_bacenta_targets(
    ctx: ClientContext,
    flt: FilterLike = None,
    *,
    include_bacenta_name: bool = False,
    **opts: Any,
) -> ReadQuery[List[BacentaTargetDTO]]:
    return _list_read(
        ctx,
        "event_bacenta_targets_view",
        BacentaTargetDTO,
        as_filter(flt),
        expand=("bacenta",) if include_bacenta_name else (),
        transform=_flatten_bacenta_names if include_bacenta_name else None,
        **opts,
    )


# -----------------------------
# Telepastoring
# -----------------------------

CALL_EXPAND = ("caller", "outcome")


def use_calls(ctx: ClientContext, flt: FilterLike = None, **opts: Any) -> ReadQuery[List[CallDTO]]:
    flt = _default_order(as_filter(flt), OrderBy(column="call_timestamp", ascending=False))
    opts.setdefault("stale_time", ctx.settings.calls_stale_s)
    opts.setdefault("expand", CALL_EXPAND)
    return _list_read(ctx, "calls", CallDTO, flt, **opts)


def use_calls_by_contact(ctx: ClientContext, contact_id: Optional[int], **opts: Any) -> ReadQuery[List[CallDTO]]:
    flt = QueryFilter(
        equals={"callee_contact_id": contact_id},
        order_by=[OrderBy(column="call_timestamp", ascending=False)],
    )
    opts.setdefault("stale_time", ctx.settings.calls_stale_s)
    return _list_read(
        ctx,
        "calls",
        CallDTO,
        flt,
        expand=CALL_EXPAND,
        extra={"contact_id": contact_id},
        enabled=opts.pop("enabled", True) and contact_id is not None,
        **opts,
    )


def use_visits_by_contact(ctx: ClientContext, contact_id: Optional[int], **opts: Any) -> ReadQuery[List[VisitDTO]]:
    """
    Visits linked to one contact, newest edit first, with visitors and visitees inlined.
    Two round trips: the link rows, then the visits they name.
    """

    async def fetch() -> List[VisitDTO]:
        links = parse_rows(
            VisitLinkDTO,
            await ctx.backend.select("visit_visitees", QueryFilter(equals={"contact_id": contact_id})),
        )
        visit_ids = sorted({link.visit_id for link in links})
        # An empty `in` would mean "every visit"
        if not visit_ids:
            return []
        rows = await ctx.backend.select(
            "visits",
            QueryFilter(in_={"id": visit_ids}, order_by=[OrderBy(column="updated_at", ascending=False)]),
            ("visitors", "visitees"),
        )
        return parse_rows(VisitDTO, rows)

    return ReadQuery(
        ctx,
        "visits",
        {"contact_id": contact_id},
        fetch,
        enabled=opts.pop("enabled", True) and contact_id is not None,
        **opts,
    )
