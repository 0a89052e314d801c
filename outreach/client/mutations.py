"""
Write operations.

Every mutation performs its write(s) through the backend and, on success,
invalidates the cached reads that depend on the written resource. Failures
are re-raised to the caller (no retry). Creating a contact or confirmation
also bumps the cached target counters ahead of the write.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Generic, List, Mapping, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, Field as PydField

from ..api.schemas import (
    CallCreate,
    CallPatch,
    ConfirmationCreate,
    ConfirmationPatch,
    ContactCreate,
    ContactPatch,
    VisitCreate,
    VisitPatch,
)
from ..models.common import utcnow
from .backend import Row
from .context import ClientContext
from .dto import ContactRef, MemberDTO, VisitDTO
from .optimistic import OptimisticUpdate, bump, replace_rows

logger = logging.getLogger(__name__)

P = TypeVar("P")
R = TypeVar("R")

IDLE = "idle"
PENDING = "pending"
SUCCESS = "success"
ERROR = "error"

# Reads derived from contact rows (both shapes, detail reads and aggregates)
CONTACT_DEPENDENTS = (
    "contacts",
    "confirmations",
    "contact",
    "confirmation",
    "event_member_targets",
    "events",
    "event_bacenta_targets_view",
    "event_cumulative_view",
)
CALL_DEPENDENTS = ("calls",)
VISIT_DEPENDENTS = ("visits",)


@dataclass
class RowUpdate:
    id: int
    changes: Union[BaseModel, Dict[str, Any]]


class VisitInput(BaseModel):
    """A visit plus its links. contact_id is the primary visitee."""

    contact_id: int
    visit_timestamp: Optional[datetime] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    visitor_ids: List[int] = PydField(default_factory=list)
    extra_contact_ids: List[int] = PydField(default_factory=list)

    def visitee_ids(self) -> List[int]:
        """Primary contact first, extras in order without repeats."""
        out = [self.contact_id]
        for cid in self.extra_contact_ids:
            if cid not in out:
                out.append(cid)
        return out

    def visit_fields(self) -> Dict[str, Any]:
        payload = VisitCreate(
            visit_timestamp=self.visit_timestamp or utcnow(),
            location=self.location,
            notes=self.notes,
        )
        return payload.model_dump(mode="json")


class Mutation(Generic[P, R]):
    def __init__(
        self,
        ctx: ClientContext,
        name: str,
        write: Callable[[P], Awaitable[R]],
        *,
        invalidates: Sequence[str] = (),
        optimistic: Optional[Callable[[P], OptimisticUpdate]] = None,
    ):
        self.ctx = ctx
        self.name = name
        self._write = write
        self._invalidates = tuple(invalidates)
        self._optimistic = optimistic
        self.status = IDLE
        self.data: Optional[R] = None
        self.error: Optional[BaseException] = None

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING

    async def run(self, payload: P) -> R:
        self.status = PENDING
        self.error = None

        update = self._optimistic(payload) if self._optimistic else None
        snapshot = await update.apply() if update else None

        try:
            result = await self._write(payload)
        except Exception as e:
            self.status = ERROR
            self.error = e
            logger.warning("%s failed: %s", self.name, e)
            if update is not None:
                update.rollback(snapshot)
                await update.settle()
            raise

        self.status = SUCCESS
        self.data = result
        resources = list(self._invalidates)
        if update is not None:
            resources.extend(r for r in update.resources if r not in resources)
        for resource in resources:
            await self.ctx.cache.invalidate(resource)
        return result


# -----------------------------
# Shared write helpers
# -----------------------------

def _changes(schema: Type[BaseModel], changes: Union[BaseModel, Mapping[str, Any]]) -> Row:
    if not isinstance(changes, BaseModel):
        changes = schema.model_validate(dict(changes))
    return changes.model_dump(mode="json", exclude_unset=True)


def _creator(ctx: ClientContext, resource: str) -> Callable[[BaseModel], Awaitable[Row]]:
    async def write(payload: BaseModel) -> Row:
        return await ctx.backend.insert(resource, payload.model_dump(mode="json"))

    return write


def _updater(ctx: ClientContext, resource: str, schema: Type[BaseModel]) -> Callable[[RowUpdate], Awaitable[Row]]:
    async def write(update: RowUpdate) -> Row:
        return await ctx.backend.update(resource, update.id, _changes(schema, update.changes))

    return write


def _deleter(ctx: ClientContext, resource: str) -> Callable[[int], Awaitable[Row]]:
    async def write(row_id: int) -> Row:
        return await ctx.backend.delete(resource, row_id)

    return write


def _confirmation_bump(ctx: ClientContext, event_id: int, member_id: int) -> OptimisticUpdate:
    inc = bump("total_confirmations")

    def patch(resource: str, rows: Any) -> Any:
        if resource == "event_member_targets":
            return replace_rows(rows, lambda r: r.event_id == event_id and r.member_id == member_id, inc)
        return replace_rows(rows, lambda r: r.id == event_id, inc)

    return OptimisticUpdate(ctx.cache, ("event_member_targets", "events"), patch)


# -----------------------------
# Contacts
# -----------------------------

def use_create_contact(ctx: ClientContext) -> Mutation[ContactCreate, Row]:
    return Mutation(
        ctx,
        "create contact",
        _creator(ctx, "contacts"),
        invalidates=CONTACT_DEPENDENTS,
        optimistic=lambda c: _confirmation_bump(ctx, c.event_id, c.contacted_by_member_id),
    )


def use_update_contact(ctx: ClientContext) -> Mutation[RowUpdate, Row]:
    return Mutation(ctx, "update contact", _updater(ctx, "contacts", ContactPatch), invalidates=CONTACT_DEPENDENTS)


def use_delete_contact(ctx: ClientContext) -> Mutation[int, Row]:
    return Mutation(ctx, "delete contact", _deleter(ctx, "contacts"), invalidates=CONTACT_DEPENDENTS)


# -----------------------------
# Confirmations (legacy shape)
# -----------------------------

def use_create_confirmation(ctx: ClientContext) -> Mutation[ConfirmationCreate, Row]:
    return Mutation(
        ctx,
        "create confirmation",
        _creator(ctx, "confirmations"),
        invalidates=CONTACT_DEPENDENTS,
        optimistic=lambda c: _confirmation_bump(ctx, c.event_id, c.confirmed_by_member_id),
    )


def use_update_confirmation(ctx: ClientContext) -> Mutation[RowUpdate, Row]:
    return Mutation(
        ctx, "update confirmation", _updater(ctx, "confirmations", ConfirmationPatch), invalidates=CONTACT_DEPENDENTS
    )


def use_delete_confirmation(ctx: ClientContext) -> Mutation[int, Row]:
    return Mutation(ctx, "delete confirmation", _deleter(ctx, "confirmations"), invalidates=CONTACT_DEPENDENTS)


# -----------------------------
# Calls
# -----------------------------

def use_create_call(ctx: ClientContext) -> Mutation[CallCreate, Row]:
    return Mutation(ctx, "create call", _creator(ctx, "calls"), invalidates=CALL_DEPENDENTS)


def use_update_call(ctx: ClientContext) -> Mutation[RowUpdate, Row]:
    return Mutation(ctx, "update call", _updater(ctx, "calls", CallPatch), invalidates=CALL_DEPENDENTS)


def use_delete_call(ctx: ClientContext) -> Mutation[int, Row]:
    return Mutation(ctx, "delete call", _deleter(ctx, "calls"), invalidates=CALL_DEPENDENTS)


# -----------------------------
# Visits
# -----------------------------

async def _insert_links(ctx: ClientContext, visit_id: int, values: VisitInput) -> None:
    if values.visitor_ids:
        await ctx.backend.insert("visit_visitors", [{"visit_id": visit_id, "member_id": m} for m in values.visitor_ids])
    await ctx.backend.insert("visit_visitees", [{"visit_id": visit_id, "contact_id": c} for c in values.visitee_ids()])


def use_create_visit(ctx: ClientContext) -> Mutation[VisitInput, Row]:
    async def write(values: VisitInput) -> Row:
        visit = await ctx.backend.insert("visits", values.visit_fields())
        await _insert_links(ctx, int(visit["id"]), values)
        return visit

    return Mutation(ctx, "create visit", write, invalidates=VISIT_DEPENDENTS)


def use_delete_visit(ctx: ClientContext) -> Mutation[int, Row]:
    async def write(visit_id: int) -> Row:
        # Join rows reference the visit, so they go first
        await ctx.backend.delete_where("visit_visitors", visit_id=visit_id)
        await ctx.backend.delete_where("visit_visitees", visit_id=visit_id)
        return await ctx.backend.delete("visits", visit_id)

    return Mutation(ctx, "delete visit", write, invalidates=VISIT_DEPENDENTS)


class VisitEditor:
    """
    Edits an existing visit and replaces its visitor/visitee links.

    Edits to the same visit run strictly in submission order: each one waits
    for the previous edit of that visit to finish (successfully or not)
    before patching the cache and writing. The cached visit rows are patched
    up front, rolled back if the write sequence fails, and `visits` is
    invalidated when each edit settles.
    """

    def __init__(
        self,
        ctx: ClientContext,
        members: Optional[Mapping[int, MemberDTO]] = None,
        contacts: Optional[Mapping[int, ContactRef]] = None,
    ):
        self.ctx = ctx
        self.members = dict(members or {})
        self.contacts = dict(contacts or {})

    async def submit(self, visit_id: int, values: VisitInput) -> Row:
        chains = self.ctx.visit_chains
        previous = chains.get(visit_id)
        task = asyncio.ensure_future(self._link(previous, visit_id, values))
        chains[visit_id] = task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and chains.get(visit_id) is task:
                del chains[visit_id]

    async def _link(self, previous: Optional["asyncio.Task[Any]"], visit_id: int, values: VisitInput) -> Row:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])

        update = OptimisticUpdate(self.ctx.cache, VISIT_DEPENDENTS, self._patch(visit_id, values))
        snapshot = await update.apply()
        try:
            return await self._write(visit_id, values)
        except Exception as e:
            logger.warning("Visit %s edit failed: %s", visit_id, e)
            update.rollback(snapshot)
            raise
        finally:
            await update.settle()

    async def _write(self, visit_id: int, values: VisitInput) -> Row:
        backend = self.ctx.backend
        given: Dict[str, Any] = {"location": values.location, "notes": values.notes}
        # An edit without a timestamp keeps the stored one
        if values.visit_timestamp is not None:
            given["visit_timestamp"] = values.visit_timestamp
        fields = VisitPatch(**given)
        row = await backend.update("visits", visit_id, fields.model_dump(mode="json", exclude_unset=True))
        await backend.delete_where("visit_visitors", visit_id=visit_id)
        if values.visitor_ids:
            await backend.insert("visit_visitors", [{"visit_id": visit_id, "member_id": m} for m in values.visitor_ids])
        await backend.delete_where("visit_visitees", visit_id=visit_id)
        await backend.insert("visit_visitees", [{"visit_id": visit_id, "contact_id": c} for c in values.visitee_ids()])
        return row

    def _patch(self, visit_id: int, values: VisitInput) -> Callable[[str, Any], Any]:
        def apply(visit: VisitDTO) -> VisitDTO:
            known_members = {m.id: m for m in visit.visitors}
            known_members.update(self.members)
            known_contacts = {c.id: c for c in visit.visitees}
            known_contacts.update(self.contacts)
            changes: Dict[str, Any] = {
                "location": values.location,
                "notes": values.notes,
                "visitors": [known_members.get(m) or MemberDTO(id=m) for m in values.visitor_ids],
                "visitees": [known_contacts.get(c) or ContactRef(id=c) for c in values.visitee_ids()],
            }
            if values.visit_timestamp is not None:
                changes["visit_timestamp"] = values.visit_timestamp
            return visit.model_copy(update=changes)

        return lambda _resource, rows: replace_rows(rows, lambda v: v.id == visit_id, apply)


def use_update_visit(
    ctx: ClientContext,
    members: Optional[Mapping[int, MemberDTO]] = None,
    contacts: Optional[Mapping[int, ContactRef]] = None,
) -> VisitEditor:
    return VisitEditor(ctx, members, contacts)
