"""
Client-side form submissions.

A form holds raw string/bool values, trims them on submit and sends one
mutation. A form missing its required name aborts without contacting the
backend and without an error message. A failed write leaves the form open
with its values and the error text set.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..api.schemas import CallCreate, ConfirmationCreate, ContactCreate, ContactPatch
from ..models.common import utcnow
from .backend import BackendError, Row
from .context import ClientContext
from .dto import ContactDTO, VisitDTO
from .mutations import (
    Mutation,
    RowUpdate,
    VisitInput,
    use_create_call,
    use_create_confirmation,
    use_create_contact,
    use_create_visit,
    use_update_contact,
    use_update_visit,
)

logger = logging.getLogger(__name__)


def _clean(value: Any) -> Optional[str]:
    """Trim; empty becomes None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class _Form:
    defaults: Dict[str, Any] = {}

    def __init__(self, ctx: ClientContext):
        self.ctx = ctx
        self.values: Dict[str, Any] = {}
        self.is_open = False
        self.is_submitting = False
        self.error: Optional[str] = None
        self.reset()

    def open(self) -> None:
        self.is_open = True
        self.error = None

    def close(self) -> None:
        self.is_open = False
        self.error = None
        self.reset()

    def reset(self) -> None:
        self.values = dict(self.defaults)

    def set(self, **values: Any) -> None:
        self.values.update(values)

    # -------------------------
    # Submission
    # -------------------------

    def _identity(self) -> Optional[tuple]:
        member, event = self.ctx.session.identity()
        if member is None or event is None:
            self.error = "Choose who you are and which event first."
            return None
        return member, event

    def _payload(self) -> Any:
        raise NotImplementedError

    async def _send(self, payload: Any) -> Row:
        raise NotImplementedError

    async def submit(self) -> Optional[Row]:
        try:
            payload = self._payload()
        except ValidationError as e:
            self.error = "Please check the form: " + "; ".join(err["msg"] for err in e.errors())
            return None
        if payload is None:
            return None

        self.is_submitting = True
        self.error = None
        try:
            result = await self._send(payload)
        except BackendError as e:
            # Stay open so the user can retry
            self.error = str(e.detail)
            logger.warning("%s submit failed: %s", type(self).__name__, e)
            return None
        finally:
            self.is_submitting = False

        self.close()
        return result


class _MutationForm(_Form):
    def __init__(self, ctx: ClientContext, mutation: Mutation):
        super().__init__(ctx)
        self.mutation = mutation

    async def _send(self, payload: Any) -> Row:
        return await self.mutation.run(payload)


# -----------------------------
# Home: add confirmation
# -----------------------------

class AddConfirmationForm(_MutationForm):
    defaults = {"first_name": "", "last_name": "", "contact_number": "", "is_first_time": False}

    def __init__(self, ctx: ClientContext):
        super().__init__(ctx, use_create_confirmation(ctx))

    def _payload(self) -> Optional[ConfirmationCreate]:
        first_name = _clean(self.values.get("first_name"))
        if not first_name:
            return None
        identity = self._identity()
        if identity is None:
            return None
        member, event = identity
        return ConfirmationCreate(
            event_id=event.id,
            confirmed_by_member_id=member.id,
            first_name=first_name,
            last_name=_clean(self.values.get("last_name")),
            contact_number=_clean(self.values.get("contact_number")),
            is_first_time=bool(self.values.get("is_first_time")),
        )


# -----------------------------
# Contacts
# -----------------------------

class AddContactForm(_MutationForm):
    defaults = {"first_name": "", "last_name": "", "contact_number": "", "notes": "", "is_first_time": False}

    def __init__(self, ctx: ClientContext):
        super().__init__(ctx, use_create_contact(ctx))

    def _payload(self) -> Optional[ContactCreate]:
        first_name = _clean(self.values.get("first_name"))
        if not first_name:
            return None
        identity = self._identity()
        if identity is None:
            return None
        member, event = identity
        return ContactCreate(
            event_id=event.id,
            contacted_by_member_id=member.id,
            first_name=first_name,
            last_name=_clean(self.values.get("last_name")),
            contact_number=_clean(self.values.get("contact_number")),
            notes=_clean(self.values.get("notes")),
            is_first_time=bool(self.values.get("is_first_time")),
        )


class EditContactForm(_MutationForm):
    """
    Checkbox-style status editing: `confirmed` / `transport_arranged` map to
    the two timestamps. An already-set timestamp is kept when its box stays
    ticked; unticking clears it.
    """

    def __init__(self, ctx: ClientContext, contact: ContactDTO):
        self.contact = contact
        super().__init__(ctx, use_update_contact(ctx))

    def reset(self) -> None:
        c = self.contact
        self.values = {
            "first_name": c.first_name,
            "last_name": c.last_name or "",
            "contact_number": c.contact_number or "",
            "notes": c.notes or "",
            "is_first_time": c.is_first_time,
            "attended": c.attended,
            "confirmed": c.confirmed_at is not None,
            "transport_arranged": c.transport_arranged_at is not None,
        }

    @staticmethod
    def _stamp(ticked: bool, existing: Optional[datetime]) -> Optional[datetime]:
        if not ticked:
            return None
        return existing or utcnow()

    def _payload(self) -> Optional[RowUpdate]:
        first_name = _clean(self.values.get("first_name"))
        if not first_name:
            return None
        c = self.contact
        changes = ContactPatch(
            first_name=first_name,
            last_name=_clean(self.values.get("last_name")),
            contact_number=_clean(self.values.get("contact_number")),
            notes=_clean(self.values.get("notes")),
            is_first_time=bool(self.values.get("is_first_time")),
            attended=bool(self.values.get("attended")),
            confirmed_at=self._stamp(bool(self.values.get("confirmed")), c.confirmed_at),
            transport_arranged_at=self._stamp(bool(self.values.get("transport_arranged")), c.transport_arranged_at),
        )
        return RowUpdate(id=c.id, changes=changes)


# -----------------------------
# Telepastoring
# -----------------------------

class AddCallForm(_MutationForm):
    defaults = {"outcome_id": None, "notes": "", "call_timestamp": None}

    def __init__(self, ctx: ClientContext, contact_id: int):
        self.contact_id = contact_id
        super().__init__(ctx, use_create_call(ctx))

    def _payload(self) -> Optional[CallCreate]:
        member = self.ctx.session.current_member
        if member is None:
            self.error = "Choose who you are first."
            return None
        return CallCreate(
            caller_member_id=member.id,
            callee_contact_id=self.contact_id,
            call_timestamp=self.values.get("call_timestamp") or utcnow(),
            outcome_id=self.values.get("outcome_id") or None,
            notes=_clean(self.values.get("notes")),
        )


class AddVisitForm(_Form):
    """
    Add a visit to a contact, or edit one (pass `visit`). The current member
    is the default visitor; extra visitees are other contacts seen at the
    same visit.
    """

    def __init__(self, ctx: ClientContext, contact_id: int, visit: Optional[VisitDTO] = None):
        self.contact_id = contact_id
        self.visit = visit
        super().__init__(ctx)
        self.create = use_create_visit(ctx)
        self.editor = use_update_visit(
            ctx,
            members={m.id: m for m in visit.visitors} if visit else None,
            contacts={c.id: c for c in visit.visitees} if visit else None,
        )

    def reset(self) -> None:
        v = self.visit
        if v is None:
            member = self.ctx.session.current_member
            self.values = {
                "visit_timestamp": None,
                "location": "",
                "notes": "",
                "visitor_ids": [member.id] if member else [],
                "extra_contact_ids": [],
            }
            return
        self.values = {
            "visit_timestamp": v.visit_timestamp,
            "location": v.location or "",
            "notes": v.notes or "",
            "visitor_ids": [m.id for m in v.visitors],
            "extra_contact_ids": [c.id for c in v.visitees if c.id != self.contact_id],
        }

    def _payload(self) -> VisitInput:
        visitor_ids: List[int] = []
        for mid in self.values.get("visitor_ids") or []:
            if mid not in visitor_ids:
                visitor_ids.append(mid)
        return VisitInput(
            contact_id=self.contact_id,
            visit_timestamp=self.values.get("visit_timestamp"),
            location=_clean(self.values.get("location")),
            notes=_clean(self.values.get("notes")),
            visitor_ids=visitor_ids,
            extra_contact_ids=list(self.values.get("extra_contact_ids") or []),
        )

    async def _send(self, payload: VisitInput) -> Row:
        if self.visit is None:
            return await self.create.run(payload)
        return await self.editor.submit(self.visit.id, payload)
