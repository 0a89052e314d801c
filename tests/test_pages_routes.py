from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from conftest import EVENT, MEMBER, FakeBackend, make_ctx
from outreach.client.backend import BackendError
from outreach.client.context import ClientContext
from outreach.client.dto import ContactDTO
from outreach.client.forms import AddConfirmationForm, EditContactForm
from outreach.client.identity import IdentityError, IdentityFlow
from outreach.client.pages import (
    EMPTY,
    ERROR,
    IDLE,
    LOADING,
    NOT_FOUND,
    READY,
    ConfirmationDetailPage,
    ContactDetailPage,
    ContactsPage,
    HomePage,
    LivePage,
    TelepastoringPage,
)
from outreach.client.routes import RouteError, RouteNotFound, error_page, match_route, open_page
from outreach.client.session import EVENT_KEY, MemoryStorage, SessionStore


def _contacts_table():
    return {
        "contacts": [
            {"id": 11, "event_id": 7, "contacted_by_member_id": 1, "first_name": "Ama"},
            {"id": 12, "event_id": 7, "contacted_by_member_id": 1, "first_name": "Kofi", "last_name": "Darko"},
        ],
        "members": [{"id": 1, "first_name": "Kwame", "last_name": "Mensah", "bacenta_id": 10}],
    }


# -----------------------------
# Sections
# -----------------------------

def test_failed_read_does_not_block_siblings():
    async def scenario():
        backend = FakeBackend(_contacts_table())
        backend.failures["select:contacts"] = BackendError(503, "Network error")
        page = ContactsPage(make_ctx(backend))
        await page.load()
        return page

    page = asyncio.run(scenario())
    assert page.contacts.state == ERROR
    assert page.contacts.message == "Failed to load contacts"
    assert page.members.state == READY
    assert page.members.message is None


def test_section_states_before_and_after_load():
    async def scenario():
        page = ContactsPage(make_ctx(FakeBackend({"members": []})))
        before = page.contacts.state
        await page.load()
        return before, page

    before, page = asyncio.run(scenario())
    assert before == LOADING
    assert page.contacts.state == EMPTY
    assert page.contacts.message == "No contacts yet."


def test_no_event_means_idle_and_redirect():
    page = ContactsPage(make_ctx(FakeBackend(), member=None, event=None))
    assert page.redirect == "/identity"
    assert page.contacts.state == IDLE
    assert page.contacts.message == "Select an event to view data."


def test_home_requires_a_member_too():
    session = SessionStore(MemoryStorage({EVENT_KEY: EVENT.model_dump_json()}))
    ctx = ClientContext(backend=FakeBackend(), session=session)
    assert HomePage(ctx).redirect == "/identity"
    assert ContactsPage(ctx).redirect is None
    assert HomePage(make_ctx(FakeBackend())).redirect is None


def test_missing_contact_is_not_found_not_error():
    async def scenario():
        ctx = make_ctx(FakeBackend())
        contact = ContactDetailPage(ctx, 99)
        confirmation = ConfirmationDetailPage(ctx, 99)
        await asyncio.gather(contact.load(), confirmation.load())
        return contact, confirmation

    contact, confirmation = asyncio.run(scenario())
    assert contact.contact.state == NOT_FOUND
    assert contact.contact.message == "Contact not found"
    assert confirmation.contact.message == "Confirmation not found"
    assert contact.activity_message == "No activity yet."


def test_contact_detail_timeline():
    async def scenario():
        backend = FakeBackend(
            {
                **_contacts_table(),
                "calls": [
                    {"id": 1, "caller_member_id": 1, "callee_contact_id": 11, "call_timestamp": "2026-10-01T09:00:00"},
                    {"id": 2, "caller_member_id": 1, "callee_contact_id": 12, "call_timestamp": "2026-10-02T09:00:00"},
                ],
                "visits": [{"id": 5, "visit_timestamp": "2026-10-03T17:00:00", "visitors": [], "visitees": []}],
                "visit_visitees": [{"id": 1, "visit_id": 5, "contact_id": 11}],
            }
        )
        page = ContactDetailPage(make_ctx(backend), 11)
        await page.load()
        return page

    page = asyncio.run(scenario())
    assert page.contact.data.first_name == "Ama"
    assert [e.key for e in page.timeline] == ["visit-5", "call-1"]
    assert page.activity_message is None

    form = page.edit_visit(5)
    assert form.is_open
    assert page.edit_visit(6) is None


def test_edit_param_opens_the_edit_form():
    async def scenario():
        page = ContactsPage(make_ctx(FakeBackend(_contacts_table())), "edit=12")
        await page.load()
        return page

    page = asyncio.run(scenario())
    assert page.edit_form.is_open
    assert page.edit_form.values["last_name"] == "Darko"


def test_live_page_polls_while_open():
    async def scenario():
        page = LivePage(make_ctx(FakeBackend()))
        page.open()
        observed = [s.query.state.observers for s in page.sections()]
        pollers = [s.query._poller is not None for s in page.sections()]
        page.close()
        return observed, pollers, page

    observed, pollers, page = asyncio.run(scenario())
    assert observed == [1, 1, 1, 1]
    assert all(pollers)
    assert all(s.query.state.observers == 0 for s in page.sections())


def test_telepastoring_summary_needs_loaded_data():
    page = TelepastoringPage(make_ctx(FakeBackend()), "outcome=none")
    assert page.query.not_called
    assert page.summary_text() == ""
    assert not page.copy_summary(lambda _text: None)


# -----------------------------
# Routes
# -----------------------------

def test_match_route():
    route, params, query = match_route("/contacts/12?edit=1")
    assert route.pattern == "/contacts/:id"
    assert params == {"id": "12"}
    assert query == "edit=1"

    assert match_route("/contacts")[0].pattern == "/contacts"
    assert match_route("/data/")[0].pattern == "/data"
    assert match_route("")[0].pattern == "/"


def test_open_page():
    ctx = make_ctx(FakeBackend())
    page = open_page(ctx, "/confirmations/5")
    assert isinstance(page, ConfirmationDetailPage)
    assert page.contact_id == 5

    telepastoring = open_page(ctx, "/telepastoring?outcome=none&members=1")
    assert telepastoring.query.members == [1]

    with pytest.raises(RouteNotFound):
        open_page(ctx, "/contacts/abc")
    with pytest.raises(RouteNotFound):
        open_page(ctx, "/nowhere")


def test_error_page():
    assert error_page(RouteNotFound("/x")) == ("404", "The requested page could not be found.")
    assert error_page(RouteError(404)) == ("404", "The requested page could not be found.")
    assert error_page(RouteError(403, "Not yours")) == ("Error", "Not yours")
    assert error_page(RouteError(500)) == ("Error", "Internal Server Error")
    assert error_page(BackendError(503, "Network error")) == ("Error", "Service Unavailable")
    assert error_page(KeyError("boom")) == ("Oops!", "An unexpected error occurred.")


# -----------------------------
# Forms
# -----------------------------

def test_blank_name_aborts_silently():
    async def scenario():
        backend = FakeBackend()
        form = AddConfirmationForm(make_ctx(backend))
        form.open()
        form.set(first_name="   ", last_name="Mensah")
        return await form.submit(), form, backend

    result, form, backend = asyncio.run(scenario())
    assert result is None
    assert form.error is None
    assert form.is_open
    assert backend.writes() == []


def test_failed_submit_keeps_form_open():
    async def scenario():
        backend = FakeBackend()
        backend.failures["insert:confirmations"] = BackendError(409, "Integrity error")
        form = AddConfirmationForm(make_ctx(backend))
        form.open()
        form.set(first_name=" Nana ")
        return await form.submit(), form

    result, form = asyncio.run(scenario())
    assert result is None
    assert form.is_open
    assert form.error == "Integrity error"
    assert form.values["first_name"] == " Nana "
    assert not form.is_submitting


def test_successful_submit_trims_and_closes():
    async def scenario():
        backend = FakeBackend()
        form = AddConfirmationForm(make_ctx(backend))
        form.open()
        form.set(first_name=" Nana ", last_name="  ", contact_number=" 024 ")
        return await form.submit(), form, backend

    row, form, backend = asyncio.run(scenario())
    sent = backend.writes()[0][2]
    assert sent["first_name"] == "Nana"
    assert sent["last_name"] is None
    assert sent["contact_number"] == "024"
    assert sent["event_id"] == EVENT.id
    assert sent["confirmed_by_member_id"] == MEMBER.id
    assert row["id"] == 1001
    assert not form.is_open
    assert form.values["first_name"] == ""


def test_submit_without_identity_explains():
    async def scenario():
        form = AddConfirmationForm(make_ctx(FakeBackend(), member=None, event=None))
        form.set(first_name="Nana")
        return await form.submit(), form

    result, form = asyncio.run(scenario())
    assert result is None
    assert form.error == "Choose who you are and which event first."


def test_edit_contact_checkboxes_map_to_timestamps():
    confirmed_at = datetime(2026, 10, 1, 10, 0)
    contact = ContactDTO(
        id=11,
        event_id=7,
        contacted_by_member_id=1,
        first_name="Ama",
        confirmed_at=confirmed_at,
        transport_arranged_at=datetime(2026, 10, 2, 10, 0),
    )

    async def scenario():
        backend = FakeBackend({"contacts": [contact.model_dump(mode="json")]})
        form = EditContactForm(make_ctx(backend), contact)
        assert form.values["confirmed"] and form.values["transport_arranged"]
        form.open()
        form.set(transport_arranged=False, attended=True)
        await form.submit()
        return backend

    changes = asyncio.run(scenario()).writes()[0][3]
    assert changes["confirmed_at"] == "2026-10-01T10:00:00"
    assert changes["transport_arranged_at"] is None
    assert changes["attended"] is True


# -----------------------------
# Identity
# -----------------------------

def _identity_tables():
    return {
        "events": [
            {"id": 7, "name": "Sunday Service", "event_timestamp": "2026-10-25T09:00:00"},
            {"id": 8, "name": "Youth Night", "event_timestamp": "2026-11-01T18:00:00"},
        ],
        "event_member_targets": [
            {"id": 1, "event_id": 7, "member_id": 1},
            {"id": 2, "event_id": 7, "member_id": 2},
        ],
        "members": [
            {"id": 1, "first_name": "Kwame", "last_name": "Mensah"},
            {"id": 2, "first_name": "Efua", "last_name": "Owusu"},
            {"id": 3, "first_name": "Yaw", "last_name": "Boateng"},
        ],
    }


def test_identity_flow_picks_event_then_member():
    async def scenario():
        ctx = make_ctx(FakeBackend(_identity_tables()), member=None, event=None)
        flow = IdentityFlow(ctx)
        await flow.load_events()
        members = await flow.select_event(7)
        found = flow.search("  EFU ")
        with pytest.raises(IdentityError):
            flow.select_member(3)
        assert not flow.can_confirm
        flow.select_member(2)
        flow.confirm()
        return members, found, ctx

    members, found, ctx = asyncio.run(scenario())
    assert [m.id for m in members] == [1, 2]
    assert [m.id for m in found] == [2]
    assert ctx.session.current_member.id == 2
    assert ctx.session.current_event.id == 7


def test_identity_flow_event_without_targets():
    async def scenario():
        backend = FakeBackend(_identity_tables())
        flow = IdentityFlow(make_ctx(backend))
        assert flow.member == MEMBER
        await flow.load_events()
        members = await flow.select_event(8)
        with pytest.raises(IdentityError):
            await flow.select_event(999)
        return members, flow, backend

    members, flow, backend = asyncio.run(scenario())
    assert members == []
    # switching event forgets the chosen member
    assert flow.member is None
    assert backend.selects["members"] == 0
    with pytest.raises(IdentityError):
        flow.confirm()
