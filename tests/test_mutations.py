from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from conftest import EVENT, MEMBER, FakeBackend, asgi_backend, make_ctx
from outreach.api.schemas import CallCreate, ConfirmationCreate
from outreach.client.backend import BackendError
from outreach.client.dto import ContactDTO, EventDTO, MemberDTO, parse_rows
from outreach.client.mutations import (
    ERROR,
    SUCCESS,
    RowUpdate,
    VisitInput,
    use_create_call,
    use_create_confirmation,
    use_create_visit,
    use_delete_call,
    use_delete_confirmation,
    use_delete_contact,
    use_delete_visit,
    use_update_call,
    use_update_confirmation,
    use_update_contact,
    use_update_visit,
)
from outreach.client.reads import (
    use_calls_by_contact,
    use_confirmations,
    use_contacts,
    use_event_members,
    use_events,
    use_visits_by_contact,
)


def _counter_tables():
    return {
        "event_member_targets": [
            {"id": 1, "event_id": 7, "member_id": 1, "confirmations_target": 10, "total_confirmations": 2},
            {"id": 2, "event_id": 7, "member_id": 2, "confirmations_target": 8, "total_confirmations": 4},
        ],
        "events": [
            {"id": 7, "name": "Sunday Service", "event_timestamp": "2026-10-25T09:00:00", "total_confirmations": 6},
        ],
    }


class GatedInsert(FakeBackend):
    def __init__(self, tables=None):
        super().__init__(tables)
        self.release = asyncio.Event()

    async def insert(self, resource, rows):
        await self.release.wait()
        return await super().insert(resource, rows)


# -----------------------------
# Confirmation counters
# -----------------------------

def test_create_confirmation_bumps_counters_before_the_write_lands():
    async def scenario():
        backend = GatedInsert(_counter_tables())
        ctx = make_ctx(backend)
        targets = use_event_members(ctx, {"equals": {"event_id": 7}})
        events = use_events(ctx)
        await targets.load()
        await events.load()

        mutation = use_create_confirmation(ctx)
        task = asyncio.ensure_future(
            mutation.run(ConfirmationCreate(event_id=7, confirmed_by_member_id=1, first_name="Nana"))
        )
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        mid = (
            [t.total_confirmations for t in targets.data],
            events.data[0].total_confirmations,
            mutation.is_pending,
        )
        backend.release.set()
        await task
        return mid, mutation.status

    (member_totals, event_total, pending), status = asyncio.run(scenario())
    # only the (event, member) row for the confirming member moves
    assert member_totals == [3, 4]
    assert event_total == 7
    assert pending
    assert status == SUCCESS


def test_failed_confirmation_rolls_counters_back():
    async def scenario():
        backend = FakeBackend(_counter_tables())
        backend.failures["insert:confirmations"] = BackendError(500, "boom")
        ctx = make_ctx(backend)
        targets = use_event_members(ctx, {"equals": {"event_id": 7}})
        await targets.load()

        mutation = use_create_confirmation(ctx)
        with pytest.raises(BackendError):
            await mutation.run(ConfirmationCreate(event_id=7, confirmed_by_member_id=1, first_name="Nana"))
        return targets, mutation

    targets, mutation = asyncio.run(scenario())
    assert [t.total_confirmations for t in targets.data] == [2, 4]
    assert targets.state.is_invalidated
    assert mutation.status == ERROR
    assert mutation.error.status_code == 500


def test_confirmation_counts_converge_with_the_server(seeded):
    event_id = seeded["event_id"]

    async def scenario():
        backend = asgi_backend()
        async with backend.api:
            member = parse_rows(MemberDTO, await backend.select("members", {"equals": {"full_name": "Kwame Mensah"}}))[0]
            event = parse_rows(EventDTO, await backend.select("events", {"equals": {"id": event_id}}))[0]
            ctx = make_ctx(backend, member, event)

            targets = use_event_members(ctx, {"equals": {"event_id": event_id, "member_id": member.id}})
            events = use_events(ctx, {"equals": {"id": event_id}})
            targets.subscribe()
            events.subscribe()
            await targets.load()
            await events.load()
            before = (targets.data[0].total_confirmations, events.data[0].total_confirmations)

            row = await use_create_confirmation(ctx).run(
                ConfirmationCreate(event_id=event_id, confirmed_by_member_id=member.id, first_name=" Nana ")
            )
            after = (targets.data[0].total_confirmations, events.data[0].total_confirmations)

            contacts = use_contacts(ctx, {"equals": {"first_name": "Nana"}})
            await contacts.load()
            return before, after, row, contacts.data

    before, after, row, contacts = asyncio.run(scenario())
    assert before == (2, 5)
    assert after == (3, 6)
    assert row["first_name"] == "Nana"
    assert [c.id for c in contacts] == [row["id"]]
    assert contacts[0].status.value == "confirmed"


# -----------------------------
# Invalidation after update / delete
# -----------------------------

def test_update_and_delete_refresh_observed_reads():
    async def scenario():
        backend = FakeBackend(
            {
                "contacts": [
                    {"id": 11, "event_id": 7, "contacted_by_member_id": 1, "first_name": "Ama"},
                    {"id": 12, "event_id": 7, "contacted_by_member_id": 1, "first_name": "Kofi"},
                ]
            }
        )
        ctx = make_ctx(backend)
        contacts = use_contacts(ctx)
        contacts.subscribe()
        await contacts.load()

        await use_update_contact(ctx).run(RowUpdate(id=11, changes={"first_name": "Ama B"}))
        renamed = [c.first_name for c in contacts.data]
        await use_delete_contact(ctx).run(12)
        remaining = [c.id for c in contacts.data]
        return renamed, remaining, backend

    renamed, remaining, backend = asyncio.run(scenario())
    assert renamed == ["Ama B", "Kofi"]
    assert remaining == [11]
    # only the changed field is sent
    assert backend.writes()[0] == ("update", "contacts", 11, {"first_name": "Ama B"})
    assert backend.selects["contacts"] == 3


# -----------------------------
# Visits
# -----------------------------

def test_visit_create_writes_links_primary_first():
    async def scenario():
        backend = FakeBackend()
        ctx = make_ctx(backend)
        await use_create_visit(ctx).run(
            VisitInput(contact_id=11, location="Home", visitor_ids=[1, 2], extra_contact_ids=[12, 11, 12])
        )
        return backend.writes()

    writes = asyncio.run(scenario())
    assert [w[:2] for w in writes] == [
        ("insert", "visits"),
        ("insert", "visit_visitors"),
        ("insert", "visit_visitees"),
    ]
    visit_id = 1001
    assert writes[1][2] == [{"visit_id": visit_id, "member_id": 1}, {"visit_id": visit_id, "member_id": 2}]
    assert [row["contact_id"] for row in writes[2][2]] == [11, 12]


def test_visit_delete_removes_links_first():
    async def scenario():
        backend = FakeBackend({"visits": [{"id": 5, "visit_timestamp": "2026-10-10T10:00:00"}]})
        ctx = make_ctx(backend)
        await use_delete_visit(ctx).run(5)
        return backend.writes()

    assert asyncio.run(scenario()) == [
        ("delete_where", "visit_visitors", {"visit_id": 5}),
        ("delete_where", "visit_visitees", {"visit_id": 5}),
        ("delete", "visits", 5),
    ]


def test_edits_to_one_visit_run_in_submission_order():
    async def scenario():
        backend = FakeBackend({"visits": [{"id": 5, "visit_timestamp": "2026-10-10T10:00:00"}]})
        ctx = make_ctx(backend)
        editor = use_update_visit(ctx)
        await asyncio.gather(
            editor.submit(5, VisitInput(contact_id=11, location="first", visitor_ids=[1])),
            editor.submit(5, VisitInput(contact_id=11, location="second", visitor_ids=[2, 3])),
        )
        return backend, ctx

    backend, ctx = asyncio.run(scenario())
    ops = [w[:2] for w in backend.writes()]
    one_edit = [
        ("update", "visits"),
        ("delete_where", "visit_visitors"),
        ("insert", "visit_visitors"),
        ("delete_where", "visit_visitees"),
        ("insert", "visit_visitees"),
    ]
    assert ops == one_edit + one_edit
    assert backend.writes()[0][3]["location"] == "first"
    assert backend.writes()[5][3]["location"] == "second"
    assert sorted(r["member_id"] for r in backend.tables["visit_visitors"]) == [2, 3]
    assert ctx.visit_chains == {}


def test_failed_visit_edit_restores_cached_visit():
    async def scenario():
        backend = FakeBackend(
            {
                "visits": [
                    {
                        "id": 5,
                        "visit_timestamp": "2026-10-10T10:00:00",
                        "location": "Home",
                        "visitors": [{"id": 1, "first_name": "Kwame"}, {"id": 2, "first_name": "Efua"}],
                        "visitees": [{"id": 11, "first_name": "Ama"}],
                    }
                ],
                "visit_visitees": [{"id": 1, "visit_id": 5, "contact_id": 11}],
            }
        )
        backend.failures["insert:visit_visitees"] = BackendError(503, "Network error")
        ctx = make_ctx(backend)
        visits = use_visits_by_contact(ctx, 11)
        await visits.load()

        with pytest.raises(BackendError):
            await use_update_visit(ctx).submit(5, VisitInput(contact_id=11, location="Church", visitor_ids=[2, 3]))
        return visits

    visits = asyncio.run(scenario())
    visit = visits.data[0]
    assert [m.id for m in visit.visitors] == [1, 2]
    assert visit.location == "Home"


def test_visit_edit_replaces_visitors(seeded):
    async def scenario():
        backend = asgi_backend()
        async with backend.api:
            members = parse_rows(MemberDTO, await backend.select("members", {"orderBy": {"column": "id"}}))
            ids = {m.full_name: m.id for m in members}
            a, b, c = ids["Kwame Mensah"], ids["Efua Owusu"], ids["Yaw Boateng"]
            ama = parse_rows(ContactDTO, await backend.select("contacts", {"equals": {"first_name": "Ama"}}))[0]
            ctx = make_ctx(backend, MEMBER, EVENT)

            visit = await use_create_visit(ctx).run(VisitInput(contact_id=ama.id, location="Home", visitor_ids=[a, b]))
            await use_update_visit(ctx).submit(
                visit["id"], VisitInput(contact_id=ama.id, location="Home", visitor_ids=[b, c])
            )

            visits = use_visits_by_contact(ctx, ama.id)
            await visits.load()
            links = await backend.select("visit_visitors", {"equals": {"visit_id": visit["id"]}})
            return visits.data, links, (b, c), ama.id

    visits, links, expected, ama_id = asyncio.run(scenario())
    assert len(visits) == 1
    assert [m.id for m in visits[0].visitors] == list(expected)
    assert [v.id for v in visits[0].visitees] == [ama_id]
    assert sorted(link["member_id"] for link in links) == sorted(expected)


def test_call_mutations_refresh_calls_for_the_contact(seeded):
    async def scenario():
        backend = asgi_backend()
        async with backend.api:
            member = parse_rows(MemberDTO, await backend.select("members", {"equals": {"full_name": "Efua Owusu"}}))[0]
            abena = parse_rows(ContactDTO, await backend.select("contacts", {"equals": {"first_name": "Abena"}}))[0]
            outcome = (await backend.select("call_outcomes", {"equals": {"description": "No answer"}}))[0]
            ctx = make_ctx(backend, member, EVENT)

            calls = use_calls_by_contact(ctx, abena.id)
            calls.subscribe()
            await calls.load()
            empty = list(calls.data)

            row = await use_create_call(ctx).run(
                CallCreate(caller_member_id=member.id, callee_contact_id=abena.id, outcome_id=outcome["id"])
            )
            created = [(c.id, c.caller.display_name, c.outcome.description) for c in calls.data]

            await use_update_call(ctx).run(RowUpdate(id=row["id"], changes={"notes": "Try Sunday"}))
            notes = calls.data[0].notes

            await use_delete_call(ctx).run(row["id"])
            return empty, created, notes, calls.data, row

    empty, created, notes, after, row = asyncio.run(scenario())
    assert empty == []
    assert created == [(row["id"], "Efua Owusu", "No answer")]
    assert notes == "Try Sunday"
    assert after == []


def test_confirmation_update_and_delete_use_the_legacy_shape():
    async def scenario():
        backend = FakeBackend(
            {"confirmations": [{"id": 11, "event_id": 7, "confirmed_by_member_id": 1, "first_name": "Ama"}]}
        )
        ctx = make_ctx(backend)
        confirmations = use_confirmations(ctx)
        confirmations.subscribe()
        await confirmations.load()

        await use_update_confirmation(ctx).run(RowUpdate(id=11, changes={"confirmed_by_member_id": 2}))
        moved = confirmations.data[0].confirmed_by_member_id
        await use_delete_confirmation(ctx).run(11)
        return moved, confirmations.data, backend.writes()

    moved, remaining, writes = asyncio.run(scenario())
    assert moved == 2
    assert remaining == []
    assert writes == [
        ("update", "confirmations", 11, {"confirmed_by_member_id": 2}),
        ("delete", "confirmations", 11),
    ]


class SlowFirstSelect(FakeBackend):
    """The first select per resource reads its rows, then waits for `release`."""

    def __init__(self, tables=None):
        super().__init__(tables)
        self.release = asyncio.Event()

    async def select(self, resource, flt=None, expand=()):
        rows = await super().select(resource, flt, expand)
        if self.selects[resource] == 1:
            await self.release.wait()
        return rows


def test_call_created_while_a_read_is_in_flight_is_not_lost():
    async def scenario():
        backend = SlowFirstSelect({"calls": []})
        ctx = make_ctx(backend)
        calls = use_calls_by_contact(ctx, 11)
        calls.subscribe()

        first = asyncio.ensure_future(calls.load())
        for _ in range(3):
            await asyncio.sleep(0)

        await use_create_call(ctx).run(CallCreate(caller_member_id=1, callee_contact_id=11, notes="Prayed together"))
        backend.release.set()
        await first
        later = await calls.load()
        return calls.data, later, calls.state.is_invalidated, backend.selects["calls"]

    data, later, invalidated, selects = asyncio.run(scenario())
    assert [c.notes for c in data] == ["Prayed together"]
    assert [c.notes for c in later] == ["Prayed together"]
    assert not invalidated
    assert selects == 2


def test_visit_edit_without_timestamp_keeps_the_stored_one():
    async def scenario():
        backend = FakeBackend(
            {
                "visits": [{"id": 5, "visit_timestamp": "2026-01-01T10:00:00", "location": "Home", "notes": None}],
                "visit_visitors": [],
                "visit_visitees": [],
            }
        )
        ctx = make_ctx(backend)
        await use_update_visit(ctx).submit(5, VisitInput(contact_id=11, location="Church", visitor_ids=[2]))
        return backend

    backend = asyncio.run(scenario())
    update = next(entry for entry in backend.log if entry[0] == "update")
    assert "visit_timestamp" not in update[3]
    assert backend.tables["visits"][0]["visit_timestamp"] == "2026-01-01T10:00:00"
    assert backend.tables["visits"][0]["location"] == "Church"


def test_visit_edit_with_timestamp_sends_it():
    async def scenario():
        backend = FakeBackend({"visits": [{"id": 5, "visit_timestamp": "2026-01-01T10:00:00"}]})
        ctx = make_ctx(backend)
        await use_update_visit(ctx).submit(
            5, VisitInput(contact_id=11, visit_timestamp=datetime(2026, 2, 3, 18, 30), visitor_ids=[])
        )
        return backend

    backend = asyncio.run(scenario())
    assert backend.tables["visits"][0]["visit_timestamp"] == "2026-02-03T18:30:00"
