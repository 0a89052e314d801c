from __future__ import annotations

from datetime import date, datetime

from outreach.client.dto import (
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
)
from outreach.client.querystring import MemberSort
from outreach.client.reports.clipboard import copy_text
from outreach.client.reports.dashboard import (
    cumulative_series,
    event_summary,
    live_attendance,
    percent,
)
from outreach.client.reports.leaderboard import leaderboard
from outreach.client.reports.telepastoring import describe_selection, results, search, summary_text
from outreach.client.reports.timeline import CALL, VISIT, build_timeline

NOW = datetime(2026, 10, 17, 14, 5)

BACENTAS = [BacentaDTO(id=10, name="Airport"), BacentaDTO(id=20, name="Dansoman")]
MEMBERS = [
    MemberDTO(id=1, first_name="Kwame", last_name="Mensah", bacenta_id=10),
    MemberDTO(id=2, first_name="Efua", last_name="Owusu", bacenta_id=10),
    MemberDTO(id=3, first_name="Yaw", last_name="Boateng", bacenta_id=20),
    MemberDTO(id=4, first_name="Kojo", last_name="Appiah"),
]


def _contact(cid, member_id, first, last=None, number=None, **kw):
    return ContactDTO(
        id=cid,
        event_id=7,
        contacted_by_member_id=member_id,
        first_name=first,
        last_name=last,
        contact_number=number,
        **kw,
    )


def _call(cid, caller, callee, when, outcome=None, notes=None):
    return CallDTO(
        id=cid,
        caller_member_id=caller.id if caller else 99,
        callee_contact_id=callee,
        call_timestamp=when,
        caller=caller,
        outcome=outcome,
        notes=notes,
    )


CONTACTS = [
    _contact(11, 1, "Ama", number="0241112222"),
    _contact(12, 1, "Kofi", "Darko"),
    _contact(13, 2, "Abena", "Ofori"),
    _contact(14, 3, "Yaa", "Sarpong"),
]


# -----------------------------
# Timeline
# -----------------------------

def test_timeline_interleaves_calls_and_visits_newest_first():
    answered = CallOutcomeDTO(id=1, description="Answered", is_successful=True)
    calls = [
        _call(1, MEMBERS[0], 11, datetime(2026, 10, 1, 9), answered, "Will come"),
        _call(2, None, 11, datetime(2026, 10, 3, 9)),
        _call(3, MEMBERS[1], 11, datetime(2026, 10, 5, 9)),
    ]
    visits = [
        VisitDTO(id=1, visit_timestamp=datetime(2026, 10, 2, 17), location="Home", visitors=MEMBERS[:3]),
        VisitDTO(id=2, visit_timestamp=datetime(2026, 10, 4, 17)),
    ]

    entries = build_timeline(calls, visits)

    assert [e.key for e in entries] == ["call-3", "visit-2", "call-2", "visit-1", "call-1"]
    assert [e.kind for e in entries[:2]] == [CALL, VISIT]
    assert entries[2].title == "Called by: Unknown"
    assert entries[2].outcome == "Unknown outcome"
    assert entries[4].outcome == "Answered"
    assert entries[4].body == "Will come"
    assert entries[1].title == "Visited"
    assert entries[3].title == "Visited by: Kwame Mensah and 2 others"
    assert entries[3].location == "Home"


def test_timeline_empty():
    assert build_timeline([], []) == []


# -----------------------------
# Telepastoring
# -----------------------------

def test_not_called_lists_unreached_contacts_of_selected_members():
    calls = [_call(1, MEMBERS[0], 11, NOW)]

    everyone = results(CONTACTS, calls, not_called=True)
    assert [c.id for c in everyone] == [12, 13, 14]

    kwame_only = results(CONTACTS, calls, not_called=True, member_ids=[1])
    assert [c.id for c in kwame_only] == [12]


def test_called_results_follow_call_order_without_repeats():
    calls = [
        _call(1, MEMBERS[1], 13, NOW),
        _call(2, MEMBERS[0], 11, NOW),
        _call(3, MEMBERS[0], 13, NOW),
        _call(4, MEMBERS[0], 999, NOW),
    ]
    assert [c.id for c in results(CONTACTS, calls, not_called=False)] == [13, 11]
    assert results(None, calls, not_called=False) == []
    assert results(CONTACTS, None, not_called=True) == []


def test_search_matches_names_and_number():
    assert [c.id for c in search(CONTACTS, "kofi d")] == [12]
    assert [c.id for c in search(CONTACTS, "OFORI")] == [13]
    assert [c.id for c in search(CONTACTS, "1112")] == [11]
    assert len(search(CONTACTS, "  ")) == len(CONTACTS)


def test_describe_selection():
    assert describe_selection([], BACENTAS, [1]) == "No selection"
    assert describe_selection(MEMBERS, BACENTAS, []) == "All bacentas"
    assert describe_selection(MEMBERS, BACENTAS, [1, 2, 3, 4]) == "All bacentas"
    assert describe_selection(MEMBERS, BACENTAS, [1, 2]) == "Airport"
    assert describe_selection(MEMBERS, BACENTAS, [1, 3]) == "Dansoman, Kwame Mensah"
    assert describe_selection(MEMBERS, BACENTAS, [4]) == "No bacenta"


def test_summary_text_counts_calls_to_own_contacts():
    calls = [
        _call(1, MEMBERS[0], 11, NOW),
        _call(2, MEMBERS[0], 11, NOW),
        # Efua calling Kwame's contact does not count for either of them
        _call(3, MEMBERS[1], 12, NOW),
        _call(4, MEMBERS[2], 14, NOW),
    ]

    text = summary_text(MEMBERS, BACENTAS, CONTACTS, calls, member_ids=[1, 2, 3], now=NOW)

    assert text == (
        "*Telepastoring Calls*\n"
        "_As of 17/10/2026 at 14:05_\n\n"
        "Selection: Airport, Dansoman\n\n"
        "*Airport*\n"
        "1. Efua Owusu - 0/1\n"
        "2. Kwame Mensah - 2/2\n"
        "Total - 2/3\n\n"
        "*Dansoman*\n"
        "1. Yaw Boateng - 1/1\n"
        "Total - 1/1\n\n"
        "*Overall Total - 3/4*"
    )


# -----------------------------
# Leaderboard
# -----------------------------

def _targets():
    return [
        EventMemberTargetDTO(id=1, event_id=7, member_id=1, confirmations_target=10, total_confirmations=5),
        EventMemberTargetDTO(id=2, event_id=7, member_id=2, confirmations_target=4, total_confirmations=3),
        EventMemberTargetDTO(id=3, event_id=7, member_id=3, confirmations_target=0, total_confirmations=2),
        EventMemberTargetDTO(id=4, event_id=7, member_id=4, confirmations_target=6, total_confirmations=1),
    ]


def test_leaderboard_sorts():
    rows = leaderboard(_targets(), MEMBERS)
    assert [r.member_id for r in rows] == [2, 1, 4, 3]
    assert rows[-1].pct == 0.0

    by_count = leaderboard(_targets(), MEMBERS, sort=MemberSort.CONF_DESC)
    assert [r.total for r in by_count] == [5, 3, 2, 1]

    by_name = leaderboard(_targets(), MEMBERS, sort=MemberSort.NAME_ASC)
    assert [r.name for r in by_name] == ["Efua Owusu", "Kojo Appiah", "Kwame Mensah", "Yaw Boateng"]


def test_leaderboard_filters_and_last_confirmation():
    confirmations = [
        ConfirmationDTO(id=1, event_id=7, confirmed_by_member_id=1, first_name="A", created_at=datetime(2026, 10, 1)),
        ConfirmationDTO(id=2, event_id=7, confirmed_by_member_id=1, first_name="B", created_at=datetime(2026, 10, 9)),
    ]
    rows = leaderboard(_targets(), MEMBERS, confirmations, bacenta_ids=[10])
    assert sorted(r.member_id for r in rows) == [1, 2]
    kwame = next(r for r in rows if r.member_id == 1)
    assert kwame.last_confirmation_at == datetime(2026, 10, 9)

    # member filter first, then bacenta; Kojo has no bacenta
    assert leaderboard(_targets(), MEMBERS, member_ids=[3, 4], bacenta_ids=[10]) == []


# -----------------------------
# Dashboard
# -----------------------------

def test_percent_rounds_half_up_and_caps():
    assert percent(1, 8) == 13
    assert percent(1, 3) == 33
    assert percent(5, 4) == 100
    assert percent(3, 0) == 0


def test_cumulative_series_stops_at_today():
    rows = [
        CumulativeDTO(event_id=7, day=date(2026, 10, 18), cumulative_confirmations=9),
        CumulativeDTO(event_id=7, day=date(2026, 10, 15), cumulative_confirmations=3),
        CumulativeDTO(event_id=7, day=date(2026, 10, 17), cumulative_confirmations=6),
    ]
    series = cumulative_series(rows, today=date(2026, 10, 17))
    assert [(p.day.day, p.value) for p in series] == [(15, 3), (17, 6)]


def test_event_summary_text():
    event = EventDTO(
        id=7,
        name="Sunday Service",
        event_timestamp=datetime(2026, 10, 25, 9),
        total_confirmations=9,
        total_confirmations_target=40,
    )
    bacentas = [
        BacentaTargetDTO(event_id=7, bacenta_id=20, confirmations_target=12, total_confirmations=3, bacenta_name="Dansoman"),
        BacentaTargetDTO(event_id=7, bacenta_id=10, confirmations_target=18, total_confirmations=6, bacenta_name="Airport"),
    ]
    summary = event_summary(event, bacenta_targets=bacentas, today=date(2026, 10, 17))

    assert summary.text(NOW) == (
        "*Sunday Service*\n"
        "_As of 17/10/2026 at 14:05_\n\n"
        "Total confirmations - 9/40 (23%)\n\n"
        "*By bacenta*\n"
        "1. Airport - 6/18 (33%)\n"
        "2. Dansoman - 3/12 (25%)"
    )


def test_live_attendance():
    advanced = [
        ConfirmationDTO(id=i, event_id=7, confirmed_by_member_id=1, first_name=f"C{i}") for i in range(1, 9)
    ]
    attended = [
        _contact(100 + i, 1, f"A{i}", attended=True, created_at=datetime(2026, 10, 25, 9, i)) for i in range(7)
    ]
    board = live_attendance(advanced, attended)

    assert (board.total, board.attended, board.percent) == (8, 7, 88)
    assert [c.first_name for c in board.just_arrived] == ["A6", "A5", "A4", "A3", "A2"]


def test_copy_text():
    copied = []
    assert copy_text("hello", copied.append)
    assert copied == ["hello"]
    assert not copy_text("", copied.append)
    assert not copy_text("hello", None)

    def broken(_text):
        raise RuntimeError("no clipboard")

    assert not copy_text("hello", broken)
