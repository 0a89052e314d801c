from __future__ import annotations

from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session, select

from outreach.database import init_db, session_scope
from outreach.models import Bacenta, CallOutcome, Contact, Event, EventMemberTarget, Member
from outreach.models.common import utcnow


# ---------------------------------------------------------------------
# Seed data (small demo organization)
# ---------------------------------------------------------------------

BACENTAS: List[str] = ["Airport", "Dansoman", "Madina"]

# (first, last, bacenta name or None)
MEMBERS: List[Tuple[str, str, Optional[str]]] = [
    ("Kwame", "Mensah", "Airport"),
    ("Efua", "Owusu", "Airport"),
    ("Yaw", "Boateng", "Dansoman"),
    ("Akosua", "Asante", "Madina"),
    ("Kojo", "Appiah", None),
]

CALL_OUTCOMES: List[Tuple[str, bool]] = [
    ("Answered - coming", True),
    ("Answered - not sure", True),
    ("No answer", False),
    ("Wrong number", False),
]

EVENT_NAME = "Sunday Service"

# member index -> (confirmations_target, attendance_target)
TARGETS: Dict[int, Tuple[int, int]] = {0: (10, 6), 1: (8, 5), 2: (12, 8), 3: (6, 4), 4: (4, 2)}

# (first, last, member index, attended, first timer)
CONTACTS: List[Tuple[str, Optional[str], int, bool, bool]] = [
    ("Ama", None, 0, True, True),
    ("Kofi", "Darko", 0, False, False),
    ("Abena", "Ofori", 1, True, False),
    ("Yaa", "Sarpong", 2, False, True),
    ("Esi", "Quaye", 3, False, False),
]


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def upsert_bacenta(session: Session, name: str) -> Bacenta:
    existing = session.exec(select(Bacenta).where(Bacenta.name == name)).first()
    if existing:
        return existing
    row = Bacenta(name=name)
    session.add(row)
    session.flush()
    return row


def upsert_member(session: Session, first: str, last: str, bacenta: Optional[Bacenta]) -> Member:
    full_name = f"{first} {last}".strip()
    existing = session.exec(select(Member).where(Member.full_name == full_name)).first()
    if existing:
        existing.bacenta_id = bacenta.id if bacenta else None
        existing.updated_at = utcnow()
        session.add(existing)
        return existing
    row = Member(
        first_name=first,
        last_name=last,
        full_name=full_name,
        bacenta_id=bacenta.id if bacenta else None,
    )
    session.add(row)
    session.flush()
    return row


def upsert_outcome(session: Session, description: str, is_successful: bool) -> CallOutcome:
    existing = session.exec(select(CallOutcome).where(CallOutcome.description == description)).first()
    if existing:
        existing.is_successful = is_successful
        session.add(existing)
        return existing
    row = CallOutcome(description=description, is_successful=is_successful)
    session.add(row)
    session.flush()
    return row


def upsert_event(session: Session) -> Event:
    existing = session.exec(select(Event).where(Event.name == EVENT_NAME)).first()
    if existing:
        return existing
    row = Event(
        name=EVENT_NAME,
        event_timestamp=utcnow() + timedelta(days=7),
        total_confirmations_target=sum(t[0] for t in TARGETS.values()),
        total_attendance_target=sum(t[1] for t in TARGETS.values()),
    )
    session.add(row)
    session.flush()
    return row


def seed(session: Session) -> Dict[str, int]:
    """
    Idempotent: re-running updates lookups in place and only adds
    targets/contacts that are missing.
    """
    bacentas = {name: upsert_bacenta(session, name) for name in BACENTAS}
    members = [upsert_member(session, f, l, bacentas.get(b) if b else None) for f, l, b in MEMBERS]
    for description, ok in CALL_OUTCOMES:
        upsert_outcome(session, description, ok)
    event = upsert_event(session)

    for idx, (conf_target, att_target) in TARGETS.items():
        member = members[idx]
        existing = session.exec(
            select(EventMemberTarget).where(
                EventMemberTarget.event_id == event.id,
                EventMemberTarget.member_id == member.id,
            )
        ).first()
        if existing:
            existing.confirmations_target = conf_target
            existing.attendance_target = att_target
            session.add(existing)
            continue
        session.add(
            EventMemberTarget(
                event_id=event.id,
                member_id=member.id,
                confirmations_target=conf_target,
                attendance_target=att_target,
            )
        )

    for first, last, idx, attended, first_timer in CONTACTS:
        member = members[idx]
        existing = session.exec(
            select(Contact).where(
                Contact.event_id == event.id,
                Contact.first_name == first,
                Contact.contacted_by_member_id == member.id,
            )
        ).first()
        if existing:
            continue
        session.add(
            Contact(
                event_id=event.id,
                contacted_by_member_id=member.id,
                first_name=first,
                last_name=last,
                attended=attended,
                is_first_time=first_timer,
                confirmed_at=utcnow(),
            )
        )

    session.flush()
    return {
        "bacentas": len(bacentas),
        "members": len(members),
        "contacts": len(session.exec(select(Contact).where(Contact.event_id == event.id)).all()),
        "event_id": int(event.id),
    }


# ---------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------

def main() -> None:
    # Ensure tables exist (local dev)
    init_db()

    with session_scope() as session:
        counts = seed(session)

    print(
        f"Seeded demo data: {counts['bacentas']} bacentas, {counts['members']} members, "
        f"{counts['contacts']} contacts (event id {counts['event_id']})"
    )


if __name__ == "__main__":
    main()
