from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from ..dto import CallDTO, VisitDTO

CALL = "call"
VISIT = "visit"


@dataclass(frozen=True)
class TimelineEntry:
    key: str
    kind: str
    id: int
    timestamp: datetime
    updated_at: Optional[datetime]
    title: str
    body: str = ""
    outcome: Optional[str] = None
    location: Optional[str] = None
    visitors: List[str] = field(default_factory=list)


def call_entry(call: CallDTO) -> TimelineEntry:
    who = call.caller.display_name if call.caller else ""
    return TimelineEntry(
        key=f"call-{call.id}",
        kind=CALL,
        id=call.id,
        timestamp=call.call_timestamp,
        updated_at=call.updated_at,
        title=f"Called by: {who or 'Unknown'}",
        body=call.notes or "",
        outcome=call.outcome.description if call.outcome else "Unknown outcome",
    )


def visit_entry(visit: VisitDTO) -> TimelineEntry:
    visitors = [m.display_name for m in visit.visitors]
    if visitors:
        title = f"Visited by: {visitors[0]}"
        if len(visitors) > 1:
            title += f" and {len(visitors) - 1} others"
    else:
        title = "Visited"
    return TimelineEntry(
        key=f"visit-{visit.id}",
        kind=VISIT,
        id=visit.id,
        timestamp=visit.visit_timestamp,
        updated_at=visit.updated_at,
        title=title,
        body=visit.notes or "",
        location=visit.location,
        visitors=visitors,
    )


def build_timeline(calls: Iterable[CallDTO], visits: Iterable[VisitDTO]) -> List[TimelineEntry]:
    """Calls and visits for one contact, newest first. Ties keep calls before visits."""
    entries = [call_entry(c) for c in calls or []]
    entries.extend(visit_entry(v) for v in visits or [])
    return sorted(entries, key=lambda e: e.timestamp, reverse=True)
