"""
Event dashboards: the /data summary and the /live attendance board.

Charts are reduced to the series they would plot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence

from ..dto import BacentaTargetDTO, ConfirmationDTO, ContactDTO, CumulativeDTO, EventDTO


def percent(total: int, target: int) -> int:
    """Whole percent of target, capped at 100; 0 when there is no target."""
    if target <= 0:
        return 0
    return min(100, int(total * 100 / target + 0.5))


@dataclass(frozen=True)
class Metric:
    title: str
    total: int
    target: int

    @property
    def percent(self) -> int:
        return percent(self.total, self.target)


@dataclass(frozen=True)
class CumulativePoint:
    day: date
    value: int


@dataclass(frozen=True)
class BacentaBar:
    name: str
    total: int
    target: int
    pct: int
    first_timers: int = 0
    non_first_timers: int = 0
    first_timers_pct: int = 0
    non_first_timers_pct: int = 0


# -----------------------------
# /data
# -----------------------------

def cumulative_series(rows: Iterable[CumulativeDTO], today: Optional[date] = None) -> List[CumulativePoint]:
    """Days up to and including today, in day order."""
    today = today or date.today()
    points = [CumulativePoint(day=r.day, value=r.cumulative_confirmations) for r in rows if r.day <= today]
    return sorted(points, key=lambda p: p.day)


def confirmations_by_bacenta(rows: Iterable[BacentaTargetDTO]) -> List[BacentaBar]:
    bars = []
    for r in rows:
        target = r.confirmations_target or 0
        total = r.total_confirmations or 0
        first = r.total_first_timers or 0
        bars.append(
            BacentaBar(
                name=r.bacenta_name or "Unknown",
                total=total,
                target=target,
                pct=percent(total, target),
                first_timers=first,
                non_first_timers=total - first,
                first_timers_pct=percent(first, target),
                non_first_timers_pct=percent(total - first, target),
            )
        )
    return sorted(bars, key=lambda b: b.pct, reverse=True)


@dataclass
class EventSummary:
    event: EventDTO
    confirmations: Metric
    cumulative: List[CumulativePoint] = field(default_factory=list)
    by_bacenta: List[BacentaBar] = field(default_factory=list)

    def text(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now()
        m = self.confirmations
        out = f"*{self.event.name}*\n_As of {now.strftime('%d/%m/%Y')} at {now.strftime('%H:%M')}_\n\n"
        out += f"Total confirmations - {m.total}/{m.target} ({m.percent}%)\n\n"
        if self.by_bacenta:
            out += "*By bacenta*\n"
            for idx, bar in enumerate(self.by_bacenta, start=1):
                out += f"{idx}. {bar.name} - {bar.total}/{bar.target} ({bar.pct}%)\n"
        return out.rstrip("\n")


def event_summary(
    event: EventDTO,
    cumulative: Iterable[CumulativeDTO] = (),
    bacenta_targets: Iterable[BacentaTargetDTO] = (),
    today: Optional[date] = None,
) -> EventSummary:
    return EventSummary(
        event=event,
        confirmations=Metric("Total confirmations", event.total_confirmations, event.total_confirmations_target),
        cumulative=cumulative_series(cumulative, today),
        by_bacenta=confirmations_by_bacenta(bacenta_targets),
    )


# -----------------------------
# /live
# -----------------------------

JUST_ARRIVED_LIMIT = 5


@dataclass
class LiveAttendance:
    total: int
    attended: int
    just_arrived: List[ContactDTO] = field(default_factory=list)
    by_bacenta: List[BacentaBar] = field(default_factory=list)

    @property
    def percent(self) -> int:
        return percent(self.attended, self.total)


def attendance_by_bacenta(rows: Iterable[BacentaTargetDTO]) -> List[BacentaBar]:
    bars = [
        BacentaBar(
            name=r.bacenta_name or "Unknown",
            total=r.total_attendees or 0,
            target=r.total_confirmations or 0,
            pct=percent(r.total_attendees or 0, r.total_confirmations or 0),
        )
        for r in rows
    ]
    return sorted(bars, key=lambda b: b.pct, reverse=True)


def live_attendance(
    advanced: Sequence[ConfirmationDTO],
    attended: Sequence[ContactDTO],
    bacenta_targets: Iterable[BacentaTargetDTO] = (),
) -> LiveAttendance:
    """
    total: confirmations with transport arranged; attended: contacts marked attended.
    just_arrived: the last few attended contacts by creation time.
    """
    recent = sorted(
        (c for c in attended if c.created_at is not None),
        key=lambda c: c.created_at,
        reverse=True,
    )[:JUST_ARRIVED_LIMIT]
    return LiveAttendance(
        total=len(advanced),
        attended=len(attended),
        just_arrived=recent,
        by_bacenta=attendance_by_bacenta(bacenta_targets),
    )
