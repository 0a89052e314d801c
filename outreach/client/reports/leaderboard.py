from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from ..dto import ConfirmationDTO, EventMemberTargetDTO, MemberDTO
from ..querystring import MemberSort


@dataclass(frozen=True)
class LeaderboardRow:
    member_id: int
    name: str
    bacenta_id: Optional[int]
    bacenta_name: Optional[str]
    total: int
    target: int
    pct: float
    last_confirmation_at: Optional[datetime]


def last_confirmation_by_member(confirmations: Iterable[ConfirmationDTO]) -> Dict[int, datetime]:
    out: Dict[int, datetime] = {}
    for c in confirmations:
        if c.created_at is None:
            continue
        existing = out.get(c.confirmed_by_member_id)
        if existing is None or c.created_at > existing:
            out[c.confirmed_by_member_id] = c.created_at
    return out


_SORTS = {
    MemberSort.PCT_ASC: (lambda r: r.pct, False),
    MemberSort.PCT_DESC: (lambda r: r.pct, True),
    MemberSort.CONF_ASC: (lambda r: r.total, False),
    MemberSort.CONF_DESC: (lambda r: r.total, True),
    MemberSort.NAME_ASC: (lambda r: r.name.lower(), False),
    MemberSort.NAME_DESC: (lambda r: r.name.lower(), True),
}


def leaderboard(
    targets: Iterable[EventMemberTargetDTO],
    members: Iterable[MemberDTO],
    confirmations: Iterable[ConfirmationDTO] = (),
    *,
    member_ids: Sequence[int] = (),
    bacenta_ids: Sequence[int] = (),
    sort: MemberSort = MemberSort.PCT_DESC,
) -> List[LeaderboardRow]:
    """
    One row per member target. pct is total/target (0 when the target is 0).
    Filters apply members first, then bacentas; members without a bacenta
    drop out once a bacenta filter is set.
    """
    by_id = {m.id: m for m in members}
    last = last_confirmation_by_member(confirmations)

    rows: List[LeaderboardRow] = []
    for t in targets:
        member = by_id.get(t.member_id)
        target = t.confirmations_target or 0
        total = t.total_confirmations or 0
        rows.append(
            LeaderboardRow(
                member_id=t.member_id,
                name=t.member_full_name or (member.display_name if member else "Unknown"),
                bacenta_id=member.bacenta_id if member else None,
                bacenta_name=t.bacenta_name,
                total=total,
                target=target,
                pct=total / target if target > 0 else 0.0,
                last_confirmation_at=last.get(t.member_id),
            )
        )

    if member_ids:
        wanted = set(member_ids)
        rows = [r for r in rows if r.member_id in wanted]
    if bacenta_ids:
        wanted_b = set(bacenta_ids)
        rows = [r for r in rows if r.bacenta_id is not None and r.bacenta_id in wanted_b]

    key, reverse = _SORTS[sort]
    return sorted(rows, key=key, reverse=reverse)
