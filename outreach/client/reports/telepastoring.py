"""
Telepastoring (call follow-up) views over one event's contacts and a set of calls.

results():        which contacts to show for the current filter
search():         local text search over those contacts
describe_selection() / summary_text(): the WhatsApp-style progress report
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from ..dto import BacentaDTO, CallDTO, ContactDTO, MemberDTO

NO_BACENTA = "No bacenta"


def results(
    contacts: Optional[Sequence[ContactDTO]],
    calls: Optional[Sequence[CallDTO]],
    *,
    not_called: bool,
    member_ids: Sequence[int] = (),
) -> List[ContactDTO]:
    """
    not_called: contacts assigned to the selected members (all, when none are
    selected) that no call in `calls` reached.
    Otherwise: each contact reached by at least one call, in call order.
    """
    if not contacts or calls is None:
        return []

    called_ids = [c.callee_contact_id for c in calls]
    if not_called:
        called = set(called_ids)
        selected = set(member_ids)
        pool = [c for c in contacts if c.contacted_by_member_id in selected] if selected else list(contacts)
        return [c for c in pool if c.id not in called]

    by_id = {c.id: c for c in contacts}
    seen: Set[int] = set()
    out: List[ContactDTO] = []
    for cid in called_ids:
        if cid in seen:
            continue
        seen.add(cid)
        contact = by_id.get(cid)
        if contact is not None:
            out.append(contact)
    return out


def search(contacts: Iterable[ContactDTO], query: str) -> List[ContactDTO]:
    q = (query or "").strip().lower()
    if not q:
        return list(contacts)

    def hit(c: ContactDTO) -> bool:
        first = (c.first_name or "").lower()
        last = (c.last_name or "").lower()
        full = f"{c.first_name} {c.last_name or ''}".lower()
        number = (c.contact_number or "").lower()
        return q in first or q in last or q in full or q in number

    return [c for c in contacts if hit(c)]


# -----------------------------
# Copyable report
# -----------------------------

def _bacenta_names(bacentas: Iterable[BacentaDTO]) -> Dict[int, str]:
    return {b.id: b.name for b in bacentas}


def _group_by_bacenta(members: Iterable[MemberDTO]) -> Dict[Optional[int], List[MemberDTO]]:
    groups: Dict[Optional[int], List[MemberDTO]] = {}
    for m in members:
        groups.setdefault(m.bacenta_id, []).append(m)
    return groups


def describe_selection(
    members: Sequence[MemberDTO],
    bacentas: Iterable[BacentaDTO],
    member_ids: Sequence[int],
) -> str:
    if not members:
        return "No selection"
    if not member_ids:
        return "All bacentas"
    selected = list(dict.fromkeys(member_ids))
    if len(selected) == len(members):
        return "All bacentas"

    names = _bacenta_names(bacentas)
    chosen = set(selected)
    parts: List[str] = []
    covered: Set[int] = set()
    for bid, group in _group_by_bacenta(members).items():
        if all(m.id in chosen for m in group):
            parts.append(names.get(bid, NO_BACENTA) if bid is not None else NO_BACENTA)
            covered.update(m.id for m in group)

    member_names = {m.id: m.display_name for m in members}
    parts.extend(member_names.get(mid, "Unknown") for mid in selected if mid not in covered)
    return ", ".join(parts) if parts else "Custom selection"


def _label(bid: Optional[int], names: Mapping[int, str]) -> str:
    if bid is None:
        return NO_BACENTA
    return names.get(bid, "Unknown Bacenta")


def summary_text(
    members: Sequence[MemberDTO],
    bacentas: Iterable[BacentaDTO],
    contacts: Sequence[ContactDTO],
    calls: Sequence[CallDTO],
    member_ids: Sequence[int] = (),
    now: Optional[datetime] = None,
) -> str:
    """
    Per bacenta, per member: calls made to their own contacts / contacts
    assigned to them, with bacenta and overall totals.
    """
    now = now or datetime.now()
    bacentas = list(bacentas)
    names = _bacenta_names(bacentas)

    event_contact_ids = {c.id for c in contacts}
    calls_in_scope = [c for c in calls if c.callee_contact_id in event_contact_ids]

    chosen = set(member_ids)
    in_scope = [m for m in members if not chosen or m.id in chosen]
    groups = sorted(_group_by_bacenta(in_scope).items(), key=lambda kv: _label(kv[0], names))

    text = f"*Telepastoring Calls*\n_As of {now.strftime('%d/%m/%Y')} at {now.strftime('%H:%M')}_\n\n"
    text += f"Selection: {describe_selection(members, bacentas, member_ids)}\n\n"

    overall: Tuple[int, int] = (0, 0)
    for bid, group in groups:
        text += f"*{_label(bid, names)}*\n"
        made_total = pool_total = 0
        for idx, m in enumerate(sorted(group, key=lambda x: x.display_name), start=1):
            pool_ids = {c.id for c in contacts if c.contacted_by_member_id == m.id}
            made = sum(1 for c in calls_in_scope if c.caller_member_id == m.id and c.callee_contact_id in pool_ids)
            text += f"{idx}. {m.display_name} - {made}/{len(pool_ids)}\n"
            made_total += made
            pool_total += len(pool_ids)
        text += f"Total - {made_total}/{pool_total}\n\n"
        overall = (overall[0] + made_total, overall[1] + pool_total)

    text += f"*Overall Total - {overall[0]}/{overall[1]}*"
    return text
