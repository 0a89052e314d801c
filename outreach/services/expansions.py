from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import Table, select
from sqlmodel import Session

from .query_builder import FilterError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Through:
    """Join table linking the base row (base_key) to the target row (target_key)."""

    table: Table
    base_key: str
    target_key: str


@dataclass(frozen=True)
class Expansion:
    """
    Related rows inlined into each result row under the expansion's name.

    - Plain expansion: row[local_key] -> target[remote_key], a single object or None
    - With `through`: row[local_key] -> link rows -> targets, a list in link order
    - `nested` expansions are applied to the fetched target rows first
    """

    target: Table
    fields: Tuple[str, ...]
    local_key: str
    remote_key: str = "id"
    through: Optional[Through] = None
    nested: Tuple[Tuple[str, "Expansion"], ...] = ()


def _fetch_targets(session: Session, exp: Expansion, keys: Sequence[Any]) -> Dict[Any, Dict[str, Any]]:
    keys = [k for k in dict.fromkeys(keys) if k is not None]
    if not keys:
        return {}

    wanted = list(exp.fields)
    for extra in [exp.remote_key] + [sub.local_key for _, sub in exp.nested]:
        if extra not in wanted:
            wanted.append(extra)

    tbl = exp.target
    stmt = select(*[tbl.c[name] for name in wanted]).where(tbl.c[exp.remote_key].in_(keys))
    rows = [dict(r) for r in session.exec(stmt).mappings().all()]

    for name, sub in exp.nested:
        rows = attach(session, rows, name, sub)

    return {r[exp.remote_key]: r for r in rows}


def attach(session: Session, rows: List[Dict[str, Any]], name: str, exp: Expansion) -> List[Dict[str, Any]]:
    if not rows:
        return rows

    base_keys = [r.get(exp.local_key) for r in rows]

    if exp.through is None:
        targets = _fetch_targets(session, exp, base_keys)
        for r in rows:
            r[name] = targets.get(r.get(exp.local_key))
        return rows

    link = exp.through
    link_tbl = link.table
    stmt = (
        select(link_tbl.c[link.base_key], link_tbl.c[link.target_key])
        .where(link_tbl.c[link.base_key].in_([k for k in base_keys if k is not None]))
        .order_by(link_tbl.c.id)
    )
    links = session.exec(stmt).all()

    by_base: Dict[Any, List[Any]] = {}
    for base_key, target_key in links:
        by_base.setdefault(base_key, []).append(target_key)

    targets = _fetch_targets(session, exp, [t for ids in by_base.values() for t in ids])
    for r in rows:
        ids = by_base.get(r.get(exp.local_key), [])
        r[name] = [targets[t] for t in ids if t in targets]
    return rows


def expand_rows(
    session: Session,
    rows: List[Dict[str, Any]],
    available: Mapping[str, Expansion],
    requested: Sequence[str],
) -> List[Dict[str, Any]]:
    """Apply each requested expansion in order. Unknown names are a filter error."""
    for name in requested:
        exp = available.get(name)
        if exp is None:
            raise FilterError(f"Unknown expansion '{name}'")
        rows = attach(session, rows, name, exp)
    return rows
