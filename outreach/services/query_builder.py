from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.sql import sqltypes
from sqlalchemy.sql.expression import ColumnElement, FromClause, Select

from ..filters import QueryFilter
from ..models.common import to_naive_utc


class FilterError(ValueError):
    """Raised when a filter names a column the resource does not have, or carries a bad value."""


def resolve_column(source: FromClause, name: str) -> ColumnElement:
    try:
        return source.c[name]
    except KeyError:
        raise FilterError(f"Unknown column '{name}'") from None


def _parse_datetime(raw: str) -> datetime:
    s = raw.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    if len(s) == 10:  # YYYY-MM-DD
        s = s + "T00:00:00"
    return datetime.fromisoformat(s)


def coerce_value(column: ColumnElement, value: Any) -> Any:
    """
    Bring JSON values to the column's Python type where it matters for comparison.
    Timestamps are stored naive UTC, so aware inputs are converted first.
    """
    if value is None:
        return None
    col_type = column.type
    try:
        if isinstance(col_type, sqltypes.DateTime):
            if isinstance(value, str):
                value = _parse_datetime(value)
            if isinstance(value, datetime):
                return to_naive_utc(value)
            if isinstance(value, date):
                return datetime(value.year, value.month, value.day)
        elif isinstance(col_type, sqltypes.Date) and isinstance(value, str):
            return date.fromisoformat(value.strip()[:10])
    except ValueError as exc:
        raise FilterError(f"Bad value for '{column.key}': {value!r}") from exc
    return value


def build_select(source: FromClause, flt: Optional[QueryFilter], max_limit: Optional[int] = None) -> Select:
    """
    Translate a QueryFilter into a SELECT over `source` (a table or a view subquery).

    Pure: no session, no side effects. Missing filter parts impose no constraint.
    """
    stmt = select(*source.c).select_from(source)
    flt = flt or QueryFilter()

    for name, value in flt.equals.items():
        column = resolve_column(source, name)
        if value is None:
            stmt = stmt.where(column.is_(None))
        else:
            stmt = stmt.where(column == coerce_value(column, value))

    for name, values in flt.in_.items():
        column = resolve_column(source, name)
        # Empty list means "no constraint", not "match nothing"
        if not values:
            continue
        stmt = stmt.where(column.in_([coerce_value(column, v) for v in values]))

    for name, pattern in flt.ilike.items():
        column = resolve_column(source, name)
        if not pattern:
            continue
        stmt = stmt.where(column.ilike(pattern))

    for name, bound in flt.range.items():
        column = resolve_column(source, name)
        if bound.gte is not None:
            stmt = stmt.where(column >= coerce_value(column, bound.gte))
        if bound.lte is not None:
            stmt = stmt.where(column <= coerce_value(column, bound.lte))

    for name in flt.not_null:
        stmt = stmt.where(resolve_column(source, name).is_not(None))

    for order in flt.order_by:
        column = resolve_column(source, order.column)
        stmt = stmt.order_by(column.asc() if order.ascending else column.desc())

    limit = flt.limit
    if max_limit is not None:
        limit = max_limit if limit is None else min(limit, max_limit)
    if limit is not None:
        stmt = stmt.limit(limit)

    return stmt
