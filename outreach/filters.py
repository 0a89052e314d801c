"""
Declarative row filter shared by the backend translator and the client cache.

Shape (every field optional):
    equals    column -> value   (None means "column IS NULL")
    in        column -> values  (an empty list imposes no constraint)
    ilike     column -> pattern (case-insensitive, % wildcards)
    range     column -> {gte, lte}
    not_null  columns that must be set
    orderBy   one {column, ascending} or a list, applied left to right
    limit     maximum row count
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field as PydField, field_validator


class OrderBy(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str = PydField(..., min_length=1)
    ascending: bool = True


class RangeBound(BaseModel):
    gte: Optional[Any] = None
    lte: Optional[Any] = None


class QueryFilter(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    equals: Dict[str, Any] = PydField(default_factory=dict)
    in_: Dict[str, List[Any]] = PydField(default_factory=dict, alias="in")
    ilike: Dict[str, str] = PydField(default_factory=dict)
    range: Dict[str, RangeBound] = PydField(default_factory=dict)
    not_null: List[str] = PydField(default_factory=list)
    order_by: List[OrderBy] = PydField(default_factory=list, alias="orderBy")
    limit: Optional[int] = PydField(default=None, ge=0)

    @field_validator("order_by", mode="before")
    @classmethod
    def _single_order_to_list(cls, v: Any) -> Any:
        # Accept a single {column, ascending} as well as a list of them
        if v is None:
            return []
        if isinstance(v, (dict, OrderBy)):
            return [v]
        return v

    # -------------------------
    # Helpers
    # -------------------------

    def columns(self) -> List[str]:
        """Every column the filter mentions (for validation against a resource)."""
        cols: List[str] = []
        cols.extend(self.equals.keys())
        cols.extend(self.in_.keys())
        cols.extend(self.ilike.keys())
        cols.extend(self.range.keys())
        cols.extend(self.not_null)
        cols.extend(o.column for o in self.order_by)
        return cols

    def pins(self, column: str) -> bool:
        return column in self.equals

    def with_equals(self, **values: Any) -> "QueryFilter":
        merged = dict(self.equals)
        merged.update(values)
        return self.model_copy(update={"equals": merged})

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict using the wire aliases (`in`, `orderBy`), unset parts dropped."""
        dumped = self.model_dump(mode="json", by_alias=True)
        payload: Dict[str, Any] = {}
        for key in ("equals", "in", "ilike", "not_null", "orderBy"):
            if dumped[key]:
                payload[key] = dumped[key]
        ranges = {
            col: {k: v for k, v in bound.items() if v is not None}
            for col, bound in dumped["range"].items()
        }
        ranges = {col: bound for col, bound in ranges.items() if bound}
        if ranges:
            payload["range"] = ranges
        if dumped["limit"] is not None:
            payload["limit"] = dumped["limit"]
        return payload

    def cache_key(self) -> str:
        """Canonical string form: structurally equal filters produce equal keys."""
        return json.dumps(self.to_wire(), sort_keys=True, separators=(",", ":"), default=str)


FilterLike = Union[QueryFilter, Dict[str, Any], None]


def as_filter(value: FilterLike) -> QueryFilter:
    if value is None:
        return QueryFilter()
    if isinstance(value, QueryFilter):
        return value
    return QueryFilter.model_validate(value)
