from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Sequence, Tuple

from .cache import QueryCache, QueryKey

logger = logging.getLogger(__name__)

# patch(resource, cached_data) -> new data (never mutate the old value)
Patch = Callable[[str, Any], Any]


@dataclass
class Snapshot:
    entries: List[Tuple[QueryKey, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class OptimisticUpdate:
    """
    Patch cached reads ahead of a write, and undo the patch if the write fails.

        update = OptimisticUpdate(cache, ("events",), patch)
        snapshot = await update.apply()
        try:
            await write()
        except Exception:
            update.rollback(snapshot)
            raise
        finally:
            await update.settle()
    """

    cache: QueryCache
    resources: Sequence[str]
    patch: Patch

    async def apply(self) -> Snapshot:
        # In-flight reads would land on top of the patch
        for resource in self.resources:
            await self.cache.cancel_queries(resource)

        snapshot = Snapshot()
        for resource in self.resources:
            for key, data in self.cache.get_queries_data(resource):
                snapshot.entries.append((key, copy.deepcopy(data)))

        for resource in self.resources:
            self.cache.set_queries_data(resource, lambda old, r=resource: self.patch(r, old))
        return snapshot

    def rollback(self, snapshot: Snapshot) -> None:
        for key, data in snapshot.entries:
            self.cache.set_query_data(key, copy.deepcopy(data))
        logger.info("Rolled back optimistic patch on %s (%d entries)", ", ".join(self.resources), len(snapshot))

    async def settle(self) -> None:
        for resource in self.resources:
            await self.cache.invalidate(resource)


def replace_rows(rows: Any, match: Callable[[Any], bool], update: Callable[[Any], Any]) -> Any:
    """
    Copy-on-write list patch: returns the same list object when nothing matched,
    so untouched cache entries keep their identity.
    """
    if not isinstance(rows, list):
        return rows
    changed = False
    out: List[Any] = []
    for row in rows:
        if match(row):
            out.append(update(row))
            changed = True
        else:
            out.append(row)
    return out if changed else rows


def bump(field_name: str, delta: int = 1) -> Callable[[Any], Any]:
    def _apply(row: Any) -> Any:
        current = getattr(row, field_name, 0) or 0
        return row.model_copy(update={field_name: current + delta})

    return _apply


__all__ = ["OptimisticUpdate", "Patch", "Snapshot", "bump", "replace_rows"]

