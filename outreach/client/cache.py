"""
Shared query cache for the client data layer.

One QueryCache per client process. Entries are keyed by (resource, canonical
params) where params always carry the normalized filter, so two reads with
structurally equal filters share one entry and one in-flight request.

Lifecycle of an entry:
- fetch() starts a request unless one is already running (de-duplication)
  or the cached data is still fresh
- a failed fetch records the error and keeps the previous data
- invalidate() marks entries stale and refetches the ones somebody observes;
  a request already running at that point is cancelled and replaced, and
  its result can never clear the invalidation
- cancel_queries() stops in-flight requests; the entry keeps its previous data
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

QueryKey = Tuple[str, str]
Fetcher = Callable[[], Awaitable[Any]]

LOADING = "loading"
ERROR = "error"
SUCCESS = "success"


def make_key(resource: str, params: Mapping[str, Any]) -> QueryKey:
    return resource, json.dumps(dict(params), sort_keys=True, separators=(",", ":"), default=str)


@dataclass
class QueryState:
    key: QueryKey
    params: Dict[str, Any]
    data: Any = None
    error: Optional[BaseException] = None
    status: str = LOADING
    updated_at: Optional[float] = None
    is_invalidated: bool = False
    # Bumped by every invalidation; a fetch only marks the entry fresh if
    # the generation it started under is still current
    generation: int = 0
    task_generation: int = 0
    fetch_count: int = 0
    observers: int = 0
    task: Optional["asyncio.Task[Any]"] = None
    fetcher: Optional[Fetcher] = None
    has_data: bool = False

    @property
    def resource(self) -> str:
        return self.key[0]

    @property
    def is_fetching(self) -> bool:
        return self.task is not None and not self.task.done()

    def is_stale(self, stale_time: float, now: float) -> bool:
        if not self.has_data or self.is_invalidated or self.updated_at is None:
            return True
        return (now - self.updated_at) >= stale_time


@dataclass
class QueryCache:
    clock: Callable[[], float] = time.monotonic
    _entries: Dict[QueryKey, QueryState] = field(default_factory=dict)

    # -------------------------
    # Lookup
    # -------------------------

    def entry(self, resource: str, params: Mapping[str, Any]) -> QueryState:
        key = make_key(resource, params)
        state = self._entries.get(key)
        if state is None:
            state = QueryState(key=key, params=dict(params))
            self._entries[key] = state
        return state

    def get(self, key: QueryKey) -> Optional[QueryState]:
        return self._entries.get(key)

    def find(self, resource: str, params: Optional[Mapping[str, Any]] = None) -> List[QueryState]:
        """Entries for `resource` whose params contain every given pair (partial match)."""
        out = []
        for state in self._entries.values():
            if state.resource != resource:
                continue
            if params and any(state.params.get(k) != v for k, v in params.items()):
                continue
            out.append(state)
        return out

    def get_query_data(self, key: QueryKey) -> Any:
        state = self._entries.get(key)
        return state.data if state else None

    def get_queries_data(self, resource: str) -> List[Tuple[QueryKey, Any]]:
        return [(s.key, s.data) for s in self.find(resource) if s.has_data]

    def set_query_data(self, key: QueryKey, data: Any) -> None:
        state = self._entries.get(key)
        if state is None:
            return
        state.data = data
        state.has_data = True
        state.status = SUCCESS
        state.error = None

    def set_queries_data(self, resource: str, updater: Callable[[Any], Any]) -> int:
        """Apply `updater(old) -> new` to every entry of `resource` holding data."""
        changed = 0
        for state in self.find(resource):
            if not state.has_data:
                continue
            new = updater(state.data)
            if new is not state.data:
                state.data = new
                changed += 1
        return changed

    # -------------------------
    # Fetching
    # -------------------------

    async def fetch(
        self,
        state: QueryState,
        fetcher: Fetcher,
        *,
        stale_time: float = 0.0,
        force: bool = False,
    ) -> Any:
        state.fetcher = fetcher

        if state.is_fetching:
            if not (force and state.task_generation < state.generation):
                return await self._join(state, state.task)
            # Started before the last invalidation
            logger.debug("Replacing superseded fetch for %s", state.key)
            state.task.cancel()
        elif not force and not state.is_stale(stale_time, self.clock()):
            return state.data

        state.task_generation = state.generation
        state.task = asyncio.ensure_future(self._run(state, fetcher, state.generation))
        return await self._join(state, state.task)

    async def _join(self, state: QueryState, task: "asyncio.Task[Any]") -> Any:
        while True:
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
                if state.task is None or state.task is task:
                    # Cancelled by cancel_queries(); the entry keeps what it had
                    return state.data
                # Superseded by a refetch; wait for that one instead
                task = state.task

    async def _run(self, state: QueryState, fetcher: Fetcher, generation: int) -> Any:
        state.fetch_count += 1
        if not state.has_data:
            state.status = LOADING
        try:
            data = await fetcher()
        except asyncio.CancelledError:
            logger.debug("Fetch cancelled for %s", state.key)
            raise
        except Exception as e:
            state.error = e
            state.status = ERROR
            logger.warning("Fetch failed for %s: %s", state.key[0], e)
            raise
        else:
            state.data = data
            state.has_data = True
            state.error = None
            state.status = SUCCESS
            if state.generation == generation:
                state.updated_at = self.clock()
                state.is_invalidated = False
            return data
        finally:
            if state.task is asyncio.current_task():
                state.task = None

    async def cancel_queries(self, resource: str) -> int:
        tasks = []
        for state in self.find(resource):
            if state.is_fetching:
                tasks.append(state.task)
                state.task.cancel()
                state.task = None
        if tasks:
            logger.debug("Cancelled %d in-flight %s read(s)", len(tasks), resource)
            await asyncio.wait(tasks)
        return len(tasks)

    async def invalidate(self, resource: str, params: Optional[Mapping[str, Any]] = None) -> int:
        """
        Mark matching entries stale, then refetch the observed ones and wait
        for those refetches. Refetch failures stay on their entry.
        """
        matched = self.find(resource, params)
        refetches = []
        for state in matched:
            state.is_invalidated = True
            state.generation += 1
            if state.observers > 0 and state.fetcher is not None:
                refetches.append(self.fetch(state, state.fetcher, force=True))

        if matched:
            logger.debug("Invalidated %d %s entr(ies), refetching %d", len(matched), resource, len(refetches))
        if refetches:
            results = await asyncio.gather(*refetches, return_exceptions=True)
            for result in results:
                if isinstance(result, asyncio.CancelledError):
                    raise result
        return len(matched)

    def observe(self, state: QueryState) -> None:
        state.observers += 1

    def unobserve(self, state: QueryState) -> None:
        state.observers = max(0, state.observers - 1)

    def clear(self) -> None:
        for state in self._entries.values():
            if state.is_fetching:
                state.task.cancel()
        self._entries.clear()
