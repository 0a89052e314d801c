from __future__ import annotations

import asyncio
import copy
import os
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

# Must be set before outreach.config is imported
os.environ["DATABASE_URL"] = "sqlite://"

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from outreach.client.backend import BackendClient, BackendError
from outreach.client.context import ClientContext
from outreach.client.dto import EventDTO, MemberDTO
from outreach.client.session import MemoryStorage, SessionStore
from outreach.database import engine, register_models
from outreach.filters import FilterLike, as_filter
from outreach.main import app
from outreach.scripts.seed_demo import seed


# -----------------------------
# Backend (real app, in-memory SQLite)
# -----------------------------

@pytest.fixture
def db():
    register_models()
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def seeded(db) -> Dict[str, int]:
    out = seed(db)
    db.commit()
    return out


def asgi_backend() -> BackendClient:
    """BackendClient talking to the app in-process. Build it inside the running loop."""
    api = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
    return BackendClient(api)


# -----------------------------
# Scripted fake backend
# -----------------------------

def _matches(row: Dict[str, Any], flt) -> bool:
    for col, value in flt.equals.items():
        if row.get(col) != value:
            return False
    for col, values in flt.in_.items():
        if values and row.get(col) not in values:
            return False
    for col in flt.not_null:
        if row.get(col) is None:
            return False
    return True


class FakeBackend:
    """
    In-memory rows per resource. Records every call; `gate` (an asyncio.Event)
    holds selects until set; `failures` maps "op:resource" to the error to raise.
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(tables or {})
        self.log: List[tuple] = []
        self.selects: Counter = Counter()
        self.gate: Optional[asyncio.Event] = None
        self.failures: Dict[str, BackendError] = {}
        self._next_id = 1000

    def _check(self, op: str, resource: str) -> None:
        err = self.failures.get(f"{op}:{resource}")
        if err is not None:
            raise err

    async def select(self, resource: str, flt: FilterLike = None, expand: Sequence[str] = ()) -> List[Dict[str, Any]]:
        self.log.append(("select", resource))
        self.selects[resource] += 1
        if self.gate is not None:
            await self.gate.wait()
        self._check("select", resource)
        f = as_filter(flt)
        rows = [r for r in self.tables.get(resource, []) if _matches(r, f)]
        if f.limit is not None:
            rows = rows[: f.limit]
        return copy.deepcopy(rows)

    async def insert(self, resource: str, rows: Any) -> Any:
        self.log.append(("insert", resource, copy.deepcopy(rows)))
        await asyncio.sleep(0)
        self._check("insert", resource)
        many = isinstance(rows, list)
        stored = []
        for row in rows if many else [rows]:
            self._next_id += 1
            new = dict(row, id=self._next_id)
            self.tables.setdefault(resource, []).append(new)
            stored.append(copy.deepcopy(new))
        return stored if many else stored[0]

    async def update(self, resource: str, row_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        self.log.append(("update", resource, row_id, copy.deepcopy(changes)))
        await asyncio.sleep(0)
        self._check("update", resource)
        for row in self.tables.get(resource, []):
            if row["id"] == row_id:
                row.update(changes)
                return copy.deepcopy(row)
        raise BackendError(404, f"{resource} row {row_id} not found")

    async def delete(self, resource: str, row_id: int) -> Dict[str, Any]:
        self.log.append(("delete", resource, row_id))
        await asyncio.sleep(0)
        self._check("delete", resource)
        self.tables[resource] = [r for r in self.tables.get(resource, []) if r["id"] != row_id]
        return {"ok": True, "id": row_id}

    async def delete_where(self, resource: str, **equals: Any) -> int:
        self.log.append(("delete_where", resource, dict(equals)))
        await asyncio.sleep(0)
        self._check("delete_where", resource)
        before = self.tables.get(resource, [])
        kept = [r for r in before if any(r.get(k) != v for k, v in equals.items())]
        self.tables[resource] = kept
        return len(before) - len(kept)

    def writes(self) -> List[tuple]:
        return [entry for entry in self.log if entry[0] != "select"]


# -----------------------------
# Client context helpers
# -----------------------------

MEMBER = MemberDTO(id=1, first_name="Kwame", last_name="Mensah", full_name="Kwame Mensah", bacenta_id=10)
EVENT = EventDTO(id=7, name="Sunday Service", event_timestamp=datetime(2026, 10, 25, 9, 0))


def make_ctx(backend: Any, member: Optional[MemberDTO] = MEMBER, event: Optional[EventDTO] = EVENT) -> ClientContext:
    session = SessionStore(MemoryStorage())
    if member is not None and event is not None:
        session.choose_identity(member, event)
    return ClientContext(backend=backend, session=session)


@pytest.fixture
def fake() -> FakeBackend:
    return FakeBackend()
