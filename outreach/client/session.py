"""
Identity/session state: which member the user acts as, for which event.

Persisted like browser local storage: string values under fixed keys,
read once when the store is created, never expired. The identity flow is
the only writer (choose_identity); clear() forgets both.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .dto import EventDTO, MemberDTO

logger = logging.getLogger(__name__)

USER_KEY = "ct.user"
EVENT_KEY = "ct.event"

M = TypeVar("M", bound=BaseModel)


class Storage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileStorage:
    """
    One JSON object on disk mapping key -> string value.
    Writes go through a temp file + rename so a crash never leaves half a file.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            logger.warning("Session file %s unreadable, starting empty: %s", self.path, e)
            return {}
        if not isinstance(payload, dict):
            return {}
        return {str(k): v for k, v in payload.items() if isinstance(v, str)}

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


def _read(storage: Storage, key: str, model: Type[M]) -> Optional[M]:
    raw = storage.get(key)
    if not raw:
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        logger.warning("Ignoring malformed %s in session storage (%d errors)", key, e.error_count())
        return None


class SessionStore:
    def __init__(self, storage: Storage):
        self._storage = storage
        # Read once at load; later storage edits are not picked up
        self._member: Optional[MemberDTO] = _read(storage, USER_KEY, MemberDTO)
        self._event: Optional[EventDTO] = _read(storage, EVENT_KEY, EventDTO)

    @property
    def current_member(self) -> Optional[MemberDTO]:
        return self._member

    @property
    def current_event(self) -> Optional[EventDTO]:
        return self._event

    @property
    def has_identity(self) -> bool:
        return self._member is not None and self._event is not None

    def identity(self) -> Tuple[Optional[MemberDTO], Optional[EventDTO]]:
        return self._member, self._event

    def choose_identity(self, member: MemberDTO, event: EventDTO) -> None:
        """Persist both selections. Called by IdentityFlow.confirm()."""
        self._storage.set(USER_KEY, member.model_dump_json())
        self._storage.set(EVENT_KEY, event.model_dump_json())
        self._member = member
        self._event = event
        logger.info("Identity set: member %s for event %s", member.id, event.id)

    def clear(self) -> None:
        self._storage.remove(USER_KEY)
        self._storage.remove(EVENT_KEY)
        self._member = None
        self._event = None
