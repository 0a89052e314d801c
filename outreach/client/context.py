from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from .backend import Backend, BackendClient
from .cache import QueryCache
from .config import ClientSettings, client_settings
from .session import FileStorage, SessionStore


@dataclass
class ClientContext:
    """
    Everything a page needs: the backend, the shared query cache and the
    identity/session store. One per client process (per browser tab).
    """

    backend: Backend
    session: SessionStore
    cache: QueryCache = field(default_factory=QueryCache)
    settings: ClientSettings = client_settings
    # visit id -> last queued edit (see mutations.VisitEditor)
    visit_chains: Dict[int, "asyncio.Task[Any]"] = field(default_factory=dict)

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings = client_settings,
        api: Optional[httpx.AsyncClient] = None,
    ) -> "ClientContext":
        settings.validate()
        return cls(
            backend=BackendClient(api, settings=settings),
            session=SessionStore(FileStorage(settings.session_path)),
            settings=settings,
        )

    async def aclose(self) -> None:
        self.cache.clear()
        aclose = getattr(self.backend, "aclose", None)
        if aclose is not None:
            await aclose()
