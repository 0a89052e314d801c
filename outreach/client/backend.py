from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable

import httpx

from ..filters import FilterLike, as_filter
from .config import ClientSettings, client_settings

logger = logging.getLogger(__name__)

# NOTE:
# This module is the single source of truth for client->backend HTTP behavior.
# Everything above it (cache, reads, mutations) only sees rows or BackendError.

Row = Dict[str, Any]


class BackendError(Exception):
    """
    Any failed read or write. Validation, missing rows and connectivity all
    surface the same way; status_code tells them apart when a caller cares.
    """

    def __init__(self, status_code: int, detail: Any):
        self.status_code = int(status_code)
        self.detail = detail
        super().__init__(f"Backend error ({self.status_code}): {detail}")


@runtime_checkable
class Backend(Protocol):
    async def select(self, resource: str, flt: FilterLike = None, expand: Sequence[str] = ()) -> List[Row]: ...

    async def insert(self, resource: str, rows: Union[Row, List[Row]]) -> Any: ...

    async def update(self, resource: str, row_id: int, changes: Row) -> Row: ...

    async def delete(self, resource: str, row_id: int) -> Row: ...

    async def delete_where(self, resource: str, **equals: Any) -> int: ...


# -----------------------------
# API helpers
# -----------------------------

def _safe_json(r: httpx.Response) -> Optional[Any]:
    """Best-effort JSON parse; None when the body is not JSON."""
    try:
        return r.json()
    except ValueError:
        return None


async def api_request(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    json: Optional[Any] = None,
    timeout: Optional[float] = None,
) -> Tuple[int, str, Optional[Any]]:
    """
    Low-level request helper used by BackendClient.
    Returns: (status_code, response_text, json_or_none)
    """
    m = (method or "GET").strip().upper()
    p = path if (path or "").startswith("/") else f"/{path}"

    kwargs: Dict[str, Any] = {"json": json}
    if timeout is not None:
        kwargs["timeout"] = float(timeout)

    try:
        r = await client.request(m, p, **kwargs)
    except httpx.TimeoutException:
        return 408, "Request timed out contacting API.", None
    except httpx.RequestError as e:
        return 503, f"Network error contacting API: {e}", None

    return r.status_code, r.text, _safe_json(r)


def _detail(text: str, data: Optional[Any]) -> Any:
    if isinstance(data, dict) and data.get("detail") is not None:
        return data["detail"]
    return text or "Unknown error"


class BackendClient:
    """
    httpx client for the /rest surface.

    Accepts an existing httpx.AsyncClient (tests pass one bound to the ASGI app)
    or builds one from ClientSettings.
    """

    def __init__(
        self,
        api: Optional[httpx.AsyncClient] = None,
        *,
        settings: ClientSettings = client_settings,
    ):
        self.settings = settings
        self._owns_api = api is None
        self.api = api or httpx.AsyncClient(
            base_url=settings.api_base,
            headers={"User-Agent": settings.http_user_agent},
            timeout=settings.http_timeout_s,
        )

    async def aclose(self) -> None:
        if self._owns_api:
            await self.api.aclose()

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def _call(self, method: str, path: str, json: Optional[Any] = None) -> Any:
        code, text, data = await api_request(self.api, method, path, json=json)
        if code >= 400:
            detail = _detail(text, data)
            logger.debug("%s %s failed (%s): %s", method, path, code, detail)
            raise BackendError(code, detail)
        return data

    # -------------------------
    # Read
    # -------------------------

    async def select(self, resource: str, flt: FilterLike = None, expand: Sequence[str] = ()) -> List[Row]:
        body: Dict[str, Any] = {"filter": as_filter(flt).to_wire()}
        if expand:
            body["expand"] = list(expand)
        rows = await self._call("POST", f"/rest/{resource}/select", json=body)
        return list(rows or [])

    # -------------------------
    # Write
    # -------------------------

    async def insert(self, resource: str, rows: Union[Row, List[Row]]) -> Any:
        return await self._call("POST", f"/rest/{resource}", json=rows)

    async def update(self, resource: str, row_id: int, changes: Row) -> Row:
        return await self._call("PATCH", f"/rest/{resource}/{row_id}", json=changes)

    async def delete(self, resource: str, row_id: int) -> Row:
        return await self._call("DELETE", f"/rest/{resource}/{row_id}")

    async def delete_where(self, resource: str, **equals: Any) -> int:
        data = await self._call("POST", f"/rest/{resource}/delete", json={"equals": equals})
        return int((data or {}).get("deleted", 0))


__all__ = [
    "Backend",
    "BackendClient",
    "BackendError",
    "Row",
    "api_request",
]
