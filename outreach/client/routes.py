from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from .backend import BackendError
from .context import ClientContext
from .pages import (
    ConfirmationDetailPage,
    ConfirmationsPage,
    ContactDetailPage,
    ContactsPage,
    DataPage,
    HomePage,
    IdentityPage,
    LivePage,
    MembersPage,
    Page,
    TelepastoringPage,
)

logger = logging.getLogger(__name__)


class RouteNotFound(LookupError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No route for {path}")


class RouteError(Exception):
    """A route-level failure with an HTTP-style status."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = int(status_code)
        self.message = message
        super().__init__(message or str(status_code))


@dataclass(frozen=True)
class Route:
    pattern: str
    factory: Callable[..., Page]
    takes_query: bool = False

    def match(self, path: str) -> Optional[Dict[str, str]]:
        regex = "^" + re.sub(r":(\w+)", r"(?P<\1>[^/]+)", self.pattern) + "/?$"
        m = re.match(regex, path)
        return m.groupdict() if m else None


ROUTES: List[Route] = [
    Route("/", HomePage),
    Route("/identity", IdentityPage),
    Route("/contacts", ContactsPage, takes_query=True),
    Route("/contacts/:id", ContactDetailPage),
    Route("/confirmations", ConfirmationsPage),
    Route("/confirmations/:id", ConfirmationDetailPage),
    Route("/telepastoring", TelepastoringPage, takes_query=True),
    Route("/live", LivePage),
    Route("/data", DataPage),
    Route("/members", MembersPage, takes_query=True),
]


def match_route(url: str) -> Tuple[Route, Dict[str, str], str]:
    parts = urlsplit(url)
    path = parts.path or "/"
    for route in ROUTES:
        params = route.match(path)
        if params is not None:
            return route, params, parts.query
    raise RouteNotFound(path)


def open_page(ctx: ClientContext, url: str) -> Page:
    """Build the page view-model for `url`. Raises RouteNotFound for unknown paths and bad ids."""
    route, params, query = match_route(url)
    kwargs: Dict[str, Any] = {}
    if "id" in params:
        try:
            kwargs["contact_id"] = int(params["id"])
        except ValueError:
            raise RouteNotFound(url) from None
    if route.takes_query:
        kwargs["query"] = query
    return route.factory(ctx, **kwargs)


def error_page(exc: BaseException) -> Tuple[str, str]:
    """(heading, details) for the error boundary."""
    if isinstance(exc, RouteNotFound):
        return "404", "The requested page could not be found."
    if isinstance(exc, RouteError):
        if exc.status_code == 404:
            return "404", "The requested page could not be found."
        return "Error", exc.message or _status_text(exc.status_code)
    if isinstance(exc, BackendError):
        return "Error", _status_text(exc.status_code)
    logger.error("Unhandled error rendering page: %r", exc)
    return "Oops!", "An unexpected error occurred."


def _status_text(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return f"Error {code}"
