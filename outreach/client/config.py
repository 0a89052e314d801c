from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

PREFIX = "OUTREACH_"


def _setting(name: str, fallback: str) -> str:
    """OUTREACH_<name> stripped; blank or unset gives the fallback."""
    raw = (os.getenv(PREFIX + name) or "").strip()
    return raw or fallback


def _seconds(name: str, fallback: float) -> float:
    try:
        return float(_setting(name, str(fallback)))
    except ValueError:
        return fallback


def _check_api_base(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise RuntimeError(f"{PREFIX}API_BASE must look like http(s)://host[:port], got {value!r}")


def _check_seconds(name: str, value: float, maximum: Optional[float] = None, allow_zero: bool = False) -> None:
    if value < 0 or (value == 0 and not allow_zero):
        raise RuntimeError(f"{PREFIX}{name} must be {'>= 0' if allow_zero else '> 0'}.")
    if maximum is not None and value > maximum:
        raise RuntimeError(f"{PREFIX}{name} is too high (max {maximum:g}s).")


@dataclass(frozen=True)
class ClientSettings:
    """
    Client data-layer settings, read from OUTREACH_* environment variables
    once at import. Call validate() at startup to fail fast on bad values.
    """

    api_base: str = _setting("API_BASE", "http://127.0.0.1:8000").rstrip("/")

    http_timeout_s: float = _seconds("HTTP_TIMEOUT", 20.0)
    http_user_agent: str = _setting("HTTP_USER_AGENT", "bacenta-outreach-client/1.0")

    # Identity persistence (the local-storage file)
    session_path: str = _setting("SESSION_PATH", "./data/session.json")

    # Cache policy
    poll_interval_s: float = _seconds("POLL_INTERVAL", 10.0)
    calls_stale_s: float = _seconds("CALLS_STALE", 60.0)
    outcomes_stale_s: float = _seconds("OUTCOMES_STALE", 300.0)

    def validate(self) -> None:
        _check_api_base(self.api_base)
        _check_seconds("HTTP_TIMEOUT", self.http_timeout_s, maximum=120)
        _check_seconds("POLL_INTERVAL", self.poll_interval_s)
        _check_seconds("CALLS_STALE", self.calls_stale_s, allow_zero=True)
        _check_seconds("OUTCOMES_STALE", self.outcomes_stale_s, allow_zero=True)


client_settings = ClientSettings()
