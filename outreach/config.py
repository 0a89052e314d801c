from __future__ import annotations

from pathlib import Path
from typing import Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_PATH = "./data/outreach.sqlite"
DEFAULT_SELECT_CAP = 5000


def _text(v: Any) -> str:
    return "" if v is None else str(v).strip()


def parse_origins(raw: Any) -> List[str]:
    """
    CORS_ALLOW_ORIGINS as "*", a comma list ("https://a.org, https://b.org")
    or an already-parsed list. Anything empty means "*".
    """
    items = raw if isinstance(raw, (list, tuple)) else _text(raw).split(",")
    origins = [_text(x) for x in items if _text(x)]
    if not origins or origins == ["*"]:
        return ["*"]
    return origins


class Settings(BaseSettings):
    """
    Backend settings for the /rest service.

    Values come from the environment or a local .env file. Blank values fall
    back to the defaults below rather than failing validation.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    env: str = Field(default="local", alias="APP_ENV")
    app_name: str = Field(default="bacenta-outreach", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # uvicorn
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")
    # Raw string; see cors_allow_origins
    cors_origins: str = Field(default="*", alias="CORS_ALLOW_ORIGINS")

    # DATABASE_URL wins; otherwise a SQLite file at DB_PATH
    database_url: str = Field(default="", alias="DATABASE_URL")
    db_path: str = Field(default=DEFAULT_DB_PATH, alias="DB_PATH")

    # Upper bound on rows per select, whatever limit the filter asks for
    select_max_limit: int = Field(default=DEFAULT_SELECT_CAP, alias="SELECT_MAX_LIMIT")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, v: Any) -> str:
        return _text(v).upper() or "INFO"

    @field_validator("host", "database_url", "db_path", mode="before")
    @classmethod
    def _strip(cls, v: Any, info) -> str:  # noqa: ANN001
        s = _text(v)
        if s:
            return s
        return {"host": "127.0.0.1", "db_path": DEFAULT_DB_PATH}.get(info.field_name, "")

    @field_validator("select_max_limit", mode="before")
    @classmethod
    def _positive_cap(cls, v: Any) -> int:
        try:
            n = int(v)
        except (TypeError, ValueError):
            return DEFAULT_SELECT_CAP
        return n if n > 0 else DEFAULT_SELECT_CAP

    @property
    def cors_allow_origins(self) -> List[str]:
        return parse_origins(self.cors_origins)

    @property
    def resolved_database_url(self) -> str:
        """
        DATABASE_URL if set. Otherwise DB_PATH, which may itself be a sqlite
        URL or a file path (relative paths stay relative to the cwd).
        """
        if self.database_url:
            return self.database_url
        if self.db_path.startswith("sqlite:"):
            return self.db_path
        path = Path(self.db_path)
        # sqlite:/// + relative path, sqlite://// + absolute path
        return f"sqlite:///{path.as_posix()}"


settings = Settings()
