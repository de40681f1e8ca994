from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "PORTAL_"


def _default_session_file() -> Path:
    return Path.home() / ".portalclient" / "session.json"


class ClientConfig(BaseSettings):
    """Client settings. Every field can be set through a ``PORTAL_<FIELD>`` variable."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    base_url: str = "http://127.0.0.1:8000"
    users_base_url: str = "https://dummyjson.com"

    login_path: str = "/login/"
    refresh_path: str = "/refresh/"

    storage_key: str = Field(default="loginData", min_length=1)
    session_file: Path = Field(default_factory=_default_session_file)

    # Refresh this many seconds before the access token actually expires.
    expiry_guard_seconds: float = Field(default=60.0, ge=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    fake_api_mode: bool = False
    fake_token_lifetime_seconds: int = Field(default=300, gt=0)

    @field_validator("session_file")
    @classmethod
    def _expand_user(cls, value: Path) -> Path:
        return value.expanduser()

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Settings from the process environment, defaults for anything unset."""
        return cls()
