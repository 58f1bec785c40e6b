from enum import Enum
from pathlib import Path
from typing import Self

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Env(Enum):
    local = "local"
    dev = "dev"
    prod = "prod"


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="KYABANANA_")

    env: Env = Env.local
    html_dir: Path = Path(__file__).parent / "templates"
    db_url: str = "sqlite+aiosqlite:///kyabanana.db"
    core_model: str = "gpt-4o-mini"
    assistant_max_tokens: int = 500
    google_client_id: str | None = None
    single_goal: bool = True
    session_cookie: str = "kyabanana_session"
    session_max_idle: float = 12 * 60 * 60
    max_sessions: int = 10_000
    log_level: str = "INFO"

    @model_validator(mode="after")
    def require_client_id(self) -> Self:
        # The audience check in GoogleIdentityProvider is skipped without it.
        if self.env is not Env.local and not self.google_client_id:
            raise ValueError("google_client_id is required outside local")
        return self
