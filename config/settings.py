from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

from agent.core.errors import ConfigurationError


load_dotenv()

DEFAULT_CORS_ORIGINS = "http://handy-man.com.pl,https://handy-man.com.pl"
STRATEGIES = {"assistant", "search"}


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here. Values are read when
    the instance is created, so tests can set env vars before building one.
    """

    def __init__(self) -> None:
        self.app_env: str = os.getenv("APP_ENV", "development")
        self.chat_strategy: str = os.getenv("CHAT_STRATEGY", "assistant").strip().lower()
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = int(os.getenv("PORT", "3011"))

        self.google_api_key: Optional[str] = os.getenv("GOOGLE_API_KEY")
        self.google_cx: Optional[str] = os.getenv("GOOGLE_CX")
        self.search_api_url: str = os.getenv(
            "SEARCH_API_URL", "https://www.googleapis.com/customsearch/v1"
        )
        self.search_timeout: float = float(os.getenv("SEARCH_TIMEOUT", "10"))

        self.openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
        self.assistant_id: Optional[str] = os.getenv("OPENAI_ASSISTANT_ID")
        self.poll_interval: float = float(os.getenv("ASSISTANT_POLL_INTERVAL", "1.0"))
        self.run_timeout: float = float(os.getenv("ASSISTANT_RUN_TIMEOUT", "60"))

        self.session_max_age: float = float(os.getenv("SESSION_MAX_AGE", str(24 * 60 * 60)))
        self.sweep_interval: float = float(os.getenv("SESSION_SWEEP_INTERVAL", str(60 * 60)))
        self.auto_create_sessions: bool = _env_bool("AUTO_CREATE_SESSIONS")

        self.cors_origins: List[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
            if origin.strip()
        ]

    def missing(self) -> List[str]:
        """Names of required env vars that are not set for the chosen strategy."""
        required = {
            "GOOGLE_API_KEY": self.google_api_key,
            "GOOGLE_CX": self.google_cx,
        }
        if self.chat_strategy == "assistant":
            required["OPENAI_API_KEY"] = self.openai_api_key
            required["OPENAI_ASSISTANT_ID"] = self.assistant_id
        return [name for name, value in required.items() if not value]

    def validate(self) -> None:
        if self.chat_strategy not in STRATEGIES:
            raise ConfigurationError(
                f"Unknown CHAT_STRATEGY {self.chat_strategy!r}; expected one of {sorted(STRATEGIES)}"
            )
        missing = self.missing()
        if missing:
            raise ConfigurationError(
                "Missing required configuration: " + ", ".join(missing)
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
