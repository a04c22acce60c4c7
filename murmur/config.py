"""Settings via pydantic-settings with MURMUR_ env prefix.

The service URL reads the unprefixed OLLAMA_HOST so murmur picks up the
same variable the server and its other clients use.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_OLLAMA_HOST = "http://localhost:11434"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MURMUR_", env_file=".env", extra="ignore")

    # Service
    ollama_host: str = Field(DEFAULT_OLLAMA_HOST, validation_alias="OLLAMA_HOST")
    model: str = "mistral-nemo"
    request_timeout: float | None = None  # None = wait forever

    # Chat shell
    log: str | None = None  # MURMUR_LOG, template with %s/%m/%%
    histfile: str | None = None  # MURMUR_HISTFILE, same template rules
    ps1: str = "murmur> "
    spinner_interval: float = 0.05

    log_level: str = "warning"

    @field_validator("ollama_host")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/") or DEFAULT_OLLAMA_HOST

    @field_validator("log", "histfile")
    @classmethod
    def _empty_is_unset(cls, v: str | None) -> str | None:
        return v or None

    def base_url(self, override: str | None = None) -> str:
        """Resolve the service URL: explicit override, then OLLAMA_HOST, then default."""
        if override:
            return override.rstrip("/")
        return self.ollama_host
