from __future__ import annotations

import os
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .credential_store import EncryptedCredentialStore
from .errors import ConfigurationError

DEFAULT_MODEL = "gpt-3.5-turbo"
FALLBACK_MODEL = "gpt-4o-mini"
DEFAULT_BASE_URL = "https://api.openai.com/v1"
MAX_ATTEMPTS = 3


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").lower() == "true"


class DispatchConfig(BaseModel):
    # env-derived defaults go through the same constraints as explicit values
    model_config = ConfigDict(frozen=True, validate_default=True)

    # Credential
    api_key: str | None = Field(default_factory=lambda: os.getenv("LLM_API_KEY"))
    credentials_path: str | None = Field(default_factory=lambda: os.getenv("LLM_CREDENTIALS_PATH"))
    fernet_key: str | None = Field(default_factory=lambda: os.getenv("CREDENTIALS_FERNET_KEY"))

    # Tiers
    default_model: str = Field(default_factory=lambda: os.getenv("LLM_MODEL") or DEFAULT_MODEL)
    fallback_model: str = Field(default_factory=lambda: os.getenv("LLM_FALLBACK_MODEL") or FALLBACK_MODEL)
    default_system_prompt: str | None = Field(default_factory=lambda: os.getenv("LLM_SYSTEM_PROMPT"))

    # HTTP behavior
    base_url: str = Field(default_factory=lambda: os.getenv("LLM_BASE_URL", DEFAULT_BASE_URL))
    request_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("LLM_TIMEOUT_SECONDS", "30")), gt=0.0
    )
    max_attempts: int = Field(
        default_factory=lambda: int(os.getenv("LLM_MAX_ATTEMPTS", str(MAX_ATTEMPTS))), ge=1, le=MAX_ATTEMPTS
    )
    retry_base_delay_seconds: float = Field(
        default_factory=lambda: float(os.getenv("LLM_RETRY_DELAY_SECONDS", "1.0")), gt=0.0
    )

    # Observability
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = Field(default_factory=lambda: os.getenv("LOG_FORMAT", "json"))
    debug: bool = Field(default_factory=lambda: _env_flag("LLM_DEBUG"))

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, v: str) -> str:
        try:
            url = httpx.URL(v)
        except httpx.InvalidURL as e:
            raise ValueError(f"base_url is not a valid URL: {e}") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError("base_url must be an absolute http(s) URL.")
        return v

    def resolve_api_key(self) -> str:
        if self.api_key and self.api_key.strip():
            return self.api_key.strip()
        if self.credentials_path and self.fernet_key:
            store = EncryptedCredentialStore(self.credentials_path, self.fernet_key)
            if store.exists():
                return store.load_api_key()
        raise ConfigurationError("LLM_API_KEY is not set and no stored credential is available.")


def load_config(**overrides: Any) -> DispatchConfig:
    """Build `DispatchConfig`, reporting bad env or override values as `ConfigurationError`."""
    try:
        return DispatchConfig(**overrides)
    except ValidationError as e:
        err = e.errors()[0]
        loc = ".".join(str(p) for p in err["loc"])
        raise ConfigurationError(f"Invalid setting {loc!r}: {err['msg']}") from e
    except ValueError as e:
        # raised by the env default factories, e.g. int("abc")
        raise ConfigurationError(f"Invalid setting in environment: {e}") from e
