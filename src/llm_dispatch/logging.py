from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, MutableMapping
from typing import Any, TypeAlias, cast

import structlog

_SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "x-api-key",
        "api_key",
        "apikey",
        "fernet_key",
        "credentials",
    }
)
_SENSITIVE_FRAGMENTS = ("key", "token", "secret", "password")

_BEARER_RE = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9._-]{6,})")
_OPENAI_KEY_RE = re.compile(r"\bsk-[A-Za-z0-9_-]{8,}")

REDACTED = "[REDACTED]"

Processor: TypeAlias = Callable[[Any, str, MutableMapping[str, Any]], Any]


def _is_sensitive_key(key: Any) -> bool:
    name = str(key).lower()
    if name.endswith("_tokens"):
        # usage counters, not credentials
        return False
    return name in _SENSITIVE_KEYS or any(f in name for f in _SENSITIVE_FRAGMENTS)


class Redactor:
    """Masks credentials in structured log events."""

    def __init__(self, secrets: Iterable[str] = ()):
        self.secrets = [s for s in secrets if isinstance(s, str) and s]

    def text(self, value: str) -> str:
        for secret in self.secrets:
            value = value.replace(secret, REDACTED)
        value = _BEARER_RE.sub(f"Bearer {REDACTED}", value)
        return _OPENAI_KEY_RE.sub(REDACTED, value)

    def value(self, obj: Any) -> Any:
        if isinstance(obj, str):
            return self.text(obj)
        if isinstance(obj, list):
            return [self.value(v) for v in obj]
        if isinstance(obj, tuple):
            return tuple(self.value(v) for v in obj)
        if isinstance(obj, dict):
            return {k: REDACTED if _is_sensitive_key(k) else self.value(v) for k, v in obj.items()}
        return obj

    def __call__(self, _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]) -> Any:
        return self.value(dict(event_dict))


def configure_logging(level: str = "INFO", fmt: str = "json", *, secrets: list[str] | None = None) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level)

    processors: list[Processor] = [
        cast(Processor, structlog.contextvars.merge_contextvars),
        cast(Processor, structlog.processors.add_log_level),
        cast(Processor, structlog.processors.TimeStamper(fmt="iso")),
        Redactor(secrets or ()),
    ]

    if fmt == "json":
        processors.append(cast(Processor, structlog.processors.JSONRenderer()))
    else:
        processors.append(cast(Processor, structlog.dev.ConsoleRenderer()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )
