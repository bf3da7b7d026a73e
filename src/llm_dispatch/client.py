from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

import structlog
from pydantic import ValidationError

from .config import DispatchConfig, load_config
from .contracts import CompletionResult, RequestOptions, Turn
from .controller import RetryController
from .errors import ConfigurationError
from .logging import configure_logging
from .metrics import request_latency_seconds, requests_total
from .normalizer import normalize
from .request_builder import build_payload
from .tiering import TierModels
from .transport import HttpTransport, Transport

log = structlog.get_logger()


def _coerce_conversation(conversation: Sequence[Turn | Mapping[str, Any]]) -> list[Turn]:
    if isinstance(conversation, (str, bytes)) or not isinstance(conversation, Sequence):
        raise ConfigurationError("conversation must be a sequence of turns.")
    try:
        return [t if isinstance(t, Turn) else Turn.model_validate(t) for t in conversation]
    except ValidationError as e:
        raise ConfigurationError(f"Invalid conversation turn: {e.errors()[0]['msg']}") from e


def _coerce_options(options: RequestOptions | Mapping[str, Any] | None) -> RequestOptions:
    if options is None:
        return RequestOptions()
    if isinstance(options, RequestOptions):
        return options
    try:
        return RequestOptions.model_validate(dict(options))
    except ValidationError as e:
        err = e.errors()[0]
        loc = ".".join(str(p) for p in err["loc"])
        raise ConfigurationError(f"Invalid request option {loc!r}: {err['msg']}") from e


class DispatchClient:
    """
    Long-lived entry point for completions.

    The credential and tier identifiers are resolved once here; `complete`
    never mutates the client, so one instance can serve concurrent callers.
    """

    def __init__(
        self,
        cfg: DispatchConfig | None = None,
        *,
        transport: Transport | None = None,
        sleeper: Callable[[float], Awaitable[None]] | None = None,
    ):
        self.cfg = cfg or load_config()
        self._api_key = self.cfg.resolve_api_key()
        self.transport: Transport = transport or HttpTransport(
            self._api_key,
            base_url=self.cfg.base_url,
            timeout_seconds=self.cfg.request_timeout_seconds,
        )
        self._controller = RetryController(
            self.transport,
            max_attempts=self.cfg.max_attempts,
            base_delay_seconds=self.cfg.retry_base_delay_seconds,
            sleeper=sleeper,
        )

    @property
    def default_model(self) -> str:
        return self.cfg.default_model

    @property
    def fallback_model(self) -> str:
        return self.cfg.fallback_model

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> DispatchClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def complete(
        self,
        conversation: Sequence[Turn | Mapping[str, Any]],
        options: RequestOptions | Mapping[str, Any] | None = None,
    ) -> CompletionResult:
        turns = _coerce_conversation(conversation)
        opts = _coerce_options(options)
        payload = build_payload(
            turns,
            opts,
            default_model=self.cfg.default_model,
            default_system_prompt=self.cfg.default_system_prompt,
        )
        models = TierModels(default=self.cfg.default_model, fallback=self.cfg.fallback_model, pinned=opts.model)
        if self.cfg.debug:
            log.debug("dispatch_request", payload=payload)

        start = time.monotonic()
        try:
            with request_latency_seconds.time():
                raw, model_used, history = await self._controller.run(payload, models)
        except Exception:
            requests_total.labels(status="error").inc()
            raise

        if self.cfg.debug:
            log.debug("dispatch_response", model=model_used, response=raw)
        requests_total.labels(status="success").inc()
        result = normalize(
            raw,
            opts,
            model_used=model_used,
            attempts=len(history),
            latency_seconds=time.monotonic() - start,
        )
        log.info("dispatch_succeeded", model=model_used, attempts=result.attempts)
        return result


def create_client_from_env(**overrides: Any) -> DispatchClient:
    """Build a client from `LLM_*` environment variables and set up logging."""
    cfg = load_config(**overrides)
    client = DispatchClient(cfg)
    configure_logging(
        level="DEBUG" if cfg.debug else cfg.log_level,
        fmt=cfg.log_format,
        secrets=[s for s in (client._api_key, cfg.fernet_key) if s],
    )
    return client
