from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from .config import MAX_ATTEMPTS
from .contracts import DispatchAttempt
from .errors import ConfigurationError, DispatchError, ErrorKind, ProviderError, classify
from .metrics import attempts_total, escalations_total
from .tiering import ModelTier, TierModels, TierState
from .transport import Transport

log = structlog.get_logger()


class RetryController:
    """
    Bounded attempt loop with one-way default -> fallback escalation.

    Holds only immutable settings; every call to `run` keeps its own
    `TierState`, so one controller is safe to share between concurrent calls.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay_seconds: float = 1.0,
        sleeper: Callable[[float], Awaitable[None]] | None = None,
    ):
        self._transport = transport
        if max_attempts < 1:
            raise ConfigurationError("max_attempts must be >= 1.")
        if base_delay_seconds <= 0:
            raise ConfigurationError("base_delay_seconds must be > 0.")
        self._max_attempts = min(max_attempts, MAX_ATTEMPTS)
        self._base_delay_seconds = base_delay_seconds
        self._sleep: Callable[[float], Awaitable[None]] = sleeper or asyncio.sleep

    def backoff(self, attempt_index: int) -> float:
        # attempt_index: 0-based index of the attempt that just failed
        return self._base_delay_seconds * (attempt_index + 1)

    async def run(
        self, payload: dict[str, Any], models: TierModels
    ) -> tuple[dict[str, Any], str, tuple[DispatchAttempt, ...]]:
        state = TierState(pinned=models.pinned is not None)
        history: list[DispatchAttempt] = []
        last_exc: ProviderError | None = None

        for attempt in range(self._max_attempts):
            model = models.resolve(state.tier)
            tier_label = state.tier.value
            try:
                raw = await self._transport.send({**payload, "model": model})
            except ProviderError as e:
                kind = classify(e)
                attempts_total.labels(tier=tier_label, outcome=kind.value).inc()
                if kind is ErrorKind.CONFIGURATION:
                    raise
                history.append(DispatchAttempt(index=attempt, model=model, outcome=kind, error=str(e)))
                last_exc = e
                was_escalated = state.escalated
                state = state.observe(kind, str(e))
                log.warning(
                    "dispatch_attempt_failed",
                    attempt=attempt + 1,
                    max_attempts=self._max_attempts,
                    model=model,
                    kind=kind.value,
                    error=str(e),
                )
                if attempt >= self._max_attempts - 1:
                    break
                if state.escalated and not was_escalated:
                    escalations_total.inc()
                    log.info("dispatch_escalated", from_model=model, to_model=models.resolve(ModelTier.FALLBACK))
                await self._sleep(self.backoff(attempt))
                continue

            attempts_total.labels(tier=tier_label, outcome="success").inc()
            history.append(DispatchAttempt(index=attempt, model=model))
            return raw, model, tuple(history)

        log.error("dispatch_exhausted", attempts=len(history), last_error=state.last_error)
        raise DispatchError(
            attempts=len(history),
            last_error=state.last_error or "unknown error",
            history=tuple(history),
        ) from last_exc
