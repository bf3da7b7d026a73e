from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from .errors import ErrorKind


class ModelTier(str, Enum):
    DEFAULT = "default"
    FALLBACK = "fallback"
    PINNED = "pinned"


@dataclass(frozen=True)
class TierState:
    """Escalation latch for a single dispatch call.

    Folded over each classified failure; once escalated it never returns to
    the default tier, and a pinned state never escalates.
    """

    pinned: bool = False
    escalated: bool = False
    last_error: str | None = None

    @property
    def tier(self) -> ModelTier:
        if self.pinned:
            return ModelTier.PINNED
        return ModelTier.FALLBACK if self.escalated else ModelTier.DEFAULT

    def observe(self, kind: ErrorKind, error: str) -> TierState:
        escalate = kind is ErrorKind.TRANSIENT_SERVICE and not self.pinned
        return replace(self, escalated=self.escalated or escalate, last_error=error)


@dataclass(frozen=True)
class TierModels:
    default: str
    fallback: str
    pinned: str | None = None

    def resolve(self, tier: ModelTier) -> str:
        if tier is ModelTier.PINNED and self.pinned:
            return self.pinned
        if tier is ModelTier.FALLBACK:
            return self.fallback
        return self.default
