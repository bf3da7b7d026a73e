from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import ErrorKind


class Turn(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    role: Literal["system", "user", "assistant", "function"]
    content: str
    name: str | None = None

    @model_validator(mode="after")
    def _validate_function_name(self) -> "Turn":
        if self.role == "function" and not self.name:
            raise ValueError("function turns require a name.")
        return self


class FunctionSpec(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)


class FunctionCallTarget(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str


class RequestOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    model: str | None = None
    temperature: float = 0.3
    max_tokens: int | None = None
    top_p: float | None = None
    stop: list[str] | None = None
    system_prompt: str | None = None
    include_usage: bool = False
    functions: list[FunctionSpec] | None = None
    function_call: Literal["auto", "none"] | FunctionCallTarget | None = None

    @field_validator("model")
    @classmethod
    def _validate_model(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("model override must be non-empty.")
        return v

    @field_validator("temperature")
    @classmethod
    def _validate_temperature(cls, v: float) -> float:
        if not (0.0 <= v <= 2.0):
            raise ValueError("temperature must be between 0 and 2.")
        return v

    @field_validator("top_p")
    @classmethod
    def _validate_top_p(cls, v: float | None) -> float | None:
        if v is None:
            return None
        if not (0.0 < v <= 1.0):
            raise ValueError("top_p must be > 0 and <= 1.")
        return v

    @field_validator("max_tokens")
    @classmethod
    def _validate_max_tokens(cls, v: int | None) -> int | None:
        if v is None:
            return None
        if v <= 0:
            raise ValueError("max_tokens must be > 0.")
        return v

    @field_validator("stop")
    @classmethod
    def _validate_stop(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        if not v:
            raise ValueError("stop list must be non-empty.")
        if any(not s for s in v):
            raise ValueError("stop sequences must be non-empty strings.")
        return v

    @model_validator(mode="after")
    def _validate_function_call(self) -> "RequestOptions":
        if self.function_call is not None and not self.functions:
            raise ValueError("function_call requires functions.")
        return self


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(frozen=True)
class FunctionCall:
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class CompletionResult:
    model_used: str
    content: str = ""
    usage: Usage | None = None
    function_call: FunctionCall | None = None
    finish_reason: str | None = None
    attempts: int = 1
    latency_seconds: float = 0.0
    raw_response: dict[str, Any] | None = None


@dataclass(frozen=True)
class DispatchAttempt:
    index: int
    model: str
    outcome: ErrorKind | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is None
