from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import structlog

from .contracts import CompletionResult, FunctionCall, RequestOptions, Usage

log = structlog.get_logger()


def _first_message(raw: Mapping[str, Any]) -> tuple[Mapping[str, Any], str | None]:
    choices = raw.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], Mapping):
        return {}, None
    choice = choices[0]
    finish_reason = choice.get("finish_reason")
    message = choice.get("message")
    if not isinstance(message, Mapping):
        message = {}
    return message, finish_reason if isinstance(finish_reason, str) else None


def _counter(usage: Mapping[str, Any], key: str) -> int:
    value = usage.get(key)
    return value if isinstance(value, int) else 0


def _usage(raw: Mapping[str, Any], options: RequestOptions) -> Usage | None:
    if not options.include_usage:
        return None
    usage = raw.get("usage")
    if not isinstance(usage, Mapping):
        return None
    return Usage(
        prompt_tokens=_counter(usage, "prompt_tokens"),
        completion_tokens=_counter(usage, "completion_tokens"),
        total_tokens=_counter(usage, "total_tokens"),
    )


def _function_call(message: Mapping[str, Any]) -> FunctionCall | None:
    fc = message.get("function_call")
    if not isinstance(fc, Mapping) or not isinstance(fc.get("name"), str):
        return None
    raw_args = fc.get("arguments")
    args: Any = raw_args if isinstance(raw_args, dict) else {}
    if isinstance(raw_args, str) and raw_args:
        try:
            args = json.loads(raw_args)
        except json.JSONDecodeError as e:
            log.warning("function_call_arguments_invalid", function=fc["name"], error=str(e))
            args = {}
    if not isinstance(args, dict):
        args = {}
    return FunctionCall(name=fc["name"], arguments=args)


def normalize(
    raw: Mapping[str, Any],
    options: RequestOptions,
    *,
    model_used: str,
    attempts: int = 1,
    latency_seconds: float = 0.0,
) -> CompletionResult:
    """Map a chat-completions response onto `CompletionResult`.

    Missing shape yields empty content rather than an error; usage is only
    reported when requested and supplied.
    """
    message, finish_reason = _first_message(raw)
    content = message.get("content")
    return CompletionResult(
        model_used=model_used,
        content=content if isinstance(content, str) else "",
        usage=_usage(raw, options),
        function_call=_function_call(message),
        finish_reason=finish_reason,
        attempts=attempts,
        latency_seconds=latency_seconds,
        raw_response=dict(raw),
    )
