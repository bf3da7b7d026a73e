from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from .contracts import RequestOptions, Turn


def _turn_to_wire(turn: Turn) -> dict[str, str]:
    msg = {"role": turn.role, "content": turn.content}
    if turn.name:
        msg["name"] = turn.name
    return msg


def build_payload(
    conversation: Sequence[Turn],
    options: RequestOptions,
    *,
    default_model: str,
    default_system_prompt: str | None = None,
) -> dict[str, Any]:
    """Convert a conversation plus options into a chat-completions payload.

    A system turn is prepended from the system prompt only when the
    conversation has none of its own.
    """
    messages = [_turn_to_wire(t) for t in conversation]

    system_prompt = options.system_prompt or default_system_prompt
    if system_prompt and not any(t.role == "system" for t in conversation):
        messages.insert(0, {"role": "system", "content": system_prompt})

    payload: dict[str, Any] = {
        "model": options.model or default_model,
        "messages": messages,
        "temperature": options.temperature,
    }
    if options.max_tokens is not None:
        payload["max_tokens"] = options.max_tokens
    if options.top_p is not None:
        payload["top_p"] = options.top_p
    if options.stop:
        payload["stop"] = list(options.stop)
    if options.functions:
        payload["functions"] = [f.model_dump() for f in options.functions]
        if options.function_call is not None:
            fc = options.function_call
            payload["function_call"] = fc if isinstance(fc, str) else fc.model_dump()
    return payload
