from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog

from .config import DEFAULT_BASE_URL
from .errors import (
    AuthenticationError,
    ConfigurationError,
    OverloadedError,
    RateLimitError,
    UpstreamProtocolError,
)

log = structlog.get_logger()

_OVERLOADED_STATUSES = (503, 529)


class Transport(Protocol):
    async def send(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    async def close(self) -> None: ...


def _retry_after(resp: httpx.Response) -> int | None:
    value = resp.headers.get("retry-after")
    return int(value) if value and value.isdigit() else None


def _error_type(resp: httpx.Response) -> str | None:
    try:
        body = resp.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    err = body.get("error")
    if isinstance(err, dict) and isinstance(err.get("type"), str):
        return err["type"]
    return None


class HttpTransport:
    """
    Single-attempt POST to an OpenAI-compatible `/chat/completions` endpoint.

    Every failure is raised as a `ProviderError` subclass so callers branch on
    `exc.kind` instead of status codes. Retrying is the controller's job.
    """

    def __init__(
        self,
        api_key: str,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 30,
    ):
        try:
            url = httpx.URL(f"{base_url.rstrip('/')}/chat/completions")
        except httpx.InvalidURL as e:
            raise ConfigurationError(f"Invalid base URL {base_url!r}.") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise ConfigurationError(f"Base URL must be an absolute http(s) URL, got {base_url!r}.")
        self._api_key = api_key
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def close(self) -> None:
        await self._client.aclose()

    def _classify_status(self, resp: httpx.Response) -> None:
        status = resp.status_code
        if status < 400:
            return
        if status in (401, 403):
            raise AuthenticationError("Upstream rejected credentials (check LLM_API_KEY).")
        if status == 429:
            raise RateLimitError(retry_after_seconds=_retry_after(resp))
        if status in _OVERLOADED_STATUSES or _error_type(resp) == "overloaded_error":
            raise OverloadedError(retry_after_seconds=_retry_after(resp))
        if status >= 500:
            log.warning("llm_upstream_5xx", status_code=status, body=resp.text[:500])
        raise UpstreamProtocolError(f"Upstream error {status}.")

    async def send(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            resp = await self._client.post(self._url, headers=headers, json=payload)
        except httpx.TimeoutException as e:
            raise UpstreamProtocolError("Upstream request timed out.") from e
        except httpx.HTTPError as e:
            raise UpstreamProtocolError("Upstream request failed.") from e

        self._classify_status(resp)

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamProtocolError("Upstream returned invalid JSON.") from e
        if not isinstance(data, dict):
            raise UpstreamProtocolError("Upstream response is not a JSON object.")
        return data
