import asyncio
import json

import httpx
import pytest
import structlog
from prometheus_client import REGISTRY
from pydantic import ValidationError

from llm_dispatch import (
    ConfigurationError,
    DispatchClient,
    DispatchConfig,
    DispatchError,
    RequestOptions,
    Turn,
    Usage,
    create_client_from_env,
)
from llm_dispatch.logging import Redactor
from llm_dispatch.transport import HttpTransport


def _cfg(**kwargs) -> DispatchConfig:
    base = dict(
        api_key="sk-test-key",
        default_model="m-default",
        fallback_model="m-fallback",
        default_system_prompt=None,
        credentials_path=None,
        debug=False,
    )
    base.update(kwargs)
    return DispatchConfig(**base)


async def no_sleep(_: float) -> None:
    return None


def _http_client(cfg: DispatchConfig, handler) -> DispatchClient:
    transport = HttpTransport(
        "sk-test-key",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        base_url="https://example.test/v1",
    )
    return DispatchClient(cfg, transport=transport, sleeper=no_sleep)


def _ok(content: str, **extra) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}], **extra})


def test_empty_credential_fails_before_any_network_call():
    calls = {"n": 0}

    class CountingTransport:
        async def send(self, payload):
            calls["n"] += 1
            return {}

        async def close(self):
            return None

    with pytest.raises(ConfigurationError):
        DispatchClient(_cfg(api_key=""), transport=CountingTransport())
    with pytest.raises(ConfigurationError):
        DispatchClient(_cfg(api_key="   "))
    assert calls["n"] == 0


@pytest.mark.asyncio
async def test_scenario_single_user_turn_uses_defaults():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content.decode("utf-8")))
        return _ok("hello")

    async with _http_client(_cfg(), handler) as client:
        res = await client.complete([{"role": "user", "content": "hi"}], {})

    assert res.content == "hello"
    assert res.model_used == "m-default"
    assert res.usage is None
    assert seen[0]["temperature"] == 0.3
    assert seen[0]["model"] == "m-default"
    assert seen[0]["messages"] == [{"role": "user", "content": "hi"}]


@pytest.mark.asyncio
async def test_scenario_rate_limited_twice_then_fallback_succeeds():
    seen_models = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_models.append(json.loads(request.content.decode("utf-8"))["model"])
        if len(seen_models) < 3:
            return httpx.Response(429, json={"error": {"message": "rl"}})
        return _ok("from fallback")

    async with _http_client(_cfg(), handler) as client:
        res = await client.complete([Turn(role="user", content="hi")])

    assert seen_models == ["m-default", "m-fallback", "m-fallback"]
    assert res.model_used == "m-fallback"
    assert res.content == "from fallback"
    assert res.attempts == 3


@pytest.mark.asyncio
async def test_scenario_all_attempts_fail():
    calls = {"n": 0}

    def handler(_: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(500, text="internal")

    async with _http_client(_cfg(), handler) as client:
        with pytest.raises(DispatchError) as exc:
            await client.complete([Turn(role="user", content="hi")])

    assert calls["n"] == 3
    assert exc.value.attempts == 3
    assert "3 attempts" in str(exc.value)
    assert "Upstream error 500." in str(exc.value)


@pytest.mark.asyncio
async def test_model_override_is_pinned_across_retries():
    seen_models = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_models.append(json.loads(request.content.decode("utf-8"))["model"])
        if len(seen_models) < 3:
            return httpx.Response(503, text="overloaded")
        return _ok("pinned")

    async with _http_client(_cfg(), handler) as client:
        res = await client.complete([Turn(role="user", content="hi")], RequestOptions(model="M"))

    assert seen_models == ["M", "M", "M"]
    assert res.model_used == "M"


@pytest.mark.asyncio
async def test_usage_reported_only_when_requested():
    def handler(_: httpx.Request) -> httpx.Response:
        return _ok("x", usage={"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 7})

    async with _http_client(_cfg(), handler) as client:
        without = await client.complete([Turn(role="user", content="hi")])
        with_usage = await client.complete([Turn(role="user", content="hi")], {"include_usage": True})

    assert without.usage is None
    assert with_usage.usage == Usage(prompt_tokens=3, completion_tokens=4, total_tokens=7)


@pytest.mark.asyncio
async def test_configured_system_prompt_is_injected():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content.decode("utf-8")))
        return _ok("x")

    async with _http_client(_cfg(default_system_prompt="be brief"), handler) as client:
        await client.complete([Turn(role="user", content="hi")])

    assert seen[0]["messages"][0] == {"role": "system", "content": "be brief"}


@pytest.mark.asyncio
async def test_unknown_option_is_rejected_before_dispatch():
    calls = {"n": 0}

    def handler(_: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return _ok("x")

    async with _http_client(_cfg(), handler) as client:
        with pytest.raises(ConfigurationError, match="maxTokens"):
            await client.complete([Turn(role="user", content="hi")], {"maxTokens": 5})
        with pytest.raises(ConfigurationError):
            await client.complete([{"role": "robot", "content": "hi"}])

    assert calls["n"] == 0


@pytest.mark.asyncio
async def test_concurrent_calls_keep_independent_tier_state():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content.decode("utf-8"))
        prompt = body["messages"][-1]["content"]
        if prompt == "busy" and body["model"] == "m-default":
            return httpx.Response(429, json={"error": {"message": "rl"}})
        return _ok(prompt)

    async with _http_client(_cfg(), handler) as client:
        busy, calm = await asyncio.gather(
            client.complete([Turn(role="user", content="busy")]),
            client.complete([Turn(role="user", content="calm")]),
        )

    assert busy.model_used == "m-fallback"
    assert calm.model_used == "m-default"


def test_config_is_immutable():
    cfg = _cfg()
    with pytest.raises(ValidationError):
        cfg.default_model = "other"


def _sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


@pytest.mark.asyncio
async def test_metrics_count_requests_attempts_and_escalations():
    def handler(request: httpx.Request) -> httpx.Response:
        if json.loads(request.content.decode("utf-8"))["model"] == "m-default":
            return httpx.Response(429, json={"error": {"message": "rl"}})
        return _ok("x")

    escalations = _sample("llm_dispatch_escalations_total")
    successes = _sample("llm_dispatch_requests_total", {"status": "success"})
    transient = _sample("llm_dispatch_attempts_total", {"tier": "default", "outcome": "transient_service"})
    fallback_ok = _sample("llm_dispatch_attempts_total", {"tier": "fallback", "outcome": "success"})

    async with _http_client(_cfg(), handler) as client:
        await client.complete([Turn(role="user", content="hi")])

    assert _sample("llm_dispatch_escalations_total") == escalations + 1
    assert _sample("llm_dispatch_requests_total", {"status": "success"}) == successes + 1
    assert (
        _sample("llm_dispatch_attempts_total", {"tier": "default", "outcome": "transient_service"})
        == transient + 1
    )
    assert _sample("llm_dispatch_attempts_total", {"tier": "fallback", "outcome": "success"}) == fallback_ok + 1


@pytest.mark.asyncio
async def test_failed_call_counts_as_error_request():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="internal")

    errors = _sample("llm_dispatch_requests_total", {"status": "error"})
    async with _http_client(_cfg(), handler) as client:
        with pytest.raises(DispatchError):
            await client.complete([Turn(role="user", content="hi")])

    assert _sample("llm_dispatch_requests_total", {"status": "error"}) == errors + 1


@pytest.mark.asyncio
async def test_create_client_from_env_reads_settings_and_redacts_key(monkeypatch):
    for name in ("LLM_CREDENTIALS_PATH", "CREDENTIALS_FERNET_KEY", "LLM_SYSTEM_PROMPT", "LLM_BASE_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LLM_API_KEY", "sk-from-env-123456")
    monkeypatch.setenv("LLM_MODEL", "env-default")
    monkeypatch.setenv("LLM_FALLBACK_MODEL", "env-fallback")
    monkeypatch.setenv("LLM_MAX_ATTEMPTS", "2")
    monkeypatch.setenv("LOG_FORMAT", "console")

    client = create_client_from_env()
    try:
        assert client.default_model == "env-default"
        assert client.fallback_model == "env-fallback"
        assert client.cfg.max_attempts == 2
        processors = structlog.get_config()["processors"]
        redactors = [p for p in processors if isinstance(p, Redactor)]
        assert redactors and redactors[0].secrets == ["sk-from-env-123456"]
    finally:
        await client.close()
        structlog.reset_defaults()


def test_create_client_from_env_rejects_bad_env_values(monkeypatch):
    monkeypatch.setenv("LLM_API_KEY", "sk-from-env-123456")
    monkeypatch.setenv("LLM_MAX_ATTEMPTS", "many")
    with pytest.raises(ConfigurationError):
        create_client_from_env()
