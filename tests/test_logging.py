import structlog

from llm_dispatch.logging import REDACTED, Redactor, configure_logging


def test_redacts_sensitive_keys_but_keeps_token_counters():
    event = Redactor()(None, "info", {"event": "x", "api_key": "abc", "prompt_tokens": 5, "max_tokens": 9})
    assert event["api_key"] == REDACTED
    assert event["prompt_tokens"] == 5
    assert event["max_tokens"] == 9


def test_redacts_configured_secrets_and_bearer_tokens_in_nested_values():
    redact = Redactor(secrets=["super-secret-value"])
    event = redact(
        None,
        "debug",
        {
            "event": "dispatch_request",
            "payload": {"messages": [{"role": "user", "content": "my key is super-secret-value"}]},
            "header": "Bearer abcdef123456",
            "note": "leaked sk-abcdefghijklmnop",
        },
    )
    assert event["payload"]["messages"][0]["content"] == f"my key is {REDACTED}"
    assert event["header"] == f"Bearer {REDACTED}"
    assert event["note"] == f"leaked {REDACTED}"


def test_configure_logging_installs_redactor():
    configure_logging(level="DEBUG", fmt="console", secrets=["s3cr3t"])
    try:
        processors = structlog.get_config()["processors"]
        assert any(isinstance(p, Redactor) and p.secrets == ["s3cr3t"] for p in processors)
    finally:
        structlog.reset_defaults()
