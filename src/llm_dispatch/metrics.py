from __future__ import annotations

from prometheus_client import Counter, Histogram

requests_total = Counter(
    "llm_dispatch_requests_total",
    "Total complete() calls handled by the dispatch client",
    labelnames=["status"],
)

attempts_total = Counter(
    "llm_dispatch_attempts_total",
    "Transport attempts by model tier and outcome",
    labelnames=["tier", "outcome"],
)

escalations_total = Counter(
    "llm_dispatch_escalations_total",
    "Calls escalated from the default to the fallback tier",
)

request_latency_seconds = Histogram(
    "llm_dispatch_request_latency_seconds",
    "End-to-end complete() latency including retries",
    buckets=[0.1, 0.3, 0.5, 1, 2, 5, 10, 30, 60],
)
