from __future__ import annotations

from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

registry = CollectorRegistry(auto_describe=True)

PROVIDER_CALL_DURATION = Histogram(
    "mangamachine_provider_call_duration_seconds",
    "Latency for a single image provider attempt.",
    ["provider"],
    registry=registry,
)

PROVIDER_CALLS_TOTAL = Counter(
    "mangamachine_provider_calls_total",
    "Provider attempts partitioned by provider and outcome.",
    ["provider", "status"],
    registry=registry,
)

RETRIES_TOTAL = Counter(
    "mangamachine_retries_total",
    "Retry sleeps scheduled, labeled by whether the failure looked like overload.",
    ["provider", "overloaded"],
    registry=registry,
)

FALLBACKS_TOTAL = Counter(
    "mangamachine_fallbacks_total",
    "Requests re-issued against the alternate provider.",
    ["primary", "alternate"],
    registry=registry,
)

SANITIZED_RETRIES_TOTAL = Counter(
    "mangamachine_sanitized_retries_total",
    "Content-policy rejections retried with a sanitized prompt.",
    ["provider"],
    registry=registry,
)

CACHE_LOOKUPS_TOTAL = Counter(
    "mangamachine_cache_lookups_total",
    "Cache lookups by namespace and result.",
    ["namespace", "result"],
    registry=registry,
)

BATCH_DURATION = Histogram(
    "mangamachine_batch_duration_seconds",
    "Wall-clock duration of a full panel batch.",
    registry=registry,
)

JOB_OUTCOMES_TOTAL = Counter(
    "mangamachine_job_outcomes_total",
    "Panel job outcomes by result kind.",
    ["outcome"],
    registry=registry,
)


@contextmanager
def track_provider_call(provider: str):
    with PROVIDER_CALL_DURATION.labels(provider=provider).time():
        yield


def record_provider_call(provider: str, status: str) -> None:
    PROVIDER_CALLS_TOTAL.labels(provider=provider, status=status).inc()


def record_retry(provider: str, overloaded: bool) -> None:
    RETRIES_TOTAL.labels(provider=provider, overloaded="true" if overloaded else "false").inc()


def record_fallback(primary: str, alternate: str) -> None:
    FALLBACKS_TOTAL.labels(primary=primary, alternate=alternate).inc()


def record_sanitized_retry(provider: str) -> None:
    SANITIZED_RETRIES_TOTAL.labels(provider=provider).inc()


def record_cache_lookup(namespace: str, hit: bool) -> None:
    CACHE_LOOKUPS_TOTAL.labels(namespace=namespace, result="hit" if hit else "miss").inc()


def record_job_outcome(outcome: str) -> None:
    JOB_OUTCOMES_TOTAL.labels(outcome=outcome).inc()


def get_metrics_payload() -> bytes:
    return generate_latest(registry)
