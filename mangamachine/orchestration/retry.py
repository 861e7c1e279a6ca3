from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from typing import Awaitable, Callable

from mangamachine.core.metrics import record_provider_call, record_retry, track_provider_call
from mangamachine.orchestration.models import (
    NON_RETRYABLE_KINDS,
    ErrorKind,
    GenerationFailure,
    GenerationResult,
    ProviderName,
)

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[GenerationResult]]
Sleep = Callable[[float], Awaitable[None]]

_OVERLOAD_RE = re.compile(r"overload|503|unavailable", re.IGNORECASE)

_ERROR_PATTERNS: tuple[tuple[ErrorKind, Callable[[str], bool]], ...] = (
    (ErrorKind.OVERLOADED, lambda t: "RESOURCE_EXHAUSTED" in t or "429" in t or "rate limit" in t.lower()),
    (ErrorKind.CONTENT_POLICY_REJECTED, lambda t: "SAFETY" in t.upper() or "blocked" in t.lower()),
    (ErrorKind.TIMEOUT, lambda t: "timeout" in t.lower() or "timed out" in t.lower() or "deadline" in t.lower()),
    (ErrorKind.OVERLOADED, lambda t: _OVERLOAD_RE.search(t) is not None),
)


def classify_error_text(error_text: str) -> ErrorKind:
    """Map an upstream error message onto the error taxonomy."""
    for kind, matches in _ERROR_PATTERNS:
        if matches(error_text):
            return kind
    return ErrorKind.PROVIDER_ERROR


def failure_from_exception(exc: BaseException, provider: ProviderName | None) -> GenerationFailure:
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return GenerationFailure(ErrorKind.TIMEOUT, "provider call timed out", provider)
    text = str(exc) or exc.__class__.__name__
    return GenerationFailure(classify_error_text(text), text, provider)


def is_overload_failure(failure: GenerationFailure) -> bool:
    if failure.error_kind is ErrorKind.OVERLOADED:
        return True
    return _OVERLOAD_RE.search(failure.message or "") is not None


@dataclass(frozen=True)
class RetryPolicy:
    """How many times and how patiently to repeat one provider call.

    ``timeout_seconds`` bounds each attempt separately; ``None`` disables it.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    overload_base_delay: float = 3.0
    max_delay: float = 15.0
    timeout_seconds: float | None = 120.0
    overload_classifier: Callable[[GenerationFailure], bool] = is_overload_failure

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def backoff(self, attempt: int, overloaded: bool) -> float:
        """Delay after the ``attempt``-th failure (1-based)."""
        base = self.overload_base_delay if overloaded else self.base_delay
        return min(base * (2 ** (attempt - 1)), self.max_delay)

    def with_attempts(self, max_attempts: int) -> RetryPolicy:
        return replace(self, max_attempts=max_attempts)


async def _run_attempt(
    operation: Operation,
    timeout_seconds: float | None,
    provider: ProviderName | None,
) -> GenerationResult:
    label = provider.value if provider else "unknown"
    try:
        with track_provider_call(label):
            if timeout_seconds is None:
                result = await operation()
            else:
                result = await asyncio.wait_for(operation(), timeout=timeout_seconds)
    except asyncio.CancelledError:
        raise
    except Exception as exc:  # noqa: BLE001
        result = failure_from_exception(exc, provider)
    record_provider_call(label, "success" if result.ok else result.error_kind.value)
    return result


async def with_retry(
    operation: Operation,
    policy: RetryPolicy,
    *,
    provider: ProviderName | None = None,
    sleep: Sleep = asyncio.sleep,
) -> GenerationResult:
    """Run ``operation`` until it succeeds or the attempt budget is spent.

    Never raises for provider failures: the last failure is returned instead.
    Delays never shrink between attempts, even when an overload failure is
    followed by an ordinary one.
    """
    last: GenerationFailure | None = None
    delay = 0.0

    for attempt in range(1, policy.max_attempts + 1):
        result = await _run_attempt(operation, policy.timeout_seconds, provider)
        if result.ok:
            if attempt > 1:
                logger.info("provider call recovered attempt=%d/%d", attempt, policy.max_attempts)
            return result

        last = result
        if result.error_kind in NON_RETRYABLE_KINDS:
            logger.warning(
                "provider call failed without retry kind=%s error=%s",
                result.error_kind.value,
                result.message,
            )
            break
        if attempt >= policy.max_attempts:
            break

        overloaded = policy.overload_classifier(result)
        delay = max(delay, policy.backoff(attempt, overloaded))
        record_retry(provider.value if provider else "unknown", overloaded)
        logger.warning(
            "provider call failed attempt=%d/%d kind=%s overloaded=%s retry_in=%.1fs error=%s",
            attempt,
            policy.max_attempts,
            result.error_kind.value,
            overloaded,
            delay,
            result.message,
        )
        await sleep(delay)

    if last is None:
        raise RuntimeError("retry loop finished without an attempt")
    return last
