from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Mapping

from mangamachine.core.metrics import record_fallback, record_sanitized_retry
from mangamachine.orchestration.models import (
    ErrorKind,
    GenerationFailure,
    GenerationRequest,
    GenerationResult,
    ProviderName,
)
from mangamachine.orchestration.retry import RetryPolicy, Sleep, with_retry
from mangamachine.orchestration.sanitizer import PromptSanitizer, Sanitizer

if TYPE_CHECKING:
    from mangamachine.services.provider_base import ProviderHandler

logger = logging.getLogger(__name__)


def all_providers_failed(last: GenerationFailure) -> GenerationFailure:
    if last.error_kind is ErrorKind.ALL_PROVIDERS_FAILED:
        return last
    provider = last.provider_attempted.value if last.provider_attempted else "unknown"
    return GenerationFailure(
        error_kind=ErrorKind.ALL_PROVIDERS_FAILED,
        message=f"all providers failed; last error from {provider}: {last.message}",
        provider_attempted=last.provider_attempted,
        cause=last.error_kind,
    )


class FallbackCoordinator:
    """Primary provider with its full retry budget, then one alternate attempt.

    Content-policy rejections take a different path: the prompt is sanitized
    and the same provider gets one more try before the alternate is used.
    """

    def __init__(
        self,
        providers: Mapping[ProviderName, ProviderHandler],
        retry_policy: RetryPolicy,
        fallback_policy: RetryPolicy | None = None,
        sanitizer: Sanitizer | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self._providers = dict(providers)
        self.retry_policy = retry_policy
        self.fallback_policy = fallback_policy or retry_policy.with_attempts(1)
        self._sanitizer = sanitizer if sanitizer is not None else PromptSanitizer()
        self._sleep = sleep

    async def with_fallback(
        self,
        primary: ProviderName,
        alternate: ProviderName | None,
        request: GenerationRequest,
        policy: RetryPolicy | None = None,
    ) -> GenerationResult:
        policy = policy or self.retry_policy
        result = await self.run_provider(primary, request, policy)
        if result.ok:
            return result

        if result.error_kind is ErrorKind.CONTENT_POLICY_REJECTED:
            sanitized = self._sanitizer(request.prompt)
            if sanitized and sanitized != request.prompt:
                logger.info("content policy rejection, retrying with sanitized prompt provider=%s", primary.value)
                record_sanitized_retry(primary.value)
                result = await self.run_provider(primary, request.with_prompt(sanitized), policy.with_attempts(1))
                if result.ok:
                    return result

        if alternate is None or alternate == primary:
            return all_providers_failed(result)

        logger.warning(
            "primary provider failed, trying fallback primary=%s alternate=%s kind=%s",
            primary.value,
            alternate.value,
            result.error_kind.value,
        )
        record_fallback(primary.value, alternate.value)
        fallback_result = await self.run_provider(alternate, request, self._fallback_policy_for(policy))
        if fallback_result.ok:
            return fallback_result
        return all_providers_failed(fallback_result)

    async def run_provider(
        self,
        name: ProviderName,
        request: GenerationRequest,
        policy: RetryPolicy,
    ) -> GenerationResult:
        handler = self._providers.get(name)
        if handler is None or not handler.handle.available:
            return GenerationFailure(
                ErrorKind.PROVIDER_UNAVAILABLE,
                f"{name.value} is not configured",
                name,
            )

        async def operation() -> GenerationResult:
            return await handler.generate(
                request.prompt,
                request.reference_images,
                request.language,
                request.size,
                request.style,
            )

        return await with_retry(operation, policy, provider=name, sleep=self._sleep)

    def _fallback_policy_for(self, policy: RetryPolicy) -> RetryPolicy:
        # Alternate attempt budget, call-site timeout and delays.
        return policy.with_attempts(self.fallback_policy.max_attempts)
