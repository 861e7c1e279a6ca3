"""
Centralized provider and orchestrator factory.

Builds every provider handler from application settings once, at start-up,
and wires them into a single ``GenerationOrchestrator``. A provider without
credentials is still built, reports itself unavailable, and never fails
start-up.
"""

from __future__ import annotations

import logging

from mangamachine.core.exceptions import ProviderNotConfiguredError
from mangamachine.core.settings import Settings, settings as default_settings
from mangamachine.orchestration.batch import BatchScheduler
from mangamachine.orchestration.cache import CacheStore
from mangamachine.orchestration.models import ProviderName
from mangamachine.orchestration.orchestrator import GenerationOrchestrator
from mangamachine.orchestration.retry import RetryPolicy
from mangamachine.services.gemini_image import GeminiImageProvider
from mangamachine.services.provider_base import ProviderHandler
from mangamachine.services.storage import LocalMediaStore
from mangamachine.services.volcengine import VolcEngineImageProvider

logger = logging.getLogger(__name__)

_CREDENTIAL_ENV_VARS = {
    ProviderName.GEMINI: "GEMINI_API_KEY",
    ProviderName.VOLCENGINE: "VOLCENGINE_API_KEY",
}


def build_providers(config: Settings | None = None) -> list[ProviderHandler]:
    config = config or default_settings
    providers: list[ProviderHandler] = [
        GeminiImageProvider(
            api_key=config.gemini_api_key,
            image_model=config.gemini_image_model,
        ),
        VolcEngineImageProvider(
            api_key=config.volcengine_api_key,
            base_url=config.volcengine_base_url,
            image_model=config.volcengine_image_model,
            timeout_seconds=config.provider_timeout_seconds,
        ),
    ]
    for provider in providers:
        if not provider.handle.available:
            logger.warning(
                "provider not configured provider=%s env_var=%s",
                provider.name.value,
                _CREDENTIAL_ENV_VARS[provider.name],
            )
    return providers


def require_provider(orchestrator: GenerationOrchestrator, name: ProviderName) -> None:
    """Raise when a provider that the caller explicitly asked for has no credentials.

    Raises:
        ProviderNotConfiguredError: If the provider is unavailable.
    """
    if not orchestrator.is_model_available(name.value):
        raise ProviderNotConfiguredError(name.value, _CREDENTIAL_ENV_VARS[name])


def build_retry_policy(config: Settings, timeout_seconds: float | None = None) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.retry_max_attempts,
        base_delay=config.retry_base_delay_seconds,
        overload_base_delay=config.retry_overload_base_delay_seconds,
        max_delay=config.retry_max_delay_seconds,
        timeout_seconds=timeout_seconds if timeout_seconds is not None else config.provider_timeout_seconds,
    )


def build_orchestrator(
    config: Settings | None = None,
    providers: list[ProviderHandler] | None = None,
) -> GenerationOrchestrator:
    config = config or default_settings
    retry_policy = build_retry_policy(config)
    return GenerationOrchestrator(
        providers if providers is not None else build_providers(config),
        cache=CacheStore(
            max_bytes=config.cache_max_bytes,
            default_ttl_seconds=config.cache_panel_ttl_seconds,
        ),
        storage=LocalMediaStore(config.media_root, config.media_url_prefix),
        retry_policy=retry_policy,
        fallback_policy=retry_policy.with_attempts(config.fallback_max_attempts),
        reference_policy=build_retry_policy(config, config.reference_timeout_seconds),
        scheduler=BatchScheduler(
            stagger_seconds=config.batch_stagger_seconds,
            delay_seconds=config.batch_delay_seconds,
            slow_delay_seconds=config.batch_slow_delay_seconds,
            slow_threshold_seconds=config.batch_slow_threshold_seconds,
        ),
        max_concurrency=config.batch_max_concurrency,
        panel_ttl_seconds=config.cache_panel_ttl_seconds,
        character_ttl_seconds=config.cache_character_ttl_seconds,
    )
