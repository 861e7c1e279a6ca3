"""The generation orchestrator: one value that request handlers depend on.

It ties provider routing, retries, fallback, caching, batch scheduling and
optional artifact persistence together. Every public coroutine resolves
provider trouble into ``GenerationFailure`` values instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Protocol, Sequence

from mangamachine.core.metrics import BATCH_DURATION, record_job_outcome
from mangamachine.core.request_context import get_request_id, log_context
from mangamachine.core.telemetry import trace_span
from mangamachine.orchestration.batch import (
    BatchScheduler,
    choose_concurrency,
    clamp_concurrency,
    ensure_unique_sequence_numbers,
    plan_batches,
)
from mangamachine.orchestration.cache import CacheStats, CacheStore
from mangamachine.orchestration.fallback import FallbackCoordinator
from mangamachine.orchestration.fingerprint import (
    character_set_fingerprint,
    panel_fingerprint,
    request_fingerprint,
)
from mangamachine.orchestration.models import (
    DEFAULT_IMAGE_SIZE,
    MAX_REFERENCE_IMAGES,
    BatchReport,
    BatchSummary,
    CharacterReferenceResult,
    CharacterSetResult,
    CharacterSpec,
    GenerationContext,
    GenerationRequest,
    GenerationResult,
    GenerationSuccess,
    ImageSize,
    ModelPreference,
    PanelJob,
    PanelResult,
    ProviderHandle,
    ProviderName,
    ReferenceImage,
    SettingDescription,
)
from mangamachine.orchestration.prompts import build_character_prompt, build_panel_prompt
from mangamachine.orchestration.references import select_references
from mangamachine.orchestration.retry import RetryPolicy, Sleep
from mangamachine.orchestration.sanitizer import Sanitizer
from mangamachine.orchestration.selector import alternate_provider, detect_language, select_provider

if TYPE_CHECKING:
    from mangamachine.services.provider_base import ProviderHandler

logger = logging.getLogger(__name__)

DEFAULT_PANEL_TTL_SECONDS = 4 * 60 * 60
DEFAULT_CHARACTER_TTL_SECONDS = 2 * 60 * 60


class ArtifactStore(Protocol):
    def save_artifact(
        self,
        project_id: str,
        sequence_number: int,
        image: Any,
        metadata: Mapping[str, Any] | None = None,
    ) -> str: ...


def _names_overlap(a: str, b: str) -> bool:
    a, b = a.strip().casefold(), b.strip().casefold()
    if not a or not b:
        return False
    return a in b or b in a


class GenerationOrchestrator:
    def __init__(
        self,
        providers: Iterable[ProviderHandler],
        *,
        cache: CacheStore | None = None,
        storage: ArtifactStore | None = None,
        retry_policy: RetryPolicy | None = None,
        fallback_policy: RetryPolicy | None = None,
        reference_policy: RetryPolicy | None = None,
        sanitizer: Sanitizer | None = None,
        scheduler: BatchScheduler | None = None,
        max_concurrency: int = 5,
        panel_ttl_seconds: float = DEFAULT_PANEL_TTL_SECONDS,
        character_ttl_seconds: float = DEFAULT_CHARACTER_TTL_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ):
        self._providers: dict[ProviderName, ProviderHandler] = {p.name: p for p in providers}
        self.cache = cache if cache is not None else CacheStore()
        self._storage = storage
        self.retry_policy = retry_policy or RetryPolicy()
        self.reference_policy = reference_policy or self.retry_policy
        self._fallback = FallbackCoordinator(
            self._providers,
            self.retry_policy,
            fallback_policy=fallback_policy,
            sanitizer=sanitizer,
            sleep=sleep,
        )
        self._scheduler = scheduler or BatchScheduler(sleep=sleep)
        self.max_concurrency = max(1, max_concurrency)
        self.panel_ttl_seconds = panel_ttl_seconds
        self.character_ttl_seconds = character_ttl_seconds

    @property
    def providers(self) -> dict[ProviderName, ProviderHandle]:
        return {name: handler.handle for name, handler in self._providers.items()}

    def available_models(self) -> list[str]:
        available = [name.value for name in ProviderName if self._is_available(name)]
        return [ModelPreference.AUTO.value, *available]

    def is_model_available(self, name: str) -> bool:
        if name == ModelPreference.AUTO.value:
            return any(self._is_available(p) for p in ProviderName)
        try:
            return self._is_available(ProviderName(name))
        except ValueError:
            return False

    def _is_available(self, name: ProviderName) -> bool:
        handler = self._providers.get(name)
        return handler is not None and handler.handle.available

    def route(self, language: str, preference: ModelPreference) -> tuple[ProviderName, ProviderName | None]:
        """Return the primary provider and the fallback, if one is usable."""
        primary = select_provider(language, preference)
        alternate = alternate_provider(primary)
        if preference is ModelPreference.AUTO and not self._is_available(primary) and self._is_available(alternate):
            # Auto routing never spends the primary budget on a backend with no credentials.
            return alternate, None
        return primary, alternate if self._is_available(alternate) else None

    async def _dispatch(self, request: GenerationRequest, policy: RetryPolicy | None = None) -> GenerationResult:
        primary, alternate = self.route(request.language, request.provider_preference)
        with log_context(provider=primary.value):
            return await self._fallback.with_fallback(primary, alternate, request, policy)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate one image for a free-form request, through the cache."""
        if not request.language:
            request = replace(request, language=detect_language(request.prompt))

        fingerprint = request_fingerprint(request)
        cached = self.cache.get(fingerprint)
        if cached is not None:
            record_job_outcome("cached")
            return replace(cached, cached=True)

        with trace_span("generation.request", style=request.style, language=request.language):
            result = await self._dispatch(request)
        if result.ok:
            self.cache.put(fingerprint, result, ttl_seconds=self.panel_ttl_seconds)
        record_job_outcome("success" if result.ok else "failure")
        return result

    async def _persist(
        self,
        project_id: str,
        sequence_number: int,
        result: GenerationSuccess,
        fingerprint: str,
    ) -> GenerationSuccess:
        if self._storage is None:
            return result
        metadata = {
            "provider": result.provider_used.value,
            "fingerprint": fingerprint,
            "request_id": get_request_id(),
        }
        try:
            url = await asyncio.to_thread(
                self._storage.save_artifact,
                project_id,
                sequence_number,
                result.image,
                metadata,
            )
        except Exception:  # noqa: BLE001
            logger.exception("artifact persistence failed project_id=%s", project_id)
            return result
        return replace(result, public_url=url)

    async def generate_panel(
        self,
        job: PanelJob,
        context: GenerationContext,
        *,
        project_id: str | None = None,
    ) -> GenerationResult:
        with log_context(panel_number=job.sequence_number), trace_span(
            "generation.panel",
            panel_number=job.sequence_number,
            style=context.style,
        ):
            references = select_references(
                job,
                context.character_references,
                context.setting_references,
                max_slots=MAX_REFERENCE_IMAGES,
            )
            prompt = build_panel_prompt(job, context, references)
            fingerprint = panel_fingerprint(job.sequence_number, prompt, references, context.style, context.size)

            cached = self.cache.get(fingerprint)
            if cached is not None:
                result = replace(cached, cached=True)
                if project_id:
                    result = await self._persist(project_id, job.sequence_number, result, fingerprint)
                logger.info("panel served from cache")
                record_job_outcome("cached")
                return result

            request = GenerationRequest(
                prompt=prompt,
                style=context.style,
                language=context.language or detect_language(job.description),
                reference_images=tuple(references),
                provider_preference=context.provider_preference,
                size=context.size,
                job_key=str(job.sequence_number),
                description=job.description,
            )
            result = await self._dispatch(request)
            if result.ok:
                # Cached entries carry no project URL.
                self.cache.put(fingerprint, result, ttl_seconds=self.panel_ttl_seconds)
                if project_id:
                    result = await self._persist(project_id, job.sequence_number, result, fingerprint)
                logger.info("panel generated provider=%s", result.provider_used.value)
            else:
                logger.warning(
                    "panel failed kind=%s cause=%s message=%s",
                    result.error_kind.value,
                    result.cause.value if result.cause else None,
                    result.message,
                )
            record_job_outcome("success" if result.ok else "failure")
            return result

    async def run_batch(
        self,
        jobs: Sequence[PanelJob],
        context: GenerationContext,
        *,
        concurrency_limit: int | None = None,
        project_id: str | None = None,
    ) -> BatchReport:
        """Generate every job, at most ``concurrency_limit`` at a time.

        The report always holds one result per job, in input order. Duplicate
        sequence numbers are rejected before any provider call.
        """
        jobs = list(jobs)
        ensure_unique_sequence_numbers(jobs)

        if concurrency_limit is not None:
            limit = clamp_concurrency(concurrency_limit, self.max_concurrency)
        else:
            sample = jobs[0].description if jobs else ""
            primary, _ = self.route(context.language or detect_language(sample), context.provider_preference)
            limit = choose_concurrency(len(jobs), primary, self.max_concurrency)

        async def worker(job: PanelJob) -> GenerationResult:
            return await self.generate_panel(job, context, project_id=project_id)

        started = time.perf_counter()
        with BATCH_DURATION.time(), trace_span("generation.batch", total=len(jobs), concurrency_limit=limit):
            results: list[PanelResult] = await self._scheduler.run_batch(jobs, limit, worker) if jobs else []
        duration_ms = (time.perf_counter() - started) * 1000

        succeeded = sum(1 for item in results if item.ok)
        summary = BatchSummary(
            total=len(jobs),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            cached=sum(1 for item in results if item.ok and item.result.cached),
            duration_ms=duration_ms,
            concurrency_limit=limit,
            batch_sizes=plan_batches(jobs, limit).sizes,
        )
        logger.info(
            "batch finished total=%d succeeded=%d failed=%d cached=%d duration_ms=%.0f",
            summary.total,
            summary.succeeded,
            summary.failed,
            summary.cached,
            summary.duration_ms,
        )
        return BatchReport(results=results, summary=summary)

    async def generate_character_references(
        self,
        characters: Sequence[CharacterSpec],
        setting: SettingDescription = SettingDescription(),
        style: str = "manga",
        *,
        uploads: Sequence[ReferenceImage] = (),
        language: str | None = None,
        provider_preference: ModelPreference = ModelPreference.AUTO,
        size: ImageSize = DEFAULT_IMAGE_SIZE,
    ) -> CharacterSetResult:
        """Generate one reference sheet per character, one character at a time.

        The set is cached as a unit, and only when every character succeeded.
        """
        characters = list(characters)
        if not characters:
            raise ValueError("at least one character is required")

        fingerprint = character_set_fingerprint(characters, setting, style, size, uploads)
        cached = self.cache.get(fingerprint)
        if cached is not None:
            record_job_outcome("cached")
            return replace(cached, cached=True)

        if not language:
            language = detect_language(" ".join(f"{c.name} {c.physical_description}" for c in characters))

        generated: list[CharacterReferenceResult] = []
        with trace_span("generation.characters", total=len(characters), style=style):
            for character in characters:
                matching = [ref for ref in uploads if _names_overlap(ref.name, character.name)]
                request = GenerationRequest(
                    prompt=build_character_prompt(character, setting, style, bool(matching)),
                    style=style,
                    language=language,
                    reference_images=tuple(matching[:MAX_REFERENCE_IMAGES]),
                    provider_preference=provider_preference,
                    size=size,
                    job_key=f"character:{character.name}",
                )
                result = await self._dispatch(request, self.reference_policy)
                if not result.ok:
                    logger.warning(
                        "character reference failed name=%s kind=%s",
                        character.name,
                        result.error_kind.value,
                    )
                record_job_outcome("success" if result.ok else "failure")
                generated.append(CharacterReferenceResult(name=character.name, result=result))

        character_set = CharacterSetResult(characters=tuple(generated))
        if character_set.ok:
            self.cache.put(fingerprint, character_set, ttl_seconds=self.character_ttl_seconds)
        return character_set

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.clear()

    async def aclose(self) -> None:
        for handler in self._providers.values():
            await handler.aclose()
