"""
Generation orchestration engine.

Routes image requests to providers, retries and falls back, caches artifacts
by fingerprint, and runs panel batches under a concurrency bound.
"""

from __future__ import annotations

from .batch import BatchScheduler, choose_concurrency, plan_batches
from .cache import CacheStats, CacheStore
from .fallback import FallbackCoordinator
from .models import (
    BatchReport,
    BatchSummary,
    CharacterSetResult,
    CharacterSpec,
    ErrorKind,
    GenerationContext,
    GenerationFailure,
    GenerationRequest,
    GenerationResult,
    GenerationSuccess,
    ImageData,
    ImageSize,
    ModelPreference,
    PanelJob,
    PanelResult,
    ProviderName,
    ReferenceCategory,
    ReferenceImage,
    SettingDescription,
)
from .orchestrator import GenerationOrchestrator
from .retry import RetryPolicy, with_retry
from .sanitizer import PromptSanitizer
from .selector import detect_language, select_provider

__all__ = [
    "BatchReport",
    "BatchScheduler",
    "BatchSummary",
    "CacheStats",
    "CacheStore",
    "CharacterSetResult",
    "CharacterSpec",
    "ErrorKind",
    "FallbackCoordinator",
    "GenerationContext",
    "GenerationFailure",
    "GenerationOrchestrator",
    "GenerationRequest",
    "GenerationResult",
    "GenerationSuccess",
    "ImageData",
    "ImageSize",
    "ModelPreference",
    "PanelJob",
    "PanelResult",
    "PromptSanitizer",
    "ProviderName",
    "ReferenceCategory",
    "ReferenceImage",
    "RetryPolicy",
    "SettingDescription",
    "choose_concurrency",
    "detect_language",
    "plan_batches",
    "select_provider",
    "with_retry",
]
