"""Uniform contract every image backend is wrapped behind."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from mangamachine.orchestration.models import (
    ErrorKind,
    GenerationFailure,
    GenerationResult,
    ImageSize,
    ProviderHandle,
    ProviderName,
    ReferenceImage,
)


def is_placeholder_credential(value: str | None) -> bool:
    if not value or not value.strip():
        return True
    lowered = value.strip().lower()
    return "your_" in lowered


class ProviderHandler(ABC):
    """One external backend, one remote call per ``generate``.

    Implementations normalize every response shape into ``ImageData`` and
    report failures as ``GenerationFailure`` values. They never retry, cache or
    fall back; the orchestrator layers those on top.
    """

    handle: ProviderHandle

    @property
    def name(self) -> ProviderName:
        return self.handle.name

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        reference_images: Sequence[ReferenceImage],
        language: str,
        size: ImageSize,
        style: str,
    ) -> GenerationResult:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None

    def usable_references(self, reference_images: Sequence[ReferenceImage]) -> list[ReferenceImage]:
        usable = [ref for ref in reference_images if ref.encoding in self.handle.reference_encodings]
        return usable[: self.handle.max_reference_images]

    def unavailable(self) -> GenerationFailure:
        return GenerationFailure(
            ErrorKind.PROVIDER_UNAVAILABLE,
            f"{self.name.value} is not configured",
            self.name,
        )

    def failure(self, kind: ErrorKind, message: str) -> GenerationFailure:
        return GenerationFailure(kind, message, self.name)
