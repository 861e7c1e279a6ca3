"""Content fingerprints used as cache keys.

A fingerprint is ``<namespace>:<sha256>`` over a canonical JSON document of
every input that changes the generated image. Fields left out on purpose
(language tag, provider preference, request metadata) never reach the hash.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Iterable, Sequence

from mangamachine.orchestration.models import (
    CharacterSpec,
    GenerationRequest,
    ImageSize,
    ReferenceImage,
    SettingDescription,
)

NAMESPACE_REQUEST = "request"
NAMESPACE_PANEL = "panel"
NAMESPACE_CHARACTER_SET = "character_set"

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_description(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def _size_key(size: ImageSize) -> dict[str, Any]:
    return {
        "width": size.width,
        "height": size.height,
        "aspect_ratio": size.aspect_ratio,
        "volcengine_size": size.volcengine_size,
    }


def _reference_ids(references: Iterable[ReferenceImage]) -> list[str]:
    return [ref.identity for ref in references]


def compute_fingerprint(namespace: str, fields: dict[str, Any]) -> str:
    canonical = json.dumps(fields, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{namespace}:{digest}"


def fingerprint_namespace(fingerprint: str) -> str:
    return fingerprint.split(":", 1)[0]


def request_fingerprint(request: GenerationRequest) -> str:
    return compute_fingerprint(
        NAMESPACE_REQUEST,
        {
            "job": request.job_key,
            "prompt": normalize_description(request.prompt),
            "description": normalize_description(request.description),
            "references": _reference_ids(request.reference_images),
            "style": request.style,
            "size": _size_key(request.size),
        },
    )


def panel_fingerprint(
    sequence_number: int,
    description: str,
    references: Sequence[ReferenceImage],
    style: str,
    size: ImageSize,
) -> str:
    return compute_fingerprint(
        NAMESPACE_PANEL,
        {
            "job": sequence_number,
            "description": normalize_description(description),
            "references": _reference_ids(references),
            "style": style,
            "size": _size_key(size),
        },
    )


def character_set_fingerprint(
    characters: Sequence[CharacterSpec],
    setting: SettingDescription,
    style: str,
    size: ImageSize,
    uploads: Sequence[ReferenceImage] = (),
) -> str:
    return compute_fingerprint(
        NAMESPACE_CHARACTER_SET,
        {
            "characters": [
                {
                    "name": c.name,
                    "physical_description": normalize_description(c.physical_description),
                    "personality": normalize_description(c.personality),
                    "role": normalize_description(c.role),
                }
                for c in characters
            ],
            "setting": {
                "location": setting.location,
                "time_period": setting.time_period,
                "mood": setting.mood,
            },
            "style": style,
            "size": _size_key(size),
            "references": _reference_ids(uploads),
        },
    )
