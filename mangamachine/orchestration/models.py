"""Value types shared by the orchestration engine.

Everything here is immutable once built: requests, jobs and contexts are
handed to concurrent tasks and must not change under them.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Union

MAX_REFERENCE_IMAGES = 4


class ProviderName(str, Enum):
    GEMINI = "gemini"
    VOLCENGINE = "volcengine"


class ModelPreference(str, Enum):
    AUTO = "auto"
    GEMINI = "gemini"
    VOLCENGINE = "volcengine"


class ErrorKind(str, Enum):
    TIMEOUT = "timeout"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    OVERLOADED = "overloaded"
    CONTENT_POLICY_REJECTED = "content_policy_rejected"
    INVALID_RESPONSE = "invalid_response"
    PROVIDER_ERROR = "provider_error"
    ALL_PROVIDERS_FAILED = "all_providers_failed"


# Failures the retry controller never repeats: repeating them cannot change
# the outcome without changing the request.
NON_RETRYABLE_KINDS = frozenset({ErrorKind.CONTENT_POLICY_REJECTED, ErrorKind.PROVIDER_UNAVAILABLE})

CAPACITY_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.OVERLOADED, ErrorKind.PROVIDER_UNAVAILABLE})


class ReferenceCategory(str, Enum):
    CHARACTER = "character"
    SETTING = "setting"


class ReferenceEncoding(str, Enum):
    INLINE = "inline"
    URL = "url"


@dataclass(frozen=True)
class ImageData:
    data: bytes
    mime_type: str = "image/png"

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    def digest(self) -> str:
        return hashlib.sha256(self.data).hexdigest()


@dataclass(frozen=True)
class ImageSize:
    name: str
    width: int
    height: int
    aspect_ratio: str
    volcengine_size: str


SIZE_PRESETS: dict[str, ImageSize] = {
    "landscape_16_9": ImageSize("landscape_16_9", 1920, 1080, "16:9", "2K"),
    "landscape_4_3": ImageSize("landscape_4_3", 1600, 1200, "4:3", "2K"),
    "square_1_1": ImageSize("square_1_1", 1024, 1024, "1:1", "1K"),
    "portrait_9_16": ImageSize("portrait_9_16", 1080, 1920, "9:16", "2K"),
    "portrait_3_4": ImageSize("portrait_3_4", 1200, 1600, "3:4", "2K"),
    "ultra_wide_21_9": ImageSize("ultra_wide_21_9", 2560, 1080, "21:9", "4K"),
}

DEFAULT_IMAGE_SIZE = SIZE_PRESETS["landscape_16_9"]


def resolve_size(name: str | None) -> ImageSize:
    if not name:
        return DEFAULT_IMAGE_SIZE
    try:
        return SIZE_PRESETS[name]
    except KeyError:
        raise ValueError(f"unknown image size preset: {name}") from None


@dataclass(frozen=True)
class ReferenceImage:
    """A character or setting reference, either inline bytes or a remote URL.

    The category is carried explicitly; nothing downstream infers it from list
    position or file names.
    """

    category: ReferenceCategory
    name: str = ""
    image: ImageData | None = None
    url: str | None = None
    ref_id: str = ""

    def __post_init__(self) -> None:
        if (self.image is None) == (self.url is None):
            raise ValueError("reference image needs exactly one of image or url")

    @property
    def encoding(self) -> ReferenceEncoding:
        return ReferenceEncoding.INLINE if self.image is not None else ReferenceEncoding.URL

    @property
    def identity(self) -> str:
        if self.ref_id:
            return self.ref_id
        if self.image is not None:
            return f"sha256:{self.image.digest()}"
        return f"url:{self.url}"


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    style: str = "manga"
    language: str = "en"
    reference_images: tuple[ReferenceImage, ...] = ()
    provider_preference: ModelPreference = ModelPreference.AUTO
    size: ImageSize = DEFAULT_IMAGE_SIZE
    job_key: str | None = None
    description: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        refs = tuple(self.reference_images)
        if len(refs) > MAX_REFERENCE_IMAGES:
            raise ValueError(
                f"at most {MAX_REFERENCE_IMAGES} reference images are allowed, got {len(refs)}"
            )
        object.__setattr__(self, "reference_images", refs)
        object.__setattr__(self, "provider_preference", ModelPreference(self.provider_preference))

    def with_prompt(self, prompt: str) -> GenerationRequest:
        return replace(self, prompt=prompt)


@dataclass(frozen=True)
class GenerationSuccess:
    image: ImageData
    provider_used: ProviderName
    cached: bool = False
    public_url: str | None = None

    ok = True

    @property
    def size_bytes(self) -> int:
        return self.image.size_bytes


@dataclass(frozen=True)
class GenerationFailure:
    error_kind: ErrorKind
    message: str
    provider_attempted: ProviderName | None = None
    cause: ErrorKind | None = None

    ok = False

    @property
    def root_kind(self) -> ErrorKind:
        """The kind that explains the failure to a user."""
        if self.error_kind is ErrorKind.ALL_PROVIDERS_FAILED and self.cause is not None:
            return self.cause
        return self.error_kind

    @property
    def user_action(self) -> str:
        kind = self.root_kind
        if kind is ErrorKind.CONTENT_POLICY_REJECTED:
            return "revise_wording"
        if kind in CAPACITY_KINDS:
            return "retry_later"
        return "contact_support"


GenerationResult = Union[GenerationSuccess, GenerationFailure]


@dataclass(frozen=True)
class SettingDescription:
    location: str = ""
    time_period: str = ""
    mood: str = ""


@dataclass(frozen=True)
class PanelJob:
    sequence_number: int
    description: str
    characters: tuple[str, ...] = ()
    scene_reference_id: str | None = None
    dialogue: str = ""
    camera_angle: str = ""
    mood: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "characters", tuple(self.characters))


@dataclass(frozen=True)
class GenerationContext:
    """Shared inputs for every panel in one generation run."""

    style: str = "manga"
    language: str = ""
    setting: SettingDescription = SettingDescription()
    character_references: tuple[ReferenceImage, ...] = ()
    setting_references: tuple[ReferenceImage, ...] = ()
    provider_preference: ModelPreference = ModelPreference.AUTO
    size: ImageSize = DEFAULT_IMAGE_SIZE

    def __post_init__(self) -> None:
        object.__setattr__(self, "character_references", tuple(self.character_references))
        object.__setattr__(self, "setting_references", tuple(self.setting_references))
        object.__setattr__(self, "provider_preference", ModelPreference(self.provider_preference))


@dataclass(frozen=True)
class PanelResult:
    sequence_number: int
    result: GenerationResult

    @property
    def ok(self) -> bool:
        return self.result.ok


@dataclass(frozen=True)
class BatchPlan:
    batches: tuple[tuple[PanelJob, ...], ...]

    @property
    def sizes(self) -> list[int]:
        return [len(batch) for batch in self.batches]


@dataclass(frozen=True)
class BatchSummary:
    total: int
    succeeded: int
    failed: int
    cached: int
    duration_ms: float
    concurrency_limit: int
    batch_sizes: list[int]


@dataclass(frozen=True)
class BatchReport:
    results: list[PanelResult]
    summary: BatchSummary


@dataclass(frozen=True)
class ProviderHandle:
    """Capability descriptor for one backend, fixed at start-up."""

    name: ProviderName
    max_reference_images: int
    reference_encodings: frozenset[ReferenceEncoding]
    response_encodings: frozenset[str]
    available: bool


@dataclass(frozen=True)
class CharacterSpec:
    name: str
    physical_description: str = ""
    personality: str = ""
    role: str = ""


@dataclass(frozen=True)
class CharacterReferenceResult:
    name: str
    result: GenerationResult


@dataclass(frozen=True)
class CharacterSetResult:
    characters: tuple[CharacterReferenceResult, ...]
    cached: bool = False

    @property
    def ok(self) -> bool:
        return all(item.result.ok for item in self.characters)

    @property
    def size_bytes(self) -> int:
        return sum(getattr(item.result, "size_bytes", 0) for item in self.characters)
