from pydantic import BaseModel, Field

from mangamachine.orchestration.images import reference_from_source
from mangamachine.orchestration.models import (
    MAX_REFERENCE_IMAGES,
    BatchReport,
    CharacterSetResult,
    CharacterSpec,
    GenerationContext,
    GenerationRequest,
    GenerationResult,
    ModelPreference,
    PanelJob,
    ReferenceCategory,
    ReferenceImage,
    SettingDescription,
    resolve_size,
)


class ReferenceImageIn(BaseModel):
    """A reference image given as a data URL, bare base64, or an http(s) URL."""

    source: str = Field(min_length=1)
    category: ReferenceCategory = ReferenceCategory.CHARACTER
    name: str = ""
    id: str = ""

    def to_domain(self, category: ReferenceCategory | None = None) -> ReferenceImage:
        return reference_from_source(
            self.source,
            category or self.category,
            name=self.name,
            ref_id=self.id,
        )


class SettingIn(BaseModel):
    location: str = ""
    time_period: str = ""
    mood: str = ""

    def to_domain(self) -> SettingDescription:
        return SettingDescription(location=self.location, time_period=self.time_period, mood=self.mood)


class GenerateImageRequest(BaseModel):
    prompt: str = Field(min_length=1)
    style: str = "manga"
    language: str | None = None
    model: ModelPreference = ModelPreference.AUTO
    size: str | None = None
    reference_images: list[ReferenceImageIn] = Field(default_factory=list, max_length=MAX_REFERENCE_IMAGES)
    job_key: str | None = None
    description: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    def to_domain(self) -> GenerationRequest:
        return GenerationRequest(
            prompt=self.prompt,
            style=self.style,
            language=self.language or "",
            reference_images=tuple(ref.to_domain() for ref in self.reference_images),
            provider_preference=self.model,
            size=resolve_size(self.size),
            job_key=self.job_key,
            description=self.description,
            metadata=dict(self.metadata),
        )


class PanelJobIn(BaseModel):
    sequence_number: int = Field(ge=1)
    description: str = Field(min_length=1)
    characters: list[str] = Field(default_factory=list)
    scene_reference_id: str | None = None
    dialogue: str = ""
    camera_angle: str = ""
    mood: str = ""

    def to_domain(self) -> PanelJob:
        return PanelJob(
            sequence_number=self.sequence_number,
            description=self.description,
            characters=tuple(self.characters),
            scene_reference_id=self.scene_reference_id,
            dialogue=self.dialogue,
            camera_angle=self.camera_angle,
            mood=self.mood,
        )


class BatchGenerateRequest(BaseModel):
    jobs: list[PanelJobIn] = Field(min_length=1)
    style: str = "manga"
    language: str | None = None
    model: ModelPreference = ModelPreference.AUTO
    size: str | None = None
    setting: SettingIn = Field(default_factory=SettingIn)
    character_references: list[ReferenceImageIn] = Field(default_factory=list)
    setting_references: list[ReferenceImageIn] = Field(default_factory=list)
    concurrency_limit: int | None = Field(default=None, ge=1)
    project_id: str | None = Field(default=None, min_length=1, max_length=128)

    def to_context(self) -> GenerationContext:
        return GenerationContext(
            style=self.style,
            language=self.language or "",
            setting=self.setting.to_domain(),
            character_references=tuple(ref.to_domain(ReferenceCategory.CHARACTER) for ref in self.character_references),
            setting_references=tuple(ref.to_domain(ReferenceCategory.SETTING) for ref in self.setting_references),
            provider_preference=self.model,
            size=resolve_size(self.size),
        )


class CharacterIn(BaseModel):
    name: str = Field(min_length=1)
    physical_description: str = ""
    personality: str = ""
    role: str = ""

    def to_domain(self) -> CharacterSpec:
        return CharacterSpec(
            name=self.name,
            physical_description=self.physical_description,
            personality=self.personality,
            role=self.role,
        )


class CharacterReferencesRequest(BaseModel):
    characters: list[CharacterIn] = Field(min_length=1)
    setting: SettingIn = Field(default_factory=SettingIn)
    style: str = "manga"
    language: str | None = None
    model: ModelPreference = ModelPreference.AUTO
    size: str | None = None
    uploads: list[ReferenceImageIn] = Field(default_factory=list)


class GenerationResultOut(BaseModel):
    ok: bool
    image: str | None = None
    mime_type: str | None = None
    provider_used: str | None = None
    cached: bool = False
    public_url: str | None = None
    error_kind: str | None = None
    cause: str | None = None
    message: str | None = None
    provider_attempted: str | None = None
    user_action: str | None = None

    @classmethod
    def from_result(cls, result: GenerationResult) -> "GenerationResultOut":
        if result.ok:
            return cls(
                ok=True,
                image=result.image.to_data_url(),
                mime_type=result.image.mime_type,
                provider_used=result.provider_used.value,
                cached=result.cached,
                public_url=result.public_url,
            )
        return cls(
            ok=False,
            error_kind=result.error_kind.value,
            cause=result.cause.value if result.cause else None,
            message=result.message,
            provider_attempted=result.provider_attempted.value if result.provider_attempted else None,
            user_action=result.user_action,
        )


class PanelResultOut(BaseModel):
    sequence_number: int
    result: GenerationResultOut


class BatchSummaryOut(BaseModel):
    total: int
    succeeded: int
    failed: int
    cached: int
    duration_ms: float
    concurrency_limit: int
    batch_sizes: list[int]


class BatchReportOut(BaseModel):
    results: list[PanelResultOut]
    summary: BatchSummaryOut

    @classmethod
    def from_report(cls, report: BatchReport) -> "BatchReportOut":
        s = report.summary
        return cls(
            results=[
                PanelResultOut(
                    sequence_number=item.sequence_number,
                    result=GenerationResultOut.from_result(item.result),
                )
                for item in report.results
            ],
            summary=BatchSummaryOut(
                total=s.total,
                succeeded=s.succeeded,
                failed=s.failed,
                cached=s.cached,
                duration_ms=s.duration_ms,
                concurrency_limit=s.concurrency_limit,
                batch_sizes=list(s.batch_sizes),
            ),
        )


class CharacterReferenceOut(BaseModel):
    name: str
    result: GenerationResultOut


class CharacterSetOut(BaseModel):
    ok: bool
    cached: bool
    characters: list[CharacterReferenceOut]

    @classmethod
    def from_result(cls, result: CharacterSetResult) -> "CharacterSetOut":
        return cls(
            ok=result.ok,
            cached=result.cached,
            characters=[
                CharacterReferenceOut(name=item.name, result=GenerationResultOut.from_result(item.result))
                for item in result.characters
            ],
        )


class ModelsRead(BaseModel):
    models: list[str]
    default: str = ModelPreference.AUTO.value


class ProviderRead(BaseModel):
    name: str
    available: bool
    max_reference_images: int
    reference_encodings: list[str]
    response_encodings: list[str]


class CacheStatsRead(BaseModel):
    total_items: int
    total_size: int
    hits: int
    misses: int
    hit_rate: float
    miss_rate: float
