import logging

from fastapi import APIRouter, HTTPException

from mangamachine.api.deps import OrchestratorDep
from mangamachine.api.v1.schemas import (
    BatchGenerateRequest,
    BatchReportOut,
    GenerateImageRequest,
    GenerationResultOut,
    ModelsRead,
    ProviderRead,
)
from mangamachine.core.provider_factory import require_provider
from mangamachine.core.request_context import get_request_id
from mangamachine.orchestration.models import CAPACITY_KINDS, ErrorKind, GenerationFailure, ProviderName
from mangamachine.orchestration.orchestrator import GenerationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generation"])


def failure_status_code(failure: GenerationFailure) -> int:
    kind = failure.root_kind
    if kind is ErrorKind.CONTENT_POLICY_REJECTED:
        return 422
    if kind in CAPACITY_KINDS:
        return 503
    return 502


def raise_for_failure(failure: GenerationFailure) -> None:
    detail = GenerationResultOut.from_result(failure).model_dump()
    detail["request_id"] = get_request_id()
    raise HTTPException(status_code=failure_status_code(failure), detail=detail)


@router.get("/models", response_model=ModelsRead)
def list_models(orchestrator: GenerationOrchestrator = OrchestratorDep):
    return ModelsRead(models=orchestrator.available_models())


@router.get("/models/{name}", response_model=ProviderRead)
def get_model(name: str, orchestrator: GenerationOrchestrator = OrchestratorDep):
    provider = ProviderName(name)
    require_provider(orchestrator, provider)
    handle = orchestrator.providers[provider]
    return ProviderRead(
        name=handle.name.value,
        available=handle.available,
        max_reference_images=handle.max_reference_images,
        reference_encodings=sorted(e.value for e in handle.reference_encodings),
        response_encodings=sorted(handle.response_encodings),
    )


@router.post("/panels/generate", response_model=GenerationResultOut)
async def generate_image(payload: GenerateImageRequest, orchestrator: GenerationOrchestrator = OrchestratorDep):
    result = await orchestrator.generate(payload.to_domain())
    if not result.ok:
        raise_for_failure(result)
    return GenerationResultOut.from_result(result)


@router.post("/panels/batch", response_model=BatchReportOut)
async def generate_batch(payload: BatchGenerateRequest, orchestrator: GenerationOrchestrator = OrchestratorDep):
    report = await orchestrator.run_batch(
        [job.to_domain() for job in payload.jobs],
        payload.to_context(),
        concurrency_limit=payload.concurrency_limit,
        project_id=payload.project_id,
    )
    return BatchReportOut.from_report(report)
