from fastapi import APIRouter

from mangamachine.api.deps import OrchestratorDep
from mangamachine.api.v1.schemas import CharacterReferencesRequest, CharacterSetOut
from mangamachine.orchestration.models import ReferenceCategory, resolve_size
from mangamachine.orchestration.orchestrator import GenerationOrchestrator

router = APIRouter(tags=["characters"])


@router.post("/characters/references", response_model=CharacterSetOut)
async def generate_character_references(
    payload: CharacterReferencesRequest,
    orchestrator: GenerationOrchestrator = OrchestratorDep,
):
    """Generate one reference sheet per character.

    Partial failures come back per character with ``ok=false`` on the set;
    only a fully successful set is cached.
    """
    result = await orchestrator.generate_character_references(
        [c.to_domain() for c in payload.characters],
        payload.setting.to_domain(),
        payload.style,
        uploads=[ref.to_domain(ReferenceCategory.CHARACTER) for ref in payload.uploads],
        language=payload.language,
        provider_preference=payload.model,
        size=resolve_size(payload.size),
    )
    return CharacterSetOut.from_result(result)
