from fastapi import APIRouter, Response

from mangamachine.api.deps import OrchestratorDep
from mangamachine.api.v1.schemas import CacheStatsRead
from mangamachine.orchestration.orchestrator import GenerationOrchestrator

router = APIRouter(tags=["cache"])


@router.get("/cache/stats", response_model=CacheStatsRead)
def cache_stats(orchestrator: GenerationOrchestrator = OrchestratorDep):
    orchestrator.cache.purge_expired()
    stats = orchestrator.cache_stats()
    return CacheStatsRead(
        total_items=stats.total_items,
        total_size=stats.total_size,
        hits=stats.hits,
        misses=stats.misses,
        hit_rate=stats.hit_rate,
        miss_rate=stats.miss_rate,
    )


@router.delete("/cache", status_code=204)
def clear_cache(orchestrator: GenerationOrchestrator = OrchestratorDep):
    orchestrator.clear_cache()
    return Response(status_code=204)
