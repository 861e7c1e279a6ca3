from fastapi import Depends, Request

from mangamachine.orchestration.orchestrator import GenerationOrchestrator


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise RuntimeError("generation orchestrator is not running")
    return orchestrator


OrchestratorDep = Depends(get_orchestrator)
