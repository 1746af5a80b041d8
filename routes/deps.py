from fastapi import HTTPException, Request

from services.orchestrator import ModOrchestrator


async def get_orchestrator(request: Request) -> ModOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Orchestrator not initialized")
    return orchestrator
