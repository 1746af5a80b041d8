from fastapi import APIRouter, Depends

from routes.deps import get_orchestrator
from services.orchestrator import ModOrchestrator
from utils.metrics import snapshot

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health(orchestrator: ModOrchestrator = Depends(get_orchestrator)):
    return {
        "status": "OK",
        "jobs": len(orchestrator.registry),
        "active_pollers": orchestrator.poller.active_count,
        "uploads_in_flight": orchestrator.submitter.in_flight,
        "presets_loaded": orchestrator.catalog.loaded,
        "metrics": snapshot(),
    }
