from typing import Optional

from fastapi import APIRouter, Depends, Query

from routes.deps import get_orchestrator
from services.orchestrator import ModOrchestrator

router = APIRouter()


@router.get("/presets")
async def list_presets(
    mod_type: Optional[str] = Query(default=None, description="Only presets for this mod type, e.g. minecraft"),
    orchestrator: ModOrchestrator = Depends(get_orchestrator),
):
    presets = await orchestrator.presets(mod_type)
    return {
        "presets": [p.model_dump() for p in presets],
        "warning": orchestrator.catalog.warning,
    }
