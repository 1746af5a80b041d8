# routes/auth.py
from fastapi import APIRouter, Depends

from routes.deps import get_orchestrator
from schemas.requests import SessionTokenBody
from services.orchestrator import ModOrchestrator

router = APIRouter()


# =========================================================
# SESSION CREDENTIAL (issued by the external Auth service)
# =========================================================
@router.put("/session")
async def set_session(body: SessionTokenBody, orchestrator: ModOrchestrator = Depends(get_orchestrator)):
    orchestrator.credentials.set_token(body.token)
    return {"authenticated": True}


@router.delete("/session")
async def clear_session(orchestrator: ModOrchestrator = Depends(get_orchestrator)):
    orchestrator.credentials.clear()
    return {"authenticated": False}


@router.get("/session")
async def session_state(orchestrator: ModOrchestrator = Depends(get_orchestrator)):
    return {"authenticated": orchestrator.credentials.has_token}
