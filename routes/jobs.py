# User value: This file lets the UI list, process, download, retry and remove tracked mod jobs.
# routes/jobs.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from routes.deps import get_orchestrator
from schemas.requests import ProcessJobBody
from services.errors import NotFound
from services.orchestrator import ModOrchestrator
from utils.metrics import incr
from utils.stage_logging import log_stage

router = APIRouter()


@router.get("/jobs")
# User value: supports list_jobs so users see every dropped file in drop order.
async def list_jobs(
    status: Optional[str] = Query(default=None, description="Filter by status, e.g. processing/completed/failed"),
    orchestrator: ModOrchestrator = Depends(get_orchestrator),
):
    status_norm = status.strip().lower() if status else None
    jobs = [
        job.model_dump()
        for job in orchestrator.list_jobs()
        if status_norm is None or job.status == status_norm
    ]
    incr("bridge_jobs_list_total", filtered=bool(status_norm))
    return {"jobs": jobs, "count": len(jobs)}


@router.post("/jobs/clear")
# User value: clears finished jobs so the list only shows work still in flight.
async def clear_finished(orchestrator: ModOrchestrator = Depends(get_orchestrator)):
    removed = orchestrator.clear_finished()
    return {"removed": removed}


@router.get("/jobs/{local_id}")
# User value: loads latest job snapshot so users see current status.
async def get_job(local_id: str, orchestrator: ModOrchestrator = Depends(get_orchestrator)):
    job = orchestrator.get_job(local_id)
    if job is None:
        raise NotFound(f"Unknown job {local_id}")
    return job.model_dump()


@router.delete("/jobs/{local_id}")
# User value: removes a job and stops any polling for it immediately.
async def remove_job(local_id: str, orchestrator: ModOrchestrator = Depends(get_orchestrator)):
    job = orchestrator.remove_job(local_id)
    return {"removed": job.local_id, "status": job.status}


@router.post("/jobs/{local_id}/process")
# User value: starts AI enhancement with the chosen preset and instructions.
async def process_job(
    local_id: str,
    payload: Optional[ProcessJobBody] = None,
    orchestrator: ModOrchestrator = Depends(get_orchestrator),
):
    body = payload or ProcessJobBody()
    await orchestrator.request_processing(local_id, body.preset_id, body.custom_prompt)
    return orchestrator.registry.require_job(local_id).model_dump()


@router.get("/jobs/{local_id}/download")
# User value: resolves a fresh, short-lived link to the enhanced mod.
async def download_job(local_id: str, orchestrator: ModOrchestrator = Depends(get_orchestrator)):
    location = await orchestrator.resolve_download(local_id)
    return location.model_dump()


@router.post("/jobs/{local_id}/retry")
# User value: re-submits a failed file as a brand new job without retyping anything.
async def retry_job(local_id: str, orchestrator: ModOrchestrator = Depends(get_orchestrator)):
    new_local_id = orchestrator.retry_job(local_id)
    log_stage(job_id=local_id, stage="RETRY_REQUEST", event="COMPLETED", new_local_id=new_local_id)
    return {"local_id": new_local_id, "retried_from": local_id}


@router.get("/history")
# User value: shows jobs from earlier sessions straight from the server.
async def history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status: Optional[str] = Query(default=None),
    orchestrator: ModOrchestrator = Depends(get_orchestrator),
):
    jobs = await orchestrator.fetch_history(page=page, limit=limit, status=status)
    return {"jobs": [j.model_dump() for j in jobs], "page": page, "limit": limit}
