# User value: This file lets users drop one or many mod files and get a tracked job for each accepted file.
# routes/upload.py
import logging
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile

from routes.deps import get_orchestrator
from schemas.requests import ModFile
from services.errors import RejectedFile
from services.orchestrator import ModOrchestrator
from utils.metrics import incr

router = APIRouter()
logger = logging.getLogger("client.bridge.upload")


@router.post("/upload")
# User value: accepts a batch drop; rejected files are reported per file and never block the others.
async def upload(
    files: List[UploadFile] = File(...),
    orchestrator: ModOrchestrator = Depends(get_orchestrator),
):
    accepted = []
    rejected = []
    for upload_file in files:
        content = await upload_file.read()
        mod_file = ModFile(
            file_name=upload_file.filename or "",
            content=content,
            content_type=upload_file.content_type,
        )
        try:
            local_id = orchestrator.submit(mod_file)
        except RejectedFile as exc:
            rejected.append({"file_name": mod_file.file_name, **exc.to_detail()})
            continue
        accepted.append({"local_id": local_id, "file_name": mod_file.file_name})

    incr("bridge_upload_batches_total", accepted=len(accepted) > 0, rejected=len(rejected) > 0)
    logger.info("upload_batch accepted=%s rejected=%s", len(accepted), len(rejected))
    return {"accepted": accepted, "rejected": rejected}
