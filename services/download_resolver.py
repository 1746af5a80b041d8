# User value: This file gets users a fresh download link for their enhanced mod each time they ask.
import logging

from schemas.job_contract import JOB_STATUS_COMPLETED
from schemas.responses import DownloadLocation
from services.api_client import ModForgeApiClient
from services.errors import InvalidState, ServerRejected, TransportError
from services.job_registry import JobRegistry
from utils.metrics import incr
from utils.stage_logging import log_stage

logger = logging.getLogger("client.download")


class DownloadResolver:
    """Resolves short-lived download locations. Nothing is cached: links may be single-use."""

    def __init__(self, registry: JobRegistry, client: ModForgeApiClient):
        self._registry = registry
        self._client = client

    async def resolve_download(self, local_id: str) -> DownloadLocation:
        job = self._registry.require_job(local_id)
        if job.status != JOB_STATUS_COMPLETED:
            raise InvalidState(f"Job {local_id} is {job.status}; downloads need a completed job")
        if not job.server_job_id:
            raise InvalidState(f"Job {local_id} has no server job id")

        log_stage(job_id=local_id, stage="DOWNLOAD_RESOLVE", event="STARTED", server_job_id=job.server_job_id)
        try:
            result = await self._client.get_download(job.server_job_id)
        except (ServerRejected, TransportError) as exc:
            incr("client_downloads_resolved_total", outcome="failed")
            log_stage(
                job_id=local_id,
                stage="DOWNLOAD_RESOLVE",
                event="FAILED",
                server_job_id=job.server_job_id,
                error=f"{exc.__class__.__name__}: {exc.error_message}",
            )
            raise

        incr("client_downloads_resolved_total", outcome="ok")
        log_stage(
            job_id=local_id,
            stage="DOWNLOAD_RESOLVE",
            event="COMPLETED",
            server_job_id=job.server_job_id,
            expires_in=result.expires_in,
        )
        return DownloadLocation(
            local_id=local_id,
            server_job_id=job.server_job_id,
            download_url=result.download_url,
            expires_in=result.expires_in,
        )
