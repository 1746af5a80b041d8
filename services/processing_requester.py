# User value: This file starts AI enhancement for an uploaded mod and hands the job over to status polling.
import logging
from typing import Optional, Set

from config import DEFAULT_MODEL_CONFIG, DEFAULT_PRESET_ID, DEFAULT_PROMPT
from schemas.job_contract import (
    GENERIC_PROCESS_REQUEST_ERROR,
    JOB_STATUS_FAILED,
    JOB_STATUS_PROCESSING,
    JOB_STATUS_UPLOADED,
)
from schemas.requests import ProcessRequest
from services.api_client import ModForgeApiClient
from services.errors import AlreadyInProgress, InvalidState, NotFound, ServerRejected, TransportError
from services.job_registry import JobRegistry
from services.preset_catalog import PresetCatalog
from services.status_poller import StatusPoller
from utils.metrics import incr
from utils.stage_logging import log_stage

logger = logging.getLogger("client.processing")


# User value: fills in the default preset and instructions when the user leaves them blank.
def build_process_request(
    preset_id: Optional[str],
    custom_prompt: Optional[str],
    *,
    default_preset_id: str = DEFAULT_PRESET_ID,
    default_prompt: str = DEFAULT_PROMPT,
    ai_config: str = DEFAULT_MODEL_CONFIG,
) -> ProcessRequest:
    return ProcessRequest(
        preset_id=(preset_id or "").strip() or default_preset_id,
        prompt=(custom_prompt or "").strip() or default_prompt,
        ai_config=ai_config,
    )


class ProcessingRequester:
    def __init__(
        self,
        registry: JobRegistry,
        client: ModForgeApiClient,
        poller: StatusPoller,
        catalog: Optional[PresetCatalog] = None,
        *,
        default_preset_id: str = DEFAULT_PRESET_ID,
        default_prompt: str = DEFAULT_PROMPT,
        ai_config: str = DEFAULT_MODEL_CONFIG,
    ):
        self._registry = registry
        self._client = client
        self._poller = poller
        self._catalog = catalog
        self._default_preset_id = default_preset_id
        self._default_prompt = default_prompt
        self._ai_config = ai_config
        self._pending: Set[str] = set()

    def _check_preconditions(self, local_id: str) -> str:
        job = self._registry.require_job(local_id)
        if local_id in self._pending or self._poller.is_active(local_id) or job.status == JOB_STATUS_PROCESSING:
            raise AlreadyInProgress(f"Job {local_id} is already processing")
        if not job.server_job_id:
            raise InvalidState(f"Job {local_id} has not finished uploading")
        if job.status != JOB_STATUS_UPLOADED:
            raise InvalidState(f"Job {local_id} cannot be processed from status {job.status}")
        return job.server_job_id

    def _log_preset_choice(self, local_id: str, preset_id: str) -> None:
        if self._catalog is None or not self._catalog.presets:
            return
        preset = self._catalog.get_preset(preset_id)
        if preset is None:
            logger.warning("preset_not_in_catalog local_id=%s preset_id=%s", local_id, preset_id)
        else:
            logger.info(
                "preset_selected local_id=%s preset_id=%s credit_cost=%s",
                local_id,
                preset.id,
                preset.credit_cost,
            )

    def _fail(self, local_id: str, message: str) -> None:
        try:
            self._registry.update_job(
                local_id,
                status=JOB_STATUS_FAILED,
                error_message=message,
                context="PROCESS_RESULT",
            )
        except NotFound:
            logger.info("process_result_discarded local_id=%s reason=job_removed", local_id)

    async def request_processing(
        self,
        local_id: str,
        preset_id: Optional[str] = None,
        custom_prompt: Optional[str] = None,
    ) -> None:
        # Checks and the pending mark run before the first await, so a second
        # call for the same job always sees the first one.
        server_job_id = self._check_preconditions(local_id)
        self._pending.add(local_id)
        try:
            request = build_process_request(
                preset_id,
                custom_prompt,
                default_preset_id=self._default_preset_id,
                default_prompt=self._default_prompt,
                ai_config=self._ai_config,
            )
            self._log_preset_choice(local_id, request.preset_id)
            log_stage(
                job_id=local_id,
                stage="PROCESS_REQUEST",
                event="STARTED",
                server_job_id=server_job_id,
                preset_id=request.preset_id,
                custom_prompt=bool((custom_prompt or "").strip()),
            )

            try:
                await self._client.process_job(server_job_id, request)
            except (ServerRejected, TransportError) as exc:
                message = exc.error_message if isinstance(exc, ServerRejected) else GENERIC_PROCESS_REQUEST_ERROR
                incr("client_process_requests_total", outcome="failed", reason=exc.__class__.__name__)
                log_stage(
                    job_id=local_id,
                    stage="PROCESS_REQUEST",
                    event="FAILED",
                    server_job_id=server_job_id,
                    error=f"{exc.__class__.__name__}: {exc.error_message}",
                )
                self._fail(local_id, message)
                return

            try:
                applied = self._registry.update_job(
                    local_id,
                    status=JOB_STATUS_PROCESSING,
                    preset_id=request.preset_id,
                    context="PROCESS_RESULT",
                )
            except NotFound:
                logger.info("process_result_discarded local_id=%s reason=job_removed", local_id)
                return
            if not applied:
                return

            incr("client_process_requests_total", outcome="accepted", reason="")
            log_stage(
                job_id=local_id,
                stage="PROCESS_REQUEST",
                event="COMPLETED",
                server_job_id=server_job_id,
                preset_id=request.preset_id,
            )
            if self._poller.closed:
                logger.info("poll_start_skipped local_id=%s reason=poller_closed", local_id)
                return
            self._poller.start(local_id)
        finally:
            self._pending.discard(local_id)
