# User value: This file helps users get every dropped mod file onto the server with a clear outcome per file.
# services/upload_submitter.py
import asyncio
import logging
from typing import Dict, Optional, Set

from config import MAX_MOD_FILE_SIZE_MB
from schemas.job_contract import (
    GENERIC_UPLOAD_ERROR,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_UPLOADED,
    JOB_STATUS_UPLOADING,
    MOD_FILE_EXTENSIONS,
    UPLOAD_STATUS_MAP,
)
from schemas.requests import ModFile
from schemas.responses import Job
from services.api_client import ModForgeApiClient
from services.errors import NotFound, RejectedFile, ServerRejected, TransportError
from services.feature_flags import is_client_file_validation_enabled
from services.job_registry import EVENT_REMOVED, JobRegistry
from utils.metrics import incr
from utils.stage_logging import log_stage

logger = logging.getLogger("client.upload")

MAX_MOD_FILE_SIZE_BYTES = MAX_MOD_FILE_SIZE_MB * 1024 * 1024


# User value: supports _rejected so the mod-enhancement journey stays clear and reliable.
def _rejected(error_code: str, message: str) -> RejectedFile:
    return RejectedFile(message, error_code=error_code)


# User value: refuses files the server would reject anyway, before any upload is spent on them.
def validate_mod_file(mod_file: ModFile, *, max_size_bytes: int = MAX_MOD_FILE_SIZE_BYTES) -> None:
    filename = str(mod_file.file_name or "").strip()
    if not filename:
        raise _rejected("INVALID_FILENAME", "Filename is required")

    if mod_file.extension not in MOD_FILE_EXTENSIONS:
        raise _rejected(
            "UNSUPPORTED_FILE_TYPE",
            f"Mod files must be one of: {', '.join(MOD_FILE_EXTENSIONS)}",
        )

    if mod_file.size_bytes > max_size_bytes:
        raise _rejected(
            "FILE_TOO_LARGE",
            f"Mod file exceeds max {max_size_bytes // (1024 * 1024)} MB",
        )


# User value: maps the server's upload status onto the client's job vocabulary.
def resolve_upload_status(server_status: Optional[str]) -> str:
    raw = str(server_status or "").strip().lower()
    mapped = UPLOAD_STATUS_MAP.get(raw)
    if mapped is None:
        logger.warning("upload_status_unrecognized status=%s treated_as=%s", raw, JOB_STATUS_UPLOADED)
        return JOB_STATUS_UPLOADED
    return mapped


class UploadSubmitter:
    """Turns dropped files into server-side jobs, one independent upload task per file."""

    def __init__(
        self,
        registry: JobRegistry,
        client: ModForgeApiClient,
        *,
        validate_files: Optional[bool] = None,
        max_size_bytes: int = MAX_MOD_FILE_SIZE_BYTES,
    ):
        self._registry = registry
        self._client = client
        self._validate_files = is_client_file_validation_enabled() if validate_files is None else validate_files
        self._max_size_bytes = max_size_bytes
        self._tasks: Set[asyncio.Task] = set()
        # Source files stay available for a user retry until the job completes or is removed.
        self._retained: Dict[str, ModFile] = {}
        registry.subscribe(self._on_registry_event)

    def _on_registry_event(self, event: str, job: Job) -> None:
        if event == EVENT_REMOVED or job.status == JOB_STATUS_COMPLETED:
            self._retained.pop(job.local_id, None)

    def retained_file(self, local_id: str) -> Optional[ModFile]:
        return self._retained.get(local_id)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(self, mod_file: ModFile) -> str:
        if self._validate_files:
            try:
                validate_mod_file(mod_file, max_size_bytes=self._max_size_bytes)
            except RejectedFile as exc:
                incr("client_uploads_rejected_total", reason=exc.error_code)
                logger.warning(
                    "upload_validation_failed file_name=%s size=%s error_code=%s",
                    mod_file.file_name,
                    mod_file.size_bytes,
                    exc.error_code,
                )
                raise

        local_id = self._registry.create_job(file_name=mod_file.file_name, file_size_bytes=mod_file.size_bytes)
        self._retained[local_id] = mod_file
        self._registry.update_job(local_id, status=JOB_STATUS_UPLOADING, context="UPLOAD_START")

        task = asyncio.get_running_loop().create_task(self._upload(local_id, mod_file))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return local_id

    def _apply(self, local_id: str, **fields) -> None:
        try:
            self._registry.update_job(local_id, **fields)
        except NotFound:
            logger.info("upload_result_discarded local_id=%s reason=job_removed", local_id)

    async def _upload(self, local_id: str, mod_file: ModFile) -> None:
        log_stage(
            job_id=local_id,
            stage="UPLOAD_REQUEST",
            event="STARTED",
            file_name=mod_file.file_name,
            input_size_bytes=mod_file.size_bytes,
        )
        try:
            result = await self._client.upload_mod(mod_file)
        except ServerRejected as exc:
            incr("client_uploads_failed_total", reason="server_rejected")
            log_stage(
                job_id=local_id,
                stage="UPLOAD_REQUEST",
                event="FAILED",
                file_name=mod_file.file_name,
                error=exc.error_message,
                upstream_status=exc.status_code,
            )
            self._apply(local_id, status=JOB_STATUS_FAILED, error_message=exc.error_message, context="UPLOAD_RESULT")
            return
        except TransportError as exc:
            incr("client_uploads_failed_total", reason="transport")
            log_stage(
                job_id=local_id,
                stage="UPLOAD_REQUEST",
                event="FAILED",
                file_name=mod_file.file_name,
                error=f"{exc.__class__.__name__}: {exc.error_message}",
            )
            self._apply(local_id, status=JOB_STATUS_FAILED, error_message=GENERIC_UPLOAD_ERROR, context="UPLOAD_RESULT")
            return

        status = resolve_upload_status(result.status)
        if status == JOB_STATUS_FAILED:
            message = (result.message or "").strip() or GENERIC_UPLOAD_ERROR
            incr("client_uploads_failed_total", reason="server_status")
            log_stage(
                job_id=local_id,
                stage="UPLOAD_REQUEST",
                event="FAILED",
                server_job_id=result.job_id,
                error=message,
            )
            self._apply(local_id, status=status, error_message=message, context="UPLOAD_RESULT")
            return

        incr("client_uploads_completed_total")
        log_stage(
            job_id=local_id,
            stage="UPLOAD_REQUEST",
            event="COMPLETED",
            server_job_id=result.job_id,
            mod_type=result.mod_type,
            file_name=mod_file.file_name,
        )
        self._apply(
            local_id,
            server_job_id=result.job_id,
            status=status,
            mod_type=result.mod_type,
            context="UPLOAD_RESULT",
        )

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
