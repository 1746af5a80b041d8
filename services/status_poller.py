"""Per-job status polling.

Each processing job gets one PollHandle that owns an asyncio task. The task
queries the server, merges the answer into the registry and schedules the
next query until the job is terminal or the handle is cancelled. A handle
that is stopped never writes to the registry again, even if a query it
issued earlier resolves afterwards.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

from config import (
    POLL_INTERVAL_SEC,
    POLL_MAX_ATTEMPTS,
    POLL_MAX_BACKOFF_SEC,
    POLL_MAX_ELAPSED_SEC,
)
from schemas.job_contract import (
    GENERIC_PROCESSING_ERROR,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    POLL_STATUS_MAP,
    TERMINAL_STATUSES,
)
from schemas.responses import JobStatusPayload
from services.api_client import ModForgeApiClient
from services.errors import AlreadyInProgress, InvalidState, MalformedResponse, NotFound, ServerRejected, TransportError
from services.job_registry import JobRegistry
from utils.metrics import incr
from utils.stage_logging import log_stage

logger = logging.getLogger("client.poller")

HANDLE_ACTIVE = "active"
HANDLE_STOPPED = "stopped"


class PollHandle:
    def __init__(self, local_id: str, server_job_id: str, started_at: float):
        self.local_id = local_id
        self.server_job_id = server_job_id
        self.started_at = started_at
        self.state = HANDLE_ACTIVE
        self.attempts = 0
        self.consecutive_errors = 0
        self.stop_reason: Optional[str] = None
        self.task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self.state == HANDLE_ACTIVE

    def stop(self, reason: str) -> None:
        if self.state == HANDLE_STOPPED:
            return
        self.state = HANDLE_STOPPED
        self.stop_reason = reason


# User value: converts a raw server status into registry fields, treating unknown statuses as malformed.
def fields_from_payload(payload: JobStatusPayload) -> dict:
    raw = payload.status.strip().lower()
    status = POLL_STATUS_MAP.get(raw)
    if status is None:
        raise MalformedResponse(f"Unrecognized job status: {raw}")

    fields = {"status": status}
    if payload.mod_type:
        fields["mod_type"] = payload.mod_type
    if status == JOB_STATUS_COMPLETED:
        fields["download_ref"] = payload.processed_url
        fields["tokens_used"] = payload.tokens_used
        fields["credits_used"] = payload.credits_used
    elif status == JOB_STATUS_FAILED:
        fields["error_message"] = (payload.error_message or "").strip() or GENERIC_PROCESSING_ERROR
    return fields


class StatusPoller:
    def __init__(
        self,
        registry: JobRegistry,
        client: ModForgeApiClient,
        *,
        interval_sec: float = POLL_INTERVAL_SEC,
        max_attempts: int = POLL_MAX_ATTEMPTS,
        max_elapsed_sec: float = POLL_MAX_ELAPSED_SEC,
        max_backoff_sec: float = POLL_MAX_BACKOFF_SEC,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._registry = registry
        self._client = client
        self.interval_sec = interval_sec
        self.max_attempts = max_attempts
        self.max_elapsed_sec = max_elapsed_sec
        self.max_backoff_sec = max_backoff_sec
        self._sleep = sleep
        self._clock = clock
        self._handles: Dict[str, PollHandle] = {}
        self._closed = False

    def is_active(self, local_id: str) -> bool:
        handle = self._handles.get(local_id)
        return handle is not None and handle.active

    def handle_for(self, local_id: str) -> Optional[PollHandle]:
        return self._handles.get(local_id)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_count(self) -> int:
        return sum(1 for h in self._handles.values() if h.active)

    def start(self, local_id: str) -> PollHandle:
        if self._closed:
            raise InvalidState(f"Status polling is shut down; not polling {local_id}")
        if self.is_active(local_id):
            raise AlreadyInProgress(f"Job {local_id} is already being polled")

        job = self._registry.require_job(local_id)
        if not job.server_job_id:
            raise InvalidState(f"Job {local_id} has no server job id")

        handle = PollHandle(local_id, job.server_job_id, self._clock())
        self._handles[local_id] = handle
        handle.task = asyncio.get_running_loop().create_task(self._run(handle))
        incr("client_pollers_started_total")
        log_stage(job_id=local_id, stage="STATUS_POLL", event="STARTED", server_job_id=job.server_job_id)
        return handle

    def cancel(self, local_id: str) -> bool:
        """Stop polling ``local_id`` now. Returns True when an active handle was stopped."""
        handle = self._handles.pop(local_id, None)
        if handle is None or not handle.active:
            return False
        handle.stop("cancelled")
        if handle.task is not None and handle.task is not asyncio.current_task():
            handle.task.cancel()
        incr("client_pollers_cancelled_total")
        log_stage(job_id=local_id, stage="STATUS_POLL", event="CANCELLED", server_job_id=handle.server_job_id)
        return True

    async def cancel_all(self) -> None:
        """Stop every handle and refuse new ones. Used on orchestrator teardown."""
        self._closed = True
        handles = list(self._handles.values())
        for handle in handles:
            self.cancel(handle.local_id)
        tasks = [h.task for h in handles if h.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _backoff(self, handle: PollHandle) -> float:
        if handle.consecutive_errors <= 0:
            return self.interval_sec
        return min(self.interval_sec * (2 ** handle.consecutive_errors), self.max_backoff_sec)

    def _ceiling_reached(self, handle: PollHandle) -> bool:
        if self.max_attempts and handle.attempts >= self.max_attempts:
            return True
        if self.max_elapsed_sec and (self._clock() - handle.started_at) >= self.max_elapsed_sec:
            return True
        return False

    def _finish(self, handle: PollHandle, reason: str) -> None:
        handle.stop(reason)
        if self._handles.get(handle.local_id) is handle:
            del self._handles[handle.local_id]

    def _apply(self, handle: PollHandle, fields: dict) -> bool:
        """Merge fields for an active handle. Returns False when the handle must stop."""
        if not handle.active:
            return False
        try:
            applied = self._registry.update_job(handle.local_id, context="STATUS_POLL", **fields)
        except NotFound:
            logger.info("poll_result_discarded local_id=%s reason=job_removed", handle.local_id)
            self._finish(handle, "job_removed")
            return False
        if not applied:
            job = self._registry.get_job(handle.local_id)
            if job is None or job.status in TERMINAL_STATUSES:
                self._finish(handle, "job_terminal")
                return False
        return True

    async def _run(self, handle: PollHandle) -> None:
        try:
            while handle.active:
                if self._ceiling_reached(handle):
                    message = f"Processing timed out after {handle.attempts} status checks"
                    incr("client_pollers_timed_out_total")
                    log_stage(
                        job_id=handle.local_id,
                        stage="STATUS_POLL",
                        event="FAILED",
                        server_job_id=handle.server_job_id,
                        error=message,
                    )
                    self._apply(handle, {"status": JOB_STATUS_FAILED, "error_message": message})
                    self._finish(handle, "timeout")
                    return

                handle.attempts += 1
                try:
                    payload = await self._client.get_job_status(handle.server_job_id)
                    fields = fields_from_payload(payload)
                except (TransportError, ServerRejected) as exc:
                    if not handle.active:
                        return
                    handle.consecutive_errors += 1
                    incr("client_poll_errors_total", kind=exc.__class__.__name__)
                    logger.warning(
                        "poll_query_failed local_id=%s attempt=%s consecutive_errors=%s error=%s: %s",
                        handle.local_id,
                        handle.attempts,
                        handle.consecutive_errors,
                        exc.__class__.__name__,
                        exc.error_message,
                    )
                    await self._sleep(self._backoff(handle))
                    continue

                if not handle.active:
                    return
                handle.consecutive_errors = 0
                if not self._apply(handle, fields):
                    return

                if fields["status"] in TERMINAL_STATUSES:
                    incr("client_pollers_finished_total", status=fields["status"])
                    log_stage(
                        job_id=handle.local_id,
                        stage="STATUS_POLL",
                        event="COMPLETED" if fields["status"] == JOB_STATUS_COMPLETED else "FAILED",
                        server_job_id=handle.server_job_id,
                        error=fields.get("error_message"),
                        attempts=handle.attempts,
                        tokens_used=fields.get("tokens_used"),
                        credits_used=fields.get("credits_used"),
                    )
                    self._finish(handle, fields["status"])
                    return

                await self._sleep(self.interval_sec)
        except asyncio.CancelledError:
            handle.stop("cancelled")
            raise
        except Exception as exc:
            incr("client_pollers_crashed_total", kind=exc.__class__.__name__)
            logger.exception("poll_loop_crashed local_id=%s error=%s: %s", handle.local_id, exc.__class__.__name__, exc)
            if not self._closed:
                self._apply(handle, {"status": JOB_STATUS_FAILED, "error_message": GENERIC_PROCESSING_ERROR})
        finally:
            # A finished loop never leaves an active handle behind.
            self._finish(handle, handle.stop_reason or "error")
