"""In-memory registry of tracked mod jobs.

The registry is the only writer of Job state. Every other component asks it
to create, update or remove a Job; readers always get a whole immutable
snapshot, never a half-applied update.
"""
import itertools
import logging
from collections import OrderedDict
from typing import Callable, List, Optional

from schemas.job_contract import (
    CLEARABLE_FIELDS,
    COMPLETED_ONLY_FIELDS,
    FAILED_ONLY_FIELDS,
    GENERIC_PROCESSING_ERROR,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_QUEUED,
)
from schemas.responses import Job, utc_now_iso
from services.errors import InvalidState, NotFound
from utils.metrics import incr
from utils.status_machine import check_transition, is_terminal

logger = logging.getLogger("client.registry")

Listener = Callable[[str, Job], None]
RemovalHook = Callable[[str], object]

EVENT_CREATED = "created"
EVENT_UPDATED = "updated"
EVENT_REMOVED = "removed"

_UPDATABLE_FIELDS = {
    "status",
    "server_job_id",
    "mod_type",
    "preset_id",
    *FAILED_ONLY_FIELDS,
    *COMPLETED_ONLY_FIELDS,
}


class JobRegistry:
    def __init__(self):
        self._jobs: "OrderedDict[str, Job]" = OrderedDict()
        self._ids = itertools.count(1)
        self._listeners: List[Listener] = []
        self._removal_hooks: List[RemovalHook] = []

    # ------------------------------------------------------------------
    # change stream
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_removal_hook(self, hook: RemovalHook) -> None:
        self._removal_hooks.append(hook)

    def _emit(self, event: str, job: Job) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, job)
            except Exception:
                logger.exception("registry_listener_failed event=%s local_id=%s", event, job.local_id)

    # ------------------------------------------------------------------
    # contract
    # ------------------------------------------------------------------
    def create_job(self, *, file_name: str, file_size_bytes: int) -> str:
        local_id = f"L{next(self._ids)}"
        job = Job(
            local_id=local_id,
            file_name=file_name,
            file_size_bytes=file_size_bytes,
            status=JOB_STATUS_QUEUED,
        )
        self._jobs[local_id] = job
        incr("client_jobs_created_total")
        logger.info("job_created local_id=%s file_name=%s size=%s", local_id, file_name, file_size_bytes)
        self._emit(EVENT_CREATED, job)
        return local_id

    def get_job(self, local_id: str) -> Optional[Job]:
        return self._jobs.get(local_id)

    def require_job(self, local_id: str) -> Job:
        job = self._jobs.get(local_id)
        if job is None:
            raise NotFound(f"Unknown job {local_id}")
        return job

    def list_jobs(self) -> List[Job]:
        return list(self._jobs.values())

    def update_job(self, local_id: str, *, context: str = "update", **fields) -> bool:
        """Merge ``fields`` into the Job.

        Returns False when the update is discarded as a whole: an illegal status
        transition, or an attempt to change an already assigned server job id.
        Raises NotFound for an unknown ``local_id``.
        """
        current = self.require_job(local_id)

        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {', '.join(sorted(unknown))}")

        target_status = fields.get("status")
        if target_status is not None and not check_transition(
            local_id=local_id,
            current=current.status,
            target=target_status,
            context=context,
        ):
            incr("client_registry_updates_discarded_total", reason="transition", context=context)
            return False

        new_server_id = fields.get("server_job_id")
        if new_server_id is not None and current.server_job_id and new_server_id != current.server_job_id:
            logger.warning(
                "server_job_id_change_blocked context=%s local_id=%s current=%s target=%s",
                context,
                local_id,
                current.server_job_id,
                new_server_id,
            )
            incr("client_registry_updates_discarded_total", reason="server_job_id", context=context)
            return False

        resulting_status = str(target_status or current.status).strip().lower()

        if is_terminal(current.status) and resulting_status == current.status:
            # Terminal jobs keep the fields they finished with.
            return True

        changes = {}
        for name, value in fields.items():
            if name == "status" and value is not None:
                value = resulting_status
            if value is None or getattr(current, name) == value:
                continue
            if name in FAILED_ONLY_FIELDS and resulting_status != JOB_STATUS_FAILED:
                continue
            if name in COMPLETED_ONLY_FIELDS and resulting_status != JOB_STATUS_COMPLETED:
                continue
            changes[name] = value

        if resulting_status == JOB_STATUS_FAILED and not (changes.get("error_message") or current.error_message):
            changes["error_message"] = GENERIC_PROCESSING_ERROR

        if not changes:
            return True

        changes["revision"] = current.revision + 1
        changes["updated_at"] = utc_now_iso()
        updated = current.model_copy(update=changes)
        self._jobs[local_id] = updated

        if updated.status != current.status:
            incr("client_job_transitions_total", source=current.status, target=updated.status)
            logger.info(
                "job_status_changed context=%s local_id=%s from=%s to=%s revision=%s",
                context,
                local_id,
                current.status,
                updated.status,
                updated.revision,
            )
        self._emit(EVENT_UPDATED, updated)
        return True

    def clear_fields(self, local_id: str, *names: str) -> Job:
        current = self.require_job(local_id)
        bad = [n for n in names if n not in CLEARABLE_FIELDS]
        if bad:
            raise InvalidState(f"Fields cannot be cleared: {', '.join(bad)}")
        changes = {n: None for n in names if getattr(current, n) is not None}
        if not changes:
            return current
        changes["revision"] = current.revision + 1
        changes["updated_at"] = utc_now_iso()
        updated = current.model_copy(update=changes)
        self._jobs[local_id] = updated
        self._emit(EVENT_UPDATED, updated)
        return updated

    def remove_job(self, local_id: str) -> Job:
        job = self.require_job(local_id)
        for hook in list(self._removal_hooks):
            hook(local_id)
        del self._jobs[local_id]
        incr("client_jobs_removed_total")
        logger.info("job_removed local_id=%s status=%s", local_id, job.status)
        self._emit(EVENT_REMOVED, job)
        return job

    def clear_finished(self) -> List[str]:
        finished = [job.local_id for job in self._jobs.values() if is_terminal(job.status)]
        for local_id in finished:
            self.remove_job(local_id)
        return finished

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, local_id: object) -> bool:
        return local_id in self._jobs
