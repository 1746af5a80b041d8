# User value: This file keeps every mod job moving forward through upload and AI processing, never backwards.
import logging
from typing import Optional

from schemas.job_contract import (
    JOB_STATUS_QUEUED,
    JOB_STATUS_UPLOADING,
    JOB_STATUS_UPLOADED,
    JOB_STATUS_PROCESSING,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    TERMINAL_STATUSES,
)

logger = logging.getLogger("client.status_machine")

_ALLOWED = {
    None: {JOB_STATUS_QUEUED},
    JOB_STATUS_QUEUED: {JOB_STATUS_UPLOADING, JOB_STATUS_FAILED},
    JOB_STATUS_UPLOADING: {JOB_STATUS_UPLOADED, JOB_STATUS_FAILED},
    JOB_STATUS_UPLOADED: {JOB_STATUS_PROCESSING, JOB_STATUS_FAILED},
    JOB_STATUS_PROCESSING: {
        JOB_STATUS_PROCESSING,
        JOB_STATUS_COMPLETED,
        JOB_STATUS_FAILED,
    },
    JOB_STATUS_COMPLETED: {JOB_STATUS_COMPLETED},
    JOB_STATUS_FAILED: {JOB_STATUS_FAILED},
}


# User value: This step keeps the user mod-enhancement flow accurate and dependable.
def _norm(status: Optional[str]) -> Optional[str]:
    if status is None:
        return None
    s = str(status).strip().lower()
    return s or None


def is_terminal(status: Optional[str]) -> bool:
    return _norm(status) in TERMINAL_STATUSES


# User value: This step keeps the user mod-enhancement flow accurate and dependable.
def is_allowed_transition(current: Optional[str], target: Optional[str]) -> bool:
    target_n = _norm(target)
    if not target_n:
        return True
    current_n = _norm(current)
    allowed = _ALLOWED.get(current_n)
    if allowed is None:
        return False
    return target_n in allowed


def check_transition(*, local_id: str, current: Optional[str], target: Optional[str], context: str) -> bool:
    """Return True when ``current -> target`` may be applied, logging blocked and idempotent moves."""
    if not is_allowed_transition(current, target):
        logger.warning(
            "status_transition_blocked context=%s local_id=%s current=%s target=%s",
            context,
            local_id,
            _norm(current),
            _norm(target),
        )
        return False

    if is_terminal(current) and _norm(current) == _norm(target):
        logger.info(
            "status_transition_idempotent_terminal context=%s local_id=%s status=%s",
            context,
            local_id,
            _norm(target),
        )

    return True
