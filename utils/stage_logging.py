# User value: This file writes one JSON line per job stage so a mod's journey can be followed in the logs.
import json
import logging
from datetime import datetime, timezone
from typing import Any

from utils.request_id import get_request_id

logger = logging.getLogger("client.stage")


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def log_stage(
    *,
    job_id: str,
    stage: str,
    event: str,
    server_job_id: str | None = None,
    mod_type: str | None = None,
    file_name: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Emit a ``stage_event`` record; failures go out at ERROR, everything else at INFO."""
    payload: dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "job_id": job_id,
        "stage": stage,
        "event": event.upper(),
    }
    optional = {
        "server_job_id": server_job_id,
        "mod_type": mod_type,
        "file_name": file_name,
        "error": error,
        "request_id": get_request_id(),
    }
    optional.update(extra)
    for key, value in optional.items():
        value = _jsonable(value)
        if value is not None and value != "":
            payload[key] = value

    line = json.dumps(payload, ensure_ascii=False)
    if error or payload["event"] == "FAILED":
        logger.error("stage_event %s", line)
    else:
        logger.info("stage_event %s", line)
