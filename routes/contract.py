# User value: This file keeps job/status fields consistent between the orchestrator and UI views.
from fastapi import APIRouter

from schemas.job_contract import (
    CONTRACT_VERSION,
    JOB_STATUSES,
    TERMINAL_STATUSES,
    CANONICAL_FIELDS,
    MOD_FILE_EXTENSIONS,
)
from services.feature_flags import (
    is_client_file_validation_enabled,
    is_preset_prefetch_enabled,
)

router = APIRouter()


@router.get("/contract/job-status")
# User value: keeps job/status fields consistent across upload and processing views.
def job_status_contract():
    return {
        "contract_version": CONTRACT_VERSION,
        "job_statuses": list(JOB_STATUSES),
        "terminal_statuses": list(TERMINAL_STATUSES),
        "canonical_fields": list(CANONICAL_FIELDS),
        "mod_file_extensions": list(MOD_FILE_EXTENSIONS),
        "capabilities": {
            "client_file_validation_enabled": is_client_file_validation_enabled(),
            "preset_prefetch_enabled": is_preset_prefetch_enabled(),
        },
    }
