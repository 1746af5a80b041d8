# User value: This file keeps mod job statuses consistent between the orchestrator and the UI.
CONTRACT_VERSION = "2026-10-17-modforge-client-1"

JOB_STATUS_QUEUED = "queued"
JOB_STATUS_UPLOADING = "uploading"
JOB_STATUS_UPLOADED = "uploaded"
JOB_STATUS_PROCESSING = "processing"
JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_FAILED = "failed"

JOB_STATUSES = (
    JOB_STATUS_QUEUED,
    JOB_STATUS_UPLOADING,
    JOB_STATUS_UPLOADED,
    JOB_STATUS_PROCESSING,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
)

TERMINAL_STATUSES = (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
)

# Statuses as the ModForge API reports them, mapped onto the client vocabulary.
UPLOAD_STATUS_MAP = {
    "pending": JOB_STATUS_UPLOADED,
    "queued": JOB_STATUS_UPLOADED,
    "uploaded": JOB_STATUS_UPLOADED,
    "failed": JOB_STATUS_FAILED,
}

POLL_STATUS_MAP = {
    "pending": JOB_STATUS_PROCESSING,
    "queued": JOB_STATUS_PROCESSING,
    "processing": JOB_STATUS_PROCESSING,
    "completed": JOB_STATUS_COMPLETED,
    "failed": JOB_STATUS_FAILED,
}

MOD_FILE_EXTENSIONS = (".jar", ".zip", ".json", ".mcmeta")
UPLOAD_FIELD_NAME = "mod_file"

FAILED_ONLY_FIELDS = ("error_message",)
COMPLETED_ONLY_FIELDS = ("download_ref", "tokens_used", "credits_used")
CLEARABLE_FIELDS = ("mod_type", "preset_id")

GENERIC_UPLOAD_ERROR = "Upload failed"
GENERIC_PROCESSING_ERROR = "Processing failed. Please try again."
GENERIC_PROCESS_REQUEST_ERROR = "Failed to start processing"

CANONICAL_FIELDS = (
    "local_id",
    "server_job_id",
    "file_name",
    "file_size_bytes",
    "mod_type",
    "status",
    "error_message",
    "download_ref",
    "tokens_used",
    "credits_used",
    "preset_id",
    "revision",
    "created_at",
    "updated_at",
)
