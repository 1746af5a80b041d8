# User value: This file helps users track each mod from drop to download with clear, typed status data.
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schemas.job_contract import JOB_STATUS_QUEUED


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Job(BaseModel):
    # User value: one immutable snapshot of a mod's journey; the registry swaps whole snapshots on update.
    model_config = ConfigDict(frozen=True)

    local_id: str
    file_name: str
    file_size_bytes: int = Field(ge=0)
    status: str = JOB_STATUS_QUEUED
    server_job_id: Optional[str] = None
    mod_type: Optional[str] = None
    error_message: Optional[str] = None
    download_ref: Optional[str] = None
    tokens_used: Optional[int] = None
    credits_used: Optional[int] = None
    preset_id: Optional[str] = None
    revision: int = 1
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)


class Preset(BaseModel):
    # User value: a named, priced AI enhancement the user can pick before processing.
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    credit_cost: int = Field(default=0, ge=0)
    game_type: Optional[str] = None


class PresetListResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    presets: List[Preset] = Field(default_factory=list)

    @field_validator("presets", mode="before")
    @classmethod
    def _null_as_empty(cls, value):
        return value if value is not None else []


class UploadResponse(BaseModel):
    # User value: confirms the mod is stored server-side so the user can request enhancement.
    model_config = ConfigDict(extra="ignore")

    job_id: str = Field(..., min_length=1)
    status: str = "pending"
    mod_type: Optional[str] = None
    message: Optional[str] = None


class ProcessAcceptedResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: Optional[str] = None
    message: Optional[str] = None


class JobStatusPayload(BaseModel):
    # User value: shares live server status so users know where their mod enhancement stands.
    model_config = ConfigDict(extra="ignore")

    status: str = Field(..., min_length=1)
    processed_url: Optional[str] = None
    error_message: Optional[str] = None
    tokens_used: Optional[int] = None
    credits_used: Optional[int] = None
    mod_type: Optional[str] = None


class DownloadResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    download_url: str = Field(..., min_length=1)
    expires_in: Optional[int] = Field(default=None, ge=0)


class DownloadLocation(BaseModel):
    # User value: a short-lived link to the enhanced mod; resolve a fresh one for every download.
    model_config = ConfigDict(frozen=True)

    local_id: str
    server_job_id: str
    download_url: str
    expires_in: Optional[int] = None
    resolved_at: str = Field(default_factory=utc_now_iso)


class RemoteJob(BaseModel):
    # User value: read-only history row so users can revisit jobs from earlier sessions.
    model_config = ConfigDict(extra="ignore")

    id: str
    status: str
    mod_type: Optional[str] = None
    original_filename: Optional[str] = None
    original_file_size: Optional[int] = None
    processed_url: Optional[str] = None
    tokens_used: Optional[int] = None
    credits_used: Optional[int] = None
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class RemoteJobPage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    jobs: List[RemoteJob] = Field(default_factory=list)
    page: int = 1
    limit: int = 10

    @field_validator("jobs", mode="before")
    @classmethod
    def _null_as_empty(cls, value):
        return value if value is not None else []
