# User value: This file talks to the ModForge API so uploads, AI processing and downloads reach the server reliably.
# services/api_client.py
import logging
import time
from typing import Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from config import (
    HTTP_TIMEOUT_SEC,
    MODFORGE_API_PREFIX,
    MODFORGE_API_URL,
    UPLOAD_TIMEOUT_SEC,
)
from schemas.job_contract import UPLOAD_FIELD_NAME
from schemas.requests import ModFile, ProcessRequest
from schemas.responses import (
    DownloadResponse,
    JobStatusPayload,
    PresetListResponse,
    ProcessAcceptedResponse,
    RemoteJobPage,
    UploadResponse,
)
from services.errors import MalformedResponse, ServerRejected, TransportError
from services.session import SessionCredentials
from utils.metrics import incr, observe_ms
from utils.request_id import request_id_headers

logger = logging.getLogger("client.api")

ModelT = TypeVar("ModelT", bound=BaseModel)


# User value: turns any server error body into one readable message for the user.
def extract_error_message(payload) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for key in ("error", "error_message", "message", "detail"):
        value = payload.get(key)
        if isinstance(value, dict):
            value = value.get("error_message") or value.get("message")
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _json_or_none(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return None


class ModForgeApiClient:
    """Async client for the ModForge mods API. One instance per orchestrator session."""

    def __init__(
        self,
        *,
        base_url: str = MODFORGE_API_URL,
        api_prefix: str = MODFORGE_API_PREFIX,
        credentials: Optional[SessionCredentials] = None,
        timeout_sec: float = HTTP_TIMEOUT_SEC,
        upload_timeout_sec: float = UPLOAD_TIMEOUT_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        root = base_url.rstrip("/") + "/" + api_prefix.strip("/")
        self.credentials = credentials if credentials is not None else SessionCredentials()
        self._upload_timeout_sec = upload_timeout_sec
        self._http = httpx.AsyncClient(
            base_url=root.rstrip("/") + "/",
            timeout=timeout_sec,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        headers.update(self.credentials.authorization_header())
        headers.update(request_id_headers())
        return headers

    async def _request(self, method: str, path: str, *, op: str, fallback_error: str, **kwargs) -> httpx.Response:
        started = time.perf_counter()
        try:
            response = await self._http.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            incr("client_api_transport_errors_total", op=op)
            logger.warning("api_transport_error op=%s path=%s error=%s: %s", op, path, exc.__class__.__name__, exc)
            raise TransportError(f"{fallback_error}: {exc.__class__.__name__}") from exc
        finally:
            observe_ms("client_api_latency_ms", (time.perf_counter() - started) * 1000.0, op=op)

        incr("client_api_requests_total", op=op, status_class=f"{response.status_code // 100}xx")
        if response.is_error:
            message = extract_error_message(_json_or_none(response)) or fallback_error
            logger.warning(
                "api_rejected op=%s path=%s status=%s error_message=%s",
                op,
                path,
                response.status_code,
                message,
            )
            raise ServerRejected(message, status_code=response.status_code)
        return response

    @staticmethod
    def _parse(response: httpx.Response, model: Type[ModelT], *, op: str) -> ModelT:
        payload = _json_or_none(response)
        if payload is None:
            raise MalformedResponse(f"Malformed {op} response: body is not JSON")
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise MalformedResponse(f"Malformed {op} response: {exc.error_count()} invalid field(s)") from exc

    async def upload_mod(self, mod_file: ModFile) -> UploadResponse:
        response = await self._request(
            "POST",
            "mods/upload",
            op="upload",
            fallback_error="Upload failed",
            files={UPLOAD_FIELD_NAME: (mod_file.file_name, mod_file.content, mod_file.guessed_content_type())},
            timeout=self._upload_timeout_sec,
        )
        return self._parse(response, UploadResponse, op="upload")

    async def list_presets(self) -> PresetListResponse:
        response = await self._request("GET", "presets/", op="presets", fallback_error="Failed to fetch presets")
        return self._parse(response, PresetListResponse, op="presets")

    async def process_job(self, server_job_id: str, request: ProcessRequest) -> ProcessAcceptedResponse:
        response = await self._request(
            "POST",
            f"mods/jobs/{server_job_id}/process",
            op="process",
            fallback_error="Failed to start processing",
            json=request.to_payload(),
        )
        if not response.content.strip():
            # An empty 2xx body is an acceptance.
            return ProcessAcceptedResponse()
        return self._parse(response, ProcessAcceptedResponse, op="process")

    async def get_job_status(self, server_job_id: str) -> JobStatusPayload:
        response = await self._request(
            "GET",
            f"mods/jobs/{server_job_id}",
            op="status",
            fallback_error="Failed to fetch job status",
        )
        return self._parse(response, JobStatusPayload, op="status")

    async def get_download(self, server_job_id: str) -> DownloadResponse:
        response = await self._request(
            "GET",
            f"mods/jobs/{server_job_id}/download",
            op="download",
            fallback_error="Download failed",
        )
        return self._parse(response, DownloadResponse, op="download")

    async def list_jobs(self, *, page: int = 1, limit: int = 10, status: Optional[str] = None) -> RemoteJobPage:
        params = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        response = await self._request(
            "GET",
            "mods/jobs",
            op="history",
            fallback_error="Failed to fetch jobs",
            params=params,
        )
        return self._parse(response, RemoteJobPage, op="history")
