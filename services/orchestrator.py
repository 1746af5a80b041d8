# User value: This file gives the UI one place to drop mods, start AI enhancement, watch progress and download results.
# services/orchestrator.py
import logging
from typing import List, Optional, Tuple

from schemas.job_contract import JOB_STATUS_FAILED
from schemas.requests import ModFile
from schemas.responses import DownloadLocation, Job, Preset, RemoteJob
from services.api_client import ModForgeApiClient
from services.download_resolver import DownloadResolver
from services.errors import InvalidState
from services.feature_flags import is_preset_prefetch_enabled
from services.job_registry import JobRegistry
from services.preset_catalog import PresetCatalog
from services.processing_requester import ProcessingRequester
from services.session import SessionCredentials
from services.status_poller import StatusPoller
from services.upload_submitter import UploadSubmitter
from utils.stage_logging import log_stage

logger = logging.getLogger("client.orchestrator")


class ModOrchestrator:
    """Wires the registry and the job components around one API client.

    Mutations go through ``submit``, ``request_processing``, ``resolve_download``,
    ``remove_job`` and ``retry_job``; the UI reads with ``list_jobs``/``get_job``.
    """

    def __init__(
        self,
        client: Optional[ModForgeApiClient] = None,
        *,
        registry: Optional[JobRegistry] = None,
        poller: Optional[StatusPoller] = None,
        submitter: Optional[UploadSubmitter] = None,
        prefetch_presets: Optional[bool] = None,
    ):
        self.client = client if client is not None else ModForgeApiClient()
        self.registry = registry if registry is not None else JobRegistry()
        self.catalog = PresetCatalog(self.client)
        self.poller = poller if poller is not None else StatusPoller(self.registry, self.client)
        self.submitter = submitter if submitter is not None else UploadSubmitter(self.registry, self.client)
        self.requester = ProcessingRequester(self.registry, self.client, self.poller, self.catalog)
        self.downloads = DownloadResolver(self.registry, self.client)
        self._prefetch_presets = is_preset_prefetch_enabled() if prefetch_presets is None else prefetch_presets
        self.registry.add_removal_hook(self.poller.cancel)
        self._started = False

    @property
    def credentials(self) -> SessionCredentials:
        return self.client.credentials

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        if self._prefetch_presets:
            await self.catalog.load_presets()
        logger.info("orchestrator_started presets=%s", len(self.catalog.presets))

    async def aclose(self) -> None:
        await self.poller.cancel_all()
        await self.submitter.aclose()
        await self.client.aclose()
        self._started = False
        logger.info("orchestrator_stopped jobs=%s", len(self.registry))

    async def __aenter__(self) -> "ModOrchestrator":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # reads
    def list_jobs(self) -> List[Job]:
        return self.registry.list_jobs()

    def get_job(self, local_id: str) -> Optional[Job]:
        return self.registry.get_job(local_id)

    async def presets(self, mod_type: Optional[str] = None) -> Tuple[Preset, ...]:
        await self.catalog.load_presets()
        return self.catalog.presets_for_mod_type(mod_type)

    # mutations
    def submit(self, mod_file: ModFile) -> str:
        return self.submitter.submit(mod_file)

    async def request_processing(
        self,
        local_id: str,
        preset_id: Optional[str] = None,
        custom_prompt: Optional[str] = None,
    ) -> None:
        await self.requester.request_processing(local_id, preset_id, custom_prompt)

    async def resolve_download(self, local_id: str) -> DownloadLocation:
        return await self.downloads.resolve_download(local_id)

    def remove_job(self, local_id: str) -> Job:
        return self.registry.remove_job(local_id)

    def clear_finished(self) -> List[str]:
        return self.registry.clear_finished()

    def retry_job(self, local_id: str) -> str:
        job = self.registry.require_job(local_id)
        if job.status != JOB_STATUS_FAILED:
            raise InvalidState(f"Only failed jobs can be retried; {local_id} is {job.status}")
        mod_file = self.submitter.retained_file(local_id)
        if mod_file is None:
            raise InvalidState(f"Source file for {local_id} is no longer available; drop it again")
        new_local_id = self.submitter.submit(mod_file)
        log_stage(job_id=new_local_id, stage="RETRY", event="COMPLETED", retried_from=local_id)
        return new_local_id

    async def fetch_history(self, *, page: int = 1, limit: int = 10, status: Optional[str] = None) -> List[RemoteJob]:
        result = await self.client.list_jobs(page=page, limit=limit, status=status)
        return result.jobs
