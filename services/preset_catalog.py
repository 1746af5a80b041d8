"""Read-only cache of the AI enhancement presets offered by the server."""
import asyncio
import logging
from typing import Optional, Tuple

from schemas.responses import Preset
from services.api_client import ModForgeApiClient
from services.errors import ServerRejected, TransportError
from utils.metrics import incr

logger = logging.getLogger("client.presets")


class PresetCatalog:
    def __init__(self, client: ModForgeApiClient):
        self._client = client
        self._presets: Tuple[Preset, ...] = ()
        self._loaded = False
        self._lock: Optional[asyncio.Lock] = None
        self.warning: Optional[str] = None

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def presets(self) -> Tuple[Preset, ...]:
        return self._presets

    async def load_presets(self, *, force: bool = False) -> Tuple[Preset, ...]:
        """Fetch the catalog once. Concurrent callers share a single fetch.

        A failed fetch leaves an empty catalog and sets ``warning``; it never raises.
        """
        if self._loaded and not force:
            return self._presets

        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            if self._loaded and not force:
                return self._presets
            try:
                result = await self._client.list_presets()
            except (TransportError, ServerRejected) as exc:
                self._presets = ()
                self.warning = f"Presets unavailable: {exc.error_message}"
                incr("client_presets_load_total", outcome="failed")
                logger.warning("presets_load_failed error=%s: %s", exc.__class__.__name__, exc.error_message)
            else:
                self._presets = tuple(result.presets)
                self.warning = None
                incr("client_presets_load_total", outcome="ok")
                logger.info("presets_loaded count=%s", len(self._presets))
            self._loaded = True

        return self._presets

    def get_preset(self, preset_id: str) -> Optional[Preset]:
        for preset in self._presets:
            if preset.id == preset_id:
                return preset
        return None

    def presets_for_mod_type(self, mod_type: Optional[str]) -> Tuple[Preset, ...]:
        wanted = str(mod_type or "").strip().lower()
        if not wanted:
            return self._presets
        return tuple(
            p for p in self._presets
            if not p.game_type or p.game_type.strip().lower() == wanted
        )
