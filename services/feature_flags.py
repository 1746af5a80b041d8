# User value: This file lets operators toggle client-side safety checks without a redeploy of the UI.
import os

BOOL_FLAG_VALUES = {"1", "0", "true", "false", "yes", "no", "on", "off"}


# User value: supports _flag so the mod-enhancement journey stays clear and reliable.
def _flag(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "1" if default else "0")).strip().lower()
    return raw in {"1", "true", "yes", "on"}


FEATURE_CLIENT_FILE_VALIDATION = _flag("FEATURE_CLIENT_FILE_VALIDATION", True)
FEATURE_PRESET_PREFETCH = _flag("FEATURE_PRESET_PREFETCH", True)

FLAG_NAMES = ("FEATURE_CLIENT_FILE_VALIDATION", "FEATURE_PRESET_PREFETCH")


# User value: rejects unsupported mod files before spending an upload on them.
def is_client_file_validation_enabled() -> bool:
    return FEATURE_CLIENT_FILE_VALIDATION


# User value: loads the preset list at startup so the preset picker is ready when files land.
def is_preset_prefetch_enabled() -> bool:
    return FEATURE_PRESET_PREFETCH
