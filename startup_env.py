import logging
import os
from typing import List

from services.feature_flags import BOOL_FLAG_VALUES, FLAG_NAMES

logger = logging.getLogger("client.startup")

POSITIVE_NUMBER_KEYS = (
    "POLL_INTERVAL_SEC",
    "POLL_MAX_BACKOFF_SEC",
    "HTTP_TIMEOUT_SEC",
    "UPLOAD_TIMEOUT_SEC",
    "MAX_MOD_FILE_SIZE_MB",
)
NON_NEGATIVE_NUMBER_KEYS = (
    "POLL_MAX_ATTEMPTS",
    "POLL_MAX_ELAPSED_SEC",
)
INTEGER_KEYS = {"POLL_MAX_ATTEMPTS", "MAX_MOD_FILE_SIZE_MB"}


def _is_blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def _validate_api_url(value: str | None, key: str, errors: List[str]) -> None:
    if _is_blank(value):
        return
    if not (value.startswith("http://") or value.startswith("https://")):
        errors.append(f"{key} must start with http:// or https://")


def _validate_number_env(key: str, errors: List[str], *, allow_zero: bool) -> None:
    raw = os.getenv(key)
    if _is_blank(raw):
        return
    try:
        value = int(raw) if key in INTEGER_KEYS else float(raw)
    except ValueError:
        errors.append(f"{key} must be {'an integer' if key in INTEGER_KEYS else 'a number'}")
        return
    if value < 0 or (value == 0 and not allow_zero):
        errors.append(f"{key} must be {'>= 0' if allow_zero else '> 0'}")


def _validate_bool_flag_env(key: str, errors: List[str]) -> None:
    raw = os.getenv(key)
    if _is_blank(raw):
        return
    if str(raw).strip().lower() not in BOOL_FLAG_VALUES:
        errors.append(f"{key} must be one of {sorted(BOOL_FLAG_VALUES)}")


def validate_startup_env() -> None:
    errors: List[str] = []
    warnings: List[str] = []

    _validate_api_url(os.getenv("MODFORGE_API_URL"), "MODFORGE_API_URL", errors)
    for key in POSITIVE_NUMBER_KEYS:
        _validate_number_env(key, errors, allow_zero=False)
    for key in NON_NEGATIVE_NUMBER_KEYS:
        _validate_number_env(key, errors, allow_zero=True)
    for key in FLAG_NAMES:
        _validate_bool_flag_env(key, errors)

    if _is_blank(os.getenv("MODFORGE_API_URL")):
        warnings.append("MODFORGE_API_URL is not set; using http://localhost:8080")
    if str(os.getenv("POLL_MAX_ATTEMPTS", "")).strip() == "0" and str(os.getenv("POLL_MAX_ELAPSED_SEC", "")).strip() == "0":
        warnings.append("POLL_MAX_ATTEMPTS and POLL_MAX_ELAPSED_SEC are both 0; polling is unbounded")

    if errors:
        for err in errors:
            logger.error("startup_env_invalid %s", err)
        raise RuntimeError("Startup env validation failed: " + "; ".join(errors))

    for warning in warnings:
        logger.warning("startup_env_warning %s", warning)

    logger.info(
        "startup_env_validated keys=%s",
        ["MODFORGE_API_URL", *POSITIVE_NUMBER_KEYS, *NON_NEGATIVE_NUMBER_KEYS, *FLAG_NAMES],
    )
