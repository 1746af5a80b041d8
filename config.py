import os
from dotenv import load_dotenv

load_dotenv()

MODFORGE_API_URL = os.environ.get("MODFORGE_API_URL", "http://localhost:8080").rstrip("/")
MODFORGE_API_PREFIX = os.environ.get("MODFORGE_API_PREFIX", "/api/v1")
HTTP_TIMEOUT_SEC = float(os.environ.get("HTTP_TIMEOUT_SEC", "30"))
UPLOAD_TIMEOUT_SEC = float(os.environ.get("UPLOAD_TIMEOUT_SEC", "300"))

POLL_INTERVAL_SEC = float(os.environ.get("POLL_INTERVAL_SEC", "3"))
POLL_MAX_ATTEMPTS = int(os.environ.get("POLL_MAX_ATTEMPTS", "400"))
POLL_MAX_ELAPSED_SEC = float(os.environ.get("POLL_MAX_ELAPSED_SEC", "1800"))
POLL_MAX_BACKOFF_SEC = float(os.environ.get("POLL_MAX_BACKOFF_SEC", "30"))

DEFAULT_PRESET_ID = os.environ.get("DEFAULT_PRESET_ID", "minecraft_balance")
DEFAULT_PROMPT = os.environ.get("DEFAULT_PROMPT", "Enhance this mod with balanced improvements")
DEFAULT_MODEL_CONFIG = os.environ.get("DEFAULT_MODEL_CONFIG", "default")

MAX_MOD_FILE_SIZE_MB = int(os.environ.get("MAX_MOD_FILE_SIZE_MB", "100"))
