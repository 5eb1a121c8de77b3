import os
from dataclasses import dataclass, field
from typing import Optional

from endpoints import BASE_URL
from .utils import env_bool, env_int

DEFAULT_SESSION_PATH = ".sptf/session.json"
DEFAULT_HTTP_LOG = "sptf_http.log"

# Server-side constants the client has to agree with.
PROTOCOL_VERSION = 1
STRUCTURED_ERROR_STATUS = 500
MAX_UPLOAD_BYTES = 64 * 1024 * 1024
COOKIE_NAME = "SPTF_AUTH"

OPEN_POLL_ATTEMPTS = 10
OPEN_POLL_INTERVAL_MS = 200
DEFAULT_REQUEST_TIMEOUT_MS = 10_000


def _default_http_log() -> Optional[str]:
    value = os.getenv("SPTF_HTTP_LOG")
    if value is None:
        return os.path.join(os.getcwd(), DEFAULT_HTTP_LOG)
    return value or None


@dataclass
class Settings:
    server_url: str = field(default_factory=lambda: os.getenv("SPTF_SERVER_URL") or BASE_URL)
    timeout: float = field(default_factory=lambda: float(env_int("SPTF_TIMEOUT", 30)))
    request_timeout_ms: int = field(
        default_factory=lambda: env_int("SPTF_REQUEST_TIMEOUT_MS", DEFAULT_REQUEST_TIMEOUT_MS)
    )
    session_path: str = field(default_factory=lambda: os.getenv("SPTF_SESSION_PATH") or DEFAULT_SESSION_PATH)
    http_log_path: Optional[str] = field(default_factory=_default_http_log)
    locale: str = field(default_factory=lambda: os.getenv("SPTF_LOCALE") or "en")
    debug: bool = field(default_factory=lambda: env_bool("SPTF_DEBUG"))
