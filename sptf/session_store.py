import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from .config import COOKIE_NAME, DEFAULT_SESSION_PATH

# Far-future, non-session expiry of the stored credential cookie.
COOKIE_EXPIRES = int(datetime(2200, 2, 1, tzinfo=timezone.utc).timestamp())


class CredentialStore:
    """Where the long-lived credential cookie is kept between runs."""

    def get(self) -> Optional[str]:
        raise NotImplementedError

    def set(self, token: str) -> None:
        raise NotImplementedError

    def remove(self) -> None:
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    def __init__(self, token: Optional[str] = None) -> None:
        self.token = token

    def get(self) -> Optional[str]:
        return self.token

    def set(self, token: str) -> None:
        self.token = token

    def remove(self) -> None:
        self.token = None


class FileCredentialStore(CredentialStore):
    """Keeps the ``SPTF_AUTH`` cookie in a JSON file readable only by the user."""

    def __init__(self, path: str = DEFAULT_SESSION_PATH, domain: Optional[str] = None) -> None:
        self.path = Path(path)
        self.domain = domain

    @property
    def _domain(self) -> str:
        return self.domain or ""

    def _load(self) -> httpx.Cookies:
        """Read unexpired cookie records into a jar; unreadable files load empty."""
        cookies = httpx.Cookies()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return cookies
        records = data.get("cookies") if isinstance(data, dict) else None
        if not isinstance(records, list):
            return cookies
        now = datetime.now(timezone.utc).timestamp()
        for item in records:
            if not isinstance(item, dict):
                continue
            name = item.get("name")
            value = item.get("value")
            expires = item.get("expires")
            if isinstance(expires, (int, float)) and expires < now:
                continue
            if isinstance(name, str) and name and value:
                cookies.set(name, str(value), domain=item.get("domain") or "", path=item.get("path") or "/")
        return cookies

    def get(self) -> Optional[str]:
        try:
            return self._load().get(COOKIE_NAME, domain=self._domain)
        except httpx.CookieConflict:
            return None

    def set(self, token: str) -> None:
        cookies = self._load()
        cookies.delete(COOKIE_NAME, domain=self._domain)
        cookies.set(COOKIE_NAME, token, domain=self._domain, path="/")
        self._save(cookies)

    def remove(self) -> None:
        if not self.path.exists():
            return
        cookies = self._load()
        cookies.delete(COOKIE_NAME, domain=self._domain)
        self._save(cookies)

    def _save(self, cookies: httpx.Cookies) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"cookies": _export_cookies(cookies)}
        self.path.write_text(json.dumps(payload, indent=2, ensure_ascii=True) + "\n", encoding="utf-8")
        os.chmod(self.path, 0o600)


def _export_cookies(cookies: httpx.Cookies) -> List[Dict[str, Any]]:
    return [
        {
            "name": c.name,
            "value": c.value,
            "domain": c.domain or None,
            "path": c.path,
            "expires": c.expires or COOKIE_EXPIRES,
        }
        for c in cookies.jar
    ]
