from typing import Any, Dict, Optional
import json

import httpx

from endpoints import BASE_URL
from .config import COOKIE_NAME, Settings
from .errors import NetworkError
from .utils import append_log_line, get_logger, redact_payload, redacted_headers, truncate_text


class SptfClient:
    """Request/reply transport to the SPTF server.

    The bearer token travels as the ``SPTF_AUTH`` cookie held in the client's
    cookie jar. Transport failures surface as
    :class:`~sptf.errors.NetworkError`; HTTP error statuses are returned to the
    caller untouched so they can be interpreted per call.
    """

    def __init__(
        self,
        base_url: str = BASE_URL,
        token: Optional[str] = None,
        timeout: float = 30.0,
        http_log_path: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        cookies: Optional[httpx.Cookies] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.logger = get_logger('sptf')
        self._client = httpx.Client(
            base_url=self.base_url,
            cookies=cookies or httpx.Cookies(),
            timeout=self.timeout,
            transport=transport,
        )
        self.http_log_path = http_log_path
        if token:
            self.token = token

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "SptfClient":
        return cls(
            base_url=settings.server_url,
            timeout=settings.timeout,
            http_log_path=settings.http_log_path,
            **kwargs,
        )

    @property
    def host(self) -> str:
        return httpx.URL(self.base_url).host

    @property
    def cookies(self) -> httpx.Cookies:
        return self._client.cookies

    @property
    def token(self) -> Optional[str]:
        for cookie in self.cookies.jar:
            if cookie.name == COOKIE_NAME and cookie.value:
                return cookie.value
        return None

    @token.setter
    def token(self, value: Optional[str]) -> None:
        self.cookies.delete(COOKIE_NAME)
        if value:
            # one server per client, so the cookie is not host-scoped
            self.cookies.set(COOKIE_NAME, value, path="/")

    def _log(self, line: str) -> None:
        if self.http_log_path:
            append_log_line(self.http_log_path, line)

    def url_for(self, path: str, params: Optional[Dict[str, Any]] = None) -> str:
        url = httpx.URL(f"{self.base_url}{path}")
        if params:
            url = url.copy_merge_params(params)
        return str(url)

    def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = path if path.startswith('http') else f"{self.base_url}{path}"
        headers = dict(kwargs.get('headers', {}) or {})
        kwargs['headers'] = headers
        redacted = redacted_headers(headers)
        payload = None
        if "json" in kwargs:
            payload = redact_payload(kwargs.get("json"))
        elif "content" in kwargs:
            payload = f"<{len(kwargs['content'])} bytes>"
        self.logger.debug('HTTP %s %s headers=%s', method, url, redacted)
        if payload is not None:
            self._log(f"{method} {url} headers={redacted} payload={payload}")
        else:
            self._log(f"{method} {url} headers={redacted}")
        try:
            resp = self._client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            self.logger.warning('HTTP %s %s failed: %s', method, url, exc)
            self._log(f"{method} {url} transport error={exc!r}")
            raise NetworkError(f"{method} {url}: {exc}") from exc
        response_body: Any = None
        try:
            response_body = resp.json()
            response_body = redact_payload(response_body)
        except ValueError:
            response_body = truncate_text(resp.text or "")
        self._log(
            f"{method} {url} status={resp.status_code} response={json.dumps(response_body, ensure_ascii=True)}",
        )
        return resp

    def stream(self, method: str, url: str, **kwargs: Any):
        headers = dict(kwargs.pop('headers', {}) or {})
        self.logger.debug('HTTP stream %s %s', method, url)
        self._log(f"{method} {url} headers={redacted_headers(headers)} (streamed)")
        return self._client.stream(method, url, headers=headers, **kwargs)

    def close(self) -> None:
        self._client.close()
