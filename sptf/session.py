from typing import List, Optional

from . import api
from .browser import RemoteBrowser
from .client import SptfClient
from .config import Settings
from .connection import SessionConnection
from .errors import AUTH_FAILURES, SptfError, ValidationError
from .models import Credential, CredentialOrigin
from .navigation import ROOT
from .session_store import CredentialStore, MemoryCredentialStore
from .transfers import DownloadLauncher, TransferCoordinator
from .utils import get_logger


class Session:
    """Owns the process-wide credential.

    Navigation and transfers only ever read it; it is set by ``login`` or
    ``restore`` and cleared by ``logout`` or a failed revalidation.
    """

    def __init__(
        self,
        client: SptfClient,
        store: Optional[CredentialStore] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.client = client
        self.store = store or MemoryCredentialStore()
        self.settings = settings or Settings(server_url=client.base_url)
        self.credential: Optional[Credential] = None
        self.browsers: List[RemoteBrowser] = []
        self.logger = get_logger("sptf.session")

    @property
    def authenticated(self) -> bool:
        return self.credential is not None

    def _set_credential(self, credential: Optional[Credential]) -> None:
        self.credential = credential
        self.client.token = credential.token if credential else None

    def login(self, username: str, password: str) -> Credential:
        credential = api.login(self.client, username, password)
        self._set_credential(credential)
        self.store.set(credential.token)
        return credential

    def signup(self, username: str, password: str) -> None:
        api.signup(self.client, username, password)

    def restore(self) -> bool:
        """Revalidate the stored cookie.

        An invalid token is dropped from the store; a network failure
        propagates and leaves the stored token alone.
        """
        token = self.store.get()
        if not token:
            return False
        if not api.login_with_cookie(self.client, token):
            self.logger.info("Stored credential rejected, discarding it")
            self.store.remove()
            self._set_credential(None)
            return False
        self._set_credential(Credential(token=token, origin=CredentialOrigin.COOKIE))
        return True

    def logout(self) -> None:
        """Best effort: open channels are closed and the local credential is
        discarded even if the call fails."""
        token = self.credential.token if self.credential else self.store.get()
        self.close_browsers()
        try:
            if token:
                self.client.token = token
                api.logout(self.client)
        finally:
            self._set_credential(None)
            self.store.remove()

    def require_credential(self) -> Credential:
        if self.credential is None:
            raise ValidationError("Not logged in")
        return self.credential

    def open_connection(self, **kwargs) -> SessionConnection:
        return SessionConnection(self.client.base_url, self.require_credential(), **kwargs)

    def open_browser(self, root: str = ROOT, **kwargs) -> RemoteBrowser:
        connection = self.open_connection(**kwargs)
        browser = RemoteBrowser(connection, root=root, request_timeout_ms=self.settings.request_timeout_ms)
        browser.session_failed.connect(self._on_session_failed)
        self.browsers.append(browser)
        return browser

    def close_browsers(self) -> None:
        browsers, self.browsers = self.browsers, []
        for browser in browsers:
            browser.close()

    def _on_session_failed(self, error: SptfError) -> None:
        if error.category in AUTH_FAILURES:
            self.logger.warning("Session rejected by server: %s", error)
            self.close_browsers()
            self._set_credential(None)
            self.store.remove()

    def transfers(self, launcher: Optional[DownloadLauncher] = None) -> TransferCoordinator:
        self.require_credential()
        return TransferCoordinator(self.client, launcher)

    def close(self) -> None:
        self.close_browsers()
        self.client.close()
