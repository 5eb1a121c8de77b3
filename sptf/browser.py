from typing import Optional, Tuple

from PySide6.QtCore import QObject, Signal

from .config import DEFAULT_REQUEST_TIMEOUT_MS
from .connection import QtScheduler, SessionConnection
from .errors import SptfError
from .events import ConnectionLost
from .models import DirectoryEntry, NavigationState
from .navigation import ROOT, NavigationController
from .utils import get_logger


class RemoteBrowser(QObject):
    """Browses the remote tree over one :class:`SessionConnection`.

    The first listing is requested as soon as the channel opens. Listing
    errors revert to the last good directory and keep the session usable;
    ``session_failed`` means the channel is gone and a new browser is needed.
    """

    snapshot = Signal(object)
    error = Signal(object)
    session_failed = Signal(object)

    def __init__(
        self,
        connection: SessionConnection,
        root: str = ROOT,
        request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.logger = get_logger("sptf.browser")
        self.connection = connection
        self.navigation = NavigationController(
            connection.send,
            scheduler=QtScheduler(self),
            request_timeout_ms=request_timeout_ms,
            root=root,
            on_snapshot=self.snapshot.emit,
            on_error=self.error.emit,
            on_session_failed=self._on_session_failed,
        )
        connection.opened.connect(self._on_opened)
        connection.event_received.connect(self.navigation.feed)
        connection.failed.connect(self._on_connection_failed)

    @property
    def state(self) -> NavigationState:
        return self.navigation.state

    @property
    def entries(self) -> Tuple[DirectoryEntry, ...]:
        return self.navigation.entries

    def start(self) -> None:
        self.connection.open()

    def navigate(self, path: str) -> int:
        return self.navigation.navigate(path)

    def refresh(self) -> bool:
        return self.navigation.refresh()

    def go_up(self) -> bool:
        return self.navigation.go_up()

    def close(self) -> None:
        self.navigation.close()
        self.connection.close()

    def _on_opened(self) -> None:
        self.navigation.navigate(self.navigation.state.target_path)

    def _on_connection_failed(self, error: SptfError) -> None:
        self.navigation.feed(ConnectionLost(error))

    def _on_session_failed(self, error: SptfError) -> None:
        self.logger.warning("Session failed: %s", error)
        self.connection.close()
        self.session_failed.emit(error)
