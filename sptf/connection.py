from typing import Callable, Optional

import httpx
from PySide6.QtCore import QByteArray, QObject, QTimer, QUrl, Signal
from PySide6.QtNetwork import QAbstractSocket
from PySide6.QtWebSockets import QWebSocket

from endpoints import SOCKET
from .config import OPEN_POLL_ATTEMPTS, OPEN_POLL_INTERVAL_MS
from .errors import ConnectTimeout, NetworkError, SptfError
from .models import ConnectionState, Credential
from .protocol import decode_server_message
from .utils import get_logger


def make_ws_url(base_http_url: str, token: str) -> str:
    """Build the ws(s):// session URL from the http(s):// server origin."""
    route = SOCKET["session"]
    url = httpx.URL(base_http_url)
    scheme = "wss" if url.scheme == "https" else "ws"
    return str(url.copy_with(scheme=scheme, path=route["path"], params={route["token_param"]: token}))


def _to_bytes(data) -> bytes:
    if isinstance(data, QByteArray):
        return data.data()
    return bytes(data)


class QtScheduler:
    """``call_later`` backed by single-shot QTimers owned by ``parent``."""

    def __init__(self, parent: Optional[QObject] = None) -> None:
        self._parent = parent

    def __call__(self, delay_ms: int, callback: Callable[[], None]) -> Callable[[], None]:
        timer = QTimer(self._parent)
        timer.setSingleShot(True)
        pending = [True]

        def fire() -> None:
            if pending[0]:
                pending[0] = False
                timer.deleteLater()
                callback()

        def cancel() -> None:
            if pending[0]:
                pending[0] = False
                timer.stop()
                timer.deleteLater()

        timer.timeout.connect(fire)
        timer.start(delay_ms)
        return cancel


class SessionConnection(QObject):
    """One persistent, authenticated channel to the server.

    ``open()`` polls the socket every ``poll_interval_ms`` up to
    ``poll_attempts`` times; if it is still not connected the connection fails
    with :class:`~sptf.errors.ConnectTimeout`. Any transport error moves the
    connection to ``FAILED``, which is terminal: open a new instance instead of
    reusing this one.

    ``state`` is ``None`` until ``open()`` is called; from then on it is one
    of CONNECTING, OPEN or FAILED.
    """

    opened = Signal()
    failed = Signal(object)
    event_received = Signal(object)

    def __init__(
        self,
        base_url: str,
        credential: Credential,
        *,
        socket=None,
        poll_attempts: int = OPEN_POLL_ATTEMPTS,
        poll_interval_ms: int = OPEN_POLL_INTERVAL_MS,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.url = make_ws_url(base_url, credential.token)
        self.state: Optional[ConnectionState] = None
        self.poll_attempts = poll_attempts
        self.logger = get_logger("sptf.connection")
        self.ws = socket if socket is not None else QWebSocket()
        self._attempts = 0
        self._closing = False

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(poll_interval_ms)
        self._poll_timer.timeout.connect(self._poll)

        # errorOccurred only exists on Qt >= 6.5
        if hasattr(self.ws, "errorOccurred"):
            self.ws.errorOccurred.connect(self._on_socket_error)
        else:
            self.ws.error.connect(self._on_socket_error)
        self.ws.disconnected.connect(self._on_disconnected)
        self.ws.binaryMessageReceived.connect(self._on_binary)
        self.ws.textMessageReceived.connect(self._on_text)

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    def open(self) -> None:
        if self.state is not None:
            raise RuntimeError("SessionConnection can only be opened once")
        self.state = ConnectionState.CONNECTING
        self._attempts = 0
        self.logger.info("Opening session channel")
        self.ws.open(QUrl(self.url))
        self._poll_timer.start()

    def send(self, data: bytes) -> None:
        if self.state is not ConnectionState.OPEN:
            raise NetworkError("Session channel is not open")
        self.ws.sendBinaryMessage(QByteArray(data))

    def close(self) -> None:
        self._closing = True
        self._poll_timer.stop()
        if self.state is not ConnectionState.FAILED:
            self.state = ConnectionState.FAILED
            self.logger.info("Session channel closed")
        self.ws.close()

    # -- internals -------------------------------------------------------

    def _poll(self) -> None:
        if self.state is not ConnectionState.CONNECTING:
            self._poll_timer.stop()
            return
        self._attempts += 1
        if self.ws.state() == QAbstractSocket.SocketState.ConnectedState:
            self._poll_timer.stop()
            self.state = ConnectionState.OPEN
            self.logger.info("Session channel open after %d poll(s)", self._attempts)
            self.opened.emit()
            return
        if self._attempts >= self.poll_attempts:
            self._fail(ConnectTimeout(f"Channel not open after {self._attempts} polls"))

    def _fail(self, error: SptfError) -> None:
        if self.state is ConnectionState.FAILED:
            return
        self.state = ConnectionState.FAILED
        self._closing = True
        self._poll_timer.stop()
        self.logger.warning("Session channel failed: %s", error)
        self.ws.close()
        self.failed.emit(error)

    def _on_socket_error(self, *_args) -> None:
        if self._closing:
            return
        self._fail(NetworkError(f"Websocket error: {self.ws.errorString()}"))

    def _on_disconnected(self) -> None:
        if self._closing:
            return
        self._fail(NetworkError("Session channel closed by peer"))

    def _on_binary(self, data) -> None:
        if self.state not in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            return
        try:
            event = decode_server_message(_to_bytes(data))
        except SptfError as exc:
            self._fail(exc)
            return
        self.event_received.emit(event)

    def _on_text(self, text: str) -> None:
        self.logger.debug("Ignoring text frame (%d chars)", len(text))
