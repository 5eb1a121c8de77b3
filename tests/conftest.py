from typing import Callable, List, Tuple

import httpx
import pytest
from PySide6.QtCore import QByteArray, QCoreApplication
from PySide6.QtNetwork import QAbstractSocket

from sptf.client import SptfClient
from sptf.protocol import decode_client_message, encode_error_reply, encode_snapshot_reply


@pytest.fixture(scope="session")
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def make_client(tmp_path):
    """Build a client whose HTTP traffic goes to ``handler``."""
    clients = []

    def factory(handler: Callable[[httpx.Request], httpx.Response], token=None) -> SptfClient:
        client = SptfClient(
            base_url="https://files.example.test:8766",
            token=token,
            http_log_path=str(tmp_path / "http.log"),
            transport=httpx.MockTransport(handler),
        )
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()


class FakeSignal:
    def __init__(self) -> None:
        self._slots = []

    def connect(self, slot) -> None:
        self._slots.append(slot)

    def emit(self, *args) -> None:
        for slot in list(self._slots):
            slot(*args)


class FakeSocket:
    """Stands in for QWebSocket: records outbound frames, lets tests drive state."""

    def __init__(self) -> None:
        self.errorOccurred = FakeSignal()
        self.disconnected = FakeSignal()
        self.binaryMessageReceived = FakeSignal()
        self.textMessageReceived = FakeSignal()
        self._state = QAbstractSocket.SocketState.UnconnectedState
        self.opened_url = None
        self.sent: List[bytes] = []
        self.closed = False

    def open(self, url) -> None:
        self.opened_url = url.toString()
        self._state = QAbstractSocket.SocketState.ConnectingState

    def state(self):
        return self._state

    def connect_now(self) -> None:
        self._state = QAbstractSocket.SocketState.ConnectedState

    def sendBinaryMessage(self, data) -> int:
        self.sent.append(bytes(data.data()))
        return len(self.sent[-1])

    def errorString(self) -> str:
        return "connection refused"

    def close(self) -> None:
        self.closed = True
        self._state = QAbstractSocket.SocketState.UnconnectedState


@pytest.fixture
def fake_socket():
    return FakeSocket()


class FakeScheduler:
    """Manual clock for request timeouts."""

    def __init__(self) -> None:
        self.timers: List[Tuple[int, Callable[[], None], List[bool]]] = []

    def __call__(self, delay_ms: int, callback: Callable[[], None]) -> Callable[[], None]:
        live = [True]
        self.timers.append((delay_ms, callback, live))

        def cancel() -> None:
            live[0] = False

        return cancel

    @property
    def active(self) -> int:
        return sum(1 for _d, _cb, live in self.timers if live[0])

    def fire_all(self) -> None:
        for _delay, callback, live in list(self.timers):
            if live[0]:
                live[0] = False
                callback()


@pytest.fixture
def scheduler():
    return FakeScheduler()


class ListingSocket(FakeSocket):
    """FakeSocket that connects at once and answers every listing request.

    ``listing`` maps a path to its entries as ``(name, path, is_dir)`` tuples,
    or to an error code.
    """

    def __init__(self, listing) -> None:
        super().__init__()
        self.listing = listing

    def open(self, url) -> None:
        super().open(url)
        self.connect_now()

    def sendBinaryMessage(self, data) -> int:
        size = super().sendBinaryMessage(data)
        request_id, path = decode_client_message(self.sent[-1])
        answer = self.listing.get(path, [])
        if isinstance(answer, int):
            reply = encode_error_reply(path, answer, request_id=request_id)
        else:
            reply = encode_snapshot_reply(path, answer, request_id=request_id)
        self.binaryMessageReceived.emit(QByteArray(reply))
        return size


@pytest.fixture
def listing_socket():
    return ListingSocket({})
