import time

import pytest
from PySide6.QtCore import QByteArray, QEventLoop, QTimer

from sptf.browser import RemoteBrowser
from sptf.connection import QtScheduler, SessionConnection, make_ws_url
from sptf.errors import ConnectTimeout, NetworkError, ProtocolError, ServerError
from sptf.models import ConnectionState, Credential
from sptf.protocol import decode_client_message, encode_error_reply, encode_snapshot_reply

BASE = "https://files.example.test:8766"


@pytest.fixture
def connection(qapp, fake_socket):
    conn = SessionConnection(BASE, Credential(token="tok-1"), socket=fake_socket, poll_interval_ms=60_000)
    yield conn
    conn.close()


def _capture(signal):
    seen = []
    signal.connect(seen.append)
    return seen


@pytest.mark.parametrize(
    "base,expected",
    [
        ("https://files.example.test:8766", "wss://files.example.test:8766/ws?auth_token=abc"),
        ("http://localhost:8766/", "ws://localhost:8766/ws?auth_token=abc"),
    ],
)
def test_ws_url_carries_token(base, expected):
    assert make_ws_url(base, "abc") == expected


def test_state_is_unset_until_opened(connection):
    assert connection.state is None
    assert not connection.is_open


def test_open_uses_session_url(connection, fake_socket):
    connection.open()
    assert connection.state is ConnectionState.CONNECTING
    assert fake_socket.opened_url == "wss://files.example.test:8766/ws?auth_token=tok-1"


def test_open_reports_success_once_connected(connection, fake_socket):
    opened = []
    connection.opened.connect(lambda: opened.append(True))
    connection.open()
    connection._poll()
    assert opened == []
    fake_socket.connect_now()
    connection._poll()
    assert opened == [True]
    assert connection.is_open

    connection.send(b"\x01\x02")
    assert fake_socket.sent == [b"\x01\x02"]


def test_open_gives_up_after_ten_polls(connection, fake_socket):
    failures = _capture(connection.failed)
    connection.open()
    for _ in range(9):
        connection._poll()
    assert failures == []
    connection._poll()
    assert len(failures) == 1
    assert isinstance(failures[0], ConnectTimeout)
    assert connection.state is ConnectionState.FAILED
    assert fake_socket.closed
    # later polls are ignored
    connection._poll()
    assert len(failures) == 1


def test_open_times_out_after_about_two_seconds(qapp, fake_socket):
    conn = SessionConnection(BASE, Credential(token="tok"), socket=fake_socket)
    loop = QEventLoop()
    failures = _capture(conn.failed)
    conn.failed.connect(lambda _error: loop.quit())
    QTimer.singleShot(5000, loop.quit)

    started = time.monotonic()
    conn.open()
    loop.exec()
    elapsed = time.monotonic() - started

    assert len(failures) == 1
    assert isinstance(failures[0], ConnectTimeout)
    assert 1.5 <= elapsed <= 4.0


def test_open_twice_is_rejected(connection):
    connection.open()
    with pytest.raises(RuntimeError):
        connection.open()


def test_send_requires_open_channel(connection, fake_socket):
    with pytest.raises(NetworkError):
        connection.send(b"x")
    connection.open()
    with pytest.raises(NetworkError):
        connection.send(b"x")
    assert fake_socket.sent == []


def test_socket_error_fails_connection(connection, fake_socket):
    failures = _capture(connection.failed)
    connection.open()
    fake_socket.connect_now()
    connection._poll()
    fake_socket.errorOccurred.emit(None)
    fake_socket.disconnected.emit()
    assert len(failures) == 1
    assert isinstance(failures[0], NetworkError)
    assert "connection refused" in str(failures[0])
    with pytest.raises(NetworkError):
        connection.send(b"x")


def test_peer_disconnect_fails_connection(connection, fake_socket):
    failures = _capture(connection.failed)
    connection.open()
    fake_socket.connect_now()
    connection._poll()
    fake_socket.disconnected.emit()
    assert connection.state is ConnectionState.FAILED
    assert isinstance(failures[0], NetworkError)


def test_local_close_does_not_report_failure(connection, fake_socket):
    failures = _capture(connection.failed)
    connection.open()
    connection.close()
    fake_socket.disconnected.emit()
    assert failures == []
    assert connection.state is ConnectionState.FAILED


def test_inbound_frames_are_decoded(connection, fake_socket):
    events = _capture(connection.event_received)
    connection.open()
    fake_socket.connect_now()
    connection._poll()
    fake_socket.binaryMessageReceived.emit(QByteArray(encode_error_reply("/x", 6, request_id=4)))
    fake_socket.textMessageReceived.emit("hello")
    assert len(events) == 1
    assert events[0].request_id == 4
    assert events[0].code == 6


def test_garbage_frame_fails_connection(connection, fake_socket):
    failures = _capture(connection.failed)
    events = _capture(connection.event_received)
    connection.open()
    fake_socket.connect_now()
    connection._poll()
    fake_socket.binaryMessageReceived.emit(QByteArray(b"\xff\xff\xff"))
    assert events == []
    assert isinstance(failures[0], ProtocolError)
    assert connection.state is ConnectionState.FAILED


def test_qt_scheduler_fires_and_cancels(qapp):
    loop = QEventLoop()
    scheduler = QtScheduler(loop)
    fired = []
    keep = scheduler(10, lambda: fired.append("kept"))
    cancel = scheduler(10, lambda: fired.append("cancelled"))
    cancel()
    cancel()
    QTimer.singleShot(200, loop.quit)
    loop.exec()
    assert fired == ["kept"]
    keep()


def test_browser_lists_root_when_channel_opens(connection, fake_socket):
    browser = RemoteBrowser(connection)
    snapshots = _capture(browser.snapshot)
    errors = _capture(browser.error)
    browser.start()
    fake_socket.connect_now()
    connection._poll()

    request_id, path = decode_client_message(fake_socket.sent[0])
    assert path == "/"
    reply = encode_snapshot_reply("/", [("docs", "/docs", True), ("a.txt", "/a.txt", False)], request_id=request_id)
    fake_socket.binaryMessageReceived.emit(QByteArray(reply))
    assert browser.state.current_path == "/"
    assert [e.name for e in browser.entries] == ["docs", "a.txt"]
    assert len(snapshots) == 1

    request_id = browser.navigate("/docs")
    fake_socket.binaryMessageReceived.emit(QByteArray(encode_error_reply("/docs", 6, request_id=request_id)))
    assert browser.state.target_path == "/"
    assert isinstance(errors[0], ServerError)
    browser.close()


def test_browser_reports_lost_channel(connection, fake_socket):
    browser = RemoteBrowser(connection)
    failures = _capture(browser.session_failed)
    browser.start()
    fake_socket.connect_now()
    connection._poll()
    fake_socket.disconnected.emit()
    assert len(failures) == 1
    assert isinstance(failures[0], NetworkError)
    with pytest.raises(NetworkError):
        browser.navigate("/docs")
