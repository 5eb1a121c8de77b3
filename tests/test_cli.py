import json

import httpx
import pytest

from sptf import cli
from sptf.config import Settings
from sptf.protocol import decode_transfer_request
from sptf.session import Session
from sptf.session_store import MemoryCredentialStore


class FakeServer:
    def __init__(self):
        self.requests = []
        self.uploads = []
        self.valid_tokens = {"good"}

    def __call__(self, request):
        self.requests.append(request)
        path = request.url.path
        if path == "/login":
            body = json.loads(request.content)
            if body["password"] != "pw":
                return httpx.Response(500, json={"errorCode": 2})
            return httpx.Response(200, json={"authToken": "good"})
        if path == "/login_with_cookie":
            cookie = request.headers.get("cookie", "")
            if cookie.split("=", 1)[-1] in self.valid_tokens:
                return httpx.Response(200)
            return httpx.Response(500, json={"errorCode": 5})
        if path in ("/make_directory", "/logout"):
            return httpx.Response(200)
        if path == "/upload":
            self.uploads.append(decode_transfer_request(request.content))
            return httpx.Response(200)
        if path == "/download":
            return httpx.Response(200, content=b"report body")
        return httpx.Response(404)


class SocketSession(Session):
    """Session whose channels run over the test's fake socket."""

    socket = None

    def open_connection(self, **kwargs):
        kwargs.setdefault("socket", self.socket)
        return super().open_connection(**kwargs)


@pytest.fixture
def server(monkeypatch, make_client, listing_socket):
    fake = FakeServer()
    store = MemoryCredentialStore()

    def build_session(args):
        settings = Settings(http_log_path=None, locale=args.locale or "en")
        session = SocketSession(make_client(fake), store, settings)
        session.socket = listing_socket
        return session

    monkeypatch.setattr(cli, "build_session", build_session)
    fake.store = store
    fake.listing = listing_socket.listing
    return fake


def test_parser_commands():
    parser = cli.build_parser()
    args = parser.parse_args(["--server", "https://h:1", "upload", "/dest", "a.txt", "b.txt"])
    assert args.cmd == "upload"
    assert args.server == "https://h:1"
    assert args.files == ["a.txt", "b.txt"]
    assert parser.parse_args(["ls"]).path == "/"
    assert parser.parse_args(["download", "/a", "--browser"]).browser is True
    with pytest.raises(SystemExit):
        parser.parse_args(["download", "/a", "--browser", "--out", "x"])
    with pytest.raises(SystemExit):
        parser.parse_args([])


def test_login_then_mkdir(server, capsys):
    assert cli.main(["login", "alice", "--password", "pw"]) == 0
    assert server.store.get() == "good"
    assert cli.main(["mkdir", "/docs/new"]) == 0
    mkdir = server.requests[-1]
    assert mkdir.url.path == "/make_directory"
    assert json.loads(mkdir.content) == {"directoryPath": "/docs/new"}
    out = capsys.readouterr().out
    assert "OK: logged in as alice" in out


def test_login_failure_prints_localized_message(server, capsys):
    assert cli.main(["--locale", "zh", "login", "alice", "--password", "nope"]) == 1
    assert "Error: 密码不正确" in capsys.readouterr().err
    assert server.store.get() is None


def test_commands_need_a_valid_session(server, capsys):
    assert cli.main(["status"]) == 1
    assert "Not logged in" in capsys.readouterr().err
    server.store.set("revoked")
    assert cli.main(["mkdir", "/x"]) == 1
    assert server.store.get() is None


def test_logout_clears_store(server, capsys):
    server.store.set("good")
    assert cli.main(["logout"]) == 0
    assert server.store.get() is None
    assert capsys.readouterr().out.strip() == "OK: logged out"


def test_ls_prints_entries(server, qapp, listing_socket, capsys):
    server.store.set("good")
    server.listing["/docs"] = [("a.txt", "/docs/a.txt", False), ("sub", "/docs/sub", True)]
    assert cli.main(["ls", "/docs"]) == 0
    assert capsys.readouterr().out.splitlines() == ["-\ta.txt", "d\tsub"]
    assert listing_socket.opened_url.endswith("/ws?auth_token=good")
    assert listing_socket.closed


def test_ls_json(server, qapp, capsys):
    server.store.set("good")
    server.listing["/"] = [("docs", "/docs", True)]
    assert cli.main(["ls", "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data == {"path": "/", "entries": [{"name": "docs", "path": "/docs", "kind": "directory"}]}


def test_ls_listing_error_exits_nonzero(server, qapp, capsys):
    server.store.set("good")
    server.listing["/secret"] = 0x6
    assert cli.main(["ls", "/secret"]) == 1
    assert "Error: insufficient permission" in capsys.readouterr().err


def test_upload_sends_local_files(server, tmp_path, capsys):
    server.store.set("good")
    first = tmp_path / "a.txt"
    second = tmp_path / "b.bin"
    first.write_bytes(b"alpha")
    second.write_bytes(b"\x00\x01")
    assert cli.main(["upload", "/inbox", str(first), str(second)]) == 0
    assert len(server.uploads) == 1
    upload = server.uploads[0]
    assert upload.destination_dir == "/inbox"
    assert [(f.name, f.content) for f in upload.files] == [("a.txt", b"alpha"), ("b.bin", b"\x00\x01")]
    assert "OK: uploaded 2 file(s)" in capsys.readouterr().out


def test_upload_missing_file_reports_error(server, tmp_path, capsys):
    server.store.set("good")
    assert cli.main(["upload", "/inbox", str(tmp_path / "missing.txt")]) == 1
    assert "Error:" in capsys.readouterr().err
    assert server.uploads == []


def test_download_saves_into_directory(server, tmp_path, capsys):
    server.store.set("good")
    out_dir = tmp_path / "downloads"
    assert cli.main(["download", "/docs/report.pdf", "--out", str(out_dir)]) == 0
    assert (out_dir / "report.pdf").read_bytes() == b"report body"
    download = server.requests[-1]
    assert download.url.params["paths"] == "/docs/report.pdf"
    assert "OK: saved" in capsys.readouterr().out
