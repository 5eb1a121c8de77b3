import os
import re
import webbrowser
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Sequence, Tuple, Union

import httpx

from endpoints import FILES
from .api import raise_for_error
from .client import SptfClient
from .config import MAX_UPLOAD_BYTES
from .errors import NetworkError, ValidationError
from .models import TransferRequest, UploadedFile
from .protocol import encode_transfer_request
from .utils import format_bytes, get_logger

FileContent = Union[bytes, bytearray, memoryview, BinaryIO]

MULTI_DOWNLOAD_NAME = "target.tar.gz"

_FILENAME_RE = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


class DownloadLauncher:
    """Hands a download URL to the host environment."""

    def launch(self, url: str) -> None:
        raise NotImplementedError


class BrowserDownloadLauncher(DownloadLauncher):
    def launch(self, url: str) -> None:
        if not webbrowser.open_new(url):
            raise NetworkError(f"No browser available to open {url}")


class HttpDownloadLauncher(DownloadLauncher):
    """Streams the download into ``dest_dir`` with the client's credentials."""

    def __init__(self, client: SptfClient, dest_dir: str = ".", timeout: float = 60.0) -> None:
        self.client = client
        self.dest_dir = dest_dir
        self.timeout = timeout
        self.saved: List[str] = []
        self.logger = get_logger("sptf.transfers")

    def launch(self, url: str) -> None:
        paths = httpx.URL(url).params.get("paths", "")
        default_name = MULTI_DOWNLOAD_NAME if "," in paths else (os.path.basename(paths.rstrip("/")) or "download")
        partial = None
        try:
            with self.client.stream("GET", url, timeout=self.timeout) as resp:
                if not resp.is_success:
                    resp.read()
                    raise_for_error(resp)
                name = _filename_from(resp.headers.get("content-disposition")) or default_name
                dest = os.path.join(self.dest_dir, os.path.basename(name))
                partial = dest + ".part"
                os.makedirs(self.dest_dir, exist_ok=True)
                with open(partial, "wb") as handle:
                    for chunk in resp.iter_bytes():
                        handle.write(chunk)
            os.replace(partial, dest)
        except httpx.TransportError as exc:
            _discard(partial)
            raise NetworkError(f"GET {url}: {exc}") from exc
        except BaseException:
            _discard(partial)
            raise
        self.logger.info("Downloaded %s", dest)
        self.saved.append(dest)


def _discard(path: Optional[str]) -> None:
    if path and os.path.exists(path):
        os.remove(path)


def _filename_from(disposition: Optional[str]) -> Optional[str]:
    if not disposition:
        return None
    match = _FILENAME_RE.search(disposition)
    return match.group(1).strip() if match else None


def _read_content(content: FileContent) -> bytes:
    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content)
    return content.read()


def files_from_paths(paths: Iterable[str]) -> List[Tuple[str, bytes]]:
    return [(Path(p).name, Path(p).read_bytes()) for p in paths]


def build_transfer_request(destination_dir: str, files: Sequence[Tuple[str, FileContent]]) -> TransferRequest:
    """Read every file fully into memory and bundle them in one request."""
    if not destination_dir:
        raise ValidationError("Upload destination must not be empty")
    if not files:
        raise ValidationError("Nothing to upload")
    uploaded = []
    for name, content in files:
        if not name:
            raise ValidationError("Uploaded file name must not be empty")
        uploaded.append(UploadedFile(name=name, content=_read_content(content)))
    request = TransferRequest(destination_dir=destination_dir, files=tuple(uploaded))
    if request.total_bytes > MAX_UPLOAD_BYTES:
        raise ValidationError(
            f"Upload of {format_bytes(request.total_bytes)} exceeds {format_bytes(MAX_UPLOAD_BYTES)}"
        )
    return request


class TransferCoordinator:
    def __init__(self, client: SptfClient, launcher: Optional[DownloadLauncher] = None) -> None:
        self.client = client
        self.launcher = launcher or BrowserDownloadLauncher()
        self.logger = get_logger("sptf.transfers")

    def upload(self, destination_dir: str, files: Sequence[Tuple[str, FileContent]]) -> None:
        """Send every file in one atomic request; it succeeds or fails as a whole."""
        request = build_transfer_request(destination_dir, files)
        body = encode_transfer_request(request)
        route = FILES["upload"]
        resp = self.client.request(
            route["method"],
            route["path"],
            content=body,
            headers={"Content-Type": "application/octet-stream"},
        )
        raise_for_error(resp)
        self.logger.info(
            "Uploaded %d file(s), %s to %s",
            len(request.files),
            format_bytes(request.total_bytes),
            destination_dir,
        )

    def download_url(self, selected_paths: Sequence[str]) -> str:
        if not selected_paths:
            raise ValidationError("Nothing selected for download")
        return self.client.url_for(FILES["download"]["path"], params={"paths": ",".join(selected_paths)})

    def download(self, selected_paths: Sequence[str]) -> None:
        """Fire-and-forget: the launcher owns completion and failure."""
        url = self.download_url(selected_paths)
        self.logger.info("Starting download of %d path(s)", len(selected_paths))
        self.launcher.launch(url)

    def make_directory(self, full_path: str) -> None:
        if not full_path or not full_path.strip():
            raise ValidationError("Directory path must not be empty")
        route = FILES["make_directory"]
        resp = self.client.request(route["method"], route["path"], json={"directoryPath": full_path})
        raise_for_error(resp)
        self.logger.info("Created directory %s", full_path)
