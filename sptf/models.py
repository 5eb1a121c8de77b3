from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class CredentialOrigin(str, Enum):
    LOGIN = "login"
    COOKIE = "cookie"


@dataclass(frozen=True)
class Credential:
    token: str = field(repr=False)
    origin: CredentialOrigin = CredentialOrigin.LOGIN


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    FAILED = "failed"


class FileKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    path: str
    kind: FileKind
    metadata: Dict[str, Any] = field(default_factory=dict, hash=False)

    @property
    def is_dir(self) -> bool:
        return self.kind is FileKind.DIRECTORY


@dataclass(frozen=True)
class DirectorySnapshot:
    path: str
    entries: Tuple[DirectoryEntry, ...] = ()


@dataclass
class NavigationState:
    target_path: str = "/"
    current_path: Optional[str] = None

    @property
    def synced(self) -> bool:
        return self.current_path is not None and self.current_path == self.target_path


@dataclass(frozen=True)
class UploadedFile:
    name: str
    content: bytes = field(repr=False)

    @property
    def size_bytes(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class TransferRequest:
    destination_dir: str
    files: Tuple[UploadedFile, ...] = ()

    @property
    def total_bytes(self) -> int:
        return sum(item.size_bytes for item in self.files)
