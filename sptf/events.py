"""Typed inbound events consumed by the navigation controller."""

from dataclasses import dataclass

from .errors import SptfError
from .models import DirectorySnapshot


@dataclass(frozen=True)
class SnapshotReceived:
    request_id: int
    snapshot: DirectorySnapshot


@dataclass(frozen=True)
class ListingFailed:
    request_id: int
    path: str
    code: int


@dataclass(frozen=True)
class GeneralErrorReceived:
    code: int


@dataclass(frozen=True)
class RequestTimedOut:
    request_id: int


@dataclass(frozen=True)
class ConnectionLost:
    error: SptfError
