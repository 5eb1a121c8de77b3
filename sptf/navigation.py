"""Directory navigation over the session connection.

:class:`NavigationController` turns "show me path P" intents into
list-directory messages and reconciles the asynchronous replies against the
latest request. Inbound events are queued in an inbox and handled one at a
time, so a callback that navigates again never re-enters a handler.

Every request carries a fresh id; only the reply that echoes the live id is
applied, everything else is a stale reply and is dropped. Replies with id 0
come from peers that do not echo ids and are matched on the target path.
"""

from collections import deque
from typing import Any, Callable, Deque, Optional, Tuple

from .config import DEFAULT_REQUEST_TIMEOUT_MS
from .errors import ErrorCategory, NetworkError, RequestTimeout, ServerError, SptfError
from .events import ConnectionLost, GeneralErrorReceived, ListingFailed, RequestTimedOut, SnapshotReceived
from .models import DirectoryEntry, DirectorySnapshot, NavigationState
from .protocol import encode_list_directory
from .utils import get_logger

ROOT = "/"

# call_later(delay_ms, callback) -> cancel()
Scheduler = Callable[[int, Callable[[], None]], Callable[[], None]]

SESSION_FATAL = frozenset({ErrorCategory.COOKIE_EXPIRED, ErrorCategory.COOKIE_INVALID})


def parent_path(path: Optional[str]) -> Optional[str]:
    """Drop the last ``/``-delimited segment; the root has no parent."""
    if not path or path == ROOT:
        return None
    trimmed = path.rstrip("/")
    if not trimmed:
        return None
    head, sep, _ = trimmed.rpartition("/")
    if not sep:
        return None
    return head or ROOT


def _ignore(*_args: Any) -> None:
    return None


class NavigationController:
    def __init__(
        self,
        send: Callable[[bytes], None],
        *,
        scheduler: Optional[Scheduler] = None,
        request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS,
        root: str = ROOT,
        on_snapshot: Optional[Callable[[DirectorySnapshot], None]] = None,
        on_error: Optional[Callable[[SptfError], None]] = None,
        on_session_failed: Optional[Callable[[SptfError], None]] = None,
    ) -> None:
        self._send = send
        self._scheduler = scheduler
        self.request_timeout_ms = request_timeout_ms
        self.on_snapshot = on_snapshot or _ignore
        self.on_error = on_error or _ignore
        self.on_session_failed = on_session_failed or _ignore
        self.state = NavigationState(target_path=root)
        self.entries: Tuple[DirectoryEntry, ...] = ()
        self.logger = get_logger("sptf.navigation")
        self._last_request_id = 0
        self._live_request_id: Optional[int] = None
        self._cancel_timer: Optional[Callable[[], None]] = None
        self._inbox: Deque[Any] = deque()
        self._draining = False
        self._closed = False

    # -- intents ---------------------------------------------------------

    @property
    def pending(self) -> bool:
        return self._live_request_id is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def can_go_up(self) -> bool:
        return parent_path(self.state.current_path) is not None

    def navigate(self, path: str) -> int:
        """Make ``path`` the live target and request its listing.

        Returns the request id. Does not wait for the reply.
        """
        if self._closed:
            raise NetworkError("Session connection is closed")
        if not path:
            path = ROOT
        self._disarm_timer()
        previous_target = self.state.target_path
        self._last_request_id += 1
        request_id = self._last_request_id
        self._live_request_id = request_id
        self.state.target_path = path
        self.logger.debug("navigate #%s -> %s", request_id, path)
        self._arm_timer(request_id)
        try:
            self._send(encode_list_directory(path, request_id))
        except BaseException:
            self._resolve()
            self.state.target_path = previous_target
            raise
        return request_id

    def refresh(self) -> bool:
        if self.state.current_path is None:
            return False
        self.navigate(self.state.current_path)
        return True

    def go_up(self) -> bool:
        parent = parent_path(self.state.current_path)
        if parent is None:
            return False
        self.navigate(parent)
        return True

    def close(self) -> None:
        """Drop all pending correlation; later replies are ignored."""
        self._closed = True
        self._live_request_id = None
        self._disarm_timer()
        self._inbox.clear()

    # -- reconciliation --------------------------------------------------

    def feed(self, event: Any) -> None:
        self._inbox.append(event)
        if self._draining:
            return
        self._draining = True
        try:
            while self._inbox:
                self._dispatch(self._inbox.popleft())
        finally:
            self._draining = False

    def _dispatch(self, event: Any) -> None:
        if isinstance(event, ConnectionLost):
            self._on_connection_lost(event)
            return
        if self._closed:
            self.logger.debug("Ignoring %s after close", type(event).__name__)
            return
        if isinstance(event, SnapshotReceived):
            self._on_snapshot(event)
        elif isinstance(event, ListingFailed):
            self._on_listing_failed(event)
        elif isinstance(event, RequestTimedOut):
            self._on_timeout(event)
        elif isinstance(event, GeneralErrorReceived):
            self._on_general_error(event)
        else:
            self.logger.warning("Unhandled navigation event %r", event)

    def _is_live(self, request_id: int, path: str) -> bool:
        if self._live_request_id is None:
            return False
        if request_id:
            return request_id == self._live_request_id
        return path == self.state.target_path

    def _on_snapshot(self, event: SnapshotReceived) -> None:
        snapshot = event.snapshot
        if not self._is_live(event.request_id, snapshot.path):
            self.logger.debug("Discarding stale snapshot #%s for %s", event.request_id, snapshot.path)
            return
        self._resolve()
        self.state.current_path = self.state.target_path
        self.entries = snapshot.entries
        self.logger.debug("Synced %s (%d entries)", snapshot.path, len(snapshot.entries))
        self.on_snapshot(snapshot)

    def _on_listing_failed(self, event: ListingFailed) -> None:
        if not self._is_live(event.request_id, event.path):
            self.logger.debug("Discarding stale error #%s for %s", event.request_id, event.path)
            return
        self._revert(ServerError(event.code))

    def _on_timeout(self, event: RequestTimedOut) -> None:
        if event.request_id != self._live_request_id:
            return
        self.logger.warning("Listing %s timed out after %d ms", self.state.target_path, self.request_timeout_ms)
        self._revert(RequestTimeout(f"No reply for {self.state.target_path}"))

    def _on_general_error(self, event: GeneralErrorReceived) -> None:
        error = ServerError(event.code)
        self.logger.warning("Server reported %r", error)
        if error.category in SESSION_FATAL:
            self._fail_session(error)
            return
        self.on_error(error)

    def _on_connection_lost(self, event: ConnectionLost) -> None:
        if self._closed:
            return
        self._fail_session(event.error)

    def _fail_session(self, error: SptfError) -> None:
        self.close()
        self.on_session_failed(error)

    def _revert(self, error: SptfError) -> None:
        self._resolve()
        if self.state.current_path is not None:
            self.state.target_path = self.state.current_path
        self.on_error(error)

    def _resolve(self) -> None:
        self._live_request_id = None
        self._disarm_timer()

    # -- timers ----------------------------------------------------------

    def _arm_timer(self, request_id: int) -> None:
        if self._scheduler is None or self.request_timeout_ms <= 0:
            return
        self._cancel_timer = self._scheduler(
            self.request_timeout_ms,
            lambda: self.feed(RequestTimedOut(request_id)),
        )

    def _disarm_timer(self) -> None:
        if self._cancel_timer is not None:
            cancel, self._cancel_timer = self._cancel_timer, None
            cancel()
