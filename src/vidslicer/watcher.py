from __future__ import annotations

import logging
import queue
import threading
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .errors import FileAccessError, InvalidInputError

logger = logging.getLogger(__name__)

# called as emit(name, *payload)
Emitter = Callable[..., None]

_OBSERVER_JOIN_TIMEOUT = 5.0


class WatchEvent(Enum):
    CREATED = "file-created"
    REMOVED = "file-removed"
    RENAMED = "file-renamed"
    CHANGED = "file-changed"


_EVENT_KINDS = {
    EVENT_TYPE_CREATED: WatchEvent.CREATED,
    EVENT_TYPE_DELETED: WatchEvent.REMOVED,
    EVENT_TYPE_MOVED: WatchEvent.RENAMED,
    EVENT_TYPE_MODIFIED: WatchEvent.CHANGED,
}


class ObserverLike(Protocol):
    def schedule(self, event_handler: FileSystemEventHandler, path: str, recursive: bool = ...) -> object: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def join(self, timeout: float | None = ...) -> None: ...

    def is_alive(self) -> bool: ...


ObserverFactory = Callable[[], ObserverLike]


def classify_event(event: FileSystemEvent) -> WatchEvent | None:
    return _EVENT_KINDS.get(event.event_type)


class _SessionHandler(FileSystemEventHandler):
    def __init__(self, session: WatchSession) -> None:
        super().__init__()
        self._session = session

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._session.submit(event)


class WatchSession:
    """One directory subscription and the pump thread that republishes it.

    Raw events go through a queue to the pump, which turns them into coarse
    event names. The pump checks the closed flag and emits under
    ``_emit_lock``, and ``close`` sets the flag under the same lock, so once
    ``close`` starts nothing more is emitted. ``close`` returns only after the
    observer and the pump have both exited.
    """

    def __init__(
        self,
        directory: Path,
        emit: Emitter,
        observer_factory: ObserverFactory | None = None,
    ) -> None:
        self.directory = directory
        self._emit = emit
        self._observer = (observer_factory or Observer)()
        self._queue: queue.Queue[FileSystemEvent | None] = queue.Queue()
        self._closed = threading.Event()
        # reentrant so an emit callback may close its own session
        self._emit_lock = threading.RLock()
        self._pump = threading.Thread(
            target=self._run,
            name=f"vidslicer-watch:{directory.name}",
            daemon=True,
        )

    def start(self) -> None:
        try:
            self._observer.schedule(_SessionHandler(self), str(self.directory), recursive=False)
            self._observer.start()
        except OSError as exc:
            self._closed.set()
            self._stop_observer()
            raise FileAccessError(f"cannot watch {self.directory} ({exc})") from exc
        self._pump.start()
        logger.info("Watching %s", self.directory)

    def submit(self, event: FileSystemEvent) -> None:
        if self._closed.is_set():
            return
        self._queue.put(event)

    def close(self) -> None:
        with self._emit_lock:
            if self._closed.is_set():
                return
            self._closed.set()
        self._stop_observer()
        self._queue.put(None)
        if self._pump.is_alive() and threading.current_thread() is not self._pump:
            self._pump.join()
        logger.info("Stopped watching %s", self.directory)

    def _stop_observer(self) -> None:
        try:
            self._observer.stop()
            if self._observer.is_alive():
                self._observer.join(timeout=_OBSERVER_JOIN_TIMEOUT)
        except RuntimeError as exc:
            logger.warning("Failed to stop observer for %s: %s", self.directory, exc)

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            if event is None:
                return
            with self._emit_lock:
                if self._closed.is_set():
                    continue
                kind = classify_event(event)
                if kind is None:
                    continue
                try:
                    self._emit(kind.value)
                except Exception:
                    logger.exception("Failed to publish %s for %s", kind.value, self.directory)


class DirectoryWatcher:
    """Keeps at most one ``WatchSession`` alive and swaps it on request."""

    def __init__(self, emit: Emitter, observer_factory: ObserverFactory | None = None) -> None:
        self._emit = emit
        self._observer_factory = observer_factory
        self._lock = threading.Lock()
        self._session: WatchSession | None = None

    @property
    def location(self) -> Path | None:
        with self._lock:
            return self._session.directory if self._session is not None else None

    def watch(self, directory: str | Path) -> None:
        if not str(directory).strip():
            raise InvalidInputError("watch directory is empty")
        path = Path(directory).expanduser()
        if not path.is_dir():
            raise FileAccessError(f"not a directory: {path}")
        with self._lock:
            self._close_session()
            session = WatchSession(path, self._emit, self._observer_factory)
            session.start()
            self._session = session

    def close(self) -> None:
        with self._lock:
            self._close_session()

    def _close_session(self) -> None:
        if self._session is None:
            return
        session, self._session = self._session, None
        session.close()
