from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from contextlib import contextmanager
from typing import Iterator

from .errors import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 64


class ReadWriteLock:
    """Many concurrent readers or one writer.

    Waiting writers block new readers so a steady stream of readers cannot
    starve them.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ThumbnailCache:
    """Identity to encoded image bytes, safe for concurrent use.

    Values are stored only once complete, so ``get`` either returns the whole
    buffer from the last ``put`` or ``None``. The cache holds at most
    ``max_entries`` identities and drops the least recently written one when
    a new identity would exceed that.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._entries: OrderedDict[str, bytes] = OrderedDict()
        self._lock = ReadWriteLock()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def put(self, identity: str, data: bytes) -> None:
        data = bytes(data)
        with self._lock.write():
            self._entries[identity] = data
            self._entries.move_to_end(identity)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted thumbnail %s", evicted)

    def get(self, identity: str) -> bytes | None:
        with self._lock.read():
            return self._entries.get(identity)

    def require(self, identity: str) -> bytes:
        data = self.get(identity)
        if data is None:
            raise NotFoundError(f"no thumbnail for {identity}")
        return data

    def __contains__(self, identity: object) -> bool:
        with self._lock.read():
            return identity in self._entries

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)
