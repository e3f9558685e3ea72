"""Per-key mutual exclusion for workflows that race on the same hostname or owner."""

import fcntl
import logging
import os
import re
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class FileLock:
    """
    Exclusive advisory lock on a file, held across processes.

    Each acquire opens its own descriptor, so two FileLock objects on the
    same path exclude each other even inside one process.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._fd: Optional[int] = None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
        except OSError:
            os.close(fd)
            raise
        self._fd = fd

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """
    Hands out one lock per key.

    Threads of one process queue on an in-process lock. With ``lock_dir``
    set, holders also take an flock on ``<lock_dir>/<key>.lock`` so separate
    vmctl processes serialize too. Entries are dropped once no thread holds
    or waits for them.
    """

    def __init__(self, lock_dir: Optional[Path] = None):
        self.lock_dir = Path(lock_dir).expanduser() if lock_dir else None
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def lock_path(self, key: str) -> Optional[Path]:
        if self.lock_dir is None:
            return None
        return self.lock_dir / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.lock"

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.users += 1

        try:
            with entry.lock:
                path = self.lock_path(key)
                if path is None:
                    yield
                else:
                    logger.debug("Waiting for lock %s", path)
                    with FileLock(path):
                        yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def __contains__(self, key: str) -> bool:
        with self._guard:
            return key in self._entries

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
