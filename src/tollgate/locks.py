"""
Pipeline mutual exclusion.

One modification at a time per staging copy, one promotion at a time,
and never a promotion while a modification is in flight. Each named lock
is a thread lock plus an fcntl advisory lock file, so separate processes
(CLI, MCP server) exclude each other too.

Lock order is fixed: modification before promotion.
"""

import fcntl
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Optional

from tollgate.exceptions import LockTimeout
from tollgate.logging_config import logger
from tollgate.paths import TollgatePaths


POLL_INTERVAL = 0.05


class NamedLock:
    """A thread lock backed by an advisory file lock."""

    def __init__(self, name: str, lock_path: Path):
        self.name = name
        self.lock_path = lock_path
        self._thread_lock = threading.Lock()
        self._handle: Optional[IO[str]] = None

    def acquire(self, timeout: float) -> None:
        """
        Acquire both layers or raise LockTimeout.

        Args:
            timeout: Seconds to wait; 0 means a single non-blocking attempt
        """
        deadline = time.monotonic() + timeout

        if timeout <= 0:
            acquired = self._thread_lock.acquire(blocking=False)
        else:
            acquired = self._thread_lock.acquire(timeout=timeout)
        if not acquired:
            raise LockTimeout(self.name, timeout)

        try:
            self._acquire_file_lock(deadline, timeout)
        except BaseException:
            self._thread_lock.release()
            raise

        logger.debug(f"Acquired {self.name} lock")

    def _acquire_file_lock(self, deadline: float, timeout: float) -> None:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_path, "a+")
        while True:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                self._handle = handle
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    handle.close()
                    raise LockTimeout(self.name, timeout)
                time.sleep(POLL_INTERVAL)

    def release(self) -> None:
        if self._handle is not None:
            try:
                fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
            finally:
                self._handle.close()
                self._handle = None
        self._thread_lock.release()
        logger.debug(f"Released {self.name} lock")

    def locked(self) -> bool:
        return self._thread_lock.locked()

    @contextmanager
    def hold(self, timeout: float) -> Iterator[None]:
        self.acquire(timeout)
        try:
            yield
        finally:
            self.release()


class PipelineLocks:
    """The modification and promotion locks for one staging working copy."""

    MODIFICATION = "modification"
    PROMOTION = "promotion"

    def __init__(self, paths: TollgatePaths, timeout: float = 30.0):
        self.timeout = timeout
        self._modification = NamedLock(self.MODIFICATION, paths.lock_file(self.MODIFICATION))
        self._promotion = NamedLock(self.PROMOTION, paths.lock_file(self.PROMOTION))

    @contextmanager
    def modification(self) -> Iterator[None]:
        """Held for a whole orchestrator run."""
        with self._modification.hold(self.timeout):
            yield

    @contextmanager
    def promotion(self) -> Iterator[None]:
        """Held for a whole promotion or production rollback."""
        with self._modification.hold(self.timeout):
            with self._promotion.hold(self.timeout):
                yield

    def busy(self) -> bool:
        return self._modification.locked() or self._promotion.locked()
