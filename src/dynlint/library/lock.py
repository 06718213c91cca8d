"""Cross-process lock files.

A lock is a file created with ``O_EXCL`` that records the holder's PID, host
and a random token. While held, a background thread refreshes the file's
mtime as a heartbeat. A waiter may break the lock when the holder is a dead
process on the same host, or when the heartbeat is older than the stale
threshold.

Lock files are only ever removed while holding an OS-level lock on a
sidecar ``.guard`` file, so a lock file cannot be swapped out between being
judged stale and being removed.
"""

from __future__ import annotations

import json
import os
import socket
import sys
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl

from dynlint.core.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_STALE_AFTER = 300.0
DEFAULT_HEARTBEAT_INTERVAL = 10.0
DEFAULT_POLL_INTERVAL = 0.1


class LockTimeout(TimeoutError):
    """The lock could not be acquired in the allotted time."""

    def __init__(self, path: Path, timeout: float):
        self.path = path
        super().__init__(f"Timed out after {timeout}s waiting for {path}")


def _pid_alive(pid: int) -> bool:
    if sys.platform == "win32":
        # No cheap liveness check; rely on the heartbeat instead.
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


@contextmanager
def _guarded(path: Path) -> Iterator[None]:
    """Hold an exclusive OS lock on ``path`` for the duration of the block."""
    with open(path, "a+b") as f:
        f.seek(0)
        if sys.platform == "win32":
            msvcrt.locking(f.fileno(), msvcrt.LK_LOCK, 1)
        else:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            if sys.platform == "win32":
                f.seek(0)
                msvcrt.locking(f.fileno(), msvcrt.LK_UNLCK, 1)
            else:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)


class FileLock:
    """Exclusive lock on ``path`` shared between threads and processes.

    Usage::

        with FileLock(paths.lock_path("build", key)):
            ...
    """

    def __init__(
        self,
        path: Path,
        stale_after: float = DEFAULT_STALE_AFTER,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: Optional[float] = None,
    ):
        self.path = Path(path)
        self.stale_after = stale_after
        self.heartbeat_interval = heartbeat_interval
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._token: Optional[str] = None
        self._stop = threading.Event()
        self._heartbeat: Optional[threading.Thread] = None

    @property
    def held(self) -> bool:
        return self._token is not None

    @property
    def guard_path(self) -> Path:
        return self.path.with_name(f"{self.path.name}.guard")

    def acquire(self) -> None:
        """Block until the lock is held.

        Raises:
            LockTimeout: If ``timeout`` elapses first.
            RuntimeError: If this object already holds the lock.
        """
        if self._token is not None:
            raise RuntimeError(f"{self.path} is already held by this FileLock")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        token = uuid.uuid4().hex
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        waited = False

        while not self._try_create(token):
            if self._break_if_stale():
                continue
            if not waited:
                LOGGER.info(f"Waiting for lock {self.path}")
                waited = True
            if deadline is not None and time.monotonic() >= deadline:
                raise LockTimeout(self.path, self.timeout or 0.0)
            time.sleep(self.poll_interval)

        self._token = token
        self._stop.clear()
        self._heartbeat = threading.Thread(
            target=self._beat, name=f"heartbeat:{self.path.name}", daemon=True
        )
        self._heartbeat.start()
        LOGGER.debug(f"Acquired lock {self.path}")

    def release(self) -> None:
        """Release the lock if held. Safe to call more than once."""
        if self._token is None:
            return
        self._stop.set()
        if self._heartbeat is not None:
            self._heartbeat.join()
            self._heartbeat = None
        with _guarded(self.guard_path):
            holder = self._read(self.path)
            if holder is not None and holder.get("token") == self._token:
                try:
                    self.path.unlink()
                except FileNotFoundError:
                    pass
            else:
                LOGGER.warning(f"Lock {self.path} was taken over while held")
        self._token = None
        LOGGER.debug(f"Released lock {self.path}")

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()

    def _try_create(self, token: str) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        record = {
            "pid": os.getpid(),
            "host": socket.gethostname(),
            "token": token,
            "acquired_at": time.time(),
        }
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(record, f)
        return True

    @staticmethod
    def _read(path: Path) -> Optional[Dict[str, Any]]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def _is_stale(self, holder: Optional[Dict[str, Any]], mtime: float) -> bool:
        if time.time() - mtime > self.stale_after:
            return True
        if holder is None:
            # Being written right now, or garbage; only age can condemn it.
            return False
        pid = holder.get("pid")
        if holder.get("host") == socket.gethostname() and isinstance(pid, int):
            return not _pid_alive(pid)
        return False

    def _break_if_stale(self) -> bool:
        """Remove the current lock file if its holder is gone.

        Returns True if a retry should happen immediately.
        """
        with _guarded(self.guard_path):
            try:
                mtime = self.path.stat().st_mtime
            except FileNotFoundError:
                return True
            holder = self._read(self.path)
            if not self._is_stale(holder, mtime):
                return False
            LOGGER.warning(f"Breaking stale lock {self.path} held by {holder}")
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
        return True

    def _beat(self) -> None:
        while not self._stop.wait(self.heartbeat_interval):
            try:
                os.utime(self.path)
            except FileNotFoundError:
                LOGGER.warning(f"Lock file {self.path} disappeared while held")
                return
