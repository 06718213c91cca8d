"""Tests for cross-process lock files."""

from __future__ import annotations

import json
import os
import socket
import sys
import threading
import time
from pathlib import Path
from typing import List

import pytest

from dynlint.library.lock import FileLock, LockTimeout, _guarded


def _write_holder(path: Path, pid: int, token: str = "other") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps({"pid": pid, "host": socket.gethostname(), "token": token, "acquired_at": 0})
    )


class TestFileLock:
    """Tests for FileLock."""

    def test_acquire_and_release(self, tmp_path: Path) -> None:
        path = tmp_path / "locks" / "build-x.lock"
        with FileLock(path) as lock:
            assert lock.held
            holder = json.loads(path.read_text())
            assert holder["pid"] == os.getpid()
            assert holder["host"] == socket.gethostname()
        assert not path.exists()
        assert not lock.held

    def test_released_on_exception(self, tmp_path: Path) -> None:
        path = tmp_path / "x.lock"
        with pytest.raises(ValueError):
            with FileLock(path):
                raise ValueError("boom")
        assert not path.exists()

    def test_mutual_exclusion_between_threads(self, tmp_path: Path) -> None:
        path = tmp_path / "x.lock"
        inside = 0
        overlaps: List[int] = []
        guard = threading.Lock()

        def work() -> None:
            nonlocal inside
            with FileLock(path, poll_interval=0.01):
                with guard:
                    inside += 1
                    overlaps.append(inside)
                time.sleep(0.05)
                with guard:
                    inside -= 1

        threads = [threading.Thread(target=work) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlaps == [1, 1, 1, 1]

    def test_timeout(self, tmp_path: Path) -> None:
        path = tmp_path / "x.lock"
        with FileLock(path):
            with pytest.raises(LockTimeout):
                FileLock(path, poll_interval=0.01, timeout=0.2).acquire()

    @pytest.mark.skipif(sys.platform == "win32", reason="no PID liveness check on Windows")
    def test_breaks_lock_of_dead_process(self, tmp_path: Path) -> None:
        path = tmp_path / "x.lock"
        _write_holder(path, pid=999_999_999)

        lock = FileLock(path, timeout=2)
        lock.acquire()
        try:
            assert json.loads(path.read_text())["pid"] == os.getpid()
        finally:
            lock.release()

    def test_breaks_lock_with_old_heartbeat(self, tmp_path: Path) -> None:
        path = tmp_path / "x.lock"
        _write_holder(path, pid=os.getpid())
        old = time.time() - 1000
        os.utime(path, (old, old))

        with FileLock(path, stale_after=60, timeout=2):
            assert json.loads(path.read_text())["token"] != "other"

    def test_live_holder_is_not_broken(self, tmp_path: Path) -> None:
        path = tmp_path / "x.lock"
        _write_holder(path, pid=os.getpid())
        with pytest.raises(LockTimeout):
            FileLock(path, poll_interval=0.01, timeout=0.2).acquire()
        assert json.loads(path.read_text())["token"] == "other"

    def test_heartbeat_refreshes_mtime(self, tmp_path: Path) -> None:
        path = tmp_path / "x.lock"
        with FileLock(path, heartbeat_interval=0.05):
            old = time.time() - 1000
            os.utime(path, (old, old))
            time.sleep(0.3)
            assert time.time() - path.stat().st_mtime < 100

    def test_release_keeps_lock_taken_over(self, tmp_path: Path) -> None:
        path = tmp_path / "x.lock"
        lock = FileLock(path)
        lock.acquire()
        _write_holder(path, pid=os.getpid(), token="thief")
        lock.release()
        assert json.loads(path.read_text())["token"] == "thief"

    def test_double_acquire_rejected(self, tmp_path: Path) -> None:
        lock = FileLock(tmp_path / "x.lock")
        with lock:
            with pytest.raises(RuntimeError):
                lock.acquire()

    @pytest.mark.skipif(sys.platform == "win32", reason="no PID liveness check on Windows")
    def test_waiters_breaking_dead_holder_never_overlap(self, tmp_path: Path) -> None:
        path = tmp_path / "x.lock"
        _write_holder(path, pid=999_999_999)
        inside = 0
        overlaps: List[int] = []
        guard = threading.Lock()
        start = threading.Barrier(3)

        def work() -> None:
            nonlocal inside
            start.wait()
            with FileLock(path, poll_interval=0.001, timeout=10):
                with guard:
                    inside += 1
                    overlaps.append(inside)
                time.sleep(0.02)
                with guard:
                    inside -= 1

        threads = [threading.Thread(target=work) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlaps == [1, 1, 1]
        assert not path.exists()

    @pytest.mark.skipif(sys.platform == "win32", reason="msvcrt locks give up after ten seconds")
    def test_removal_waits_for_guard(self, tmp_path: Path) -> None:
        path = tmp_path / "x.lock"
        _write_holder(path, pid=999_999_999)
        old = time.time() - 1000
        os.utime(path, (old, old))
        lock = FileLock(path, stale_after=60)
        broken = threading.Event()

        with _guarded(lock.guard_path):
            breaker = threading.Thread(target=lambda: broken.set() if lock._break_if_stale() else None)
            breaker.start()
            time.sleep(0.1)
            assert path.exists()
            assert not broken.is_set()
        breaker.join()

        assert broken.is_set()
        assert not path.exists()
