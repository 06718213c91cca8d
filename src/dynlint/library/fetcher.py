"""Source fetching for metadata entries.

Remote entries are cloned into a content-addressed cache under
``$DYNLINT_HOME/git``; local entries are glob-expanded relative to the
workspace root.
"""

from __future__ import annotations

import glob
import json
import os
import re
import shutil
import subprocess
import time
import uuid
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from dynlint.bootstrap.paths import DynlintPaths
from dynlint.config.models import BuildSettings, FetchSettings
from dynlint.core.errors import FetchError
from dynlint.core.logging import get_logger
from dynlint.core.subprocess_runner import run_command
from dynlint.library.lock import FileLock
from dynlint.library.metadata import MetadataEntry

LOGGER = get_logger(__name__)

MARKER_NAME = ".dynlint-fetch.json"

GIT_TIMEOUT = 600

# Substrings of git's stderr that indicate a failure worth retrying.
TRANSIENT_MARKERS = (
    "could not resolve host",
    "connection timed out",
    "connection reset",
    "connection refused",
    "operation timed out",
    "early eof",
    "rpc failed",
    "temporarily unavailable",
    "the remote end hung up unexpectedly",
    "gnutls_handshake",
    "ssl_error_syscall",
    "tls connection was non-properly terminated",
    "the requested url returned error: 429",
    "the requested url returned error: 500",
    "the requested url returned error: 502",
    "the requested url returned error: 503",
    "the requested url returned error: 504",
)

# Failures that no amount of retrying fixes; checked first.
PERMANENT_MARKERS = (
    "authentication failed",
    "repository not found",
    "could not read username",
    "permission denied",
)

HTTP_CLIENT_ERROR = re.compile(r"returned error: 4(?!29)\d\d")

Runner = Callable[..., subprocess.CompletedProcess]


class TransientFetchError(Exception):
    """A git failure that may succeed when retried."""

    pass


def is_transient(stderr: str) -> bool:
    lowered = stderr.lower()
    if HTTP_CLIENT_ERROR.search(lowered) or any(m in lowered for m in PERMANENT_MARKERS):
        return False
    return any(marker in lowered for marker in TRANSIENT_MARKERS)


def expand_within(root: Path, pattern: str, entry: str) -> List[Path]:
    """Expand ``pattern`` relative to ``root``, refusing matches outside it.

    An empty pattern stands for ``root`` itself.

    Raises:
        FetchError: If a match escapes ``root`` or nothing matches.
    """
    root = Path(os.path.normpath(root.absolute()))
    if not pattern:
        return [root]
    joined = os.path.join(glob.escape(str(root)), pattern)
    matches = sorted(glob.glob(joined))
    if not matches:
        raise FetchError(entry, f"`{pattern}` did not match any directories under {root}")

    results = []
    for match in matches:
        path = Path(os.path.normpath(match))
        try:
            inside = os.path.commonpath([str(root), str(path)]) == str(root)
        except ValueError:
            inside = False
        if not inside:
            raise FetchError(entry, f"`{pattern}` matches {path}, which is outside {root}")
        results.append(path)
    return results


def backoff_delay(attempt: int, base: float) -> float:
    """Delay before retry number ``attempt`` (1-based): base, 2*base, 4*base..."""
    return base * 2 ** (attempt - 1)


class SourceFetcher:
    """Materializes metadata entries as local directories.

    Args:
        paths: Cache layout.
        workspace_root: Root local entries are resolved against.
        fetch_settings: Retry policy.
        build_settings: Lock stale/heartbeat tuning.
        runner: Callable with the signature of ``run_command``.
        sleep: Called with the backoff delay between attempts.
    """

    def __init__(
        self,
        paths: DynlintPaths,
        workspace_root: Optional[Path],
        fetch_settings: Optional[FetchSettings] = None,
        build_settings: Optional[BuildSettings] = None,
        runner: Optional[Runner] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.paths = paths
        self.workspace_root = workspace_root
        self.settings = fetch_settings or FetchSettings()
        self.build_settings = build_settings or BuildSettings()
        self._runner = runner or run_command
        self._sleep = sleep
        self._memo: Dict[Tuple[str, ...], List[Path]] = {}

    def fetch(self, entry: MetadataEntry) -> List[Path]:
        """Local root directories for ``entry``.

        Raises:
            FetchError: If the source cannot be materialized.
        """
        key = entry.source_key
        if key not in self._memo:
            if entry.is_remote:
                self._memo[key] = [self._fetch_remote(entry)]
            else:
                self._memo[key] = self._expand_local(entry)
        return self._memo[key]

    def _expand_local(self, entry: MetadataEntry) -> List[Path]:
        if self.workspace_root is None:
            raise FetchError(entry.describe(), "local entries require a workspace")
        roots = expand_within(self.workspace_root, entry.path or "", entry.describe())
        dirs = [root for root in roots if root.is_dir()]
        if not dirs:
            raise FetchError(entry.describe(), "no directories matched")
        return dirs

    def cache_key(self, entry: MetadataEntry) -> str:
        return json.dumps(
            {"url": entry.git, "branch": entry.branch, "tag": entry.tag, "rev": entry.rev},
            sort_keys=True,
        )

    def checkout_dir(self, entry: MetadataEntry) -> Path:
        ident = (entry.git or "").rstrip("/").rsplit("/", 1)[-1]
        if ident.endswith(".git"):
            ident = ident[: -len(".git")]
        return self.paths.checkout_dir(ident or "source", self.cache_key(entry))

    def _fetch_remote(self, entry: MetadataEntry) -> Path:
        target = self.checkout_dir(entry)
        key = self.cache_key(entry)
        lock = FileLock(
            self.paths.lock_path("fetch", target.name),
            stale_after=self.build_settings.lock_stale_seconds,
            heartbeat_interval=self.build_settings.heartbeat_seconds,
        )
        with lock:
            if self._marker(target) == key:
                LOGGER.debug(f"Reusing checkout of {entry.describe()} at {target}")
                return target
            self._clone_with_retries(entry, target, key)
        return target

    @staticmethod
    def _marker(target: Path) -> Optional[str]:
        try:
            data = json.loads((target / MARKER_NAME).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        return json.dumps(data, sort_keys=True)

    def _clone_with_retries(self, entry: MetadataEntry, target: Path, key: str) -> None:
        attempts = max(self.settings.retries, 0) + 1
        for attempt in range(1, attempts + 1):
            try:
                self._clone(entry, target, key)
                return
            except TransientFetchError as e:
                if attempt == attempts:
                    raise FetchError(
                        entry.describe(), f"giving up after {attempts} attempts: {e}"
                    ) from e
                delay = backoff_delay(attempt, self.settings.backoff_seconds)
                LOGGER.warning(
                    f"Fetching {entry.describe()} failed (attempt {attempt}/{attempts}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                self._sleep(delay)

    def _git(self, entry: MetadataEntry, args: Sequence[str], cwd: Optional[Path] = None) -> None:
        cmd = ["git", *args]
        try:
            result = self._runner(cmd, cwd=cwd, timeout=GIT_TIMEOUT)
        except subprocess.TimeoutExpired as e:
            raise TransientFetchError(f"`{' '.join(cmd)}` timed out") from e
        except OSError as e:
            raise FetchError(entry.describe(), f"could not run git: {e}") from e
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            if is_transient(stderr):
                raise TransientFetchError(stderr)
            raise FetchError(entry.describe(), stderr or f"git exited with {result.returncode}")

    def _clone(self, entry: MetadataEntry, target: Path, key: str) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        staging = target.with_name(f"{target.name}.tmp-{uuid.uuid4().hex}")
        # git clones into an existing directory as long as it is empty.
        staging.mkdir()
        try:
            args = ["clone", "--quiet"]
            if entry.branch is not None:
                args += ["--branch", entry.branch]
            elif entry.tag is not None:
                args += ["--branch", entry.tag]
            self._git(entry, [*args, "--", entry.git or "", str(staging)])
            if entry.rev is not None:
                self._git(entry, ["checkout", "--quiet", entry.rev], cwd=staging)

            (staging / MARKER_NAME).write_text(key, encoding="utf-8")
            if target.exists():
                shutil.rmtree(target)
            os.replace(staging, target)
            LOGGER.info(f"Fetched {entry.describe()} into {target}")
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
