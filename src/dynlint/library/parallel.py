"""Parallel library builds using ThreadPoolExecutor."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from dynlint.core.errors import BuildError, DynlintError
from dynlint.core.logging import get_logger
from dynlint.library.builder import PackageBuilder
from dynlint.library.packages import LibraryPackage

LOGGER = get_logger(__name__)

# Default number of worker threads
DEFAULT_MAX_WORKERS = 4


@dataclass
class BuildResult:
    """Result of building one (package, toolchain) pair."""

    package: LibraryPackage
    toolchain: str
    artifacts: List[Path] = field(default_factory=list)
    error: Optional[DynlintError] = None

    @property
    def success(self) -> bool:
        return self.error is None


class ParallelBuildExecutor:
    """Builds several packages concurrently.

    Thread-safe aggregation of results using a lock.
    """

    def __init__(
        self,
        builder: PackageBuilder,
        max_workers: int = DEFAULT_MAX_WORKERS,
        fail_fast: bool = False,
    ) -> None:
        """Initialize the executor.

        Args:
            builder: Builder used for every job.
            max_workers: Maximum number of concurrent builds.
            fail_fast: Raise the first BuildError instead of collecting.
        """
        self._builder = builder
        self._max_workers = max(1, max_workers)
        self._fail_fast = fail_fast
        self._results_lock = threading.Lock()

    def execute(self, jobs: Sequence[Tuple[LibraryPackage, str]]) -> List[BuildResult]:
        """Build every (package, toolchain) job.

        Returns:
            One BuildResult per job, in job order.

        Raises:
            BuildError: With ``fail_fast``, the first failure.
        """
        if not jobs:
            return []

        results: List[Optional[BuildResult]] = [None] * len(jobs)
        executor = ThreadPoolExecutor(max_workers=min(self._max_workers, len(jobs)))
        try:
            future_to_index = {
                executor.submit(self._run_build, package, toolchain): i
                for i, (package, toolchain) in enumerate(jobs)
            }
            for future in as_completed(future_to_index):
                result = future.result()
                with self._results_lock:
                    results[future_to_index[future]] = result
                if self._fail_fast and result.error is not None:
                    raise result.error
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        return [r for r in results if r is not None]

    def _run_build(self, package: LibraryPackage, toolchain: str) -> BuildResult:
        try:
            artifacts = self._builder.build(package, toolchain)
        except BuildError as e:
            LOGGER.error(str(e).splitlines()[0])
            return BuildResult(package, toolchain, error=e)
        return BuildResult(package, toolchain, artifacts=artifacts)
