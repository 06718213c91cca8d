"""Tests for parallel library builds."""

from __future__ import annotations

from pathlib import Path

import pytest

from dynlint.bootstrap.paths import DynlintPaths
from dynlint.core.errors import BuildError
from dynlint.library.builder import PackageBuilder
from dynlint.library.packages import read_package
from dynlint.library.parallel import ParallelBuildExecutor


@pytest.fixture
def packages(tmp_path: Path, write_package):
    return [
        read_package(write_package(tmp_path / "plugins" / name, name))
        for name in ("alpha", "beta", "gamma")
    ]


class TestParallelBuildExecutor:
    """Tests for ParallelBuildExecutor."""

    def test_results_in_job_order(self, paths: DynlintPaths, packages, fake_cargo) -> None:
        executor = ParallelBuildExecutor(PackageBuilder(paths, runner=fake_cargo), max_workers=3)
        jobs = [(p, "stable") for p in packages]

        results = executor.execute(jobs)

        assert [r.package.name for r in results] == ["alpha", "beta", "gamma"]
        assert all(r.success for r in results)
        assert len(fake_cargo.calls) == 3

    def test_failures_collected(self, paths: DynlintPaths, packages, cargo_factory) -> None:
        builder = PackageBuilder(paths, runner=cargo_factory(fail=["beta"]))
        results = ParallelBuildExecutor(builder).execute([(p, "stable") for p in packages])

        assert [r.success for r in results] == [True, False, True]
        assert isinstance(results[1].error, BuildError)

    def test_fail_fast_raises(self, paths: DynlintPaths, packages, cargo_factory) -> None:
        builder = PackageBuilder(paths, runner=cargo_factory(fail=["alpha"]))
        executor = ParallelBuildExecutor(builder, max_workers=1, fail_fast=True)

        with pytest.raises(BuildError, match="alpha"):
            executor.execute([(p, "stable") for p in packages])

    def test_no_jobs(self, paths: DynlintPaths) -> None:
        assert ParallelBuildExecutor(PackageBuilder(paths)).execute([]) == []
