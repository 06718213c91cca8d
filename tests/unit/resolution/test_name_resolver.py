"""Tests for name resolution across the source tiers."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest

from dynlint.bootstrap.paths import DynlintPaths
from dynlint.config.models import DynlintSettings
from dynlint.core.errors import (
    AmbiguityError,
    BatchError,
    BuildError,
    ConfigurationError,
    FetchError,
    NotFoundError,
)
from dynlint.library.builder import PackageBuilder
from dynlint.library.packages import read_package
from dynlint.resolution import LibrarySelection, NameResolver, ResolutionContext
from dynlint.toolchain.naming import encode

HOST_TOOLCHAIN = "stable-x86_64-unknown-linux-gnu"

WORKSPACE = """\
[workspace]
members = []

[workspace.metadata.dynlint]
libraries = [{ path = "plugins/*" }]
"""


@pytest.fixture
def workspace(tmp_path: Path, write_package) -> Path:
    root = tmp_path / "ws"
    root.mkdir()
    (root / "Cargo.toml").write_text(WORKSPACE)
    write_package(root / "plugins" / "foo", "foo")
    write_package(root / "plugins" / "bar", "bar")
    return root


@pytest.fixture
def make_resolver(workspace: Path, paths: DynlintPaths, toolchains, fake_cargo):
    def _make(cwd: Optional[Path] = None, cargo=None, **selection) -> NameResolver:
        context = ResolutionContext(
            LibrarySelection(**selection),
            cwd or workspace,
            paths,
            DynlintSettings(),
            toolchains=toolchains,
            builder=PackageBuilder(paths, runner=cargo or fake_cargo),
        )
        return NameResolver(context)

    return _make


class TestMetadataTier:
    """Workspace metadata: the plugins/* scenario."""

    def test_all_builds_every_plugin(self, make_resolver, fake_cargo) -> None:
        resolution = make_resolver(all=True).resolve()

        assert sorted(a.name for a in resolution.artifacts) == ["bar", "foo"]
        assert sorted(fake_cargo.built) == [f"bar@{HOST_TOOLCHAIN}", f"foo@{HOST_TOOLCHAIN}"]

    def test_name_builds_only_that_plugin(self, make_resolver, fake_cargo) -> None:
        resolution = make_resolver(names=["foo"]).resolve()

        [artifact] = resolution.artifacts
        assert artifact.name == "foo"
        assert artifact.toolchain == HOST_TOOLCHAIN
        assert artifact.path.name == encode("foo", HOST_TOOLCHAIN)
        assert fake_cargo.built == [f"foo@{HOST_TOOLCHAIN}"]

    def test_same_name_in_two_packages_is_ambiguous(self, make_resolver, workspace, write_package) -> None:
        write_package(workspace / "plugins" / "foo2", "foo2", lib_name="foo")

        with pytest.raises(AmbiguityError) as exc_info:
            make_resolver(names=["foo"]).resolve()

        assert exc_info.value.tier == "workspace metadata"
        assert len(exc_info.value.candidates) == 2

    def test_no_build_uses_existing_artifacts(self, make_resolver, fake_cargo) -> None:
        with pytest.raises(NotFoundError):
            make_resolver(names=["foo"], no_build=True).resolve()

        make_resolver(names=["foo"]).resolve()
        resolution = make_resolver(names=["foo"], no_build=True).resolve()

        assert [a.name for a in resolution.artifacts] == ["foo"]
        assert len(fake_cargo.calls) == 1

    def test_no_metadata_ignores_workspace(self, make_resolver) -> None:
        with pytest.raises(NotFoundError):
            make_resolver(names=["foo"], no_metadata=True).resolve()

    def test_failed_build_not_reported_as_missing(self, make_resolver, cargo_factory) -> None:
        with pytest.raises(BuildError) as exc_info:
            make_resolver(names=["foo"], cargo=cargo_factory(fail=["foo"])).resolve()
        assert exc_info.value.package == "foo"

    def test_failures_batched_with_missing_names(self, make_resolver, cargo_factory) -> None:
        resolver = make_resolver(names=["foo", "missing"], cargo=cargo_factory(fail=["foo"]))

        with pytest.raises(BatchError) as exc_info:
            resolver.resolve()

        kinds = sorted(type(e).__name__ for e in exc_info.value.errors)
        assert kinds == ["BuildError", "NotFoundError"]

    def test_fail_fast_stops_at_first_failure(self, make_resolver, cargo_factory) -> None:
        resolver = make_resolver(
            names=["foo", "missing"], fail_fast=True, cargo=cargo_factory(fail=["foo"])
        )
        with pytest.raises(BuildError):
            resolver.resolve()

    def test_bad_metadata_entry_is_fetch_error(self, make_resolver, workspace) -> None:
        (workspace / "dynlint.toml").write_text(
            '[workspace.metadata.dynlint]\nlibraries = [{ path = "elsewhere/*" }]\n'
        )
        with pytest.raises(BatchError) as exc_info:
            make_resolver(names=["nothing"]).resolve()

        kinds = sorted(type(e).__name__ for e in exc_info.value.errors)
        assert kinds == ["FetchError", "NotFoundError"]


class TestPrecedence:
    """Tiers are tried in order and the first hit wins."""

    def test_ad_hoc_source_before_metadata(
        self, make_resolver, tmp_path: Path, write_package, paths, fake_cargo
    ) -> None:
        ad_hoc = write_package(tmp_path / "elsewhere" / "foo", "foo")

        resolution = make_resolver(names=["foo"], path=str(ad_hoc)).resolve()

        [artifact] = resolution.artifacts
        expected = PackageBuilder(paths).expected_path(read_package(ad_hoc), HOST_TOOLCHAIN)
        assert artifact.path == expected
        assert len(fake_cargo.calls) == 1

    def test_library_path_before_metadata(
        self, make_resolver, tmp_path: Path, artifact_factory, library_path, fake_cargo
    ) -> None:
        prebuilt = artifact_factory(tmp_path / "prebuilt", "foo", "nightly")
        library_path(tmp_path / "prebuilt")

        [artifact] = make_resolver(names=["foo"]).resolve().artifacts

        assert artifact.path == prebuilt
        assert fake_cargo.calls == []

    def test_two_candidates_on_library_path_are_ambiguous(
        self, make_resolver, tmp_path: Path, artifact_factory, library_path
    ) -> None:
        artifact_factory(tmp_path / "a", "foo", "stable")
        artifact_factory(tmp_path / "b", "foo", "nightly")
        library_path(tmp_path / "a", tmp_path / "b")

        with pytest.raises(AmbiguityError) as exc_info:
            make_resolver(names=["foo"]).resolve()
        assert "DYNLINT_LIBRARY_PATH" in str(exc_info.value)

    def test_all_with_ad_hoc_source_uses_only_that_source(
        self, make_resolver, tmp_path: Path, write_package, fake_cargo
    ) -> None:
        write_package(tmp_path / "extra" / "qux", "qux")

        resolution = make_resolver(all=True, path=str(tmp_path / "extra"), patterns=["*"]).resolve()

        assert [a.name for a in resolution.artifacts] == ["qux"]
        assert fake_cargo.built == [f"qux@{HOST_TOOLCHAIN}"]

    def test_all_unions_library_path_and_metadata(
        self, make_resolver, tmp_path: Path, artifact_factory, library_path
    ) -> None:
        artifact_factory(tmp_path / "prebuilt", "foo", "nightly")
        library_path(tmp_path / "prebuilt")

        resolution = make_resolver(all=True).resolve()

        assert sorted((a.name, a.toolchain) for a in resolution.artifacts) == [
            ("bar", HOST_TOOLCHAIN),
            ("foo", HOST_TOOLCHAIN),
            ("foo", "nightly"),
        ]

    def test_missing_ad_hoc_path_is_fetch_error(self, make_resolver, tmp_path: Path) -> None:
        with pytest.raises(FetchError):
            make_resolver(names=["foo"], path=str(tmp_path / "nowhere")).resolve()

    def test_ad_hoc_packages_without_source(self, make_resolver) -> None:
        assert make_resolver(names=["foo"]).ad_hoc_packages() == []

    def test_ad_hoc_packages_from_path(self, make_resolver, tmp_path: Path, write_package) -> None:
        write_package(tmp_path / "extra" / "qux", "qux")
        resolver = make_resolver(all=True, path=str(tmp_path / "extra"), patterns=["*"])
        assert [p.lib_name for p in resolver.ad_hoc_packages()] == ["qux"]


class TestNamesAndPaths:
    """Names, paths and not-found reporting."""

    def test_missing_names_batched(self, make_resolver) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            make_resolver(names=["zeta", "alpha"]).resolve()
        assert exc_info.value.names == ["alpha", "zeta"]

    def test_lib_must_be_a_name(self, make_resolver) -> None:
        with pytest.raises(ConfigurationError, match="not a valid library name"):
            make_resolver(libs=["plugins/foo"]).resolve()

    def test_literal_path(self, make_resolver, tmp_path: Path, artifact_factory) -> None:
        path = artifact_factory(tmp_path / "loose", "baz", "stable")

        [artifact] = make_resolver(names=[str(path)]).resolve().artifacts

        assert (artifact.name, artifact.toolchain) == ("baz", "stable")

    def test_lib_path_relative_to_cwd(self, make_resolver, workspace: Path, artifact_factory) -> None:
        artifact_factory(workspace / "out", "baz", "stable")
        rel = f"out/{encode('baz', 'stable')}"

        [artifact] = make_resolver(lib_paths=[rel]).resolve().artifacts

        assert artifact.name == "baz"

    def test_lib_path_with_wrong_form(self, make_resolver, tmp_path: Path) -> None:
        plain = tmp_path / "plain.so"
        plain.write_bytes(b"")
        with pytest.raises(ConfigurationError, match="does not have the required form"):
            make_resolver(lib_paths=[str(plain)]).resolve()

    def test_name_that_is_a_path_with_wrong_form(self, make_resolver, tmp_path: Path) -> None:
        plain = tmp_path / "plain.so"
        plain.write_bytes(b"")
        with pytest.raises(ConfigurationError, match="is a valid path"):
            make_resolver(names=[str(plain)]).resolve()

    def test_lib_path_is_never_looked_up_by_name(self, make_resolver) -> None:
        with pytest.raises(NotFoundError):
            make_resolver(lib_paths=["foo"]).resolve()


class TestResolution:
    """Tests for Resolution and listing."""

    def test_by_toolchain_groups_and_sorts(
        self, make_resolver, tmp_path: Path, artifact_factory, library_path
    ) -> None:
        artifact_factory(tmp_path / "prebuilt", "qux", "aaa-toolchain")
        library_path(tmp_path / "prebuilt")

        grouped = make_resolver(names=["qux", "foo", "bar"]).resolve().by_toolchain()

        assert list(grouped) == ["aaa-toolchain", HOST_TOOLCHAIN]
        assert [p.name for p in grouped[HOST_TOOLCHAIN]] == [
            encode("foo", HOST_TOOLCHAIN),
            encode("bar", HOST_TOOLCHAIN),
        ]

    def test_list_does_not_build(self, make_resolver, fake_cargo) -> None:
        rows = make_resolver().list_libraries()

        assert [(r.name, r.built) for r in rows] == [("bar", False), ("foo", False)]
        assert fake_cargo.calls == []

    def test_list_shows_built_libraries(self, make_resolver) -> None:
        make_resolver(names=["foo"]).resolve()
        rows = {r.name: r.built for r in make_resolver().list_libraries()}
        assert rows == {"bar": False, "foo": True}
