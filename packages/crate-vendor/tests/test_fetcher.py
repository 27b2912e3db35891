# SPDX-License-Identifier: MIT
"""Tests for fetching registry and git packages."""

from __future__ import annotations

import hashlib
import io
import json
import tarfile
from pathlib import Path

import pytest

from crate_vendor.classify import CRATES_IO_INDEX, SourceKind
from crate_vendor.errors import FetchError, ParseError
from crate_vendor.fetcher import (
    CHECKSUM_FILE,
    checkout_git_source,
    crate_download_url,
    fetch_package,
    fetch_registry_crate,
    package_dir_name,
    select_crate_dir,
    unpack_crate,
    write_checksum_manifest,
)
from crate_vendor.context import DEFAULT_DOWNLOAD_URL
from crate_vendor.git_source import parse_git_source
from crate_vendor.lockfile import Package

SERDE = Package(name="serde", version="1.0.0", source=CRATES_IO_INDEX)
SERDE_URL = "https://static.crates.io/crates/serde/serde-1.0.0.crate"


def _write_files(root: Path, files: dict[str, str]) -> None:
    for relative, text in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text)


def _manifest(name: str) -> str:
    return f'[package]\nname = "{name}"\nversion = "0.1.0"\n'


class TestRegistryFetch:
    """Tests for downloading and unpacking registry crates."""

    def test_download_url_convention(self):
        assert crate_download_url(SERDE, DEFAULT_DOWNLOAD_URL) == SERDE_URL

    def test_fetch_verifies_and_strips_top_level(self, crate_archive, make_context, tmp_path: Path):
        archive = crate_archive("serde", "1.0.0", {"Cargo.toml": _manifest("serde"), "src/lib.rs": "//"})
        checksum = hashlib.sha256(archive).hexdigest()
        context = make_context({SERDE_URL: archive})

        dest = fetch_registry_crate(SERDE, checksum, context, tmp_path / "serde")

        assert (dest / "Cargo.toml").read_text() == _manifest("serde")
        assert (dest / "src" / "lib.rs").read_text() == "//"
        assert not (dest / "serde-1.0.0").exists()

    def test_checksum_compared_case_insensitively(self, crate_archive, make_context, tmp_path: Path):
        archive = crate_archive("serde", "1.0.0", {"Cargo.toml": ""})
        checksum = hashlib.sha256(archive).hexdigest().upper()
        fetch_registry_crate(SERDE, checksum, make_context({SERDE_URL: archive}), tmp_path / "out")

    def test_checksum_mismatch_is_fatal(self, crate_archive, make_context, tmp_path: Path):
        archive = crate_archive("serde", "1.0.0", {"Cargo.toml": ""})
        context = make_context({SERDE_URL: archive})
        with pytest.raises(FetchError, match="Checksum mismatch") as excinfo:
            fetch_registry_crate(SERDE, "0" * 64, context, tmp_path / "out")
        assert excinfo.value.package_id == SERDE.id

    def test_http_error_is_fatal(self, make_context, tmp_path: Path):
        with pytest.raises(FetchError, match="HTTP 404") as excinfo:
            fetch_registry_crate(SERDE, "0" * 64, make_context(), tmp_path / "out")
        assert excinfo.value.package_id == SERDE.id

    def test_unpack_rejects_escaping_paths(self, tmp_path: Path):
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
            info = tarfile.TarInfo("serde-1.0.0/../../evil")
            info.size = 0
            archive.addfile(info, io.BytesIO(b""))
        with pytest.raises(ValueError, match="unsafe path"):
            unpack_crate(buffer.getvalue(), tmp_path)


class TestGitCheckout:
    """Tests for the git commands issued for a source."""

    def test_fragment_checked_out_after_branch_fetch(self, fake_git, tmp_path: Path):
        git = fake_git()
        spec = parse_git_source("git+https://example.com/repo.git?branch=main#deadbeef")

        checkout_git_source(spec, tmp_path / "co", git)

        assert git.commands("fetch") == [["fetch", "--quiet", "origin", "main"]]
        assert git.commands("checkout") == [["checkout", "--quiet", "deadbeef"]]
        assert git.commands("submodule") == [
            ["submodule", "update", "--init", "--recursive", "--quiet"]
        ]

    def test_tag_fetches_tag_ref(self, fake_git, tmp_path: Path):
        git = fake_git()
        spec = parse_git_source("git+https://example.com/repo.git?tag=v1.0#abc")
        checkout_git_source(spec, tmp_path / "co", git)
        assert git.commands("fetch") == [["fetch", "--quiet", "origin", "refs/tags/v1.0"]]

    def test_rev_only_fetches_all_refs(self, fake_git, tmp_path: Path):
        git = fake_git()
        spec = parse_git_source("git+https://example.com/repo.git?rev=abc123")
        checkout_git_source(spec, tmp_path / "co", git)
        fetch = git.commands("fetch")[0]
        assert "+refs/heads/*:refs/remotes/origin/*" in fetch
        assert "+refs/tags/*:refs/tags/*" in fetch
        assert git.commands("checkout") == [["checkout", "--quiet", "abc123"]]

    def test_nothing_pinned_uses_fetch_head(self, fake_git, tmp_path: Path):
        git = fake_git()
        checkout_git_source(parse_git_source("git+https://example.com/repo.git"), tmp_path / "co", git)
        assert git.commands("checkout") == [["checkout", "--quiet", "FETCH_HEAD"]]

    def test_remote_is_bare_url(self, fake_git, tmp_path: Path):
        git = fake_git()
        spec = parse_git_source("git+https://example.com/repo.git?branch=main#abc")
        checkout_git_source(spec, tmp_path / "co", git)
        assert git.commands("remote") == [["remote", "add", "origin", "https://example.com/repo.git"]]


class TestSelectCrateDir:
    """Tests for locating a crate inside a checkout."""

    def test_single_package_uses_root(self, tmp_path: Path):
        _write_files(tmp_path, {"Cargo.toml": _manifest("foo")})
        assert select_crate_dir(tmp_path, "foo") == tmp_path

    def test_workspace_member_by_name(self, tmp_path: Path):
        _write_files(
            tmp_path,
            {
                "Cargo.toml": '[workspace]\nmembers = ["crates/*"]\n',
                "crates/a/Cargo.toml": _manifest("alpha"),
                "crates/b/Cargo.toml": _manifest("beta"),
            },
        )
        assert select_crate_dir(tmp_path, "beta") == tmp_path / "crates" / "b"

    def test_workspace_root_package(self, tmp_path: Path):
        _write_files(
            tmp_path,
            {
                "Cargo.toml": '[workspace]\nmembers = ["sub"]\n\n[package]\nname = "top"\nversion = "0.1.0"\n',
                "sub/Cargo.toml": _manifest("sub"),
            },
        )
        assert select_crate_dir(tmp_path, "top") == tmp_path

    def test_unknown_member_is_fatal(self, tmp_path: Path):
        _write_files(
            tmp_path,
            {"Cargo.toml": '[workspace]\nmembers = ["a"]\n', "a/Cargo.toml": _manifest("alpha")},
        )
        with pytest.raises(FetchError, match="No workspace member declares package `missing`"):
            select_crate_dir(tmp_path, "missing")

    def test_ambiguous_member_is_fatal(self, tmp_path: Path):
        _write_files(
            tmp_path,
            {
                "Cargo.toml": '[workspace]\nmembers = ["a", "b"]\n',
                "a/Cargo.toml": _manifest("dup"),
                "b/Cargo.toml": _manifest("dup"),
            },
        )
        with pytest.raises(FetchError, match="Several workspace members"):
            select_crate_dir(tmp_path, "dup")


class TestFetchPackage:
    """Tests for fetch_package."""

    def test_registry_package_gets_manifest(self, crate_archive, make_context, tmp_path: Path):
        archive = crate_archive("serde", "1.0.0", {"Cargo.toml": _manifest("serde")})
        checksum = hashlib.sha256(archive).hexdigest()

        fetched = fetch_package(
            SERDE, SourceKind.REGISTRY, checksum, make_context({SERDE_URL: archive}), tmp_path
        )

        assert fetched.path == tmp_path / package_dir_name(SERDE)
        manifest = json.loads((fetched.path / CHECKSUM_FILE).read_text())
        assert manifest == {"files": {}, "package": checksum}

    def test_git_member_copied_without_git_metadata(self, fake_git, make_context, tmp_path: Path):
        package = Package(
            name="beta",
            version="0.1.0",
            source="git+https://example.com/mono.git?branch=main#abc",
        )
        git = fake_git(
            {
                "Cargo.toml": '[workspace]\nmembers = ["a", "b"]\n',
                "a/Cargo.toml": _manifest("alpha"),
                "b/Cargo.toml": _manifest("beta"),
                "b/src/lib.rs": "pub fn beta() {}",
            }
        )

        fetched = fetch_package(package, SourceKind.GIT, "h1", make_context(git=git), tmp_path)

        assert (fetched.path / "Cargo.toml").read_text() == _manifest("beta")
        assert (fetched.path / "src" / "lib.rs").exists()
        assert not (fetched.path / ".git").exists()
        assert not (fetched.path / "a").exists()
        manifest = json.loads((fetched.path / CHECKSUM_FILE).read_text())
        assert manifest["package"] == "h1"

    def test_git_failure_names_package(self, fake_git, make_context, tmp_path: Path):
        package = Package(name="gone", version="0.1.0", source="git+https://example.com/r.git#abc")
        git = fake_git({"Cargo.toml": '[workspace]\nmembers = []\n'})
        with pytest.raises(FetchError) as excinfo:
            fetch_package(package, SourceKind.GIT, "h1", make_context(git=git), tmp_path)
        assert excinfo.value.package_id == package.id
        assert package.id in str(excinfo.value)

    def test_malformed_git_source_stays_parse_error(self, fake_git, make_context, tmp_path: Path):
        package = Package(name="foo", version="1.0.0", source="git+https://example.com/r.git#a#b")
        git = fake_git()
        with pytest.raises(ParseError, match="Too many '#'") as excinfo:
            fetch_package(package, SourceKind.GIT, "h1", make_context(git=git), tmp_path)
        assert excinfo.value.package_id == package.id
        assert git.calls == []

    def test_output_dirs_unique_per_id(self):
        a = Package(name="foo", version="1.0.0", source="git+https://example.com/a#1")
        b = Package(name="foo", version="1.0.0", source="git+https://example.com/b#1")
        assert package_dir_name(a) != package_dir_name(b)

    def test_write_checksum_manifest(self, tmp_path: Path):
        path = write_checksum_manifest(tmp_path, "abcd")
        assert json.loads(path.read_text()) == {"files": {}, "package": "abcd"}
