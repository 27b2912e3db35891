# SPDX-License-Identifier: MIT
"""Fetching packages into normalized source directories.

Every fetched package ends up as a plain directory holding the crate sources
plus a ``.cargo-checksum.json`` stub, which is all Cargo needs from a
directory source.
"""

from __future__ import annotations

import hashlib
import io
import json
import logging
import shutil
import sys
import tarfile
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import httpx

from .classify import SourceKind
from .context import IGNORED_DIRS, FetchContext, GitClient, compute_sha256
from .errors import FetchError, ParseError, VendorError
from .git_source import GitSourceSpec, parse_git_source
from .lockfile import Package

logger = logging.getLogger(__name__)

CHECKSUM_FILE = ".cargo-checksum.json"
MANIFEST_FILE = "Cargo.toml"


@dataclass(frozen=True)
class FetchedCrate:
    """A package materialized on disk.

    Attributes:
        package: The package that was fetched
        path: Normalized source directory
        checksum: Hash the package was resolved to
    """

    package: Package
    path: Path
    checksum: str


def crate_download_url(package: Package, template: str) -> str:
    """Build the registry download URL for a package."""
    return template.format(name=package.name, version=package.version)


def package_dir_name(package: Package) -> str:
    """Work directory name for a package, unique per canonical id."""
    id_digest = hashlib.sha256(package.id.encode()).hexdigest()[:16]
    return f"{package.name}-{package.version}-{id_digest}"


def write_checksum_manifest(dest: Path, checksum: str | None) -> Path:
    """Write the ``.cargo-checksum.json`` stub Cargo checks for.

    Args:
        dest: Package directory
        checksum: Package hash recorded under ``package``

    Returns:
        Path of the written manifest
    """
    manifest = dest / CHECKSUM_FILE
    manifest.write_text(
        json.dumps({"files": {}, "package": checksum}, sort_keys=True),
        encoding="utf-8",
    )
    return manifest


def fetch_registry_crate(
    package: Package,
    checksum: str,
    context: FetchContext,
    dest: Path,
) -> Path:
    """Download, verify and unpack a registry crate.

    Args:
        package: Registry package to fetch
        checksum: Expected SHA256 of the ``.crate`` archive
        context: Fetch capabilities
        dest: Directory to unpack into (created if missing)

    Returns:
        The destination directory

    Raises:
        FetchError: On network failure, checksum mismatch or a bad archive
    """
    url = crate_download_url(package, context.download_url)
    logger.debug("Downloading %s from %s", package.id, url)
    try:
        response = context.client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise FetchError(
            f"Download failed: HTTP {e.response.status_code} for {url}",
            package_id=package.id,
        ) from e
    except httpx.RequestError as e:
        raise FetchError(f"Download failed for {url}: {e}", package_id=package.id) from e

    content = response.content
    actual = compute_sha256(content)
    if actual != checksum.lower():
        raise FetchError(
            f"Checksum mismatch for {url}: expected {checksum.lower()}, got {actual}",
            package_id=package.id,
        )

    dest.mkdir(parents=True, exist_ok=True)
    try:
        unpack_crate(content, dest)
    except (tarfile.TarError, OSError, ValueError) as e:
        raise FetchError(f"Unable to unpack {url}: {e}", package_id=package.id) from e
    return dest


def unpack_crate(content: bytes, dest: Path) -> None:
    """Extract a gzipped tarball, dropping its top-level directory.

    Only regular files and directories are extracted.

    Raises:
        ValueError: If an entry would land outside ``dest``
    """
    with tarfile.open(fileobj=io.BytesIO(content), mode="r:gz") as archive:
        for member in archive.getmembers():
            parts = PurePosixPath(member.name).parts[1:]
            if not parts:
                continue
            if member.name.startswith("/") or ".." in parts:
                raise ValueError(f"Refusing to extract unsafe path: {member.name}")
            target = dest.joinpath(*parts)
            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
            elif member.isfile():
                target.parent.mkdir(parents=True, exist_ok=True)
                extracted = archive.extractfile(member)
                if extracted is None:
                    continue
                with extracted, open(target, "wb") as out:
                    shutil.copyfileobj(extracted, out)
                target.chmod(0o755 if member.mode & 0o111 else 0o644)
            else:
                logger.debug("Skipping non-regular archive entry %s", member.name)


def checkout_git_source(spec: GitSourceSpec, dest: Path, git: GitClient) -> Path:
    """Fetch a repository at the revision a git source selects.

    The ref to fetch is the branch, else the tag ref, else all heads and
    tags. The commit checked out is the fragment, else ``rev``, else
    whatever was fetched. Submodules are initialized recursively.

    Args:
        spec: Parsed git source
        dest: Empty or missing directory to check out into
        git: Git command runner

    Returns:
        The checkout directory
    """
    dest.mkdir(parents=True, exist_ok=True)
    git.run(["init", "--quiet"], cwd=dest)
    git.run(["remote", "add", "origin", spec.url], cwd=dest)

    ref = spec.fetch_ref
    rev = spec.fetch_rev
    if ref is not None:
        git.run(["fetch", "--quiet", "origin", ref], cwd=dest)
    elif rev is not None:
        git.run(
            [
                "fetch",
                "--quiet",
                "origin",
                "+refs/heads/*:refs/remotes/origin/*",
                "+refs/tags/*:refs/tags/*",
            ],
            cwd=dest,
        )
    else:
        git.run(["fetch", "--quiet", "origin", "HEAD"], cwd=dest)

    git.run(["checkout", "--quiet", rev if rev is not None else "FETCH_HEAD"], cwd=dest)
    git.run(["submodule", "update", "--init", "--recursive", "--quiet"], cwd=dest)
    return dest


def select_crate_dir(checkout: Path, name: str) -> Path:
    """Find the directory holding crate ``name`` inside a checkout.

    A repository whose root manifest has no ``[workspace]`` table is a single
    package and its root is used. Otherwise the workspace members (globs
    allowed), plus the root when it is also a package, are searched for the
    one whose manifest declares ``name``.

    Raises:
        FetchError: If no member or more than one member declares ``name``
    """
    root_manifest = _read_manifest(checkout / MANIFEST_FILE)
    workspace = root_manifest.get("workspace")
    if not isinstance(workspace, dict):
        return checkout

    candidates: list[Path] = []
    if "package" in root_manifest:
        candidates.append(checkout)
    for member in workspace.get("members", []):
        if member in (".", ""):
            candidates.append(checkout)
        else:
            candidates.extend(sorted(p for p in checkout.glob(member) if p.is_dir()))

    matches: list[Path] = []
    for candidate in candidates:
        manifest_path = candidate / MANIFEST_FILE
        if not manifest_path.is_file():
            continue
        package_table = _read_manifest(manifest_path).get("package", {})
        if package_table.get("name") == name and candidate not in matches:
            matches.append(candidate)

    if not matches:
        raise FetchError(f"No workspace member declares package `{name}`")
    if len(matches) > 1:
        listed = ", ".join(str(m.relative_to(checkout)) for m in matches)
        raise FetchError(f"Several workspace members declare package `{name}`: {listed}")
    return matches[0]


def copy_tree(src: Path, dest: Path) -> None:
    """Copy a source tree, leaving out version-control metadata."""
    shutil.copytree(
        src,
        dest,
        symlinks=True,
        ignore=shutil.ignore_patterns(*IGNORED_DIRS),
        dirs_exist_ok=True,
    )


def fetch_git_crate(package: Package, context: FetchContext, dest: Path) -> Path:
    """Check out a git package and copy its crate directory to ``dest``."""
    if package.source is None:
        raise FetchError("Git package without a source", package_id=package.id)
    spec = parse_git_source(package.source)
    logger.debug("Fetching %s from %s at %s", package.id, spec.url, spec.fetch_rev or spec.fetch_ref)

    with tempfile.TemporaryDirectory(prefix="crate-vendor-git-") as temp_dir:
        checkout = checkout_git_source(spec, Path(temp_dir) / "checkout", context.git)
        crate_dir = select_crate_dir(checkout, package.name)
        copy_tree(crate_dir, dest)
    return dest


def fetch_package(
    package: Package,
    kind: SourceKind,
    checksum: str,
    context: FetchContext,
    work_dir: Path,
) -> FetchedCrate:
    """Fetch one package into its own directory below ``work_dir``.

    Args:
        package: Package to fetch
        kind: Its source kind
        checksum: Its resolved hash
        context: Fetch capabilities
        work_dir: Parent of all per-package directories

    Returns:
        FetchedCrate describing the normalized directory

    Raises:
        ParseError: If the git source string is malformed, naming the package id
        FetchError: On any other failure, naming the package id
    """
    dest = work_dir / package_dir_name(package)
    if dest.exists():
        shutil.rmtree(dest)

    try:
        if kind is SourceKind.REGISTRY:
            fetch_registry_crate(package, checksum, context, dest)
        else:
            fetch_git_crate(package, context, dest)
    except FetchError as e:
        if e.package_id is None:
            raise FetchError(str(e), package_id=package.id) from e
        raise
    except ParseError as e:
        if e.package_id is None:
            raise ParseError(str(e), package_id=package.id) from e
        raise
    except VendorError as e:
        raise FetchError(str(e), package_id=package.id) from e

    write_checksum_manifest(dest, checksum)
    return FetchedCrate(package=package, path=dest, checksum=checksum)


def _read_manifest(path: Path) -> dict:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        raise FetchError(f"Manifest not found: {path.name}") from None
    except tomllib.TOMLDecodeError as e:
        raise FetchError(f"Invalid TOML syntax in {path.name}: {e}") from e
