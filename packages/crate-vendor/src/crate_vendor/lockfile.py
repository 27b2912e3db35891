# SPDX-License-Identifier: MIT
"""Cargo.lock parsing and aggregation.

A vendoring run reads the project's own ``Cargo.lock`` plus the lock files of
any extra source trees placed one level below the extra-sources directory,
and merges them into a single package list with one metadata map.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .errors import ParseError

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = "Cargo.lock"
DEFAULT_EXTRA_SOURCES_DIR = "crate2nix-sources"


@dataclass(frozen=True)
class Package:
    """A single ``[[package]]`` entry of a lock file.

    Attributes:
        name: Crate name
        version: Exact locked version
        source: Source locator, or None for local/path packages
        checksum: Inline checksum (lock format v2 and later), if any
    """

    name: str
    version: str
    source: str | None = None
    checksum: str | None = None

    @property
    def id(self) -> str:
        """Canonical identity used for deduplication and hash lookup."""
        if self.source is None:
            return f"{self.name} {self.version}"
        return f"{self.name} {self.version} ({self.source})"

    @property
    def is_local(self) -> bool:
        return self.source is None


@dataclass(frozen=True)
class LockFile:
    """A parsed lock file.

    Attributes:
        packages: Packages in document order
        metadata: Legacy ``[metadata]`` table (``"checksum <id>" -> hash``)
        path: File the lock was read from, if any
    """

    packages: tuple[Package, ...] = ()
    metadata: dict[str, str] = field(default_factory=dict)
    path: Path | None = None


@dataclass(frozen=True)
class AggregatedLock:
    """Merged view over every lock file of a project.

    Attributes:
        lock: Merged packages and metadata
        sources: Lock files that contributed, in merge order
    """

    lock: LockFile
    sources: tuple[Path, ...] = ()


def parse_lock_file(raw: str, path: str | Path | None = None) -> LockFile:
    """Parse and validate lock file text.

    Args:
        raw: TOML document
        path: Where the text came from, used in error messages

    Returns:
        Parsed LockFile

    Raises:
        ParseError: If the document is not valid TOML or has the wrong shape
    """
    where = str(path) if path is not None else "<lock file>"
    try:
        document = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ParseError(f"Invalid TOML syntax in {where}: {e}") from e

    packages_raw = document.get("package", [])
    if not isinstance(packages_raw, list):
        raise ParseError(f"Invalid `package` value in {where}: expected an array of tables")
    packages = tuple(_parse_package(item, where) for item in packages_raw)

    metadata_raw = document.get("metadata", {})
    if not isinstance(metadata_raw, dict) or not all(
        isinstance(key, str) and isinstance(value, str) for key, value in metadata_raw.items()
    ):
        raise ParseError(f"Invalid `metadata` table in {where}: expected string values")

    return LockFile(
        packages=packages,
        metadata=dict(metadata_raw),
        path=Path(path) if path is not None else None,
    )


def read_lock_file(path: str | Path) -> LockFile:
    """Read and parse a lock file from disk."""
    lock_path = Path(path)
    try:
        raw = lock_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ParseError(f"Unable to read {lock_path}: {e}") from e
    return parse_lock_file(raw, lock_path)


def gather_lock_files(
    root: str | Path,
    extra_sources_dir: str = DEFAULT_EXTRA_SOURCES_DIR,
) -> list[Path]:
    """Locate the lock files that belong to a project.

    Looks at ``root/Cargo.lock`` and at ``Cargo.lock`` in each direct
    subdirectory of ``root/<extra_sources_dir>``. Neither location is
    required to exist.

    Args:
        root: Project root directory
        extra_sources_dir: Name of the extra-sources directory below root

    Returns:
        Lock file paths, root first, extra sources sorted by directory name
    """
    root_path = Path(root)
    found: list[Path] = []

    root_lock = root_path / LOCK_FILE_NAME
    if root_lock.is_file():
        found.append(root_lock)

    extra_root = root_path / extra_sources_dir
    if extra_root.is_dir():
        for subdir in sorted(extra_root.iterdir(), key=lambda p: p.name):
            candidate = subdir / LOCK_FILE_NAME
            if subdir.is_dir() and candidate.is_file():
                found.append(candidate)

    return found


def merge_lock_files(lock_files: Iterable[LockFile]) -> LockFile:
    """Merge lock files.

    Packages are concatenated; deduplication by id happens downstream.
    Metadata maps are unioned with later files winning on key collisions.
    """
    packages: list[Package] = []
    metadata: dict[str, str] = {}
    for lock in lock_files:
        packages.extend(lock.packages)
        metadata.update(lock.metadata)
    return LockFile(packages=tuple(packages), metadata=metadata)


def aggregate_lock_files(
    root: str | Path,
    extra_sources_dir: str = DEFAULT_EXTRA_SOURCES_DIR,
) -> AggregatedLock:
    """Find, parse and merge all lock files of a project."""
    paths = gather_lock_files(root, extra_sources_dir)
    locks = [read_lock_file(path) for path in paths]
    merged = merge_lock_files(locks)
    logger.debug(
        "Merged %d lock file(s) into %d package entries", len(paths), len(merged.packages)
    )
    return AggregatedLock(lock=merged, sources=tuple(paths))


def _parse_package(item: Any, where: str) -> Package:
    if not isinstance(item, dict):
        raise ParseError(f"Invalid package entry in {where}: expected a table")

    name = item.get("name")
    version = item.get("version")
    if not isinstance(name, str) or not name:
        raise ParseError(f"Invalid package entry in {where}: missing `name`")
    if not isinstance(version, str) or not version:
        raise ParseError(f"Invalid package entry `{name}` in {where}: missing `version`")

    source = item.get("source")
    checksum = item.get("checksum")
    if source is not None and not isinstance(source, str):
        raise ParseError(f"Invalid `source` for package `{name}` in {where}")
    if checksum is not None and not isinstance(checksum, str):
        raise ParseError(f"Invalid `checksum` for package `{name}` in {where}")

    return Package(name=name, version=version, source=source, checksum=checksum)
