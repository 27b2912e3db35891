# SPDX-License-Identifier: MIT
"""Hash resolution for registry and git packages.

Registry packages are content-addressed by their lock file checksum. Git
sources are not: their hashes come from caller overrides or from
``crate-hashes.json`` files kept beside the lock files, and are only computed
from a fresh checkout when the fetch context allows hashing trees.
"""

from __future__ import annotations

import difflib
import json
import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Mapping

from .classify import SourceKind
from .context import FetchContext
from .errors import MissingHashError, ParseError
from .fetcher import checkout_git_source
from .git_source import parse_git_source
from .lockfile import Package

logger = logging.getLogger(__name__)

HASHES_FILE_NAME = "crate-hashes.json"


class HashCache(Mapping[str, str]):
    """Read-only ``package id -> hash`` mapping.

    Entries are trusted as soon as they are present.
    """

    def __init__(self, entries: Mapping[str, str] | None = None) -> None:
        self._entries: dict[str, str] = dict(entries or {})

    def __getitem__(self, key: str) -> str:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"HashCache({self._entries!r})"

    def merge(self, other: Mapping[str, str]) -> "HashCache":
        """Return a new cache where entries of ``other`` win."""
        return HashCache({**self._entries, **other})

    def to_dict(self) -> dict[str, str]:
        return dict(self._entries)

    @classmethod
    def load(cls, path: str | Path) -> "HashCache":
        """Load a hash file; a missing file is an empty cache.

        Raises:
            ParseError: If the file is not a JSON object of strings
        """
        hashes_path = Path(path)
        if not hashes_path.exists():
            return cls()
        try:
            payload = json.loads(hashes_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON in {hashes_path}: {e}") from e
        if not isinstance(payload, dict) or not all(
            isinstance(key, str) and isinstance(value, str) for key, value in payload.items()
        ):
            raise ParseError(f"Invalid hash file {hashes_path}: expected an object of strings")
        return cls(payload)

    @classmethod
    def gather(
        cls,
        lock_paths: Iterable[Path],
        hashes_file: str = HASHES_FILE_NAME,
    ) -> "HashCache":
        """Merge the hash files beside each lock file, later files winning."""
        cache = cls()
        for lock_path in lock_paths:
            cache = cache.merge(cls.load(Path(lock_path).parent / hashes_file))
        return cache


class HashResolver:
    """Produces a trusted hash for every vendored package.

    Args:
        metadata: Merged lock file ``[metadata]`` table
        cache: Merged on-disk hash cache
        context: Fetch capabilities, used only to compute missing git hashes
        overrides: Caller-supplied hashes, taking precedence over the cache
    """

    def __init__(
        self,
        metadata: Mapping[str, str],
        cache: HashCache,
        context: FetchContext | None = None,
        overrides: Mapping[str, str] | None = None,
    ) -> None:
        self.metadata = dict(metadata)
        self.cache = cache
        self.context = context
        self.overrides = dict(overrides or {})
        self._computed: dict[str, str] = {}

    def registry_hash(self, package: Package) -> str:
        """Checksum of a registry package from the lock file."""
        if package.checksum:
            return package.checksum
        checksum = self.metadata.get(f"checksum {package.id}")
        if checksum:
            return checksum
        raise MissingHashError("Checksum not found in Cargo.lock", package_id=package.id)

    def git_hash(self, package: Package) -> str:
        """Hash of a git package from overrides, the cache, or a fresh checkout.

        Raises:
            MissingHashError: If the hash is unknown and trees may not be hashed
        """
        package_id = package.id
        if package_id in self.overrides:
            return self.overrides[package_id]
        if package_id in self.cache:
            return self.cache[package_id]
        if package_id in self._computed:
            return self._computed[package_id]

        context = self.context
        if context is None or context.tree_hash is None:
            raise MissingHashError(
                f"Hash not found; add it to {HASHES_FILE_NAME} or pass it as an override",
                package_id=package_id,
            )

        logger.info("Computing hash for %s", package_id)
        spec = parse_git_source(package.source or "")
        with tempfile.TemporaryDirectory(prefix="crate-vendor-hash-") as temp_dir:
            checkout = checkout_git_source(spec, Path(temp_dir) / "checkout", context.git)
            value = context.tree_hash(checkout)
        self._computed[package_id] = value
        return value

    def resolve(self, package: Package, kind: SourceKind) -> str:
        if kind is SourceKind.REGISTRY:
            return self.registry_hash(package)
        return self.git_hash(package)

    def extended_hashes(self, git_packages: Iterable[Package]) -> dict[str, str]:
        """The cache and overrides plus an entry for every git package.

        Suitable for persisting so later runs skip recomputation.
        """
        extended = self.cache.merge(self.overrides).to_dict()
        for package in git_packages:
            extended[package.id] = self.git_hash(package)
        return extended


@dataclass
class HashDrift:
    """Differences between a persisted hash file and a fresh hash map.

    Attributes:
        added: Ids only in the fresh map
        removed: Ids only in the persisted file
        changed: Ids whose hash differs, mapped to ``(old, new)``
    """

    previous: dict[str, str] = field(default_factory=dict)
    current: dict[str, str] = field(default_factory=dict)
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    changed: dict[str, tuple[str, str]] = field(default_factory=dict)

    @property
    def has_drift(self) -> bool:
        return bool(self.added or self.removed or self.changed)

    def unified_diff(self, fromfile: str = "crate-hashes.json", tofile: str = "extended") -> str:
        """Render the drift like ``diff -u`` over the two JSON documents."""
        lines = difflib.unified_diff(
            (dump_hashes(self.previous) + "\n").splitlines(keepends=True),
            (dump_hashes(self.current) + "\n").splitlines(keepends=True),
            fromfile=fromfile,
            tofile=tofile,
        )
        return "".join(lines)


def diff_hashes(previous: Mapping[str, str], current: Mapping[str, str]) -> HashDrift:
    """Compare a persisted hash map with a freshly extended one."""
    added = sorted(set(current) - set(previous))
    removed = sorted(set(previous) - set(current))
    changed = {
        key: (previous[key], current[key])
        for key in sorted(set(previous) & set(current))
        if previous[key] != current[key]
    }
    return HashDrift(
        previous=dict(previous),
        current=dict(current),
        added=added,
        removed=removed,
        changed=changed,
    )


def dump_hashes(hashes: Mapping[str, str]) -> str:
    """Serialize hashes as the generator writes them: sorted, no final newline."""
    return json.dumps(dict(hashes), indent=2, sort_keys=True)


def write_hashes(hashes: Mapping[str, str], path: str | Path) -> Path:
    hashes_path = Path(path)
    hashes_path.parent.mkdir(parents=True, exist_ok=True)
    hashes_path.write_text(dump_hashes(hashes), encoding="utf-8")
    return hashes_path
