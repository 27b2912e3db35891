# SPDX-License-Identifier: MIT
"""Capabilities injected into the fetch and hash stages.

Nothing in the engine reaches for a network client, a git binary or a tree
hashing routine on its own; everything goes through a FetchContext.
"""

from __future__ import annotations

import hashlib
import os
import stat
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

import httpx

from .errors import FetchError

DEFAULT_DOWNLOAD_URL = "https://static.crates.io/crates/{name}/{name}-{version}.crate"
DEFAULT_TIMEOUT = 300.0

# Directories never part of a package's content
IGNORED_DIRS = frozenset({".git"})


def compute_sha256(data: bytes) -> str:
    """Compute SHA256 hash of bytes data.

    Args:
        data: Bytes to hash

    Returns:
        Lowercase hex-encoded SHA256 hash
    """
    return hashlib.sha256(data).hexdigest()


def tree_sha256(root: str | Path) -> str:
    """Compute a location-independent SHA256 digest of a directory tree.

    Entries are visited in sorted order of their relative POSIX path. Each
    contributes its type, its path, the executable bit and its content (file
    bytes or symlink target). ``.git`` directories are skipped.

    Args:
        root: Directory to hash

    Returns:
        Lowercase hex-encoded SHA256 digest
    """
    root_path = Path(root)
    digest = hashlib.sha256()
    for path in _walk_sorted(root_path):
        relative = path.relative_to(root_path).as_posix()
        mode = path.lstat().st_mode
        if stat.S_ISLNK(mode):
            digest.update(b"L\0" + relative.encode() + b"\0")
            digest.update(os.readlink(path).encode() + b"\0")
        elif stat.S_ISDIR(mode):
            digest.update(b"D\0" + relative.encode() + b"\0")
        else:
            executable = b"x" if mode & stat.S_IXUSR else b"-"
            digest.update(b"F\0" + relative.encode() + b"\0" + executable + b"\0")
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(65536), b""):
                    digest.update(chunk)
            digest.update(b"\0")
    return digest.hexdigest()


def _walk_sorted(root: Path) -> Iterator[Path]:
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        if entry.name in IGNORED_DIRS:
            continue
        yield entry
        if entry.is_dir() and not entry.is_symlink():
            yield from _walk_sorted(entry)


class GitClient:
    """Thin wrapper running the git command line."""

    def __init__(self, executable: str = "git") -> None:
        self.executable = executable

    def run(self, argv: list[str], cwd: str | Path | None = None) -> str:
        """Run a git command and return its stripped stdout.

        Raises:
            FetchError: If git is missing or exits non-zero
        """
        command = [self.executable, *argv]
        try:
            completed = subprocess.run(
                command,
                cwd=cwd,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            raise FetchError(f"git executable not found: {self.executable}") from None
        if completed.returncode != 0:
            raise FetchError(
                f"git command failed: {' '.join(command)}\n{completed.stderr.strip()}"
            )
        return completed.stdout.strip()


@dataclass
class FetchContext:
    """Everything the fetch and hash stages may use to reach the outside world.

    Attributes:
        client: HTTP client for registry downloads
        git: Git command runner
        tree_hash: Directory hashing function; None when unrestricted hashing
            of fetched trees is not available
        download_url: Registry download URL template with ``{name}`` and
            ``{version}`` placeholders
    """

    client: httpx.Client
    git: GitClient
    tree_hash: Callable[[Path], str] | None = None
    download_url: str = DEFAULT_DOWNLOAD_URL

    @property
    def can_hash_trees(self) -> bool:
        """Whether git hashes may be computed instead of looked up."""
        return self.tree_hash is not None

    @classmethod
    @contextmanager
    def open(
        cls,
        *,
        allow_tree_hashing: bool = False,
        download_url: str = DEFAULT_DOWNLOAD_URL,
        git_executable: str = "git",
        timeout: float = DEFAULT_TIMEOUT,
        tree_hasher: Callable[[Path], str] = tree_sha256,
    ) -> Iterator["FetchContext"]:
        """Create a context owning its HTTP client.

        The default ``tree_sha256`` hasher yields hex digests. They are stable
        across runs of this tool but are not the ``nix-hash --type sha256
        --base32`` values other consumers of ``crate-hashes.json`` expect;
        pass a matching ``tree_hasher`` when the file is shared with them.

        Args:
            allow_tree_hashing: Enable computing missing git hashes with
                ``tree_hasher``
            download_url: Registry download URL template
            git_executable: Git binary to run
            timeout: HTTP request timeout in seconds
            tree_hasher: Directory hashing function used when tree hashing
                is allowed

        Yields:
            FetchContext whose client is closed on exit
        """
        with httpx.Client(follow_redirects=True, timeout=timeout) as client:
            yield cls(
                client=client,
                git=GitClient(git_executable),
                tree_hash=tree_hasher if allow_tree_hashing else None,
                download_url=download_url,
            )
