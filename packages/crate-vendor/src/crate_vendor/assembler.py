# SPDX-License-Identifier: MIT
"""Assembly of fetched packages into one vendor root.

Entries are named by a digest of their content, so packages that fetch to
byte-identical trees collapse into one entry and the set of names depends
only on what was fetched, never on where it was fetched to.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from .context import tree_sha256
from .errors import VendorError
from .fetcher import FetchedCrate

logger = logging.getLogger(__name__)

CONTENT_DIGEST_LENGTH = 32


@dataclass(frozen=True)
class VendorEntry:
    """One directory of the vendor root.

    Attributes:
        content_name: Content-derived entry name
        path: Fetched directory the entry points at
    """

    content_name: str
    path: Path


def content_name(
    crate_dir: Path,
    name: str,
    tree_hash: Callable[[Path], str] = tree_sha256,
) -> str:
    """Name a vendor entry after its content, e.g. ``<digest>-serde``."""
    return f"{tree_hash(crate_dir)[:CONTENT_DIGEST_LENGTH]}-{name}"


class VendorAssembler:
    """Collects fetched packages and links them into a vendor root."""

    def __init__(self, tree_hash: Callable[[Path], str] = tree_sha256) -> None:
        self.tree_hash = tree_hash
        self._entries: dict[str, VendorEntry] = {}

    def add(self, fetched: FetchedCrate) -> VendorEntry:
        """Register a fetched package; adding identical content is a no-op."""
        entry_name = content_name(fetched.path, fetched.package.name, self.tree_hash)
        existing = self._entries.get(entry_name)
        if existing is not None:
            logger.debug("%s shares content with %s", fetched.package.id, existing.path)
            return existing
        entry = VendorEntry(content_name=entry_name, path=fetched.path)
        self._entries[entry_name] = entry
        return entry

    def add_all(self, fetched: Iterable[FetchedCrate]) -> list[VendorEntry]:
        return [self.add(item) for item in fetched]

    @property
    def entries(self) -> list[VendorEntry]:
        """Entries sorted by content name."""
        return [self._entries[name] for name in sorted(self._entries)]

    @property
    def content_names(self) -> set[str]:
        return set(self._entries)

    def link(self, vendor_root: str | Path, copy: bool = False) -> Path:
        """Populate ``vendor_root`` with one entry per distinct content.

        Args:
            vendor_root: Directory to create or reuse
            copy: Copy directories instead of symlinking them

        Returns:
            The vendor root

        Raises:
            VendorError: If the root holds entries this assembler did not produce
        """
        root = Path(vendor_root)
        root.mkdir(parents=True, exist_ok=True)

        unexpected = sorted(p.name for p in root.iterdir() if p.name not in self._entries)
        if unexpected:
            raise VendorError(f"Vendor root {root} contains unexpected entries: {', '.join(unexpected)}")

        for entry in self.entries:
            target = root / entry.content_name
            if target.is_symlink() or target.is_file():
                target.unlink()
            elif target.exists():
                shutil.rmtree(target)

            if copy:
                shutil.copytree(entry.path, target, symlinks=True)
            else:
                target.symlink_to(entry.path.resolve(), target_is_directory=True)

        logger.info("Linked %d vendor entries into %s", len(self._entries), root)
        return root
