# SPDX-License-Identifier: MIT
"""A complete vendoring run.

This module:
1. Aggregates the project's lock files
2. Drops local packages and collapses packages sharing an id
3. Classifies the rest by source kind and validates every git source
4. Resolves a trusted hash for each package, extending the hash cache
   (the project's own hash file wins over those beside extra lock files)
5. Fetches each package into its own directory
6. Links the fetched directories into the vendor root
7. Writes the Cargo redirection config and the extended hash file
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .assembler import VendorAssembler, VendorEntry
from .cargo_config import emit_redirection_config
from .classify import SourceKind, group_by_kind, unique_git_sources, unique_packages
from .config import VendorConfig
from .context import FetchContext
from .errors import ParseError
from .fetcher import FetchedCrate, fetch_package
from .git_source import parse_git_source
from .hashes import HashCache, HashDrift, HashResolver, diff_hashes, write_hashes
from .lockfile import aggregate_lock_files

logger = logging.getLogger(__name__)


@dataclass
class VendorResult:
    """Result of a vendoring run.

    Attributes:
        vendor_root: Directory holding one entry per distinct package content
        cargo_config: Path of the written redirection config
        hashes_path: Path of the written extended hash file
        hashes: Extended ``id -> hash`` map
        entries: Vendor root entries
        fetched: Every fetched package, before deduplication by content
        lock_files: Lock files the run was built from
        drift: Differences against the project's persisted hash file, if any
    """

    vendor_root: Path
    cargo_config: Path
    hashes_path: Path
    hashes: dict[str, str] = field(default_factory=dict)
    entries: list[VendorEntry] = field(default_factory=list)
    fetched: list[FetchedCrate] = field(default_factory=list)
    lock_files: list[Path] = field(default_factory=list)
    drift: HashDrift | None = None

    @property
    def has_drift(self) -> bool:
        return self.drift is not None and self.drift.has_drift


def vendor_crates(config: VendorConfig, context: FetchContext) -> VendorResult:
    """Vendor every non-local package of a project.

    Args:
        config: Vendoring configuration
        context: Fetch capabilities

    Returns:
        VendorResult describing the written artifacts

    Raises:
        VendorError: If any step fails; nothing is retried
    """
    aggregated = aggregate_lock_files(config.root_dir, config.extra_sources_dir)
    packages = unique_packages(aggregated.lock.packages)
    by_kind = group_by_kind(packages, config.registries)
    git_packages = by_kind[SourceKind.GIT]
    for package in git_packages:
        try:
            parse_git_source(package.source or "")
        except ParseError as e:
            raise ParseError(str(e), package_id=package.id) from e
    logger.info(
        "Vendoring %d registry and %d git package(s) from %d lock file(s)",
        len(by_kind[SourceKind.REGISTRY]),
        len(git_packages),
        len(aggregated.sources),
    )

    cache = HashCache.gather(aggregated.sources, config.hashes_file).merge(
        HashCache.load(config.persisted_hashes_path)
    )
    resolver = HashResolver(
        aggregated.lock.metadata,
        cache,
        context=context,
        overrides=config.hash_overrides,
    )
    extended = resolver.extended_hashes(git_packages)

    work_dir = config.work_dir
    if work_dir.exists():
        shutil.rmtree(work_dir)
    work_dir.mkdir(parents=True)
    assembler = VendorAssembler()
    fetched: list[FetchedCrate] = []
    for kind in SourceKind:
        for package in by_kind[kind]:
            checksum = resolver.resolve(package, kind)
            crate = fetch_package(package, kind, checksum, context, work_dir)
            assembler.add(crate)
            fetched.append(crate)

    vendor_root = config.vendor_root
    if vendor_root.exists():
        shutil.rmtree(vendor_root)
    assembler.link(vendor_root, copy=config.copy_vendor)

    cargo_config = config.cargo_config_path
    cargo_config.parent.mkdir(parents=True, exist_ok=True)
    cargo_config.write_text(
        emit_redirection_config(unique_git_sources(git_packages), vendor_root.resolve()),
        encoding="utf-8",
    )

    hashes_path = write_hashes(extended, config.extended_hashes_path)

    drift = None
    if config.persisted_hashes_path.exists():
        drift = diff_hashes(HashCache.load(config.persisted_hashes_path), extended)
        if drift.has_drift:
            logger.warning(
                "%s is out of date:\n%s",
                config.persisted_hashes_path,
                drift.unified_diff(tofile=str(hashes_path)),
            )

    return VendorResult(
        vendor_root=vendor_root,
        cargo_config=cargo_config,
        hashes_path=hashes_path,
        hashes=extended,
        entries=assembler.entries,
        fetched=fetched,
        lock_files=list(aggregated.sources),
        drift=drift,
    )
