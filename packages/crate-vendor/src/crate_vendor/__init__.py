# SPDX-License-Identifier: MIT
"""Vendoring of Cargo.lock dependencies into a local, content-addressed tree.

This package merges a project's lock files, resolves a trusted hash for every
registry and git dependency, fetches each one into a normalized directory,
links them into a single vendor root and writes the Cargo source-replacement
config that makes Cargo read from it.

Example:
    >>> from crate_vendor import FetchContext, VendorConfig, vendor_crates
    >>>
    >>> config = VendorConfig.from_cargo_toml(".")
    >>> with FetchContext.open() as context:
    ...     result = vendor_crates(config, context)
    >>>
    >>> # Point Cargo at the vendored sources
    >>> print(result.cargo_config.read_text())
"""

__version__ = "0.1.0"

from .assembler import (
    VendorAssembler,
    VendorEntry,
    content_name,
)
from .cargo_config import (
    CargoConfig,
    emit_redirection_config,
)
from .classify import (
    CRATES_IO_INDEX,
    DEFAULT_REGISTRIES,
    SourceKind,
    classify_source,
    group_by_kind,
    unique_git_sources,
    unique_packages,
)
from .config import VendorConfig, VendorConfigError
from .context import FetchContext, GitClient, compute_sha256, tree_sha256
from .errors import (
    ClassificationError,
    ConfigError,
    FetchError,
    MissingHashError,
    ParseError,
    VendorError,
)
from .fetcher import (
    FetchedCrate,
    checkout_git_source,
    crate_download_url,
    fetch_git_crate,
    fetch_package,
    fetch_registry_crate,
    select_crate_dir,
    write_checksum_manifest,
)
from .git_source import GitSourceSpec, parse_git_source
from .hashes import (
    HashCache,
    HashDrift,
    HashResolver,
    diff_hashes,
    dump_hashes,
    write_hashes,
)
from .lockfile import (
    AggregatedLock,
    LockFile,
    Package,
    aggregate_lock_files,
    gather_lock_files,
    merge_lock_files,
    parse_lock_file,
    read_lock_file,
)
from .vendor import VendorResult, vendor_crates

__all__ = [
    # Lock files
    "AggregatedLock",
    "LockFile",
    "Package",
    "aggregate_lock_files",
    "gather_lock_files",
    "merge_lock_files",
    "parse_lock_file",
    "read_lock_file",
    # Classification
    "CRATES_IO_INDEX",
    "DEFAULT_REGISTRIES",
    "SourceKind",
    "classify_source",
    "group_by_kind",
    "unique_git_sources",
    "unique_packages",
    # Git sources
    "GitSourceSpec",
    "parse_git_source",
    # Hashes
    "HashCache",
    "HashDrift",
    "HashResolver",
    "diff_hashes",
    "dump_hashes",
    "write_hashes",
    # Fetching
    "FetchContext",
    "GitClient",
    "FetchedCrate",
    "checkout_git_source",
    "compute_sha256",
    "crate_download_url",
    "fetch_git_crate",
    "fetch_package",
    "fetch_registry_crate",
    "select_crate_dir",
    "tree_sha256",
    "write_checksum_manifest",
    # Assembly and config
    "CargoConfig",
    "VendorAssembler",
    "VendorEntry",
    "content_name",
    "emit_redirection_config",
    # Runs
    "VendorConfig",
    "VendorConfigError",
    "VendorResult",
    "vendor_crates",
    # Errors
    "ClassificationError",
    "ConfigError",
    "FetchError",
    "MissingHashError",
    "ParseError",
    "VendorError",
]
