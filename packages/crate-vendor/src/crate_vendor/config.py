# SPDX-License-Identifier: MIT
"""Vendoring configuration.

Settings can live in the project's root ``Cargo.toml`` under
``[workspace.metadata.vendor]`` (or ``[package.metadata.vendor]`` for a
single-package project)::

    [workspace.metadata.vendor]
    extra-sources-dir = "crate2nix-sources"
    hashes-file = "crate-hashes.json"
    allow-tree-hashing = false
    copy = false

    [workspace.metadata.vendor.hashes]
    "foo 0.1.0 (git+https://example.com/foo.git#abc)" = "..."
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .classify import DEFAULT_REGISTRIES
from .context import DEFAULT_DOWNLOAD_URL
from .hashes import HASHES_FILE_NAME
from .lockfile import DEFAULT_EXTRA_SOURCES_DIR


class VendorConfigError(Exception):
    """Raised when vendor configuration is invalid."""

    pass


@dataclass
class VendorConfig:
    """Configuration for one vendoring run.

    Attributes:
        root_dir: Project root holding Cargo.lock
        output_dir: Where the vendor root, config and hash file are written
            (default: ``<root_dir>/target/vendor``)
        extra_sources_dir: Directory below root whose subdirectories carry
            additional lock files
        hashes_file: Name of the hash cache file beside each lock file
        hash_overrides: Hashes taking precedence over every cache file
        registries: Source strings treated as the public registry
        download_url: Registry download URL template
        copy_vendor: Copy package directories into the vendor root instead
            of symlinking them
        allow_tree_hashing: Compute missing git hashes from fresh checkouts
    """

    root_dir: Path
    output_dir: Path | None = None
    extra_sources_dir: str = DEFAULT_EXTRA_SOURCES_DIR
    hashes_file: str = HASHES_FILE_NAME
    hash_overrides: dict[str, str] = field(default_factory=dict)
    registries: frozenset[str] = DEFAULT_REGISTRIES
    download_url: str = DEFAULT_DOWNLOAD_URL
    copy_vendor: bool = False
    allow_tree_hashing: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self.root_dir = Path(self.root_dir)
        if self.output_dir is None:
            self.output_dir = self.root_dir / "target" / "vendor"
        else:
            self.output_dir = Path(self.output_dir)
        if not self.extra_sources_dir or Path(self.extra_sources_dir).is_absolute():
            raise VendorConfigError(
                f"Invalid extra_sources_dir: {self.extra_sources_dir!r}. "
                "Must be a directory name relative to the project root."
            )
        if not self.hashes_file or "/" in self.hashes_file:
            raise VendorConfigError(f"Invalid hashes_file: {self.hashes_file!r}")
        if "{name}" not in self.download_url or "{version}" not in self.download_url:
            raise VendorConfigError(
                f"Invalid download_url: {self.download_url!r}. "
                "Must contain {name} and {version} placeholders."
            )
        if not self.registries:
            raise VendorConfigError("At least one registry source is required")
        self.registries = frozenset(self.registries)

    @property
    def vendor_root(self) -> Path:
        return self.output_dir / "deps"

    @property
    def work_dir(self) -> Path:
        """Parent of the per-package fetch directories."""
        return self.output_dir / "sources"

    @property
    def cargo_config_path(self) -> Path:
        return self.output_dir / "cargo" / "config.toml"

    @property
    def extended_hashes_path(self) -> Path:
        return self.output_dir / self.hashes_file

    @property
    def persisted_hashes_path(self) -> Path:
        """The project's own hash file, compared against for drift."""
        return self.root_dir / self.hashes_file

    @classmethod
    def from_cargo_toml(cls, root_dir: str | Path, **overrides: Any) -> "VendorConfig":
        """Create VendorConfig from the project's root Cargo.toml.

        A missing Cargo.toml or missing metadata table yields the defaults.
        Keyword overrides that are not None win over file settings.

        Raises:
            VendorConfigError: If the file is invalid
        """
        root = Path(root_dir)
        manifest = root / "Cargo.toml"
        document: dict[str, Any] = {}
        if manifest.exists():
            try:
                with open(manifest, "rb") as f:
                    document = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise VendorConfigError(f"Invalid TOML syntax: {e}") from e
        return cls.from_cargo_toml_dict(document, root, **overrides)

    @classmethod
    def from_cargo_toml_dict(
        cls,
        document: dict[str, Any],
        root_dir: str | Path,
        **overrides: Any,
    ) -> "VendorConfig":
        """Create VendorConfig from a parsed Cargo.toml dictionary."""
        metadata = (
            document.get("workspace", {}).get("metadata", {}).get("vendor")
            or document.get("package", {}).get("metadata", {}).get("vendor")
            or {}
        )
        if not isinstance(metadata, dict):
            raise VendorConfigError("metadata.vendor must be a table")

        settings: dict[str, Any] = {}
        if "extra-sources-dir" in metadata:
            settings["extra_sources_dir"] = metadata["extra-sources-dir"]
        if "hashes-file" in metadata:
            settings["hashes_file"] = metadata["hashes-file"]
        if "download-url" in metadata:
            settings["download_url"] = metadata["download-url"]
        if "registries" in metadata:
            settings["registries"] = frozenset(metadata["registries"])
        if "copy" in metadata:
            settings["copy_vendor"] = bool(metadata["copy"])
        if "allow-tree-hashing" in metadata:
            settings["allow_tree_hashing"] = bool(metadata["allow-tree-hashing"])

        hashes = metadata.get("hashes", {})
        if not isinstance(hashes, dict) or not all(isinstance(v, str) for v in hashes.values()):
            raise VendorConfigError("metadata.vendor.hashes must map package ids to strings")
        settings["hash_overrides"] = dict(hashes)

        extra_hashes = overrides.pop("hash_overrides", None)
        if extra_hashes:
            settings["hash_overrides"].update(extra_hashes)
        settings.update({key: value for key, value in overrides.items() if value is not None})

        return cls(root_dir=Path(root_dir), **settings)
