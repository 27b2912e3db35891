# SPDX-License-Identifier: MIT
"""Cargo source-replacement config pointing every source at the vendor root."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable

from .errors import ConfigError
from .git_source import GIT_PREFIX, parse_git_source
from .lockfile import Package

VENDORED_SOURCES = "vendored-sources"
REGISTRY_SOURCE = "crates-io"

_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


def _toml_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _toml_key(key: str) -> str:
    return key if _BARE_KEY.match(key) else _toml_string(key)


class CargoConfig:
    """An ordered set of ``[source.<name>]`` tables."""

    def __init__(self) -> None:
        self._sections: dict[str, dict[str, str]] = {}

    def add_section(self, name: str, values: dict[str, str]) -> None:
        """Add a ``[source.<name>]`` table.

        Raises:
            ConfigError: If a table with this name already exists
        """
        if name in self._sections:
            raise ConfigError(f"Duplicate source section: {name}")
        self._sections[name] = dict(values)

    @property
    def section_names(self) -> list[str]:
        return list(self._sections)

    def render(self) -> str:
        blocks = []
        for name, values in self._sections.items():
            lines = [f"[source.{_toml_key(name)}]"]
            lines.extend(f"{key} = {_toml_string(value)}" for key, value in values.items())
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks) + "\n"


def emit_redirection_config(
    git_packages: Iterable[Package],
    vendor_root: str | Path,
    replace_with: str = VENDORED_SOURCES,
) -> str:
    """Render a config redirecting crates.io and every git source to the vendor root.

    Git packages are deduplicated by their literal source string; each
    distinct source gets one table carrying the ``rev``/``tag``/``branch``
    it declared.

    Args:
        git_packages: Git packages of the run, duplicates allowed
        vendor_root: Directory holding the vendored packages
        replace_with: Name of the directory source

    Returns:
        Config document text
    """
    config = CargoConfig()
    config.add_section(REGISTRY_SOURCE, {"replace-with": replace_with})

    seen: set[str] = set()
    for package in git_packages:
        source = package.source
        if source is None or source in seen:
            continue
        seen.add(source)
        spec = parse_git_source(source)
        config.add_section(
            source[len(GIT_PREFIX):],
            {"git": spec.url, **spec.declared, "replace-with": replace_with},
        )

    config.add_section(replace_with, {"directory": str(vendor_root)})
    return config.render()
