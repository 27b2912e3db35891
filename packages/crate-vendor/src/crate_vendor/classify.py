# SPDX-License-Identifier: MIT
"""Source classification and package identity."""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from .errors import ClassificationError
from .lockfile import Package

CRATES_IO_INDEX = "registry+https://github.com/rust-lang/crates.io-index"
CRATES_IO_SPARSE_INDEX = "sparse+https://index.crates.io/"

# Source strings that designate the public registry
DEFAULT_REGISTRIES = frozenset({CRATES_IO_INDEX, CRATES_IO_SPARSE_INDEX})

GIT_PREFIX = "git+"


class SourceKind(str, Enum):
    """How a package source is fetched."""

    REGISTRY = "crates-io"
    GIT = "git"


def classify_source(
    package: Package,
    registries: Iterable[str] = DEFAULT_REGISTRIES,
) -> SourceKind | None:
    """Classify a package by the shape of its source string.

    Args:
        package: Package to classify
        registries: Source strings recognized as the public registry

    Returns:
        The source kind, or None for local packages which are never vendored

    Raises:
        ClassificationError: If the source string has an unknown type
    """
    source = package.source
    if source is None:
        return None
    if source in registries:
        return SourceKind.REGISTRY
    if source.startswith(GIT_PREFIX):
        return SourceKind.GIT
    raise ClassificationError(f"unknown source type: {source}", package_id=package.id)


def unique_packages(packages: Iterable[Package]) -> list[Package]:
    """Drop local packages and collapse packages sharing an id.

    The first occurrence of each id is kept, preserving input order.
    """
    by_id: dict[str, Package] = {}
    for package in packages:
        if package.is_local:
            continue
        by_id.setdefault(package.id, package)
    return list(by_id.values())


def group_by_kind(
    packages: Iterable[Package],
    registries: Iterable[str] = DEFAULT_REGISTRIES,
) -> dict[SourceKind, list[Package]]:
    """Partition packages by source kind, skipping local packages."""
    registries = frozenset(registries)
    grouped: dict[SourceKind, list[Package]] = {kind: [] for kind in SourceKind}
    for package in packages:
        kind = classify_source(package, registries)
        if kind is not None:
            grouped[kind].append(package)
    return grouped


def unique_git_sources(packages: Iterable[Package]) -> list[Package]:
    """Keep one package per literal git source string.

    Many crates of one repository share a source string; the redirection
    config needs exactly one section per string.
    """
    seen: set[str] = set()
    result: list[Package] = []
    for package in packages:
        if package.source is None or package.source in seen:
            continue
        seen.add(package.source)
        result.append(package)
    return result
