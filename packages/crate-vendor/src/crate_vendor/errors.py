# SPDX-License-Identifier: MIT
"""Error taxonomy for vendoring runs.

Every error aborts the run. When a package is involved, its canonical id is
carried on the exception and included in the message.
"""

from __future__ import annotations


class VendorError(Exception):
    """Base class for all vendoring failures.

    Attributes:
        package_id: Canonical id of the package being processed, if any
    """

    def __init__(self, message: str, *, package_id: str | None = None) -> None:
        self.package_id = package_id
        if package_id:
            message = f"{package_id}: {message}"
        super().__init__(message)


class ParseError(VendorError):
    """Raised for malformed lock files, hash files or git source strings."""

    pass


class ClassificationError(VendorError):
    """Raised when a package source has an unknown type."""

    pass


class MissingHashError(VendorError):
    """Raised when no trusted hash is available for a package."""

    pass


class FetchError(VendorError):
    """Raised when retrieving or normalizing a package source fails."""

    pass


class ConfigError(VendorError):
    """Raised when the redirection config would be invalid."""

    pass
