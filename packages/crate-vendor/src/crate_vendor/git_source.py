# SPDX-License-Identifier: MIT
"""Parsing of ``git+`` source locators found in Cargo.lock.

A git source has the shape ``git+<url>[?<key>=<value>&...][#<commit>]``. The
query carries what the manifest asked for (``rev``, ``tag`` or ``branch``)
and the fragment carries the commit Cargo actually locked.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ParseError

GIT_PREFIX = "git+"

# Cargo still accepts the obsolete ``ref`` key in place of ``branch``
_KEY_ALIASES = {"ref": "branch"}

_KNOWN_KEYS = ("rev", "tag", "branch")


@dataclass(frozen=True)
class GitSourceSpec:
    """Structured form of a git source string.

    Attributes:
        url: Repository URL without query or fragment
        rev: ``rev`` query parameter
        tag: ``tag`` query parameter
        branch: ``branch`` query parameter (or legacy ``ref``)
        url_fragment: Locked commit from the fragment, overrides ``rev``
        extra_params: Any other query parameters as ``(key, value)`` pairs,
            kept verbatim and in order
    """

    url: str
    rev: str | None = None
    tag: str | None = None
    branch: str | None = None
    url_fragment: str | None = None
    extra_params: tuple[tuple[str, str], ...] = ()

    @property
    def fetch_rev(self) -> str | None:
        """Revision to check out: the fragment wins over ``rev``."""
        if self.url_fragment is not None:
            return self.url_fragment
        return self.rev

    @property
    def fetch_ref(self) -> str | None:
        """Ref to fetch, or None to fetch all refs."""
        if self.branch is not None:
            return self.branch
        if self.tag is not None:
            return f"refs/tags/{self.tag}"
        return None

    @property
    def declared(self) -> dict[str, str]:
        """The ``rev``/``tag``/``branch`` values present, in that order."""
        declared: dict[str, str] = {}
        for key in _KNOWN_KEYS:
            value = getattr(self, key)
            if value is not None:
                declared[key] = value
        return declared

    def to_source(self) -> str:
        """Serialize back into a ``git+`` source string."""
        params = {**self.declared, **dict(self.extra_params)}
        source = f"{GIT_PREFIX}{self.url}"
        if params:
            source += "?" + "&".join(f"{key}={value}" for key, value in params.items())
        if self.url_fragment is not None:
            source += f"#{self.url_fragment}"
        return source


def parse_git_source(source: str) -> GitSourceSpec:
    """Parse a git source string.

    Args:
        source: Source string from a lock file, starting with ``git+``

    Returns:
        GitSourceSpec with the query parameters and fragment split out

    Raises:
        ParseError: On a missing prefix, more than one ``#`` or ``?``,
            or a query parameter without ``=``
    """
    if not source.startswith(GIT_PREFIX):
        raise ParseError(f"Not a git source: {source!r}")
    rest = source[len(GIT_PREFIX):]

    hash_parts = rest.split("#")
    if len(hash_parts) > 2:
        raise ParseError(f"Too many '#' in git source: {source!r}")
    pre_fragment = hash_parts[0]
    fragment = hash_parts[1] if len(hash_parts) == 2 else None

    query_parts = pre_fragment.split("?")
    if len(query_parts) > 2:
        raise ParseError(f"Too many '?' in git source: {source!r}")
    url = query_parts[0]
    if not url:
        raise ParseError(f"Missing repository URL in git source: {source!r}")

    params: dict[str, str] = {}
    if len(query_parts) == 2 and query_parts[1]:
        for pair in query_parts[1].split("&"):
            key, sep, value = pair.partition("=")
            if not sep or not key:
                raise ParseError(f"Invalid query parameter {pair!r} in git source: {source!r}")
            params[_KEY_ALIASES.get(key, key)] = value

    known = {key: params.pop(key) for key in _KNOWN_KEYS if key in params}
    return GitSourceSpec(
        url=url,
        url_fragment=fragment,
        extra_params=tuple(params.items()),
        **known,
    )
