# SPDX-License-Identifier: MIT
"""Pytest configuration and fixtures for crate-vendor tests."""

from __future__ import annotations

import io
import tarfile
from pathlib import Path
from typing import Callable, Generator

import httpx
import pytest
from click.testing import CliRunner

from crate_vendor.context import FetchContext, GitClient, tree_sha256


class FakeGit(GitClient):
    """Git runner that records commands and fakes a checkout.

    ``init`` creates a ``.git`` directory and ``checkout`` writes ``files``
    into the working directory, so callers see a populated repository.
    """

    def __init__(self, files: dict[str, str] | None = None) -> None:
        super().__init__("git")
        self.files = files or {}
        self.calls: list[list[str]] = []

    def run(self, argv: list[str], cwd: str | Path | None = None) -> str:
        self.calls.append(list(argv))
        workdir = Path(cwd) if cwd is not None else Path.cwd()
        if argv[0] == "init":
            (workdir / ".git").mkdir(parents=True, exist_ok=True)
            (workdir / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
        elif argv[0] == "checkout":
            for relative, text in self.files.items():
                target = workdir / relative
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(text)
        return ""

    def commands(self, name: str) -> list[list[str]]:
        return [call for call in self.calls if call[0] == name]


def build_crate_archive(name: str, version: str, files: dict[str, str]) -> bytes:
    """Build a ``.crate`` tarball with a single top-level directory."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for relative, text in files.items():
            data = text.encode()
            info = tarfile.TarInfo(f"{name}-{version}/{relative}")
            info.size = len(data)
            info.mode = 0o644
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def crate_archive() -> Callable[..., bytes]:
    """Factory for in-memory ``.crate`` archives."""
    return build_crate_archive


@pytest.fixture
def fake_git() -> Callable[..., FakeGit]:
    """Factory for FakeGit runners."""
    return FakeGit


@pytest.fixture
def make_context() -> Generator[Callable[..., FetchContext], None, None]:
    """Factory for FetchContexts serving canned HTTP responses.

    ``responses`` maps URLs to bytes; any other URL answers 404.
    """
    clients: list[httpx.Client] = []

    def factory(
        responses: dict[str, bytes] | None = None,
        git: GitClient | None = None,
        allow_tree_hashing: bool = False,
    ) -> FetchContext:
        served = dict(responses or {})

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            if url in served:
                return httpx.Response(200, content=served[url])
            return httpx.Response(404)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return FetchContext(
            client=client,
            git=git or FakeGit(),
            tree_hash=tree_sha256 if allow_tree_hashing else None,
        )

    yield factory

    for client in clients:
        client.close()


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI test runner."""
    return CliRunner()
