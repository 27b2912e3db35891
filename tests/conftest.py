# SPDX-License-Identifier: MIT
"""Fixtures for end-to-end vendoring of the sample workspace."""

from __future__ import annotations

import hashlib
import io
import shutil
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generator

import httpx
import pytest

from crate_vendor.context import FetchContext, GitClient

SERDE_URL = "https://static.crates.io/crates/serde/serde-1.0.0.crate"

SERDE_FILES = {
    "Cargo.toml": '[package]\nname = "serde"\nversion = "1.0.0"\n',
    "src/lib.rs": "pub trait Serialize {}\n",
}

# Contents of https://example.com/mono.git at deadbeef
MONO_FILES = {
    "Cargo.toml": '[workspace]\nmembers = ["foo", "bar"]\n',
    "foo/Cargo.toml": '[package]\nname = "foo"\nversion = "1.0.0"\n',
    "foo/src/lib.rs": 'pub fn hello() { println!("hello"); }\n',
    "bar/Cargo.toml": '[package]\nname = "bar"\nversion = "2.0.0"\n',
    "bar/src/lib.rs": "pub fn bar() {}\n",
}


class MonoRepoGit(GitClient):
    """Git runner serving MONO_FILES for every checkout."""

    def __init__(self) -> None:
        super().__init__("git")
        self.calls: list[list[str]] = []

    def run(self, argv: list[str], cwd: str | Path | None = None) -> str:
        self.calls.append(list(argv))
        if argv[0] == "checkout":
            for relative, text in MONO_FILES.items():
                target = Path(cwd) / relative
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(text)
        return ""


@dataclass
class SampleWorkspace:
    """A copy of the sample workspace with its fake remotes."""

    root: Path
    serde_archive: bytes
    git: MonoRepoGit = field(default_factory=MonoRepoGit)
    requested: list[str] = field(default_factory=list)
    clients: list[httpx.Client] = field(default_factory=list)

    @property
    def serde_checksum(self) -> str:
        return hashlib.sha256(self.serde_archive).hexdigest()

    def context(self) -> FetchContext:
        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            self.requested.append(url)
            if url == SERDE_URL:
                return httpx.Response(200, content=self.serde_archive)
            return httpx.Response(404)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        self.clients.append(client)
        return FetchContext(client=client, git=self.git)


def _crate_archive(name: str, version: str, files: dict[str, str]) -> bytes:
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
def sample_workspace(tmp_path: Path) -> Generator[SampleWorkspace, None, None]:
    """Copy the sample workspace and pin serde's checksum to a local archive."""
    root = tmp_path / "workspace"
    shutil.copytree(Path(__file__).parent / "sample_workspace", root)

    workspace = SampleWorkspace(root=root, serde_archive=_crate_archive("serde", "1.0.0", SERDE_FILES))
    lock = root / "Cargo.lock"
    lock.write_text(lock.read_text().replace("@SERDE_CHECKSUM@", workspace.serde_checksum))
    yield workspace

    for client in workspace.clients:
        client.close()
