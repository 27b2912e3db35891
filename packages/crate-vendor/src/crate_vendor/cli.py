# SPDX-License-Identifier: MIT
"""CLI entry point for the crate-vendor command."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from .config import VendorConfig, VendorConfigError
from .context import FetchContext
from .errors import VendorError
from .git_source import parse_git_source
from .hashes import HashCache, diff_hashes
from .vendor import vendor_crates


class Context:
    """CLI context object passed to commands."""

    def __init__(self) -> None:
        self.verbose: bool = False
        self.project_dir: Optional[Path] = None

    @property
    def root(self) -> Path:
        return self.project_dir or Path.cwd()


pass_context = click.make_pass_decorator(Context, ensure=True)


def echo_error(message: str) -> None:
    """Print an error message to stderr."""
    click.secho(f"Error: {message}", fg="red", err=True)


def echo_success(message: str) -> None:
    """Print a success message."""
    click.secho(message, fg="green")


def echo_info(message: str) -> None:
    """Print an info message."""
    click.echo(message)


def echo_warning(message: str) -> None:
    """Print a warning message."""
    click.secho(f"Warning: {message}", fg="yellow", err=True)


@click.group()
@click.version_option(package_name="crate-vendor")
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Enable verbose output.",
)
@click.option(
    "-C",
    "--directory",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Project root (default: current directory).",
)
@pass_context
def cli(ctx: Context, verbose: bool, directory: Optional[Path]) -> None:
    """Vendor Cargo.lock dependencies for offline builds.

    \b
    Examples:
        crate-vendor vendor
        crate-vendor -C path/to/workspace vendor --output vendor-out
        crate-vendor parse-git 'git+https://example.com/repo.git?branch=main#deadbeef'
        crate-vendor hashes diff crate-hashes.json target/vendor/crate-hashes.json
    """
    ctx.verbose = verbose
    ctx.project_dir = directory
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option(
    "--output",
    "-o",
    "output_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Output directory (default: target/vendor).",
)
@click.option(
    "--hashes",
    "hashes_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Extra hash file whose entries override the cache. Repeatable.",
)
@click.option(
    "--allow-tree-hashing",
    is_flag=True,
    envvar="CRATE_VENDOR_ALLOW_TREE_HASHING",
    help="Compute missing git hashes from fresh checkouts.",
)
@click.option(
    "--copy",
    "copy_vendor",
    is_flag=True,
    help="Copy package directories instead of symlinking them.",
)
@pass_context
def vendor(
    ctx: Context,
    output_dir: Path | None,
    hashes_files: tuple[Path, ...],
    allow_tree_hashing: bool,
    copy_vendor: bool,
) -> None:
    """Vendor all dependencies of the project's lock files."""
    try:
        overrides: dict[str, str] = {}
        for hashes_file in hashes_files:
            overrides.update(HashCache.load(hashes_file))

        config = VendorConfig.from_cargo_toml(
            ctx.root,
            output_dir=output_dir,
            hash_overrides=overrides,
            allow_tree_hashing=allow_tree_hashing or None,
            copy_vendor=copy_vendor or None,
        )

        with FetchContext.open(
            allow_tree_hashing=config.allow_tree_hashing,
            download_url=config.download_url,
        ) as context:
            result = vendor_crates(config, context)
    except VendorConfigError as e:
        echo_error(f"Invalid configuration: {e}")
        raise SystemExit(1) from e
    except VendorError as e:
        echo_error(str(e))
        raise SystemExit(1) from e

    echo_success(f"Vendored {len(result.fetched)} package(s) into {len(result.entries)} entries")
    if ctx.verbose:
        for lock_file in result.lock_files:
            echo_info(f"Lock file: {lock_file}")
        for entry in result.entries:
            echo_info(f"  {entry.content_name} <- {entry.path}")
    echo_info(f"Vendor root: {result.vendor_root}")
    echo_info(f"Cargo config: {result.cargo_config}")
    echo_info(f"Hashes: {result.hashes_path}")
    if result.has_drift:
        echo_warning(f"{config.persisted_hashes_path} differs from {result.hashes_path}")


@cli.command("parse-git")
@click.argument("source")
def parse_git(source: str) -> None:
    """Print the structured form of a git source string."""
    try:
        spec = parse_git_source(source)
    except VendorError as e:
        echo_error(str(e))
        raise SystemExit(1) from e
    payload = {
        "url": spec.url,
        **spec.declared,
        "urlFragment": spec.url_fragment,
        **dict(spec.extra_params),
    }
    echo_info(json.dumps(payload, indent=2))


@cli.group()
def hashes() -> None:
    """Inspect hash files."""


@hashes.command("diff")
@click.argument("old", type=click.Path(dir_okay=False, path_type=Path))
@click.argument("new", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def hashes_diff(old: Path, new: Path) -> None:
    """Show drift between two hash files; exit 1 when they differ."""
    try:
        drift = diff_hashes(HashCache.load(old), HashCache.load(new))
    except VendorError as e:
        echo_error(str(e))
        raise SystemExit(1) from e
    if not drift.has_drift:
        echo_success("No drift.")
        return
    click.echo(drift.unified_diff(fromfile=str(old), tofile=str(new)), nl=False)
    raise SystemExit(1)


def main() -> None:
    """Main entry point for the CLI."""
    try:
        cli()
    except (VendorError, VendorConfigError) as e:
        echo_error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
