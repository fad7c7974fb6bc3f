"""
piper-gen CLI

Implements 4 CLI verbs with Operations facade integration:
- build: Download assets and generate voice and engine binary packages
- fetch: Download one URL into the cache
- hash: Fingerprint files, optionally writing dist.json
- repack: Repackage a local third-party archive into a tar.zst archive
"""
from __future__ import annotations

import logging
import typer
from pathlib import Path
from typing import List, Optional

from .cli_context import CLIContext
from .errors import BuildFailed
from .models import AssetManifest, load_default_manifest
from .operations import OpsConfig, run_and_exit
from .operations.printers import (
    print_build_report, print_fetch_result, print_fingerprint, print_repack_summary
)

app = typer.Typer(name="piper-gen", help="Build embeddable piper voice and binary packages")

@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

@app.command()
def build(
    root_dir: str = typer.Argument(..., help="Root directory for packages and the download cache"),
    manifest: Optional[str] = typer.Option(None, "--manifest", help="Asset manifest YAML (defaults to the bundled one)"),
    only: Optional[List[str]] = typer.Option(None, "--only", help="Package only this asset (repeatable)"),
    jobs: int = typer.Option(1, "--jobs", "-j", help="Assets to package in parallel"),
    no_build: bool = typer.Option(False, "--no-build", help="Skip `go mod tidy` and `go build`"),
    fail_fast: bool = typer.Option(False, "--fail-fast", help="Stop at the first failed asset"),
    zstd_level: Optional[int] = typer.Option(None, "--zstd-level", help="Zstandard level for dist.tzst (1-22)")
) -> None:
    """Download assets and generate packages."""

    def _build() -> None:
        assets = AssetManifest.from_yaml_file(Path(manifest)) if manifest else load_default_manifest()
        assets = assets.select(only)

        context = CLIContext.from_env(
            root_dir,
            zstd_level=zstd_level,
            run_build=False if no_build else None,
        )
        ops = context.operations(OpsConfig(jobs=jobs, fail_fast=fail_fast))
        try:
            report = ops.build_all(assets)
        finally:
            ops.close()

        print_build_report(report)
        if not report.ok:
            raise BuildFailed(report.failures)

    run_and_exit(_build)

@app.command()
def fetch(
    root_dir: str = typer.Argument(..., help="Root directory holding the download cache"),
    url: str = typer.Argument(..., help="URL to download")
) -> None:
    """Download a URL into the cache (no-op when already cached)."""

    def _fetch() -> None:
        ops = CLIContext.from_env(root_dir).operations()
        try:
            path = ops.fetch(url)
        finally:
            ops.close()
        print_fetch_result(url, path)

    run_and_exit(_fetch)

@app.command("hash")
def hash_files(
    files: List[Path] = typer.Argument(..., help="Files to fingerprint (order does not matter)"),
    version: Optional[str] = typer.Option(None, "--version", help="Version recorded in dist.json"),
    metadata_dir: Optional[Path] = typer.Option(None, "--metadata-dir", help="Write dist.json into this directory")
) -> None:
    """Compute the content fingerprint of files."""

    def _hash() -> None:
        ops = CLIContext.from_env(".").operations()
        result = ops.fingerprint(files, version=version, metadata_dir=metadata_dir)
        print_fingerprint(result, metadata_dir)

    run_and_exit(_hash)

@app.command()
def repack(
    src: Path = typer.Argument(..., help="Source archive (.tar.gz, .zip, ...)"),
    dest: Path = typer.Argument(..., help="Output .tzst archive"),
    prefix: Optional[str] = typer.Option(None, "--prefix", help="Only include entries under this directory"),
    strip: bool = typer.Option(False, "--strip", help="Remove --prefix from entry names"),
    zstd_level: Optional[int] = typer.Option(None, "--zstd-level", help="Zstandard level (1-22)")
) -> None:
    """Repackage a third-party archive into a tar.zst archive."""

    def _repack() -> None:
        ops = CLIContext.from_env(dest.parent, zstd_level=zstd_level).operations()
        entries = ops.repack(src, dest, prefix=prefix, strip=strip)
        print_repack_summary(src, dest, entries)

    run_and_exit(_repack)

def main() -> None:
    """CLI entry point."""
    app()

if __name__ == "__main__":
    main()
