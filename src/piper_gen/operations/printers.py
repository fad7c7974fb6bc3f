"""
Human-readable output formatting.

Centralizes all CLI output formatting so commands stay thin.
"""
from __future__ import annotations

import typer
from pathlib import Path
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..models import Fingerprint, Meta
from .facade import BuildReport

_console = Console()
_err_console = Console(stderr=True)

def print_build_report(report: BuildReport) -> None:
    """
    Print one row per packaged asset, then the failures.

    Args:
        report: Outcome of Operations.build_all
    """
    if report.results:
        table = Table(title="Packages")
        table.add_column("Asset", style="cyan")
        table.add_column("Kind")
        table.add_column("Version")
        table.add_column("Entries", justify="right")
        table.add_column("Hash", style="dim")

        for result in sorted(report.results, key=lambda r: r.name):
            table.add_row(result.name, result.kind, result.meta.version,
                          str(result.entries), result.meta.hash.hexdigest())
        _console.print(table)

    for name, exc in sorted(report.failures.items()):
        _err_console.print(f"[bold red]FAILED[/] {escape(name)}: {escape(str(exc))}")

    typer.echo(f"Packaged {len(report.results)} asset(s), {len(report.failures)} failed")

def print_fetch_result(url: str, path: Path) -> None:
    """Print where a URL is cached."""
    typer.echo(f"Cached {url}")
    typer.echo(f"Path: {path}")

def print_fingerprint(result: Fingerprint | Meta, metadata_dir: Path | None = None) -> None:
    """
    Print a fingerprint, or the metadata record that was written.

    Args:
        result: Fingerprint, or Meta when dist.json was written
        metadata_dir: Directory that received dist.json
    """
    if isinstance(result, Meta):
        typer.echo(f"Hash: {result.hash.hexdigest()}")
        typer.echo(f"Wrote {metadata_dir / 'dist.json'}: {result.to_json()}")
        return
    typer.echo(f"Hash: {result.hexdigest()}")
    typer.echo(f"Hi: {result.hi} Lo: {result.lo}")

def print_repack_summary(src: Path, dest: Path, entries: int) -> None:
    """Print repack operation summary."""
    typer.echo(f"Repackaged {entries} entries from {src} to {dest}")

def print_error(exc: BaseException) -> None:
    """Print a command failure to stderr."""
    _err_console.print(f"[bold red]Error:[/] {escape(str(exc))}", highlight=False)
