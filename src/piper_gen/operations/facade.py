"""
Operations Facade - Application service layer.

Provides a clean interface between CLI and the packaging core, centralizing
command orchestration and configuration policy while keeping CLI commands
thin and testable.
"""
from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..assembler import PackageAssembler, PackageResult
from ..downloader import CachingDownloader
from ..fingerprint import compute_fingerprint, write_metadata
from ..ingest import prefix_filter, repackage, strip_prefix
from ..models import AssetManifest, Fingerprint, Meta
from ..settings import Settings
from ..tarball import create_tarball

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    Centralizes run policy that does not belong in Settings.
    """
    jobs: int = 1                 # Assets packaged in parallel
    fail_fast: bool = False       # Stop at the first failed asset

    def __post_init__(self):
        if self.jobs < 1:
            raise ValueError(f"jobs must be at least 1, got {self.jobs}")


@dataclass
class BuildReport:
    """Outcome of a build run: packaged assets and per-asset failures."""
    results: List[PackageResult] = field(default_factory=list)
    failures: Dict[str, BaseException] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class Operations:
    """
    Application service facade for CLI operations.

    One method per CLI verb. Each asset of a build is independent: it owns
    its own Tarball and package directory, so assets can be packaged in
    parallel and a failed asset does not stop the others.
    """

    def __init__(self, config: OpsConfig, settings: Settings,
                 downloader: Optional[CachingDownloader] = None):
        self.cfg = config
        self.settings = settings
        self._downloader = downloader
        self.cancel = threading.Event()

    @property
    def downloader(self) -> CachingDownloader:
        """Get or create the downloader (lazy initialization)."""
        if self._downloader is None:
            self._downloader = CachingDownloader(self.settings)
        return self._downloader

    def build_all(self, manifest: AssetManifest) -> BuildReport:
        """
        Package every voice and binary of ``manifest``.

        Failures are logged and collected in the report; the remaining assets
        are still packaged unless ``fail_fast`` is set.
        """
        assembler = PackageAssembler(self.settings, self.downloader, cancel=self.cancel)
        tasks: Dict[str, Callable[[], PackageResult]] = {}
        for name, voice in sorted(manifest.voices.items()):
            tasks[name] = lambda n=name, v=voice: assembler.install_voice(n, v)
        for platform, binary in sorted(manifest.binaries.items()):
            tasks[platform] = lambda p=platform, b=binary: assembler.install_binary(p, b)

        report = BuildReport()
        if self.cfg.jobs == 1:
            for name, task in tasks.items():
                self._run_task(name, task, report)
                if report.failures and self.cfg.fail_fast:
                    break
        else:
            with ThreadPoolExecutor(max_workers=self.cfg.jobs) as pool:
                futures = {name: pool.submit(self._run_task, name, task, report)
                           for name, task in tasks.items()}
                for future in futures.values():
                    future.result()
        return report

    def _run_task(self, name: str, task: Callable[[], PackageResult], report: BuildReport) -> None:
        if self.cfg.fail_fast and report.failures:
            return
        try:
            result = task()
        except Exception as e:
            logger.error(f"Failed to package {name}: {e}")
            report.failures[name] = e
            if self.cfg.fail_fast:
                self.cancel.set()
            return
        report.results.append(result)

    def fetch(self, url: str) -> Path:
        """Download ``url`` into the cache (no-op on a cache hit)."""
        return self.downloader.fetch(url)

    def fingerprint(self, paths: List[str | os.PathLike], *, version: Optional[str] = None,
                    metadata_dir: Optional[str | os.PathLike] = None) -> Fingerprint | Meta:
        """Fingerprint files; with ``metadata_dir`` also write dist.json there."""
        if metadata_dir is not None:
            if not version:
                raise ValueError("version is required when writing metadata")
            return write_metadata(metadata_dir, version, paths)
        return compute_fingerprint(paths)

    def repack(self, src: Path, dest: Path, *, prefix: Optional[str] = None, strip: bool = False) -> int:
        """Repackage a local third-party archive into a dist.tzst-style archive."""
        if strip and not prefix:
            raise ValueError("--strip requires --prefix")
        with open(src, "rb") as stream, create_tarball(dest, level=self.settings.zstd_level) as tarball:
            return repackage(
                stream, tarball,
                name_hint=src.name,
                path_filter=prefix_filter(prefix) if prefix else None,
                path_rewrite=strip_prefix(prefix) if strip else None,
                cancel=self.cancel,
            )

    def close(self) -> None:
        if self._downloader is not None:
            self._downloader.close()
