"""
Package assembly.

Turns one manifest asset into one package directory: downloads its files
through the cache, writes dist.tzst, then generates the module scaffolding
and dist.json. A failure anywhere discards the partial archive and aborts
that asset only.
"""
from __future__ import annotations

import logging
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Literal, Optional
from urllib.parse import urlparse

from .downloader import CachingDownloader
from .errors import IOFailure, UnexpectedAssetFile
from .ingest import prefix_filter, repackage, strip_prefix
from .models import ARCHIVE_FILENAME, BinaryAsset, Meta, VoiceAsset
from .scaffold import generate_package
from .settings import Settings
from .tarball import create_tarball

logger = logging.getLogger(__name__)

__all__ = ["PackageAssembler", "PackageResult", "voice_entry_name"]

MODEL_CARD = "MODEL_CARD"
MODEL_CARD_COPY = "MODEL_CARD.txt"


@dataclass(frozen=True)
class PackageResult:
    """A generated package directory and its metadata."""
    name: str
    kind: Literal["voice", "binary"]
    pkg_dir: Path
    meta: Meta
    entries: int


def voice_entry_name(url: str) -> str:
    """
    Map a voice file URL to its name inside dist.tzst.

    ``*.onnx`` becomes ``voice.onnx``, ``*.json`` becomes ``voice.json`` and
    ``MODEL_CARD`` keeps its name.

    Raises:
        UnexpectedAssetFile: For any other file
    """
    basename = PurePosixPath(urlparse(url).path).name
    if basename == MODEL_CARD:
        return MODEL_CARD
    suffix = PurePosixPath(basename).suffix
    if suffix == ".onnx":
        return "voice.onnx"
    if suffix == ".json":
        return "voice.json"
    raise UnexpectedAssetFile(f"encountered unexpected file extension {suffix!r} in {url}")


class PackageAssembler:
    """
    Build voice and engine binary packages under ``settings.root_dir``.

    Args:
        settings: Run configuration
        downloader: Cache-backed fetcher for asset URLs
        cancel: Optional event that stops binary repackaging between entries
    """

    def __init__(self, settings: Settings, downloader: CachingDownloader,
                 cancel: Optional[threading.Event] = None):
        self.settings = settings
        self.downloader = downloader
        self.cancel = cancel

    def install_voice(self, name: str, voice: VoiceAsset) -> PackageResult:
        """Package a voice as ``piper-voice-<name>``."""
        pkg_dir = self.settings.root_dir / f"piper-voice-{name}"
        entry_names = [voice_entry_name(url) for url in voice.urls]
        if MODEL_CARD not in entry_names:
            raise UnexpectedAssetFile(f"voice {name!r} has no {MODEL_CARD} file")

        logger.info(f"Packaging voice {name} {voice.version} into {pkg_dir}")
        model_card: Optional[Path] = None
        with create_tarball(pkg_dir / ARCHIVE_FILENAME, level=self.settings.zstd_level) as tarball:
            for url, entry_name in zip(voice.urls, entry_names):
                filename = self.downloader.fetch(url)
                tarball.append_file(entry_name, filename)
                if entry_name == MODEL_CARD:
                    model_card = filename
            entries = tarball.entries

        target = pkg_dir / MODEL_CARD_COPY
        try:
            shutil.copyfile(model_card, target)
        except OSError as e:
            raise IOFailure(f"failed to copy {model_card} to {target}: {e}") from e

        meta = generate_package(
            self.settings, pkg_dir,
            go_package=name, asset_name=name, version=voice.version,
            voice=True, extra_embeds=[MODEL_CARD_COPY],
        )
        return PackageResult(name=name, kind="voice", pkg_dir=pkg_dir, meta=meta, entries=entries)

    def install_binary(self, platform: str, binary: BinaryAsset) -> PackageResult:
        """Package an engine distribution as ``piper-bin-<platform>``."""
        pkg_dir = self.settings.root_dir / f"piper-bin-{platform}"
        filename = self.downloader.fetch(binary.url)

        logger.info(f"Packaging {binary.url} into {pkg_dir}")
        try:
            src = open(filename, "rb")
        except OSError as e:
            raise IOFailure(f"failed to open {filename}: {e}") from e
        with src, create_tarball(pkg_dir / ARCHIVE_FILENAME, level=self.settings.zstd_level) as tarball:
            entries = repackage(
                src, tarball,
                name_hint=binary.url,
                path_filter=prefix_filter(binary.strip_prefix),
                path_rewrite=strip_prefix(binary.strip_prefix),
                cancel=self.cancel,
            )
        if entries == 0:
            logger.warning(f"No entries under {binary.strip_prefix}/ in {binary.url}")

        meta = generate_package(
            self.settings, pkg_dir,
            go_package=platform, asset_name=platform, version=binary.version, voice=False,
        )
        return PackageResult(name=platform, kind="binary", pkg_dir=pkg_dir, meta=meta, entries=entries)
