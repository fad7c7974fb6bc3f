"""
piper-gen error classes.

Provides the taxonomy of failures raised while fetching assets, writing
archives and generating packages. Each error message carries the operation
and the path or URL involved; the underlying exception is chained as
``__cause__``.
"""
from __future__ import annotations

from typing import Dict, List, Tuple


class PiperGenError(Exception):
    """Base class for all piper-gen errors."""
    pass


class IOFailure(PiperGenError):
    """
    Local filesystem error.

    Raised when creating, opening, reading, writing or stat-ing a local
    file fails.
    """
    pass


class WriteFailure(IOFailure):
    """
    Archive entry could not be written.

    Raised when a tar header is rejected or the entry content does not
    match the declared size.
    """
    pass


class NetworkFailure(PiperGenError):
    """Transport level or HTTP status error while downloading."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class EncodingFailure(PiperGenError):
    """Compression encoder could not be created, written or closed."""
    pass


class UnsupportedFormat(PiperGenError):
    """
    Archive format cannot be used for repackaging.

    Raised when the data is not a recognized archive or when the
    identified format does not support entry-by-entry extraction.
    """
    pass


class AggregateCloseFailure(PiperGenError):
    """
    One or more layers of an archive writer failed to close.

    ``failures`` lists ``(layer, exception)`` pairs in close order, where
    layer is one of ``"tar"``, ``"encoder"`` or ``"file"``.
    """

    def __init__(self, path: str, failures: List[Tuple[str, BaseException]]):
        details = "; ".join(f"{layer}: {exc}" for layer, exc in failures)
        super().__init__(f"failed to close archive {path}: {details}")
        self.path = path
        self.failures = failures


class PackagingCancelled(PiperGenError):
    """Repackaging was stopped between entries by a cancel signal."""
    pass


class UnexpectedAssetFile(PiperGenError):
    """Voice asset URL does not name a file the package layout knows."""
    pass


class BuildCommandFailed(PiperGenError):
    """
    External build command exited unsuccessfully.

    ``output`` holds the combined stdout and stderr of the command.
    """

    def __init__(self, message: str, output: str = ""):
        super().__init__(f"{message}: {output}" if output else message)
        self.output = output


class BuildFailed(PiperGenError):
    """
    One or more assets of a build run failed.

    ``failures`` maps asset name to the error that aborted it; the other
    assets were still packaged.
    """

    def __init__(self, failures: Dict[str, BaseException]):
        names = ", ".join(sorted(failures))
        super().__init__(f"{len(failures)} asset(s) failed: {names}")
        self.failures = failures


__all__ = [
    "PiperGenError",
    "BuildFailed",
    "IOFailure",
    "WriteFailure",
    "NetworkFailure",
    "EncodingFailure",
    "UnsupportedFormat",
    "AggregateCloseFailure",
    "PackagingCancelled",
    "UnexpectedAssetFile",
    "BuildCommandFailed",
]
