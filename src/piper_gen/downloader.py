"""
Caching downloader for remote assets.

Each source URL maps to one file under the cache directory, named by the
percent-encoded URL. An existing cache file is trusted without re-validation,
which makes re-runs idempotent. Downloads are written to a temporary file and
renamed into place only after the whole body arrived, so a file at the cache
path always is a complete download.
"""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import IO, Optional
from urllib.parse import quote_plus

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import IOFailure, NetworkFailure
from .settings import Settings

logger = logging.getLogger(__name__)

__all__ = ["CachingDownloader", "cache_filename"]

CHUNK_SIZE = 1024 * 1024  # 1 MiB


def cache_filename(url: str) -> str:
    """Encode a URL into a single path component."""
    return quote_plus(url, safe="")


class CachingDownloader:
    """
    Fetch URLs into the piper-gen cache directory.

    Args:
        settings: Provides the cache location, timeout and retry count
        client: Optional httpx client (injected in tests); a default one is
            created and owned by the downloader otherwise
    """

    # Backoff between transport retries; tests replace it to avoid sleeping
    retry_wait = wait_exponential(multiplier=1, min=1, max=10)

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        self.settings = settings
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(settings.http_timeout_s, connect=10.0),
            follow_redirects=True,
            headers={"User-Agent": "piper-gen/0.1.0"},
        )

    def __enter__(self) -> CachingDownloader:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def cache_path(self, url: str) -> Path:
        return self.settings.cache_dir / cache_filename(url)

    def fetch(self, url: str) -> Path:
        """
        Return the local path of ``url``, downloading it on a cache miss.

        Raises:
            NetworkFailure: If the transfer fails or the server returns an error status
            IOFailure: If the cache file cannot be written
        """
        filename = self.cache_path(url)
        if filename.exists():
            logger.debug(f"Cache hit for {url}: {filename}")
            return filename

        logger.info(f"Downloading {url}")
        try:
            filename.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix=".download.", suffix=".tmp", dir=filename.parent)
        except OSError as e:
            raise IOFailure(f"failed to create cache file for {url}: {e}") from e
        temp_path = Path(temp_name)

        try:
            with os.fdopen(fd, "wb") as out:
                self._download_with_retry(url, out)
            os.replace(temp_path, filename)
        except OSError as e:
            _unlink_quietly(temp_path)
            raise IOFailure(f"failed to download {url!r} to {filename}: {e}") from e
        except Exception:
            _unlink_quietly(temp_path)
            raise

        logger.debug(f"Cached {url} at {filename}")
        return filename

    def _download_with_retry(self, url: str, out: IO[bytes]) -> None:
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.http_retry + 1),
            wait=self.retry_wait,
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(f"Retrying download of {url} (attempt {attempt.retry_state.attempt_number})")
                    self._download(url, out)
        except httpx.HTTPStatusError as e:
            raise NetworkFailure(
                f"failed to download {url!r}: server returned {e.response.status_code}", url=url
            ) from e
        except httpx.HTTPError as e:
            raise NetworkFailure(f"failed to download {url!r}: {e}", url=url) from e

    def _download(self, url: str, out: IO[bytes]) -> None:
        out.seek(0)
        out.truncate()
        with self.client.stream("GET", url) as response:
            response.raise_for_status()
            for chunk in response.iter_bytes(CHUNK_SIZE):
                out.write(chunk)


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
