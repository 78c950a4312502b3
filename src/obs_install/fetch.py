"""Resumable artifact downloads into the cache directory."""

from __future__ import annotations

import logging
import shutil
import ssl
import urllib.error
import urllib.request
from pathlib import Path
from typing import BinaryIO, ContextManager
from urllib.parse import urlsplit

from obs_install import __version__
from obs_install.errors import DownloadError
from obs_install.protocols import DownloadTransport

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"
CHUNK_SIZE = 64 * 1024
DEFAULT_TIMEOUT = 60


def url_basename(url: str) -> str:
    """Get the last path component of a URL, ignoring query and fragment."""
    return Path(urlsplit(url).path).name


class UrllibTransport:
    """HTTP transport built on urllib.request.

    Satisfies the DownloadTransport protocol structurally.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def open(self, url: str, offset: int = 0) -> ContextManager[BinaryIO]:
        headers = {"User-Agent": f"obs-install/{__version__}"}
        if offset:
            headers["Range"] = f"bytes={offset}-"
        request = urllib.request.Request(url, headers=headers)
        return urllib.request.urlopen(
            request, timeout=self.timeout, context=ssl.create_default_context()
        )


class ArtifactFetcher:
    """Downloads remote artifacts into a single cache directory.

    A completed cache entry is never downloaded again. An interrupted
    download is continued from its partial file.
    """

    def __init__(self, cache_dir: Path, transport: DownloadTransport) -> None:
        """Initialize the fetcher.

        Args:
            cache_dir: Directory cache entries are written to.
            transport: Transport used to open URLs.

        Note:
            Prefer using factory method `create()` for construction.
        """
        self.cache_dir = cache_dir
        self.transport = transport

    @classmethod
    def create(cls, cache_dir: Path, timeout: float = DEFAULT_TIMEOUT) -> ArtifactFetcher:
        """Create a fetcher using the urllib transport.

        Args:
            cache_dir: Directory cache entries are written to.
            timeout: Socket timeout in seconds.

        Returns:
            Configured ArtifactFetcher instance.
        """
        return cls(cache_dir=cache_dir, transport=UrllibTransport(timeout=timeout))

    def cache_path(self, filename: str) -> Path:
        """Get the cache entry path for a filename."""
        return self.cache_dir / filename

    def fetch(self, url: str, filename: str | None = None) -> Path:
        """Fetch a URL into the cache.

        Args:
            url: Resource URL.
            filename: Cache filename. Defaults to the URL basename.

        Returns:
            Path to the complete cache entry.

        Raises:
            DownloadError: On network failure, non-2xx status or write failure.
        """
        name = filename or url_basename(url)
        if not name:
            raise DownloadError(url, "cannot derive a cache filename")

        target = self.cache_path(name)
        if target.exists():
            logger.debug("Cache hit for %s", target)
            return target

        partial = target.with_name(target.name + PARTIAL_SUFFIX)
        offset = partial.stat().st_size if partial.exists() else 0

        try:
            self._download(url, partial, offset)
            partial.replace(target)
        except urllib.error.HTTPError as e:
            raise DownloadError(url, f"HTTP {e.code} {e.reason}") from e
        except (urllib.error.URLError, OSError) as e:
            raise DownloadError(url, e) from e

        return target

    def _download(self, url: str, partial: Path, offset: int) -> None:
        """Write the resource to the partial file, continuing at offset."""
        try:
            response_cm = self.transport.open(url, offset)
        except urllib.error.HTTPError as e:
            # Range past the end: the partial file already holds everything
            if e.code == 416 and offset:
                logger.debug("Partial download of %s is already complete", url)
                return
            raise

        with response_cm as response:
            status = getattr(response, "status", 200)
            if not 200 <= status < 300:
                raise urllib.error.HTTPError(url, status, "unexpected status", None, None)
            mode = "ab" if offset and status == 206 else "wb"
            if mode == "ab":
                logger.debug("Continuing %s from byte %d", url, offset)
            with partial.open(mode) as fh:
                shutil.copyfileobj(response, fh, CHUNK_SIZE)
