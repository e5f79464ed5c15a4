"""Image resolution for multimodal messages.

Turns LocalFile, RemoteUrl and InlineImage references into raw bytes so the
builders can embed them as base64. Remote fetches are cached by URL in a
cachetools TTLCache, so a conversation that re-sends the same image URL on
every turn only downloads it once.

Key Features:
    - Local files are read fully; any OSError becomes ImageResolutionError
    - Remote URLs are fetched with a requests.Session; HTTP error statuses
      and connection failures are both resolution failures
    - Images larger than ``max_size_bytes`` or empty images are rejected
    - Hit/miss statistics for the URL cache
"""

from __future__ import annotations

import logging
import threading
import types

import requests
from cachetools import TTLCache

from ollama_chat.core.config import settings
from ollama_chat.domain.exceptions import ImageResolutionError, InvalidArgumentError
from ollama_chat.domain.value_objects import ImageReference, InlineImage, LocalFile, RemoteUrl

logger = logging.getLogger(__name__)


class ImageResolver:
    """Resolves image references to bytes.

    Implements ImageResolverInterface.

    Attributes:
        timeout: Remote fetch timeout in seconds.
        max_size_bytes: Largest accepted image.

    Thread Safety:
        The URL cache is guarded by a lock. The underlying requests.Session is
        shared; requests sessions tolerate concurrent GETs in practice, but
        callers resolving from many threads may pass one session per thread.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float | None = None,
        max_size_bytes: int | None = None,
        cache_size: int | None = None,
        cache_ttl_seconds: float | None = None,
    ) -> None:
        config = settings.image
        self._session = session or requests.Session()
        self.timeout = timeout if timeout is not None else config.fetch_timeout
        self.max_size_bytes = max_size_bytes if max_size_bytes is not None else config.max_size_bytes
        self._cache: TTLCache[str, bytes] = TTLCache(
            maxsize=cache_size if cache_size is not None else config.cache_size,
            ttl=cache_ttl_seconds if cache_ttl_seconds is not None else config.cache_ttl_seconds,
        )
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def resolve_to_bytes(self, reference: ImageReference) -> bytes:
        """Return the raw bytes behind ``reference``.

        Raises:
            ImageResolutionError: If the file cannot be read, the URL cannot be
                fetched, or the image is empty or too large.
        """
        match reference:
            case InlineImage():
                try:
                    data = reference.to_bytes()
                except InvalidArgumentError as exc:
                    raise ImageResolutionError(str(reference), str(exc)) from exc
            case LocalFile():
                data = self._read_file(reference)
            case RemoteUrl():
                data = self._fetch(reference)
            case _:
                raise ImageResolutionError(repr(reference), f"Unsupported image reference: {reference!r}")
        return self._check_size(str(reference), data)

    def _read_file(self, reference: LocalFile) -> bytes:
        try:
            data = reference.path.read_bytes()
        except OSError as exc:
            msg = f"Cannot read image file {reference.path}: {exc}"
            raise ImageResolutionError(str(reference.path), msg) from exc
        logger.debug("Read image file %s (%d bytes)", reference.path, len(data))
        return data

    def _fetch(self, reference: RemoteUrl) -> bytes:
        with self._lock:
            cached = self._cache.get(reference.url)
            if cached is not None:
                self._hits += 1
                return cached
            self._misses += 1

        try:
            response = self._session.get(reference.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            msg = f"Cannot fetch image {reference.url}: {exc}"
            raise ImageResolutionError(reference.url, msg) from exc

        data = response.content
        logger.debug("Fetched image %s (%d bytes)", reference.url, len(data))
        # only cache what the size check accepts
        self._check_size(reference.url, data)
        with self._lock:
            self._cache[reference.url] = data
        return data

    def _check_size(self, name: str, data: bytes) -> bytes:
        if not data:
            raise ImageResolutionError(name, f"Image is empty: {name}")
        if len(data) > self.max_size_bytes:
            msg = f"Image {name} is {len(data)} bytes, limit is {self.max_size_bytes}"
            raise ImageResolutionError(name, msg)
        return data

    def clear(self) -> None:
        """Drop cached downloads and reset statistics."""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def get_stats(self) -> dict[str, int | float]:
        """Return URL cache statistics (size, max_size, hits, misses, hit_rate)."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._cache),
                "max_size": int(self._cache.maxsize),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total > 0 else 0.0,
            }

    def __enter__(self) -> ImageResolver:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()


__all__ = ["ImageResolver"]
