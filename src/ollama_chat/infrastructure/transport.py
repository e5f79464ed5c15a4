"""HTTP transports for the Ollama service.

Thin adapters that POST serialized requests and hand back decoded JSON
objects. They own the base URL, timeouts and connection pooling; they apply
no retry or backoff policy of their own.

Key behaviors:
    - HttpTransport uses requests.Session with an HTTPAdapter for pooling
    - AsyncHttpTransport uses httpx.AsyncClient, created lazily
    - Streaming responses are read as NDJSON, one decoded object per line,
      in arrival order; blank lines are skipped
    - Every library failure (connection, timeout, HTTP status, invalid JSON)
      is raised as TransportError chained from the original exception, with
      the HTTP status code when the service answered
    - Exceptions raised by a chunk handler propagate unchanged
"""

from __future__ import annotations

import json
import logging
import types
from collections.abc import AsyncIterator
from typing import Any

import httpx
import requests
from requests.adapters import HTTPAdapter

from ollama_chat.application.interfaces import ChunkHandler
from ollama_chat.core.config import settings
from ollama_chat.domain.exceptions import TransportError

logger = logging.getLogger(__name__)


def _error_detail(body: str) -> str:
    """Extract the service's ``{"error": ...}`` message, or a body excerpt."""
    try:
        data = json.loads(body)
    except ValueError:
        return body[:200]
    match data:
        case {"error": str() as message}:
            return message
        case _:
            return body[:200]


def _decode_line(endpoint: str, line: str | bytes) -> dict[str, Any] | None:
    if not line or not line.strip():
        return None
    try:
        data = json.loads(line)
    except ValueError as exc:
        raise TransportError(f"Malformed NDJSON line from {endpoint}: {line[:200]!r}") from exc
    if not isinstance(data, dict):
        raise TransportError(f"Expected JSON object from {endpoint}, got {type(data).__name__}")
    return data


def _expect_object(endpoint: str, data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise TransportError(f"Expected JSON object from {endpoint}, got {type(data).__name__}")
    return data


class HttpTransport:
    """Blocking transport built on requests.

    Implements TransportInterface.

    Attributes:
        base_url: Service base URL without trailing slash.
        timeout: Per-request timeout in seconds. For streamed responses this
            bounds the wait between two lines, not the whole stream.
        session: requests.Session with connection pooling configured.

    Thread safety:
        requests sessions are not guaranteed thread-safe; use one transport
        per thread when calling from several threads.
    """

    __slots__ = ("base_url", "session", "timeout")

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        pool_connections: int | None = None,
        pool_maxsize: int | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = (base_url or settings.ollama.url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.client.timeout
        self.session = session or requests.Session()
        adapter = HTTPAdapter(
            pool_connections=pool_connections or settings.client.pool_connections,
            pool_maxsize=pool_maxsize or settings.client.pool_maxsize,
        )
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def send(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST ``payload`` and return the decoded JSON object.

        Raises:
            TransportError: On connection, timeout, HTTP or decoding failures.
        """
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.HTTPError as exc:
            raise self._http_error(endpoint, exc) from exc
        except requests.exceptions.JSONDecodeError as exc:
            raise TransportError(f"Invalid JSON response from {endpoint}: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc
        return _expect_object(endpoint, data)

    def send_streaming(
        self, endpoint: str, payload: dict[str, Any], on_chunk: ChunkHandler
    ) -> dict[str, Any]:
        """POST ``payload`` and feed each NDJSON object to ``on_chunk``.

        Returns:
            The last decoded object (the ``done`` one on a well-formed stream).

        Raises:
            TransportError: On connection, timeout, HTTP or decoding failures,
                or if the stream carried no objects at all.
        """
        url = f"{self.base_url}{endpoint}"
        last: dict[str, Any] | None = None
        try:
            with self.session.post(url, json=payload, timeout=self.timeout, stream=True) as response:
                response.raise_for_status()
                for line in response.iter_lines():
                    chunk = _decode_line(endpoint, line)
                    if chunk is None:
                        continue
                    last = chunk
                    on_chunk(chunk)
        except requests.exceptions.HTTPError as exc:
            raise self._http_error(endpoint, exc) from exc
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"Streaming request to {url} failed: {exc}") from exc

        if last is None:
            raise TransportError(f"Empty streaming response from {endpoint}")
        return last

    @staticmethod
    def _http_error(endpoint: str, exc: requests.exceptions.HTTPError) -> TransportError:
        response = exc.response
        status_code = response.status_code if response is not None else None
        detail = _error_detail(response.text) if response is not None else str(exc)
        return TransportError(f"HTTP {status_code} from {endpoint}: {detail}", status_code)


class AsyncHttpTransport:
    """Async transport built on httpx.

    Implements AsyncTransportInterface. Can be used as an async context
    manager; the underlying httpx.AsyncClient is created on first use.

    Attributes:
        base_url: Service base URL without trailing slash.
        timeout: Read timeout in seconds.
    """

    __slots__ = (
        "_client",
        "_owns_client",
        "base_url",
        "max_connections",
        "max_keepalive_connections",
        "timeout",
    )

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_connections: int | None = None,
        max_keepalive_connections: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.ollama.url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.client.timeout
        self.max_connections = max_connections or settings.client.max_connections
        self.max_keepalive_connections = (
            max_keepalive_connections or settings.client.max_keepalive_connections
        )
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> AsyncHttpTransport:
        self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(connect=5.0, read=self.timeout, write=5.0, pool=5.0),
                limits=httpx.Limits(
                    max_keepalive_connections=self.max_keepalive_connections,
                    max_connections=self.max_connections,
                ),
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the httpx client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def send(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST ``payload`` and return the decoded JSON object.

        Raises:
            TransportError: On connection, timeout, HTTP or decoding failures.
        """
        client = self._ensure_client()
        try:
            response = await client.post(endpoint, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            detail = _error_detail(exc.response.text)
            raise TransportError(f"HTTP {status_code} from {endpoint}: {detail}", status_code) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Request to {self.base_url}{endpoint} failed: {exc!r}") from exc
        except ValueError as exc:
            raise TransportError(f"Invalid JSON response from {endpoint}: {exc}") from exc
        return _expect_object(endpoint, data)

    async def stream(self, endpoint: str, payload: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        """POST ``payload`` and yield each NDJSON object in arrival order.

        Raises:
            TransportError: On connection, timeout, HTTP or decoding failures.
        """
        client = self._ensure_client()
        try:
            async with client.stream("POST", endpoint, json=payload) as response:
                if response.is_error:
                    await response.aread()
                    status_code = response.status_code
                    detail = _error_detail(response.text)
                    raise TransportError(f"HTTP {status_code} from {endpoint}: {detail}", status_code)
                async for line in response.aiter_lines():
                    chunk = _decode_line(endpoint, line)
                    if chunk is not None:
                        yield chunk
        except httpx.HTTPError as exc:
            raise TransportError(
                f"Streaming request to {self.base_url}{endpoint} failed: {exc!r}"
            ) from exc


__all__ = ["AsyncHttpTransport", "HttpTransport"]
