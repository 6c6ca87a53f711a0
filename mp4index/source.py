"""
Random-access byte sources for the MP4 indexer.

Decouples box scanning from any specific storage (in-memory buffer, local
file, HTTP server with range support). Each source implements the
ByteSource protocol: a total size and a positional read that may return
fewer bytes than requested at end of data.
"""

import logging
import os
from typing import Protocol, runtime_checkable

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from mp4index.configs import settings
from mp4index.errors import ShortReadError

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    def __init__(self, status_code, message):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


@runtime_checkable
class ByteSource(Protocol):
    """
    Protocol for random-access reads over a complete MP4 file.

    Implementations must provide:
    - size: total length in bytes
    - read(offset, length): up to ``length`` bytes starting at ``offset``
    """

    @property
    def size(self) -> int:
        """Total size in bytes."""
        ...

    def read(self, offset: int, length: int) -> bytes:
        """
        Read bytes at an absolute offset.

        Returns fewer than ``length`` bytes only when the read crosses the
        end of the source.
        """
        ...


class BytesSource:
    """ByteSource over an in-memory buffer."""

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._data = bytes(data)

    @property
    def size(self) -> int:
        return len(self._data)

    def read(self, offset: int, length: int) -> bytes:
        if offset < 0 or length <= 0:
            return b""
        return self._data[offset : offset + length]


class FileSource:
    """
    ByteSource over a local file.

    Accepts either a path (opened and owned by the source) or an already
    open file descriptor (borrowed, left open on close).
    """

    def __init__(self, file: int | str | os.PathLike) -> None:
        if isinstance(file, int):
            self._file = open(file, "rb", closefd=False)
        else:
            self._file = open(file, "rb")
        self._size = os.fstat(self._file.fileno()).st_size

    @property
    def size(self) -> int:
        return self._size

    def read(self, offset: int, length: int) -> bytes:
        if offset < 0 or length <= 0 or offset >= self._size:
            return b""
        self._file.seek(offset)
        return self._file.read(length)

    def close(self) -> None:
        self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, DownloadError) and exc.status_code >= 500


class HTTPSource:
    """ByteSource backed by HTTP byte-range requests via httpx."""

    def __init__(
        self,
        url: str,
        headers: dict | None = None,
        file_size: int = 0,
        client: httpx.Client | None = None,
    ) -> None:
        self._url = url
        self._headers = {"user-agent": settings.user_agent, **(headers or {})}
        self._file_size = file_size
        self._owns_client = client is None
        self._client = client or httpx.Client(
            follow_redirects=True,
            timeout=settings.http_timeout,
            verify=settings.verify_ssl,
        )

    @property
    def url(self) -> str:
        return self._url

    @property
    def size(self) -> int:
        if self._file_size <= 0:
            self._file_size = self.resolve_file_size()
        return self._file_size

    def resolve_file_size(self) -> int:
        """Perform a HEAD request to determine file size, falling back to a one-byte range GET."""
        response = self._request("HEAD", self._headers)
        content_length = response.headers.get("content-length")
        if content_length:
            return int(content_length)

        response = self._request("GET", {**self._headers, "range": "bytes=0-0"})
        content_range = response.headers.get("content-range", "")
        if "/" in content_range:
            try:
                return int(content_range.split("/")[-1])
            except ValueError:
                pass
        raise DownloadError(502, f"Could not determine size of {self._url}")

    def read(self, offset: int, length: int) -> bytes:
        if offset < 0 or length <= 0:
            return b""
        end = offset + length - 1
        response = self._request("GET", {**self._headers, "range": f"bytes={offset}-{end}"})
        if response.status_code == 416:
            return b""
        if response.status_code == 200:
            # Server ignored the range header and sent the whole body
            logger.debug("[source] Range not honoured by %s, slicing full body", self._url)
            return response.content[offset : offset + length]
        return response.content[:length]

    @retry(
        stop=stop_after_attempt(settings.http_retries),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
    def _request(self, method: str, headers: dict) -> httpx.Response:
        try:
            response = self._client.request(method, self._url, headers=headers)
        except httpx.TransportError as e:
            logger.warning("[source] %s %s failed: %s", method, self._url, e)
            raise DownloadError(502, f"Transport error fetching {self._url}: {e}") from e

        if response.status_code >= 400 and response.status_code != 416:
            raise DownloadError(response.status_code, f"HTTP {response.status_code} fetching {self._url}")
        return response

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def open_source(source) -> ByteSource:
    """
    Coerce the accepted input forms into a ByteSource.

    Accepts a ByteSource, a bytes-like buffer, an open file descriptor,
    a filesystem path, or an http(s) URL.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        return BytesSource(source)
    if isinstance(source, int):
        return FileSource(source)
    if isinstance(source, str) and source.startswith(("http://", "https://")):
        return HTTPSource(source)
    if isinstance(source, (str, os.PathLike)):
        return FileSource(source)
    if isinstance(source, ByteSource):
        return source
    raise TypeError(f"Unsupported byte source: {type(source).__name__}")


def read_exact(source: ByteSource, offset: int, length: int) -> bytes:
    """Read exactly ``length`` bytes or raise ShortReadError."""
    data = source.read(offset, length)
    if len(data) != length:
        raise ShortReadError(offset, length, len(data))
    return data
