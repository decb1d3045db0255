"""Detection of the HTTP/1 or HTTP/2 request at the start of a byte stream."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlsplit

import h2.config
import h2.connection
import h2.events
import h2.exceptions

logger = logging.getLogger(__name__)

HTTP_INSPECT_TIMEOUT = 10.0
BUFFER_CAPACITY = 4096
MAX_HEADERS = 16

_H2_PREFACE = b"PRI * HTTP/2.0\r\n\r\nSM\r\n\r\n"
_TCHARS = frozenset(
    b"!#$%&'*+-.^_`|~0123456789"
    b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
)
_AUTHORITY_FORBIDDEN = frozenset(" \t/?#\\\"<>{}|^`")


class HttpVersion(enum.Enum):
    HTTP1 = "http1"
    HTTP2 = "http2"


@dataclass(frozen=True)
class RequestInfo:
    """The version, authority and path of the first request on a stream."""

    version: HttpVersion
    authority: str
    path: str


class InspectionError(Exception):
    """Raised when no HTTP request can be recognised."""


class ReplayReader:
    """Replays already consumed bytes before reading on from ``reader``."""

    def __init__(self, prefix: bytes, reader: asyncio.StreamReader) -> None:
        self._prefix = bytes(prefix)
        self._reader = reader

    async def read(self, n: int = -1) -> bytes:
        """Read up to ``n`` bytes, or everything until EOF when ``n`` is negative."""
        if n < 0:
            prefix, self._prefix = self._prefix, b""
            return prefix + await self._reader.read(-1)
        if self._prefix:
            taken, self._prefix = self._prefix[:n], self._prefix[n:]
            return taken
        return await self._reader.read(n)


@dataclass
class InspectionResult:
    """The stream, unchanged for its reader, and what inspection found."""

    reader: ReplayReader
    writer: Any
    request_info: RequestInfo | None
    error: InspectionError | None


def _validate_authority(value: str, message: str) -> str:
    if (
        not value
        or not value.isascii()
        or any(c in _AUTHORITY_FORBIDDEN or ord(c) < 0x20 or ord(c) == 0x7F for c in value)
    ):
        raise InspectionError(message)
    return value


def _split_target(target: str) -> tuple[str | None, str]:
    if target.startswith("/"):
        return None, target.partition("?")[0]
    if target == "*":
        return None, "*"
    message = "Invalid path in http1 request"
    if "://" in target:
        parts = urlsplit(target)
        if not parts.scheme or not parts.netloc:
            raise InspectionError(message)
        return _validate_authority(parts.netloc, message), parts.path or "/"
    return _validate_authority(target, message), ""


def _strip_cr(line: bytes) -> bytes:
    return line[:-1] if line.endswith(b"\r") else line


def _parse_headers(rest: bytes) -> tuple[list[tuple[str, str]], bool]:
    headers: list[tuple[str, str]] = []
    pos = 0
    while True:
        end = rest.find(b"\n", pos)
        if end < 0:
            return headers, False
        line = _strip_cr(rest[pos:end])
        pos = end + 1
        if not line:
            return headers, True
        name, sep, value = line.partition(b":")
        if not sep or not name or any(b not in _TCHARS for b in name):
            raise InspectionError("Failed to parse http1 request: invalid header")
        if len(headers) >= MAX_HEADERS:
            raise InspectionError("Failed to parse http1 request: too many headers")
        headers.append((name.decode("ascii"), value.strip(b" \t").decode("latin-1")))


def parse_http1_request(data: bytes) -> RequestInfo | None:
    """Parse the start of an HTTP/1 request; ``None`` means more data is needed."""
    line_end = data.find(b"\n")
    line = data if line_end < 0 else data[:line_end]
    space = line.find(b" ")
    method = line if space < 0 else line[:space]
    if space == 0 or any(b not in _TCHARS for b in method):
        raise InspectionError("Failed to parse http1 request: invalid token")
    if line_end < 0:
        return None

    parts = _strip_cr(line).split(b" ")
    if len(parts) != 3 or not parts[0] or not parts[1]:
        raise InspectionError("Failed to parse http1 request: invalid request line")
    if parts[2] not in (b"HTTP/1.0", b"HTTP/1.1"):
        raise InspectionError("Failed to parse http1 request: invalid HTTP version")
    try:
        target = parts[1].decode("ascii")
    except UnicodeDecodeError as exc:
        raise InspectionError("Invalid path in http1 request") from exc

    authority, path = _split_target(target)
    if authority is not None:
        return RequestInfo(HttpVersion.HTTP1, authority, path)

    headers, complete = _parse_headers(data[line_end + 1 :])
    host = next((value for name, value in headers if name.lower() == "host"), None)
    if host is not None:
        authority = _validate_authority(host, "Invalid host header in http1 request")
        return RequestInfo(HttpVersion.HTTP1, authority, path)
    if complete:
        raise InspectionError("Host header is missing in http1 request")
    return None


def parse_http2_request(data: bytes) -> RequestInfo | None:
    """Parse the start of an HTTP/2 connection; ``None`` means more data is needed."""
    if not _H2_PREFACE.startswith(data[: len(_H2_PREFACE)]):
        raise InspectionError("Failed to parse http2 request: invalid connection preface")
    if len(data) < len(_H2_PREFACE):
        return None

    connection = h2.connection.H2Connection(
        h2.config.H2Configuration(client_side=False, header_encoding="utf-8")
    )
    connection.initiate_connection()
    try:
        events = connection.receive_data(bytes(data))
    except h2.exceptions.H2Error as exc:
        raise InspectionError(f"Failed to parse http2 request: {exc}") from exc

    for event in events:
        if isinstance(event, h2.events.RequestReceived):
            headers = dict(event.headers or [])
            authority = headers.get(":authority")
            if authority is None:
                raise InspectionError("Missing :authority header in request")
            authority = _validate_authority(authority, "Invalid :authority header in request")
            path = headers.get(":path", "").partition("?")[0]
            return RequestInfo(HttpVersion.HTTP2, authority, path)
        if isinstance(event, h2.events.ConnectionTerminated):
            raise InspectionError("No http2 request received from the stream")
    return None


class _Attempt:
    def __init__(self, parser: Callable[[bytes], RequestInfo | None]) -> None:
        self.parser = parser
        self.info: RequestInfo | None = None
        self.error: InspectionError | None = None

    @property
    def decided(self) -> bool:
        return self.info is not None or self.error is not None

    def feed(self, data: bytes) -> None:
        if self.decided:
            return
        try:
            self.info = self.parser(data)
        except InspectionError as exc:
            self.error = exc


async def _read_until_decided(
    reader: asyncio.StreamReader, buffer: bytearray, attempts: list[_Attempt]
) -> bool:
    """Read into ``buffer`` until a parser decides; return whether EOF was hit."""
    while len(buffer) < BUFFER_CAPACITY:
        chunk = await reader.read(BUFFER_CAPACITY - len(buffer))
        if not chunk:
            return True
        buffer += chunk
        data = bytes(buffer)
        for attempt in attempts:
            attempt.feed(data)
        if any(a.info is not None for a in attempts) or all(a.decided for a in attempts):
            return False
    return False


async def inspect_stream(
    reader: asyncio.StreamReader,
    writer: Any = None,
    timeout: float | None = HTTP_INSPECT_TIMEOUT,
) -> InspectionResult:
    """Find the first HTTP request on a stream without losing any of its bytes."""
    buffer = bytearray()
    http1 = _Attempt(parse_http1_request)
    http2 = _Attempt(parse_http2_request)
    info: RequestInfo | None = None
    error: InspectionError | None = None

    try:
        eof = await asyncio.wait_for(
            _read_until_decided(reader, buffer, [http1, http2]), timeout
        )
    except asyncio.TimeoutError:
        error = InspectionError("Timeout waiting for http1 or http2 request")
    except OSError as exc:
        error = InspectionError(f"Failed to read from stream: {exc}")
    else:
        if not http1.decided:
            http1.error = InspectionError(
                "The stream ended before a complete http1 request was received"
                if eof
                else "Buffer is full, cannot parse http1 request because the request "
                f"is larger than {BUFFER_CAPACITY}"
            )
        if not http2.decided:
            http2.error = InspectionError("No http2 request received from the stream")

        if http1.info is not None:
            info = http1.info
        elif http2.info is not None:
            info = http2.info
        else:
            error = InspectionError(
                "Failed to parse as both http1 and http2 request. "
                f"HTTP1 error: {http1.error}, HTTP2 error: {http2.error}"
            )

    logger.debug("http inspection finished: info=%r error=%s", info, error)
    return InspectionResult(ReplayReader(bytes(buffer), reader), writer, info, error)