"""A byte stream carried by a single HTTP/2 stream."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import h2.connection
import h2.errors
import h2.exceptions

logger = logging.getLogger(__name__)


class _Writer(Protocol):
    def write(self, data: bytes) -> Any: ...


class H2StreamError(OSError):
    """Raised when sending on or shutting down the HTTP/2 stream fails."""


class H2Stream:
    """Reads and writes raw bytes over one stream of an HTTP/2 connection.

    Whoever drives the connection hands incoming DATA payloads to
    :meth:`receive_data` and signals the end of the remote side with
    :meth:`end_stream`. Outgoing frames are written to ``writer``.
    """

    def __init__(
        self, connection: h2.connection.H2Connection, stream_id: int, writer: _Writer
    ) -> None:
        self._connection = connection
        self._stream_id = stream_id
        self._writer = writer
        self._chunks: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._remain = b""
        self._ended = False

    def _flush(self) -> None:
        data = self._connection.data_to_send()
        if data:
            self._writer.write(data)

    def receive_data(self, data: bytes) -> None:
        """Queue a payload received from the peer for reading."""
        if data:
            self._chunks.put_nowait(bytes(data))

    def end_stream(self) -> None:
        """Mark that the peer will send no more data."""
        self._chunks.put_nowait(None)

    def write(self, data: bytes) -> int:
        """Send ``data`` on the stream and return the number of bytes sent."""
        payload = bytes(data)
        logger.debug("send %d bytes to h2 stream", len(payload))
        frame_size = self._connection.max_outbound_frame_size
        try:
            for start in range(0, len(payload), frame_size):
                self._connection.send_data(
                    self._stream_id, payload[start : start + frame_size], end_stream=False
                )
        except h2.exceptions.H2Error as exc:
            raise H2StreamError(f"H2Stream send error: {exc}") from exc
        self._flush()
        return len(payload)

    def shutdown(self) -> None:
        """Close the sending side of the stream."""
        try:
            self._connection.end_stream(self._stream_id)
        except h2.exceptions.H2Error as exc:
            raise H2StreamError(f"H2Stream shutdown error: {exc}") from exc
        self._flush()

    async def read(self, n: int) -> bytes:
        """Return up to ``n`` bytes; an empty result means end of stream."""
        if n <= 0:
            return b""
        if self._remain:
            taken, self._remain = self._remain[:n], self._remain[n:]
            return taken
        if self._ended:
            return b""

        chunk = await self._chunks.get()
        if chunk is None:
            self._ended = True
            return b""

        logger.debug("receive %d bytes from h2 stream", len(chunk))
        try:
            self._connection.acknowledge_received_data(len(chunk), self._stream_id)
        except h2.exceptions.H2Error:
            pass
        else:
            self._flush()

        taken, self._remain = chunk[:n], chunk[n:]
        return taken

    def close(self) -> None:
        """Reset the stream with CANCEL; a stream already closed is left alone."""
        try:
            self._connection.reset_stream(self._stream_id, h2.errors.ErrorCodes.CANCEL)
        except h2.exceptions.H2Error:
            pass
        self._flush()
        logger.debug("H2Stream closed")