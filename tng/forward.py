"""Bidirectional forwarding of data between two asyncio streams."""

from __future__ import annotations

import asyncio
import logging
from typing import Tuple

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024

StreamPair = Tuple[asyncio.StreamReader, asyncio.StreamWriter]


class ForwardError(Exception):
    """Raised when copying between the two streams fails."""


async def _copy(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> int:
    total = 0
    while chunk := await reader.read(_CHUNK_SIZE):
        writer.write(chunk)
        await writer.drain()
        total += len(chunk)
    if writer.can_write_eof():
        writer.write_eof()
    return total


async def forward_stream(upstream: StreamPair, downstream: StreamPair) -> tuple[int, int]:
    """Copy data both ways until both sides reach end of stream.

    ``upstream`` and ``downstream`` are ``(reader, writer)`` pairs. Returns the
    number of bytes sent from downstream to upstream and from upstream to
    downstream.
    """
    up_reader, up_writer = upstream
    down_reader, down_writer = downstream

    logger.debug("Starting to transmit application data")
    tasks = [
        asyncio.ensure_future(_copy(down_reader, up_writer)),
        asyncio.ensure_future(_copy(up_reader, down_writer)),
    ]
    try:
        tx_bytes, rx_bytes = await asyncio.gather(*tasks)
    except OSError as exc:
        for task in tasks:
            task.cancel()
        raise ForwardError(
            "Failed during copy streams bidirectionally between downstream and upstream"
        ) from exc
    except BaseException:
        for task in tasks:
            task.cancel()
        raise

    logger.debug(
        "Finished transmit application data tx_bytes=%d rx_bytes=%d", tx_bytes, rx_bytes
    )
    return tx_bytes, rx_bytes