import asyncio

import h2.config
import h2.connection
import h2.errors
import h2.events
import pytest

from tng.h2_stream import H2Stream, H2StreamError


class _Sink:
    def __init__(self):
        self.data = bytearray()

    def write(self, data):
        self.data += data

    def take(self):
        out = bytes(self.data)
        self.data.clear()
        return out


@pytest.fixture
def pair():
    client = h2.connection.H2Connection(h2.config.H2Configuration(client_side=True))
    server = h2.connection.H2Connection(
        h2.config.H2Configuration(client_side=False, header_encoding="utf-8")
    )
    client.initiate_connection()
    server.initiate_connection()
    server.receive_data(client.data_to_send())
    client.receive_data(server.data_to_send())
    server.receive_data(client.data_to_send())
    client.send_headers(
        1,
        [
            (":method", "POST"),
            (":scheme", "http"),
            (":authority", "example.com"),
            (":path", "/"),
        ],
    )
    server.receive_data(client.data_to_send())
    sink = _Sink()
    return client, server, sink


def _received(server, sink):
    events = server.receive_data(sink.take())
    data = b"".join(e.data for e in events if isinstance(e, h2.events.DataReceived))
    return events, data


def test_write_delivers_data(pair):
    client, server, sink = pair
    stream = H2Stream(client, 1, sink)
    assert stream.write(b"hello") == 5
    _, data = _received(server, sink)
    assert data == b"hello"


def test_large_write_is_split_into_frames(pair):
    client, server, sink = pair
    stream = H2Stream(client, 1, sink)
    payload = bytes(range(256)) * 150
    assert stream.write(payload) == len(payload)
    events, data = _received(server, sink)
    assert data == payload
    frames = [e for e in events if isinstance(e, h2.events.DataReceived)]
    assert all(len(e.data) <= client.max_outbound_frame_size for e in frames)


def test_shutdown_ends_stream(pair):
    client, server, sink = pair
    stream = H2Stream(client, 1, sink)
    stream.write(b"bye")
    stream.shutdown()
    events, data = _received(server, sink)
    assert data == b"bye"
    assert any(
        isinstance(e, h2.events.StreamEnded) and e.stream_id == 1 for e in events
    )


def test_write_after_shutdown_fails(pair):
    client, _, sink = pair
    stream = H2Stream(client, 1, sink)
    stream.shutdown()
    with pytest.raises(H2StreamError, match="H2Stream send error"):
        stream.write(b"late")


def test_double_shutdown_fails(pair):
    client, _, sink = pair
    stream = H2Stream(client, 1, sink)
    stream.shutdown()
    with pytest.raises(H2StreamError, match="H2Stream shutdown error"):
        stream.shutdown()


def test_close_resets_with_cancel(pair):
    client, server, sink = pair
    stream = H2Stream(client, 1, sink)
    stream.close()
    events, _ = _received(server, sink)
    resets = [e for e in events if isinstance(e, h2.events.StreamReset)]
    assert len(resets) == 1
    assert resets[0].error_code == h2.errors.ErrorCodes.CANCEL


@pytest.mark.asyncio
async def test_read_splits_chunk_by_size(pair):
    client, _, sink = pair
    stream = H2Stream(client, 1, sink)
    stream.receive_data(b"abcdef")
    assert await stream.read(4) == b"abcd"
    assert await stream.read(10) == b"ef"


@pytest.mark.asyncio
async def test_read_returns_empty_at_end(pair):
    client, _, sink = pair
    stream = H2Stream(client, 1, sink)
    stream.receive_data(b"xy")
    stream.end_stream()
    assert await stream.read(10) == b"xy"
    assert await stream.read(10) == b""
    assert await stream.read(10) == b""


@pytest.mark.asyncio
async def test_read_waits_for_data(pair):
    client, _, sink = pair
    stream = H2Stream(client, 1, sink)
    task = asyncio.ensure_future(stream.read(100))
    await asyncio.sleep(0)
    assert not task.done()
    stream.receive_data(b"later")
    assert await asyncio.wait_for(task, 1) == b"later"


@pytest.mark.asyncio
async def test_reads_preserve_order(pair):
    client, _, sink = pair
    stream = H2Stream(client, 1, sink)
    chunks = [b"one-", b"two-", b"three"]
    for chunk in chunks:
        stream.receive_data(chunk)
    stream.end_stream()
    collected = b""
    while piece := await stream.read(3):
        collected += piece
    assert collected == b"".join(chunks)