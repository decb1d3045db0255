# tng

Asyncio building blocks for a trusted network gateway: deciding which
destinations go through the tunnel, piping bytes between two streams,
sniffing the first HTTP request on a connection without losing its bytes,
carrying a byte stream over one HTTP/2 stream, and installing iptables
rules that are removed again on exit.

## Installation

```sh
pip install .
```

For running the test suite:

```sh
pip install ".[test]"
pytest
```

## Matching destinations (`tng.endpoint_matcher`)

```python
from tng.endpoint_matcher import EndpointFilter, EndpointMatcher, TngEndpoint

matcher = EndpointMatcher([EndpointFilter(domain="*.foo.com", port=9991)])
matcher.matches(TngEndpoint("www.foo.com", 9991))   # True
matcher.matches(TngEndpoint("www.bar.com", 9991))   # False
```

- `domain` follows virtual-host wildcard rules, handled by
  `EnvoyDomainMatcher`: `*` matches anything, `*.suffix` matches by suffix,
  `prefix.*` matches by prefix, anything else must match exactly. A `*` in
  the middle of a domain raises `ValueError`.
- `domain_regex` takes a regular expression, searched within the host.
  An invalid expression raises `ValueError`.
- Setting both `domain` and `domain_regex` on one filter raises `ValueError`.
- A filter with neither uses the pattern `*`, which is not a valid regular
  expression and so raises `ValueError`.
- A filter without a port matches port 80.
- An empty filter list matches every endpoint.

`EndpointFilter.from_dict` builds a filter from a configuration mapping
with the keys `domain`, `domain_regex` and `port`.

## Inspecting a connection (`tng.http_inspector`)

```python
from tng.http_inspector import inspect_stream

result = await inspect_stream(reader, writer, timeout=10)
if result.error is None:
    info = result.request_info   # RequestInfo(version, authority, path)
data = await result.reader.read(-1)  # starts with every byte already consumed
```

`inspect_stream` reads up to 4096 bytes and tries to recognise either an
HTTP/1.0 or 1.1 request (authority from an absolute-form target or the
`Host` header) or an HTTP/2 connection preface followed by a request
(authority from `:authority`). It never raises for a bad request: the
outcome is in `InspectionResult.request_info` or `InspectionResult.error`
(an `InspectionError`), including on timeout. `result.reader` is a
`ReplayReader` that returns the buffered bytes before reading on from the
original reader; `result.writer` is the writer passed in.

`parse_http1_request(data)` and `parse_http2_request(data)` work on raw
bytes directly. They return a `RequestInfo`, `None` when more data is
needed, or raise `InspectionError`. `RequestInfo.version` is an
`HttpVersion` (`HTTP1` or `HTTP2`); the path has any query string removed.

## HTTP/2 streams (`tng.h2_stream`)

`H2Stream(connection, stream_id, writer)` wraps one stream of an
`h2.connection.H2Connection`. The code driving the connection passes
incoming DATA payloads to `receive_data` and calls `end_stream` when the
peer is done. `await read(n)` returns up to `n` bytes (empty at end of
stream), `write(data)` sends data, `shutdown()` ends the sending side and
`close()` resets the stream with `CANCEL`. Send and shutdown failures raise
`H2StreamError`.

## Forwarding (`tng.forward`)

`await forward_stream(upstream, downstream)` copies data both ways between
two `(reader, writer)` pairs until both directions reach end of stream,
and returns `(bytes sent upstream, bytes sent downstream)`. An `OSError`
during copying is raised as `ForwardError`.

## iptables rules (`tng.iptables`)

Subclass `IptablesRuleGenerator` and return `(invoke_script,
revoke_script)` from `gen_script`. `await setup_iptables(generator)` runs
the invoke script with `sh -c` under `set -e` and returns an
`IptablesGuard`; use it as an async context manager, or call
`await guard.revoke()`, to run the revoke script once. If the invoke
script fails, the revoke script is run and `IptablesError` is raised.
Only one process per network namespace may set up rules: a second one
gets `IptablesError`. `execute_script(script)` runs a single script the
same way.

## Sockets (`tng.socket_opts`)

- `set_listener_common_sock_opts(sock)` enables TCP keep-alive (idle 30 s,
  interval 10 s, 5 probes).
- `set_listener_tproxy_sock_opts(sock)` sets `IP_TRANSPARENT`; it raises
  `OSError` on macOS.
- `await tcp_connect_with_so_mark(host, port, so_mark)` opens an IPv4
  connection carrying the given packet mark and returns
  `(reader, writer)`. `TCP_CONNECT_SO_MARK_DEFAULT` is `0x235`.

## What this package does not do

It provides no command-line program and no running gateway: there is no
configuration loader, listener, tunnel or TLS layer, and no remote
attestation or certificate handling. It does not generate iptables rules
itself; callers supply the scripts.