"""Socket option helpers for listeners and marked outgoing connections."""

from __future__ import annotations

import asyncio
import socket
import sys

TCP_CONNECT_SO_MARK_DEFAULT = 0x235  # 565

_IS_MACOS = sys.platform == "darwin"
_IP_TRANSPARENT = getattr(socket, "IP_TRANSPARENT", 19)
_SO_MARK = getattr(socket, "SO_MARK", 36)


def set_listener_common_sock_opts(sock: socket.socket) -> None:
    """Enable TCP keepalive with the listener's probe timings."""
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    if not _IS_MACOS:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, 30)
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, 10)
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPCNT, 5)


def set_listener_tproxy_sock_opts(sock: socket.socket) -> None:
    """Mark a listener as transparent so it accepts redirected traffic."""
    if _IS_MACOS:
        raise OSError("transparent proxy sockets are not supported on this platform")
    sock.setsockopt(socket.SOL_IP, _IP_TRANSPARENT, 1)


def _set_mark(sock: socket.socket, so_mark: int) -> None:
    if _IS_MACOS:
        return
    sock.setsockopt(socket.SOL_SOCKET, _SO_MARK, so_mark)


async def tcp_connect_with_so_mark(
    host: str, port: int, so_mark: int
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open an IPv4 TCP connection whose packets carry ``so_mark``.

    Every resolved address is tried in order; the error of the last attempt
    is raised if none succeeds.
    """
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)

    last_error: OSError | None = None
    for *_, sockaddr in infos:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setblocking(False)
            _set_mark(sock, so_mark)  # keeps the connection out of iptables redirects
        except BaseException:
            sock.close()
            raise
        try:
            await loop.sock_connect(sock, sockaddr)
        except OSError as exc:
            sock.close()
            last_error = exc
            continue
        except BaseException:
            sock.close()
            raise
        return await asyncio.open_connection(sock=sock)

    if last_error is None:
        raise OSError("No address resolved")
    raise last_error