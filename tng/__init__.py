"""Asyncio utilities for a trusted network gateway: endpoint matching, forwarding, HTTP inspection, HTTP/2 streams, iptables and socket options."""

__version__ = "2.2.1"

__all__ = [
    "endpoint_matcher",
    "forward",
    "h2_stream",
    "http_inspector",
    "iptables",
    "socket_opts",
]