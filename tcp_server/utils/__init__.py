"""Utility functions for tcp_server."""

from tcp_server.utils.address import (
    ANY_ADDRESS,
    multiaddr_from_host_port,
    normalize_host,
)

__all__ = [
    "ANY_ADDRESS",
    "multiaddr_from_host_port",
    "normalize_host",
]
