from multiaddr import (
    Multiaddr,
)

ANY_ADDRESS = "0.0.0.0"

WILDCARD_ADDRESSES = frozenset({"0.0.0.0", "::"})


def normalize_host(host: str) -> str:
    """Collapse the IPv4 and IPv6 wildcard addresses to ``0.0.0.0``."""
    if host in WILDCARD_ADDRESSES:
        return ANY_ADDRESS
    return host


def multiaddr_from_host_port(host: str, port: int) -> Multiaddr:
    protocol = "ip6" if ":" in host else "ip4"
    return Multiaddr(f"/{protocol}/{host}/tcp/{port}")
