from dataclasses import (
    dataclass,
)

# Same default backlog as most server runtimes
DEFAULT_BACKLOG = 511


@dataclass
class ServerConfig:
    """
    Listen options forwarded to the socket layer.

    Attributes:
        exclusive: When False, ``SO_REUSEPORT`` is set on the listening socket so
                   other processes may bind the same port. Default: True
        ipv6_only: Set ``IPV6_V6ONLY`` on IPv6 listening sockets. Default: False
                   (dual-stack)
        backlog: Listen backlog used when ``start`` is not given one.
                 Default: 511
        idle_timeout: Initial read timeout in seconds for accepted connections.
                      None disables it. Default: None
        keepalive: Set ``SO_KEEPALIVE`` on accepted sockets. Default: False
        no_delay: Set ``TCP_NODELAY`` on accepted sockets. Default: True

    """

    exclusive: bool = True
    ipv6_only: bool = False
    backlog: int = DEFAULT_BACKLOG
    idle_timeout: float | None = None
    keepalive: bool = False
    no_delay: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.backlog < 0:
            raise ValueError("Backlog should be positive")

        if self.idle_timeout is not None and self.idle_timeout < 0:
            raise ValueError("Idle timeout should be positive")
