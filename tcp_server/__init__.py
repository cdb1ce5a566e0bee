"""TCP server with connection tracking, built on trio."""

from importlib.metadata import version as __version

from tcp_server.abc import (
    INotifee,
    IServer,
    ServerAddress,
)
from tcp_server.config import (
    DEFAULT_BACKLOG,
    ServerConfig,
)
from tcp_server.exceptions import (
    AlreadyListeningError,
    BaseTCPServerError,
    BindError,
    NotListeningError,
    OpenConnectionError,
    TCPServerError,
)
from tcp_server.io.trio import (
    TrioTCPStream,
)
from tcp_server.registry import (
    ConnectionRegistry,
    connection_id,
)
from tcp_server.server import (
    StrictTCPServer,
    TCPServer,
    create_server,
    open_connection,
)
from tcp_server.utils.logging import (
    setup_logging,
)

# Initialize logging configuration
setup_logging()

__version__ = __version("tcp-server")

__all__ = [
    "DEFAULT_BACKLOG",
    "AlreadyListeningError",
    "BaseTCPServerError",
    "BindError",
    "ConnectionRegistry",
    "INotifee",
    "IServer",
    "NotListeningError",
    "OpenConnectionError",
    "ServerAddress",
    "ServerConfig",
    "StrictTCPServer",
    "TCPServer",
    "TCPServerError",
    "TrioTCPStream",
    "connection_id",
    "create_server",
    "open_connection",
    "setup_logging",
]
