from tcp_server.exceptions import (
    BaseTCPServerError,
)


class IOException(BaseTCPServerError):
    pass


class ConnectionTimeoutError(IOException):
    """No data arrived within the connection's idle timeout."""
