import hashlib
import logging

from tcp_server.io.trio import (
    TrioTCPStream,
)

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = ("close", "end", "error", "timeout")


def connection_id(conn: TrioTCPStream) -> str:
    """
    Fingerprint a connection by its remote address, port and address family.

    Connections sharing all three collide to the same id.
    """
    digest = hashlib.sha512()
    digest.update((conn.remote_address or "").encode())
    digest.update(str(conn.remote_port or 0).encode())
    digest.update((conn.remote_family or "").encode())
    return digest.hexdigest()


class ConnectionRegistry:
    """Currently open connections of a single server, keyed by `connection_id`."""

    _connections: dict[str, TrioTCPStream]

    def __init__(self) -> None:
        self._connections = {}

    def add(self, conn: TrioTCPStream) -> str:
        conn_id = connection_id(conn)

        def _remove(*_: object) -> None:
            self.remove(conn_id)

        for event in TERMINAL_EVENTS:
            conn.on(event, _remove)

        if conn_id in self._connections:
            logger.debug("connection id collision, replacing %s", conn_id[:16])
        self._connections[conn_id] = conn
        return conn_id

    def remove(self, conn_id: str) -> None:
        if self._connections.pop(conn_id, None) is not None:
            logger.debug("removed connection %s", conn_id[:16])

    def get(self, conn_id: str) -> TrioTCPStream | None:
        return self._connections.get(conn_id)

    def snapshot(self) -> list[TrioTCPStream]:
        return list(self._connections.values())

    async def destroy_all(self) -> None:
        for conn in self.snapshot():
            if conn.closed:
                continue
            try:
                await conn.destroy()
            except Exception as e:
                logger.warning(f"Error destroying connection {conn!r}: {e}")

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, conn_id: object) -> bool:
        return conn_id in self._connections
