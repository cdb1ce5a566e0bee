from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    TYPE_CHECKING,
    NamedTuple,
)

from multiaddr import (
    Multiaddr,
)
import trio

from tcp_server.io.trio import (
    TrioTCPStream,
)

if TYPE_CHECKING:
    from tcp_server.server import TCPServer  # noqa: F401


class ServerAddress(NamedTuple):
    address: str
    family: str
    port: int


class INotifee(ABC):
    @abstractmethod
    async def listen(self, server: "TCPServer", maddr: Multiaddr) -> None:
        """
        :param server: server that started listening
        :param maddr: multiaddress the server is listening on
        """

    @abstractmethod
    async def listen_close(self, server: "TCPServer", maddr: Multiaddr) -> None:
        """
        :param server: server that stopped listening
        :param maddr: multiaddress the server stopped listening on
        """

    @abstractmethod
    async def connected(self, server: "TCPServer", conn: TrioTCPStream) -> None:
        """
        :param server: server the connection was accepted on
        :param conn: connection that was accepted
        """

    @abstractmethod
    async def disconnected(self, server: "TCPServer", conn: TrioTCPStream) -> None:
        """
        :param server: server the connection was accepted on
        :param conn: connection that was closed
        """


class IServer(ABC):
    @property
    @abstractmethod
    def listening(self) -> bool: ...

    @abstractmethod
    async def start(
        self,
        port: int | None = None,
        hostname: str | None = None,
        backlog: int | None = None,
        *,
        nursery: trio.Nursery | None = None,
    ) -> None:
        """
        Bind the listening socket and start accepting connections.

        :param port: port to bind, ``None`` or ``0`` for an ephemeral port
        :param hostname: interface to bind, ``None`` for all interfaces
        :param backlog: listen backlog
        :param nursery: nursery that runs the accept loop
        """

    @abstractmethod
    async def stop(self) -> None:
        """Destroy every open connection and close the listening socket."""

    @abstractmethod
    def address(self) -> ServerAddress: ...

    @abstractmethod
    def get_addrs(self) -> tuple[Multiaddr, ...]:
        """
        Retrieve the addresses the server is listening on.

        :return: tuple of multiaddrs, empty when not listening
        """
