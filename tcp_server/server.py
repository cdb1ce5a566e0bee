from collections.abc import (
    AsyncIterator,
)
from contextlib import (
    asynccontextmanager,
)
import logging
import socket
import sys

from multiaddr import (
    Multiaddr,
)
import trio
from trio_typing import (
    TaskStatus,
)

from tcp_server.abc import (
    INotifee,
    IServer,
    ServerAddress,
)
from tcp_server.config import (
    ServerConfig,
)
from tcp_server.custom_types import (
    THandler,
)
from tcp_server.exceptions import (
    AlreadyListeningError,
    BindError,
    NotListeningError,
    OpenConnectionError,
    TCPServerError,
)
from tcp_server.io.trio import (
    FAMILY_NAMES,
    TrioTCPStream,
)
from tcp_server.registry import (
    ConnectionRegistry,
)
from tcp_server.utils.address import (
    multiaddr_from_host_port,
    normalize_host,
)

logger = logging.getLogger(__name__)

# Upper bound for closing a connection and notifying once its handler is done
CONNECTION_CLOSE_TIMEOUT = 1.0


def _wildcard_hosts() -> list[str]:
    # Dual-stack first, IPv4 only where IPv6 is missing or disabled
    if socket.has_ipv6:
        return ["::", "0.0.0.0"]
    return ["0.0.0.0"]


class TCPServer(IServer):
    """
    TCP server that keeps track of its open connections.

    ``handler`` is awaited once per accepted connection and the connection is
    closed when it returns. Without a handler nothing reads from a connection,
    so a peer hangup goes unnoticed until some task reads the EOF. Such a
    connection stays in :attr:`connections` until it is closed locally, a read
    times out, or :meth:`stop` runs.
    """

    handler: THandler | None
    config: ServerConfig
    registry: ConnectionRegistry
    notifees: list[INotifee]
    # `start` raises instead of returning when already listening
    strict: bool = False

    def __init__(
        self,
        config: ServerConfig | None = None,
        handler: THandler | None = None,
    ) -> None:
        self.config = config if config is not None else ServerConfig()
        self.handler = handler
        self.registry = ConnectionRegistry()
        self.notifees = []
        self._listener: trio.SocketListener | None = None
        self._nursery: trio.Nursery | None = None
        self._cancel_scope: trio.CancelScope | None = None
        self._serve_done: trio.Event | None = None
        self._lifecycle_lock = trio.Lock()
        self._handler_tasks: set[trio.lowlevel.Task] = set()

    @classmethod
    def create(
        cls,
        config: ServerConfig | None = None,
        handler: THandler | None = None,
    ) -> "TCPServer":
        return cls(config, handler)

    @property
    def listening(self) -> bool:
        return self._listener is not None

    @property
    def connections(self) -> list[TrioTCPStream]:
        """Currently open connections, as of the time of the call."""
        return self.registry.snapshot()

    def address(self) -> ServerAddress:
        if self._listener is None:
            raise NotListeningError()
        sock = self._listener.socket
        host, port = sock.getsockname()[:2]
        return ServerAddress(host, FAMILY_NAMES.get(sock.family, ""), port)

    @property
    def bind_address(self) -> str:
        """Interface address the server is bound to, wildcards as ``0.0.0.0``."""
        return normalize_host(self.address().address)

    @property
    def bind_port(self) -> int:
        return self.address().port

    def get_addrs(self) -> tuple[Multiaddr, ...]:
        if self._listener is None:
            return ()
        address = self.address()
        return (multiaddr_from_host_port(address.address, address.port),)

    async def start(
        self,
        port: int | None = None,
        hostname: str | None = None,
        backlog: int | None = None,
        *,
        nursery: trio.Nursery | None = None,
    ) -> None:
        """
        Bind and start accepting connections.

        :param nursery: nursery hosting the accept loop, defaults to the one
            opened by :meth:`run`
        :raise AlreadyListeningError: when listening and ``strict`` is set
        :raise BindError: when the address cannot be bound
        """
        async with self._lifecycle_lock:
            if self.listening:
                if self.strict:
                    raise AlreadyListeningError()
                return

            nursery = nursery if nursery is not None else self._nursery
            if nursery is None:
                raise TCPServerError(
                    "No nursery to run the server in, pass one to `start` "
                    "or use `TCPServer.run`"
                )

            if backlog is None:
                backlog = self.config.backlog

            listener = await self._open_listener(port or 0, hostname, backlog)
            serve_done = trio.Event()
            self._listener = listener
            self._serve_done = serve_done
            try:
                await nursery.start(self._serve, listener, serve_done)
            except BaseException:
                self._listener = None
                self._serve_done = None
                await trio.aclose_forcefully(listener)
                raise

            for maddr in self.get_addrs():
                logger.debug("successfully started listening on: %s", maddr)
                await self.notify_listen(maddr)

    async def stop(self) -> None:
        async with self._lifecycle_lock:
            await self.registry.destroy_all()

            if self._listener is None:
                return

            maddrs = self.get_addrs()
            listener, self._listener = self._listener, None
            serve_done, self._serve_done = self._serve_done, None
            cancel_scope, self._cancel_scope = self._cancel_scope, None

            # A handler calling `stop` runs inside the cancelled scope
            with trio.CancelScope(shield=True):
                if cancel_scope is not None:
                    cancel_scope.cancel()
                await listener.aclose()
                # The accept loop only finishes once every handler, the caller
                # included, has returned
                if (
                    serve_done is not None
                    and trio.lowlevel.current_task() not in self._handler_tasks
                ):
                    await serve_done.wait()

                for maddr in maddrs:
                    await self.notify_listen_close(maddr)
            logger.debug("server successfully closed")

    @asynccontextmanager
    async def run(
        self,
        port: int | None = None,
        hostname: str | None = None,
        backlog: int | None = None,
    ) -> AsyncIterator["TCPServer"]:
        """Start the server in its own nursery and stop it on exit."""
        async with trio.open_nursery() as nursery:
            self._nursery = nursery
            try:
                await self.start(port, hostname, backlog)
                yield self
            finally:
                with trio.CancelScope(shield=True):
                    await self.stop()
                self._nursery = None

    async def _open_listener(
        self, port: int, hostname: str | None, backlog: int
    ) -> trio.SocketListener:
        hosts = [hostname] if hostname is not None else _wildcard_hosts()
        *fallbacks, last = hosts
        for host in fallbacks:
            try:
                return await self._bind(host, port, backlog)
            except OSError as error:
                logger.debug("fail to listen on %s:%s: %s", host, port, error)

        try:
            return await self._bind(last, port, backlog)
        except OSError as error:
            logger.debug("fail to listen on %s:%s: %s", last, port, error)
            raise BindError(
                f"Failed to listen on {last}:{port}: {error}",
                host=hostname,
                port=port,
                errno=error.errno,
            ) from error

    async def _bind(self, host: str, port: int, backlog: int) -> trio.SocketListener:
        addrinfo = await trio.socket.getaddrinfo(
            host, port, type=trio.socket.SOCK_STREAM, flags=trio.socket.AI_PASSIVE
        )
        family, type_, proto, _, sockaddr = addrinfo[0]
        sock = trio.socket.socket(family, type_, proto)
        try:
            # Same as trio.open_tcp_listeners, SO_REUSEADDR is unsafe on Windows
            if sys.platform != "win32":
                sock.setsockopt(trio.socket.SOL_SOCKET, trio.socket.SO_REUSEADDR, 1)
            if not self.config.exclusive and hasattr(trio.socket, "SO_REUSEPORT"):
                sock.setsockopt(trio.socket.SOL_SOCKET, trio.socket.SO_REUSEPORT, 1)
            if family == trio.socket.AF_INET6:
                sock.setsockopt(
                    trio.socket.IPPROTO_IPV6,
                    trio.socket.IPV6_V6ONLY,
                    int(self.config.ipv6_only),
                )
            await sock.bind(sockaddr)
            sock.listen(backlog)
        except BaseException:
            sock.close()
            raise
        return trio.SocketListener(sock)

    async def _serve(
        self,
        listener: trio.SocketListener,
        serve_done: trio.Event,
        task_status: TaskStatus[list[trio.SocketListener]] = trio.TASK_STATUS_IGNORED,
    ) -> None:
        try:
            with trio.CancelScope() as cancel_scope:
                self._cancel_scope = cancel_scope
                await trio.serve_listeners(
                    self._handle, [listener], task_status=task_status
                )
        finally:
            serve_done.set()

    async def _handle(self, stream: trio.SocketStream) -> None:
        self._configure_socket(stream)
        conn = TrioTCPStream(stream, timeout=self.config.idle_timeout)
        self.registry.add(conn)
        logger.debug(
            "accepted connection from %s:%s", conn.remote_address, conn.remote_port
        )

        task = trio.lowlevel.current_task()
        self._handler_tasks.add(task)
        try:
            await self.notify_connected(conn)
            if self.handler is not None:
                await self.handler(conn)
            else:
                await conn.wait_closed()
        except Exception as error:
            logger.debug(
                f"Connection from {conn.remote_address}:{conn.remote_port} "
                f"failed: {error}"
            )
        finally:
            with trio.move_on_after(CONNECTION_CLOSE_TIMEOUT) as cancel_scope:
                cancel_scope.shield = True
                await conn.close()
                await self.notify_disconnected(conn)
            self._handler_tasks.discard(task)

    def _configure_socket(self, stream: trio.SocketStream) -> None:
        try:
            if self.config.keepalive:
                stream.setsockopt(trio.socket.SOL_SOCKET, trio.socket.SO_KEEPALIVE, 1)
            if not self.config.no_delay:
                stream.setsockopt(trio.socket.IPPROTO_TCP, trio.socket.TCP_NODELAY, 0)
        except OSError as error:
            logger.debug("failed to set socket options: %s", error)

    def register_notifee(self, notifee: INotifee) -> None:
        self.notifees.append(notifee)

    async def notify_listen(self, maddr: Multiaddr) -> None:
        async with trio.open_nursery() as nursery:
            for notifee in self.notifees:
                nursery.start_soon(notifee.listen, self, maddr)

    async def notify_listen_close(self, maddr: Multiaddr) -> None:
        async with trio.open_nursery() as nursery:
            for notifee in self.notifees:
                nursery.start_soon(notifee.listen_close, self, maddr)

    async def notify_connected(self, conn: TrioTCPStream) -> None:
        async with trio.open_nursery() as nursery:
            for notifee in self.notifees:
                nursery.start_soon(notifee.connected, self, conn)

    async def notify_disconnected(self, conn: TrioTCPStream) -> None:
        async with trio.open_nursery() as nursery:
            for notifee in self.notifees:
                nursery.start_soon(notifee.disconnected, self, conn)


class StrictTCPServer(TCPServer):
    """`TCPServer` whose `start` raises `AlreadyListeningError` when listening."""

    strict = True


def create_server(
    config: ServerConfig | None = None,
    handler: THandler | None = None,
) -> TCPServer:
    """Create a new `TCPServer` with the given options and connection handler."""
    return TCPServer(config, handler)


async def open_connection(
    host: str, port: int, timeout: float | None = None
) -> TrioTCPStream:
    """
    Dial a TCP server.

    :return: the connection, using the same handle type as accepted ones
    :raise OpenConnectionError: raised when failed to open connection
    """
    try:
        stream = await trio.open_tcp_stream(host, port)
    except OSError as error:
        raise OpenConnectionError(
            f"Failed to open TCP stream to {host}:{port}: {error}"
        ) from error
    return TrioTCPStream(stream, timeout=timeout)
