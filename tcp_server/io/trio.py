import logging
import math

import trio

from tcp_server.io.abc import (
    ReadWriteCloser,
)
from tcp_server.io.events import (
    EventEmitter,
)
from tcp_server.io.exceptions import (
    ConnectionTimeoutError,
)

logger = logging.getLogger(__name__)

FAMILY_NAMES = {
    trio.socket.AF_INET: "IPv4",
    trio.socket.AF_INET6: "IPv6",
}


class TrioTCPStream(ReadWriteCloser, EventEmitter):
    """
    An accepted (or dialed) TCP connection.

    Emits ``end`` when the peer half-closes, ``error`` with the exception when
    the socket breaks, ``timeout`` when a read sees no data within
    :attr:`timeout` seconds and ``close`` (with a ``had_error`` flag) exactly
    once when the connection is closed.
    """

    stream: trio.SocketStream
    # NOTE: Add both read and write lock to avoid `trio.BusyResourceError`
    read_lock: trio.Lock
    write_lock: trio.Lock
    timeout: float | None
    remote_family: str
    # Cached so the address survives connection teardown
    _cached_remote_address: tuple[str, int] | None

    def __init__(self, stream: trio.SocketStream, timeout: float | None = None) -> None:
        EventEmitter.__init__(self)
        self.stream = stream
        self.read_lock = trio.Lock()
        self.write_lock = trio.Lock()
        self.timeout = None
        self.set_timeout(timeout)
        self._closed = False
        self._ended = False
        self._had_error = False
        self._event_closed = trio.Event()
        self._cached_remote_address = None
        self.remote_family = FAMILY_NAMES.get(stream.socket.family, "")
        self.get_remote_address()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def remote_address(self) -> str | None:
        remote = self.get_remote_address()
        return remote[0] if remote is not None else None

    @property
    def remote_port(self) -> int | None:
        remote = self.get_remote_address()
        return remote[1] if remote is not None else None

    @property
    def local_address(self) -> str | None:
        local = self.get_local_address()
        return local[0] if local is not None else None

    @property
    def local_port(self) -> int | None:
        local = self.get_local_address()
        return local[1] if local is not None else None

    def set_timeout(self, timeout: float | None) -> None:
        """
        Set the idle timeout for reads, in seconds. ``None`` or ``0`` disables it.
        """
        if timeout is not None and timeout < 0:
            raise ValueError("Timeout should be positive")
        self.timeout = timeout or None

    async def read(self, n: int | None = None) -> bytes:
        async with self.read_lock:
            if n is not None and n == 0:
                return b""
            deadline = self.timeout if self.timeout is not None else math.inf
            try:
                with trio.move_on_after(deadline) as cancel_scope:
                    data = await self.stream.receive_some(n)
            except trio.ClosedResourceError as error:
                # Closed on our side, the close event already fired
                logger.debug("Read attempted on closed resource: %s", error)
                return b""
            except trio.BrokenResourceError as error:
                logger.debug("Read failed on broken resource: %s", error)
                self._fail(error)
                return b""

            if cancel_scope.cancelled_caught:
                self.emit("timeout")
                raise ConnectionTimeoutError(
                    f"No data received within {self.timeout} seconds"
                )

            if not data and not self._ended:
                self._ended = True
                self.emit("end")
            return data

    async def write(self, data: bytes) -> None:
        """Handle write operations gracefully when resources are closed."""
        async with self.write_lock:
            try:
                await self.stream.send_all(data)
            except trio.ClosedResourceError as error:
                logger.debug("Write attempted on closed resource: %s", error)
            except trio.BrokenResourceError as error:
                logger.debug("Write failed on broken resource: %s", error)
                self._fail(error)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.stream.aclose()
        finally:
            self._mark_closed()

    async def destroy(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await trio.aclose_forcefully(self.stream)
        finally:
            self._mark_closed()

    async def wait_closed(self) -> None:
        await self._event_closed.wait()

    def get_remote_address(self) -> tuple[str, int] | None:
        """
        Return the remote address as (host, port) tuple.

        The first successful lookup is cached; after teardown the socket may
        no longer report its peer.
        """
        if self._cached_remote_address is not None:
            return self._cached_remote_address

        try:
            remote_addr = self.stream.socket.getpeername()
        except OSError as e:
            logger.debug(
                "OSError getting remote address (socket may be closed/invalid): %s", e
            )
            return None

        # IPv6 peers come back as (host, port, flowinfo, scope_id)
        if not isinstance(remote_addr, tuple) or len(remote_addr) < 2:
            logger.debug("Invalid remote address format: %s", remote_addr)
            return None

        self._cached_remote_address = (str(remote_addr[0]), int(remote_addr[1]))
        return self._cached_remote_address

    def get_local_address(self) -> tuple[str, int] | None:
        try:
            local_addr = self.stream.socket.getsockname()
        except OSError:
            return None
        return str(local_addr[0]), int(local_addr[1])

    def _fail(self, error: BaseException) -> None:
        self._had_error = True
        self.emit("error", error)

    def _mark_closed(self) -> None:
        self._event_closed.set()
        self.emit("close", self._had_error)

    def __repr__(self) -> str:
        return (
            f"<TrioTCPStream {self.remote_address}:{self.remote_port} "
            f"{self.remote_family} closed={self._closed}>"
        )
