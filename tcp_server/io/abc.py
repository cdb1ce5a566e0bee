from abc import (
    ABC,
    abstractmethod,
)


class Closer(ABC):
    @abstractmethod
    async def close(self) -> None: ...


class Reader(ABC):
    @abstractmethod
    async def read(self, n: int | None = None) -> bytes: ...


class Writer(ABC):
    @abstractmethod
    async def write(self, data: bytes) -> None: ...


class ReadWriteCloser(Reader, Writer, Closer):
    @abstractmethod
    async def destroy(self) -> None:
        """Close the connection without waiting for pending data."""

    @abstractmethod
    def get_remote_address(self) -> tuple[str, int] | None:
        """
        Return the remote address of the connected peer.

        :return: A tuple of (host, port) or None if not available
        """
        ...
