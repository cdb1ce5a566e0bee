"""
Test cases for the TrioTCPStream connection handle.

Covers graceful handling of trio.ClosedResourceError and
trio.BrokenResourceError, and the terminal events the handle emits.
"""

from unittest.mock import AsyncMock, Mock

import pytest
import trio

from tcp_server.io.exceptions import (
    ConnectionTimeoutError,
)
from tcp_server.io.trio import TrioTCPStream


def make_stream(peer=("127.0.0.1", 8080), family=trio.socket.AF_INET):
    mock_stream = Mock()
    mock_stream.socket.family = family
    mock_stream.socket.getpeername.return_value = peer
    mock_stream.send_all = AsyncMock()
    mock_stream.receive_some = AsyncMock()
    mock_stream.aclose = AsyncMock()
    return mock_stream


def record(tcp_stream, *events):
    seen = []
    for event in events:
        tcp_stream.on(event, lambda *args, event=event: seen.append((event, args)))
    return seen


class TestTrioTCPStream:
    def test_remote_address_ipv4(self):
        tcp_stream = TrioTCPStream(make_stream(("10.1.2.3", 9000)))

        assert tcp_stream.get_remote_address() == ("10.1.2.3", 9000)
        assert tcp_stream.remote_address == "10.1.2.3"
        assert tcp_stream.remote_port == 9000
        assert tcp_stream.remote_family == "IPv4"

    def test_remote_address_ipv6(self):
        mock_stream = make_stream(("::1", 9000, 0, 0), trio.socket.AF_INET6)
        tcp_stream = TrioTCPStream(mock_stream)

        assert tcp_stream.get_remote_address() == ("::1", 9000)
        assert tcp_stream.remote_family == "IPv6"

    def test_remote_address_is_cached(self):
        mock_stream = make_stream()
        tcp_stream = TrioTCPStream(mock_stream)
        mock_stream.socket.getpeername.side_effect = OSError("closed")

        assert tcp_stream.get_remote_address() == ("127.0.0.1", 8080)
        mock_stream.socket.getpeername.assert_called_once()

    def test_remote_address_unavailable(self):
        mock_stream = make_stream()
        mock_stream.socket.getpeername.side_effect = OSError("not connected")
        tcp_stream = TrioTCPStream(mock_stream)

        assert tcp_stream.get_remote_address() is None
        assert tcp_stream.remote_port is None

    def test_set_timeout(self):
        tcp_stream = TrioTCPStream(make_stream(), timeout=5)
        assert tcp_stream.timeout == 5

        tcp_stream.set_timeout(0)
        assert tcp_stream.timeout is None

        with pytest.raises(ValueError):
            tcp_stream.set_timeout(-1)

    @pytest.mark.trio
    async def test_read_returns_data(self):
        mock_stream = make_stream()
        mock_stream.receive_some = AsyncMock(return_value=b"data")
        tcp_stream = TrioTCPStream(mock_stream)

        assert await tcp_stream.read(4) == b"data"
        mock_stream.receive_some.assert_called_once_with(4)

    @pytest.mark.trio
    async def test_read_zero_bytes(self):
        mock_stream = make_stream()
        tcp_stream = TrioTCPStream(mock_stream)

        assert await tcp_stream.read(0) == b""
        mock_stream.receive_some.assert_not_called()

    @pytest.mark.trio
    async def test_read_eof_emits_end_once(self):
        mock_stream = make_stream()
        mock_stream.receive_some = AsyncMock(return_value=b"")
        tcp_stream = TrioTCPStream(mock_stream)
        seen = record(tcp_stream, "end")

        assert await tcp_stream.read() == b""
        assert await tcp_stream.read() == b""
        assert seen == [("end", ())]

    @pytest.mark.trio
    async def test_read_handles_closed_resource_error(self):
        mock_stream = make_stream()
        mock_stream.receive_some = AsyncMock(
            side_effect=trio.ClosedResourceError("Socket closed")
        )
        tcp_stream = TrioTCPStream(mock_stream)
        seen = record(tcp_stream, "error", "end")

        assert await tcp_stream.read(100) == b""
        assert seen == []

    @pytest.mark.trio
    async def test_read_handles_broken_resource_error(self):
        error = trio.BrokenResourceError("Socket broken")
        mock_stream = make_stream()
        mock_stream.receive_some = AsyncMock(side_effect=error)
        tcp_stream = TrioTCPStream(mock_stream)
        seen = record(tcp_stream, "error")

        assert await tcp_stream.read(100) == b""
        assert seen == [("error", (error,))]

    @pytest.mark.trio
    async def test_read_timeout(self):
        async def hang(n=None):
            await trio.sleep_forever()

        mock_stream = make_stream()
        mock_stream.receive_some = AsyncMock(side_effect=hang)
        tcp_stream = TrioTCPStream(mock_stream, timeout=0.01)
        seen = record(tcp_stream, "timeout")

        with pytest.raises(ConnectionTimeoutError):
            await tcp_stream.read()
        assert seen == [("timeout", ())]
        assert not tcp_stream.closed

    @pytest.mark.trio
    async def test_read_other_exceptions_propagate(self):
        mock_stream = make_stream()
        mock_stream.receive_some = AsyncMock(side_effect=ValueError("Some other error"))
        tcp_stream = TrioTCPStream(mock_stream)

        with pytest.raises(ValueError, match="Some other error"):
            await tcp_stream.read(100)

    @pytest.mark.trio
    async def test_write_handles_closed_resource_error(self):
        mock_stream = make_stream()
        mock_stream.send_all = AsyncMock(
            side_effect=trio.ClosedResourceError("Socket closed")
        )
        tcp_stream = TrioTCPStream(mock_stream)

        await tcp_stream.write(b"test data")

        mock_stream.send_all.assert_called_once_with(b"test data")

    @pytest.mark.trio
    async def test_write_handles_broken_resource_error(self):
        mock_stream = make_stream()
        mock_stream.send_all = AsyncMock(
            side_effect=trio.BrokenResourceError("Socket broken")
        )
        tcp_stream = TrioTCPStream(mock_stream)
        seen = record(tcp_stream, "error")

        await tcp_stream.write(b"test data")

        assert len(seen) == 1
        assert isinstance(seen[0][1][0], trio.BrokenResourceError)

    @pytest.mark.trio
    async def test_write_other_exceptions_propagate(self):
        mock_stream = make_stream()
        mock_stream.send_all = AsyncMock(side_effect=ValueError("Some other error"))
        tcp_stream = TrioTCPStream(mock_stream)

        with pytest.raises(ValueError, match="Some other error"):
            await tcp_stream.write(b"test data")

    @pytest.mark.trio
    async def test_close_emits_close_once(self):
        mock_stream = make_stream()
        tcp_stream = TrioTCPStream(mock_stream)
        seen = record(tcp_stream, "close")

        await tcp_stream.close()
        await tcp_stream.close()
        await tcp_stream.destroy()

        assert tcp_stream.closed
        assert seen == [("close", (False,))]
        mock_stream.aclose.assert_called_once()

    @pytest.mark.trio
    async def test_close_after_error_reports_had_error(self):
        mock_stream = make_stream()
        mock_stream.receive_some = AsyncMock(side_effect=trio.BrokenResourceError())
        tcp_stream = TrioTCPStream(mock_stream)
        seen = record(tcp_stream, "close")

        await tcp_stream.read()
        await tcp_stream.destroy()

        assert seen == [("close", (True,))]

    @pytest.mark.trio
    async def test_wait_closed(self):
        tcp_stream = TrioTCPStream(make_stream())

        async with trio.open_nursery() as nursery:
            nursery.start_soon(tcp_stream.wait_closed)
            await trio.sleep(0)
            await tcp_stream.destroy()
