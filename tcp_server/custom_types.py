from collections.abc import (
    Awaitable,
    Callable,
)

from tcp_server.io.trio import (
    TrioTCPStream,
)

THandler = Callable[[TrioTCPStream], Awaitable[None]]
