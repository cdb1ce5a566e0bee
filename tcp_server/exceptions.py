class BaseTCPServerError(Exception):
    pass


class TCPServerError(BaseTCPServerError):
    """Raised when the server is used in a way its current state does not allow."""


class NotListeningError(TCPServerError):
    """Raised when the bound address is requested before a successful start."""

    def __init__(self, message: str = "Server not running!") -> None:
        super().__init__(message)


class AlreadyListeningError(TCPServerError):
    def __init__(self, message: str = "Server is already listening") -> None:
        super().__init__(message)


class BindError(TCPServerError):
    """Raised when the listening socket cannot acquire the requested address."""

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
        errno: int | None = None,
    ) -> None:
        super().__init__(message)
        self.host = host
        self.port = port
        self.errno = errno


class OpenConnectionError(BaseTCPServerError):
    pass
