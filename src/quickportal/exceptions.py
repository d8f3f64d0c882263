"""Tunnel-related exception classes."""


class TunnelError(Exception):
    """Base exception for tunnel operations."""

    pass


class AssignmentError(TunnelError):
    """The broker could not be reached or rejected the tunnel request."""

    def __init__(
        self, message: str, status_code: int | None = None, detail: str | None = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class RemoteConnectError(TunnelError):
    """A relay socket to the broker could not be established."""

    def __init__(
        self, host: str, port: int, reason: str, message: str | None = None
    ):
        self.host = host
        self.port = port
        self.reason = reason
        super().__init__(message or f"cannot connect to {host}:{port}: {reason}")


class RemoteRefusedError(RemoteConnectError):
    """The broker refused a relay socket; the tunnel cannot be established."""

    def __init__(self, host: str, port: int):
        super().__init__(
            host,
            port,
            "connection refused",
            message=f"connection refused: {host}:{port} (check your firewall settings)",
        )


class TunnelClosedError(TunnelError):
    """Operation attempted on a pool or tunnel that was already closed."""

    pass
