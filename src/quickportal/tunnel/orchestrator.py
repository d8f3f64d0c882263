"""
Tunnel orchestration.

``create_tunnel`` asks the broker for an assignment once, then keeps a pool
of ``max_conn_count`` relay connections running. Whenever the pool reports a
dead connection the tunnel immediately opens a replacement with the same
configuration, until the tunnel is closed.
"""

import asyncio
from typing import Any

from quickportal.api.assignment import AssignmentClient
from quickportal.models.enums import EventType
from quickportal.models.tunnel import ClusterConfig, TunnelAssignment, TunnelOptions
from quickportal.tunnel.events import EventEmitter
from quickportal.tunnel.pool import ConnectionPool
from quickportal.utils.logger import get_logger

logger = get_logger(__name__)


class Tunnel(EventEmitter):
    """
    Public handle for an open tunnel.

    Events:
        request: RequestInfo seen on inbound traffic (display only)
        error: the broker refused a relay connection
        url: the first relay connection opened (payload: public URL)
        close: the tunnel was closed
    """

    def __init__(self, assignment: TunnelAssignment, cluster: ClusterConfig):
        super().__init__()
        self.assignment = assignment
        self.cluster = cluster
        self.pool = ConnectionPool(cluster)
        self._closed = False
        self._closed_event = asyncio.Event()

        self.pool.on(EventType.DEAD, self._on_dead)
        self.pool.on(EventType.REQUEST, self._on_request)
        self.pool.on(EventType.ERROR, self._on_error)
        self.pool.once(EventType.OPEN, self._on_first_open)

    @property
    def client_id(self) -> str:
        return self.assignment.id

    @property
    def url(self) -> str:
        return self.assignment.url

    @property
    def cached_url(self) -> str | None:
        return self.assignment.cached_url

    @property
    def max_conn_count(self) -> int:
        return self.assignment.max_conn_count

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Open the initial ``max_conn_count`` relay connections."""
        logger.info(
            f"Opening {self.max_conn_count} connection(s) for {self.url} "
            f"-> {self.cluster.local_scheme}://{self.cluster.local_host}:"
            f"{self.cluster.local_port}"
        )
        for _ in range(self.max_conn_count):
            self.pool.open()

    async def close(self) -> None:
        """Close every relay connection and stop replacing them. Idempotent."""
        if self._closed:
            return
        self._closed = True
        logger.info(f"Closing tunnel {self.url}")

        await self.pool.close()
        self.emit(EventType.CLOSE)
        self.end_streams()
        self._closed_event.set()

    async def wait_closed(self) -> None:
        """Block until ``close()`` has completed."""
        await self._closed_event.wait()

    async def __aenter__(self) -> "Tunnel":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # =========================================================================
    # Pool Events
    # =========================================================================

    def _on_dead(self, slot_id: Any) -> None:
        if self._closed:
            return
        new_slot = self.pool.open()
        logger.debug(f"Connection in slot {slot_id} died, replaced by slot {new_slot}")

    def _on_request(self, info: Any) -> None:
        self.emit(EventType.REQUEST, info)

    def _on_error(self, error: Any) -> None:
        self.emit(EventType.ERROR, error)

    def _on_first_open(self, slot_id: Any) -> None:
        self.emit(EventType.URL, self.url)


async def create_tunnel(
    options: TunnelOptions | None = None,
    *,
    assignment_client: AssignmentClient | None = None,
    **kwargs: Any,
) -> Tunnel:
    """
    Request a tunnel from the broker and start relaying to the local port.

    Args:
        options: Validated options; built from ``kwargs`` when omitted.
        assignment_client: Broker client (defaults to one for ``options.host``).
        **kwargs: TunnelOptions fields, e.g. ``port=8000, subdomain="foo"``.

    Returns:
        A started Tunnel.

    Raises:
        pydantic.ValidationError: If the options are invalid.
        AssignmentError: If the broker is unreachable or rejects the request.
    """
    if options is None:
        options = TunnelOptions(**kwargs)

    client = assignment_client or AssignmentClient(options.host)
    assignment = await client.request_assignment(options.subdomain)

    cluster = ClusterConfig.from_assignment(assignment, options)
    tunnel = Tunnel(assignment, cluster)
    tunnel.start()
    return tunnel
