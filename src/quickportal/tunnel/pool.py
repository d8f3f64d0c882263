"""
Connection pool for a tunnel.

The pool starts relay connections on request and tracks them in an explicit
map keyed by a monotonic slot id. A slot is released as soon as its
connection reports ``dead`` or ``error``, so ``live_count`` always reflects
connections that still hold (or are dialing) a broker socket.

The pool does not replace dead connections itself; it re-emits ``dead`` and
leaves capacity decisions to its owner.
"""

import asyncio
import itertools
import ssl
from typing import Any

from quickportal.exceptions import TunnelClosedError
from quickportal.models.enums import CertReloadPolicy, EventType
from quickportal.models.tunnel import ClusterConfig
from quickportal.tunnel.connection import TunnelConnection
from quickportal.tunnel.events import EventEmitter
from quickportal.tunnel.tls import build_local_ssl_context
from quickportal.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)


class ConnectionPool(EventEmitter):
    """Owns the relay connections of one tunnel and forwards their events."""

    def __init__(self, cluster: ClusterConfig):
        """
        Initialize pool.

        Args:
            cluster: Configuration shared by every connection in the pool.
        """
        super().__init__()
        self.cluster = cluster
        self._slots: dict[int, TunnelConnection] = {}
        self._slot_ids = itertools.count(1)
        self._cached_ssl_context: ssl.SSLContext | None = None
        self._closed = False

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def connections(self) -> dict[int, TunnelConnection]:
        """Snapshot of the occupied slots."""
        return dict(self._slots)

    @property
    def live_count(self) -> int:
        return sum(1 for conn in self._slots.values() if conn.is_alive)

    @property
    def piping_count(self) -> int:
        return sum(1 for conn in self._slots.values() if conn.is_piping)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def open(self) -> int:
        """
        Start one relay connection in a new slot.

        Returns:
            The slot id assigned to the connection.

        Raises:
            TunnelClosedError: If the pool has been closed.
        """
        if self._closed:
            raise TunnelClosedError("connection pool is closed")

        slot_id = next(self._slot_ids)
        conn = TunnelConnection(
            slot_id,
            self.cluster,
            emit=lambda event, payload: self._on_connection_event(
                slot_id, event, payload
            ),
            ssl_context_factory=self._ssl_context,
        )
        self._slots[slot_id] = conn
        task = conn.start()
        task.add_done_callback(lambda t: self._on_connection_done(slot_id, t))
        logger.debug(f"Opened tunnel slot {slot_id} ({len(self._slots)} in pool)")
        return slot_id

    async def close(self) -> None:
        """Close every connection and refuse further ``open`` calls."""
        if self._closed:
            return
        self._closed = True

        conns = list(self._slots.values())
        logger.debug(f"Closing {len(conns)} tunnel connection(s)")
        await asyncio.gather(
            *(conn.close() for conn in conns), return_exceptions=True
        )
        self._slots.clear()

    # =========================================================================
    # Internal
    # =========================================================================

    def _ssl_context(self) -> ssl.SSLContext | None:
        if self.cluster.cert_reload == CertReloadPolicy.EACH_ATTEMPT:
            return build_local_ssl_context(self.cluster)
        if self._cached_ssl_context is None:
            self._cached_ssl_context = build_local_ssl_context(self.cluster)
        return self._cached_ssl_context

    def _on_connection_event(
        self, slot_id: int, event: EventType, payload: Any
    ) -> None:
        if event in (EventType.DEAD, EventType.ERROR):
            # Slot is released before handlers run
            self._slots.pop(slot_id, None)
        if event == EventType.ERROR:
            logger.error(f"[Tunnel slot {slot_id}] {payload}")
        self.emit(event, payload)

    def _on_connection_done(self, slot_id: int, task: asyncio.Task) -> None:
        self._slots.pop(slot_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"[Tunnel slot {slot_id}] Connection crashed: {exc}\n"
                f"{format_traceback(exc)}"
            )
