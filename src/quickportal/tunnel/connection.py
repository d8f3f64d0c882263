"""
A single relay unit: one socket to the broker paired with one socket to the
local target.

Lifecycle:
    1. Dial the broker. A refusal is reported as an ``error`` event and the
       connection is abandoned (no local socket is ever opened). Any other
       dial failure ends the connection like a remote close.
    2. Pause the remote socket and dial the local target. Refused/reset is
       retried after a fixed delay on the same remote socket; any other
       failure closes the remote socket.
    3. Resume the remote socket and relay both directions until the broker
       closes its side.

Every connection that is not refused by the broker emits ``dead`` exactly
once when it ends, which is the pool owner's cue to open a replacement.
"""

import asyncio
import re
import socket
import ssl
from collections.abc import Callable
from typing import Any

from quickportal.config import config as client_config
from quickportal.exceptions import RemoteRefusedError
from quickportal.models.enums import ConnectionState, EventType
from quickportal.models.tunnel import ClusterConfig, RequestInfo
from quickportal.tunnel.header_rewriter import HeaderHostRewriter
from quickportal.tunnel.relay import relay_stream
from quickportal.tunnel.tls import build_local_ssl_context
from quickportal.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)

# Local connect errors worth retrying; anything else ends the connection
TRANSIENT_LOCAL_ERRORS = (ConnectionRefusedError, ConnectionResetError)

REQUEST_LINE_RE = re.compile(rb"^(\w+) (\S+)")

EmitFn = Callable[[EventType, Any], None]


def parse_request_line(data: bytes) -> RequestInfo | None:
    """
    Best-effort ``<METHOD> <PATH>`` match on the start of a chunk.

    Only used for display. Chunks that do not start a request return None.
    """
    match = REQUEST_LINE_RE.match(data)
    if not match:
        return None
    return RequestInfo(
        method=match.group(1).decode("ascii", errors="replace"),
        path=match.group(2).decode("utf-8", errors="replace"),
    )


class TunnelConnection:
    """Pairs one broker socket with one local socket and relays between them."""

    def __init__(
        self,
        slot_id: int,
        cluster: ClusterConfig,
        emit: EmitFn,
        ssl_context_factory: Callable[[], ssl.SSLContext | None] | None = None,
    ):
        """
        Initialize a connection (nothing is dialed until ``start``).

        Args:
            slot_id: Pool slot this connection occupies.
            cluster: Shared, read-only pool configuration.
            emit: Callback receiving (event, payload) for open/request/dead/error.
            ssl_context_factory: Returns the TLS context for each local attempt.
        """
        self.slot_id = slot_id
        self.cluster = cluster
        self.state = ConnectionState.CONNECTING_REMOTE
        self.local_attempts = 0

        self._emit = emit
        self._ssl_context_factory = ssl_context_factory or (
            lambda: build_local_ssl_context(cluster)
        )
        self._remote_reader: asyncio.StreamReader | None = None
        self._remote_writer: asyncio.StreamWriter | None = None
        self._local_reader: asyncio.StreamReader | None = None
        self._local_writer: asyncio.StreamWriter | None = None
        self._notify_dead = False
        self._task: asyncio.Task | None = None
        self._log_prefix = f"[Tunnel slot {slot_id}]"

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def is_alive(self) -> bool:
        return self.state != ConnectionState.DEAD

    @property
    def is_piping(self) -> bool:
        return self.state == ConnectionState.PIPING

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    def start(self) -> asyncio.Task:
        """Run the connection lifecycle as a background task."""
        self._task = asyncio.create_task(
            self.run(), name=f"tunnel-slot-{self.slot_id}"
        )
        return self._task

    async def run(self) -> None:
        """Drive the connection from dialing the broker until it is dead."""
        try:
            if not await self._connect_remote():
                return
            self._emit(EventType.OPEN, self.slot_id)
            if not await self._connect_local():
                return
            await self._pipe()
        finally:
            await self._teardown()

    async def close(self) -> None:
        """
        Close the remote socket and wait for the connection to wind down.

        Closing the remote side cascades to the local side through the normal
        teardown path.
        """
        if self._remote_writer is not None:
            self._remote_writer.close()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)

    # =========================================================================
    # Remote Side
    # =========================================================================

    async def _connect_remote(self) -> bool:
        host = self.cluster.remote_address
        port = self.cluster.remote_port
        logger.debug(
            f"{self._log_prefix} Establishing tunnel "
            f"{self.cluster.local_scheme}://{self.cluster.local_host}:"
            f"{self.cluster.local_port} <> {host}:{port}"
        )

        try:
            self._remote_reader, self._remote_writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self.cluster.remote_connect_timeout,
            )
        except ConnectionRefusedError:
            logger.warning(
                f"{self._log_prefix} Remote connection refused by {host}:{port}"
            )
            self.state = ConnectionState.DEAD
            self._emit(EventType.ERROR, RemoteRefusedError(host, port))
            return False
        except asyncio.TimeoutError:
            logger.warning(f"{self._log_prefix} Timeout connecting to {host}:{port}")
            self._notify_dead = True
            return False
        except OSError as e:
            logger.warning(f"{self._log_prefix} Remote connection error: {e}")
            self._notify_dead = True
            return False

        self._notify_dead = True
        self.state = ConnectionState.REMOTE_OPEN
        self._enable_keepalive(self._remote_writer)
        logger.debug(f"{self._log_prefix} Remote connection open")
        return True

    @staticmethod
    def _enable_keepalive(writer: asyncio.StreamWriter) -> None:
        sock = writer.get_extra_info("socket")
        if sock is not None:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)

    def _pause_remote(self) -> None:
        self._remote_writer.transport.pause_reading()

    def _resume_remote(self) -> None:
        self._remote_writer.transport.resume_reading()

    # =========================================================================
    # Local Side
    # =========================================================================

    async def _connect_local(self) -> bool:
        """
        Dial the local target, retrying refused/reset with a fixed delay.

        Returns:
            True once a local socket is connected, False if the connection
            must end (remote gone or non-retryable local error).
        """
        self.state = ConnectionState.CONNECTING_LOCAL
        self._pause_remote()

        while True:
            if self._remote_writer.is_closing():
                logger.debug(f"{self._log_prefix} Remote closed before local connected")
                return False

            self.local_attempts += 1
            logger.debug(
                f"{self._log_prefix} Connecting locally to "
                f"{self.cluster.local_scheme}://{self.cluster.local_host}:"
                f"{self.cluster.local_port} (attempt {self.local_attempts})"
            )

            try:
                self._local_reader, self._local_writer = await self._open_local()
                break
            except TRANSIENT_LOCAL_ERRORS as e:
                logger.debug(
                    f"{self._log_prefix} Local error {type(e).__name__}, "
                    f"retrying in {self.cluster.local_retry_delay}s"
                )
                await asyncio.sleep(self.cluster.local_retry_delay)
            except Exception as e:
                logger.warning(f"{self._log_prefix} Local connection failed: {e}")
                logger.debug(f"{self._log_prefix} Traceback:\n{format_traceback(e)}")
                return False

        self.state = ConnectionState.PIPING
        self._resume_remote()
        logger.debug(f"{self._log_prefix} Connected locally")
        return True

    async def _open_local(
        self,
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """
        Connect to the local target, one resolved address at a time.

        ``localhost`` usually resolves to both ::1 and 127.0.0.1, and either
        may be unusable. Every address is tried; if none connects, a refusal
        or reset on any of them is raised in preference to other errors so
        the attempt is still retried.

        Raises:
            ConnectionRefusedError, ConnectionResetError: Target not ready.
            OSError: Every address failed for another reason.
        """
        ssl_context = self._ssl_context_factory()
        host = self.cluster.local_host
        port = self.cluster.local_port

        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        if not infos:
            raise OSError(f"no address found for {host}:{port}")

        transient_error: OSError | None = None
        last_error: OSError | None = None
        for family, _, _, _, address in infos:
            try:
                return await asyncio.open_connection(
                    address[0],
                    port,
                    family=family,
                    ssl=ssl_context,
                    server_hostname=host if ssl_context else None,
                )
            except TRANSIENT_LOCAL_ERRORS as e:
                transient_error = transient_error or e
            except OSError as e:
                logger.debug(f"{self._log_prefix} Local address {address[0]}: {e}")
                last_error = e
        raise transient_error or last_error

    # =========================================================================
    # Relaying
    # =========================================================================

    async def _pipe(self) -> None:
        rewriter = None
        if self.cluster.rewrite_host:
            logger.debug(
                f"{self._log_prefix} Rewriting Host header to "
                f"{self.cluster.rewrite_host}"
            )
            rewriter = HeaderHostRewriter(self.cluster.rewrite_host)

        inbound = asyncio.create_task(
            relay_stream(
                self._remote_reader,
                self._local_writer,
                chunk_size=self.cluster.read_chunk_size,
                rewriter=rewriter,
                on_chunk=self._observe_request,
            )
        )
        outbound = asyncio.create_task(
            relay_stream(
                self._local_reader,
                self._remote_writer,
                chunk_size=self.cluster.read_chunk_size,
            )
        )

        try:
            done, _ = await asyncio.wait(
                {inbound, outbound}, return_when=asyncio.FIRST_COMPLETED
            )
            if inbound not in done and outbound.result():
                # Local side finished its response; pass the EOF on and keep
                # relaying until the broker closes.
                logger.debug(f"{self._log_prefix} Local connection closed")
                self._half_close_remote()
                await inbound
        finally:
            for task in (inbound, outbound):
                task.cancel()
            await asyncio.gather(inbound, outbound, return_exceptions=True)

        logger.debug(f"{self._log_prefix} Remote connection closed")

    def _half_close_remote(self) -> None:
        try:
            if self._remote_writer.can_write_eof():
                self._remote_writer.write_eof()
        except OSError as e:
            logger.debug(f"{self._log_prefix} Could not half-close remote: {e}")

    def _observe_request(self, data: bytes) -> None:
        info = parse_request_line(data)
        if info:
            self._emit(EventType.REQUEST, info)

    # =========================================================================
    # Teardown
    # =========================================================================

    async def _teardown(self) -> None:
        writers = [
            w for w in (self._local_writer, self._remote_writer) if w is not None
        ]
        for writer in writers:
            writer.close()

        self.state = ConnectionState.DEAD
        if self._notify_dead:
            self._emit(EventType.DEAD, self.slot_id)

        for writer in writers:
            try:
                await asyncio.wait_for(
                    writer.wait_closed(), timeout=client_config.CLOSE_TIMEOUT_SECONDS
                )
            except (OSError, asyncio.TimeoutError):
                pass
