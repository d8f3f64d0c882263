"""Pytest fixtures for quickportal tests."""

import asyncio
import dataclasses
import socket
from collections.abc import Callable

import httpx
import pytest
import pytest_asyncio

from quickportal.config import config
from quickportal.models.tunnel import ClusterConfig


# =============================================================================
# Helpers
# =============================================================================


def free_port() -> int:
    """Return a loopback port nobody is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    """Poll ``predicate`` until it is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(0.01)


class EventRecorder:
    """Collects (event, payload) pairs emitted by a connection or pool."""

    def __init__(self):
        self.events: list[tuple[str, object]] = []

    def __call__(self, event, payload=None) -> None:
        self.events.append((getattr(event, "value", event), payload))

    def of(self, name: str) -> list:
        return [payload for event, payload in self.events if event == name]

    def names(self) -> list[str]:
        return [event for event, _ in self.events]


# =============================================================================
# Fake Servers
# =============================================================================


class FakeBroker:
    """Relay port of a broker: accepts tunnel sockets and hands them to tests."""

    def __init__(self):
        self.server: asyncio.AbstractServer | None = None
        self.port: int | None = None
        self.accepted: list[tuple[asyncio.StreamReader, asyncio.StreamWriter]] = []
        self._queue: asyncio.Queue = asyncio.Queue()
        self._release = asyncio.Event()

    async def start(self) -> None:
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self.accepted.append((reader, writer))
        await self._queue.put((reader, writer))
        await self._release.wait()

    async def next_connection(
        self, timeout: float = 3.0
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        return await asyncio.wait_for(self._queue.get(), timeout)

    async def stop(self) -> None:
        for _, writer in self.accepted:
            writer.close()
        self._release.set()
        self.server.close()
        try:
            await asyncio.wait_for(self.server.wait_closed(), timeout=1.0)
        except asyncio.TimeoutError:
            pass


class LocalTarget:
    """
    Local server that records received bytes and optionally replies.

    A paused target accepts connections but does not read until ``stop``.
    """

    def __init__(
        self, echo: bool = False, reply: bytes | None = None, paused: bool = False
    ):
        self.echo = echo
        self.reply = reply
        self._reading = asyncio.Event()
        if not paused:
            self._reading.set()
        self.server: asyncio.AbstractServer | None = None
        self.port: int | None = None
        self.received = bytearray()
        self.connections: list[asyncio.StreamWriter] = []
        self.closed_connections = 0

    async def start(self, port: int = 0) -> None:
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", port)
        self.port = self.server.sockets[0].getsockname()[1]

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self.connections.append(writer)
        try:
            await self._reading.wait()
            while True:
                data = await reader.read(65536)
                if not data:
                    break
                self.received += data
                if self.echo:
                    writer.write(data)
                    await writer.drain()
                elif self.reply is not None:
                    writer.write(self.reply)
                    await writer.drain()
        except OSError:
            pass
        finally:
            self.closed_connections += 1
            writer.close()

    async def stop(self) -> None:
        self._reading.set()
        for writer in self.connections:
            writer.close()
        self.server.close()
        try:
            await asyncio.wait_for(self.server.wait_closed(), timeout=1.0)
        except asyncio.TimeoutError:
            pass


def broker_transport(
    broker_port: int,
    max_conn_count: int = 2,
    subdomain: str = "foo",
    **extra,
) -> httpx.MockTransport:
    """httpx transport answering assignment requests like a broker would."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = {
            "id": subdomain,
            "url": f"https://{subdomain}.example.com",
            "port": broker_port,
            "max_conn_count": max_conn_count,
            "ip": "127.0.0.1",
            **extra,
        }
        return httpx.Response(200, json=body)

    return httpx.MockTransport(handler)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_config():
    """Undo runtime changes to the global config (the CLI mutates it)."""
    saved = dataclasses.asdict(config)
    yield
    for key, value in saved.items():
        setattr(config, key, value)


@pytest_asyncio.fixture
async def broker():
    fake = FakeBroker()
    await fake.start()
    yield fake
    await fake.stop()


@pytest_asyncio.fixture
async def local_target():
    target = LocalTarget()
    await target.start()
    yield target
    await target.stop()


@pytest.fixture
def make_cluster():
    """Build a loopback ClusterConfig with fast retries and no Host rewrite."""
    config.LOCAL_ALIAS = "127.0.0.1"

    def factory(remote_port: int, local_port: int, **overrides) -> ClusterConfig:
        params = {
            "remote_host": "127.0.0.1",
            "remote_port": remote_port,
            "local_port": local_port,
            "local_retry_delay": 0.05,
            "remote_connect_timeout": 2.0,
        }
        params.update(overrides)
        return ClusterConfig(**params)

    return factory
