"""Pytest configuration and fixtures for ring_realtime tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ring_realtime.config import RingConfig
from ring_realtime.errors import ConnectionLostError
from ring_realtime.http import ConnectionDescriptor, RingHttpClient
from ring_realtime.transport.ws_client import RingWsMessage, RingWsMessageType


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)


def create_mock_response(
    status: int = 200,
    json_data: Any = None,
    json_error: Exception | None = None,
) -> AsyncMock:
    """Create a configured mock response.

    Args:
        status: HTTP status code
        json_data: Data to return from json() call
        json_error: Exception to raise from json() call

    Returns:
        Configured AsyncMock response
    """
    response = AsyncMock()
    response.status = status

    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = json_data

    response.__aenter__.return_value = response
    response.__aexit__.return_value = None

    return response


def frame(kind: str, seq: Any = None, body: Any = None, **extra: Any) -> str:
    """Build an inbound text frame."""
    inner: dict[str, Any] = {"msg": kind, "seq": seq, "body": body, **extra}
    return json.dumps({"channel": "message", "msg": inner})


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(0.005)


class FakeWsClient:
    """In-memory stand-in for RingWsClient.

    Inbound frames are fed through ``feed``. Each write is split in two
    halves with a suspension point between them so overlapping writers
    would interleave on ``wire``.
    """

    def __init__(self) -> None:
        self.inbound: asyncio.Queue[RingWsMessage] = asyncio.Queue()
        self.sent: list[str] = []
        self.wire: list[str] = []
        self.connect_calls: list[tuple[ConnectionDescriptor, dict[str, Any]]] = []
        self.closed = False
        self.fail_sends = False
        self.send_gate: asyncio.Event | None = None
        self.writing = 0
        self.max_concurrent_writes = 0

    @property
    def is_connected(self) -> bool:
        return bool(self.connect_calls) and not self.closed

    async def connect(self, descriptor: ConnectionDescriptor, **kwargs: Any) -> None:
        self.connect_calls.append((descriptor, kwargs))

    async def close(self) -> None:
        self.closed = True

    async def send_text(self, data: str) -> None:
        self.writing += 1
        self.max_concurrent_writes = max(self.max_concurrent_writes, self.writing)
        try:
            if self.send_gate is not None:
                await self.send_gate.wait()
            if self.fail_sends:
                raise ConnectionLostError("WebSocket closed while sending")
            half = len(data) // 2
            self.wire.append(data[:half])
            await asyncio.sleep(0)
            self.wire.append(data[half:])
            self.sent.append(data)
        finally:
            self.writing -= 1

    def feed(self, data: str) -> None:
        self.inbound.put_nowait(RingWsMessage(RingWsMessageType.TEXT, data))

    def feed_close(self) -> None:
        self.inbound.put_nowait(RingWsMessage(RingWsMessageType.CLOSED))

    def feed_error(self) -> None:
        self.inbound.put_nowait(RingWsMessage(RingWsMessageType.ERROR))

    def __aiter__(self):
        return self._iter_messages()

    async def _iter_messages(self):
        while True:
            msg = await self.inbound.get()
            yield msg
            if msg.type is not RingWsMessageType.TEXT:
                return


@pytest.fixture
def descriptor() -> ConnectionDescriptor:
    return ConnectionDescriptor(
        host="ws.example.test",
        ticket="ticket-123",
        subscription_topics=("location.devices",),
        assets=({"uuid": "hub-1", "kind": "base_station_v1"},),
    )


@pytest.fixture
def config() -> RingConfig:
    return RingConfig(grace_period=0.5, queue_size=8)


@pytest.fixture
def api(descriptor: ConnectionDescriptor, config: RingConfig) -> MagicMock:
    """Mock negotiator returning a fixed descriptor."""
    client = MagicMock(spec=RingHttpClient)
    client.config = config
    client.negotiate = AsyncMock(return_value=descriptor)
    return client


@pytest.fixture
def fake_ws() -> FakeWsClient:
    """Patch the listener's websocket client with an in-memory fake."""
    client = FakeWsClient()
    with patch("ring_realtime.listener.RingWsClient", return_value=client):
        yield client
