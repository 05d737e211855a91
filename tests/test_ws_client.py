"""Tests for RingWsClient WebSocket wrapper."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from ring_realtime.errors import (
    ConnectionLostError,
    TransportHandshakeError,
    TransportTimeoutError,
)
from ring_realtime.http import ConnectionDescriptor
from ring_realtime.transport.ws import connect_websocket
from ring_realtime.transport.ws_client import (
    RingWsClient,
    RingWsMessage,
    RingWsMessageType,
)

DESCRIPTOR = ConnectionDescriptor(host="ws.example.test", ticket="t-1")


class AsyncIteratorMock:
    """Helper class to create a proper async iterator mock."""

    def __init__(self, items: list, *, raise_on_iter: Exception | None = None):
        self._items = items
        self._index = 0
        self._raise_on_iter = raise_on_iter
        self.close = AsyncMock()
        self.send = AsyncMock()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._index >= len(self._items):
            if self._raise_on_iter is not None:
                raise self._raise_on_iter
            raise StopAsyncIteration
        item = self._items[self._index]
        self._index += 1
        return item


async def connected_client(mock_ws) -> RingWsClient:
    with patch(
        "ring_realtime.transport.ws_client.connect_websocket",
        return_value=mock_ws,
    ):
        client = RingWsClient()
        await client.connect(DESCRIPTOR)
    return client


class TestRingWsMessage:
    """Tests for RingWsMessage dataclass."""

    def test_message_is_frozen(self):
        msg = RingWsMessage(type=RingWsMessageType.TEXT, data="test")
        with pytest.raises(AttributeError):
            msg.data = "modified"  # type: ignore[misc]

    def test_closed_message_has_no_data(self):
        assert RingWsMessage(type=RingWsMessageType.CLOSED).data is None


class TestRingWsClientConnect:
    """Tests for RingWsClient.connect()."""

    @pytest.mark.asyncio
    async def test_connect_uses_descriptor_uri(self):
        mock_ws = AsyncMock()

        with patch(
            "ring_realtime.transport.ws_client.connect_websocket",
            return_value=mock_ws,
        ) as mock_connect:
            client = RingWsClient()
            await client.connect(DESCRIPTOR, ping_interval=30, user_agent="ios:com.ringapp")

            mock_connect.assert_called_once_with(
                DESCRIPTOR.uri,
                ping_interval=30,
                timeout=15.0,
                user_agent="ios:com.ringapp",
            )
            assert client.is_connected

    @pytest.mark.asyncio
    async def test_connect_propagates_errors(self):
        with patch(
            "ring_realtime.transport.ws_client.connect_websocket",
            side_effect=TransportHandshakeError("WebSocket handshake failed"),
        ):
            client = RingWsClient()
            with pytest.raises(TransportHandshakeError):
                await client.connect(DESCRIPTOR)
            assert not client.is_connected

    @pytest.mark.asyncio
    async def test_close_not_connected(self):
        client = RingWsClient()
        await client.close()


class TestRingWsClientSendText:
    """Tests for RingWsClient.send_text()."""

    @pytest.mark.asyncio
    async def test_send_text_success(self):
        mock_ws = AsyncMock()
        client = await connected_client(mock_ws)

        await client.send_text('{"msg": "Ping"}')

        mock_ws.send.assert_called_once_with('{"msg": "Ping"}')

    @pytest.mark.asyncio
    async def test_send_text_not_connected(self):
        client = RingWsClient()
        with pytest.raises(ConnectionLostError, match="not connected"):
            await client.send_text("{}")

    @pytest.mark.asyncio
    async def test_send_text_connection_closed(self):
        mock_ws = AsyncMock()
        mock_ws.send.side_effect = ConnectionClosed(None, None)
        client = await connected_client(mock_ws)

        with pytest.raises(ConnectionLostError):
            await client.send_text("{}")

    @pytest.mark.asyncio
    async def test_send_text_os_error(self):
        mock_ws = AsyncMock()
        mock_ws.send.side_effect = OSError("broken pipe")
        client = await connected_client(mock_ws)

        with pytest.raises(ConnectionLostError):
            await client.send_text("{}")


class TestRingWsClientIteration:
    """Tests for RingWsClient async iteration."""

    def test_iter_not_connected(self):
        client = RingWsClient()
        with pytest.raises(ConnectionLostError, match="not connected"):
            client.__aiter__()

    @pytest.mark.asyncio
    async def test_iter_text_then_closed(self):
        client = await connected_client(AsyncIteratorMock(["one", "two"]))

        messages = [msg async for msg in client]

        assert [m.type for m in messages] == [
            RingWsMessageType.TEXT,
            RingWsMessageType.TEXT,
            RingWsMessageType.CLOSED,
        ]
        assert [m.data for m in messages[:2]] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_iter_connection_closed(self):
        client = await connected_client(
            AsyncIteratorMock(["one"], raise_on_iter=ConnectionClosed(None, None))
        )

        messages = [msg async for msg in client]

        assert messages[-1].type is RingWsMessageType.CLOSED
        assert len(messages) == 2

    @pytest.mark.asyncio
    async def test_iter_network_error(self):
        client = await connected_client(
            AsyncIteratorMock([], raise_on_iter=OSError("reset"))
        )

        messages = [msg async for msg in client]

        assert [m.type for m in messages] == [RingWsMessageType.ERROR]

    @pytest.mark.asyncio
    async def test_iter_skips_binary_messages(self):
        client = await connected_client(AsyncIteratorMock(["a", b"\x00\x01", "b"]))

        messages = [msg async for msg in client]

        text = [m.data for m in messages if m.type is RingWsMessageType.TEXT]
        assert text == ["a", "b"]


class TestConnectWebsocket:
    """Tests for connect_websocket() error mapping."""

    @pytest.mark.asyncio
    async def test_success(self):
        conn = object()
        with patch(
            "ring_realtime.transport.ws.websockets.connect",
            AsyncMock(return_value=conn),
        ) as mock_connect:
            result = await connect_websocket("wss://h/ws", user_agent="ua")

        assert result is conn
        assert mock_connect.call_args.kwargs["user_agent_header"] == "ua"
        assert mock_connect.call_args.kwargs["ping_interval"] == 20

    @pytest.mark.asyncio
    async def test_no_user_agent_keeps_library_default(self):
        with patch(
            "ring_realtime.transport.ws.websockets.connect",
            AsyncMock(return_value=object()),
        ) as mock_connect:
            await connect_websocket("wss://h/ws")

        assert "user_agent_header" not in mock_connect.call_args.kwargs

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (TimeoutError(), TransportTimeoutError),
            (InvalidHandshake(), TransportHandshakeError),
            (InvalidURI("wss://bad", "bad uri"), TransportHandshakeError),
            (OSError("refused"), ConnectionLostError),
        ],
    )
    async def test_error_mapping(self, error, expected):
        with patch(
            "ring_realtime.transport.ws.websockets.connect",
            AsyncMock(side_effect=error),
        ):
            with pytest.raises(expected):
                await connect_websocket("wss://h/ws")
