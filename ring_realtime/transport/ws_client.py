"""WebSocket client wrapper for the Ring push endpoint."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..errors import ConnectionLostError
from .ws import connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from ..http import ConnectionDescriptor


class RingWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class RingWsMessage:
    """Normalized WebSocket message payload."""

    type: RingWsMessageType
    data: str | None = None


class RingWsClient:
    """Wrapper around the websockets library for the Ring push endpoint.

    Reading (async iteration) and writing (``send_text``) use independent
    halves of the connection, so a send may run while a read is pending.
    Any failure is terminal; open a new client to reconnect.
    """

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    async def connect(
        self,
        descriptor: ConnectionDescriptor,
        *,
        ping_interval: float | None = 20,
        timeout: float = 15.0,
        user_agent: str | None = None,
    ) -> None:
        """Open the websocket described by a negotiated ticket."""
        self._ws = await connect_websocket(
            descriptor.uri,
            ping_interval=ping_interval,
            timeout=timeout,
            user_agent=user_agent,
        )

    async def close(self) -> None:
        """Close the websocket connection."""
        if self._ws is not None:
            await self._ws.close()

    async def send_text(self, frame: str) -> None:
        """Write one text frame.

        Raises:
            ConnectionLostError: If not connected or the write fails
        """
        if self._ws is None:
            raise ConnectionLostError("WebSocket is not connected")
        try:
            await self._ws.send(frame)
        except ConnectionClosed as err:
            raise ConnectionLostError("WebSocket closed while sending") from err
        except (OSError, WebSocketException) as err:
            raise ConnectionLostError("WebSocket send failed") from err

    def __aiter__(self) -> AsyncIterator[RingWsMessage]:
        if self._ws is None:
            raise ConnectionLostError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[RingWsMessage]:
        if self._ws is None:
            raise ConnectionLostError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                normalized = self._normalize_message(msg)
                if normalized is None:
                    continue
                yield normalized
        except ConnectionClosed:
            yield RingWsMessage(type=RingWsMessageType.CLOSED)
        except (OSError, WebSocketException):
            yield RingWsMessage(type=RingWsMessageType.ERROR)
        else:
            # Normal iteration completion means the peer closed gracefully.
            yield RingWsMessage(type=RingWsMessageType.CLOSED)

    @staticmethod
    def _normalize_message(msg: Any) -> RingWsMessage | None:
        """Normalize library frames into RingWsMessage."""
        if isinstance(msg, str):
            return RingWsMessage(RingWsMessageType.TEXT, msg)
        return None
