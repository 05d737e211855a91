"""WebSocket helpers for the Ring push endpoint."""

from __future__ import annotations

import asyncio

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from ..errors import (
    ConnectionLostError,
    TransportHandshakeError,
    TransportTimeoutError,
)


async def connect_websocket(
    uri: str,
    *,
    ping_interval: float | None = 20,
    timeout: float = 15.0,
    user_agent: str | None = None,
) -> ClientConnection:
    """Connect to a WebSocket endpoint.

    TLS for ``wss://`` URIs is handled by the websockets library, which also
    answers protocol-level pings on our behalf.

    Args:
        uri: Full endpoint URI including the ticket query
        ping_interval: Interval for keepalive ping frames
        timeout: Connection timeout
        user_agent: Optional User-Agent header for the handshake
    """
    extra: dict[str, str] = {}
    if user_agent is not None:
        extra["user_agent_header"] = user_agent

    try:
        return await asyncio.wait_for(
            websockets.connect(
                uri,
                ping_interval=ping_interval,
                close_timeout=5,
                max_size=None,
                **extra,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise TransportTimeoutError("WebSocket connection timed out") from err
    except (InvalidHandshake, InvalidURI) as err:
        raise TransportHandshakeError("WebSocket handshake failed") from err
    except (OSError, WebSocketException) as err:
        raise ConnectionLostError("WebSocket connection failed") from err
