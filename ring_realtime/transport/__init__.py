"""Socket transport for the Ring push endpoint.

Components:
- ws: WebSocket connection establishment
- ws_client: frame iteration and single-frame writes
"""

from .ws import connect_websocket
from .ws_client import RingWsClient, RingWsMessage, RingWsMessageType

__all__ = [
    "RingWsClient",
    "RingWsMessage",
    "RingWsMessageType",
    "connect_websocket",
]
