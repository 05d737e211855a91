"""Real-time event channel for Ring locations."""

__version__ = "0.1.0"

from .config import OperatingSystem, RingConfig, load_config
from .errors import (
    CodecError,
    ConfigError,
    ConnectionLostError,
    ListenerBackpressureError,
    ListenerClosedError,
    ListenerError,
    MalformedFrameError,
    NegotiationError,
    NegotiationMalformedError,
    NegotiationUnauthorizedError,
    NegotiationUnavailableError,
    RingClientError,
    TransportError,
    TransportHandshakeError,
    TransportTimeoutError,
    UnencodableCommandError,
)
from .hardware import generate_hardware_id
from .http import ConnectionDescriptor, RingHttpClient
from .listener import (
    CloseReason,
    ConnectionHandle,
    ListenerState,
    ListenerStats,
    RingListener,
    negotiate_and_open,
)
from .protocol import (
    Command,
    Event,
    EventKind,
    build_websocket_url,
    decode_event,
    encode_command,
)
from .transport import RingWsClient, RingWsMessage, RingWsMessageType

__all__ = [
    "CloseReason",
    "CodecError",
    "Command",
    "ConfigError",
    "ConnectionDescriptor",
    "ConnectionHandle",
    "ConnectionLostError",
    "Event",
    "EventKind",
    "ListenerBackpressureError",
    "ListenerClosedError",
    "ListenerError",
    "ListenerState",
    "ListenerStats",
    "MalformedFrameError",
    "NegotiationError",
    "NegotiationMalformedError",
    "NegotiationUnauthorizedError",
    "NegotiationUnavailableError",
    "OperatingSystem",
    "RingClientError",
    "RingConfig",
    "RingHttpClient",
    "RingListener",
    "RingWsClient",
    "RingWsMessage",
    "RingWsMessageType",
    "TransportError",
    "TransportHandshakeError",
    "TransportTimeoutError",
    "UnencodableCommandError",
    "__version__",
    "build_websocket_url",
    "decode_event",
    "encode_command",
    "generate_hardware_id",
    "load_config",
    "negotiate_and_open",
]
