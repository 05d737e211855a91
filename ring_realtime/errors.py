"""Client error types for the Ring real-time event channel."""

from __future__ import annotations


class RingClientError(Exception):
    """Base error for Ring real-time client failures."""


class ConfigError(RingClientError):
    """Configuration could not be loaded or is invalid."""


# Negotiation


class NegotiationError(RingClientError):
    """Exchanging credentials for a connection ticket failed."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NegotiationUnauthorizedError(NegotiationError):
    """The bearer credential was rejected by the service."""


class NegotiationUnavailableError(NegotiationError):
    """Transient upstream failure; the caller may retry with backoff."""


class NegotiationMalformedError(NegotiationError):
    """The upstream response could not be parsed."""


# Transport


class TransportError(RingClientError):
    """The websocket transport failed."""


class TransportTimeoutError(TransportError):
    """Timeout while opening the websocket."""


class TransportHandshakeError(TransportError):
    """WebSocket handshake failed."""


class ConnectionLostError(TransportError):
    """The remote closed the socket or the network failed.

    Terminal for the transport instance.
    """


# Codec


class CodecError(RingClientError):
    """A frame could not be converted to or from the wire envelope."""


class MalformedFrameError(CodecError):
    """Inbound frame is not a valid envelope."""


class UnencodableCommandError(CodecError):
    """Outbound command cannot be serialized."""


# Listener


class ListenerError(RingClientError):
    """A listener operation was refused."""


class ListenerBackpressureError(ListenerError):
    """The outbound queue is full."""


class ListenerClosedError(ListenerError):
    """The listener no longer accepts commands."""
