"""Protocol helpers for Ring real-time websocket frames.

Every frame is a JSON object wrapping one message::

    {"msg": {"msg": "DataUpdate", "seq": 12,
             "datatype": "DeviceInfoDocType", "body": [...]}}

Inbound frames may also carry a ``"channel"`` key, which is ignored.

The inner ``msg`` field is the discriminator. Unknown discriminators decode
to ``EventKind.UNKNOWN`` so new upstream message types never break the
listener.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any
from urllib.parse import urlencode

from .errors import MalformedFrameError, UnencodableCommandError

DEVICE_INFO_SET = "DeviceInfoSet"
DEVICE_INFO_SET_TYPE = "DeviceInfoSetType"


class EventKind(Enum):
    """Known inbound message kinds, keyed by wire discriminator."""

    DATA_UPDATE = "DataUpdate"
    PING = "Ping"
    DISCONNECT = "Disconnect"
    SUBSCRIPTION_TOPICS_INFO = "SubscriptionTopicsInfo"
    SESSION_INFO = "SessionInfo"
    DEVICE_INFO_SET = DEVICE_INFO_SET
    UNKNOWN = "Unknown"

    @classmethod
    def from_wire(cls, value: str) -> EventKind:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Event:
    """A real-time event received from Ring.

    Attributes:
        kind: Decoded message kind.
        seq: Upstream sequence identifier (opaque, may be absent).
        datatype: Upstream data type name, when present.
        payload: Message body.
        raw: The full inner message as received.
    """

    kind: EventKind
    seq: Any = None
    datatype: str | None = None
    payload: Any = None
    raw: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def message_type(self) -> str | None:
        """Wire discriminator, including unrecognized ones."""
        value = self.raw.get("msg")
        return value if isinstance(value, str) else None


@dataclass(frozen=True)
class Command:
    """An outbound message asking Ring to change state or acknowledging one.

    Attributes:
        body: JSON-serializable payload.
        kind: Wire discriminator.
        datatype: Upstream data type name.
        destination: Target asset or device id.
        correlation_id: Client generated id, unique per outstanding command.
    """

    body: Any
    kind: str = DEVICE_INFO_SET
    datatype: str | None = DEVICE_INFO_SET_TYPE
    destination: str | None = None
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def set_mode(
        cls,
        device_zid: str,
        mode: str,
        *,
        destination: str | None = None,
        bypass: list[str] | None = None,
    ) -> Command:
        """Build a security panel mode change (e.g. ``"all"``, ``"some"``, ``"none"``)."""
        return cls(
            body=[
                {
                    "zid": device_zid,
                    "command": {
                        "v1": [
                            {
                                "commandType": "security-panel.switch-mode",
                                "data": {"mode": mode, "bypass": bypass or []},
                            }
                        ]
                    },
                }
            ],
            destination=destination,
        )


def build_websocket_url(host: str, ticket: str) -> str:
    """Build the push endpoint URI for a negotiated ticket."""
    query = urlencode({"authcode": ticket, "ack": "false", "transport": "websocket"})
    return f"wss://{host}/ws?{query}"


def build_envelope(inner: dict[str, Any]) -> dict[str, Any]:
    """Wrap an inner message in the outbound envelope."""
    return {"msg": inner}


def encode_command(command: Command) -> str:
    """Serialize a command to a text frame.

    Raises:
        UnencodableCommandError: If the body is not JSON-serializable.
    """
    inner: dict[str, Any] = {"msg": command.kind, "seq": command.correlation_id}
    if command.datatype is not None:
        inner["datatype"] = command.datatype
    if command.destination is not None:
        inner["dst"] = command.destination
    inner["body"] = command.body

    try:
        return json.dumps(build_envelope(inner), allow_nan=False)
    except (TypeError, ValueError) as err:
        raise UnencodableCommandError(
            f"Command {command.correlation_id} is not serializable: {err}"
        ) from err


def _unwrap(data: Any) -> dict[str, Any]:
    """Return the inner message of an envelope or bare message."""
    if not isinstance(data, dict):
        raise MalformedFrameError("Frame is not a JSON object")

    inner = data.get("msg")
    if isinstance(inner, dict):
        return inner
    if isinstance(inner, str):
        # Bare message without the envelope.
        return data
    raise MalformedFrameError("Frame has no message discriminator")


def decode_event(raw: str | bytes | dict[str, Any]) -> Event:
    """Decode a text frame into an ``Event``.

    Raises:
        MalformedFrameError: If the frame is not JSON or lacks a discriminator.
    """
    if isinstance(raw, dict):
        data: Any = raw
    else:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError, RecursionError) as err:
            raise MalformedFrameError(f"Frame is not valid JSON: {err}") from err

    inner = _unwrap(data)
    discriminator = inner.get("msg")
    if not isinstance(discriminator, str) or not discriminator:
        raise MalformedFrameError("Message discriminator must be a non-empty string")

    datatype = inner.get("datatype")
    return Event(
        kind=EventKind.from_wire(discriminator),
        seq=inner.get("seq"),
        datatype=datatype if isinstance(datatype, str) else None,
        payload=inner.get("body"),
        raw=MappingProxyType(dict(inner)),
    )
