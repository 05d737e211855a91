"""Configuration for the Ring real-time client.

Settings are plain data. They can be built in code or loaded from a YAML
mapping whose keys match the ``RingConfig`` field names.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

CLIENT_API_BASE_URL = "https://api.ring.com/clients_api"
APP_API_BASE_URL = "https://prd-api-us.prd.rings.solutions/api/v1"
API_VERSION = 11


class OperatingSystem(Enum):
    """Operating system to identify as when subscribing a device."""

    ANDROID = "android"
    IOS = "ios"

    @property
    def user_agent(self) -> str:
        return f"{self.value}:com.ringapp"


@dataclass(frozen=True)
class RingConfig:
    """Tunables for negotiation, transport and the listener.

    Attributes:
        queue_size: Maximum queued outbound commands before sends fail
            with backpressure.
        grace_period: Seconds allowed for in-flight handlers and queued
            commands to finish once draining starts.
        ping_interval: Websocket keepalive ping interval (seconds), or
            None to disable.
        open_timeout: Websocket connect timeout (seconds).
        request_timeout: Total timeout for each negotiation request.
        operating_system: Identity presented to the service.
        display_name: Device model name reported on subscription.
        api_version: Client API version reported on subscription.
        client_api_base_url: Base URL for the session endpoint.
        app_api_base_url: Base URL for the ticket endpoint.
    """

    queue_size: int = 64
    grace_period: float = 5.0
    ping_interval: float | None = 20.0
    open_timeout: float = 15.0
    request_timeout: float = 10.0
    operating_system: OperatingSystem = OperatingSystem.IOS
    display_name: str = "ring_realtime"
    api_version: int = API_VERSION
    client_api_base_url: str = CLIENT_API_BASE_URL
    app_api_base_url: str = APP_API_BASE_URL

    def __post_init__(self) -> None:
        if self.queue_size < 1:
            raise ConfigError("queue_size must be at least 1")
        if self.grace_period < 0:
            raise ConfigError("grace_period must not be negative")
        if self.ping_interval is not None and self.ping_interval <= 0:
            raise ConfigError("ping_interval must be positive")
        if self.open_timeout <= 0 or self.request_timeout <= 0:
            raise ConfigError("timeouts must be positive")

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> RingConfig:
        """Build a config from a plain mapping."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

        values = dict(data)
        if "operating_system" in values:
            try:
                values["operating_system"] = OperatingSystem(
                    str(values["operating_system"]).lower()
                )
            except ValueError as err:
                raise ConfigError(
                    f"Unsupported operating_system: {values['operating_system']}"
                ) from err

        try:
            return cls(**values)
        except TypeError as err:
            raise ConfigError(f"Invalid config: {err}") from err


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as err:
        raise ConfigError(f"Cannot read config file {path}") from err
    except yaml.YAMLError as err:
        raise ConfigError(f"Invalid YAML in {path}") from err
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_config(path: str | Path) -> RingConfig:
    """Load a ``RingConfig`` from a YAML file.

    A top-level ``ring_realtime`` key is unwrapped when present so the
    settings can live inside a larger application config file.
    """
    data = _load_yaml(Path(path))
    section = data.get("ring_realtime", data)
    if not isinstance(section, dict):
        raise ConfigError("ring_realtime section must be a mapping")
    return RingConfig.from_mapping(section)
