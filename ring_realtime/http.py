"""HTTP negotiation with the Ring API.

Turns an authenticated identity into a connectable push endpoint. Each call
is a single request/response; retrying is left to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from .config import RingConfig
from .errors import (
    NegotiationMalformedError,
    NegotiationUnauthorizedError,
    NegotiationUnavailableError,
)
from .hardware import generate_hardware_id
from .protocol import build_websocket_url

_LOGGER = logging.getLogger(__name__)

_UNAUTHORIZED = frozenset({401, 403})


@dataclass(frozen=True)
class ConnectionDescriptor:
    """A negotiated ticket for one websocket connection.

    Attributes:
        host: Push endpoint host.
        ticket: Short-lived auth code, valid for one connection.
        subscription_topics: Topics the ticket is subscribed to.
        assets: Hub assets (raw upstream mappings) reachable on the endpoint.
    """

    host: str
    ticket: str
    subscription_topics: tuple[str, ...] = ()
    assets: tuple[dict[str, Any], ...] = field(default=())

    @property
    def uri(self) -> str:
        return build_websocket_url(self.host, self.ticket)

    @property
    def asset_ids(self) -> tuple[str, ...]:
        return tuple(a["uuid"] for a in self.assets if isinstance(a.get("uuid"), str))


def parse_ticket(data: Any) -> ConnectionDescriptor:
    """Parse a ticket response body.

    Raises:
        NegotiationMalformedError: If required fields are missing.
    """
    if not isinstance(data, dict):
        raise NegotiationMalformedError("Ticket response is not an object")

    ticket = data.get("ticket")
    host = data.get("host")
    if not isinstance(ticket, str) or not ticket:
        raise NegotiationMalformedError("Ticket response has no ticket")
    if not isinstance(host, str) or not host:
        raise NegotiationMalformedError("Ticket response has no host")

    topics = data.get("subscriptionTopics") or []
    assets = data.get("assets") or []
    if not isinstance(topics, list) or not isinstance(assets, list):
        raise NegotiationMalformedError("Ticket response has invalid topics/assets")

    return ConnectionDescriptor(
        host=host,
        ticket=ticket,
        subscription_topics=tuple(str(t) for t in topics),
        assets=tuple(a for a in assets if isinstance(a, dict)),
    )


class RingHttpClient:
    """HTTP client wrapper for the Ring session and ticket endpoints."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        token: str,
        *,
        config: RingConfig | None = None,
    ) -> None:
        self._session = session
        self._token = token
        self._config = config or RingConfig()

    @property
    def config(self) -> RingConfig:
        return self._config

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "User-Agent": self._config.operating_system.user_agent,
        }

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self._config.request_timeout)

    @staticmethod
    def _check_status(status: int, what: str) -> None:
        if status in _UNAUTHORIZED:
            raise NegotiationUnauthorizedError(
                f"{what} rejected the bearer credential", status=status
            )
        if not 200 <= status < 300:
            raise NegotiationUnavailableError(
                f"{what} failed with status {status}", status=status
            )

    @staticmethod
    async def _read_json(resp: aiohttp.ClientResponse, what: str) -> Any:
        try:
            return await resp.json(content_type=None)
        except ValueError as err:
            raise NegotiationMalformedError(f"{what} returned invalid JSON") from err

    async def subscribe_device(self, identity: str) -> dict[str, Any]:
        """Register the physical device identity with the session endpoint."""
        url = f"{self._config.client_api_base_url}/session"
        payload = {
            "device": {
                "hardware_id": generate_hardware_id(identity),
                "os": self._config.operating_system.value,
                "metadata": {
                    "api_version": self._config.api_version,
                    "device_model": self._config.display_name,
                },
            }
        }
        try:
            async with self._session.post(
                url,
                headers=self._headers(),
                json=payload,
                timeout=self._timeout(),
            ) as resp:
                self._check_status(resp.status, "Session request")
                data = await self._read_json(resp, "Session request")
        except TimeoutError as err:
            raise NegotiationUnavailableError("Session request timed out") from err
        except aiohttp.ClientError as err:
            raise NegotiationUnavailableError("Session request failed") from err

        if not isinstance(data, dict):
            raise NegotiationMalformedError("Session response is not an object")
        return data

    async def fetch_ticket(self, location_id: str) -> ConnectionDescriptor:
        """Exchange the bearer credential for a push endpoint ticket."""
        url = f"{self._config.app_api_base_url}/clap/tickets"
        try:
            async with self._session.get(
                url,
                params={"locationID": location_id},
                headers=self._headers(),
                timeout=self._timeout(),
            ) as resp:
                self._check_status(resp.status, "Ticket request")
                data = await self._read_json(resp, "Ticket request")
        except TimeoutError as err:
            raise NegotiationUnavailableError("Ticket request timed out") from err
        except aiohttp.ClientError as err:
            raise NegotiationUnavailableError("Ticket request failed") from err

        return parse_ticket(data)

    async def negotiate(self, identity: str, location_id: str) -> ConnectionDescriptor:
        """Subscribe the device identity and fetch a fresh ticket.

        Raises:
            NegotiationUnauthorizedError: The credential was rejected.
            NegotiationUnavailableError: Transient upstream failure.
            NegotiationMalformedError: The upstream payload was unparseable.
        """
        _LOGGER.debug("[%s] Negotiating push endpoint", location_id)
        await self.subscribe_device(identity)
        descriptor = await self.fetch_ticket(location_id)
        _LOGGER.info(
            "[%s] Negotiated push endpoint %s (%d assets)",
            location_id,
            descriptor.host,
            len(descriptor.assets),
        )
        return descriptor
