"""Event listener for a Ring location.

The listener owns one websocket and runs three kinds of tasks on it:

- a receive loop that decodes frames and dispatches each event, in arrival
  order, to its own handler task without waiting for earlier handlers;
- a single writer that drains the outbound queue, so the socket is never
  written from two tasks at once;
- one task per dispatched event running the caller's handler.

Usage:
    api = RingHttpClient(http_session, token)
    listener = await negotiate_and_open(api, "system-id", "location-id")

    async def on_event(event, connection):
        if event.kind is EventKind.DATA_UPDATE:
            await connection.send(Command.set_mode(zid, "none"))
        return True  # False stops the listener

    await listener.listen(on_event)
    reason = await listener.join()

A listener is single use. After it closes, negotiate a new one.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .config import RingConfig
from .errors import (
    ConnectionLostError,
    ListenerBackpressureError,
    ListenerClosedError,
    ListenerError,
    MalformedFrameError,
    NegotiationError,
    RingClientError,
    TransportError,
)
from .http import RingHttpClient
from .protocol import Command, Event, EventKind, decode_event, encode_command
from .transport.ws_client import RingWsClient, RingWsMessageType

_LOGGER = logging.getLogger(__name__)


class ListenerState(Enum):
    """Lifecycle of a listener. Transitions only move forward."""

    INITIALIZING = "initializing"
    OPEN = "open"
    DRAINING = "draining"
    CLOSED = "closed"


_STATE_ORDER = {state: index for index, state in enumerate(ListenerState)}


class CloseReason(Enum):
    """Why a listener closed."""

    HANDLER_REQUESTED_STOP = "handler_requested_stop"
    CONNECTION_LOST = "connection_lost"
    EXTERNAL_CANCEL = "external_cancel"
    NEGOTIATION_FAILED = "negotiation_failed"


EventHandler = Callable[
    [Event, "ConnectionHandle"], Awaitable[bool | None] | bool | None
]
DecodeErrorCallback = Callable[[MalformedFrameError, Any], None]
StateCallback = Callable[[ListenerState], None]


@dataclass(slots=True)
class ListenerStats:
    """Counters for one listener session."""

    frames_received: int = 0
    events_dispatched: int = 0
    decode_errors: int = 0
    handler_errors: int = 0
    commands_sent: int = 0


@dataclass(slots=True)
class _Outbound:
    """A queued command frame awaiting the writer."""

    frame: str
    correlation_id: str
    done: asyncio.Future[None]


class ConnectionHandle:
    """Handle passed to each handler invocation.

    Holds nothing but a reference to the owning listener and its own stop
    flag, so handles are cheap and may be kept after the handler returns.
    Calls stay well defined once the listener closes; sends then fail with
    ``ListenerClosedError``.
    """

    __slots__ = ("_listener", "_stop_requested")

    def __init__(self, listener: RingListener) -> None:
        self._listener = listener
        self._stop_requested = False

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @property
    def is_open(self) -> bool:
        return self._listener.accepting_commands

    async def send(self, command: Command) -> None:
        """Queue a command and wait until it is written to the socket."""
        await self._listener.send(command)

    def request_stop(self) -> None:
        """Ask the listener to stop dispatching and drain. Idempotent."""
        if self._stop_requested:
            return
        self._stop_requested = True
        self._listener.request_stop()


class RingListener:
    """Real-time event listener for one Ring location."""

    def __init__(
        self,
        api: RingHttpClient,
        identity: str,
        location_id: str,
        *,
        config: RingConfig | None = None,
    ) -> None:
        """Initialize listener.

        Args:
            api: Negotiator holding the bearer credential
            identity: Stable system/device identity
            location_id: Location whose events are delivered
            config: Tunables; defaults to the negotiator's config
        """
        self.identity = identity
        self.location_id = location_id
        self._api = api
        self._config = config or api.config

        self._state = ListenerState.INITIALIZING
        self._opening = False
        self._cancel_requested = False
        self._close_reason: CloseReason | None = None
        self._error: BaseException | None = None

        self._ws: RingWsClient | None = None
        self._handler: EventHandler | None = None
        self._accepting = False
        self._queue: asyncio.Queue[_Outbound] = asyncio.Queue(
            maxsize=self._config.queue_size
        )

        self._receive_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._drain_task: asyncio.Task[None] | None = None
        self._handler_tasks: set[asyncio.Task[None]] = set()

        self._draining = asyncio.Event()
        self._closed = asyncio.Event()

        self._decode_error_callback: DecodeErrorCallback | None = None
        self._state_callback: StateCallback | None = None

        self.stats = ListenerStats()

    # -------------------------------------------------------------------------
    # Public API: Lifecycle
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def close_reason(self) -> CloseReason | None:
        return self._close_reason

    @property
    def error(self) -> BaseException | None:
        """First error seen by the session, if any."""
        return self._error

    @property
    def accepting_commands(self) -> bool:
        return self._accepting

    async def open(self) -> None:
        """Negotiate a fresh ticket and open the websocket.

        Raises:
            NegotiationError: Negotiation failed; the listener is closed.
            TransportError: The socket could not be opened; the listener is closed.
            ListenerClosedError: The listener was already opened or stopped.
        """
        if self._state is not ListenerState.INITIALIZING or self._opening:
            raise ListenerClosedError("Listener cannot be opened again")
        if self._cancel_requested:
            raise ListenerClosedError("Listener was stopped before opening")
        self._opening = True

        _LOGGER.info("[%s] Opening listener", self.location_id)
        ws_client = RingWsClient()
        try:
            await self._connect(ws_client)
        except asyncio.CancelledError:
            if self._state is ListenerState.INITIALIZING:
                _LOGGER.info("[%s] Open cancelled", self.location_id)
                self._finish(CloseReason.EXTERNAL_CANCEL)
                if ws_client.is_connected:
                    await self._close_socket(ws_client)
            raise

        if self._cancel_requested:
            self._finish(CloseReason.EXTERNAL_CANCEL)
            await self._close_socket(ws_client)
            raise ListenerClosedError("Listener was stopped while opening")

        self._ws = ws_client
        self._accepting = True
        self._set_state(ListenerState.OPEN)
        self._writer_task = asyncio.create_task(self._write_loop())
        _LOGGER.info("[%s] WebSocket connected", self.location_id)

    def start(self, handler: EventHandler) -> None:
        """Start dispatching events to ``handler`` in the background."""
        if self._state is not ListenerState.OPEN:
            raise ListenerClosedError(f"Listener is {self._state.value}")
        if self._receive_task is not None:
            raise ListenerError("Listener is already listening")
        self._handler = handler
        self._receive_task = asyncio.create_task(self._receive_loop())

    async def listen(self, handler: EventHandler) -> None:
        """Dispatch events to ``handler`` until draining begins.

        The handler is called as ``handler(event, connection)`` and may be a
        plain function or a coroutine function. Returning ``False`` stops the
        listener; any other result keeps it running.
        """
        self.start(handler)
        await self._draining.wait()

    async def join(self) -> CloseReason | None:
        """Wait until the listener is closed and return why."""
        await self._closed.wait()
        return self._close_reason

    def request_stop(self) -> None:
        """Stop dispatching and drain. Idempotent."""
        if self._state is ListenerState.INITIALIZING:
            self._cancel_requested = True
            if not self._opening:
                self._finish(CloseReason.EXTERNAL_CANCEL)
            return
        self._begin_drain(CloseReason.EXTERNAL_CANCEL)

    async def close(self) -> CloseReason | None:
        """Request stop and wait for the listener to close."""
        self.request_stop()
        return await self.join()

    def handle(self) -> ConnectionHandle:
        """Return a new handle for sending from outside a handler."""
        return ConnectionHandle(self)

    async def __aenter__(self) -> RingListener:
        if self._state is ListenerState.INITIALIZING and not self._opening:
            await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Public API: Callbacks
    # -------------------------------------------------------------------------

    def on_decode_error(self, callback: DecodeErrorCallback) -> None:
        """Register callback for dropped malformed frames.

        Callback receives the codec error and the raw frame.
        """
        self._decode_error_callback = callback

    def on_state_changed(self, callback: StateCallback) -> None:
        """Register callback for lifecycle state changes."""
        self._state_callback = callback

    # -------------------------------------------------------------------------
    # Public API: Sending
    # -------------------------------------------------------------------------

    async def send(self, command: Command) -> None:
        """Queue a command and wait until the writer has sent it.

        Raises:
            ListenerClosedError: The listener is not accepting commands.
            ListenerBackpressureError: The outbound queue is full.
            UnencodableCommandError: The command cannot be serialized.
        """
        if not self._accepting:
            raise ListenerClosedError(
                f"Listener is {self._state.value}; command {command.correlation_id} refused"
            )

        frame = encode_command(command)
        done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        try:
            self._queue.put_nowait(_Outbound(frame, command.correlation_id, done))
        except asyncio.QueueFull as err:
            raise ListenerBackpressureError(
                f"Outbound queue full ({self._queue.maxsize} commands)"
            ) from err

        await done

    # -------------------------------------------------------------------------
    # Internal: State Machine
    # -------------------------------------------------------------------------

    def _set_state(self, state: ListenerState) -> None:
        """Advance state and notify callback."""
        if _STATE_ORDER[state] <= _STATE_ORDER[self._state]:
            return
        _LOGGER.debug(
            "[%s] State: %s → %s",
            self.location_id,
            self._state.value,
            state.value,
        )
        self._state = state
        if self._state_callback:
            try:
                self._state_callback(state)
            except Exception as err:
                _LOGGER.exception(
                    "[%s] State callback error: %s", self.location_id, err
                )

    def _record_error(self, error: BaseException | None) -> None:
        if error is not None and self._error is None:
            self._error = error

    def _finish(self, reason: CloseReason, error: BaseException | None = None) -> None:
        """Close without a session (failed or cancelled before opening)."""
        self._close_reason = reason
        self._record_error(error)
        self._accepting = False
        self._set_state(ListenerState.CLOSED)
        self._draining.set()
        self._closed.set()

    def _begin_drain(
        self, reason: CloseReason, error: BaseException | None = None
    ) -> None:
        """Stop dispatch and schedule the drain. The first reason wins."""
        if reason is CloseReason.CONNECTION_LOST:
            # Nothing more can be written, even mid-drain.
            self._accepting = False
            self._record_error(error)
            writer = self._writer_task
            if (
                writer is not None
                and writer is not asyncio.current_task()
                and not writer.done()
            ):
                writer.cancel()
            self._fail_queued()

        if self._state is not ListenerState.OPEN:
            return

        self._close_reason = reason
        self._record_error(error)
        self._set_state(ListenerState.DRAINING)
        self._draining.set()
        _LOGGER.info("[%s] Draining: %s", self.location_id, reason.value)

        receive_task = self._receive_task
        if (
            receive_task is not None
            and receive_task is not asyncio.current_task()
            and not receive_task.done()
        ):
            receive_task.cancel()

        self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        """Let in-flight handlers and queued commands finish, then close."""
        loop = asyncio.get_running_loop()
        grace = self._config.grace_period
        deadline = loop.time() + grace

        if self._handler_tasks:
            _, pending = await asyncio.wait(set(self._handler_tasks), timeout=grace)
            if pending:
                _LOGGER.warning(
                    "[%s] %d handlers still running after grace period",
                    self.location_id,
                    len(pending),
                )

        writer = self._writer_task
        if self._accepting and writer is not None and not writer.done():
            remaining = max(0.0, deadline - loop.time())
            flushed = asyncio.create_task(self._queue.join())
            await asyncio.wait(
                {flushed, writer},
                timeout=remaining,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if not flushed.done():
                flushed.cancel()
                _LOGGER.warning(
                    "[%s] Stopped flushing with %d commands unsent",
                    self.location_id,
                    self._queue.qsize(),
                )

        self._accepting = False
        await self._shutdown()

    async def _shutdown(self) -> None:
        tasks = [
            task
            for task in (self._receive_task, self._writer_task)
            if task is not None and not task.done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._fail_queued()

        if self._ws is not None:
            await self._close_socket(self._ws)

        self._set_state(ListenerState.CLOSED)
        self._closed.set()
        _LOGGER.info(
            "[%s] Listener closed: %s (%d events, %d commands)",
            self.location_id,
            self._close_reason.value if self._close_reason else "unknown",
            self.stats.events_dispatched,
            self.stats.commands_sent,
        )

    def _fail_queued(self) -> None:
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            if not item.done.done():
                item.done.set_exception(
                    ListenerClosedError(
                        f"Listener closed before command {item.correlation_id} was sent"
                    )
                )
            self._queue.task_done()

    async def _connect(self, ws_client: RingWsClient) -> None:
        """Negotiate a ticket and open ``ws_client`` with it."""
        try:
            descriptor = await self._api.negotiate(self.identity, self.location_id)
        except NegotiationError as err:
            _LOGGER.warning("[%s] Negotiation failed: %s", self.location_id, err)
            self._finish(CloseReason.NEGOTIATION_FAILED, err)
            raise

        try:
            await ws_client.connect(
                descriptor,
                ping_interval=self._config.ping_interval,
                timeout=self._config.open_timeout,
                user_agent=self._config.operating_system.user_agent,
            )
        except TransportError as err:
            _LOGGER.warning("[%s] Connection failed: %s", self.location_id, err)
            self._finish(CloseReason.CONNECTION_LOST, err)
            raise

    async def _close_socket(self, ws_client: RingWsClient) -> None:
        try:
            await asyncio.wait_for(ws_client.close(), timeout=2.0)
        except TimeoutError:
            _LOGGER.warning("[%s] WebSocket close timed out", self.location_id)
        except RingClientError as err:
            _LOGGER.debug("[%s] WebSocket close failed: %s", self.location_id, err)

    # -------------------------------------------------------------------------
    # Internal: Receive Path
    # -------------------------------------------------------------------------

    async def _receive_loop(self) -> None:
        """Read frames and dispatch events until the socket ends."""
        if self._ws is None:
            return

        error: BaseException | None = None
        try:
            async for msg in self._ws:
                if self._state is not ListenerState.OPEN:
                    return

                if msg.type is RingWsMessageType.TEXT:
                    self.stats.frames_received += 1
                    self._handle_frame(msg.data)
                elif msg.type is RingWsMessageType.CLOSED:
                    _LOGGER.info("[%s] WebSocket closed by remote", self.location_id)
                    error = ConnectionLostError("WebSocket closed by remote")
                    break
                elif msg.type is RingWsMessageType.ERROR:
                    _LOGGER.error("[%s] WebSocket error", self.location_id)
                    error = ConnectionLostError("WebSocket error")
                    break
            else:
                error = ConnectionLostError("WebSocket stream ended")
        except asyncio.CancelledError:
            _LOGGER.debug(
                "[%s] Receive loop cancelled (%d frames)",
                self.location_id,
                self.stats.frames_received,
            )
            raise
        except TransportError as err:
            _LOGGER.warning("[%s] Transport error: %s", self.location_id, err)
            error = err
        except Exception as err:
            _LOGGER.exception("[%s] Receive loop failed: %s", self.location_id, err)
            error = err

        self._begin_drain(CloseReason.CONNECTION_LOST, error)

    def _handle_frame(self, data: Any) -> None:
        try:
            event = decode_event(data)
        except MalformedFrameError as err:
            self.stats.decode_errors += 1
            _LOGGER.warning("[%s] Dropping malformed frame: %s", self.location_id, err)
            if self._decode_error_callback:
                try:
                    self._decode_error_callback(err, data)
                except Exception as cb_err:
                    _LOGGER.exception(
                        "[%s] Decode error callback error: %s",
                        self.location_id,
                        cb_err,
                    )
            return

        if event.kind is EventKind.UNKNOWN:
            _LOGGER.debug(
                "[%s] Unknown message type: %s", self.location_id, event.message_type
            )
        else:
            _LOGGER.debug(
                "[%s] Received %s (seq=%s)", self.location_id, event.kind.value, event.seq
            )
        self._dispatch(event)

    def _dispatch(self, event: Event) -> None:
        task = asyncio.create_task(self._run_handler(event, ConnectionHandle(self)))
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)
        self.stats.events_dispatched += 1

    async def _run_handler(self, event: Event, handle: ConnectionHandle) -> None:
        if self._handler is None:
            return
        try:
            result = self._handler(event, handle)
            if inspect.isawaitable(result):
                result = await result
        except Exception as err:
            self.stats.handler_errors += 1
            self._record_error(err)
            _LOGGER.exception("[%s] Event handler error: %s", self.location_id, err)
            return

        if result is False:
            _LOGGER.debug("[%s] Event handler requested stop", self.location_id)
            self._begin_drain(CloseReason.HANDLER_REQUESTED_STOP)

    # -------------------------------------------------------------------------
    # Internal: Send Path
    # -------------------------------------------------------------------------

    async def _write_loop(self) -> None:
        """Sole writer: send queued frames one at a time, in queue order."""
        if self._ws is None:
            return

        while True:
            item = await self._queue.get()
            try:
                if item.done.done():
                    # Sender gave up (cancelled) before the write.
                    continue
                try:
                    await self._ws.send_text(item.frame)
                except asyncio.CancelledError:
                    if not item.done.done():
                        item.done.set_exception(
                            ListenerClosedError(
                                f"Listener closed while sending {item.correlation_id}"
                            )
                        )
                    raise
                except TransportError as err:
                    _LOGGER.warning(
                        "[%s] Send failed for %s: %s",
                        self.location_id,
                        item.correlation_id,
                        err,
                    )
                    if not item.done.done():
                        item.done.set_exception(
                            ListenerClosedError(
                                f"Connection lost before command {item.correlation_id} was sent"
                            )
                        )
                    self._begin_drain(CloseReason.CONNECTION_LOST, err)
                    return
                self.stats.commands_sent += 1
                _LOGGER.debug("[%s] Sent %s", self.location_id, item.correlation_id)
                if not item.done.done():
                    item.done.set_result(None)
            finally:
                self._queue.task_done()


async def negotiate_and_open(
    api: RingHttpClient,
    identity: str,
    location_id: str,
    *,
    config: RingConfig | None = None,
) -> RingListener:
    """Negotiate a ticket and return an open listener, ready to ``listen``."""
    listener = RingListener(api, identity, location_id, config=config)
    await listener.open()
    return listener
