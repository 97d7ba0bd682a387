"""
realtime_channel.py — One push-subscription session over STOMP/websocket.

Lifecycle
─────────
    channel = RealtimeChannel(settings.realtime_url)        # create
    channel.register_handler(PushEventKind.REGION_STATUS_UPDATE, navigator.apply_push_update)
    await channel.connect("subject-42")                      # connect
    ...
    await channel.disconnect()                               # disconnect
    await channel.dispose()                                  # dispose

State machine
─────────────
    DISCONNECTED → CONNECTING → CONNECTED
          ↑______________________|   (error / close → retry after a fixed delay)

connect() returns as soon as the background session task is started; it
never raises. Transport failures only show up as is_connected() == False
while the retry loop keeps trying. Callers treat the channel as a
best-effort enhancement over polling.

Once the broker answers CONNECTED the channel announces the subject on
/app/connect, then subscribes to the three broadcast topics and the two
subject-scoped queues (see models/events.py). The state only becomes
CONNECTED after the last SUBSCRIBE is sent. Each delivered MESSAGE is
decoded into its domain model and fanned out to every handler registered
for that kind.

Guarantees
──────────
- At most one session at a time. A second connect() (for any subject)
  unsubscribes and closes the previous session before the new one
  subscribes. A generation counter drops late frames from a torn-down
  session and lets the newest of two concurrent connect() calls win.
- disconnect() is idempotent and immediately stops a pending reconnect.
- No de-duplication or reordering: consumers apply snapshots
  last-write-wins by entity id.
"""

import asyncio
import contextlib
import inspect
import itertools
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, Union
from urllib.parse import urlparse

import websockets
from pydantic import ValidationError

from regionwatch.core.diagnostics import DiagnosticSink
from regionwatch.models.events import OutboundKind, PushEventKind, decode_payload, encode_payload
from regionwatch.services.geometry import build_region
from regionwatch.services.stomp import (
    HEARTBEAT,
    StompProtocolError,
    connect_frame,
    decode_frames,
    disconnect_frame,
    encode,
    negotiate_heartbeat,
    send_frame,
    subscribe_frame,
    unsubscribe_frame,
)

logger = logging.getLogger(__name__)


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Transport(Protocol):
    async def send(self, message: str) -> None: ...

    async def recv(self) -> Union[str, bytes]: ...

    async def close(self) -> None: ...


TransportFactory = Callable[[str], Awaitable[Transport]]
Handler = Callable[[Any], Any]


async def websocket_transport(url: str) -> Transport:
    # STOMP heart-beats replace websocket-level pings.
    return await websockets.connect(url, ping_interval=None, close_timeout=5, max_size=None)


@dataclass
class _Session:
    subject_id: str
    generation: int
    transport: Optional[Transport] = None
    connected: bool = False
    expect_every_ms: int = 0
    subscriptions: dict[str, PushEventKind] = field(default_factory=dict)
    heartbeat_task: Optional[asyncio.Task] = None


class RealtimeChannel:
    """Explicitly owned push channel. Create one per logged-in subject."""

    def __init__(
        self,
        url: str,
        *,
        reconnect_delay: float = 5.0,
        heartbeat: tuple[int, int] = (4000, 4000),
        connect_timeout: float = 10.0,
        transport_factory: Optional[TransportFactory] = None,
        diagnostics: Optional[DiagnosticSink] = None,
    ) -> None:
        self.url = url
        self.reconnect_delay = reconnect_delay
        self.heartbeat = heartbeat
        self.connect_timeout = connect_timeout
        self._transport_factory = transport_factory or websocket_transport
        self._diagnostics = diagnostics or DiagnosticSink()

        self._handlers: dict[PushEventKind, list[Handler]] = {kind: [] for kind in PushEventKind}
        self._state = ChannelState.DISCONNECTED
        self._session: Optional[_Session] = None
        self._runner: Optional[asyncio.Task] = None
        self._closing: list[asyncio.Task] = []
        self._pending: set[asyncio.Task] = set()
        self._generation = 0
        self._subscription_ids = itertools.count()
        self._disposed = False

    # ── State queries ─────────────────────────────────────────────────────────

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def subject_id(self) -> Optional[str]:
        return self._session.subject_id if self._session else None

    def is_connected(self) -> bool:
        return self._state is ChannelState.CONNECTED

    # ── Handlers ──────────────────────────────────────────────────────────────

    def register_handler(self, kind: PushEventKind, callback: Handler) -> Callable[[], None]:
        """
        Append a callback for `kind`. Every registered callback receives every
        event of that kind, in registration order. Returns an unsubscribe
        function.
        """
        self._handlers[kind].append(callback)
        return lambda: self.remove_handler(kind, callback)

    def remove_handler(self, kind: PushEventKind, callback: Handler) -> None:
        with contextlib.suppress(ValueError):
            self._handlers[kind].remove(callback)

    def handler_count(self, kind: PushEventKind) -> int:
        return len(self._handlers[kind])

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def connect(self, subject_id: str) -> None:
        if self._disposed:
            logger.warning("connect(%s) ignored: channel already disposed", subject_id)
            return

        self._generation += 1
        generation = self._generation
        await self._teardown()
        if generation != self._generation:
            # A newer connect()/disconnect() arrived while we were tearing down.
            return

        session = _Session(subject_id=subject_id, generation=generation)
        self._session = session
        self._runner = asyncio.create_task(self._run(session), name=f"realtime-{subject_id}")

    async def disconnect(self) -> None:
        had_session = self._session is not None
        self._generation += 1
        await self._teardown()
        if had_session:
            logger.info("Realtime channel disconnected")

    async def dispose(self) -> None:
        await self.disconnect()
        self._disposed = True
        for handlers in self._handlers.values():
            handlers.clear()
        for task in list(self._pending):
            task.cancel()

    # ── Outbound ──────────────────────────────────────────────────────────────

    async def publish(self, kind: OutboundKind, payload: Any) -> None:
        """Fire-and-forget SEND. Dropped (with a debug log) when not connected."""
        session = self._session
        if session is None or not session.connected or session.transport is None:
            logger.debug("Dropping %s publish: channel not connected", kind.destination)
            return
        body = encode_payload(payload)
        content_type = "text/plain" if isinstance(payload, str) else "application/json"
        try:
            await session.transport.send(encode(send_frame(kind.destination, body, content_type)))
        except Exception as exc:
            logger.warning("Publish to %s failed: %s", kind.destination, exc)

    async def update_location(self, latitude: float, longitude: float) -> None:
        if self.subject_id is None:
            return
        await self.publish(OutboundKind.LOCATION_UPDATE, {
            "userId": self.subject_id,
            "location": {"latitude": latitude, "longitude": longitude},
        })

    async def rate_person(self, target_user_id: str, rating_change: float) -> None:
        if self.subject_id is None:
            return
        await self.publish(OutboundKind.RATE_PERSON, {
            "userId": self.subject_id,
            "targetUserId": target_user_id,
            "ratingChange": rating_change,
        })

    # ── Session internals ─────────────────────────────────────────────────────

    def _set_state(self, session: _Session, state: ChannelState) -> None:
        if self._session is session:
            self._state = state

    async def _teardown(self) -> None:
        session, runner = self._session, self._runner
        self._session, self._runner = None, None
        self._state = ChannelState.DISCONNECTED
        if session is not None or runner is not None:
            self._closing.append(asyncio.create_task(self._close(session, runner)))
        # Wait for every in-flight close, including ones started by a
        # concurrent connect(), so no new subscriptions overlap old ones.
        while self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
            self._closing = [t for t in self._closing if not t.done()]

    async def _close(self, session: Optional[_Session], runner: Optional[asyncio.Task]) -> None:
        if runner is not None and not runner.done():
            runner.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await runner
        if session is not None:
            await self._release(session, graceful=True)

    async def _release(self, session: _Session, graceful: bool) -> None:
        if session.heartbeat_task is not None:
            session.heartbeat_task.cancel()
            session.heartbeat_task = None
        transport, session.transport = session.transport, None
        if transport is None:
            return
        if graceful and session.connected:
            try:
                for subscription_id in list(session.subscriptions):
                    await transport.send(encode(unsubscribe_frame(subscription_id)))
                await transport.send(encode(disconnect_frame()))
            except Exception as exc:
                logger.debug("Ignoring error during unsubscribe: %s", exc)
        session.subscriptions.clear()
        session.connected = False
        try:
            await transport.close()
        except Exception as exc:
            logger.debug("Ignoring error while closing transport: %s", exc)

    async def _run(self, session: _Session) -> None:
        while True:
            self._set_state(session, ChannelState.CONNECTING)
            try:
                await self._open(session)
                await self._announce(session)
                await self._subscribe_all(session)
                self._set_state(session, ChannelState.CONNECTED)
                logger.info("Realtime channel connected for subject %s", session.subject_id)
                await self._pump(session)
            except Exception as exc:
                logger.warning("Realtime connection error: %s", exc or type(exc).__name__)
            await self._release(session, graceful=False)
            self._set_state(session, ChannelState.DISCONNECTED)
            logger.info("Realtime reconnect in %.1fs", self.reconnect_delay)
            await asyncio.sleep(self.reconnect_delay)

    async def _open(self, session: _Session) -> None:
        transport = await asyncio.wait_for(self._transport_factory(self.url), self.connect_timeout)
        session.transport = transport
        host = urlparse(self.url).hostname or "localhost"
        await transport.send(encode(connect_frame(host, self.heartbeat)))

        connected = None
        while connected is None:
            message = await asyncio.wait_for(transport.recv(), self.connect_timeout)
            for frame in decode_frames(_text(message)):
                if frame.command == "ERROR":
                    raise StompProtocolError(frame.header("message") or frame.body)
                if frame.command == "CONNECTED":
                    connected = frame
                    break

        send_every, expect_every = negotiate_heartbeat(self.heartbeat, connected.header("heart-beat"))
        session.expect_every_ms = expect_every
        session.connected = True
        if send_every:
            session.heartbeat_task = asyncio.create_task(self._beat(transport, send_every))

    async def _beat(self, transport: Transport, every_ms: int) -> None:
        while True:
            await asyncio.sleep(every_ms / 1000)
            try:
                await transport.send(HEARTBEAT)
            except Exception:
                return

    async def _announce(self, session: _Session) -> None:
        frame = send_frame(OutboundKind.PRESENCE.destination, session.subject_id, "text/plain")
        await session.transport.send(encode(frame))

    async def _subscribe_all(self, session: _Session) -> None:
        for kind in PushEventKind:
            subscription_id = f"sub-{next(self._subscription_ids)}"
            destination = kind.destination(session.subject_id)
            await session.transport.send(encode(subscribe_frame(subscription_id, destination)))
            session.subscriptions[subscription_id] = kind

    async def _pump(self, session: _Session) -> None:
        # Silence longer than twice the negotiated interval means a dead peer.
        timeout = session.expect_every_ms * 2 / 1000 if session.expect_every_ms else None
        while True:
            try:
                message = await asyncio.wait_for(session.transport.recv(), timeout)
            except asyncio.TimeoutError:
                raise ConnectionError("heart-beat timeout") from None
            for frame in decode_frames(_text(message)):
                if frame.command == "MESSAGE":
                    self._dispatch(session, frame)
                elif frame.command == "ERROR":
                    raise StompProtocolError(frame.header("message") or frame.body)

    def _dispatch(self, session: _Session, frame) -> None:
        if self._session is not session:
            return
        kind = session.subscriptions.get(frame.header("subscription", ""))
        if kind is None:
            logger.debug("MESSAGE for unknown subscription %s", frame.header("subscription"))
            return
        try:
            data = json.loads(frame.body) if frame.body else None
            if kind is PushEventKind.REGION_STATUS_UPDATE:
                payload = build_region(data, self._diagnostics)
            else:
                payload = decode_payload(kind, data)
        except (ValueError, TypeError, ValidationError) as exc:
            self._diagnostics.warn(
                "push.undecodable",
                "dropped push payload that does not match its event kind",
                kind=kind.value,
                body=frame.body[:500],
                error=str(exc),
            )
            return
        self._fan_out(kind, payload)

    def _fan_out(self, kind: PushEventKind, payload: Any) -> None:
        for callback in list(self._handlers[kind]):
            try:
                result = callback(payload)
            except Exception:
                logger.exception("Push handler failed for %s", kind.value)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Async push handler failed: %s", task.exception())


def _text(message: Union[str, bytes]) -> str:
    return message.decode("utf-8") if isinstance(message, bytes) else message
