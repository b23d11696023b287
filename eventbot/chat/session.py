"""EventSub WebSocket session.

One ``ProtocolSession`` owns exactly one WebSocket connection and its
dedicated receive loop. The server assigns the session id through a
``session_welcome`` frame; subscriptions can only be created after that.
There is no resume and no automatic reconnect: once the loop ends the
session id is gone and a fresh ``connect()`` is required.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from ..api.protocols import TokenProvider
from ..api.twitch import TwitchAPI
from ..constants import (
    EVENTSUB_SHUTDOWN_WAIT_SECONDS,
    EVENTSUB_SUBSCRIPTIONS_ENDPOINT,
    EVENTSUB_WELCOME_TIMEOUT_SECONDS,
    EVENTSUB_WS_URL,
)
from ..errors.eventsub import (
    DecodeError,
    EventSubConnectionError,
    NoSessionError,
    SubscriptionCreateError,
)
from ..utils.tasks import BackgroundTasks
from .events import InboundEvent, decode_event
from .subscriptions import SubscriptionSpec

E = TypeVar("E", bound=InboundEvent)

EventCallback = Callable[[Any], Any]
Connector = Callable[[str], Awaitable[Any]]

SESSION_WELCOME = "session_welcome"
SESSION_KEEPALIVE = "session_keepalive"
NOTIFICATION = "notification"


async def _default_connector(url: str) -> Any:
    return await ws_connect(url, max_size=2**20)


class ProtocolSession:
    """A single EventSub WebSocket session for one credential identity.

    Attributes:
        name (str): Label used in logs (e.g. 'bot', 'broadcaster').
        last_activity (float): Monotonic time of the last frame received.
    """

    def __init__(
        self,
        api: TwitchAPI,
        auth: TokenProvider,
        *,
        name: str = "eventsub",
        ws_url: str = EVENTSUB_WS_URL,
        connector: Connector | None = None,
        welcome_timeout: float = EVENTSUB_WELCOME_TIMEOUT_SECONDS,
        shutdown_wait: float = EVENTSUB_SHUTDOWN_WAIT_SECONDS,
        tasks: BackgroundTasks | None = None,
    ) -> None:
        self.name = name
        self._api = api
        self._auth = auth
        self._ws_url = ws_url
        self._connector = connector or _default_connector
        self._welcome_timeout = welcome_timeout
        self._shutdown_wait = shutdown_wait
        self._tasks = tasks or BackgroundTasks(f"eventsub:{name}")

        self._ws: Any | None = None
        self._rx_task: asyncio.Task[None] | None = None
        self._session_id: str | None = None
        self._welcome = asyncio.Event()
        self._callbacks: dict[type, list[EventCallback]] = {}
        self.last_activity = time.monotonic()

    async def __aenter__(self) -> ProtocolSession:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def is_ready(self) -> bool:
        return self._session_id is not None

    @property
    def is_running(self) -> bool:
        return self._rx_task is not None and not self._rx_task.done()

    def on(self, event_type: type[E], callback: Callable[[E], Any]) -> None:
        """Register a callback for one event variant.

        Callbacks run synchronously inside the receive loop, in registration
        order. A callback returning a coroutine has it spawned as a detached
        task, so outbound I/O never blocks the loop.
        """
        self._callbacks.setdefault(event_type, []).append(callback)

    async def connect(self) -> None:
        """Open the transport and start the receive loop.

        Returns once the socket is open; it does not wait for the welcome
        frame. Use ``ensure_subscriptions`` for that.

        Raises:
            EventSubConnectionError: If the transport could not be opened.
        """
        if self.is_running:
            raise EventSubConnectionError(
                f"Session {self.name} is already connected", operation_type="connect"
            )
        stale, self._ws = self._ws, None
        if stale is not None:
            await self._close_transport(stale)
        logging.info(f"🔌 Connecting EventSub session {self.name} to {self._ws_url}")
        try:
            self._ws = await self._connector(self._ws_url)
        except Exception as e:
            raise EventSubConnectionError(
                f"WebSocket connection failed: {str(e)}", operation_type="connect"
            ) from e
        self._session_id = None
        self._welcome.clear()
        self._rx_task = asyncio.create_task(
            self._receive_loop(self._ws), name=f"eventsub-rx-{self.name}"
        )
        logging.info(f"🔌 EventSub session {self.name} transport open")

    async def ensure_subscriptions(self, specs: Sequence[SubscriptionSpec]) -> list[str]:
        """Create each subscription in order once a session id is known.

        Args:
            specs: Subscriptions to create against this session.

        Returns:
            list[str]: Ids of the created subscriptions, in order.

        Raises:
            NoSessionError: If no session_welcome arrived within the timeout.
            SubscriptionCreateError: On the first non-2xx response; the
                remaining subscriptions of this call are not attempted.
        """
        try:
            await asyncio.wait_for(self._welcome.wait(), timeout=self._welcome_timeout)
        except TimeoutError:
            raise NoSessionError(
                f"No EventSub session id for {self.name} (no session_welcome received)",
                operation_type="subscribe",
            ) from None

        created: list[str] = []
        for spec in specs:
            created.append(await self._create_subscription(spec))
        return created

    async def _create_subscription(self, spec: SubscriptionSpec) -> str:
        session_id = self._session_id
        if session_id is None:
            raise NoSessionError(
                f"EventSub session {self.name} lost its id before subscribing to {spec.type}",
                operation_type="subscribe",
            )
        data, status, _ = await self._api.request(
            "POST",
            EVENTSUB_SUBSCRIPTIONS_ENDPOINT,
            auth=self._auth,
            json_body=spec.to_body(session_id),
        )
        if not 200 <= status < 300:
            body = json.dumps(data)
            logging.error(f"❌ EventSub {status} for {spec.type}: {body}")
            raise SubscriptionCreateError(
                f"Subscription {spec.type} v{spec.version} rejected with HTTP {status}",
                operation_type="subscribe",
                status=status,
                body=body,
            )
        sub_id = ""
        items = data.get("data")
        if isinstance(items, list) and items and isinstance(items[0], dict):
            sub_id = str(items[0].get("id") or "")
        logging.info(f"✅ EventSub {self.name} subscribed to {spec.type} v{spec.version}")
        return sub_id

    async def _receive_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self.last_activity = time.monotonic()
                self._handle_frame(raw)
            logging.info(f"🔌 EventSub session {self.name} closed by server")
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            logging.warning(f"⚠️ EventSub session {self.name} connection closed: {e}")
        except Exception as e:
            logging.error(
                f"💥 EventSub receive loop for {self.name} ended: {type(e).__name__}: {e}"
            )
        finally:
            self._session_id = None
            self._welcome.clear()

    def _handle_frame(self, raw: str | bytes) -> None:
        """Decode and dispatch one complete frame. Never raises."""
        try:
            data = self._parse_frame(raw)
            message_type = data.get("metadata", {}).get("message_type")
            if message_type == SESSION_WELCOME:
                self._on_welcome(data)
            elif message_type == NOTIFICATION:
                self._on_notification(data)
            elif message_type == SESSION_KEEPALIVE:
                return
            else:
                logging.debug(f"EventSub {self.name} ignoring message type {message_type!r}")
        except DecodeError as e:
            logging.warning(f"⚠️ EventSub {self.name} dropped frame: {e}")
        except Exception as e:
            logging.warning(
                f"⚠️ EventSub {self.name} failed to process frame: {type(e).__name__}: {e}"
            )

    @staticmethod
    def _parse_frame(raw: str | bytes) -> dict[str, Any]:
        try:
            text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            data = json.loads(text)
        except (UnicodeDecodeError, ValueError) as e:
            raise DecodeError(f"invalid JSON frame: {e}", operation_type="decode") from e
        if not isinstance(data, dict) or not isinstance(data.get("metadata"), dict):
            raise DecodeError("frame has no metadata object", operation_type="decode")
        return data

    def _on_welcome(self, data: dict[str, Any]) -> None:
        session = data.get("payload", {}).get("session", {})
        session_id = session.get("id") if isinstance(session, dict) else None
        if not isinstance(session_id, str) or not session_id:
            raise DecodeError("session_welcome without session id", operation_type="welcome")
        self._session_id = session_id
        self._welcome.set()
        logging.info(f"✅ EventSub {self.name} handshake complete, session_id: {session_id}")

    def _on_notification(self, data: dict[str, Any]) -> None:
        payload = data.get("payload")
        if not isinstance(payload, dict):
            raise DecodeError("notification without payload", operation_type="decode")
        subscription = payload.get("subscription")
        sub_type = subscription.get("type") if isinstance(subscription, dict) else None
        if not isinstance(sub_type, str):
            raise DecodeError("notification without subscription type", operation_type="decode")
        event = decode_event(sub_type, payload.get("event"))
        if event is None:
            logging.debug(f"EventSub {self.name} ignoring notification {sub_type}")
            return
        self._dispatch(event)

    def _dispatch(self, event: InboundEvent) -> None:
        for callback in list(self._callbacks.get(type(event), ())):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    self._tasks.spawn(result, name=f"{self.name}-{type(event).__name__}")
            except Exception as e:
                logging.error(
                    f"💥 EventSub {self.name} callback {getattr(callback, '__name__', callback)!r} "
                    f"failed for {type(event).__name__}: {type(e).__name__}: {e}"
                )

    async def close(self) -> None:
        """Stop the receive loop and close the transport.

        The loop gets a short grace period to exit; in-flight detached
        callbacks are left to finish on their own.
        """
        task, self._rx_task = self._rx_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task}, timeout=self._shutdown_wait)

        ws, self._ws = self._ws, None
        self._session_id = None
        self._welcome.clear()
        if ws is not None:
            await self._close_transport(ws)

    async def _close_transport(self, ws: Any) -> None:
        if getattr(ws, "state", State.OPEN) in (State.CLOSING, State.CLOSED):
            return
        try:
            await ws.close()
            logging.info(f"🔌 EventSub session {self.name} disconnected")
        except (ConnectionClosed, OSError, RuntimeError) as e:
            logging.debug(f"EventSub {self.name} close race ignored: {e}")
