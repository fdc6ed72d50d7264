"""Connection registry — subscription-by-attribute WebSocket fan-out.

Learn: Every open WebSocket is registered here. A client declares what it
wants to hear about by sending a subscription message; the connection is
then tagged with a (kind, target) pair:

  {"type": "subscribe", "sensor_id": 5}                          → (sensor, "5")
  {"type": "subscribe_new_work_orders", "organization_id": 3}    → (new_work_orders, "3")
  {"type": "subscribe_work_orders_advance", "organization_id": 3}→ (work_orders_advance, "3")
  {"type": "subscribe_alerts", "organization_id": 3}             → (alert, "3")

The latest subscription message wins. Producers call broadcast(kind,
target, payload) and only matching, open connections receive the JSON.

Delivery is fire-and-forget, live subscribers only: nothing is queued or
retried. A connection whose send fails or times out is deregistered and
closed with 1011 so the client reconnects. Clients that miss a message
re-read state through the REST API. Targets are stored as canonical
strings so 5, 5.0 and "5" match the same subscribers.
"""

import asyncio
import contextlib
import json
import threading
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

import structlog
from fastapi import Request
from starlette.websockets import WebSocket, WebSocketState

logger = structlog.get_logger()


class SubscriptionKind(str, Enum):
    SENSOR = "sensor"
    NEW_WORK_ORDERS = "new_work_orders"
    WORK_ORDERS_ADVANCE = "work_orders_advance"
    ALERT = "alert"


# message "type" → (kind, field holding the target id)
SUBSCRIPTION_MESSAGES: dict[str, tuple[SubscriptionKind, str]] = {
    "subscribe": (SubscriptionKind.SENSOR, "sensor_id"),
    "suscribe": (SubscriptionKind.SENSOR, "sensor_id"),  # legacy client spelling
    "subscribe_new_work_orders": (SubscriptionKind.NEW_WORK_ORDERS, "organization_id"),
    "subscribe_work_orders_advance": (SubscriptionKind.WORK_ORDERS_ADVANCE, "organization_id"),
    "subscribe_alerts": (SubscriptionKind.ALERT, "organization_id"),
}

# close code sent to a client whose delivery failed, so it reconnects
DELIVERY_FAILED_CLOSE_CODE = 1011


def normalize_target(value: Any) -> Optional[str]:
    """Canonical string form of a subscription target, or None if unusable.

    5, 5.0 and "5" all become "5". Booleans, containers and empty
    strings are rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class Connection:
    """One registered WebSocket and its current subscription."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.kind: Optional[SubscriptionKind] = None
        self.target: Optional[str] = None

    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def matches(self, kind: SubscriptionKind, target: str) -> bool:
        return self.kind == kind and self.target == target


class ConnectionRegistry:
    """Process-wide set of live connections.

    attach() must run on the event loop before broadcasts are delivered;
    until then broadcast() only logs a warning. broadcast() itself is
    synchronous and may be called from the loop or from a worker thread.
    """

    def __init__(self, send_timeout: float = 5.0):
        self.send_timeout = send_timeout
        self._lock = threading.Lock()
        self._connections: set[Connection] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: set[asyncio.Task] = set()

    # ─── Lifecycle ─────────────────────────────────────────

    def attach(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Bind the registry to the running event loop."""
        self._loop = loop or asyncio.get_running_loop()
        logger.info("realtime.attached")

    async def close(self) -> None:
        """Wait for in-flight deliveries, then forget every connection."""
        await self.drain()
        with self._lock:
            self._connections.clear()
        self._loop = None
        logger.info("realtime.closed")

    @property
    def initialized(self) -> bool:
        return self._loop is not None

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    # ─── Connection events ─────────────────────────────────

    def on_open(self, websocket: WebSocket) -> Connection:
        connection = Connection(websocket)
        with self._lock:
            self._connections.add(connection)
        logger.debug("realtime.connected")
        return connection

    def on_message(self, connection: Connection, raw: str) -> Optional[dict[str, Any]]:
        """Apply a client frame. Returns a reply to send back, if any.

        Malformed JSON and unknown message types are logged and dropped;
        the connection stays open.
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning("realtime.malformed_message", error=str(e))
            return None
        if not isinstance(data, dict):
            logger.warning("realtime.malformed_message", error="not a JSON object")
            return None

        msg_type = data.get("type")
        if msg_type == "ping":
            return {"type": "pong"}

        subscription = SUBSCRIPTION_MESSAGES.get(msg_type)
        if subscription is None:
            logger.debug("realtime.ignored_message", type=msg_type)
            return None

        kind, field = subscription
        target = normalize_target(data.get(field))
        if target is None:
            logger.debug("realtime.missing_target", type=msg_type, field=field)
            return None

        with self._lock:
            connection.kind = kind
            connection.target = target
        logger.info("realtime.subscribed", kind=kind.value, target=target)
        return None

    def on_close(self, connection: Connection) -> None:
        with self._lock:
            self._connections.discard(connection)

    def on_error(self, connection: Connection, error: BaseException) -> None:
        logger.warning("realtime.connection_error", error=str(error))
        self.on_close(connection)

    # ─── Broadcast ─────────────────────────────────────────

    def broadcast(self, kind: SubscriptionKind, target: Any, payload: Any) -> int:
        """Send ``payload`` as JSON to every open connection subscribed to (kind, target).

        Returns the number of deliveries scheduled. Never raises on
        delivery problems.
        """
        loop = self._loop
        if loop is None:
            logger.warning("realtime.not_initialized", kind=kind.value, target=str(target))
            return 0

        target = normalize_target(target)
        if target is None:
            logger.warning("realtime.invalid_target", kind=kind.value)
            return 0

        with self._lock:
            recipients = [c for c in self._connections if c.matches(kind, target)]
        recipients = [c for c in recipients if c.is_open()]
        if not recipients:
            return 0

        message = json.dumps(payload, default=_json_default)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._schedule(loop, recipients, message)
        else:
            try:
                loop.call_soon_threadsafe(self._schedule, loop, recipients, message)
            except RuntimeError as e:
                # loop already closed during shutdown
                logger.warning("realtime.loop_unavailable", error=str(e))
                return 0

        logger.debug(
            "realtime.broadcast",
            kind=kind.value,
            target=target,
            recipients=len(recipients),
        )
        return len(recipients)

    def _schedule(
        self, loop: asyncio.AbstractEventLoop, recipients: list[Connection], message: str
    ) -> None:
        for connection in recipients:
            task = loop.create_task(self._deliver(connection, message))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, connection: Connection, message: str) -> None:
        try:
            await asyncio.wait_for(
                connection.websocket.send_text(message), timeout=self.send_timeout
            )
        except Exception as e:
            self.on_error(connection, e)
            with contextlib.suppress(Exception):
                await connection.websocket.close(code=DELIVERY_FAILED_CLOSE_CODE)

    async def drain(self) -> None:
        """Wait until every scheduled delivery has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def get_connection_registry(request: Request) -> ConnectionRegistry:
    """The process-wide registry created by the app factory."""
    return request.app.state.connections
