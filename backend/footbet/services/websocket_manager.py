"""
backend/footbet/services/websocket_manager.py

Purpose:
    Process-local registry of realtime subscribers on /ws/predictions.
    Each connection carries filters over dates, categories and event types;
    a broadcast reaches a connection only when every non-empty filter
    matches the event. Heartbeat pings reap dead sockets.

Dependencies:
    - fastapi.WebSocket
    - footbet.config
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fastapi import WebSocket

from footbet.config import settings
from footbet.utils import utcnow

logger = logging.getLogger("footbet.websocket_manager")

FILTER_KEYS = ("dates", "categories", "event_types")

# Event names pushed to subscribers.
CATEGORY_PUBLISHED = "category.published"
CATEGORY_UNPUBLISHED = "category.unpublished"
CATEGORY_GENERATED = "category.generated"
CATEGORY_SETTLED = "category.settled"


class ConnectionLimitError(RuntimeError):
    pass


def _clean_tokens(values: Any) -> set[str]:
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple, set)):
        return set()
    return {str(v).strip() for v in values if v is not None and str(v).strip()}


def parse_filters(payload: Any) -> dict[str, set[str]]:
    if not isinstance(payload, dict):
        payload = {}
    return {key: _clean_tokens(payload.get(key)) for key in FILTER_KEYS}


@dataclass
class Subscriber:
    connection_id: str
    user_id: str | None
    websocket: WebSocket
    filters: dict[str, set[str]]
    connected_at: datetime = field(default_factory=utcnow)
    last_seen_at: datetime = field(default_factory=utcnow)

    def wants(self, event_type: str, day: str | None, category: str | None) -> bool:
        checks = (("event_types", event_type), ("dates", day), ("categories", category))
        for key, value in checks:
            allowed = self.filters.get(key)
            if allowed and value not in allowed:
                return False
        return True


class WebSocketManager:
    def __init__(self, *, max_connections: int, heartbeat_seconds: int) -> None:
        self._max_connections = max(1, int(max_connections))
        self._heartbeat_seconds = max(1, int(heartbeat_seconds))
        self._subscribers: dict[str, Subscriber] = {}
        self._lock = asyncio.Lock()
        self._heartbeat_task: asyncio.Task | None = None
        self._running = False
        self.events_sent = 0
        self.dropped = 0

    @property
    def active(self) -> int:
        return len(self._subscribers)

    async def start(self) -> None:
        async with self._lock:
            if self._running:
                return
            self._running = True
            self._heartbeat_task = asyncio.create_task(self._heartbeat(), name="ws_heartbeat")
        logger.info("WebSocket manager started (max=%d)", self._max_connections)

    async def stop(self) -> None:
        async with self._lock:
            if not self._running:
                return
            self._running = False
            task, self._heartbeat_task = self._heartbeat_task, None
            self._subscribers.clear()
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("WebSocket manager stopped")

    async def connect(
        self,
        websocket: WebSocket,
        *,
        user_id: str | None = None,
        filters: dict[str, Any] | None = None,
    ) -> str:
        """Accept and register a socket. Raises ConnectionLimitError when full."""
        async with self._lock:
            if len(self._subscribers) >= self._max_connections:
                raise ConnectionLimitError("max_connections_exceeded")
            connection_id = uuid.uuid4().hex
            await websocket.accept()
            self._subscribers[connection_id] = Subscriber(
                connection_id=connection_id,
                user_id=user_id,
                websocket=websocket,
                filters=parse_filters(filters),
            )
        return connection_id

    async def disconnect(self, connection_id: str) -> None:
        async with self._lock:
            self._subscribers.pop(connection_id, None)

    async def apply_command(self, connection_id: str, command: str, payload: Any) -> dict[str, list[str]]:
        """Apply ``subscribe`` / ``unsubscribe`` / ``replace`` to a connection's filters."""
        incoming = parse_filters(payload)
        async with self._lock:
            sub = self._subscribers.get(connection_id)
            if sub is None:
                raise KeyError(connection_id)
            if command == "replace":
                sub.filters = incoming
            elif command == "subscribe":
                for key in FILTER_KEYS:
                    sub.filters[key] |= incoming[key]
            elif command == "unsubscribe":
                for key in FILTER_KEYS:
                    sub.filters[key] -= incoming[key]
            else:
                raise ValueError(f"unsupported command '{command}'")
            sub.last_seen_at = utcnow()
            return {key: sorted(sub.filters[key]) for key in FILTER_KEYS}

    async def broadcast(
        self,
        event_type: str,
        data: dict[str, Any],
        *,
        day: str | None = None,
        category: str | None = None,
    ) -> int:
        """Send one event to every matching subscriber. Returns delivery count."""
        message = {"type": event_type, "data": data, "ts": utcnow().isoformat()}
        async with self._lock:
            targets = [s for s in self._subscribers.values() if s.wants(event_type, day, category)]

        delivered = 0
        dead: list[str] = []
        for sub in targets:
            try:
                await sub.websocket.send_json(message)
                delivered += 1
            except Exception as exc:
                logger.debug("Dropping subscriber %s after send failure: %s", sub.connection_id, exc)
                dead.append(sub.connection_id)
        await self._drop(dead)
        self.events_sent += 1
        return delivered

    async def _drop(self, connection_ids: list[str]) -> None:
        for connection_id in connection_ids:
            await self.disconnect(connection_id)
        self.dropped += len(connection_ids)

    async def _heartbeat(self) -> None:
        while self._running:
            await asyncio.sleep(self._heartbeat_seconds)
            async with self._lock:
                subs = list(self._subscribers.values())
            dead = []
            for sub in subs:
                try:
                    await sub.websocket.send_json({"type": "ping", "ts": utcnow().isoformat()})
                except Exception:
                    dead.append(sub.connection_id)
            await self._drop(dead)

    def stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "active_connections": self.active,
            "max_connections": self._max_connections,
            "events_sent": self.events_sent,
            "dropped_connections": self.dropped,
        }


websocket_manager = WebSocketManager(
    max_connections=settings.WS_MAX_CONNECTIONS,
    heartbeat_seconds=settings.WS_HEARTBEAT_SECONDS,
)


async def publish_category_event(event_type: str, day: str, category: str, **extra: Any) -> int:
    """Broadcast a category lifecycle event; never lets a socket failure reach the caller."""
    if not settings.WS_EVENTS_ENABLED:
        return 0
    try:
        return await websocket_manager.broadcast(
            event_type,
            {"date": day, "category": category, **extra},
            day=day,
            category=category,
        )
    except Exception:
        logger.exception("Realtime broadcast failed: %s %s/%s", event_type, day, category)
        return 0
