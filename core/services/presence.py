"""
Presence registry: which identity currently holds a live connection.

One connection per identity; a reconnect replaces the previous mapping. Push
delivery is best-effort: no queueing, no acknowledgement, no redelivery.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Optional, Protocol

import core.config as config

logger = config.logger

EVENT_ONLINE_USERS = "getOnlineUsers"


class Connection(Protocol):
    async def send_json(self, data: Any) -> None:
        ...


def event_envelope(event: str, payload: Any) -> dict:
    return {"event": event, "data": payload}


class PresenceRegistry:
    """Interface for pushing events to connected identities."""

    async def connect(self, identity: str, connection: Connection) -> None:
        raise NotImplementedError

    async def disconnect(self, connection: Connection) -> Optional[str]:
        raise NotImplementedError

    async def push(self, identity: str, event: str, payload: Any) -> bool:
        raise NotImplementedError

    async def broadcast(self, event: str, payload: Any) -> int:
        raise NotImplementedError

    def dispatch(self, identity: str, event: str, payload: Any) -> None:
        raise NotImplementedError

    def dispatch_broadcast(self, event: str, payload: Any) -> None:
        raise NotImplementedError

    def online_identities(self) -> list[str]:
        raise NotImplementedError

    def is_online(self, identity: str) -> bool:
        return identity in self.online_identities()

    async def drain(self) -> None:
        return None

    async def close(self) -> None:
        return None


class InMemoryPresenceRegistry(PresenceRegistry):
    """Process-local registry; safe to call from the event loop and worker threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: dict[str, Connection] = {}
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    async def connect(self, identity: str, connection: Connection) -> None:
        with self._lock:
            previous = self._connections.get(identity)
            self._connections[identity] = connection
        if previous is not None and previous is not connection:
            logger.info("presence_replaced", extra={"identity": identity})
        logger.info("presence_connected", extra={"identity": identity})
        await self._broadcast_online_users()

    async def disconnect(self, connection: Connection) -> Optional[str]:
        removed = None
        with self._lock:
            for identity, current in self._connections.items():
                if current is connection:
                    removed = identity
                    break
            if removed is not None:
                del self._connections[removed]
        if removed is None:
            # Stale handle: the identity already reconnected elsewhere.
            return None
        logger.info("presence_disconnected", extra={"identity": removed})
        await self._broadcast_online_users()
        return removed

    def online_identities(self) -> list[str]:
        with self._lock:
            return list(self._connections.keys())

    def is_online(self, identity: str) -> bool:
        with self._lock:
            return identity in self._connections

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _send(self, identity: Optional[str], connection: Connection, event: str, payload: Any) -> bool:
        try:
            await connection.send_json(event_envelope(event, payload))
            return True
        except Exception as exc:
            logger.warning(
                "presence_push_failed",
                extra={"identity": identity, "event": event, "error": str(exc)},
            )
            return False

    async def push(self, identity: str, event: str, payload: Any) -> bool:
        with self._lock:
            connection = self._connections.get(identity)
        if connection is None:
            return False
        return await self._send(identity, connection, event, payload)

    async def broadcast(self, event: str, payload: Any) -> int:
        with self._lock:
            targets = list(self._connections.items())
        delivered = 0
        for identity, connection in targets:
            if await self._send(identity, connection, event, payload):
                delivered += 1
        return delivered

    async def _broadcast_online_users(self) -> None:
        await self.broadcast(EVENT_ONLINE_USERS, self.online_identities())

    def _track(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def dispatch(self, identity: str, event: str, payload: Any) -> None:
        """Schedule a push without waiting for it."""
        if not self.is_online(identity):
            return
        self._track(self.push(identity, event, payload))

    def dispatch_broadcast(self, event: str, payload: Any) -> None:
        self._track(self.broadcast(event, payload))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait for every scheduled push to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        with self._lock:
            self._connections.clear()
        logger.info("presence_registry_closed")
