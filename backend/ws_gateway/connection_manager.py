"""
WebSocket connection manager.
Tracks active connections by session scope (diners) and store scope (staff).

A connection is registered in exactly the scopes its verified credential
implies: a diner in its session, a staff member in its store. Delivery for a
channel only ever reaches connections registered under that channel's scope.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.infrastructure.events import CART_EDITING, parse_channel

logger = get_logger(__name__)


def _is_ws_connected(ws: WebSocket) -> bool:
    """True if the connection is ready to send/receive messages."""
    return ws.client_state == WebSocketState.CONNECTED and ws.application_state == WebSocketState.CONNECTED


class ConnectionManager:
    """
    Manages WebSocket connections for real-time fanout.

    Connections are indexed by:
    - session_id: every device of a table session
    - store_id: staff of a store

    Index changes happen under an asyncio.Lock; sends iterate over snapshots.
    """

    def __init__(
        self,
        heartbeat_timeout: float | None = None,
        max_connections_per_participant: int | None = None,
    ):
        self.heartbeat_timeout = heartbeat_timeout or settings.ws_heartbeat_timeout
        self.max_connections_per_participant = (
            max_connections_per_participant or settings.ws_max_connections_per_participant
        )
        self._shutdown = False
        self.by_session: dict[str, set[WebSocket]] = {}
        self.by_store: dict[str, set[WebSocket]] = {}
        self._ws_to_session: dict[WebSocket, str] = {}
        self._ws_to_store: dict[WebSocket, str] = {}
        self._ws_to_participant: dict[WebSocket, str] = {}
        self._last_heartbeat: dict[WebSocket, float] = {}
        self._lock = asyncio.Lock()

    async def connect(
        self,
        websocket: WebSocket,
        session_id: str | None = None,
        participant_id: str | None = None,
        store_id: str | None = None,
        timeout: float = 5.0,
    ) -> None:
        """
        Accept a WebSocket connection and register it.

        Diners pass session_id + participant_id; staff pass store_id.

        Raises:
            ConnectionError: Shutting down, accept timed out, or the
                participant already has too many open connections.
        """
        if self._shutdown:
            raise ConnectionError("Server is shutting down")
        if session_id is None and store_id is None:
            raise ValueError("A connection needs a session or a store scope")

        try:
            await asyncio.wait_for(websocket.accept(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConnectionError("WebSocket accept timed out")

        if participant_id is not None and self.connections_of(participant_id) >= self.max_connections_per_participant:
            await websocket.close(code=1008, reason="Too many connections")
            raise ConnectionError(
                f"Participant {participant_id} exceeded max connections ({self.max_connections_per_participant})"
            )

        async with self._lock:
            self._last_heartbeat[websocket] = time.time()

            if session_id is not None:
                self.by_session.setdefault(session_id, set()).add(websocket)
                self._ws_to_session[websocket] = session_id
            if store_id is not None:
                self.by_store.setdefault(store_id, set()).add(websocket)
                self._ws_to_store[websocket] = store_id
            if participant_id is not None:
                self._ws_to_participant[websocket] = participant_id

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a WebSocket connection from all registrations."""
        async with self._lock:
            self._last_heartbeat.pop(websocket, None)
            self._ws_to_participant.pop(websocket, None)

            session_id = self._ws_to_session.pop(websocket, None)
            if session_id is not None and session_id in self.by_session:
                self.by_session[session_id].discard(websocket)
                if not self.by_session[session_id]:
                    del self.by_session[session_id]

            store_id = self._ws_to_store.pop(websocket, None)
            if store_id is not None and store_id in self.by_store:
                self.by_store[store_id].discard(websocket)
                if not self.by_store[store_id]:
                    del self.by_store[store_id]

    def connections_of(self, participant_id: str) -> int:
        return sum(1 for pid in self._ws_to_participant.values() if pid == participant_id)

    # =========================================================================
    # Delivery
    # =========================================================================

    async def _send_all(
        self,
        connections: list[WebSocket],
        payload: dict[str, Any],
        scope: str,
        scope_id: str,
        exclude_participant_id: str | None = None,
    ) -> int:
        sent = 0
        for ws in connections:
            if exclude_participant_id is not None and self._ws_to_participant.get(ws) == exclude_participant_id:
                continue
            if not _is_ws_connected(ws):
                logger.debug("Skipping send to disconnected socket", scope=scope, scope_id=scope_id)
                continue
            try:
                await ws.send_json(payload)
                sent += 1
            except Exception as e:
                logger.warning("Failed to send message", scope=scope, scope_id=scope_id, error=str(e))
        return sent

    async def send_to_session(
        self,
        session_id: str,
        payload: dict[str, Any],
        exclude_participant_id: str | None = None,
    ) -> int:
        """
        Send a message to every device of a table session.

        Returns:
            Number of connections that received the message.
        """
        connections = list(self.by_session.get(session_id, ()))
        return await self._send_all(connections, payload, "session", session_id, exclude_participant_id)

    async def send_to_store(self, store_id: str, payload: dict[str, Any]) -> int:
        """Send a message to every staff connection of a store."""
        connections = list(self.by_store.get(store_id, ()))
        return await self._send_all(connections, payload, "store", store_id)

    async def route(self, channel: str, event: dict[str, Any]) -> int:
        """
        Deliver an event received on ``channel`` to that channel's scope only.

        Presence events skip the devices of the participant that emitted them.
        Unknown channels deliver nothing.
        """
        parsed = parse_channel(channel)
        if parsed is None:
            logger.warning("Event on unknown channel dropped", channel=channel)
            return 0

        scope, scope_id = parsed
        if scope == "store":
            return await self.send_to_store(scope_id, event)

        exclude = None
        if event.get("type") == CART_EDITING:
            exclude = (event.get("actor") or {}).get("participant_id")
        return await self.send_to_session(scope_id, event, exclude_participant_id=exclude)

    # =========================================================================
    # Stats
    # =========================================================================

    @property
    def total_connections(self) -> int:
        return len(self._last_heartbeat)

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_connections": self.total_connections,
            "sessions_with_connections": len(self.by_session),
            "stores_with_connections": len(self.by_store),
        }

    # =========================================================================
    # Heartbeat tracking
    # =========================================================================

    def record_heartbeat(self, websocket: WebSocket) -> None:
        self._last_heartbeat[websocket] = time.time()

    def get_stale_connections(self) -> list[WebSocket]:
        """Connections with no message within the heartbeat timeout."""
        now = time.time()
        return [
            ws for ws, last_time in list(self._last_heartbeat.items())
            if now - last_time > self.heartbeat_timeout
        ]

    async def cleanup_stale_connections(self) -> int:
        """
        Close and remove stale connections.

        Returns:
            Number of connections cleaned up.
        """
        stale = self.get_stale_connections()
        for ws in stale:
            try:
                await ws.close(code=1001, reason="Heartbeat timeout")
            except Exception as e:
                logger.warning("Failed to close stale connection", error=str(e))
            await self.disconnect(ws)
        return len(stale)

    async def shutdown(self) -> int:
        """
        Graceful shutdown: reject new connections and close existing ones.

        Returns:
            Number of connections closed.
        """
        self._shutdown = True
        logger.info("WebSocket manager shutting down")

        async with self._lock:
            all_connections = list(self._last_heartbeat)

        closed = 0
        for ws in all_connections:
            try:
                await ws.close(code=1001, reason="Server shutdown")
                closed += 1
            except Exception as e:
                logger.warning("Failed to close connection during shutdown", error=str(e))
            await self.disconnect(ws)

        logger.info("WebSocket shutdown complete", closed=closed)
        return closed

    def is_shutting_down(self) -> bool:
        return self._shutdown
