"""
WebSocket Gateway main application.
Real-time fanout for diners (session scope) and staff (store scope).
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from shared.config.constants import ALL_STAFF_ROLES, SessionStatus
from shared.config.settings import settings
from shared.config.logging import audit_ws_connection, mask_token, setup_logging, ws_gateway_logger as logger
from shared.infrastructure.db import get_db_context
from shared.infrastructure.events import (
    check_redis_health,
    close_redis_pool,
    get_redis_pool,
    publish_cart_editing,
)
from shared.security.auth import verify_session_token, verify_staff_token
from shared.utils.exceptions import AuthError
from shared.utils.health import HealthStatus
from rest_api.core.cors import configure_cors
from rest_api.services.domain import SessionService, effective_status, get_store_settings
from ws_gateway.connection_manager import ConnectionManager
from ws_gateway.redis_subscriber import RecentEvents, run_subscriber


# Global connection manager
manager = ConnectionManager()

CLOSE_AUTH_FAILED = 4001
CLOSE_SESSION_NOT_ACTIVE = 4003


# =============================================================================
# Session lookup
# =============================================================================


def _lookup_diner_sync(session_id: str, participant_id: str) -> dict[str, Any] | None:
    """
    Current status of the session and the participant's nickname.

    An overdue OPEN session reads as EXPIRED. Returns None for an unknown
    session or a participant that is not active in it.
    """
    with get_db_context() as db:
        service = SessionService(db)
        session = service.get_session(session_id)
        participant = next(
            (p for p in service.list_participants(session_id) if p.id == participant_id),
            None,
        )
        if participant is None:
            return None
        status = effective_status(session, get_store_settings(db, session.store_id))
        return {"status": status, "nickname": participant.nickname}


async def lookup_diner(session_id: str, participant_id: str) -> dict[str, Any] | None:
    """Run the session lookup off the event loop with a timeout."""
    return await asyncio.wait_for(
        asyncio.to_thread(_lookup_diner_sync, session_id, participant_id),
        timeout=settings.ws_auth_lookup_timeout,
    )


async def announce_editing(ctx: dict[str, str], nickname: str | None, is_editing: bool) -> None:
    """Relay a presence signal through Redis so every gateway process sees it."""
    try:
        redis = await get_redis_pool()
        await publish_cart_editing(
            redis,
            store_id=ctx["store_id"],
            session_id=ctx["session_id"],
            participant_id=ctx["participant_id"],
            nickname=nickname,
            is_editing=is_editing,
        )
    except Exception as e:
        logger.error(
            "Failed to publish presence",
            session_id=ctx["session_id"],
            participant_id=ctx["participant_id"],
            error=str(e),
        )


def parse_client_message(data: str) -> dict[str, Any] | None:
    """Client frames are JSON objects with a ``type``; plain "ping" is accepted too."""
    if data == "ping":
        return {"type": "ping"}
    try:
        message = json.loads(data)
    except json.JSONDecodeError:
        return None
    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        return None
    return message


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Starts the Redis subscriber and the heartbeat cleanup task.
    """
    setup_logging()
    logger.info("Starting WebSocket Gateway", port=settings.ws_gateway_port, env=settings.environment)

    subscriber_task = asyncio.create_task(start_redis_subscriber())
    cleanup_task = asyncio.create_task(start_heartbeat_cleanup())

    yield

    logger.info("Shutting down WebSocket Gateway")
    subscriber_task.cancel()
    cleanup_task.cancel()
    await asyncio.gather(subscriber_task, cleanup_task, return_exceptions=True)
    await manager.shutdown()

    await close_redis_pool()
    logger.info("Redis connection pool closed")


async def start_heartbeat_cleanup():
    """Periodically close connections without recent messages."""
    while True:
        try:
            await asyncio.sleep(settings.ws_heartbeat_check_interval)
            cleaned = await manager.cleanup_stale_connections()
            if cleaned > 0:
                logger.info("Cleaned up stale connections", count=cleaned)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Error in heartbeat cleanup", error=str(e))


async def start_redis_subscriber():
    """
    Run the subscriber, restarting it after Redis failures.

    The attempt budget covers consecutive failures only; it is reset every
    time a subscription goes live. Duplicate filtering spans restarts.
    """
    attempts = 0
    recent = RecentEvents()

    def reset_attempts() -> None:
        nonlocal attempts
        attempts = 0

    while attempts < settings.redis_max_reconnect_attempts:
        try:
            await run_subscriber(manager.route, on_subscribed=reset_attempts, recent=recent)
        except asyncio.CancelledError:
            break
        except Exception as e:
            attempts += 1
            logger.error(
                "Redis subscriber error, restarting",
                error=str(e),
                attempt=attempts,
                max_attempts=settings.redis_max_reconnect_attempts,
            )
            await asyncio.sleep(settings.redis_subscriber_reconnect_delay)
    else:
        logger.critical("Redis subscriber gave up reconnecting", attempts=attempts)


# Create FastAPI application
app = FastAPI(
    title="Table Cart WebSocket Gateway",
    description="Real-time cart, order and session events",
    version="0.1.0",
    lifespan=lifespan,
)

configure_cors(app)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/ws/health")
def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": "ws-gateway",
        "environment": settings.environment,
        **manager.get_stats(),
    }


@app.get("/ws/health/detailed")
async def detailed_health_check():
    """Detailed health check that verifies Redis connectivity."""
    redis = await check_redis_health()
    healthy = redis.status == HealthStatus.HEALTHY
    checks = {
        "service": "ws-gateway",
        "environment": settings.environment,
        "connections": manager.get_stats(),
        "dependencies": {"redis": redis.to_dict()},
        "status": "healthy" if healthy else "degraded",
    }
    if not healthy:
        return JSONResponse(content=checks, status_code=503)
    return checks


# =============================================================================
# WebSocket Endpoints
# =============================================================================


@app.websocket("/ws/diner")
async def diner_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="Session token"),
):
    """
    WebSocket endpoint for the devices of a table session.

    Receives every event of the session: CART_UPDATED, CART_EDITING,
    ORDER_PLACED, ORDER_STATUS_CHANGED, PARTICIPANT_JOINED / LEFT and
    SESSION_CLOSED. Sends ``{"type": "ping"}`` and
    ``{"type": "cart:editing", "is_editing": bool}``.
    """
    endpoint = "/ws/diner"
    try:
        ctx = verify_session_token(token)
    except AuthError as e:
        audit_ws_connection("AUTH_FAILED", endpoint, reason=e.detail, token=mask_token(token))
        await websocket.close(code=CLOSE_AUTH_FAILED, reason=e.detail)
        return

    session_id = ctx["session_id"]
    participant_id = ctx["participant_id"]

    try:
        diner = await lookup_diner(session_id, participant_id)
    except asyncio.TimeoutError:
        logger.error("DB lookup timeout for diner connection", session_id=session_id)
        await websocket.close(code=1011, reason="Try again later")
        return
    except Exception as e:
        # Unknown session (NotFoundError) or a database failure
        audit_ws_connection("REJECTED", endpoint, session_id=session_id, reason=str(e))
        await websocket.close(code=CLOSE_AUTH_FAILED, reason="Session unavailable")
        return

    if diner is None:
        audit_ws_connection("AUTH_FAILED", endpoint, session_id=session_id, participant_id=participant_id,
                            reason="participant inactive")
        await websocket.close(code=CLOSE_AUTH_FAILED, reason="Participant is not active")
        return
    if diner["status"] != SessionStatus.OPEN:
        audit_ws_connection("REJECTED", endpoint, session_id=session_id, participant_id=participant_id,
                            reason=f"session {diner['status']}")
        await websocket.close(code=CLOSE_SESSION_NOT_ACTIVE, reason=f"Session is {diner['status']}")
        return

    try:
        await manager.connect(websocket, session_id=session_id, participant_id=participant_id)
    except ConnectionError as e:
        audit_ws_connection("REJECTED", endpoint, session_id=session_id, participant_id=participant_id,
                            reason=str(e))
        return

    audit_ws_connection("CONNECT", endpoint, session_id=session_id, participant_id=participant_id,
                        store_id=ctx["store_id"])
    editing = False

    try:
        while True:
            data = await websocket.receive_text()

            if len(data) > settings.ws_max_message_size:
                logger.warning(
                    "Message size exceeded limit from diner",
                    session_id=session_id,
                    size=len(data),
                    max_size=settings.ws_max_message_size,
                )
                await websocket.close(code=1009, reason="Message too large")
                break

            manager.record_heartbeat(websocket)
            message = parse_client_message(data)
            if message is None:
                logger.debug("Malformed message from diner", session_id=session_id, message=data[:100])
                continue

            if message["type"] == "ping":
                await websocket.send_json({"type": "pong"})
            elif message["type"] == "cart:editing":
                is_editing = bool(message.get("is_editing"))
                if is_editing != editing:
                    editing = is_editing
                    await announce_editing(ctx, diner["nickname"], is_editing)
            else:
                logger.debug("Unknown message from diner", session_id=session_id, message_type=message["type"])

    except WebSocketDisconnect:
        pass
    finally:
        if editing:
            await announce_editing(ctx, diner["nickname"], False)
        await manager.disconnect(websocket)
        audit_ws_connection("DISCONNECT", endpoint, session_id=session_id, participant_id=participant_id)


@app.websocket("/ws/staff")
async def staff_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="Staff token"),
):
    """
    WebSocket endpoint for staff of a store.

    Receives ORDER_PLACED and ORDER_STATUS_CHANGED for every table of the
    store in the token. The store scope comes only from the token.
    """
    endpoint = "/ws/staff"
    try:
        ctx = verify_staff_token(token)
    except AuthError as e:
        audit_ws_connection("AUTH_FAILED", endpoint, reason=e.detail, token=mask_token(token))
        await websocket.close(code=CLOSE_AUTH_FAILED, reason=e.detail)
        return

    store_id = ctx["store_id"]
    if not set(ctx["roles"]).intersection(ALL_STAFF_ROLES):
        audit_ws_connection("REJECTED", endpoint, store_id=store_id, reason="no staff role", user_id=ctx["user_id"])
        await websocket.close(code=CLOSE_AUTH_FAILED, reason="Insufficient role")
        return

    try:
        await manager.connect(websocket, store_id=store_id)
    except ConnectionError as e:
        audit_ws_connection("REJECTED", endpoint, store_id=store_id, reason=str(e), user_id=ctx["user_id"])
        return

    audit_ws_connection("CONNECT", endpoint, store_id=store_id, user_id=ctx["user_id"], roles=ctx["roles"])

    try:
        while True:
            data = await websocket.receive_text()

            if len(data) > settings.ws_max_message_size:
                await websocket.close(code=1009, reason="Message too large")
                break

            manager.record_heartbeat(websocket)
            message = parse_client_message(data)
            if message is not None and message["type"] == "ping":
                await websocket.send_json({"type": "pong"})
            else:
                logger.debug("Unknown message from staff", user_id=ctx["user_id"], message=data[:100])

    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(websocket)
        audit_ws_connection("DISCONNECT", endpoint, store_id=store_id, user_id=ctx["user_id"])


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ws_gateway.main:app",
        host="0.0.0.0",
        port=settings.ws_gateway_port,
        reload=settings.debug,
    )
