"""WebSocket endpoint with JWT auth."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from friendradar.core.config import settings
from friendradar.core.deps import user_from_token
from friendradar.core.presence import WebSocketChannel
from friendradar.db.session import get_db
from friendradar.models.user import User
from friendradar.services.engine import PresenceEngine

logger = logging.getLogger(__name__)

router = APIRouter()


async def _handle_client_event(engine: PresenceEngine, db: Session, user: User, message: dict) -> dict | None:
    """Run a client-sent event. Returns an error reply, or None."""
    event = message.get("event")
    data = message.get("data") or {}
    try:
        if event == "onMyWay":
            await run_in_threadpool(
                engine.on_my_way,
                db,
                user,
                int(data["friendId"]),
                float(data["latitude"]),
                float(data["longitude"]),
                data.get("destination"),
            )
        elif event == "batteryUpdate":
            await run_in_threadpool(engine.update_battery, db, user, int(data["batteryLevel"]))
        else:
            return {"event": "error", "data": {"message": f"Unknown event: {event}"}}
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        return {"event": "error", "data": {"message": str(e) or "Invalid payload"}}
    return None


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, db: Session = Depends(get_db)):
    """
    WebSocket endpoint. Client connects with ?token=<jwt>.
    Server pushes events: nearbyAlert, weatherShare, sosAlert, sosResolved,
    friendOnMyWay, friendBatteryUpdate.
    Client may send "ping" or {"event": "onMyWay" | "batteryUpdate", "data": {...}}.
    """
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4001, reason="Missing token")
        return

    user = await run_in_threadpool(user_from_token, db, token)
    if user is None:
        await websocket.close(code=4003, reason="Invalid or expired token")
        return

    engine: PresenceEngine = websocket.app.state.engine
    channel = WebSocketChannel(websocket, maxsize=settings.ws_outbox_size)
    engine.broadcaster.join(user.id, channel)
    await websocket.accept()
    pump = asyncio.create_task(channel.pump())
    try:
        while True:
            text = await websocket.receive_text()
            # Echo pong for heartbeat
            if text == "ping":
                await websocket.send_text('{"event":"pong"}')
                continue
            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                await websocket.send_text(json.dumps({"event": "error", "data": {"message": "Invalid JSON"}}))
                continue
            if not isinstance(message, dict):
                continue
            reply = await _handle_client_event(engine, db, user, message)
            if reply is not None:
                await websocket.send_text(json.dumps(reply))
    except WebSocketDisconnect:
        pass
    finally:
        pump.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pump
        engine.broadcaster.leave(channel)
        channel.close()
