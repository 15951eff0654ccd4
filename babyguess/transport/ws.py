# babyguess/transport/ws.py
from __future__ import annotations

import ipaddress
import logging
import uuid
from urllib.parse import urlparse

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from babyguess.settings import get_settings
from babyguess.store.kv import StoreUnavailable
from babyguess.transport.dispatcher import dispatch_message
from babyguess.transport.protocols import OutError

logger = logging.getLogger(__name__)

router = APIRouter()


def _is_private_ip(host: str) -> bool:
    """Return True if host is a private IP (192.168.x.x, 10.x.x.x, 172.16-31.x.x)."""
    try:
        ip = ipaddress.ip_address(host)
        return ip.is_private
    except ValueError:
        return False


def origin_allowed(origin: str | None, allowed: set[str], allow_lan: bool) -> bool:
    if origin is None or origin in allowed:
        return True
    if allow_lan:
        o = urlparse(origin)
        return _is_private_ip(o.hostname or "") and o.port == 5173
    return False


async def _check_origin_or_close(websocket: WebSocket) -> bool:
    settings = get_settings()
    allowed = {o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()}
    if origin_allowed(websocket.headers.get("origin"), allowed, settings.WS_ALLOW_LAN_ORIGINS):
        return True
    await websocket.close(code=1008)
    return False


@router.websocket("/ws")
async def ws_game(websocket: WebSocket):
    """
    Subscription feed for the game topic. Clients may also send command
    messages here; replies go to the sender only, events to every subscriber.
    """
    if not await _check_origin_or_close(websocket):
        return

    await websocket.accept()

    app = websocket.app
    topic = app.state.gateway.topic
    wsman = app.state.wsman
    conn_id = uuid.uuid4().hex[:10]
    await wsman.subscribe(topic, conn_id, websocket)

    try:
        # reconnect recovery: every new subscriber starts from a full snapshot
        await websocket.send_json((await app.state.game.get_state()).model_dump())
        while True:
            raw = await websocket.receive_json()
            try:
                replies = await dispatch_message(app=app, raw=raw)
            except StoreUnavailable as e:
                logger.error("store unavailable: %s", e, extra={"error_code": "STORE_UNAVAILABLE"})
                replies = [OutError(code="STORE_UNAVAILABLE", message="Game state store unavailable, try again").model_dump()]
            for reply in replies:
                await websocket.send_json(reply)
    except WebSocketDisconnect:
        return
    except StoreUnavailable as e:
        logger.error("store unavailable on connect: %s", e, extra={"error_code": "STORE_UNAVAILABLE"})
        await websocket.close(code=1011)
    finally:
        await wsman.unsubscribe(topic, conn_id)
