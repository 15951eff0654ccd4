# babyguess/transport/ws_manager.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict

from fastapi import WebSocket

logger = logging.getLogger(__name__)


@dataclass
class Conn:
    conn_id: str
    ws: WebSocket


class WSManager:
    """
    In-memory subscription registry: topic -> conn_id -> websocket.
    This is the pub/sub transport behind the broadcast gateway.
    Transport-only: no Redis, no game rules.
    """
    def __init__(self) -> None:
        self._topics: Dict[str, Dict[str, Conn]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, topic: str, conn_id: str, ws: WebSocket) -> None:
        async with self._lock:
            self._topics.setdefault(topic, {})[conn_id] = Conn(conn_id=conn_id, ws=ws)

    async def unsubscribe(self, topic: str, conn_id: str) -> None:
        async with self._lock:
            conns = self._topics.get(topic)
            if not conns:
                return
            conns.pop(conn_id, None)
            if not conns:
                self._topics.pop(topic, None)

    async def publish(self, topic: str, message: Dict[str, Any]) -> None:
        # copy conns under lock, send outside lock
        async with self._lock:
            conns = list(self._topics.get(topic, {}).values())

        for c in conns:
            try:
                await c.ws.send_json(message)
            except Exception as e:
                # dead socket: ws.py cleans up on disconnect
                logger.debug("send to %s failed: %s", c.conn_id, e)

    async def subscriber_count(self, topic: str) -> int:
        async with self._lock:
            return len(self._topics.get(topic, {}))
