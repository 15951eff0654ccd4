# babyguess/transport/gateway.py
from __future__ import annotations

import logging
from typing import Any, Dict, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    async def publish(self, topic: str, message: Dict[str, Any]) -> None: ...


class BroadcastGateway:
    """
    Fire-and-forget notifications. The store is the source of truth: a failed
    publish is logged and never undoes or aborts a committed transition.
    """

    def __init__(self, publisher: Publisher, topic: str = "baby-game"):
        self.publisher = publisher
        self.topic = topic

    async def announce(self, topic: str, event_name: str, payload: Dict[str, Any]) -> None:
        message = {**payload, "type": event_name}
        try:
            await self.publisher.publish(topic, message)
        except Exception:
            logger.exception("broadcast of %s failed", event_name)

    async def emit(self, event: BaseModel) -> None:
        """Announce an Out* event model on the game topic."""
        payload = event.model_dump()
        await self.announce(self.topic, payload.pop("type"), payload)
