# babyguess/store/history.py
from __future__ import annotations

import logging
from typing import Protocol

from pydantic import ValidationError

from babyguess.store.kv import KVStore
from babyguess.store.models import HistoryRecord
from babyguess.store.redis_keys import GK

logger = logging.getLogger(__name__)


class HistoryArchive(Protocol):
    async def append(self, record: HistoryRecord) -> None: ...

    async def list_records(self) -> list[HistoryRecord]: ...


class RedisHistoryArchive:
    """Newest-first list of finished games, capped. No TTL: history outlives sessions."""

    def __init__(self, kv: KVStore, keys: GK = GK(), *, max_entries: int = 50):
        self.kv = kv
        self.keys = keys
        self.max_entries = max_entries

    async def append(self, record: HistoryRecord) -> None:
        await self.kv.lpush_capped(self.keys.history(), record.model_dump(), self.max_entries)

    async def list_records(self) -> list[HistoryRecord]:
        out: list[HistoryRecord] = []
        for item in await self.kv.lrange(self.keys.history()):
            try:
                out.append(HistoryRecord.model_validate(item))
            except ValidationError as e:
                logger.warning("skipping malformed history record: %s", e)
        return out
