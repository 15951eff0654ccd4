# babyguess/store/score_ledger.py
from __future__ import annotations

import logging
from typing import Iterable

from babyguess.store.kv import KVOp, KVStore
from babyguess.store.redis_keys import GK

logger = logging.getLogger(__name__)


class ScoreLedgerCorrupted(Exception):
    """Scores still held unexpected keys after a reset-and-retry."""


class ScoreLedger:
    def __init__(self, kv: KVStore, keys: GK = GK()):
        self.kv = kv
        self.keys = keys

    async def initialize(self, names: Iterable[str]) -> dict[str, int]:
        names = list(dict.fromkeys(names))
        for attempt in (1, 2):
            await self._write_fresh(names)
            ghosts = set(await self.kv.hkeys(self.keys.scores())) - set(names)
            if not ghosts:
                return {n: 0 for n in names}
            logger.warning(
                "unexpected score keys after initialize: %s", sorted(ghosts), extra={"attempt": attempt}
            )
            await self.reset()
        raise ScoreLedgerCorrupted("score ledger kept unexpected keys after reset")

    async def _write_fresh(self, names: list[str]) -> None:
        ops = [KVOp("delete", self.keys.scores())]
        if names:
            ops.append(KVOp("hset", self.keys.scores(), {n: 0 for n in names}))
            ops.append(KVOp("expire", self.keys.scores()))
        await self.kv.pipeline(ops)

    async def ensure(self, name: str) -> None:
        """Give a late joiner a zero entry without touching anyone else's score."""
        await self.kv.hset_if_absent(self.keys.scores(), name, 0)
        await self.kv.expire(self.keys.scores())

    async def increment(self, name: str, delta: int) -> int:
        if delta < 0:
            raise ValueError("scores are never decremented")
        score = await self.kv.hincrby(self.keys.scores(), name, delta)
        await self.kv.expire(self.keys.scores())
        return score

    async def get_all(self) -> dict[str, int]:
        out: dict[str, int] = {}
        for name, v in (await self.kv.hget_all(self.keys.scores(), fallback=0)).items():
            out[name] = v if isinstance(v, int) and v >= 0 else 0
        return out

    async def remove(self, name: str) -> None:
        await self.kv.hdel(self.keys.scores(), name)

    async def reset(self) -> None:
        await self.kv.delete(self.keys.scores())
