# babyguess/store/roster_repo.py
from __future__ import annotations

import logging
import uuid
from typing import Optional

from pydantic import ValidationError

from babyguess.store.kv import DecodeError, KVOp, KVStore, StoreUnavailable, decode
from babyguess.store.models import PlayerStore
from babyguess.store.redis_keys import GK
from babyguess.util.timeutil import now_ts

logger = logging.getLogger(__name__)


class NameTakenError(Exception):
    def __init__(self, name: str):
        super().__init__(f"Player name already taken: {name}")
        self.name = name


class RosterRepo:
    def __init__(self, kv: KVStore, keys: GK = GK(), *, heartbeat_ttl_sec: int = 60):
        self.kv = kv
        self.keys = keys
        self.heartbeat_ttl_sec = heartbeat_ttl_sec

    async def list_players(self) -> list[PlayerStore]:
        players: list[PlayerStore] = []
        for raw in await self.kv.lrange_raw(self.keys.players()):
            try:
                players.append(PlayerStore.model_validate(decode(raw)))
            except (DecodeError, ValidationError, TypeError) as e:
                logger.warning("skipping malformed roster entry: %s", e)
        return players

    async def get_player(self, name: str) -> Optional[PlayerStore]:
        for p in await self.list_players():
            if p.name == name:
                return p
        return None

    async def add_player(self, name: str) -> PlayerStore:
        # re-read right before the check; two concurrent joins can still both pass
        if await self.get_player(name) is not None:
            raise NameTakenError(name)
        ts = now_ts()
        player = PlayerStore(name=name, id=uuid.uuid4().hex[:10], joined_at=ts, last_seen_at=ts)
        await self.kv.pipeline([
            KVOp("rpush", self.keys.players(), player.model_dump()),
            KVOp("expire", self.keys.players()),
        ])
        return player

    async def remove_player(self, name: str) -> list[PlayerStore]:
        players = await self.list_players()
        remaining = [p for p in players if p.name != name]
        ops = [KVOp("delete", self.keys.players())]
        ops += [KVOp("rpush", self.keys.players(), p.model_dump()) for p in remaining]
        if remaining:
            ops.append(KVOp("expire", self.keys.players()))
        await self.kv.pipeline(ops)
        try:
            await self.kv.hdel(self.keys.online(), name)
        except StoreUnavailable:
            logger.warning("could not clear presence", extra={"player": name})
        return remaining

    async def heartbeat(self, name: str) -> None:
        try:
            await self.kv.hset(self.keys.online(), {name: now_ts()}, ttl=self.heartbeat_ttl_sec)
        except StoreUnavailable as e:
            logger.warning("heartbeat dropped: %s", e, extra={"player": name})

    async def online_players(self, window_sec: int = 30) -> dict[str, int]:
        seen = await self.kv.hget_all(self.keys.online(), fallback=0)
        ts = now_ts()
        return {n: int(t) for n, t in seen.items() if isinstance(t, int) and ts - t < window_sec}

    async def clear_all(self) -> None:
        await self.kv.delete(self.keys.players(), self.keys.online())
