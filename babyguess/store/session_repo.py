# babyguess/store/session_repo.py
from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from babyguess.store.kv import KVOp, KVStore
from babyguess.store.models import SessionStore
from babyguess.store.redis_keys import GK

logger = logging.getLogger(__name__)

_FIELDS = tuple(SessionStore.model_fields)


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, list):
        return [_plain(x) for x in value]
    return value


def coerce_session(data: dict[str, Any]) -> SessionStore:
    """
    Build a SessionStore from raw decoded fields.
    Invalid fields fall back to their defaults; an inconsistent combination
    (e.g. PLAYING past the last prompt) falls back to the WAITING default.
    """
    data = {k: v for k, v in data.items() if k in _FIELDS and v is not None}
    try:
        session = SessionStore.model_validate(data)
    except ValidationError as e:
        bad = {err["loc"][0] for err in e.errors() if err.get("loc")}
        logger.warning("session fields coerced to defaults: %s", sorted(map(str, bad)))
        session = SessionStore.model_validate({k: v for k, v in data.items() if k not in bad})

    if not session.is_consistent():
        logger.warning(
            "inconsistent session (mode=%s round=%s prompts=%s), treating as WAITING",
            session.mode, session.round_index, session.total_rounds,
            extra={"session_id": session.session_id},
        )
        return SessionStore()
    return session


class SessionRepo:
    def __init__(self, kv: KVStore, keys: GK = GK()):
        self.kv = kv
        self.keys = keys

    async def read_session(self) -> SessionStore:
        """Never raises for missing or malformed data; StoreUnavailable still propagates."""
        raw = await self.kv.hget_all(self.keys.session())
        if not raw:
            return SessionStore()
        return coerce_session(raw)

    async def write_session(self, **fields: Any) -> None:
        unknown = set(fields) - set(_FIELDS)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        mapping = {k: _plain(v) for k, v in fields.items()}
        await self.kv.hset(self.keys.session(), mapping)

    async def claim_settlement(self, session_id: str, round_index: int) -> bool:
        """True for exactly one caller per (session_id, round_index)."""
        return await self.kv.set_if_absent(self.keys.settled(session_id, round_index), 1)

    async def is_settled(self, session_id: str, round_index: int) -> bool:
        return await self.kv.exists(self.keys.settled(session_id, round_index))

    async def reset_session(self) -> None:
        """Delete session keys plus every per-round vote key and the scores."""
        settled = await self.kv.scan_keys(f"{self.keys.ns}:session:settled:*")
        votes = await self.kv.scan_keys(self.keys.votes_pattern())
        ops = [KVOp("delete", k) for k in [self.keys.session(), self.keys.scores(), *settled, *votes]]
        await self.kv.pipeline(ops)
