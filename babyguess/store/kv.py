# babyguess/store/kv.py
"""
Key-value adapter over redis.asyncio.

This is the only place where values are encoded/decoded. Every value is
stored as JSON (a plain str becomes '"abc"', an int becomes '3'), so reads
come back with their original type. Counters written by HINCRBY/INCR are plain
integers and decode the same way.

Decode failures never raise: they log a data-quality warning and return the
caller's fallback. Transport errors are retried with linear backoff and then
surface as StoreUnavailable.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Literal, Optional, TypeVar

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT = (RedisConnectionError, RedisTimeoutError, OSError)


class StoreUnavailable(Exception):
    """The key-value store could not be reached after all retries."""


class DecodeError(ValueError):
    pass


OpCommand = Literal["set", "delete", "hset", "rpush", "expire"]


@dataclass(frozen=True)
class KVOp:
    """One command in a batched pipeline."""
    command: OpCommand
    key: str
    value: Any = None
    ttl: Optional[int] = None


def encode(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def decode(raw: Any) -> Any:
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(str(e)) from e
    if isinstance(raw, (int, float)):
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise DecodeError(str(e)) from e


def _dec_key(x: Any) -> str:
    if isinstance(x, (bytes, bytearray)):
        return x.decode("utf-8", errors="replace")
    return str(x)


class KVStore:
    def __init__(
        self,
        r: Redis,
        *,
        default_ttl: Optional[int] = 7200,
        retry_attempts: int = 3,
        retry_backoff_sec: float = 1.0,
    ):
        self.r = r
        self.default_ttl = default_ttl
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff_sec = retry_backoff_sec

    # ----------------------------
    # Helpers
    # ----------------------------
    async def _call(self, fn: Callable[[], Awaitable[T]], *, what: str) -> T:
        last: Optional[BaseException] = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await fn()
            except _TRANSIENT as e:
                last = e
                logger.warning("store call %s failed: %s", what, e, extra={"attempt": attempt})
                if attempt < self.retry_attempts and self.retry_backoff_sec > 0:
                    await asyncio.sleep(self.retry_backoff_sec * attempt)
        logger.error("store call %s failed after %d attempts", what, self.retry_attempts)
        raise StoreUnavailable(f"{what}: {last}") from last

    def _ttl(self, ttl: Optional[int]) -> Optional[int]:
        return self.default_ttl if ttl is None else (ttl or None)

    def _decode_or(self, raw: Any, fallback: Any, *, key: str) -> Any:
        if raw is None:
            return fallback
        try:
            return decode(raw)
        except DecodeError as e:
            logger.warning("undecodable value, using fallback: %s", e, extra={"key": key})
            return fallback

    async def ping(self) -> bool:
        return bool(await self._call(lambda: self.r.ping(), what="ping"))

    # ----------------------------
    # Plain keys
    # ----------------------------
    async def get(self, key: str, fallback: Any = None) -> Any:
        raw = await self._call(lambda: self.r.get(key), what=f"get {key}")
        return self._decode_or(raw, fallback, key=key)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        data = encode(value)
        await self._call(lambda: self.r.set(key, data, ex=self._ttl(ttl)), what=f"set {key}")

    async def set_if_absent(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Atomic claim. True if this call created the key."""
        data = encode(value)
        created = await self._call(
            lambda: self.r.set(key, data, ex=self._ttl(ttl), nx=True), what=f"setnx {key}"
        )
        return bool(created)

    async def incr(self, key: str, delta: int = 1) -> int:
        return int(await self._call(lambda: self.r.incrby(key, delta), what=f"incr {key}"))

    async def exists(self, key: str) -> bool:
        return bool(await self._call(lambda: self.r.exists(key), what=f"exists {key}"))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._call(lambda: self.r.delete(*keys), what="delete"))

    async def multi_get(self, keys: Iterable[str], fallback: Any = None) -> dict[str, Any]:
        keys = list(keys)
        if not keys:
            return {}
        values = await self._call(lambda: self.r.mget(keys), what="mget")
        return {k: self._decode_or(v, fallback, key=k) for k, v in zip(keys, values)}

    async def pipeline(self, ops: Iterable[KVOp]) -> None:
        """
        Submit ops together. Not isolated from concurrent readers:
        another request may observe a partially applied batch.
        """
        ops = list(ops)
        if not ops:
            return

        async def run() -> Any:
            pipe = self.r.pipeline()
            for op in ops:
                if op.command == "set":
                    pipe.set(op.key, encode(op.value), ex=self._ttl(op.ttl))
                elif op.command == "delete":
                    pipe.delete(op.key)
                elif op.command == "hset":
                    pipe.hset(op.key, mapping={f: encode(v) for f, v in dict(op.value).items()})
                elif op.command == "rpush":
                    pipe.rpush(op.key, encode(op.value))
                elif op.command == "expire":
                    ttl = self._ttl(op.ttl)
                    if ttl:
                        pipe.expire(op.key, ttl)
                else:
                    raise ValueError(f"Unsupported pipeline command: {op.command}")
            return await pipe.execute()

        await self._call(run, what=f"pipeline[{len(ops)}]")

    async def expire(self, key: str, ttl: Optional[int] = None) -> None:
        ttl = self._ttl(ttl)
        if ttl:
            await self._call(lambda: self.r.expire(key, ttl), what=f"expire {key}")

    # ----------------------------
    # Field maps (hashes)
    # ----------------------------
    async def hget_all(self, key: str, fallback: Any = None) -> dict[str, Any]:
        data = await self._call(lambda: self.r.hgetall(key), what=f"hgetall {key}")
        return {_dec_key(f): self._decode_or(v, fallback, key=f"{key}#{_dec_key(f)}") for f, v in (data or {}).items()}

    async def hget(self, key: str, field: str, fallback: Any = None) -> Any:
        raw = await self._call(lambda: self.r.hget(key, field), what=f"hget {key}")
        return self._decode_or(raw, fallback, key=f"{key}#{field}")

    async def hset(self, key: str, mapping: dict[str, Any], ttl: Optional[int] = None) -> None:
        if not mapping:
            return
        data = {f: encode(v) for f, v in mapping.items()}

        async def run() -> Any:
            pipe = self.r.pipeline()
            pipe.hset(key, mapping=data)
            ex = self._ttl(ttl)
            if ex:
                pipe.expire(key, ex)
            return await pipe.execute()

        await self._call(run, what=f"hset {key}")

    async def hset_if_absent(self, key: str, field: str, value: Any) -> bool:
        data = encode(value)
        created = await self._call(lambda: self.r.hsetnx(key, field, data), what=f"hsetnx {key}")
        return bool(created)

    async def hlen(self, key: str) -> int:
        return int(await self._call(lambda: self.r.hlen(key), what=f"hlen {key}"))

    async def hkeys(self, key: str) -> list[str]:
        keys = await self._call(lambda: self.r.hkeys(key), what=f"hkeys {key}")
        return [_dec_key(k) for k in keys or []]

    async def hdel(self, key: str, *fields: str) -> int:
        if not fields:
            return 0
        return int(await self._call(lambda: self.r.hdel(key, *fields), what=f"hdel {key}"))

    async def hincrby(self, key: str, field: str, delta: int) -> int:
        return int(await self._call(lambda: self.r.hincrby(key, field, delta), what=f"hincrby {key}"))

    # ----------------------------
    # Lists
    # ----------------------------
    async def lrange_raw(self, key: str, start: int = 0, end: int = -1) -> list[Any]:
        """Undecoded list entries: callers that validate per entry decode them."""
        return list(await self._call(lambda: self.r.lrange(key, start, end), what=f"lrange {key}") or [])

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[Any]:
        out = []
        for raw in await self.lrange_raw(key, start, end):
            val = self._decode_or(raw, None, key=key)
            if val is not None:
                out.append(val)
        return out

    async def lpush_capped(self, key: str, value: Any, max_len: int, ttl: Optional[int] = None) -> None:
        data = encode(value)

        async def run() -> Any:
            pipe = self.r.pipeline()
            pipe.lpush(key, data)
            pipe.ltrim(key, 0, max_len - 1)
            if ttl:
                pipe.expire(key, ttl)
            return await pipe.execute()

        await self._call(run, what=f"lpush {key}")

    # ----------------------------
    # Scan / repair
    # ----------------------------
    async def scan_keys(self, match: str) -> list[str]:
        async def run() -> list[str]:
            cursor = 0
            found: list[str] = []
            while True:
                cursor, keys = await self.r.scan(cursor=cursor, match=match, count=200)
                found.extend(_dec_key(k) for k in keys)
                if int(cursor) == 0:
                    break
            return sorted(set(found))

        return await self._call(run, what=f"scan {match}")

    async def scan_and_repair(self, patterns: Iterable[str]) -> dict[str, int]:
        """
        Last-resort repair: decode every value under the given patterns and
        delete keys holding anything undecodable. Never called implicitly.
        """
        scanned = 0
        cleaned = 0
        for pattern in patterns:
            for key in await self.scan_keys(pattern):
                scanned += 1
                if not await self._value_decodes(key):
                    logger.warning("removing corrupted key", extra={"key": key})
                    await self.delete(key)
                    cleaned += 1
        logger.info("repair finished: scanned=%d cleaned=%d", scanned, cleaned)
        return {"scanned": scanned, "cleaned": cleaned}

    async def _value_decodes(self, key: str) -> bool:
        kind = _dec_key(await self._call(lambda: self.r.type(key), what=f"type {key}"))
        if kind == "string":
            raws = [await self._call(lambda: self.r.get(key), what=f"get {key}")]
        elif kind == "hash":
            raws = list((await self._call(lambda: self.r.hgetall(key), what=f"hgetall {key}") or {}).values())
        elif kind == "list":
            raws = await self.lrange_raw(key)
        else:
            return True
        for raw in raws:
            try:
                decode(raw)
            except DecodeError:
                return False
        return True
