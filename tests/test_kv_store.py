import pytest

from babyguess.store.kv import KVOp, KVStore, StoreUnavailable
from fakes import FakeRedis, FlakyRedis


def make_kv(r=None, **kwargs):
    kwargs.setdefault("retry_backoff_sec", 0)
    return KVStore(r if r is not None else FakeRedis(), **kwargs)


@pytest.mark.asyncio
async def test_values_come_back_with_their_type():
    r = FakeRedis()
    kv = make_kv(r)

    await kv.set("game:a", "abc")
    await kv.set("game:b", 3)
    await kv.set("game:c", {"names": ["ann", "bob"]})

    assert r.strings["game:a"] == b'"abc"'
    assert await kv.get("game:a") == "abc"
    assert await kv.get("game:b") == 3
    assert await kv.get("game:c") == {"names": ["ann", "bob"]}
    assert await kv.get("game:missing", fallback="x") == "x"


@pytest.mark.asyncio
async def test_undecodable_value_returns_fallback():
    r = FakeRedis()
    r.strings["game:a"] = b"{broken"
    kv = make_kv(r)

    assert await kv.get("game:a", fallback="fallback") == "fallback"


@pytest.mark.asyncio
async def test_hash_fields_fall_back_one_by_one():
    r = FakeRedis()
    r.hashes["game:h"] = {"good": b"1", "bad": b"nope"}
    kv = make_kv(r)

    assert await kv.hget_all("game:h", fallback=0) == {"good": 1, "bad": 0}


@pytest.mark.asyncio
async def test_transient_errors_are_retried():
    r = FlakyRedis(fail_times=2, commands=("get",))
    kv = make_kv(r, retry_attempts=3)
    await kv.set("game:a", 7)

    assert await kv.get("game:a") == 7
    assert r.failures == 2


@pytest.mark.asyncio
async def test_store_unavailable_after_retries():
    r = FlakyRedis(fail_times=10, commands=("get",))
    kv = make_kv(r, retry_attempts=3)

    with pytest.raises(StoreUnavailable):
        await kv.get("game:a")
    assert r.failures == 3


@pytest.mark.asyncio
async def test_set_if_absent_claims_once():
    kv = make_kv()

    assert await kv.set_if_absent("game:claim", 1) is True
    assert await kv.set_if_absent("game:claim", 1) is False


@pytest.mark.asyncio
async def test_pipeline_applies_every_op():
    r = FakeRedis()
    r.strings["game:old"] = b"1"
    kv = make_kv(r, default_ttl=60)

    await kv.pipeline([
        KVOp("set", "game:s", "x"),
        KVOp("hset", "game:h", {"ann": 0}),
        KVOp("rpush", "game:l", {"n": 1}),
        KVOp("expire", "game:l"),
        KVOp("delete", "game:old"),
    ])

    assert await kv.get("game:s") == "x"
    assert await kv.hget("game:h", "ann") == 0
    assert await kv.lrange("game:l") == [{"n": 1}]
    assert r.ttls["game:l"] == 60
    assert "game:old" not in r.strings


@pytest.mark.asyncio
async def test_lpush_capped_keeps_newest():
    kv = make_kv()
    for i in range(1, 6):
        await kv.lpush_capped("game:history", i, max_len=3)

    assert await kv.lrange("game:history") == [5, 4, 3]


@pytest.mark.asyncio
async def test_scan_and_repair_removes_only_corrupted_keys():
    r = FakeRedis()
    r.strings["game:good"] = b'"ok"'
    r.strings["game:bad"] = b"{nope"
    r.hashes["game:hash"] = {"a": b"1", "b": b"[broken"}
    r.lists["game:list-good"] = [b"1", b'"two"']
    r.lists["game:list-bad"] = [b"1", b"not json"]
    r.strings["other:bad"] = b"{nope"
    kv = make_kv(r)

    result = await kv.scan_and_repair(["game:*"])

    assert result == {"scanned": 5, "cleaned": 3}
    assert set(r.strings) == {"game:good", "other:bad"}
    assert "game:hash" not in r.hashes
    assert set(r.lists) == {"game:list-good"}
