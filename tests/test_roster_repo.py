import pytest

from babyguess.store.kv import KVStore
from babyguess.store.redis_keys import GK
from babyguess.store.roster_repo import NameTakenError, RosterRepo
from fakes import FakeRedis, FlakyRedis


def make_roster(r=None):
    r = r if r is not None else FakeRedis()
    return RosterRepo(KVStore(r, retry_backoff_sec=0), GK(), heartbeat_ttl_sec=60), r


@pytest.mark.asyncio
async def test_players_keep_join_order():
    roster, _ = make_roster()
    a = await roster.add_player("ann")
    b = await roster.add_player("bob")

    players = await roster.list_players()
    assert [p.name for p in players] == ["ann", "bob"]
    assert a.id != b.id
    assert (await roster.get_player("bob")).id == b.id
    assert await roster.get_player("cy") is None


@pytest.mark.asyncio
async def test_duplicate_name_is_rejected():
    roster, _ = make_roster()
    await roster.add_player("ann")

    with pytest.raises(NameTakenError):
        await roster.add_player("ann")
    # names are case-sensitive
    await roster.add_player("Ann")
    assert len(await roster.list_players()) == 2


@pytest.mark.asyncio
async def test_malformed_entries_are_skipped():
    roster, r = make_roster()
    await roster.add_player("ann")
    r.lists["game:players"].append(b"not json")
    r.lists["game:players"].append(b'{"foo": 1}')

    assert [p.name for p in await roster.list_players()] == ["ann"]


@pytest.mark.asyncio
async def test_remove_player_keeps_others_in_order():
    roster, r = make_roster()
    for n in ("ann", "bob", "cy"):
        await roster.add_player(n)
    await roster.heartbeat("bob")

    remaining = await roster.remove_player("bob")

    assert [p.name for p in remaining] == ["ann", "cy"]
    assert [p.name for p in await roster.list_players()] == ["ann", "cy"]
    assert "bob" not in r.hashes.get("game:players:online", {})


@pytest.mark.asyncio
async def test_online_players_uses_recent_heartbeats():
    roster, r = make_roster()
    await roster.heartbeat("ann")
    r.hashes["game:players:online"]["old"] = b"1"

    online = await roster.online_players(window_sec=30)
    assert set(online) == {"ann"}


@pytest.mark.asyncio
async def test_heartbeat_failure_is_swallowed():
    roster, _ = make_roster(FlakyRedis(fail_times=10, commands=("hset",)))

    await roster.heartbeat("ann")


@pytest.mark.asyncio
async def test_clear_all():
    roster, r = make_roster()
    await roster.add_player("ann")
    await roster.heartbeat("ann")

    await roster.clear_all()

    assert await roster.list_players() == []
    assert "game:players:online" not in r.hashes
