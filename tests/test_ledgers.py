import asyncio

import pytest

from babyguess.store.kv import KVStore
from babyguess.store.redis_keys import GK
from babyguess.store.score_ledger import ScoreLedger, ScoreLedgerCorrupted
from babyguess.store.vote_ledger import VoteLedger
from fakes import FakeRedis, GhostRedis


def make_kv(r=None):
    return KVStore(r if r is not None else FakeRedis(), retry_backoff_sec=0)


# ---- scores ----

@pytest.mark.asyncio
async def test_initialize_drops_ghost_numeric_keys():
    r = FakeRedis()
    r.hashes["game:scores"] = {"0": b"3", "1": b"7", "ann": b"5"}
    scores = ScoreLedger(make_kv(r), GK())

    assert await scores.initialize(["ann", "bob"]) == {"ann": 0, "bob": 0}
    assert await scores.get_all() == {"ann": 0, "bob": 0}


@pytest.mark.asyncio
async def test_initialize_gives_up_when_ghosts_persist():
    scores = ScoreLedger(make_kv(GhostRedis()), GK())

    with pytest.raises(ScoreLedgerCorrupted):
        await scores.initialize(["ann"])


@pytest.mark.asyncio
async def test_increment_and_ensure():
    scores = ScoreLedger(make_kv(), GK())
    await scores.initialize(["ann"])

    assert await scores.increment("ann", 1) == 1
    assert await scores.increment("ann", 2) == 3
    await scores.ensure("ann")
    await scores.ensure("cy")
    assert await scores.get_all() == {"ann": 3, "cy": 0}

    with pytest.raises(ValueError):
        await scores.increment("ann", -1)


@pytest.mark.asyncio
async def test_unreadable_score_counts_as_zero():
    r = FakeRedis()
    r.hashes["game:scores"] = {"ann": b"oops", "bob": b"2"}
    scores = ScoreLedger(make_kv(r), GK())

    assert await scores.get_all() == {"ann": 0, "bob": 2}


@pytest.mark.asyncio
async def test_remove_and_reset():
    scores = ScoreLedger(make_kv(), GK())
    await scores.initialize(["ann", "bob"])

    await scores.remove("bob")
    assert await scores.get_all() == {"ann": 0}
    await scores.reset()
    assert await scores.get_all() == {}


# ---- votes ----

@pytest.mark.asyncio
async def test_second_vote_is_rejected_and_first_kept():
    votes = VoteLedger(make_kv(), GK())

    first = await votes.submit_vote(1, "ann", "Ann")
    second = await votes.submit_vote(1, "ann", "Bob")

    assert first.accepted is True
    assert second.accepted is False
    assert second.total_submitted == 1
    assert await votes.get_votes(1) == {"ann": "Ann"}


@pytest.mark.asyncio
async def test_concurrent_votes_accept_exactly_one():
    votes = VoteLedger(make_kv(), GK())

    receipts = await asyncio.gather(*(votes.submit_vote(1, "ann", f"guess-{i}") for i in range(10)))

    assert sum(1 for rc in receipts if rc.accepted) == 1
    assert await votes.total_submitted(1) == 1


@pytest.mark.asyncio
async def test_votes_are_isolated_per_round():
    votes = VoteLedger(make_kv(), GK())
    await votes.submit_vote(1, "ann", "Ann")
    await votes.submit_vote(2, "ann", "Bob")
    await votes.submit_vote(2, "bob", "Bob")

    assert await votes.get_votes(1) == {"ann": "Ann"}
    assert await votes.total_submitted(2) == 2


@pytest.mark.asyncio
async def test_expected_count():
    votes = VoteLedger(make_kv(), GK())

    assert await votes.get_expected_count(1) is None
    await votes.set_expected_count(1, 3)
    assert await votes.get_expected_count(1) == 3
    await votes.set_expected_count(1, -2)
    assert await votes.get_expected_count(1) == 0


@pytest.mark.asyncio
async def test_withdraw_and_clear():
    r = FakeRedis()
    votes = VoteLedger(make_kv(r), GK())
    await votes.set_expected_count(1, 2)
    await votes.submit_vote(1, "ann", "Ann")
    await votes.submit_vote(1, "bob", "Ann")
    await votes.submit_vote(2, "ann", "Ann")

    await votes.withdraw(1, "bob")
    assert await votes.get_votes(1) == {"ann": "Ann"}

    await votes.clear(1)
    assert await votes.get_votes(1) == {}
    assert await votes.get_expected_count(1) is None
    assert await votes.total_submitted(2) == 1

    await votes.clear_all()
    assert not any(k.startswith("game:votes") for k in list(r.strings) + list(r.hashes))


@pytest.mark.asyncio
async def test_ensure_sets_scores_ttl():
    r = FakeRedis()
    scores = ScoreLedger(KVStore(r, retry_backoff_sec=0, default_ttl=7200), GK())

    await scores.ensure("ann")

    assert r.ttls["game:scores"] == 7200


@pytest.mark.asyncio
async def test_raise_expected_count_only_when_set():
    votes = VoteLedger(make_kv(), GK())

    assert await votes.raise_expected_count(1) is None
    assert await votes.get_expected_count(1) is None

    await votes.set_expected_count(1, 2)
    assert await votes.raise_expected_count(1) == 3
    assert await votes.get_expected_count(1) == 3
