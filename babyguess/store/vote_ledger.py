# babyguess/store/vote_ledger.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from babyguess.store.kv import KVStore
from babyguess.store.redis_keys import GK


@dataclass(frozen=True)
class VoteReceipt:
    accepted: bool
    total_submitted: int


class VoteLedger:
    """
    Votes keyed by round number: a write for round N can never land in the
    tally of round N+1, whatever order the writes arrive in.
    """

    def __init__(self, kv: KVStore, keys: GK = GK()):
        self.kv = kv
        self.keys = keys

    async def set_expected_count(self, round_index: int, n: int) -> None:
        await self.kv.set(self.keys.votes_expected(round_index), max(0, int(n)))

    async def get_expected_count(self, round_index: int) -> Optional[int]:
        n = await self.kv.get(self.keys.votes_expected(round_index))
        return n if isinstance(n, int) else None

    async def raise_expected_count(self, round_index: int, by: int = 1) -> Optional[int]:
        """Only raises a count that was already set for the round; returns the new count."""
        key = self.keys.votes_expected(round_index)
        if not await self.kv.exists(key):
            return None
        return await self.kv.incr(key, by)

    async def submit_vote(self, round_index: int, player_name: str, answer: str) -> VoteReceipt:
        key = self.keys.votes(round_index)
        accepted = await self.kv.hset_if_absent(key, player_name, answer)
        if accepted:
            await self.kv.expire(key)
        return VoteReceipt(accepted=accepted, total_submitted=await self.kv.hlen(key))

    async def total_submitted(self, round_index: int) -> int:
        return await self.kv.hlen(self.keys.votes(round_index))

    async def get_votes(self, round_index: int) -> dict[str, str]:
        votes = await self.kv.hget_all(self.keys.votes(round_index))
        return {name: v for name, v in votes.items() if isinstance(v, str)}

    async def withdraw(self, round_index: int, player_name: str) -> None:
        await self.kv.hdel(self.keys.votes(round_index), player_name)

    async def clear(self, round_index: int) -> None:
        await self.kv.delete(self.keys.votes(round_index), self.keys.votes_expected(round_index))

    async def clear_all(self) -> None:
        await self.kv.delete(*await self.kv.scan_keys(self.keys.votes_pattern()))
