# babyguess/wiring.py
from __future__ import annotations

from dataclasses import dataclass

from redis.asyncio import Redis

from babyguess.domain.game.orchestrator import RoundOrchestrator
from babyguess.domain.game.timers import RoundTimers
from babyguess.settings import Settings
from babyguess.store.history import RedisHistoryArchive
from babyguess.store.kv import KVStore
from babyguess.store.redis_keys import GK
from babyguess.store.roster_repo import RosterRepo
from babyguess.store.score_ledger import ScoreLedger
from babyguess.store.session_repo import SessionRepo
from babyguess.store.vote_ledger import VoteLedger
from babyguess.transport.gateway import BroadcastGateway, Publisher


@dataclass
class GameServices:
    kv: KVStore
    keys: GK
    gateway: BroadcastGateway
    archive: RedisHistoryArchive
    timers: RoundTimers
    game: RoundOrchestrator


def build_game(r: Redis, publisher: Publisher, settings: Settings, keys: GK = GK()) -> GameServices:
    kv = KVStore(
        r,
        default_ttl=settings.SESSION_TTL_SEC,
        retry_attempts=settings.STORE_RETRY_ATTEMPTS,
        retry_backoff_sec=settings.STORE_RETRY_BACKOFF_SEC,
    )
    gateway = BroadcastGateway(publisher, topic=settings.GAME_TOPIC)
    archive = RedisHistoryArchive(kv, keys, max_entries=settings.HISTORY_MAX_ENTRIES)
    timers = RoundTimers(enabled=settings.ROUND_TIMERS_ENABLED)
    game = RoundOrchestrator(
        sessions=SessionRepo(kv, keys),
        roster=RosterRepo(kv, keys, heartbeat_ttl_sec=settings.HEARTBEAT_TTL_SEC),
        scores=ScoreLedger(kv, keys),
        votes=VoteLedger(kv, keys),
        gateway=gateway,
        archive=archive,
        timers=timers,
        settings=settings,
    )
    return GameServices(kv=kv, keys=keys, gateway=gateway, archive=archive, timers=timers, game=game)
