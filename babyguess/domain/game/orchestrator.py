# babyguess/domain/game/orchestrator.py
"""
Round orchestrator: the authoritative state machine for the shared session.

WAITING -> PLAYING -> FINISHED, with a per-round cycle inside PLAYING:
ROUND_OPEN -> ROUND_SETTLING -> ROUND_OPEN (next prompt) or FINISHED.

Settlement has two triggers, the last expected vote and the round timer.
Both go through settle_round(), which claims an atomic per-(session, round)
marker in the store first; whichever trigger loses the claim is a no-op.

No in-process lock is held across store calls. Counters are re-read right
before each decision instead of trusting values read earlier in the request.
"""
from __future__ import annotations

import functools
import logging
import uuid
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from babyguess.domain.common.errors import (
    AlreadyVoted,
    BadState,
    GameRejection,
    NameTaken,
    NoActiveGame,
    NoPlayers,
    NoPrompts,
    RoundClosed,
    RoundMismatch,
    StateCorrupt,
    UnknownPlayer,
)
from babyguess.domain.common.fsm import can_transition_round, can_transition_to
from babyguess.domain.common.types import NO_ANSWER, ResetKind, RoundPhase, SettleTrigger
from babyguess.domain.game.scoring import build_history_record, is_correct, pick_winner, round_results
from babyguess.domain.game.timers import RoundTimers
from babyguess.settings import Settings
from babyguess.store.history import HistoryArchive
from babyguess.store.models import GameSettings, Prompt, SessionStore
from babyguess.store.roster_repo import NameTakenError, RosterRepo
from babyguess.store.score_ledger import ScoreLedger, ScoreLedgerCorrupted
from babyguess.store.session_repo import SessionRepo
from babyguess.store.vote_ledger import VoteLedger
from babyguess.transport.gateway import BroadcastGateway
from babyguess.transport.protocols import (
    OutAdvanceResult,
    OutError,
    OutGameCreated,
    OutGameEnded,
    OutGameReset,
    OutGameStarted,
    OutGameState,
    OutJoined,
    OutNextPhoto,
    OutPlayerJoined,
    OutPlayerLeft,
    OutPlayerRemoved,
    OutResetDone,
    OutRoundEnded,
    OutVoteAccepted,
    OutVoteUpdate,
)
from babyguess.util.timeutil import now_ts

logger = logging.getLogger(__name__)

R = TypeVar("R")


def rejections_as_errors(fn: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R | OutError]]:
    """Business-rule rejections become OutError replies; StoreUnavailable propagates."""

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> R | OutError:
        try:
            return await fn(*args, **kwargs)
        except GameRejection as e:
            logger.info("%s rejected: %s", fn.__name__, e.message, extra={"error_code": e.code})
            return OutError(code=e.code, message=e.message)

    return wrapper


class RoundOrchestrator:
    def __init__(
        self,
        *,
        sessions: SessionRepo,
        roster: RosterRepo,
        scores: ScoreLedger,
        votes: VoteLedger,
        gateway: BroadcastGateway,
        archive: HistoryArchive,
        timers: RoundTimers,
        settings: Settings,
    ):
        self.sessions = sessions
        self.roster = roster
        self.scores = scores
        self.votes = votes
        self.gateway = gateway
        self.archive = archive
        self.timers = timers
        self.settings = settings

    # ----------------------------
    # Helpers
    # ----------------------------
    async def _expected_count(self, round_index: int) -> int:
        n = await self.votes.get_expected_count(round_index)
        if n is None:
            n = len(await self.roster.list_players())
        return n

    async def _initialize_scores(self, names: List[str]) -> None:
        try:
            await self.scores.initialize(names)
        except ScoreLedgerCorrupted as e:
            raise StateCorrupt(str(e)) from e

    async def _round_phase(self, session: SessionStore) -> RoundPhase:
        if session.mode != "PLAYING":
            return ""
        if await self.sessions.is_settled(session.session_id or "", session.round_index):
            return "ROUND_SETTLING"
        return "ROUND_OPEN"

    def _schedule_timeout(self, session: SessionStore) -> None:
        self.timers.schedule_round(
            session.session_id or "",
            session.round_index,
            session.settings.seconds_per_round,
            self.on_round_timeout,
        )

    # ----------------------------
    # Roster commands
    # ----------------------------
    @rejections_as_errors
    async def join(self, name: str, rejoin: bool = False) -> OutJoined:
        existing = await self.roster.get_player(name)
        rejoined = existing is not None and rejoin
        if rejoined:
            player = existing
        else:
            try:
                player = await self.roster.add_player(name)
            except NameTakenError as e:
                raise NameTaken(str(e)) from e

        await self.scores.ensure(name)
        await self.roster.heartbeat(name)

        session = await self.sessions.read_session()
        if not rejoined and await self._round_phase(session) == "ROUND_OPEN":
            # the joiner can vote in the open round
            expected = await self.votes.raise_expected_count(session.round_index)
            logger.info(
                "late joiner raised expected votes to %s", expected,
                extra={"player": name, "session_id": session.session_id, "round_index": session.round_index},
            )

        players = [p.model_dump() for p in await self.roster.list_players()]
        logger.info("player %s", "rejoined" if rejoined else "joined", extra={"player": name})

        await self.gateway.emit(OutPlayerJoined(
            player=player.model_dump(),
            total_players=len(players),
            players=players,
            session=session.summary(),
            rejoined=rejoined,
        ))
        return OutJoined(player=player.model_dump(), players=players, session=session.summary(), rejoined=rejoined)

    async def heartbeat(self, name: str) -> None:
        await self.roster.heartbeat(name)

    @rejections_as_errors
    async def remove_player(self, name: str) -> OutPlayerRemoved:
        remaining = await self.roster.remove_player(name)
        await self.scores.remove(name)

        session = await self.sessions.read_session()
        expected: Optional[int] = None
        total = 0
        if session.mode == "PLAYING":
            r = session.round_index
            await self.votes.withdraw(r, name)
            expected = min(await self._expected_count(r), len(remaining))
            await self.votes.set_expected_count(r, expected)
            total = await self.votes.total_submitted(r)

        players = [p.model_dump() for p in remaining]
        logger.info("player removed", extra={"player": name, "session_id": session.session_id})
        await self.gateway.emit(OutPlayerLeft(name=name, players=players, expected_count=expected))

        if expected and total >= expected:
            await self.settle_round(session, trigger="player_left")
        return OutPlayerRemoved(name=name, players=players)

    # ----------------------------
    # Lifecycle
    # ----------------------------
    @rejections_as_errors
    async def start_game(self, prompts: List[Prompt], seconds_per_round: Optional[int] = None) -> OutGameCreated:
        session = await self.sessions.read_session()
        if not can_transition_to(session.mode, "PLAYING"):
            raise BadState(f"Cannot start a game while {session.mode}; reset first")
        if not prompts:
            raise NoPrompts("No photos selected for the game")
        players = await self.roster.list_players()
        if not players:
            raise NoPlayers("No players have joined the game yet")

        session_id = uuid.uuid4().hex[:12]
        seconds = seconds_per_round or self.settings.DEFAULT_SECONDS_PER_ROUND
        names = [p.name for p in players]

        # ledgers first: the session only becomes visible once they are ready
        await self._initialize_scores(names)
        await self.votes.clear_all()
        await self.votes.set_expected_count(1, len(players))

        ts = now_ts()
        session = SessionStore(
            session_id=session_id,
            mode="PLAYING",
            round_index=1,
            prompts=list(prompts),
            settings=GameSettings(seconds_per_round=seconds),
            round_started_at=ts,
            started_at=ts,
        )
        await self.sessions.write_session(
            session_id=session.session_id,
            mode=session.mode,
            round_index=session.round_index,
            prompts=session.prompts,
            settings=session.settings,
            round_started_at=ts,
            started_at=ts,
            ended_at=None,
            winner=None,
        )
        self._schedule_timeout(session)
        logger.info(
            "game started: %d rounds, %d players", len(prompts), len(players),
            extra={"session_id": session_id, "round_index": 1},
        )

        await self.gateway.emit(OutGameStarted(
            session_id=session_id,
            prompt=prompts[0].public(),
            total_rounds=len(prompts),
            seconds_per_round=seconds,
            round_started_at=ts,
            players=[p.model_dump() for p in players],
        ))
        return OutGameCreated(session_id=session_id, total_rounds=len(prompts))

    @rejections_as_errors
    async def reset_game(self, kind: ResetKind = "hard") -> OutResetDone:
        self.timers.cancel_all()
        await self.sessions.reset_session()
        if kind == "hard":
            await self.roster.clear_all()
            cleared = ["session", "players", "scores", "votes"]
        else:
            names = [p.name for p in await self.roster.list_players()]
            await self._initialize_scores(names)
            cleared = ["session", "scores", "votes"]

        logger.info("game reset (%s)", kind)
        await self.gateway.emit(OutGameReset(kind=kind, cleared=cleared, timestamp=now_ts()))
        return OutResetDone(kind=kind, cleared=cleared)

    # ----------------------------
    # Voting
    # ----------------------------
    @rejections_as_errors
    async def submit_vote(self, name: str, answer: str, round_index: Optional[int] = None) -> OutVoteAccepted:
        session = await self.sessions.read_session()
        if session.mode != "PLAYING":
            raise NoActiveGame("No active game found")
        r = session.round_index
        if round_index is not None and round_index != r:
            raise RoundMismatch(f"Round {round_index} is not the open round ({r})")
        if await self.roster.get_player(name) is None:
            raise UnknownPlayer(f"Unknown player: {name}")
        if await self.sessions.is_settled(session.session_id or "", r):
            raise RoundClosed(f"Round {r} is already closed")

        receipt = await self.votes.submit_vote(r, name, answer)
        if not receipt.accepted:
            raise AlreadyVoted("Player already voted this round")

        # the vote is committed; only now credit it
        correct = is_correct(answer, session.current_prompt())
        if correct:
            await self.scores.increment(name, self.settings.POINTS_PER_CORRECT)
        await self.roster.heartbeat(name)

        expected = await self._expected_count(r)
        total = await self.votes.total_submitted(r)
        all_voted = expected > 0 and total >= expected

        await self.gateway.emit(OutVoteUpdate(
            round_index=r,
            votes=await self.votes.get_votes(r),
            total_submitted=total,
            expected_count=expected,
            all_voted=all_voted,
        ))
        if all_voted:
            await self.settle_round(session, trigger="all_voted")

        return OutVoteAccepted(correct=correct, round_index=r, total_submitted=total, expected_count=expected)

    # ----------------------------
    # Round settlement
    # ----------------------------
    async def settle_round(self, session: SessionStore, *, trigger: SettleTrigger) -> bool:
        """
        Close the session's current round once. Returns False when another
        trigger already settled this (session_id, round_index).
        """
        session_id = session.session_id or ""
        r = session.round_index
        if not can_transition_round(await self._round_phase(session), "ROUND_SETTLING"):
            logger.info("round not open (%s)", trigger, extra={"session_id": session_id, "round_index": r})
            return False
        if not await self.sessions.claim_settlement(session_id, r):
            logger.info("round already settled (%s)", trigger, extra={"session_id": session_id, "round_index": r})
            return False
        self.timers.cancel(session_id, r)

        if trigger != "all_voted":
            for p in await self.roster.list_players():
                await self.votes.submit_vote(r, p.name, NO_ANSWER)

        prompt = session.current_prompt()
        votes = await self.votes.get_votes(r)
        scores = await self.scores.get_all()
        logger.info("round settled by %s", trigger, extra={"session_id": session_id, "round_index": r})

        await self.gateway.emit(OutRoundEnded(
            round_index=r,
            correct_answer=prompt.correct_answer if prompt else "",
            prompt=prompt.model_dump() if prompt else {},
            votes=votes,
            results=round_results(votes, prompt),
            scores=scores,
            trigger=trigger,
            auto_advanced=trigger != "all_voted",
        ))

        delay = self.settings.SETTLE_DELAY_SEC
        if delay > 0:
            self.timers.defer(delay, lambda: self.advance_round(session_id, r))
        else:
            await self.advance_round(session_id, r)
        return True

    async def advance_round(self, session_id: str, round_index: int) -> None:
        """Leave a settled round: open the next prompt or finish the game."""
        session = await self.sessions.read_session()
        if session.session_id != session_id or session.mode != "PLAYING" or session.round_index != round_index:
            logger.info(
                "stale advance ignored (live round %s)", session.round_index,
                extra={"session_id": session_id, "round_index": round_index},
            )
            return

        if round_index >= session.total_rounds:
            await self._finish(session)
            return

        nr = round_index + 1
        players = await self.roster.list_players()
        # expected count goes in before the round index so early votes see it
        await self.votes.set_expected_count(nr, len(players))
        ts = now_ts()
        await self.sessions.write_session(round_index=nr, round_started_at=ts)
        await self.votes.clear(round_index)

        session = session.model_copy(update={"round_index": nr, "round_started_at": ts})
        self._schedule_timeout(session)
        logger.info("next round", extra={"session_id": session_id, "round_index": nr})

        prompt = session.current_prompt()
        await self.gateway.emit(OutNextPhoto(
            round_index=nr,
            prompt=prompt.public() if prompt else {},
            total_rounds=session.total_rounds,
            seconds_per_round=session.settings.seconds_per_round,
            round_started_at=ts,
            scores=await self.scores.get_all(),
        ))

    async def _finish(self, session: SessionStore) -> None:
        if not can_transition_to(session.mode, "FINISHED"):
            return
        scores = await self.scores.get_all()
        join_order = [p.name for p in await self.roster.list_players()]
        winner = pick_winner(scores, join_order)
        ts = now_ts()
        await self.sessions.write_session(mode="FINISHED", ended_at=ts, winner=winner)
        logger.info("game finished, winner=%s", winner, extra={"session_id": session.session_id})

        record = build_history_record(session, scores, winner, ts)
        try:
            await self.archive.append(record)
        except Exception:
            logger.exception("history archive failed", extra={"session_id": session.session_id})

        await self.gateway.emit(OutGameEnded(
            session_id=session.session_id,
            final_scores=scores,
            winner=winner,
            total_rounds=session.total_rounds,
        ))

    @rejections_as_errors
    async def force_advance(self, round_index: int, *, trigger: SettleTrigger = "admin") -> OutAdvanceResult:
        session = await self.sessions.read_session()
        if session.mode != "PLAYING":
            raise NoActiveGame("No active game found")
        if round_index != session.round_index:
            raise RoundMismatch(f"Round {round_index} is not the open round ({session.round_index})")

        settled = await self.settle_round(session, trigger=trigger)
        next_round = round_index + 1 if round_index < session.total_rounds else None
        return OutAdvanceResult(round_index=round_index, settled=settled, next_round=next_round)

    async def on_round_timeout(self, session_id: str, round_index: int) -> None:
        session = await self.sessions.read_session()
        if session.session_id != session_id:
            logger.info("timer for an old session ignored", extra={"session_id": session_id, "round_index": round_index})
            return
        result = await self.force_advance(round_index, trigger="timeout")
        if isinstance(result, OutError):
            logger.info("timeout no-op: %s", result.code, extra={"session_id": session_id, "round_index": round_index})

    # ----------------------------
    # Snapshot
    # ----------------------------
    async def get_state(self) -> OutGameState:
        """
        Full snapshot for reconnect. Answers stay hidden except for the
        current prompt once its round is settling.
        """
        session = await self.sessions.read_session()
        players = await self.roster.list_players()
        scores = await self.scores.get_all()
        online = await self.roster.online_players(self.settings.ONLINE_WINDOW_SEC)

        phase = await self._round_phase(session)
        votes: dict[str, str] = {}
        expected = 0
        if session.mode != "WAITING" and session.round_index:
            votes = await self.votes.get_votes(session.round_index)
            expected = await self._expected_count(session.round_index)

        prompt = session.current_prompt()
        current = None
        if prompt is not None:
            current = prompt.model_dump() if phase == "ROUND_SETTLING" else prompt.public()

        time_left = None
        if phase == "ROUND_OPEN" and session.round_started_at:
            time_left = max(0, session.round_started_at + session.settings.seconds_per_round - now_ts())

        return OutGameState(
            session={
                **session.summary(),
                "settings": session.settings.model_dump(),
                "round_started_at": session.round_started_at,
                "started_at": session.started_at,
                "ended_at": session.ended_at,
                "winner": session.winner,
            },
            round_phase=phase,
            time_left_sec=time_left,
            current_prompt=current,
            prompts=[p.public() for p in session.prompts],
            players=[p.model_dump() for p in players],
            online=sorted(online),
            scores=scores,
            votes=votes,
            expected_count=expected,
        )
