# babyguess/transport/protocols.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_core import PydanticCustomError

from babyguess.domain.common.types import ResetKind, RoundPhase
from babyguess.store.models import Prompt


# =========================
# Incoming (Client -> Server)
# =========================

class InBase(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    type: str


class InJoin(InBase):
    type: Literal["join"] = "join"
    name: str = Field(min_length=1, max_length=24)
    rejoin: bool = False


class InLeave(InBase):
    """Leave / kick: removes the player from the roster."""
    type: Literal["leave"] = "leave"
    name: str = Field(min_length=1, max_length=24)


class InHeartbeat(InBase):
    type: Literal["heartbeat"] = "heartbeat"
    name: str = Field(min_length=1, max_length=24)


class InStartGame(InBase):
    type: Literal["start_game"] = "start_game"
    prompts: List[Prompt] = Field(default_factory=list)
    seconds_per_round: Optional[int] = Field(default=None, gt=0, le=600)


class InSubmitVote(InBase):
    type: Literal["submit_vote"] = "submit_vote"
    name: str = Field(min_length=1, max_length=24)
    answer: str = Field(min_length=1, max_length=80)
    # Round the client believes is open; checked against the live round when given.
    round: Optional[int] = Field(default=None, ge=1)


class InForceAdvance(InBase):
    type: Literal["force_advance"] = "force_advance"
    round: int = Field(ge=1)


class InResetGame(InBase):
    type: Literal["reset_game"] = "reset_game"
    kind: ResetKind = "hard"


class InGetState(InBase):
    type: Literal["get_state"] = "get_state"


IncomingMessage = Union[
    InJoin,
    InLeave,
    InHeartbeat,
    InStartGame,
    InSubmitVote,
    InForceAdvance,
    InResetGame,
    InGetState,
]


# =========================
# Outgoing replies (Server -> sender)
# =========================

class OutBase(BaseModel):
    type: str


class OutError(OutBase):
    type: Literal["error"] = "error"
    code: str
    message: str


class OutJoined(OutBase):
    type: Literal["joined"] = "joined"
    player: Dict[str, Any]
    players: List[Dict[str, Any]]
    session: Dict[str, Any]
    rejoined: bool = False


class OutGameCreated(OutBase):
    type: Literal["game_created"] = "game_created"
    session_id: str
    total_rounds: int


class OutVoteAccepted(OutBase):
    type: Literal["vote_accepted"] = "vote_accepted"
    accepted: bool = True
    correct: bool
    round_index: int
    total_submitted: int
    expected_count: int


class OutAdvanceResult(OutBase):
    type: Literal["advance_result"] = "advance_result"
    round_index: int
    settled: bool
    next_round: Optional[int] = None


class OutPlayerRemoved(OutBase):
    type: Literal["player_removed"] = "player_removed"
    name: str
    players: List[Dict[str, Any]]


class OutResetDone(OutBase):
    type: Literal["reset_done"] = "reset_done"
    kind: ResetKind
    cleared: List[str]


class OutGameState(OutBase):
    type: Literal["game_state"] = "game_state"
    session: Dict[str, Any]
    round_phase: RoundPhase = ""
    time_left_sec: Optional[int] = None
    current_prompt: Optional[Dict[str, Any]] = None
    prompts: List[Dict[str, Any]] = Field(default_factory=list)
    players: List[Dict[str, Any]] = Field(default_factory=list)
    online: List[str] = Field(default_factory=list)
    scores: Dict[str, int] = Field(default_factory=dict)
    votes: Dict[str, str] = Field(default_factory=dict)
    expected_count: int = 0


OutgoingReply = Union[
    OutError,
    OutJoined,
    OutGameCreated,
    OutVoteAccepted,
    OutAdvanceResult,
    OutPlayerRemoved,
    OutResetDone,
    OutGameState,
]


# =========================
# Broadcast events (Server -> game topic)
# =========================

class OutPlayerJoined(OutBase):
    type: Literal["player-joined"] = "player-joined"
    player: Dict[str, Any]
    total_players: int
    players: List[Dict[str, Any]]
    session: Dict[str, Any]
    rejoined: bool = False


class OutPlayerLeft(OutBase):
    type: Literal["player-left"] = "player-left"
    name: str
    players: List[Dict[str, Any]]
    expected_count: Optional[int] = None


class OutGameStarted(OutBase):
    type: Literal["game-started"] = "game-started"
    session_id: str
    prompt: Dict[str, Any]
    round_index: int = 1
    total_rounds: int
    seconds_per_round: int
    round_started_at: int
    players: List[Dict[str, Any]]


class OutVoteUpdate(OutBase):
    type: Literal["vote-update"] = "vote-update"
    round_index: int
    votes: Dict[str, str]
    total_submitted: int
    expected_count: int
    all_voted: bool


class OutRoundEnded(OutBase):
    type: Literal["round-ended"] = "round-ended"
    round_index: int
    correct_answer: str
    prompt: Dict[str, Any]
    votes: Dict[str, str]
    results: Dict[str, bool]
    scores: Dict[str, int]
    trigger: str
    auto_advanced: bool = False


class OutNextPhoto(OutBase):
    type: Literal["next-photo"] = "next-photo"
    round_index: int
    prompt: Dict[str, Any]
    total_rounds: int
    seconds_per_round: int
    round_started_at: int
    scores: Dict[str, int]


class OutGameEnded(OutBase):
    type: Literal["game-ended"] = "game-ended"
    session_id: Optional[str] = None
    final_scores: Dict[str, int]
    winner: Optional[str] = None
    total_rounds: int


class OutGameReset(OutBase):
    type: Literal["game-reset"] = "game-reset"
    kind: ResetKind
    cleared: List[str]
    timestamp: int


OutgoingEvent = Union[
    OutPlayerJoined,
    OutPlayerLeft,
    OutGameStarted,
    OutVoteUpdate,
    OutRoundEnded,
    OutNextPhoto,
    OutGameEnded,
    OutGameReset,
]


# =========================
# Parser helpers
# =========================

_INCOMING_BY_TYPE = {
    "join": InJoin,
    "leave": InLeave,
    "heartbeat": InHeartbeat,
    "start_game": InStartGame,
    "submit_vote": InSubmitVote,
    "force_advance": InForceAdvance,
    "reset_game": InResetGame,
    "get_state": InGetState,
}


def parse_incoming(payload: Dict[str, Any]) -> IncomingMessage:
    """
    Convert raw dict -> validated message model.
    Raises ValidationError if invalid.
    """
    t = payload.get("type") if isinstance(payload, dict) else None
    if not isinstance(t, str):
        raise ValidationError.from_exception_data(
            title="IncomingMessage",
            line_errors=[{"type": PydanticCustomError("invalid_type", "Missing/invalid type"), "loc": ("type",), "input": t}],
        )

    cls = _INCOMING_BY_TYPE.get(t)
    if cls is None:
        raise ValidationError.from_exception_data(
            title="IncomingMessage",
            line_errors=[{"type": PydanticCustomError("unknown_type", "Unknown message type: {t}", {"t": t}), "loc": ("type",), "input": t}],
        )

    return cls.model_validate(payload)
