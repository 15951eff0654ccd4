# babyguess/store/models.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


GameMode = Literal["WAITING", "PLAYING", "FINISHED"]


class Prompt(BaseModel):
    """One baby photo and whose it is."""
    id: str = Field(min_length=1)
    media_url: str
    correct_answer: str = Field(min_length=1)

    def public(self) -> Dict[str, Any]:
        # the answer stays server-side until the round is settled
        return {"id": self.id, "media_url": self.media_url}


class GameSettings(BaseModel):
    seconds_per_round: int = Field(default=10, gt=0)


class PlayerStore(BaseModel):
    name: str = Field(min_length=1)
    id: str
    joined_at: int
    last_seen_at: int


class SessionStore(BaseModel):
    session_id: Optional[str] = None
    mode: GameMode = "WAITING"
    round_index: int = Field(default=0, ge=0)
    prompts: List[Prompt] = Field(default_factory=list)
    settings: GameSettings = Field(default_factory=GameSettings)
    round_started_at: Optional[int] = None
    started_at: Optional[int] = None
    ended_at: Optional[int] = None
    winner: Optional[str] = None

    @property
    def total_rounds(self) -> int:
        return len(self.prompts)

    def current_prompt(self) -> Optional[Prompt]:
        if 1 <= self.round_index <= len(self.prompts):
            return self.prompts[self.round_index - 1]
        return None

    def is_consistent(self) -> bool:
        if self.mode == "PLAYING":
            return self.session_id is not None and 1 <= self.round_index <= len(self.prompts)
        if self.mode == "WAITING":
            return self.round_index == 0
        return True

    def summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "mode": self.mode,
            "round_index": self.round_index,
            "total_rounds": self.total_rounds,
        }


class PlayerScore(BaseModel):
    name: str
    score: int


class HistoryRecord(BaseModel):
    id: str
    date: Optional[int] = None
    players: List[PlayerScore] = Field(default_factory=list)
    winner: Optional[str] = None
    total_rounds: int
    duration_sec: int = 0
    duration: str = ""
    settings: GameSettings = Field(default_factory=GameSettings)
