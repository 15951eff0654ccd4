# babyguess/domain/common/types.py
from __future__ import annotations

from typing import Literal

GameMode = Literal["WAITING", "PLAYING", "FINISHED"]
RoundPhase = Literal["", "ROUND_OPEN", "ROUND_SETTLING"]
ResetKind = Literal["soft", "hard"]
SettleTrigger = Literal["all_voted", "timeout", "player_left", "admin"]

# Recorded for players who had not answered when the round closed.
NO_ANSWER = "__no_answer__"
