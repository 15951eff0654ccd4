# babyguess/domain/common/fsm.py
from __future__ import annotations

from babyguess.domain.common.types import GameMode, RoundPhase


def can_transition_to(current: GameMode, target: GameMode) -> bool:
    """
    Validate session transitions. FINISHED is terminal until a reset.
    """
    transitions: dict[GameMode, list[GameMode]] = {
        "WAITING": ["PLAYING", "WAITING"],
        "PLAYING": ["FINISHED", "WAITING"],
        "FINISHED": ["WAITING"],
    }
    return target in transitions.get(current, [])


def can_transition_round(current: RoundPhase, target: RoundPhase) -> bool:
    """
    Validate the per-round sub-cycle inside PLAYING.
    "" is outside any round (before the first, after the last).
    """
    transitions: dict[RoundPhase, list[RoundPhase]] = {
        "": ["ROUND_OPEN"],
        "ROUND_OPEN": ["ROUND_SETTLING"],
        "ROUND_SETTLING": ["ROUND_OPEN", ""],
    }
    return target in transitions.get(current, [])
