# babyguess/domain/game/scoring.py
from __future__ import annotations

from typing import Dict, List, Optional

from babyguess.domain.common.types import NO_ANSWER
from babyguess.store.models import HistoryRecord, PlayerScore, Prompt, SessionStore
from babyguess.util.timeutil import format_duration


def is_correct(answer: str, prompt: Optional[Prompt]) -> bool:
    """Flat credit: exact match against the prompt's answer; NO_ANSWER never scores."""
    if prompt is None or answer == NO_ANSWER:
        return False
    return answer == prompt.correct_answer


def round_results(votes: Dict[str, str], prompt: Optional[Prompt]) -> Dict[str, bool]:
    return {name: is_correct(answer, prompt) for name, answer in votes.items()}


def pick_winner(scores: Dict[str, int], join_order: List[str]) -> Optional[str]:
    """
    Highest score wins. Ties go to whoever joined first, then by name.
    Players no longer on the roster rank after everyone still on it.
    """
    if not scores:
        return None
    rank = {name: i for i, name in enumerate(join_order)}
    return min(scores, key=lambda n: (-scores[n], rank.get(n, len(rank)), n))


def build_history_record(
    session: SessionStore,
    scores: Dict[str, int],
    winner: Optional[str],
    ended_at: int,
) -> HistoryRecord:
    duration_sec = max(0, ended_at - (session.started_at or ended_at))
    ordered = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))
    return HistoryRecord(
        id=session.session_id or "",
        date=session.started_at,
        players=[PlayerScore(name=n, score=s) for n, s in ordered],
        winner=winner,
        total_rounds=session.total_rounds,
        duration_sec=duration_sec,
        duration=format_duration(duration_sec),
        settings=session.settings,
    )
