from babyguess.domain.common.fsm import can_transition_round, can_transition_to
from babyguess.domain.common.types import NO_ANSWER
from babyguess.domain.game.scoring import build_history_record, is_correct, pick_winner, round_results
from babyguess.store.models import SessionStore
from babyguess.util.timeutil import format_duration
from fakes import prompts


def test_session_transitions():
    assert can_transition_to("WAITING", "PLAYING")
    assert can_transition_to("PLAYING", "FINISHED")
    assert can_transition_to("PLAYING", "WAITING")
    assert can_transition_to("FINISHED", "WAITING")
    assert not can_transition_to("FINISHED", "PLAYING")
    assert not can_transition_to("WAITING", "FINISHED")


def test_round_transitions():
    assert can_transition_round("", "ROUND_OPEN")
    assert can_transition_round("ROUND_OPEN", "ROUND_SETTLING")
    assert can_transition_round("ROUND_SETTLING", "ROUND_OPEN")
    assert not can_transition_round("ROUND_SETTLING", "ROUND_SETTLING")
    assert not can_transition_round("", "ROUND_SETTLING")


def test_is_correct():
    p = prompts("Ann")[0]
    assert is_correct("Ann", p)
    assert not is_correct("ann", p)
    assert not is_correct(NO_ANSWER, p)
    assert not is_correct("Ann", None)
    assert round_results({"a": "Ann", "b": "Bob"}, p) == {"a": True, "b": False}


def test_pick_winner():
    assert pick_winner({}, []) is None
    assert pick_winner({"a": 1, "b": 3}, ["a", "b"]) == "b"
    # tie: earliest joiner
    assert pick_winner({"a": 2, "b": 2}, ["b", "a"]) == "b"
    # tie between players no longer on the roster: by name
    assert pick_winner({"zed": 2, "amy": 2}, []) == "amy"


def test_history_record():
    session = SessionStore(session_id="s1", mode="PLAYING", round_index=2, prompts=prompts("A", "B"), started_at=1000)

    rec = build_history_record(session, {"a": 1, "b": 2}, "b", ended_at=1130)

    assert rec.id == "s1"
    assert rec.date == 1000
    assert [p.name for p in rec.players] == ["b", "a"]
    assert rec.total_rounds == 2
    assert rec.duration_sec == 130
    assert rec.duration == "2 minutes"


def test_format_duration():
    assert format_duration(0) == "0 minutes"
    assert format_duration(61) == "1 minute"
    assert format_duration(-5) == "0 minutes"
