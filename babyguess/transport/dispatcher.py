# babyguess/transport/dispatcher.py
from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ValidationError

from babyguess.transport.protocols import (
    parse_incoming,
    OutError,
    InJoin,
    InLeave,
    InHeartbeat,
    InStartGame,
    InSubmitVote,
    InForceAdvance,
    InResetGame,
)

DispatchResult = List[Dict[str, Any]]
# replies for the sender, each a JSON dict; broadcasts go out through the gateway


async def dispatch_message(*, app, raw: Dict[str, Any]) -> DispatchResult:
    """
    Transport layer calls this.
    - Parses + validates raw JSON
    - Routes to the orchestrator
    - Returns the sender's replies as JSON dicts

    NOTE: This file contains NO Redis key usage and NO game rules.
    StoreUnavailable propagates to the transport.
    """
    try:
        msg = parse_incoming(raw)
    except (ValidationError, ValueError) as e:
        return [OutError(code="BAD_MESSAGE", message=str(e)).model_dump()]

    game = app.state.game

    if isinstance(msg, InJoin):
        return _dump([await game.join(msg.name, rejoin=msg.rejoin)])

    if isinstance(msg, InLeave):
        return _dump([await game.remove_player(msg.name)])

    if isinstance(msg, InHeartbeat):
        # keep heartbeat quiet
        await game.heartbeat(msg.name)
        return []

    if isinstance(msg, InStartGame):
        return _dump([await game.start_game(msg.prompts, msg.seconds_per_round)])

    if isinstance(msg, InSubmitVote):
        return _dump([await game.submit_vote(msg.name, msg.answer, round_index=msg.round)])

    if isinstance(msg, InForceAdvance):
        return _dump([await game.force_advance(msg.round)])

    if isinstance(msg, InResetGame):
        return _dump([await game.reset_game(msg.kind)])

    # get_state
    return _dump([await game.get_state()])


def _dump(events: List[BaseModel]) -> List[Dict[str, Any]]:
    """
    Convert pydantic replies -> JSON dicts.
    """
    return [e.model_dump() for e in events]
