# babyguess/domain/common/errors.py
"""
Business-rule rejections. Raised inside the domain, turned into
OutError(code, message) replies by the orchestrator; never crash a request.
"""
from __future__ import annotations


class GameRejection(Exception):
    code = "REJECTED"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NameTaken(GameRejection):
    code = "NAME_TAKEN"


class NoPlayers(GameRejection):
    code = "NO_PLAYERS"


class NoPrompts(GameRejection):
    code = "NO_PROMPTS"


class NoActiveGame(GameRejection):
    code = "NO_ACTIVE_GAME"


class AlreadyVoted(GameRejection):
    code = "ALREADY_VOTED"


class RoundMismatch(GameRejection):
    code = "ROUND_MISMATCH"


class RoundClosed(GameRejection):
    code = "ROUND_CLOSED"


class UnknownPlayer(GameRejection):
    code = "UNKNOWN_PLAYER"


class BadState(GameRejection):
    code = "BAD_STATE"


class StateCorrupt(GameRejection):
    code = "STATE_CORRUPT"
