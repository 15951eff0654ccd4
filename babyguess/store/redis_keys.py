# babyguess/store/redis_keys.py
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GK:
    """
    Redis key builder for the game.
    One active session per deployment: the namespace is fixed by convention.
    Parameterizing `ns` is the path to running several sessions side by side.
    """
    ns: str = "game"

    # ---- Session ----
    def session(self) -> str:
        return f"{self.ns}:session:current"  # HASH field -> JSON

    def settled(self, session_id: str, round_index: int) -> str:
        return f"{self.ns}:session:settled:{session_id}:{round_index}"  # STRING claim marker

    # ---- Roster ----
    def players(self) -> str:
        return f"{self.ns}:players"  # LIST of JSON player records

    def online(self) -> str:
        return f"{self.ns}:players:online"  # HASH name -> last seen ts

    # ---- Scores ----
    def scores(self) -> str:
        return f"{self.ns}:scores"  # HASH name -> int

    # ---- Votes ----
    def votes(self, round_index: int) -> str:
        return f"{self.ns}:votes:{round_index}"  # HASH name -> JSON answer

    def votes_expected(self, round_index: int) -> str:
        return f"{self.ns}:votes:{round_index}:expected"  # STRING int

    def votes_pattern(self) -> str:
        return f"{self.ns}:votes:*"

    # ---- History ----
    def history(self) -> str:
        return f"{self.ns}:history"  # LIST of JSON records, newest first

    # ---- Maintenance ----
    def prefixes(self) -> list[str]:
        """Match patterns scanned by the repair routine."""
        return [f"{self.ns}:session:*", f"{self.ns}:players*", f"{self.ns}:scores", self.votes_pattern()]
