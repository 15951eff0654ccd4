# babyguess/util/timeutil.py
from __future__ import annotations

import time


def now_ts() -> int:
    """Unix time in whole seconds."""
    return int(time.time())


def format_duration(seconds: int) -> str:
    minutes = max(0, int(seconds)) // 60
    return f"{minutes} minute{'' if minutes == 1 else 's'}"
