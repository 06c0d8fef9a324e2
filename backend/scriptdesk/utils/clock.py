"""Time source for token and rate-limit arithmetic"""
import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        """Current Unix time in whole seconds."""
        ...


class SystemClock:
    def now(self) -> int:
        return int(time.time())


system_clock = SystemClock()
