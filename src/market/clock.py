import time
from datetime import datetime, tzinfo
from typing import Optional


class Clock:
    """Wall clock plus a monotonic timer. Tests swap in a fake."""

    def now(self, tz: Optional[tzinfo] = None) -> datetime:
        return datetime.now(tz)

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)
