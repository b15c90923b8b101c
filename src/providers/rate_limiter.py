import time
from typing import Callable


class YahooRateLimiter:
    """
    Spaces out calls to Yahoo Finance.

    Yahoo's unofficial limit is around 2000 requests/hour; bursts get the
    client throttled or blocked, so every request waits for min_interval
    since the previous one.
    """

    def __init__(
        self,
        min_interval: float = 0.25,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = min_interval
        self._sleep = sleep
        self._monotonic = monotonic
        self.last_request = None

    def wait_if_needed(self) -> None:
        if self.last_request is not None:
            elapsed = self._monotonic() - self.last_request
            if elapsed < self.min_interval:
                self._sleep(self.min_interval - elapsed)
        self.last_request = self._monotonic()
