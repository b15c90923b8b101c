"""Keyed in-process cache with per-entry time-to-live."""

from typing import Any, Dict, Optional, Tuple

from src.market.clock import Clock


class TTLCache:
    """
    Small TTL cache driven by an injected clock.

    Entries expire against clock.monotonic(), so tests control staleness by
    advancing a fake clock instead of sleeping. Nothing here is a source of
    truth: losing the whole cache only costs a recomputation.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or Clock()
        # key -> (value, stored_at, ttl_seconds)
        self._entries: Dict[str, Tuple[Any, float, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at, ttl = entry
        if self.clock.monotonic() - stored_at >= ttl:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._entries[key] = (value, self.clock.monotonic(), float(ttl_seconds))

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with prefix. Returns how many were dropped."""
        keys = [k for k in self._entries if k.startswith(prefix)]
        for k in keys:
            del self._entries[k]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def age(self, key: str) -> Optional[float]:
        """Seconds since key was stored, or None if absent/expired."""
        if self.get(key) is None:
            return None
        return self.clock.monotonic() - self._entries[key][1]

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
