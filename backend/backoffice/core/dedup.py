"""Process-local, short-TTL duplicate suppression.

Best-effort only: state lives in one process and is not shared between
workers. The owner (``app.state.dedup``) decides its lifetime.
"""
import threading
import time
from collections.abc import Callable


class DedupCache:
    def __init__(self, ttl_seconds: float, max_entries: int = 10_000, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._seen: dict[str, float] = {}
        self._lock = threading.Lock()

    def seen_recently(self, key: str) -> bool:
        """Record ``key`` and return True if it was already recorded within the TTL."""
        now = self._clock()
        with self._lock:
            expires_at = self._seen.get(key)
            if expires_at is not None and expires_at > now:
                return True
            if len(self._seen) >= self.max_entries:
                self._purge(now)
            self._seen[key] = now + self.ttl_seconds
            return False

    def forget(self, key: str) -> None:
        with self._lock:
            self._seen.pop(key, None)

    def __len__(self) -> int:
        return len(self._seen)

    def _purge(self, now: float) -> None:
        self._seen = {k: exp for k, exp in self._seen.items() if exp > now}
        # Still full of live keys: drop the oldest half.
        if len(self._seen) >= self.max_entries:
            keep = sorted(self._seen.items(), key=lambda kv: kv[1])[len(self._seen) // 2:]
            self._seen = dict(keep)
