from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class _Bucket:
    tokens: float
    updated_at: float
    limit: float
    rate: float

    def level(self, now: float) -> float:
        return min(self.limit, self.tokens + (now - self.updated_at) * self.rate)


class RateLimiter:
    """
    In-process token bucket limiter.
    Keys should include both scope and identity (e.g. "auth:login:ip:1.2.3.4").

    Buckets that have refilled completely carry no state worth keeping and
    are dropped on a periodic sweep.
    """

    def __init__(
        self, *, sweep_seconds: float = 60.0, clock: Callable[[], float] = time.time
    ) -> None:
        self._mem: dict[str, _Bucket] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._sweep_seconds = float(sweep_seconds)
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._mem)

    def _sweep(self, now: float) -> None:
        full = [k for k, b in self._mem.items() if b.level(now) >= b.limit]
        for k in full:
            del self._mem[k]
        self._last_sweep = now

    def allow(self, key: str, *, limit: int, per_seconds: int) -> bool:
        now = self._clock()
        rate = float(limit) / float(per_seconds)
        with self._lock:
            if now - self._last_sweep >= self._sweep_seconds:
                self._sweep(now)
            b = self._mem.get(key)
            if b is None:
                b = _Bucket(tokens=float(limit), updated_at=now, limit=float(limit), rate=rate)
                self._mem[key] = b
            # refill
            b.limit, b.rate = float(limit), rate
            b.tokens = b.level(now)
            b.updated_at = now
            if b.tokens < 1.0:
                return False
            b.tokens -= 1.0
            return True
