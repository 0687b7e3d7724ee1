"""Sliding window throttling for login attempts."""

from __future__ import annotations

import math
import time
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import DefaultDict, Deque, Protocol


@dataclass(frozen=True, slots=True)
class ThrottleDecision:
    allowed: bool
    retry_after: int = 0


class LoginThrottle(Protocol):
    def check(self, key: str) -> ThrottleDecision: ...


class InMemoryLoginThrottle:
    """Per-process sliding window guarded by a lock."""

    def __init__(self, max_requests: int, window_seconds: int) -> None:
        self._max_requests = max_requests
        self._window = window_seconds
        self._attempts: DefaultDict[str, Deque[float]] = DefaultDict(deque)
        self._lock = Lock()
        self._last_sweep = time.monotonic()

    def check(self, key: str) -> ThrottleDecision:
        """Record an attempt for ``key`` unless the window is already full."""
        now = time.monotonic()
        with self._lock:
            if now - self._last_sweep >= self._window:
                self._sweep(now)
            attempts = self._attempts[key]
            while attempts and now - attempts[0] >= self._window:
                attempts.popleft()
            if len(attempts) >= self._max_requests:
                wait = self._window - (now - attempts[0])
                return ThrottleDecision(False, max(1, math.ceil(wait)))
            attempts.append(now)
            return ThrottleDecision(True)

    def _sweep(self, now: float) -> None:
        """Drop keys whose newest attempt has left the window. Caller holds the lock."""
        expired = [
            key
            for key, attempts in self._attempts.items()
            if not attempts or now - attempts[-1] >= self._window
        ]
        for key in expired:
            del self._attempts[key]
        self._last_sweep = now
