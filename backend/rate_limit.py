"""Submission rate limiting for a single user session.

Sliding window of attempts, a cooldown once the window quota is used up, and a
guard against resubmitting unchanged code.
"""
import hashlib
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from config import (
    RATE_LIMIT_MAX_ATTEMPTS,
    RATE_LIMIT_WINDOW_MS,
    RATE_LIMIT_COOLDOWN_MS,
)

logger = logging.getLogger(__name__)


def fingerprint(code: str) -> str:
    """Hash of the submitted code used to spot resubmissions"""
    return hashlib.md5(code.encode("utf-8")).hexdigest()


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class RateLimitResult:
    allowed: bool
    message: Optional[str] = None
    wait_time_seconds: Optional[int] = None
    duplicate: bool = False


class RateLimiter:
    def __init__(self, max_attempts: int = RATE_LIMIT_MAX_ATTEMPTS,
                 window_ms: int = RATE_LIMIT_WINDOW_MS,
                 cooldown_ms: int = RATE_LIMIT_COOLDOWN_MS,
                 clock: Callable[[], float] = _now_ms):
        self.max_attempts = max_attempts
        self.window_ms = window_ms
        self.cooldown_ms = cooldown_ms
        self.clock = clock

        self.attempts = 0
        self.window_start = clock()
        self.cooldown_until: Optional[float] = None
        self.last_fingerprint: Optional[str] = None

    def check(self, code: str) -> RateLimitResult:
        now = self.clock()

        if self.cooldown_until is not None and now < self.cooldown_until:
            wait = math.ceil((self.cooldown_until - now) / 1000)
            return RateLimitResult(False, f"Rate limited. Please wait {wait} seconds.", wait)

        if self.last_fingerprint == fingerprint(code):
            return RateLimitResult(False, "Please modify your code before submitting again.",
                                   duplicate=True)

        if now - self.window_start > self.window_ms:
            self.attempts = 0
            self.window_start = now
            self.cooldown_until = None
            return RateLimitResult(True)

        if self.attempts >= self.max_attempts:
            self.cooldown_until = now + self.cooldown_ms
            wait = math.ceil(self.cooldown_ms / 1000)
            logger.info(f"Submission quota used up, cooling down for {wait}s")
            return RateLimitResult(False, f"Too many submissions. Please wait {wait} seconds.", wait)

        return RateLimitResult(True)

    def record_attempt(self, code: str):
        """Call once per submission that passed `check`"""
        self.last_fingerprint = fingerprint(code)
        self.attempts += 1

    def remaining_attempts(self) -> int:
        if self.clock() - self.window_start > self.window_ms:
            return self.max_attempts
        return max(0, self.max_attempts - self.attempts)

    def cooldown_remaining(self) -> int:
        if self.cooldown_until is None:
            return 0
        remaining = self.cooldown_until - self.clock()
        return math.ceil(remaining / 1000) if remaining > 0 else 0

    @property
    def in_cooldown(self) -> bool:
        return self.cooldown_remaining() > 0

    @property
    def idle(self) -> bool:
        """Nothing left to enforce: no cooldown and no attempts in the current window"""
        if self.in_cooldown:
            return False
        return self.attempts == 0 or self.clock() - self.window_start > self.window_ms
