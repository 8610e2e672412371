"""
Rate Limiter for registrar API calls.

The registrar enforces per-account request limits over several windows
(per minute, per hour, per day). This limiter tracks request timestamps in
sliding windows and blocks the calling thread until a request fits under
every configured rule. A single lock serializes access so concurrent
callers never exceed a window between check and record.
"""

import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Optional

from .config import RateLimitConfig, RateLimitRule


@dataclass
class RateLimitStatus:
    """Result of a rate limit check."""

    allowed: bool
    wait_seconds: float
    reason: Optional[str] = None


class RateLimiter:
    """Sliding-window limiter shared by every call of one API client."""

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or RateLimitConfig()
        self._sleep = sleep
        self._clock = clock
        self._request_times: dict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    @staticmethod
    def _key(rule: RateLimitRule) -> str:
        return f"{rule.max_requests}/{rule.window_seconds:g}s"

    def check(self) -> RateLimitStatus:
        """Check all rules without recording a request."""
        with self._lock:
            wait_seconds, reason = self._calculate_wait_time(self._clock())
        return RateLimitStatus(
            allowed=wait_seconds <= 0,
            wait_seconds=wait_seconds,
            reason=reason,
        )

    def acquire(self) -> float:
        """
        Block until a request is allowed, then record it.

        Returns:
            Total seconds spent waiting
        """
        waited = 0.0
        with self._lock:
            while True:
                now = self._clock()
                wait_seconds, _ = self._calculate_wait_time(now)
                if wait_seconds <= 0:
                    self._record(now)
                    return waited
                self._sleep(wait_seconds)
                waited += wait_seconds

    def _calculate_wait_time(self, current_time: float) -> tuple[float, Optional[str]]:
        max_wait = 0.0
        wait_reason = None
        for rule in self._config.rules:
            wait, reason = self._check_rule(rule, current_time)
            if wait > max_wait:
                max_wait = wait
                wait_reason = reason
        return max_wait, wait_reason

    def _check_rule(
        self, rule: RateLimitRule, current_time: float
    ) -> tuple[float, Optional[str]]:
        key = self._key(rule)
        window_start = current_time - rule.window_seconds
        self._request_times[key] = [
            t for t in self._request_times[key] if t > window_start
        ]

        request_count = len(self._request_times[key])
        if request_count >= rule.max_requests:
            oldest_request = min(self._request_times[key])
            wait_seconds = max(0.0, oldest_request + rule.window_seconds - current_time)
            return wait_seconds, (
                f"Rate limit reached for {key}: {request_count}/{rule.max_requests}"
            )
        return 0.0, None

    def _record(self, current_time: float) -> None:
        for rule in self._config.rules:
            self._request_times[self._key(rule)].append(current_time)

    def request_count(self, rule: RateLimitRule) -> int:
        """Requests currently inside the rule's window."""
        with self._lock:
            self._check_rule(rule, self._clock())
            return len(self._request_times[self._key(rule)])
