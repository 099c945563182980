"""
Rate Limiter
============

Sliding-window admission control for outgoing email.

Two independent windows (1 hour, 24 hours) hold the timestamps of successful
sends. Every send is checked against both before it happens and recorded in
both after Gmail confirms it.

CONSTITUTIONAL INVARIANTS:
- INV-LIMIT-01: Event at T counted strictly before T + window, never after
- INV-LIMIT-03: Hourly limit checked before daily limit
- INV-LIMIT-04: Reads never change counts
- INV-LIMIT-05: No operation raises
"""

from __future__ import annotations

import random
import time
from collections import deque
from typing import Callable

from contracts import Admission, RateLimitStatus

ONE_HOUR = 60 * 60
ONE_DAY = 24 * 60 * 60

DEFAULT_DELAY_RANGE = (3.0, 8.0)


class RateLimiter:
    """
    Hourly and daily sliding-window limiter.

    Not thread-safe. Callers serialize check-send-record sequences themselves
    (the server holds an asyncio.Lock around each one).
    """

    def __init__(
        self,
        max_per_hour: int,
        max_per_day: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        delay_range: tuple[float, float] = DEFAULT_DELAY_RANGE,
        rng: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self._max_per_hour = max_per_hour
        self._max_per_day = max_per_day
        self._clock = clock
        self._delay_range = delay_range
        self._rng = rng
        # Timestamps are appended in clock order, so expiry only ever
        # removes from the left.
        self._hourly: deque[float] = deque()
        self._daily: deque[float] = deque()

    @property
    def max_per_hour(self) -> int:
        return self._max_per_hour

    @property
    def max_per_day(self) -> int:
        return self._max_per_day

    def _purge(self) -> None:
        """Drop events that have left their window."""
        now = self._clock()
        while self._hourly and now - self._hourly[0] >= ONE_HOUR:
            self._hourly.popleft()
        while self._daily and now - self._daily[0] >= ONE_DAY:
            self._daily.popleft()

    def _admission(self) -> Admission:
        hourly_count = len(self._hourly)
        daily_count = len(self._daily)
        hourly_remaining = max(0, self._max_per_hour - hourly_count)
        daily_remaining = max(0, self._max_per_day - daily_count)

        if hourly_count >= self._max_per_hour:
            reason = (
                f"Hourly limit reached ({self._max_per_hour}/hour). "
                "Please wait before sending more emails."
            )
        elif daily_count >= self._max_per_day:
            reason = (
                f"Daily limit reached ({self._max_per_day}/day). "
                "Please try again tomorrow."
            )
        else:
            reason = None

        return Admission(
            allowed=reason is None,
            reason=reason,
            hourly_remaining=hourly_remaining,
            daily_remaining=daily_remaining,
        )

    def _status(self) -> RateLimitStatus:
        hourly_count = len(self._hourly)
        daily_count = len(self._daily)
        return RateLimitStatus(
            hourly_count=hourly_count,
            hourly_limit=self._max_per_hour,
            hourly_remaining=max(0, self._max_per_hour - hourly_count),
            daily_count=daily_count,
            daily_limit=self._max_per_day,
            daily_remaining=max(0, self._max_per_day - daily_count),
        )

    def check_admission(self) -> Admission:
        """
        Decide whether a send may happen now.

        POST-LIMIT-01: Denied when hourly_count >= max_per_hour
        POST-LIMIT-02: Else denied when daily_count >= max_per_day
        INV-LIMIT-03: Hourly reason wins when both are exhausted
        """
        self._purge()
        return self._admission()

    def record_success(self) -> None:
        """
        Record one confirmed send in both windows.

        Call only after Gmail accepted the message. Not idempotent.
        """
        now = self._clock()
        self._hourly.append(now)
        self._daily.append(now)

    def status(self) -> RateLimitStatus:
        """Current counts, limits and remaining capacity."""
        self._purge()
        return self._status()

    def snapshot(self) -> tuple[Admission, RateLimitStatus]:
        """
        Admission decision and status from a single clock reading.

        POST-LIMIT-07: Both values describe the same instant
        """
        self._purge()
        return self._admission(), self._status()

    def max_admissible_batch(self, requested: int) -> int:
        """How many of `requested` sends current capacity allows."""
        admission = self.check_admission()
        if not admission.allowed:
            return 0
        return min(requested, admission.hourly_remaining, admission.daily_remaining)

    def suggested_inter_send_delay(self) -> float:
        """Seconds to wait between consecutive sends in a batch."""
        low, high = self._delay_range
        return self._rng(low, high)
