"""
Rate Limiter Contract Tests
===========================

CL12-E TRACEABILITY: Every test cites specific contract clause IDs.
THEATER DETECTION: Tests use exact values, not ranges, for deterministic behavior.
"""

import pytest

from contracts import Admission, RateLimiterContract, RateLimitStatus
from src.gmail_mcp.rate_limiter import ONE_DAY, ONE_HOUR, RateLimiter


class TestRateLimiterContract:
    """Tests for sliding-window admission control."""

    def test_satisfies_protocol(self, limiter):
        """
        Contract: RateLimiterContract
        """
        assert isinstance(limiter, RateLimiterContract)

    def test_fresh_server_starts_empty(self, limiter):
        """
        Contract: StartupContract
        Enforces: POST-STARTUP-03, INV-STARTUP-02
        """
        assert limiter.status() == RateLimitStatus(
            hourly_count=0,
            hourly_limit=2,
            hourly_remaining=2,
            daily_count=0,
            daily_limit=5,
            daily_remaining=5,
        )

    def test_monotonic_exhaustion(self, clock):
        """
        Contract: RateLimiterContract
        Enforces: POST-LIMIT-01, POST-LIMIT-04
        """
        limiter = RateLimiter(3, 50, clock=clock)
        for _ in range(3):
            assert limiter.check_admission().allowed is True
            limiter.record_success()
            clock.advance(60)

        admission = limiter.check_admission()
        assert admission.allowed is False
        assert admission.reason.startswith("Hourly limit reached (3/hour)")
        assert admission.hourly_remaining == 0
        assert admission.daily_remaining == 47

    def test_window_independence(self, clock):
        """
        Contract: RateLimiterContract
        Enforces: INV-LIMIT-02, POST-LIMIT-03
        """
        limiter = RateLimiter(5, 50, clock=clock)
        for _ in range(5):
            limiter.record_success()

        admission = limiter.check_admission()
        assert admission.allowed is False
        assert admission.hourly_remaining == 0
        assert admission.daily_remaining == 45

    def test_hourly_expiry_boundary(self, limiter, clock):
        """
        Contract: RateLimiterContract
        Enforces: INV-LIMIT-01
        """
        limiter.record_success()

        clock.advance(ONE_HOUR - 0.5)
        assert limiter.status().hourly_count == 1

        clock.advance(0.5)
        status = limiter.status()
        assert status.hourly_count == 0
        assert status.daily_count == 1

    def test_daily_expiry_boundary(self, clock):
        """
        Contract: RateLimiterContract
        Enforces: INV-LIMIT-01, POST-LIMIT-02
        """
        limiter = RateLimiter(10, 1, clock=clock)
        limiter.record_success()

        clock.advance(ONE_HOUR)
        admission = limiter.check_admission()
        assert admission.allowed is False
        assert admission.reason == "Daily limit reached (1/day). Please try again tomorrow."
        assert admission.hourly_remaining == 10

        clock.advance(ONE_DAY - ONE_HOUR - 0.5)
        assert limiter.status().daily_count == 1

        clock.advance(0.5)
        assert limiter.status().daily_count == 0
        assert limiter.check_admission().allowed is True

    def test_hourly_reason_takes_precedence(self, clock):
        """
        Contract: RateLimiterContract
        Enforces: INV-LIMIT-03
        Adversarial: True
        """
        limiter = RateLimiter(1, 1, clock=clock)
        limiter.record_success()

        admission = limiter.check_admission()
        assert admission.allowed is False
        assert admission.reason == (
            "Hourly limit reached (1/hour). Please wait before sending more emails."
        )

    def test_batch_truncation(self, clock):
        """
        Contract: RateLimiterContract
        Enforces: POST-LIMIT-05
        """
        limiter = RateLimiter(5, 12, clock=clock)
        for _ in range(2):
            limiter.record_success()
        # hourly_remaining=3, daily_remaining=10
        assert limiter.max_admissible_batch(7) == 3
        assert limiter.max_admissible_batch(2) == 2

        for _ in range(3):
            limiter.record_success()
        assert limiter.check_admission().allowed is False
        assert limiter.max_admissible_batch(1) == 0
        assert limiter.max_admissible_batch(100) == 0

    def test_reads_do_not_change_counts(self, limiter):
        """
        Contract: RateLimiterContract
        Enforces: INV-LIMIT-04
        Adversarial: True
        """
        limiter.record_success()
        for _ in range(20):
            limiter.check_admission()
            limiter.status()
            limiter.max_admissible_batch(10)

        status = limiter.status()
        assert status.hourly_count == 1
        assert status.daily_count == 1

    def test_record_success_not_idempotent(self, limiter):
        """
        Contract: RateLimiterContract
        Enforces: POST-LIMIT-04
        """
        limiter.record_success()
        limiter.record_success()
        assert limiter.status().hourly_count == 2

    def test_concrete_scenario(self, limiter, clock):
        """
        Contract: RateLimiterContract
        Enforces: POST-LIMIT-01, INV-LIMIT-01, INV-LIMIT-02

        2/hour, 5/day: two sends exhaust the hour; 61 minutes later the hour
        is free again while the day still counts both.
        """
        status = limiter.status()
        assert (status.hourly_count, status.hourly_remaining) == (0, 2)
        assert (status.daily_count, status.daily_remaining) == (0, 5)

        limiter.record_success()
        limiter.record_success()
        admission = limiter.check_admission()
        assert admission.allowed is False
        assert admission.reason.startswith("Hourly limit reached (2/hour)")

        clock.advance(61 * 60)
        assert limiter.check_admission() == Admission(
            allowed=True, reason=None, hourly_remaining=2, daily_remaining=3
        )

    def test_non_positive_limit_always_denied(self, clock):
        """
        Contract: RateLimiterContract
        Enforces: INV-LIMIT-05
        Adversarial: True
        """
        limiter = RateLimiter(0, 5, clock=clock)
        admission = limiter.check_admission()
        assert admission.allowed is False
        assert admission.hourly_remaining == 0
        assert limiter.max_admissible_batch(3) == 0

    def test_delay_within_range(self, clock):
        """
        Contract: RateLimiterContract
        Enforces: POST-LIMIT-06
        """
        limiter = RateLimiter(2, 5, clock=clock)
        for _ in range(200):
            assert 3.0 <= limiter.suggested_inter_send_delay() <= 8.0

        calls = []

        def rng(low, high):
            calls.append((low, high))
            return 4.5

        paced = RateLimiter(2, 5, clock=clock, delay_range=(1.0, 2.0), rng=rng)
        assert paced.suggested_inter_send_delay() == 4.5
        assert calls == [(1.0, 2.0)]

    def test_delay_does_not_affect_accounting(self, limiter):
        """
        Contract: RateLimiterContract
        Enforces: INV-LIMIT-04
        """
        limiter.suggested_inter_send_delay()
        assert limiter.status().hourly_count == 0

    def test_snapshot_reads_clock_once(self):
        """
        Contract: RateLimiterContract
        Enforces: POST-LIMIT-07
        Adversarial: True

        The event is still counted at the single reading just before expiry;
        a second reading would have fallen past it.
        """
        readings = iter([0.0, ONE_HOUR - 1, ONE_HOUR + 1])
        limiter = RateLimiter(1, 5, clock=lambda: next(readings))
        limiter.record_success()

        admission, status = limiter.snapshot()

        assert admission.allowed is False
        assert admission.hourly_remaining == status.hourly_remaining == 0
        assert status.hourly_count == 1
        assert next(readings) == ONE_HOUR + 1

    @pytest.mark.parametrize("sends,expected_hourly", [(0, 2), (1, 1), (2, 0), (3, 0)])
    def test_remaining_never_negative(self, limiter, sends, expected_hourly):
        """
        Contract: RateLimiterContract
        Enforces: POST-LIMIT-03
        """
        for _ in range(sends):
            limiter.record_success()
        assert limiter.status().hourly_remaining == expected_hourly
