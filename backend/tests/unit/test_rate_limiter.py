"""Tests for the inline validation rate limiter."""
from unittest.mock import patch

from qctool.main import RateLimiter


def _limiter_at(start: float, rate: int = 2, per: int = 60) -> RateLimiter:
    with patch("qctool.main.time", return_value=start):
        return RateLimiter(rate=rate, per=per)


class TestRateLimiter:

    def test_bucket_empties_and_refills(self):
        limiter = _limiter_at(1000.0)

        with patch("qctool.main.time", return_value=1000.0):
            assert limiter.is_allowed("10.0.0.1")
            assert limiter.is_allowed("10.0.0.1")
            assert not limiter.is_allowed("10.0.0.1")
            assert limiter.get_retry_after("10.0.0.1") == 30.0

        with patch("qctool.main.time", return_value=1030.0):
            assert limiter.is_allowed("10.0.0.1")

    def test_clients_are_independent(self):
        limiter = _limiter_at(1000.0, rate=1)

        with patch("qctool.main.time", return_value=1000.0):
            assert limiter.is_allowed("10.0.0.1")
            assert limiter.is_allowed("10.0.0.2")
            assert not limiter.is_allowed("10.0.0.1")

    def test_refilled_clients_are_forgotten(self):
        limiter = _limiter_at(1000.0, rate=10, per=60)

        with patch("qctool.main.time", return_value=1000.0):
            for client in ("10.0.0.1", "10.0.0.2", "10.0.0.3"):
                limiter.is_allowed(client)

        with patch("qctool.main.time", return_value=1055.0):
            for _ in range(9):
                limiter.is_allowed("10.0.0.3")

        with patch("qctool.main.time", return_value=1061.0):
            limiter.is_allowed("10.0.0.4")

        assert set(limiter._tokens) == {"10.0.0.3", "10.0.0.4"}
        assert set(limiter._last_update) == {"10.0.0.3", "10.0.0.4"}
