"""
Tests for the persisted fixed-window rate limiter.
"""
from datetime import timedelta

import pytest

from link_preview.ratelimit.service import RateLimitConfig, RateLimitService

LIMIT = RateLimitConfig(window_seconds=60, max_requests=3, block_seconds=300)
IP = "203.0.113.7"


@pytest.fixture
def limiter(sessionmaker, clock):
    return RateLimitService(sessionmaker, LIMIT, clock=clock)


class TestCheckRateLimit:
    async def test_allows_up_to_max_requests(self, limiter, clock):
        results = [await limiter.check_rate_limit(IP, "scrape") for _ in range(3)]

        assert [r.allowed for r in results] == [True, True, True]
        assert [r.remaining for r in results] == [2, 1, 0]
        assert results[0].reset_time == clock() + timedelta(seconds=60)
        assert results[0].retry_after is None

    async def test_exceeding_blocks(self, limiter, clock):
        for _ in range(3):
            await limiter.check_rate_limit(IP, "scrape")

        denied = await limiter.check_rate_limit(IP, "scrape")
        assert not denied.allowed
        assert denied.remaining == 0
        assert denied.retry_after == 60

        clock.advance(seconds=100)
        still_blocked = await limiter.check_rate_limit(IP, "scrape")
        assert not still_blocked.allowed
        assert still_blocked.retry_after == 200
        assert still_blocked.reset_time == clock() + timedelta(seconds=200)

    async def test_block_expires(self, limiter, clock):
        for _ in range(4):
            await limiter.check_rate_limit(IP, "scrape")

        clock.advance(seconds=301)
        result = await limiter.check_rate_limit(IP, "scrape")

        assert result.allowed
        assert result.remaining == 2

    async def test_window_slides_past_old_requests(self, limiter, clock):
        await limiter.check_rate_limit(IP, "scrape")
        await limiter.check_rate_limit(IP, "scrape")

        clock.advance(seconds=61)
        result = await limiter.check_rate_limit(IP, "scrape")

        assert result.allowed
        assert result.remaining == 2

    async def test_endpoints_and_ips_are_independent(self, limiter):
        for _ in range(4):
            await limiter.check_rate_limit(IP, "scrape")

        assert (await limiter.check_rate_limit(IP, "other")).allowed
        assert (await limiter.check_rate_limit("198.51.100.1", "scrape")).allowed

    async def test_per_call_config_overrides_default(self, limiter):
        strict = RateLimitConfig(window_seconds=60, max_requests=1, block_seconds=60)

        assert (await limiter.check_rate_limit(IP, "login", strict)).allowed
        assert not (await limiter.check_rate_limit(IP, "login", strict)).allowed

    async def test_store_failure_fails_open(self, clock):
        class BrokenSessions:
            def __call__(self):
                raise RuntimeError("database is down")

            def begin(self):
                raise RuntimeError("database is down")

        limiter = RateLimitService(BrokenSessions(), LIMIT, clock=clock)
        result = await limiter.check_rate_limit(IP, "scrape")

        assert result.allowed
        assert result.remaining == 3


class TestStatusAndUnblock:
    async def test_status_counts_window(self, limiter):
        await limiter.check_rate_limit(IP)
        await limiter.check_rate_limit(IP)

        status = await limiter.get_rate_limit_status(IP)

        assert not status.is_blocked
        assert status.request_count == 2
        assert status.remaining == 1
        assert status.blocked_until is None

    async def test_status_reports_block(self, limiter, clock):
        for _ in range(4):
            await limiter.check_rate_limit(IP)

        status = await limiter.get_rate_limit_status(IP)

        assert status.is_blocked
        assert status.blocked_until == clock() + timedelta(seconds=300)
        assert status.remaining == 0

    async def test_unblock(self, limiter, clock):
        for _ in range(4):
            await limiter.check_rate_limit(IP)

        await limiter.unblock_ip(IP)

        assert not (await limiter.get_rate_limit_status(IP)).is_blocked
        clock.advance(seconds=61)
        assert (await limiter.check_rate_limit(IP)).allowed
