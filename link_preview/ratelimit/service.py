from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..storage.base import utcnow
from ..storage.models import RateLimitRecord

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "default"


@dataclass
class RateLimitConfig:
    window_seconds: float = 15 * 60
    max_requests: int = 5
    block_seconds: Optional[float] = 60 * 60


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: datetime
    retry_after: Optional[int] = None


@dataclass
class RateLimitStatus:
    is_blocked: bool
    request_count: int
    remaining: int
    reset_time: datetime
    blocked_until: Optional[datetime] = None


class RateLimitService:
    """
    Fixed-window limiter persisted in the ``rate_limits`` table.

    Each allowed request writes one record; exceeding ``max_requests`` within
    the window writes a blocking record. Store failures fail open.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        default_config: Optional[RateLimitConfig] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sessionmaker = sessionmaker
        self.default_config = default_config or RateLimitConfig()
        self._clock = clock

    async def check_rate_limit(
        self,
        ip_address: str,
        endpoint: Optional[str] = None,
        config: Optional[RateLimitConfig] = None,
    ) -> RateLimitResult:
        config = config or self.default_config
        endpoint = endpoint or DEFAULT_ENDPOINT
        logger.debug("Checking rate limit for IP %s, endpoint %s", ip_address, endpoint)
        try:
            return await self._check(ip_address, endpoint, config)
        except Exception:
            logger.exception("Error checking rate limit for %s on %s; allowing request", ip_address, endpoint)
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests,
                reset_time=self._clock() + timedelta(seconds=config.window_seconds),
            )

    async def get_rate_limit_status(self, ip_address: str, endpoint: Optional[str] = None) -> RateLimitStatus:
        config = self.default_config
        endpoint = endpoint or DEFAULT_ENDPOINT
        now = self._clock()
        async with self._sessionmaker() as session:
            block = await self._active_block(session, ip_address, endpoint, now)
            count = await self._window_count(session, ip_address, endpoint, now, config)
        return RateLimitStatus(
            is_blocked=block is not None,
            blocked_until=block.blocked_until if block else None,
            request_count=count,
            remaining=max(0, config.max_requests - count),
            reset_time=now + timedelta(seconds=config.window_seconds),
        )

    async def unblock_ip(self, ip_address: str, endpoint: Optional[str] = None) -> None:
        endpoint = endpoint or DEFAULT_ENDPOINT
        async with self._sessionmaker.begin() as session:
            await session.execute(
                update(RateLimitRecord)
                .where(
                    RateLimitRecord.ip_address == ip_address,
                    RateLimitRecord.endpoint == endpoint,
                    RateLimitRecord.is_blocked.is_(True),
                )
                .values(is_blocked=False, blocked_until=None)
            )
        logger.info("IP %s unblocked for endpoint %s", ip_address, endpoint)

    # ---- Internals ----------------------------------------------------------

    async def _check(self, ip_address: str, endpoint: str, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        async with self._sessionmaker.begin() as session:
            block = await self._active_block(session, ip_address, endpoint, now)
            if block is not None:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_time=block.blocked_until,
                    retry_after=math.ceil((block.blocked_until - now).total_seconds()),
                )

            cutoff = now - timedelta(seconds=config.window_seconds * 2)
            await session.execute(
                delete(RateLimitRecord).where(
                    RateLimitRecord.ip_address == ip_address,
                    RateLimitRecord.endpoint == endpoint,
                    RateLimitRecord.timestamp < cutoff,
                )
            )

            count = await self._window_count(session, ip_address, endpoint, now, config)
            reset_time = now + timedelta(seconds=config.window_seconds)

            if count >= config.max_requests:
                blocked_until = now + timedelta(seconds=config.block_seconds) if config.block_seconds else None
                session.add(
                    RateLimitRecord(
                        ip_address=ip_address,
                        endpoint=endpoint,
                        timestamp=now,
                        is_blocked=True,
                        blocked_until=blocked_until,
                    )
                )
                logger.warning("IP %s blocked for endpoint %s", ip_address, endpoint)
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_time=reset_time,
                    retry_after=math.ceil(config.window_seconds),
                )

            session.add(RateLimitRecord(ip_address=ip_address, endpoint=endpoint, timestamp=now, is_blocked=False))
            return RateLimitResult(
                allowed=True,
                remaining=max(0, config.max_requests - count - 1),
                reset_time=reset_time,
            )

    @staticmethod
    async def _active_block(
        session: AsyncSession, ip_address: str, endpoint: str, now: datetime
    ) -> Optional[RateLimitRecord]:
        stmt = (
            select(RateLimitRecord)
            .where(
                RateLimitRecord.ip_address == ip_address,
                RateLimitRecord.endpoint == endpoint,
                RateLimitRecord.is_blocked.is_(True),
                RateLimitRecord.blocked_until > now,
            )
            .order_by(RateLimitRecord.blocked_until.desc())
            .limit(1)
        )
        return await session.scalar(stmt)

    @staticmethod
    async def _window_count(
        session: AsyncSession, ip_address: str, endpoint: str, now: datetime, config: RateLimitConfig
    ) -> int:
        window_start = now - timedelta(seconds=config.window_seconds)
        stmt = (
            select(func.count())
            .select_from(RateLimitRecord)
            .where(
                RateLimitRecord.ip_address == ip_address,
                RateLimitRecord.endpoint == endpoint,
                RateLimitRecord.timestamp >= window_start,
                RateLimitRecord.is_blocked.is_(False),
            )
        )
        return await session.scalar(stmt) or 0
