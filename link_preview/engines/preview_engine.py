from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Mapping, Optional, Set

from bs4 import BeautifulSoup

from .base import CacheStats, FallbackHints, PreviewEngine, PreviewResult
from .fallbacks import manual_preview, url_pattern_preview
from ..adapters.registry import AdapterRegistry
from ..config import PreviewConfig
from ..errors import BotDetectionError, ScrapeError
from ..storage.base import PreviewRecord, PreviewStore, utcnow
from ..utils.bot_detection import (
    BLOCKED_STATUS_PHRASES,
    BLOCKED_STATUSES,
    classify_response,
    is_bot_detection_title,
)
from ..utils.headers import (
    MOBILE_USER_AGENTS,
    minimal_headers,
    mobile_headers,
    random_user_agent,
    realistic_headers,
)
from ..utils.http import Fetcher
from ..utils.parsing import (
    extract_availability,
    extract_description,
    extract_price,
    extract_site_name,
    make_soup,
    page_title,
)
from ..utils.throttle import DomainThrottle

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

PRIMARY_FAILED = "Unable to load preview for this link - may be blocked by anti-bot measures"
ALL_FAILED = "Unable to load preview - all methods failed"


class LinkPreviewEngine(PreviewEngine):
    """
    Best-effort product previews with a persistent TTL cache.

    - Cache first; a fresh record costs no network and no throttling.
    - Primary scrape: throttled, randomised, retried with backoff.
    - Fallbacks get cheaper: mobile UA, minimal headers, then hints or the URL itself.
    - generate_preview never raises; total failure yields the
      "Preview unavailable" sentinel, which is never cached.
    """

    def __init__(
        self,
        config: PreviewConfig,
        store: PreviewStore,
        fetcher: Fetcher,
        registry: AdapterRegistry | None = None,
        *,
        throttle: DomainThrottle | None = None,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.store = store
        self.fetcher = fetcher
        self.registry = registry or AdapterRegistry()
        self.throttle = throttle or DomainThrottle(config.min_domain_interval, sleep=sleep)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._clock = clock
        self._pending_writes: Set[asyncio.Task] = set()
        self._in_flight: Dict[str, asyncio.Task] = {}

    # ---- Public API ---------------------------------------------------------

    async def generate_preview(self, url: str, hints: Optional[FallbackHints] = None) -> PreviewResult:
        cached = await self.get_cached_preview(url)
        if cached:
            logger.debug("Using cached preview for %s", url)
            return cached

        if not self.config.dedupe_in_flight:
            return await self._generate_uncached(url, hints)

        # Concurrent callers for one URL share a single scrape.
        task = self._in_flight.get(url)
        if task is None:
            task = asyncio.ensure_future(self._generate_uncached(url, hints))
            self._in_flight[url] = task
            task.add_done_callback(lambda _t, key=url: self._in_flight.pop(key, None))
        return await asyncio.shield(task)

    async def generate_new_preview(self, url: str) -> PreviewResult:
        """Primary scrape: throttled, randomised and retried. Returns the sentinel on exhaustion."""
        attempts = self.config.max_attempts
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                await self.throttle.wait(url)
                delay = 1.0 if attempt == 1 else 2.0 + attempt
                await self._random_delay(delay, delay + 2.0)

                user_agent = random_user_agent(self._rng)
                logger.info("Attempt %d/%d for %s with User-Agent: %s...", attempt, attempts, url, user_agent[:50])

                preview = await self._scrape(url, realistic_headers(user_agent), self.config.request_timeout)
                logger.info("Successfully scraped %s on attempt %d", url, attempt)
                return preview
            except BotDetectionError as exc:
                last_error = exc
                logger.warning("Bot detection triggered for %s on attempt %d: %s", url, attempt, exc)
                if attempt < attempts:
                    await self._random_delay(5.0, 10.0)
            except Exception as exc:  # network, timeout, HTTP status and extraction misses all retry
                last_error = exc
                logger.warning("Attempt %d/%d failed for %s: %r", attempt, attempts, url, exc)
                if attempt < attempts:
                    await self._random_delay(2.0, 5.0)

        logger.error("Failed to generate preview for %s after %d attempts: %r", url, attempts, last_error)
        return PreviewResult.unavailable(url, PRIMARY_FAILED)

    async def try_fallback_methods(self, url: str, hints: Optional[FallbackHints] = None) -> PreviewResult:
        """
        Single-shot mobile and minimal-header scrapes, then caller hints, then
        the URL-pattern guess.
        """
        user_agent = random_user_agent(self._rng, MOBILE_USER_AGENTS)
        strategies = (
            ("mobile", mobile_headers(user_agent)),
            ("minimal", minimal_headers()),
        )
        for source, headers in strategies:
            logger.info("Trying %s fallback for %s", source, url)
            try:
                return await self._scrape(url, headers, self.config.fallback_timeout, source=source)
            except Exception as exc:
                logger.warning("%s fallback failed for %s: %r", source.capitalize(), url, exc)

        if hints:
            logger.info("Using manual fallback data for %s", url)
            return manual_preview(url, hints)

        logger.info("Trying URL pattern extraction for %s", url)
        return url_pattern_preview(url)

    # ---- Cache management ---------------------------------------------------

    async def get_cached_preview(self, url: str) -> Optional[PreviewResult]:
        """A fresh cached preview, or None. Expired records are deleted on sight."""
        try:
            record = await self.store.find_by_url(url)
            if record is None:
                return None
            if record.is_expired(self._clock()):
                await self.store.delete_by_url(url)
                logger.debug("Cleaned up expired cache for %s", url)
                return None
            return PreviewResult.from_record(record)
        except Exception as exc:
            logger.warning("Failed to get cached preview for %s: %r", url, exc)
            return None

    async def cache_preview(self, url: str, preview: PreviewResult, ttl: Optional[float] = None) -> None:
        ttl = self.config.cache_ttl if ttl is None else ttl
        record = PreviewRecord(
            url=url,
            expires_at=self._clock() + timedelta(seconds=ttl),
            title=preview.title,
            description=preview.description,
            image_url=preview.image_url,
            site_name=preview.site_name,
            price=preview.price,
            availability=preview.availability,
        )
        try:
            await self.store.upsert(record)
            logger.debug("Cached preview for %s until %s", url, record.expires_at)
        except Exception as exc:
            logger.error("Failed to cache preview for %s: %r", url, exc)

    async def cleanup_expired_cache(self) -> int:
        try:
            deleted = await self.store.delete_expired_before(self._clock())
        except Exception as exc:
            logger.error("Failed to cleanup expired cache: %r", exc)
            return 0
        logger.info("Cleaned up %d expired cache entries", deleted)
        return deleted

    async def invalidate_cache_for_url(self, url: str) -> None:
        try:
            await self.store.delete_by_url(url)
            logger.debug("Invalidated cache for URL: %s", url)
        except Exception as exc:
            logger.warning("Failed to invalidate cache for URL %s: %r", url, exc)

    async def get_cache_stats(self) -> CacheStats:
        try:
            now = self._clock()
            total, valid = await asyncio.gather(self.store.count(), self.store.count_not_expired(now))
        except Exception as exc:
            logger.error("Failed to get cache stats: %r", exc)
            return CacheStats()
        rate = (valid / total) * 100 if total > 0 else 0.0
        return CacheStats(total_cached=total, valid_cached=valid, cache_hit_rate=rate)

    async def drain(self) -> None:
        """Wait for scheduled cache writes to finish."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    # ---- Internals ----------------------------------------------------------

    async def _generate_uncached(self, url: str, hints: Optional[FallbackHints]) -> PreviewResult:
        try:
            return await self._run_strategies(url, hints)
        except Exception:
            logger.exception("Unexpected failure generating preview for %s", url)
            return PreviewResult.unavailable(url, ALL_FAILED)

    async def _run_strategies(self, url: str, hints: Optional[FallbackHints]) -> PreviewResult:
        logger.debug("Generating new preview for %s", url)
        preview = await self.generate_new_preview(url)
        if preview.is_unavailable:
            logger.info("Primary scraping failed for %s, trying fallback methods", url)
            preview = await self.try_fallback_methods(url, hints)

        if preview.is_unavailable:
            return PreviewResult.unavailable(url, preview.description or ALL_FAILED)

        ttl = self.config.fallback_cache_ttl if preview.is_degraded else self.config.cache_ttl
        self._schedule_cache_write(url, preview, ttl)
        return preview

    async def _scrape(
        self,
        url: str,
        headers: Mapping[str, str],
        timeout: float,
        *,
        source: str = "scrape",
    ) -> PreviewResult:
        response = await self.fetcher.fetch(url, headers=headers, timeout=timeout, follow_redirects=True)

        if response.status in BLOCKED_STATUSES and any(p in response.text for p in BLOCKED_STATUS_PHRASES):
            raise BotDetectionError(f"HTTP {response.status} block page")
        if not response.ok:
            raise ScrapeError(f"HTTP {response.status}")

        soup = make_soup(response.text)
        reason = classify_response(response.status, response.text, page_title(soup))
        if reason:
            raise BotDetectionError(reason)

        preview = self._extract(url, soup, source)
        if not preview.title:
            raise ScrapeError("no usable title")
        if is_bot_detection_title(preview.title):
            raise BotDetectionError(f"bot detection title in result: {preview.title!r}")
        return preview

    def _extract(self, url: str, soup: BeautifulSoup, source: str) -> PreviewResult:
        adapter = self.registry.match(url)
        return PreviewResult(
            url=url,
            title=adapter.extract_title(soup) or page_title(soup),
            description=extract_description(soup),
            image_url=adapter.extract_image(soup, url),
            site_name=extract_site_name(soup),
            price=extract_price(soup),
            availability=extract_availability(soup),
            source=source,
        )

    def _schedule_cache_write(self, url: str, preview: PreviewResult, ttl: float) -> None:
        # The caller does not wait on the store; cache_preview logs its own failures.
        task = asyncio.ensure_future(self.cache_preview(url, preview, ttl))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _random_delay(self, low: float, high: float) -> None:
        if self.config.random_delays:
            await self._sleep(self._rng.uniform(low, high))
