from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class DomainThrottle:
    """
    Spaces consecutive requests to the same host by ``min_interval`` seconds.

    State is process-local and unsynchronised: concurrent callers for one host
    may both see a stale timestamp and under-delay. Late requests are delayed,
    never rejected.
    """

    def __init__(
        self,
        min_interval: float = 2.0,
        *,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.min_interval = min_interval
        self._sleep = sleep
        self._clock = clock
        self._last_request: Dict[str, float] = {}

    def last_request_at(self, domain: str) -> Optional[float]:
        return self._last_request.get(domain)

    async def wait(self, url: str) -> float:
        """Block until ``url``'s host may be contacted again. Returns the delay applied."""
        domain = urlparse(url).hostname
        if not domain:
            logger.warning("Cannot throttle %s: no hostname", url)
            return 0.0

        self._forget_idle_hosts()
        waited = 0.0
        last = self._last_request.get(domain)
        if last is not None:
            elapsed = self._clock() - last
            if elapsed < self.min_interval:
                waited = self.min_interval - elapsed
                logger.info("Rate limiting: waiting %.2fs before next request to %s", waited, domain)
                await self._sleep(waited)

        self._last_request[domain] = self._clock()
        return waited

    def _forget_idle_hosts(self) -> None:
        # Entries older than min_interval can no longer cause a delay.
        cutoff = self._clock() - self.min_interval
        for domain in [d for d, at in self._last_request.items() if at <= cutoff]:
            del self._last_request[domain]
