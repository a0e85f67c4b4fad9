from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Protocol
import aiohttp
from aiohttp import ClientSession, ClientTimeout
import logging

logger = logging.getLogger(__name__)


@dataclass
class FetchResponse:
    status: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400


class Fetcher(Protocol):
    """
    Minimal HTTP surface the engine needs. Implementations raise on network
    errors and timeouts; non-2xx statuses are returned, not raised.
    """

    async def fetch(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = 15.0,
        follow_redirects: bool = True,
    ) -> FetchResponse:
        ...


class AiohttpFetcher:
    """Fetcher backed by a shared aiohttp ClientSession (caller owns the session)."""

    def __init__(self, session: ClientSession) -> None:
        self.session = session

    async def fetch(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = 15.0,
        follow_redirects: bool = True,
    ) -> FetchResponse:
        async with self.session.get(
            url,
            headers=dict(headers or {}),
            timeout=ClientTimeout(total=timeout),
            allow_redirects=follow_redirects,
        ) as resp:
            # Some retailers send a wrong charset; never fail a scrape on decoding.
            text = await resp.text(errors="replace")
            logger.debug("GET %s -> %s (%d bytes)", url, resp.status, len(text))
            return FetchResponse(status=resp.status, text=text, headers=dict(resp.headers))

    async def close(self) -> None:
        await self.session.close()


def create_session() -> ClientSession:
    """
    Create a shared aiohttp ClientSession.
    """
    # Note: caller is responsible for closing the session (await session.close()).
    connector = aiohttp.TCPConnector(limit=0)  # unlimited; politeness handled by DomainThrottle
    return aiohttp.ClientSession(connector=connector)
