from __future__ import annotations

import asyncio
import random
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest

from link_preview.config import PreviewConfig
from link_preview.engines.preview_engine import LinkPreviewEngine
from link_preview.storage.base import PreviewRecord
from link_preview.storage.database import create_engine, create_sessionmaker, init_models
from link_preview.storage.sql_store import SQLAlchemyPreviewStore
from link_preview.utils.http import FetchResponse


def html_page(title: str = "", head: str = "", body: str = "") -> str:
    return f"<html><head><title>{title}</title>{head}</head><body>{body}</body></html>"


WIDGET_PAGE = html_page(
    title="Widget | Example Store",
    head=(
        '<meta property="og:title" content="Widget">'
        '<meta property="og:site_name" content="Example">'
        '<meta property="og:image" content="/img/widget.jpg">'
    ),
    body='<div class="buy-box"><span class="price">$9.99</span></div>',
)

BOT_PAGE = html_page(title="Robot or human?", body="<p>Please verify you are human</p>")


class FakeFetcher:
    """Scripted Fetcher: queued responses first, then ``default``."""

    def __init__(self, responses: Optional[List[Any]] = None, default: Optional[FetchResponse] = None) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.responses = list(responses or [])
        self.default = default
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    async def fetch(self, url, *, headers=None, timeout=15.0, follow_redirects=True):
        self.calls.append({"url": url, "headers": dict(headers or {}), "timeout": timeout})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        resp = self.responses.pop(0) if self.responses else self.default
        if isinstance(resp, Exception):
            raise resp
        if resp is None:
            raise ConnectionError("no scripted response")
        return resp

    @property
    def user_agents(self) -> List[str]:
        return [c["headers"].get("User-Agent", "") for c in self.calls]


class FakeClock:
    def __init__(self, start: datetime = datetime(2024, 3, 1, 12, 0, 0)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class MemoryStore:
    """Dict-backed PreviewStore; never yields to the event loop."""

    def __init__(self) -> None:
        self.records: Dict[str, PreviewRecord] = {}

    async def find_by_url(self, url):
        return self.records.get(url)

    async def upsert(self, record):
        self.records[record.url] = record

    async def delete_by_url(self, url):
        return 1 if self.records.pop(url, None) else 0

    async def delete_expired_before(self, now):
        expired = [u for u, r in self.records.items() if r.expires_at < now]
        for url in expired:
            del self.records[url]
        return len(expired)

    async def count(self):
        return len(self.records)

    async def count_not_expired(self, now):
        return sum(1 for r in self.records.values() if r.expires_at >= now)


class BrokenStore:
    async def _fail(self, *args):
        raise RuntimeError("database is down")

    find_by_url = upsert = delete_by_url = delete_expired_before = count = count_not_expired = _fail


@pytest.fixture
async def sessionmaker(tmp_path):
    db = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
    await init_models(db)
    yield create_sessionmaker(db)
    await db.dispose()


@pytest.fixture
def store(sessionmaker):
    return SQLAlchemyPreviewStore(sessionmaker)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def make_engine(store, fetcher, clock, sleep):
    def _make(store_override=None, **overrides) -> LinkPreviewEngine:
        return LinkPreviewEngine(
            PreviewConfig(**overrides),
            store_override or store,
            fetcher,
            clock=clock,
            sleep=sleep,
            rng=random.Random(7),
        )

    return _make
