from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional
import logging

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from ..version import __version__
from ..config import PreviewConfig
from ..adapters.registry import AdapterRegistry
from ..engines.base import FallbackHints
from ..engines.preview_engine import LinkPreviewEngine
from ..ratelimit.guard import RateLimitGuard
from ..ratelimit.service import RateLimitConfig, RateLimitService
from ..storage.database import create_engine, create_sessionmaker, init_models
from ..storage.sql_store import SQLAlchemyPreviewStore
from ..utils.http import AiohttpFetcher, Fetcher, create_session

logger = logging.getLogger(__name__)

router = APIRouter()

scrape_guard = RateLimitGuard("scrape-preview")


class ScrapePreviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    name: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    description: Optional[str] = None

    def hints(self) -> Optional[FallbackHints]:
        hints = FallbackHints(name=self.name, image_url=self.image_url, description=self.description)
        return hints or None


def get_engine(request: Request) -> LinkPreviewEngine:
    return request.app.state.engine


@router.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@router.post("/scrape-preview", dependencies=[Depends(scrape_guard)])
async def scrape_preview(
    req: ScrapePreviewRequest, engine: LinkPreviewEngine = Depends(get_engine)
) -> Dict[str, Any]:
    preview = await engine.generate_preview(req.url, req.hints())
    return preview.to_dict()


@router.get("/preview/link", dependencies=[Depends(scrape_guard)])
async def preview_link(
    url: str,
    name: Optional[str] = None,
    image_url: Optional[str] = Query(default=None, alias="imageUrl"),
    description: Optional[str] = None,
    engine: LinkPreviewEngine = Depends(get_engine),
) -> Dict[str, Any]:
    hints = FallbackHints(name=name, image_url=image_url, description=description)
    preview = await engine.generate_preview(url, hints or None)
    return preview.to_dict()


@router.get("/preview/cache/stats")
async def cache_stats(engine: LinkPreviewEngine = Depends(get_engine)) -> Dict[str, Any]:
    stats = await engine.get_cache_stats()
    return stats.to_dict()


@router.post("/preview/cache/cleanup")
async def cache_cleanup(engine: LinkPreviewEngine = Depends(get_engine)) -> Dict[str, int]:
    return {"deleted": await engine.cleanup_expired_cache()}


@router.delete("/preview/cache")
async def cache_invalidate(url: str, engine: LinkPreviewEngine = Depends(get_engine)) -> Dict[str, str]:
    await engine.invalidate_cache_for_url(url)
    return {"invalidated": url}


def create_app(config: PreviewConfig | None = None, *, fetcher: Fetcher | None = None) -> FastAPI:
    """
    Build the API. Config defaults to the environment; pass ``fetcher`` to
    replace the aiohttp client (tests, proxies).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        cfg = config or PreviewConfig.from_env()
        cfg.validate()

        db = create_engine(cfg.database_url)
        await init_models(db)
        sessions = create_sessionmaker(db)

        session = None
        active_fetcher = fetcher
        if active_fetcher is None:
            session = create_session()
            active_fetcher = AiohttpFetcher(session)

        registry = AdapterRegistry()
        registry.load_dotted(cfg.extra_adapters)
        registry.discover_entry_points()

        engine = LinkPreviewEngine(cfg, SQLAlchemyPreviewStore(sessions), active_fetcher, registry)
        app.state.config = cfg
        app.state.engine = engine
        app.state.rate_limiter = RateLimitService(
            sessions,
            RateLimitConfig(
                window_seconds=cfg.rate_limit_window,
                max_requests=cfg.rate_limit_max_requests,
                block_seconds=cfg.rate_limit_block,
            ),
        )
        logger.info("link_preview %s ready (db=%s)", __version__, cfg.database_url)
        try:
            yield
        finally:
            await engine.drain()
            if session is not None:
                await session.close()
            await db.dispose()

    app = FastAPI(title="link_preview API", version=__version__, lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()
