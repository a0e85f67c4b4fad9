from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Dict, List

from ..config import PreviewConfig
from ..utils.logging import setup_logging
from ..utils.http import AiohttpFetcher, create_session
from ..adapters.registry import AdapterRegistry
from ..apis.app import create_app
from ..engines.base import UNAVAILABLE_TITLE, FallbackHints
from ..engines.preview_engine import LinkPreviewEngine
from ..storage.database import create_engine, create_sessionmaker, init_models
from ..storage.sql_store import SQLAlchemyPreviewStore

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Product link preview CLI")
    p.add_argument("urls", nargs="*", help="Product URLs to preview (space-separated)")
    p.add_argument("--config", type=str, help="Path to config JSON", default=None)
    p.add_argument("--database-url", type=str, default=None, help="SQLAlchemy async URL of the preview cache")
    p.add_argument("--name", type=str, default=None, help="Fallback title if every scrape fails")
    p.add_argument("--image-url", type=str, default=None, help="Fallback image URL")
    p.add_argument("--description", type=str, default=None, help="Fallback description")
    p.add_argument("--extra-adapters", type=str, default=None,
                   help="Comma-separated dotted paths for additional adapters")
    p.add_argument("--stats", action="store_true", help="Print cache statistics")
    p.add_argument("--cleanup", action="store_true", help="Delete expired cache entries")
    p.add_argument("--invalidate", type=str, action="append", default=[], metavar="URL",
                   help="Drop the cached preview for URL (repeatable)")
    p.add_argument("--log-level", type=str, default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
    p.add_argument("--serve", action="store_true", help="Run REST API server instead of the CLI")
    p.add_argument("--host", type=str, default="127.0.0.1", help="API host (when --serve)")
    p.add_argument("--port", type=int, default=8000, help="API port (when --serve)")
    return p


def _load_config(args: argparse.Namespace) -> PreviewConfig:
    if args.config:
        cfg = PreviewConfig.from_file(args.config)
    else:
        cfg = PreviewConfig.from_env()

    if args.database_url:
        cfg.database_url = args.database_url
    if args.extra_adapters:
        cfg.extra_adapters = [a.strip() for a in args.extra_adapters.split(",") if a.strip()]

    cfg.validate()
    return cfg


def run_server(cfg: PreviewConfig, host: str, port: int, log_level: int = logging.INFO) -> None:
    import uvicorn

    uvicorn.run(create_app(cfg), host=host, port=port, log_level=log_level)


async def run_commands(cfg: PreviewConfig, args: argparse.Namespace) -> Dict[str, Any]:
    db = create_engine(cfg.database_url)
    session = create_session()
    try:
        await init_models(db)
        registry = AdapterRegistry()
        registry.load_dotted(cfg.extra_adapters)
        registry.discover_entry_points()
        engine = LinkPreviewEngine(
            cfg, SQLAlchemyPreviewStore(create_sessionmaker(db)), AiohttpFetcher(session), registry
        )

        out: Dict[str, Any] = {}
        for url in args.invalidate:
            await engine.invalidate_cache_for_url(url)
        if args.invalidate:
            out["invalidated"] = list(args.invalidate)
        if args.cleanup:
            out["deleted"] = await engine.cleanup_expired_cache()

        hints = FallbackHints(name=args.name, image_url=args.image_url, description=args.description)
        previews = []
        for url in args.urls:
            preview = await engine.generate_preview(url, hints or None)
            previews.append(preview.to_dict())
        if previews:
            out["previews"] = previews

        await engine.drain()
        if args.stats:
            out["stats"] = (await engine.get_cache_stats()).to_dict()
        return out
    finally:
        await session.close()
        await db.dispose()


def run_cli(argv: List[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    level = setup_logging(args.log_level)

    if not (args.serve or args.urls or args.stats or args.cleanup or args.invalidate):
        build_arg_parser().print_usage()
        return 2

    cfg = _load_config(args)
    if args.serve:
        run_server(cfg, args.host, args.port, level)
        return 0

    out = asyncio.run(run_commands(cfg, args))
    print(json.dumps(out, indent=2, ensure_ascii=False))

    previews = out.get("previews", [])
    logger.info("Previews: %s | Unavailable: %s | Cache: %s",
                len(previews),
                sum(1 for p in previews if p.get("title") == UNAVAILABLE_TITLE),
                cfg.database_url)
    return 0
