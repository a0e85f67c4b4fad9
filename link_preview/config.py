from __future__ import annotations

from dataclasses import dataclass, field, fields, asdict
from typing import List, Dict, Any
import os
import json

from .version import CONFIG_SCHEMA_VERSION

DAY = 24 * 60 * 60


@dataclass
class PreviewConfig:
    """
    Canonical configuration object passed throughout the system.
    Durations are in seconds.
    """
    schema_version: int = CONFIG_SCHEMA_VERSION
    database_url: str = "sqlite+aiosqlite:///link_preview.db"
    # Scraped previews live for a week; URL-derived and manual ones are refreshed sooner.
    cache_ttl: float = 7 * DAY
    fallback_cache_ttl: float = 1 * DAY
    max_attempts: int = 3
    request_timeout: float = 15.0
    fallback_timeout: float = 10.0
    min_domain_interval: float = 2.0
    # Humanising pauses between attempts; off only for trusted targets and tests.
    random_delays: bool = True
    dedupe_in_flight: bool = True
    # Extra adapters (dotted class paths) to register at startup
    extra_adapters: List[str] = field(default_factory=list)
    rate_limit_window: float = 15 * 60
    rate_limit_max_requests: int = 30
    rate_limit_block: float = 60 * 60

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    # ---------- Loaders ----------

    @classmethod
    def from_env(cls) -> "PreviewConfig":
        """
        Build config from environment variables (all optional).
        """
        def _get(name: str, default: str) -> str:
            return os.getenv(name, default)

        return cls(
            database_url=_get("PREVIEW_DATABASE_URL", "sqlite+aiosqlite:///link_preview.db"),
            cache_ttl=float(_get("PREVIEW_CACHE_TTL", str(7 * DAY))),
            fallback_cache_ttl=float(_get("PREVIEW_FALLBACK_CACHE_TTL", str(1 * DAY))),
            max_attempts=int(_get("PREVIEW_MAX_ATTEMPTS", "3")),
            request_timeout=float(_get("PREVIEW_REQUEST_TIMEOUT", "15.0")),
            fallback_timeout=float(_get("PREVIEW_FALLBACK_TIMEOUT", "10.0")),
            min_domain_interval=float(_get("PREVIEW_MIN_DOMAIN_INTERVAL", "2.0")),
            random_delays=_get("PREVIEW_RANDOM_DELAYS", "1").lower() not in ("0", "false", "no"),
            dedupe_in_flight=_get("PREVIEW_DEDUPE_IN_FLIGHT", "1").lower() not in ("0", "false", "no"),
            extra_adapters=[a.strip() for a in _get("PREVIEW_EXTRA_ADAPTERS", "").split(",") if a.strip()],
            rate_limit_window=float(_get("PREVIEW_RATE_LIMIT_WINDOW", str(15 * 60))),
            rate_limit_max_requests=int(_get("PREVIEW_RATE_LIMIT_MAX_REQUESTS", "30")),
            rate_limit_block=float(_get("PREVIEW_RATE_LIMIT_BLOCK", str(60 * 60))),
        )

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> "PreviewConfig":
        """
        Load configuration from a JSON file. Supports schema migration for older versions.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        data = migrate_config(data)
        unknown = sorted(set(data) - {fld.name for fld in fields(cls)})
        if unknown:
            raise ValueError(f"unknown config key(s) in {path}: {', '.join(unknown)}")
        return cls(**data)

    # ---------- Validation ----------

    def validate(self) -> None:
        if not self.database_url:
            raise ValueError("database_url cannot be empty")
        if self.cache_ttl <= 0 or self.fallback_cache_ttl <= 0:
            raise ValueError("cache TTLs must be > 0")
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        if self.request_timeout <= 0 or self.fallback_timeout <= 0:
            raise ValueError("timeouts must be > 0")
        if self.min_domain_interval < 0:
            raise ValueError("min_domain_interval must be >= 0")
        if self.rate_limit_max_requests <= 0:
            raise ValueError("rate_limit_max_requests must be > 0")
        if self.rate_limit_window <= 0:
            raise ValueError("rate_limit_window must be > 0")


def migrate_config(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Migrate config dict to the latest schema version.
    Keep this pure and additive. Add migrations here as you bump schema.
    """
    schema = raw.get("schema_version", 1)

    if schema < 2:
        # v1 stored TTLs in days and had no fallback TTL.
        if "cache_ttl_days" in raw:
            raw["cache_ttl"] = float(raw.pop("cache_ttl_days")) * DAY
        raw["schema_version"] = 2

    raw.setdefault("schema_version", CONFIG_SCHEMA_VERSION)
    return raw
