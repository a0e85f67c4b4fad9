from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional
from abc import ABC, abstractmethod

from ..storage.base import PreviewRecord

UNAVAILABLE_TITLE = "Preview unavailable"

# Sources whose previews are guesses rather than scraped content.
DEGRADED_SOURCES = frozenset({"url-pattern", "manual"})

_JSON_KEYS = {"image_url": "imageUrl", "site_name": "siteName"}


@dataclass
class PreviewResult:
    """Structured summary of a product URL."""

    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    site_name: Optional[str] = None
    price: Optional[float] = None
    availability: Optional[str] = None
    # Which strategy produced this result; not part of the payload.
    source: str = field(default="scrape", compare=False)

    @property
    def is_unavailable(self) -> bool:
        return self.title == UNAVAILABLE_TITLE

    @property
    def is_degraded(self) -> bool:
        return self.source in DEGRADED_SOURCES

    def to_dict(self) -> Dict[str, Any]:
        data = {
            _JSON_KEYS.get(f.name, f.name): getattr(self, f.name)
            for f in fields(self)
            if f.name != "source"
        }
        # Drop unset keys for a cleaner payload.
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_record(cls, record: PreviewRecord) -> "PreviewResult":
        return cls(
            url=record.url,
            title=record.title,
            description=record.description,
            image_url=record.image_url,
            site_name=record.site_name,
            price=record.price,
            availability=record.availability,
            source="cache",
        )

    @classmethod
    def unavailable(cls, url: str, reason: str) -> "PreviewResult":
        return cls(url=url, title=UNAVAILABLE_TITLE, description=reason, source="unavailable")


@dataclass
class FallbackHints:
    """Caller-supplied fields (e.g. typed into the registry editor) used as a last resort."""

    name: Optional[str] = None
    image_url: Optional[str] = None
    description: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.name or self.image_url or self.description)


@dataclass
class CacheStats:
    total_cached: int = 0
    valid_cached: int = 0
    cache_hit_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalCached": self.total_cached,
            "validCached": self.valid_cached,
            "cacheHitRate": self.cache_hit_rate,
        }


class PreviewEngine(ABC):
    """
    Abstract engine interface. Implementations never raise from generate_preview.
    """
    @abstractmethod
    async def generate_preview(
        self, url: str, hints: Optional[FallbackHints] = None
    ) -> PreviewResult:  # pragma: no cover - interface
        ...
