from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol


def utcnow() -> datetime:
    """Naive UTC timestamp; every stored datetime uses this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class PreviewRecord:
    """One cached preview. At most one exists per URL."""

    url: str
    expires_at: datetime
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    site_name: Optional[str] = None
    price: Optional[float] = None
    availability: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class PreviewStore(Protocol):
    """Persistent key-value store of previews keyed by URL."""

    async def find_by_url(self, url: str) -> Optional[PreviewRecord]:
        ...

    async def upsert(self, record: PreviewRecord) -> None:
        ...

    async def delete_by_url(self, url: str) -> int:
        ...

    async def delete_expired_before(self, now: datetime) -> int:
        ...

    async def count(self) -> int:
        ...

    async def count_not_expired(self, now: datetime) -> int:
        ...
