from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .base import PreviewRecord, utcnow
from .models import LinkPreviewCache

logger = logging.getLogger(__name__)

_FIELDS = ("title", "description", "image_url", "site_name", "price", "availability", "expires_at")

# INSERT .. ON CONFLICT DO UPDATE, keyed on the unique url column.
_UPSERT_INSERTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}


class SQLAlchemyPreviewStore:
    """PreviewStore on an async SQLAlchemy session factory."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def find_by_url(self, url: str) -> Optional[PreviewRecord]:
        async with self._sessionmaker() as session:
            row = await session.scalar(select(LinkPreviewCache).where(LinkPreviewCache.url == url))
            return _to_record(row) if row else None

    async def upsert(self, record: PreviewRecord) -> None:
        """Insert or replace the record for ``record.url``. Concurrent writers: last one wins."""
        values = {name: getattr(record, name) for name in _FIELDS}
        values["updated_at"] = utcnow()
        async with self._sessionmaker.begin() as session:
            insert = _UPSERT_INSERTS.get(session.bind.dialect.name)
            if insert is not None:
                stmt = insert(LinkPreviewCache).values(url=record.url, **values)
                stmt = stmt.on_conflict_do_update(index_elements=[LinkPreviewCache.url], set_=values)
                await session.execute(stmt)
                return

            logger.debug("No native upsert for %s; using read-then-write", session.bind.dialect.name)
            row = await session.scalar(select(LinkPreviewCache).where(LinkPreviewCache.url == record.url))
            if row is None:
                row = LinkPreviewCache(url=record.url)
                session.add(row)
            for name, value in values.items():
                setattr(row, name, value)

    async def delete_by_url(self, url: str) -> int:
        async with self._sessionmaker.begin() as session:
            result = await session.execute(delete(LinkPreviewCache).where(LinkPreviewCache.url == url))
            return result.rowcount or 0

    async def delete_expired_before(self, now: datetime) -> int:
        async with self._sessionmaker.begin() as session:
            result = await session.execute(delete(LinkPreviewCache).where(LinkPreviewCache.expires_at < now))
            return result.rowcount or 0

    async def count(self) -> int:
        async with self._sessionmaker() as session:
            return await session.scalar(select(func.count()).select_from(LinkPreviewCache)) or 0

    async def count_not_expired(self, now: datetime) -> int:
        async with self._sessionmaker() as session:
            stmt = select(func.count()).select_from(LinkPreviewCache).where(LinkPreviewCache.expires_at >= now)
            return await session.scalar(stmt) or 0


def _to_record(row: LinkPreviewCache) -> PreviewRecord:
    return PreviewRecord(
        url=row.url,
        title=row.title,
        description=row.description,
        image_url=row.image_url,
        site_name=row.site_name,
        price=row.price,
        availability=row.availability,
        expires_at=row.expires_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
