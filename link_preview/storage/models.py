"""SQLAlchemy models for the preview cache and the request rate limiter."""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .base import utcnow


def _uuid() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class LinkPreviewCache(Base):
    """Cached preview for one URL; stale once ``expires_at`` has passed."""

    __tablename__ = "link_preview_cache"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    url: Mapped[str] = mapped_column(String(2048), unique=True, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    site_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    availability: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (Index("ix_link_preview_cache_url_expires_at", "url", "expires_at"),)

    def __repr__(self) -> str:
        return f"<LinkPreviewCache url={self.url!r} expires_at={self.expires_at}>"


class RateLimitRecord(Base):
    """One request (or one block) for an (ip, endpoint) pair."""

    __tablename__ = "rate_limits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(128), nullable=False, default="default")
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    blocked_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_rate_limits_ip_endpoint_ts", "ip_address", "endpoint", "timestamp"),
        Index("ix_rate_limits_ip_blocked", "ip_address", "is_blocked"),
    )

    def __repr__(self) -> str:
        return f"<RateLimitRecord ip={self.ip_address!r} endpoint={self.endpoint!r} blocked={self.is_blocked}>"
