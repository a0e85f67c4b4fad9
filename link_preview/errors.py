from __future__ import annotations


class PreviewError(Exception):
    """Base error for link preview generation."""


class ScrapeError(PreviewError):
    """Raised when a single scrape attempt cannot produce a usable preview."""


class BotDetectionError(ScrapeError):
    """Raised when the target served an anti-bot page instead of content."""
