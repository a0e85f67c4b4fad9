"""Previews built without any network I/O."""
from __future__ import annotations

from urllib.parse import urlparse

from .base import FallbackHints, PreviewResult
from ..utils.parsing import site_name_for_host, title_from_path


def url_pattern_preview(url: str) -> PreviewResult:
    """
    Guess a preview from the URL alone: brand from the hostname, title from
    the last path segment.
    """
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        hostname = None
    if not hostname:
        return PreviewResult.unavailable(url, "Unable to extract information from URL")

    site_name = site_name_for_host(hostname)
    return PreviewResult(
        url=url,
        title=title_from_path(urlparse(url).path) or f"Product from {site_name}",
        site_name=site_name,
        description=f"Product available at {site_name}",
        source="url-pattern",
    )


def manual_preview(url: str, hints: FallbackHints) -> PreviewResult:
    """Preview from caller hints, filling gaps from the URL."""
    guess = url_pattern_preview(url)
    return PreviewResult(
        url=url,
        title=hints.name or guess.title,
        image_url=hints.image_url,
        site_name=None if guess.is_unavailable else guess.site_name,
        description=hints.description or guess.description,
        source="manual",
    )
