from __future__ import annotations

from typing import List, Optional, Protocol
from urllib.parse import urlparse

from bs4 import BeautifulSoup


class SiteAdapter(Protocol):
    """
    Interface for site-specific title and image extraction.
    Keep this small and stable so adapters rarely break across upgrades.
    Price, availability and site name are shared and live in utils.parsing.
    """

    name: str
    domains: List[str]  # e.g. ["amazon.com", "amazon.co.uk"]

    def matches(self, url: str) -> bool:
        """Return True if this adapter should handle the given URL."""
        ...

    def extract_title(self, soup: BeautifulSoup) -> Optional[str]:
        """Best product title on the page, or None."""
        ...

    def extract_image(self, soup: BeautifulSoup, base_url: str) -> Optional[str]:
        """Absolute URL of the main product image, or None."""
        ...


def domain_of(url: str) -> str:
    return (urlparse(url).hostname or "").lower()
