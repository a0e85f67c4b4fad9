from __future__ import annotations

import json
import re
from typing import List, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from .base import domain_of
from ..utils.bot_detection import is_bot_detection_title
from ..utils.parsing import (
    image_src,
    is_logo_image,
    is_valid_product_image,
    page_title,
    resolve_image_url,
    select_text,
)

TITLE_SELECTORS: List[str] = [
    "#productTitle",
    ".product-title",
    "h1.a-size-large",
    ".a-size-large.product-title",
    "#title h1",
    ".a-size-base-plus",
]

IMAGE_SELECTORS: List[str] = [
    # Main product image containers
    "#landingImage",
    "#imgBlkFront",
    "#main-image-container img",
    ".a-dynamic-image",
    # Wrapper classes
    ".a-image-wrapper img",
    ".a-dynamic-image-container img",
    ".a-image-container img",
    # High-resolution data attributes
    "img[data-old-hires]",
    "img[data-a-dynamic-image]",
    # Alternative layouts and galleries
    "#altImages img",
    ".a-button-selected img",
    ".a-carousel-item img",
    ".a-carousel-container img",
    ".a-button-text img",
]

IMAGE_ATTRS = ("src", "data-src", "data-lazy", "data-old-hires", "data-a-dynamic-image")

CDN_HOSTS = ("images-amazon.com", "m.media-amazon.com", "amazon-adsystem.com")

_TITLE_AFFIXES = (
    re.compile(r"^Amazon\.com:\s*"),
    re.compile(r"^Amazon\s*:\s*"),
    re.compile(r"\s*:\s*Amazon\.com.*$"),
)


class AmazonAdapter:
    """Amazon product pages: no Open Graph, heavy use of data attributes."""

    name = "amazon"
    domains = ["amazon.com", "www.amazon.com", "amazon.co.uk", "amazon.ca", "amazon.de"]

    def matches(self, url: str) -> bool:
        return "amazon." in domain_of(url)

    def extract_title(self, soup: BeautifulSoup) -> Optional[str]:
        if is_bot_detection_title(page_title(soup)):
            return None

        for selector in TITLE_SELECTORS:
            title = select_text(soup, selector)
            if title:
                return re.sub(r"\s+", " ", title).strip()

        title = page_title(soup)
        if not title:
            return None
        for pattern in _TITLE_AFFIXES:
            title = pattern.sub("", title)
        return title.strip() or None

    def extract_image(self, soup: BeautifulSoup, base_url: str) -> Optional[str]:
        for selector in IMAGE_SELECTORS:
            img = soup.select_one(selector)
            if img is None:
                continue
            src = self._image_source(img)
            if src and is_valid_product_image(src):
                return resolve_image_url(src, base_url)

        for img in soup.find_all("img"):
            src = image_src(img, ("src", "data-src"))
            if not src or not any(host in src for host in CDN_HOSTS):
                continue
            # CDN hostnames contain "amazon", so only the path and alt text can mark a logo.
            if is_valid_product_image(src) and not is_logo_image(urlparse(src).path, img.get("alt") or ""):
                return resolve_image_url(src, base_url)
        return None

    def _image_source(self, img: Tag) -> Optional[str]:
        src = image_src(img, IMAGE_ATTRS)
        if src and src.startswith("{"):
            # data-a-dynamic-image is a JSON map of url -> [width, height].
            try:
                candidates = json.loads(src)
            except json.JSONDecodeError:
                return None
            return next(iter(candidates), None) if isinstance(candidates, dict) else None
        return src
