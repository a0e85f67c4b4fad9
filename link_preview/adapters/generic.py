from __future__ import annotations

from typing import List, Optional

from bs4 import BeautifulSoup

from ..utils.bot_detection import is_bot_detection_title
from ..utils.parsing import (
    dimension,
    image_src,
    is_logo_image,
    is_valid_product_image,
    meta_content,
    page_title,
    resolve_image_url,
    select_text,
)

TITLE_SELECTORS: List[str] = [
    # Common e-commerce title selectors
    "h1.product-title",
    "h1.product-name",
    ".product-title",
    ".product-name",
    ".item-title",
    ".product-heading",
    ".product-header h1",
    ".product-info h1",
    ".product-details h1",
    # Generic title patterns
    'h1[class*="title"]',
    'h1[class*="name"]',
    ".title h1",
    ".name h1",
]

IMAGE_SELECTORS: List[str] = [
    # Target
    '[data-testid="product-image"]',
    ".h-image-wrapper img",
    # Generic e-commerce
    ".product-image img",
    ".main-image img",
    ".hero-image img",
    ".product-photo img",
    ".item-image img",
    ".product-gallery img",
    ".image-gallery img",
    ".product-main-image img",
    ".primary-image img",
    ".main-product-image img",
    # Attribute patterns
    'img[alt*="product"]',
    'img[alt*="item"]',
    'img[class*="product"]',
    'img[class*="main"]',
    'img[class*="hero"]',
    'img[class*="primary"]',
]

LARGE_IMAGE_PX = 200


class GenericAdapter:
    """
    A generic, domain-agnostic adapter that uses simple heuristics.
    Acts as a safe fallback when no specific adapter matches a URL.
    """
    name = "generic"
    domains: List[str] = []  # matches any

    def matches(self, url: str) -> bool:  # pragma: no cover - trivial
        return True

    def extract_title(self, soup: BeautifulSoup) -> Optional[str]:
        if is_bot_detection_title(page_title(soup)):
            return None

        for selector in TITLE_SELECTORS:
            title = select_text(soup, selector)
            if title and not is_bot_detection_title(title):
                return title

        og_title = meta_content(soup, ["og:title", "twitter:title"])
        if og_title and not is_bot_detection_title(og_title):
            return og_title

        title = page_title(soup)
        if title and not is_bot_detection_title(title):
            return title
        return None

    def extract_image(self, soup: BeautifulSoup, base_url: str) -> Optional[str]:
        for selector in IMAGE_SELECTORS:
            img = soup.select_one(selector)
            if img is None:
                continue
            src = image_src(img)
            if src and is_valid_product_image(src):
                return resolve_image_url(src, base_url)

        og_image = meta_content(soup, ["og:image", "twitter:image", "twitter:image:src"])
        if og_image and is_valid_product_image(og_image):
            return resolve_image_url(og_image, base_url)

        # Last resort: the first big image that is not a logo.
        for img in soup.find_all("img"):
            src = image_src(img, ("src", "data-src"))
            if not src or not is_valid_product_image(src):
                continue
            if dimension(img, "width") <= LARGE_IMAGE_PX and dimension(img, "height") <= LARGE_IMAGE_PX:
                continue
            if is_logo_image(src, img.get("alt") or ""):
                continue
            return resolve_image_url(src, base_url)
        return None
