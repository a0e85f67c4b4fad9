from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlparse
import json
import re

from bs4 import BeautifulSoup
from bs4.element import Tag


# ---- Soup helpers ------------------------------------------------------------

def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def text_of(node: Optional[Tag]) -> Optional[str]:
    if node is None:
        return None
    text = node.get_text().strip()
    return text or None


def select_text(soup: BeautifulSoup, selector: str) -> Optional[str]:
    """Stripped text of the first node matching ``selector``."""
    return text_of(soup.select_one(selector))


def page_title(soup: BeautifulSoup) -> Optional[str]:
    return text_of(soup.find("title"))


def meta_content(soup: BeautifulSoup, names: Sequence[str]) -> Optional[str]:
    """
    First non-empty ``content`` of a meta tag whose property or name is in ``names``.
    Names are tried in order.
    """
    for name in names:
        tag = soup.find("meta", attrs={"property": name}) or soup.find("meta", attrs={"name": name})
        if tag:
            content = (tag.get("content") or "").strip()
            if content:
                return content
    return None


def extract_site_name(soup: BeautifulSoup) -> Optional[str]:
    return meta_content(soup, ["og:site_name", "twitter:site"])


def extract_description(soup: BeautifulSoup) -> Optional[str]:
    return meta_content(soup, ["og:description", "twitter:description", "description"])


# ---- Price / availability ----------------------------------------------------

# Leftmost "$12.99" wins: "$12.99 was $19.99" -> 12.99.
PRICE_PATTERN = re.compile(r"\$\s*(\d[\d,]*(?:\.\d+)?)")
BARE_PRICE_PATTERN = re.compile(r"^\s*\$?\s*(\d[\d,]*(?:\.\d+)?)\s*$")

PRICE_SELECTORS: List[str] = [
    '[data-testid*="price"]',
    ".price",
    ".product-price",
    '[class*="price"]',
    '[id*="price"]',
    ".a-price-whole",  # Amazon
    ".a-offscreen",  # Amazon
    '[data-testid="product-price"]',  # Target
    ".h-text-bold",  # Target
]

AVAILABILITY_SELECTORS: List[str] = [
    '[data-testid*="availability"]',
    ".availability",
    ".stock-status",
    '[class*="availability"]',
    '[class*="stock"]',
    ".a-size-medium.a-color-success",  # Amazon
    ".a-size-medium.a-color-price",  # Amazon
]


def parse_price(text: Optional[str], *, require_symbol: bool = True) -> Optional[float]:
    """Parse the leftmost dollar amount in ``text``."""
    if not text:
        return None
    match = PRICE_PATTERN.search(text)
    if match is None and not require_symbol:
        match = BARE_PRICE_PATTERN.match(text)
    if match is None:
        return None
    try:
        return float(match.group(1).replace(",", ""))
    except ValueError:
        return None


def extract_price(soup: BeautifulSoup) -> Optional[float]:
    for selector in PRICE_SELECTORS:
        price = parse_price(select_text(soup, selector))
        if price is not None:
            return price

    # Structured price tags usually carry a bare amount.
    price = parse_price(meta_content(soup, ["product:price:amount", "og:price:amount"]), require_symbol=False)
    if price is not None:
        return price
    price = parse_price(meta_content(soup, ["twitter:data1"]))
    if price is not None:
        return price

    offer = jsonld_offer(soup)
    if offer and offer.get("price") is not None:
        return parse_price(str(offer["price"]), require_symbol=False)
    return None


def extract_availability(soup: BeautifulSoup) -> Optional[str]:
    for selector in AVAILABILITY_SELECTORS:
        text = select_text(soup, selector)
        if text and len(text) < 50:
            return text

    offer = jsonld_offer(soup)
    availability = offer.get("availability") if offer else None
    if isinstance(availability, str) and availability:
        # "https://schema.org/InStock" -> "In Stock"
        tail = availability.rstrip("/").rsplit("/", 1)[-1]
        return re.sub(r"(?<=[a-z])(?=[A-Z])", " ", tail)
    return None


# ---- JSON-LD -------------------------------------------------------------------

def jsonld_products(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    """schema.org Product nodes from every JSON-LD block on the page."""
    products: List[Dict[str, Any]] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        payload = script.string or ""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            continue
        products.extend(item for item in _iter_jsonld_items(data) if _is_product(item))
    return products


def jsonld_offer(soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
    for product in jsonld_products(soup):
        offers = product.get("offers")
        if isinstance(offers, list) and offers:
            offers = offers[0]
        if isinstance(offers, dict):
            return {
                "price": offers.get("price") or offers.get("lowPrice"),
                "availability": offers.get("availability"),
            }
    return None


def _iter_jsonld_items(data: Any) -> Iterable[Any]:
    if isinstance(data, list):
        for item in data:
            yield from _iter_jsonld_items(item)
    elif isinstance(data, dict):
        if "@graph" in data:
            yield from _iter_jsonld_items(data["@graph"])
        else:
            yield data


def _is_product(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    type_field = item.get("@type")
    if isinstance(type_field, list):
        return any(t.lower() == "product" for t in type_field if isinstance(t, str))
    if isinstance(type_field, str):
        return type_field.lower() == "product"
    return False


# ---- Images --------------------------------------------------------------------

_INVALID_IMAGE_PATTERNS = (
    "logo", "icon", "brand", "header", "footer", "nav", "banner", "advertisement",
    "ad-", "sponsor", "social", "facebook", "twitter", "instagram", "youtube",
    "pinterest", "amazon-logo", "target-logo", "walmart-logo",
)

_LOGO_KEYWORDS = (
    "logo", "brand", "icon", "header", "footer", "nav", "banner",
    "amazon", "target", "walmart", "shop", "store", "company",
)


def is_valid_product_image(src: str) -> bool:
    lower = src.lower()
    return not any(pattern in lower for pattern in _INVALID_IMAGE_PATTERNS)


def is_logo_image(src: str, alt: str = "") -> bool:
    lower_src, lower_alt = src.lower(), alt.lower()
    return any(k in lower_src or k in lower_alt for k in _LOGO_KEYWORDS)


def image_src(img: Tag, attrs: Sequence[str] = ("src", "data-src", "data-lazy")) -> Optional[str]:
    for attr in attrs:
        value = img.get(attr)
        if value and value.strip():
            return value.strip()
    return None


def dimension(img: Tag, attr: str) -> int:
    match = re.match(r"\s*(\d+)", img.get(attr) or "")
    return int(match.group(1)) if match else 0


def resolve_image_url(image_url: Optional[str], base_url: str) -> Optional[str]:
    """
    Make ``image_url`` absolute against ``base_url``.

    Protocol-relative URLs always get https; path-relative ones replace the
    last segment of the base path.
    """
    if not image_url:
        return None
    if image_url.startswith(("http://", "https://")):
        return image_url
    if image_url.startswith("//"):
        return f"https:{image_url}"

    base = urlparse(base_url)
    origin = f"{base.scheme}://{base.netloc}"
    if image_url.startswith("/"):
        return f"{origin}{image_url}"

    parts = base.path.split("/")
    parts[-1] = image_url
    path = "/".join(parts)
    if not path.startswith("/"):
        path = "/" + path
    return f"{origin}{path}"


# ---- URL heuristics ------------------------------------------------------------

KNOWN_SITES = (
    ("amazon.com", "Amazon"),
    ("walmart.com", "Walmart"),
    ("target.com", "Target"),
    ("buybuybaby.com", "BuyBuy Baby"),
    ("babylist.com", "Babylist"),
)


def site_name_for_host(hostname: str) -> str:
    """Brand for well-known retailers, else the capitalised first DNS label."""
    host = hostname.lower()
    for needle, brand in KNOWN_SITES:
        if needle in host:
            return brand
    label = host.replace("www.", "", 1).split(".")[0]
    return label[:1].upper() + label[1:]


def title_from_path(path: str) -> Optional[str]:
    """'/baby/soft-plush_bear' -> 'Soft Plush Bear'."""
    segments = [p for p in path.split("/") if p]
    if not segments:
        return None
    words = re.sub(r"[-_]", " ", segments[-1])
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), words)
