from __future__ import annotations

from typing import Optional, Tuple

# Matched case-sensitively against raw HTML; lowercase "cloudflare" shows up
# in ordinary CDN script URLs.
BOT_BODY_PHRASES: Tuple[str, ...] = (
    "Robot or human",
    "Access Denied",
    "Please verify you are human",
    "captcha",
    "Cloudflare",
    "security check",
    "verify you are human",
    "bot detection",
    "unusual traffic",
    "automated requests",
)

# Only consulted for 403/429 bodies.
BLOCKED_STATUS_PHRASES: Tuple[str, ...] = ("Robot or human", "Access Denied", "bot", "captcha")
BLOCKED_STATUSES = frozenset({403, 429})

BOT_TITLE_PHRASES: Tuple[str, ...] = (
    "robot or human",
    "access denied",
    "security check",
    "captcha",
    "bot detection",
    "verify you are human",
    "unusual traffic",
    "automated requests",
    "cloudflare",
    "please wait",
    "checking your browser",
)


def is_bot_detection_title(title: Optional[str]) -> bool:
    if not title:
        return False
    lower = title.lower()
    return any(phrase in lower for phrase in BOT_TITLE_PHRASES)


def body_has_bot_phrase(body: str) -> bool:
    return any(phrase in body for phrase in BOT_BODY_PHRASES)


def classify_response(status: int, body: str, title: Optional[str] = None) -> Optional[str]:
    """
    Return a short reason if the response looks like an anti-bot page, else None.
    """
    if status in BLOCKED_STATUSES and any(p in body for p in BLOCKED_STATUS_PHRASES):
        return f"blocked with HTTP {status}"
    if body_has_bot_phrase(body):
        return "bot detection page"
    if is_bot_detection_title(title):
        return f"bot detection title: {title!r}"
    return None
