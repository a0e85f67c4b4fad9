import random

from link_preview.utils.headers import (
    DESKTOP_USER_AGENTS,
    MINIMAL_USER_AGENT,
    MOBILE_USER_AGENTS,
    browser_family,
    minimal_headers,
    mobile_headers,
    random_user_agent,
    realistic_headers,
)

CHROME = DESKTOP_USER_AGENTS[0]
FIREFOX = DESKTOP_USER_AGENTS[5]
SAFARI = DESKTOP_USER_AGENTS[9]
EDGE = DESKTOP_USER_AGENTS[11]


def test_browser_family():
    assert browser_family(CHROME) == "chrome"
    assert browser_family(FIREFOX) == "firefox"
    assert browser_family(SAFARI) == "safari"
    assert browser_family(EDGE) == "edge"
    assert browser_family(MINIMAL_USER_AGENT) == "other"


def test_random_user_agent_from_pool():
    rng = random.Random(1)
    assert all(random_user_agent(rng) in DESKTOP_USER_AGENTS for _ in range(20))
    assert random_user_agent(rng, MOBILE_USER_AGENTS) in MOBILE_USER_AGENTS


def test_chromium_client_hints():
    for ua in (CHROME, EDGE):
        headers = realistic_headers(ua)
        assert headers["User-Agent"] == ua
        assert headers["Sec-Ch-Ua-Mobile"] == "?0"
        assert "Sec-Fetch-User" not in headers


def test_firefox_headers():
    headers = realistic_headers(FIREFOX)
    assert headers["Sec-Fetch-User"] == "?1"
    assert "Sec-Ch-Ua" not in headers


def test_safari_gets_base_set_only():
    headers = realistic_headers(SAFARI)
    assert "Sec-Ch-Ua" not in headers
    assert "Sec-Fetch-User" not in headers
    assert headers["Sec-Fetch-Mode"] == "navigate"


def test_fallback_header_sets():
    assert mobile_headers(MOBILE_USER_AGENTS[0])["User-Agent"] == MOBILE_USER_AGENTS[0]
    assert minimal_headers() == {
        "User-Agent": MINIMAL_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    }
