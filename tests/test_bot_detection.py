import pytest

from link_preview.utils.bot_detection import body_has_bot_phrase, classify_response, is_bot_detection_title


class TestBotTitles:
    @pytest.mark.parametrize(
        "title",
        ["Robot or Human?", "Access Denied", "Attention Required! | Cloudflare", "Please wait...", "CAPTCHA"],
    )
    def test_detects(self, title):
        assert is_bot_detection_title(title)

    @pytest.mark.parametrize("title", ["Soft Plush Bear", "Graco Car Seat | Target", "", None])
    def test_ignores_product_titles(self, title):
        assert not is_bot_detection_title(title)


class TestClassifyResponse:
    def test_blocked_status_with_short_phrase(self):
        assert classify_response(403, "<p>Sorry, bot traffic is not allowed</p>") == "blocked with HTTP 403"
        assert classify_response(429, "captcha required") == "blocked with HTTP 429"

    def test_blocked_status_without_phrase_is_not_a_bot_page(self):
        assert classify_response(403, "<p>Forbidden</p>") is None

    def test_short_phrase_ignored_on_success(self):
        # "bot" alone is only meaningful on 403/429 responses.
        assert classify_response(200, "<p>Robotic vacuum, bottle warmer</p>") is None

    def test_body_phrases_are_case_sensitive(self):
        assert body_has_bot_phrase("<p>Please verify you are human</p>")
        assert not body_has_bot_phrase('<script src="https://cdnjs.cloudflare.com/x.js"></script>')

    def test_body_phrase_on_any_status(self):
        assert classify_response(200, "unusual traffic from your network") == "bot detection page"
        assert classify_response(500, "Cloudflare Ray ID") == "bot detection page"

    def test_title_only(self):
        reason = classify_response(200, "<p>hold on</p>", "Just a moment... please wait")
        assert reason and reason.startswith("bot detection title")

    def test_clean_page(self):
        assert classify_response(200, "<h1>Crib</h1>", "Crib") is None
