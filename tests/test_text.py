"""Tests for content normalization and character budgets."""

from social_publish.models import Target
from social_publish.text import cleanup_html, extract_hashtags, max_characters, used_characters


def test_cleanup_html():
    html = "<p>Hello&nbsp;<b>world</b> &lt;3 &amp; more</p>  "
    assert cleanup_html(html) == "Hello world <3 & more"


def test_cleanup_html_plain_text_untouched():
    assert cleanup_html("  plain  ") == "plain"


def test_extract_hashtags():
    assert extract_hashtags("#start middle #tag2 not#this") == ["#start", "#tag2"]
    assert extract_hashtags("no tags here") == []


class TestBudget:
    def test_link_counts_as_placeholder(self):
        content = "Check this out:"
        assert used_characters(content, "https://example.com/very/long/path") == 15 + 2 + 25
        assert used_characters(content, "https://x.io") == 42

    def test_no_link(self):
        assert used_characters("Hello") == 5

    def test_max_characters(self):
        assert max_characters([Target.TWITTER]) == 280
        assert max_characters([Target.TWITTER, Target.LINKEDIN]) == 280
        assert max_characters([Target.MASTODON, Target.BLUESKY]) == 300
        assert max_characters([Target.THREADS]) == 500

    def test_feed_only_defaults(self):
        assert max_characters([]) == 2000
        assert max_characters([Target.RSS]) == 2000
