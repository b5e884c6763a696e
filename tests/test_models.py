"""Tests for requests, targets and result serialization."""

import pytest

from social_publish.errors import ValidationError
from social_publish.models import (
    BlueskyPostResult,
    FeedPostResult,
    LinkedInPostResult,
    MastodonPostResult,
    PublishRequest,
    Target,
    ThreadsPostResult,
    TwitterPostResult,
    serialize_result,
)


class TestTarget:
    def test_parse_case_insensitive(self):
        assert Target.parse("Twitter") is Target.TWITTER
        assert Target.parse(" rss ") is Target.RSS

    def test_parse_unknown(self):
        with pytest.raises(ValidationError) as exc_info:
            Target.parse("myspace")
        assert exc_info.value.status == 400


class TestPublishRequest:
    def test_from_json(self):
        req = PublishRequest.from_dict({
            "content": "Hello",
            "targets": ["mastodon", "bluesky"],
            "link": "https://example.com",
            "language": "en",
            "cleanupHtml": True,
            "images": ["u1"],
        })
        assert req.targets == ["mastodon", "bluesky"]
        assert req.cleanup_html is True
        assert req.images == ["u1"]

    def test_from_form_fields(self):
        req = PublishRequest.from_dict({
            "content": "Hello",
            "targets[]": ["rss"],
            "twitter": "1",
            "mastodon": "0",
            "cleanupHtml": "false",
            "images[]": "u1",
            "link": "",
        })
        assert req.targets == ["rss", "twitter"]
        assert req.cleanup_html is False
        assert req.images == ["u1"]
        assert req.link is None

    def test_empty(self):
        req = PublishRequest.from_dict({})
        assert req.content == ""
        assert req.targets is None
        assert req.images is None


class TestSerializeResult:
    def test_each_module(self):
        assert serialize_result(FeedPostResult(uri="u")) == {"uri": "u"}
        assert serialize_result(MastodonPostResult(uri="u", id="1")) == {"uri": "u", "id": "1"}
        assert serialize_result(BlueskyPostResult(uri="at://x", cid="c")) == {"uri": "at://x", "cid": "c"}
        assert serialize_result(BlueskyPostResult(uri="at://x")) == {"uri": "at://x"}
        assert serialize_result(TwitterPostResult(id="9")) == {"id": "9"}
        assert serialize_result(LinkedInPostResult(post_id="urn:li:share:1")) == {"postId": "urn:li:share:1"}
        assert serialize_result(ThreadsPostResult(id="7")) == {"id": "7"}

    def test_discriminant(self):
        assert FeedPostResult(uri="u").module == "rss"
        assert LinkedInPostResult(post_id="p").module == "linkedin"
