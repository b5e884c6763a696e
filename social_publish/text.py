"""Content normalization and character budgets."""

from __future__ import annotations

import re
from typing import Iterable

from social_publish.models import Target

MAX_CONTENT_LENGTH = 1000
LINK_PLACEHOLDER_LENGTH = 25
LINK_SEPARATOR_LENGTH = 2
DEFAULT_MAX_CHARACTERS = 2000

PLATFORM_LIMITS: dict[Target, int] = {
    Target.TWITTER: 280,
    Target.BLUESKY: 300,
    Target.MASTODON: 500,
    Target.THREADS: 500,
    Target.LINKEDIN: 2000,
}

_TAG_RE = re.compile(r"<[^>]+>")
_HASHTAG_RE = re.compile(r"(?:^|\s)(#\w+)")
_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
)


def cleanup_html(html: str) -> str:
    """Strip tags and unescape the handful of entities editors emit."""
    text = _TAG_RE.sub("", html)
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return text.strip()


def extract_hashtags(text: str) -> list[str]:
    return _HASHTAG_RE.findall(text)


def used_characters(content: str, link: str | None = None) -> int:
    """Characters a post consumes; any link counts as a fixed-width placeholder."""
    used = len(content)
    if link:
        used += LINK_SEPARATOR_LENGTH + LINK_PLACEHOLDER_LENGTH
    return used


def max_characters(targets: Iterable[Target]) -> int:
    limits = [PLATFORM_LIMITS[t] for t in targets if t in PLATFORM_LIMITS]
    return min(limits) if limits else DEFAULT_MAX_CHARACTERS
