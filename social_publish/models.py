"""Publish requests, normalized posts and per-target results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Union

from social_publish.errors import ValidationError


class Target(Enum):
    RSS = "rss"
    MASTODON = "mastodon"
    BLUESKY = "bluesky"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    THREADS = "threads"

    @classmethod
    def parse(cls, name: str) -> Target:
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise ValidationError(f"Unsupported target: {name}", module="form") from None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


@dataclass
class PublishRequest:
    content: str
    targets: list[str] | None = None
    link: str | None = None
    language: str | None = None
    cleanup_html: bool = False
    images: list[str] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PublishRequest:
        """Build a request from a JSON object or submitted form fields.

        Form submissions may list targets as ``targets[]`` or as one
        ``"1"`` checkbox per target name, and images as ``images[]``.
        """
        targets = _as_list(data.get("targets")) + _as_list(data.get("targets[]"))
        for target in Target:
            if str(data.get(target.value, "")) == "1" and target.value not in targets:
                targets.append(target.value)
        images = _as_list(data.get("images")) + _as_list(data.get("images[]"))
        return cls(
            content=str(data.get("content") or ""),
            targets=targets or None,
            link=data.get("link") or None,
            language=data.get("language") or None,
            cleanup_html=_as_bool(data.get("cleanupHtml", False)),
            images=images or None,
        )


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    return [str(v) for v in value]


@dataclass
class ImageRef:
    """An uploaded image resolved for publishing."""
    uuid: str
    url: str
    mimetype: str
    path: Path | None = None
    filename: str = ""
    alt_text: str | None = None
    width: int | None = None
    height: int | None = None
    size: int = 0
    reader: Callable[[], bytes] | None = None

    def read_bytes(self) -> bytes:
        if self.reader is not None:
            return self.reader()
        if self.path is None:
            raise FileNotFoundError(f"No content for image {self.uuid}")
        return self.path.read_bytes()


@dataclass
class LinkPreview:
    """OpenGraph card data for a post's link."""
    url: str
    title: str
    description: str | None = None
    image: str | None = None


@dataclass
class NormalizedPost:
    text: str
    link: str | None = None
    language: str | None = None
    images: list[ImageRef] = field(default_factory=list)
    hashtags: list[str] = field(default_factory=list)
    targets: list[Target] = field(default_factory=list)
    max_characters: int = 2000
    used_characters: int = 0
    preview: LinkPreview | None = None

    def text_with_link(self) -> str:
        return self.text + (f"\n\n{self.link}" if self.link else "")


@dataclass
class FeedPostResult:
    uri: str
    module: str = field(default="rss", init=False)


@dataclass
class MastodonPostResult:
    uri: str
    id: str = ""
    module: str = field(default="mastodon", init=False)


@dataclass
class BlueskyPostResult:
    uri: str
    cid: str | None = None
    module: str = field(default="bluesky", init=False)


@dataclass
class TwitterPostResult:
    id: str
    module: str = field(default="twitter", init=False)


@dataclass
class LinkedInPostResult:
    post_id: str
    module: str = field(default="linkedin", init=False)


@dataclass
class ThreadsPostResult:
    id: str
    module: str = field(default="threads", init=False)


PostResult = Union[
    FeedPostResult,
    MastodonPostResult,
    BlueskyPostResult,
    TwitterPostResult,
    LinkedInPostResult,
    ThreadsPostResult,
]


def serialize_result(result: PostResult) -> dict[str, Any]:
    """JSON shape of a per-target result, chosen by its ``module`` field.

    The discriminant itself is left out; callers key results by module name.
    """
    module = result.module
    if module == "rss":
        return {"uri": result.uri}
    if module == "mastodon":
        return {"uri": result.uri, "id": result.id}
    if module == "bluesky":
        data: dict[str, Any] = {"uri": result.uri}
        if result.cid is not None:
            data["cid"] = result.cid
        return data
    if module == "twitter":
        return {"id": result.id}
    if module == "linkedin":
        return {"postId": result.post_id}
    if module == "threads":
        return {"id": result.id}
    raise ValueError(f"Unknown result module: {module}")
