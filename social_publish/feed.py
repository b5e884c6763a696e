"""Local feed: published posts kept as ``post`` documents."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from social_publish.base import TargetAdapter
from social_publish.errors import CaughtException
from social_publish.models import FeedPostResult, NormalizedPost
from social_publish.store import Document, DocumentStore, OrderBy, StorageError, Tag

logger = logging.getLogger(__name__)

POST_KIND = "post"
TARGET_TAG = "target"


@dataclass
class Post:
    uuid: str
    content: str
    created_at: datetime
    targets: list[str] = field(default_factory=list)
    link: str | None = None
    language: str | None = None
    tags: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "link": self.link,
            "language": self.language,
            "tags": self.tags,
            "images": self.images,
        }


class PostsRepository:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def create(
        self,
        content: str,
        targets: list[str],
        link: str | None = None,
        language: str | None = None,
        tags: list[str] | None = None,
        images: list[str] | None = None,
    ) -> Post:
        post = Post(
            uuid="",
            content=content,
            created_at=datetime.min,
            targets=list(targets),
            link=link,
            language=language,
            tags=list(tags or []),
            images=list(images or []),
        )
        doc = self._store.create_or_update(
            kind=POST_KIND,
            payload=json.dumps(post.to_payload()),
            tags=[Tag(t, TARGET_TAG) for t in targets],
        )
        post.uuid = doc.uuid
        post.created_at = doc.created_at
        return post

    def get_all(self) -> list[Post]:
        return [self._to_post(doc) for doc in self._store.get_all(POST_KIND, OrderBy.CREATED_AT_DESC)]

    def search_by_uuid(self, uuid: str) -> Post | None:
        doc = self._store.search_by_uuid(uuid)
        if doc is None or doc.kind != POST_KIND:
            return None
        return self._to_post(doc)

    @staticmethod
    def _to_post(doc: Document) -> Post:
        data = json.loads(doc.payload)
        return Post(
            uuid=doc.uuid,
            content=data["content"],
            created_at=doc.created_at,
            targets=[t.name for t in doc.tags if t.kind == TARGET_TAG],
            link=data.get("link"),
            language=data.get("language"),
            tags=data.get("tags") or [],
            images=data.get("images") or [],
        )


class FeedTarget(TargetAdapter):
    """Stores the post locally; its URI is where the feed item will live."""

    module = "rss"

    def __init__(self, posts: PostsRepository, base_url: str) -> None:
        self._posts = posts
        self._base_url = base_url.rstrip("/")

    async def create_post(self, post: NormalizedPost) -> FeedPostResult:
        try:
            stored = self._posts.create(
                content=post.text,
                targets=[t.value for t in post.targets],
                link=post.link,
                language=post.language,
                tags=[tag.lstrip("#") for tag in post.hashtags],
                images=[img.uuid for img in post.images],
            )
        except StorageError as exc:
            logger.exception("Failed to save RSS item")
            raise CaughtException(f"Failed to save RSS item: {exc}", module=self.module) from exc
        logger.info("Saved feed item %s", stored.uuid)
        return FeedPostResult(uri=f"{self._base_url}/rss/{stored.uuid}")
