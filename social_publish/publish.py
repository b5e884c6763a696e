"""Fan-out publishing: one request, every requested target, one result.

The local feed entry is written first. The platform targets then run
concurrently and all of them are awaited; a failure on one never cancels
the others and successful posts are not rolled back. If anything failed,
the caller gets a ``CompositeError`` whose status is the worst individual
status.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from social_publish.base import TargetAdapter
from social_publish.errors import ApiError, CaughtException, CompositeError, ValidationError
from social_publish.linkpreview import LinkPreviewFetcher
from social_publish.models import (
    ImageRef,
    NormalizedPost,
    PostResult,
    PublishRequest,
    Target,
    serialize_result,
)
from social_publish.text import (
    MAX_CONTENT_LENGTH,
    cleanup_html,
    extract_hashtags,
    max_characters,
    used_characters,
)

logger = logging.getLogger(__name__)

# Platforms that render a card for a bare link.
CARD_TARGETS = frozenset({Target.BLUESKY, Target.LINKEDIN})


class DispatchStatus(Enum):
    PENDING = "pending"
    PUBLISHED = "published"
    FAILED = "failed"


@dataclass
class DispatchRecord:
    target: Target
    status: DispatchStatus = DispatchStatus.PENDING
    result: PostResult | None = None
    error: ApiError | None = None
    finished_at: datetime | None = None

    def mark_published(self, result: PostResult) -> None:
        self.status = DispatchStatus.PUBLISHED
        self.result = result
        self.finished_at = datetime.now(timezone.utc)

    def mark_failed(self, error: ApiError) -> None:
        self.status = DispatchStatus.FAILED
        self.error = error
        self.finished_at = datetime.now(timezone.utc)

    def to_response(self) -> dict[str, Any]:
        if self.status == DispatchStatus.PUBLISHED and self.result is not None:
            return {
                "type": "success",
                "module": self.target.value,
                "result": serialize_result(self.result),
            }
        error = self.error
        return {
            "type": "error",
            "module": self.target.value,
            "status": error.status if error else 500,
            "error": error.message if error else "not dispatched",
        }


@dataclass
class PublishOutcome:
    records: list[DispatchRecord] = field(default_factory=list)

    @property
    def results(self) -> dict[str, PostResult]:
        return {
            r.target.value: r.result
            for r in self.records
            if r.status == DispatchStatus.PUBLISHED and r.result is not None
        }

    @property
    def failures(self) -> list[DispatchRecord]:
        return [r for r in self.records if r.status == DispatchStatus.FAILED]

    def to_dict(self) -> dict[str, Any]:
        return {module: serialize_result(result) for module, result in self.results.items()}


def parse_targets(names: list[str] | None) -> list[Target]:
    """Case-insensitive, de-duplicated, in request order."""
    targets: list[Target] = []
    for name in names or []:
        target = Target.parse(name)
        if target not in targets:
            targets.append(target)
    return targets


class PublishOrchestrator:
    """Validates a request, fans it out across adapters and aggregates.

    ``adapters`` holds only the configured targets; ``Target.RSS`` must be
    present since the feed entry is always written.
    """

    def __init__(
        self,
        adapters: dict[Target, TargetAdapter],
        image_resolver: Callable[[str], ImageRef] | None = None,
        link_previews: LinkPreviewFetcher | None = None,
    ) -> None:
        if Target.RSS not in adapters:
            raise ValueError("the feed target is required")
        self._adapters = adapters
        self._resolve_image = image_resolver
        self._link_previews = link_previews

    @property
    def configured_targets(self) -> list[Target]:
        return list(self._adapters)

    def normalize(self, request: PublishRequest, targets: list[Target] | None = None) -> NormalizedPost:
        """Validate and fit the request; raises before any I/O happens."""
        if targets is None:
            targets = parse_targets(request.targets)
        content = request.content or ""
        if not content.strip() or len(content) > MAX_CONTENT_LENGTH:
            raise ValidationError(
                f"Content must be between 1 and {MAX_CONTENT_LENGTH} characters", module="form",
            )

        text = cleanup_html(content) if request.cleanup_html else content.strip()
        link = (request.link or "").strip() or None
        images = [self._image(uuid) for uuid in request.images or []]
        return NormalizedPost(
            text=text,
            link=link,
            language=request.language,
            images=images,
            hashtags=extract_hashtags(text),
            targets=targets,
            max_characters=max_characters(targets),
            used_characters=used_characters(text, link),
        )

    def _image(self, uuid: str) -> ImageRef:
        if self._resolve_image is None:
            raise ValidationError("Image uploads are not available", status=503, module="form")
        return self._resolve_image(uuid)

    async def _attach_preview(self, post: NormalizedPost, targets: list[Target]) -> None:
        if self._link_previews is None or post.link is None or post.images:
            return
        if not any(t in CARD_TARGETS and t in self._adapters for t in targets):
            return
        post.preview = await self._link_previews.fetch(post.link)

    async def _dispatch(self, record: DispatchRecord, post: NormalizedPost) -> DispatchRecord:
        adapter = self._adapters.get(record.target)
        if adapter is None:
            record.mark_failed(ValidationError(
                f"{record.target.value.capitalize()} integration not configured",
                status=503,
                module=record.target.value,
            ))
            return record
        try:
            record.mark_published(await adapter.publish(post))
        except ApiError as exc:
            record.mark_failed(exc)
        except Exception as exc:
            logger.exception("Unexpected failure publishing to %s", record.target.value)
            record.mark_failed(CaughtException(str(exc), module=record.target.value))
        if record.error is not None:
            logger.warning("Publishing to %s failed: %s", record.target.value, record.error.message)
        return record

    async def publish(self, request: PublishRequest) -> PublishOutcome:
        """Publish to the feed and every requested platform.

        Raises:
            ValidationError: the request is invalid; nothing was stored or sent.
            CompositeError: at least one target failed.
        """
        targets = parse_targets(request.targets)
        post = self.normalize(request, targets)

        outcome = PublishOutcome()
        outcome.records.append(await self._dispatch(DispatchRecord(Target.RSS), post))
        await self._attach_preview(post, targets)

        platform_records = [DispatchRecord(t) for t in targets if t != Target.RSS]
        results = await asyncio.gather(
            *(self._dispatch(record, post) for record in platform_records),
            return_exceptions=True,
        )
        for record, result in zip(platform_records, results):
            if isinstance(result, BaseException) and record.status == DispatchStatus.PENDING:
                record.mark_failed(CaughtException(str(result), module=record.target.value))
            outcome.records.append(record)

        failures = outcome.failures
        if failures:
            modules = ", ".join(r.target.value for r in failures)
            raise CompositeError(
                f"Failed to create post via {modules}",
                status=max(r.error.status for r in failures if r.error),
                responses=[r.to_response() for r in outcome.records],
            )
        logger.info("Published to %s", ", ".join(outcome.results))
        return outcome

    async def publish_to(self, target: Target | str, request: PublishRequest) -> PostResult:
        """Publish to one target only, without writing a feed entry for others."""
        if isinstance(target, str):
            target = Target.parse(target)
        post = self.normalize(request, [target])
        await self._attach_preview(post, [target])
        record = await self._dispatch(DispatchRecord(target), post)
        if record.error is not None:
            raise record.error
        return record.result
