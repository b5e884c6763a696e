"""Bluesky (AT Protocol) integration.

Posts are created as ``app.bsky.feed.post`` records. Links in the text are
shortened for display and turned into rich-text facets together with
hashtags and resolvable mentions; facet offsets are UTF-8 byte positions.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from social_publish.base import TargetAdapter
from social_publish.errors import ApiError, CaughtException
from social_publish.models import BlueskyPostResult, ImageRef, LinkPreview, NormalizedPost
from social_publish.transport import HttpClient, ensure_success

logger = logging.getLogger(__name__)

LINK_DISPLAY_LENGTH = 24

URL_RE = re.compile(r"(?:^|(?<=\s))(https?://[^\s]+)")
TAG_RE = re.compile(r"(?:^|(?<=\s))(#[a-zA-Z0-9]+)")
MENTION_RE = re.compile(r"(?:^|(?<=\s))(@[a-zA-Z0-9.-]+)")


@dataclass
class BlueskyConfig:
    service: str = "https://bsky.social"
    username: str = ""
    password: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)


@dataclass
class RichText:
    text: str
    facets: list[dict[str, Any]] = field(default_factory=list)


def utf8_length(value: str) -> int:
    return len(value.encode("utf-8"))


def shorten_link(url: str, max_length: int = LINK_DISPLAY_LENGTH) -> str:
    clean = re.sub(r"^https?://", "", url)
    if len(clean) <= max_length:
        return clean
    return clean[: max_length - 3] + "..."


def _facet(start: int, end: int, feature: dict[str, Any]) -> dict[str, Any]:
    return {"index": {"byteStart": start, "byteEnd": end}, "features": [feature]}


def shorten_links(text: str) -> RichText:
    """Replace each URL with its display form and attach a link facet."""
    parts: list[str] = []
    facets: list[dict[str, Any]] = []
    offset = 0
    last = 0
    for match in URL_RE.finditer(text):
        prefix = text[last:match.start(1)]
        parts.append(prefix)
        offset += utf8_length(prefix)

        display = shorten_link(match.group(1))
        end = offset + utf8_length(display)
        facets.append(_facet(offset, end, {
            "$type": "app.bsky.richtext.facet#link", "uri": match.group(1),
        }))
        parts.append(display)
        offset = end
        last = match.end(1)
    parts.append(text[last:])
    return RichText("".join(parts), facets)


def tag_facets(text: str) -> list[dict[str, Any]]:
    facets = []
    for match in TAG_RE.finditer(text):
        start = utf8_length(text[: match.start(1)])
        facets.append(_facet(start, start + utf8_length(match.group(1)), {
            "$type": "app.bsky.richtext.facet#tag", "tag": match.group(1)[1:],
        }))
    return facets


class BlueskyAdapter(TargetAdapter):
    module = "bluesky"

    def __init__(self, config: BlueskyConfig, http: HttpClient) -> None:
        self.config = config
        self._http = http
        self._session: dict[str, Any] | None = None
        self._session_lock = asyncio.Lock()

    def _xrpc(self, method: str) -> str:
        return f"{self.config.service.rstrip('/')}/xrpc/{method}"

    async def session(self) -> dict[str, Any]:
        async with self._session_lock:
            if self._session is None:
                resp = await self._http.post(
                    self._xrpc("com.atproto.server.createSession"),
                    json_body={"identifier": self.config.username, "password": self.config.password},
                )
                ensure_success(resp, module=self.module, message="Failed to authenticate")
                self._session = resp.json()
                logger.info("Bluesky session created for %s", self.config.username)
            return self._session

    def _auth(self, session: dict[str, Any]) -> dict[str, str]:
        return {"Authorization": f"Bearer {session['accessJwt']}"}

    async def upload_blob(self, session: dict[str, Any], image: ImageRef) -> dict[str, Any]:
        content = image.read_bytes()
        resp = await self._http.post(
            self._xrpc("com.atproto.repo.uploadBlob"),
            headers=self._auth(session),
            data=content,
            content_type=image.mimetype,
        )
        ensure_success(resp, module=self.module, message="Failed to upload blob")
        blob = resp.json().get("blob")
        if not isinstance(blob, dict):
            raise CaughtException("Invalid blob response", module=self.module)

        embed: dict[str, Any] = {
            "alt": image.alt_text or "",
            "image": {
                "$type": "blob",
                "ref": blob["ref"],
                "mimeType": image.mimetype,
                "size": image.size or len(content),
            },
        }
        if image.width and image.height:
            embed["aspectRatio"] = {"width": image.width, "height": image.height}
        return embed

    async def upload_thumb(self, session: dict[str, Any], url: str) -> dict[str, Any] | None:
        """Re-host a preview image as a blob; None when it cannot be had."""
        try:
            resp = await self._http.get(url)
            if not resp.ok:
                logger.warning("Link preview image returned %d: %s", resp.status, url)
                return None
            upload = await self._http.post(
                self._xrpc("com.atproto.repo.uploadBlob"),
                headers=self._auth(session),
                data=resp.body,
                content_type=resp.header("Content-Type") or "application/octet-stream",
            )
            ensure_success(upload, module=self.module, message="Failed to upload blob")
        except (OSError, ApiError) as exc:
            logger.warning("Skipping link preview thumbnail %s: %s", url, exc)
            return None
        blob = upload.json().get("blob")
        return blob if isinstance(blob, dict) else None

    async def external_embed(self, session: dict[str, Any], preview: LinkPreview) -> dict[str, Any]:
        external: dict[str, Any] = {
            "uri": preview.url,
            "title": preview.title,
            "description": preview.description or "",
        }
        if preview.image:
            thumb = await self.upload_thumb(session, preview.image)
            if thumb is not None:
                external["thumb"] = thumb
        return {"$type": "app.bsky.embed.external", "external": external}

    async def resolve_handle(self, handle: str) -> str | None:
        resp = await self._http.get(
            self._xrpc("com.atproto.identity.resolveHandle"), params={"handle": handle},
        )
        if resp.status != 200:
            logger.debug("Could not resolve Bluesky handle %s (%d)", handle, resp.status)
            return None
        return resp.json().get("did")

    async def mention_facets(self, text: str) -> list[dict[str, Any]]:
        facets = []
        for match in MENTION_RE.finditer(text):
            handle = match.group(1)[1:]
            # Bare words like "@home" are not handles.
            if "." not in handle:
                continue
            did = await self.resolve_handle(handle)
            if did is None:
                continue
            start = utf8_length(text[: match.start(1)])
            facets.append(_facet(start, start + utf8_length(match.group(1)), {
                "$type": "app.bsky.richtext.facet#mention", "did": did,
            }))
        return facets

    async def build_rich_text(self, text: str) -> RichText:
        rich = shorten_links(text)
        rich.facets.extend(await self.mention_facets(rich.text))
        rich.facets.extend(tag_facets(rich.text))
        return rich

    async def create_post(self, post: NormalizedPost) -> BlueskyPostResult:
        session = await self.session()
        images = [await self.upload_blob(session, image) for image in post.images]

        rich = await self.build_rich_text(post.text.strip() + (f"\n\n{post.link}" if post.link else ""))
        logger.info("Posting to Bluesky:\n%s", rich.text)

        record: dict[str, Any] = {
            "$type": "app.bsky.feed.post",
            "text": rich.text,
            "createdAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        if rich.facets:
            record["facets"] = rich.facets
        if post.language:
            record["langs"] = [post.language]
        if images:
            record["embed"] = {"$type": "app.bsky.embed.images", "images": images}
        elif post.preview is not None:
            record["embed"] = await self.external_embed(session, post.preview)

        resp = await self._http.post(
            self._xrpc("com.atproto.repo.createRecord"),
            headers=self._auth(session),
            json_body={"repo": session["did"], "collection": "app.bsky.feed.post", "record": record},
        )
        if resp.status in (400, 401) and b"ExpiredToken" in resp.body:
            self._session = None
        ensure_success(resp, module=self.module, message="Failed to create post")
        data = resp.json()
        return BlueskyPostResult(uri=data["uri"], cid=data.get("cid"))
