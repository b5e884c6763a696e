"""Mastodon integration: media uploads and statuses via the REST API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from social_publish.base import TargetAdapter
from social_publish.errors import RequestError
from social_publish.models import ImageRef, MastodonPostResult, NormalizedPost
from social_publish.transport import HttpClient, MultipartFile, encode_multipart, ensure_success

logger = logging.getLogger(__name__)

MEDIA_POLL_ATTEMPTS = 30
MEDIA_POLL_INTERVAL = 0.2


@dataclass
class MastodonConfig:
    host: str = ""
    access_token: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.host and self.access_token)


class MastodonAdapter(TargetAdapter):
    module = "mastodon"

    def __init__(
        self,
        config: MastodonConfig,
        http: HttpClient,
        sleep_func: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.config = config
        self._http = http
        self._sleep = sleep_func or asyncio.sleep

    @property
    def _base(self) -> str:
        return self.config.host.rstrip("/")

    @property
    def _auth(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.config.access_token}"}

    async def upload_media(self, image: ImageRef) -> str:
        fields = {"description": image.alt_text} if image.alt_text else {}
        body, content_type = encode_multipart(fields, [
            MultipartFile("file", image.filename or image.uuid, image.read_bytes(), image.mimetype),
        ])
        resp = await self._http.post(
            f"{self._base}/api/v2/media", headers=self._auth, data=body, content_type=content_type,
        )
        ensure_success(resp, module=self.module, message="Failed to upload media", expected=(200, 202))
        media_id = str(resp.json()["id"])
        if resp.status == 202:
            await self._wait_for_media(media_id)
        return media_id

    async def _wait_for_media(self, media_id: str) -> None:
        """Poll until the server finishes processing an asynchronous upload."""
        for _ in range(MEDIA_POLL_ATTEMPTS):
            resp = await self._http.get(f"{self._base}/api/v1/media/{media_id}", headers=self._auth)
            if resp.status == 200:
                return
            if resp.status != 206:
                ensure_success(resp, module=self.module, message="Failed to process media")
            await self._sleep(MEDIA_POLL_INTERVAL)
        raise RequestError(
            f"Media processing timed out for {media_id}", status=504, module=self.module,
        )

    async def create_post(self, post: NormalizedPost) -> MastodonPostResult:
        media_ids = [await self.upload_media(image) for image in post.images]

        text = post.text_with_link()
        logger.info("Posting to Mastodon:\n%s", text)

        form: list[tuple[str, str]] = [("status", text)]
        form.extend(("media_ids[]", media_id) for media_id in media_ids)
        if post.language:
            form.append(("language", post.language))

        resp = await self._http.post(f"{self._base}/api/v1/statuses", headers=self._auth, form=form)
        ensure_success(resp, module=self.module, message="Failed to create status", expected=(200,))
        data = resp.json()
        return MastodonPostResult(uri=data["url"], id=str(data.get("id", "")))
