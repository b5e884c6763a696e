"""Threads integration through the Graph API container/publish protocol."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from social_publish.base import TargetAdapter
from social_publish.errors import Unauthorized
from social_publish.models import NormalizedPost, ThreadsPostResult
from social_publish.oauth import ThreadsOAuthFlow
from social_publish.transport import HttpClient, ensure_success

logger = logging.getLogger(__name__)


@dataclass
class ThreadsConfig:
    app_id: str = ""
    app_secret: str = ""
    api_base: str = "https://graph.threads.net"

    @property
    def configured(self) -> bool:
        return bool(self.app_id and self.app_secret)


class ThreadsAdapter(TargetAdapter):
    """Publishes in two steps: create a container, then publish it.

    A single image is posted as an IMAGE container carrying the text; two or
    more become carousel items referenced by a CAROUSEL container.
    """

    module = "threads"

    def __init__(self, config: ThreadsConfig, flow: ThreadsOAuthFlow, http: HttpClient) -> None:
        self.config = config
        self._flow = flow
        self._http = http

    async def _container(self, user_id: str, access_token: str, params: dict[str, Any]) -> str:
        resp = await self._http.post(
            f"{self.config.api_base}/v1.0/{user_id}/threads",
            params={**params, "access_token": access_token},
        )
        ensure_success(resp, module=self.module, message="Failed to create media container")
        return str(resp.json()["id"])

    async def create_post(self, post: NormalizedPost) -> ThreadsPostResult:
        access_token = await self._flow.get_valid_token()
        cred = self._flow.credential()
        user_id = cred.secrets.get("user_id") if cred else None
        if not user_id:
            raise Unauthorized("Unauthorized: Missing Threads user id!", module=self.module)

        text = post.text_with_link()
        logger.info("Posting to Threads:\n%s", text)

        if len(post.images) == 1:
            container_id = await self._container(user_id, access_token, {
                "media_type": "IMAGE", "image_url": post.images[0].url, "text": text,
            })
        elif post.images:
            children = [
                await self._container(user_id, access_token, {
                    "media_type": "IMAGE", "image_url": image.url, "is_carousel_item": "true",
                })
                for image in post.images
            ]
            container_id = await self._container(user_id, access_token, {
                "media_type": "CAROUSEL", "children": ",".join(children), "text": text,
            })
        else:
            container_id = await self._container(user_id, access_token, {
                "media_type": "TEXT", "text": text,
            })

        resp = await self._http.post(
            f"{self.config.api_base}/v1.0/{user_id}/threads_publish",
            params={"creation_id": container_id, "access_token": access_token},
        )
        ensure_success(resp, module=self.module, message="Failed to publish post")
        return ThreadsPostResult(id=str(resp.json()["id"]))
