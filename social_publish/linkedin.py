"""LinkedIn integration through the UGC Posts API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from social_publish.base import TargetAdapter
from social_publish.models import ImageRef, LinkedInPostResult, NormalizedPost
from social_publish.oauth import LinkedInOAuthFlow
from social_publish.transport import HttpClient, ensure_success

logger = logging.getLogger(__name__)

RESTLI_HEADERS = {"X-Restli-Protocol-Version": "2.0.0"}


@dataclass
class LinkedInConfig:
    client_id: str = ""
    client_secret: str = ""
    api_base: str = "https://api.linkedin.com/v2"

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


def person_urn(subject: str) -> str:
    return subject if subject.startswith("urn:li:person:") else f"urn:li:person:{subject}"


class LinkedInAdapter(TargetAdapter):
    module = "linkedin"

    def __init__(self, config: LinkedInConfig, flow: LinkedInOAuthFlow, http: HttpClient) -> None:
        self.config = config
        self._flow = flow
        self._http = http

    async def profile_urn(self, access_token: str) -> str:
        resp = await self._http.get(
            f"{self.config.api_base}/userinfo",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        ensure_success(resp, module=self.module, message="Failed to get user profile")
        return person_urn(resp.json()["sub"])

    async def upload_image(self, access_token: str, owner: str, image: ImageRef) -> dict[str, Any]:
        """Register an upload, PUT the bytes, and return the UGC media entry."""
        auth = {"Authorization": f"Bearer {access_token}"}
        resp = await self._http.post(
            f"{self.config.api_base}/assets?action=registerUpload",
            headers={**auth, **RESTLI_HEADERS},
            json_body={"registerUploadRequest": {
                "owner": owner,
                "recipes": ["urn:li:digitalmediaRecipe:feedshare-image"],
                "serviceRelationships": [{
                    "identifier": "urn:li:userGeneratedContent",
                    "relationshipType": "OWNER",
                }],
            }},
        )
        ensure_success(resp, module=self.module, message="Failed to register upload", expected=(200,))
        value = resp.json()["value"]
        upload_url = value["uploadMechanism"][
            "com.linkedin.digitalmedia.uploading.MediaUploadHttpRequest"
        ]["uploadUrl"]

        resp = await self._http.put(
            upload_url, headers=auth, data=image.read_bytes(), content_type=image.mimetype,
        )
        ensure_success(resp, module=self.module, message="Failed to upload binary", expected=(200, 201))

        media: dict[str, Any] = {"status": "READY", "media": value["asset"]}
        if image.alt_text:
            media["description"] = {"text": image.alt_text}
        return media

    def build_share(self, author: str, post: NormalizedPost, media: list[dict[str, Any]]) -> dict[str, Any]:
        content: dict[str, Any] = {"shareCommentary": {"text": post.text}}
        if media:
            content["shareMediaCategory"] = "IMAGE"
            content["media"] = media
        elif post.link:
            content["shareMediaCategory"] = "ARTICLE"
            article: dict[str, Any] = {
                "status": "READY",
                "originalUrl": post.link,
                "description": {"text": post.text[:256]},
            }
            if post.preview is not None:
                article["title"] = {"text": post.preview.title}
                if post.preview.image:
                    article["thumbnails"] = [{"url": post.preview.image}]
            content["media"] = [article]
        else:
            content["shareMediaCategory"] = "NONE"
        return {
            "author": author,
            "lifecycleState": "PUBLISHED",
            "specificContent": {"com.linkedin.ugc.ShareContent": content},
            "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
        }

    async def create_post(self, post: NormalizedPost) -> LinkedInPostResult:
        access_token = await self._flow.get_valid_token()
        author = await self.profile_urn(access_token)
        media = [await self.upload_image(access_token, author, image) for image in post.images]

        logger.info("Posting to LinkedIn via UGC API:\n%s", post.text)
        resp = await self._http.post(
            f"{self.config.api_base}/ugcPosts",
            headers={"Authorization": f"Bearer {access_token}", **RESTLI_HEADERS},
            json_body=self.build_share(author, post, media),
        )
        ensure_success(resp, module=self.module, message="Failed to create post", expected=(201,))

        post_id = resp.header("X-RestLi-Id")
        if not post_id:
            try:
                post_id = resp.json().get("id")
            except ValueError:
                logger.error("Could not parse postId: %s", resp.text())
        return LinkedInPostResult(post_id=post_id or "unknown")
