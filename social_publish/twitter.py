"""Twitter (X) integration, signed with the OAuth 1.0a user token from the vault."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from social_publish import oauth1
from social_publish.base import TargetAdapter
from social_publish.errors import Unauthorized
from social_publish.models import ImageRef, NormalizedPost, TwitterPostResult
from social_publish.transport import HttpClient, MultipartFile, encode_multipart, ensure_success
from social_publish.vault import TWITTER_TOKEN, CredentialVault

logger = logging.getLogger(__name__)


@dataclass
class TwitterConfig:
    consumer_key: str = ""
    consumer_secret: str = ""
    api_base: str = "https://api.twitter.com"
    upload_base: str = "https://upload.twitter.com"

    @property
    def configured(self) -> bool:
        return bool(self.consumer_key and self.consumer_secret)


@dataclass
class TwitterToken:
    key: str
    secret: str


class TwitterAdapter(TargetAdapter):
    module = "twitter"

    def __init__(self, config: TwitterConfig, vault: CredentialVault, http: HttpClient) -> None:
        self.config = config
        self._vault = vault
        self._http = http

    def token(self) -> TwitterToken:
        cred = self._vault.get(TWITTER_TOKEN)
        if cred is None or not cred.secrets.get("key"):
            raise Unauthorized("Unauthorized: Missing Twitter OAuth token!", module=self.module)
        return TwitterToken(key=cred.secrets["key"], secret=cred.secrets.get("secret", ""))

    def _sign(self, method: str, url: str, token: TwitterToken) -> dict[str, str]:
        return {"Authorization": oauth1.authorization_header(
            method, url, self.config.consumer_key, self.config.consumer_secret,
            token=token.key, token_secret=token.secret,
        )}

    async def upload_media(self, token: TwitterToken, image: ImageRef) -> str:
        url = f"{self.config.upload_base}/1.1/media/upload.json"
        body, content_type = encode_multipart(
            {"media_category": "tweet_image"},
            [MultipartFile("media", image.filename or image.uuid, image.read_bytes(), image.mimetype)],
        )
        resp = await self._http.post(
            url, headers=self._sign("POST", url, token), data=body, content_type=content_type,
        )
        ensure_success(resp, module=self.module, message="Failed to upload media", expected=(200,))
        media_id = resp.json()["media_id_string"]

        if image.alt_text:
            alt_url = f"{self.config.api_base}/1.1/media/metadata/create.json"
            resp = await self._http.post(
                alt_url,
                headers=self._sign("POST", alt_url, token),
                json_body={"media_id": media_id, "alt_text": {"text": image.alt_text}},
            )
            if not resp.ok:
                logger.warning("Failed to set alt text on media %s: %d", media_id, resp.status)
        return media_id

    async def create_post(self, post: NormalizedPost) -> TwitterPostResult:
        token = self.token()
        media_ids = [await self.upload_media(token, image) for image in post.images]

        text = post.text_with_link()
        logger.info("Posting to Twitter:\n%s", text)

        payload: dict = {"text": text}
        if media_ids:
            payload["media"] = {"media_ids": media_ids}

        url = f"{self.config.api_base}/2/tweets"
        resp = await self._http.post(url, headers=self._sign("POST", url, token), json_body=payload)
        ensure_success(resp, module=self.module, message="Failed to create post", expected=(201,))
        return TwitterPostResult(id=resp.json()["data"]["id"])
