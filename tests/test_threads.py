"""Tests for the Threads adapter."""

import urllib.parse

import pytest

from social_publish.errors import RequestError, Unauthorized
from social_publish.models import ImageRef, NormalizedPost
from social_publish.oauth import PendingAuthorizations, ThreadsOAuthFlow
from social_publish.threads import ThreadsAdapter, ThreadsConfig
from social_publish.vault import THREADS_TOKEN

GRAPH = "https://graph.threads.net/v1.0/777"


def _query(url: str) -> dict[str, str]:
    return dict(urllib.parse.parse_qsl(urllib.parse.urlsplit(url).query))


def _image(uuid: str) -> ImageRef:
    return ImageRef(uuid=uuid, url=f"https://publish.example.com/files/{uuid}", mimetype="image/png")


class TestThreadsAdapter:
    def _adapter(self, http, vault, base_url, secrets=None):
        if secrets is not False:
            vault.put(THREADS_TOKEN, secrets or {"access_token": "th-at", "user_id": "777"})
        config = ThreadsConfig(app_id="12345", app_secret="th-secret")
        flow = ThreadsOAuthFlow(
            http, vault, PendingAuthorizations(), base_url,
            client_id=config.app_id, client_secret=config.app_secret,
        )
        return ThreadsAdapter(config, flow, http)

    @pytest.mark.asyncio
    async def test_text_post(self, transport, http, vault, base_url):
        transport.add("POST", f"{GRAPH}/threads", json_body={"id": "c1"})
        transport.add("POST", f"{GRAPH}/threads_publish", json_body={"id": "p1"})
        adapter = self._adapter(http, vault, base_url)

        result = await adapter.publish(NormalizedPost(text="Hello", link="https://example.com"))

        assert result.id == "p1"
        container = _query(transport.calls("POST", f"{GRAPH}/threads?")[0].url)
        assert container == {
            "media_type": "TEXT", "text": "Hello\n\nhttps://example.com", "access_token": "th-at",
        }
        publish = _query(transport.calls("POST", f"{GRAPH}/threads_publish")[0].url)
        assert publish == {"creation_id": "c1", "access_token": "th-at"}

    @pytest.mark.asyncio
    async def test_single_image(self, transport, http, vault, base_url):
        transport.add("POST", f"{GRAPH}/threads", json_body={"id": "c1"})
        transport.add("POST", f"{GRAPH}/threads_publish", json_body={"id": "p1"})
        adapter = self._adapter(http, vault, base_url)

        await adapter.publish(NormalizedPost(text="Photo", images=[_image("a")]))

        container = _query(transport.calls("POST", f"{GRAPH}/threads?")[0].url)
        assert container["media_type"] == "IMAGE"
        assert container["image_url"] == "https://publish.example.com/files/a"
        assert container["text"] == "Photo"

    @pytest.mark.asyncio
    async def test_carousel(self, transport, http, vault, base_url):
        transport.add("POST", f"{GRAPH}/threads", json_body={"id": "item-a"})
        transport.add("POST", f"{GRAPH}/threads", json_body={"id": "item-b"})
        transport.add("POST", f"{GRAPH}/threads", json_body={"id": "carousel"})
        transport.add("POST", f"{GRAPH}/threads_publish", json_body={"id": "p2"})
        adapter = self._adapter(http, vault, base_url)

        result = await adapter.publish(NormalizedPost(text="Album", images=[_image("a"), _image("b")]))

        assert result.id == "p2"
        containers = [_query(r.url) for r in transport.calls("POST", f"{GRAPH}/threads?")]
        assert [c["media_type"] for c in containers] == ["IMAGE", "IMAGE", "CAROUSEL"]
        assert containers[0]["is_carousel_item"] == "true"
        assert "text" not in containers[0]
        assert containers[2]["children"] == "item-a,item-b"
        assert containers[2]["text"] == "Album"
        assert _query(transport.calls("POST", f"{GRAPH}/threads_publish")[0].url)["creation_id"] == "carousel"

    @pytest.mark.asyncio
    async def test_missing_user_id(self, transport, http, vault, base_url):
        adapter = self._adapter(http, vault, base_url, secrets={"access_token": "th-at"})
        with pytest.raises(Unauthorized):
            await adapter.publish(NormalizedPost(text="Hello"))
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_not_authorized(self, transport, http, vault, base_url):
        adapter = self._adapter(http, vault, base_url, secrets=False)
        with pytest.raises(Unauthorized, match="Missing Threads OAuth token"):
            await adapter.publish(NormalizedPost(text="Hello"))

    @pytest.mark.asyncio
    async def test_container_failure(self, transport, http, vault, base_url):
        transport.add("POST", f"{GRAPH}/threads", status=400, json_body={"error": {"message": "bad"}})
        adapter = self._adapter(http, vault, base_url)
        with pytest.raises(RequestError) as exc_info:
            await adapter.publish(NormalizedPost(text="Hello"))
        assert exc_info.value.module == "threads"
        assert transport.calls("POST", f"{GRAPH}/threads_publish") == []
