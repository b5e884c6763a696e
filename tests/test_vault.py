"""Tests for the credential vault."""

from datetime import datetime, timezone

from social_publish.store import DocumentStore, Tag
from social_publish.vault import TWITTER_TOKEN, CredentialVault


class TestCredentialVault:
    def test_put_and_get(self, vault, store):
        vault.put(TWITTER_TOKEN, {"key": "k", "secret": "s"})
        cred = vault.get(TWITTER_TOKEN)
        assert cred.kind == TWITTER_TOKEN
        assert cred.secrets == {"key": "k", "secret": "s"}

        doc = store.search_by_key(TWITTER_TOKEN)
        assert doc.kind == TWITTER_TOKEN
        assert Tag(TWITTER_TOKEN, "key") in doc.tags

    def test_missing_credential_is_none(self, vault):
        assert vault.get(TWITTER_TOKEN) is None

    def test_overwrite_keeps_identity(self, vault):
        first = vault.put(TWITTER_TOKEN, {"key": "old"})
        second = vault.put(TWITTER_TOKEN, {"key": "new"})
        assert second.uuid == first.uuid
        assert vault.get(TWITTER_TOKEN).secrets == {"key": "new"}

    def test_extra_tags(self, vault, store):
        vault.put("linkedin-oauth-token", {"access_token": "a"}, tags=[Tag("acct-1", "account")])
        assert [d.kind for d in store.search_by_tag("acct-1", "account")] == ["linkedin-oauth-token"]

    def test_unparseable_payload_is_none(self, vault, store):
        store.create_or_update(
            kind=TWITTER_TOKEN, payload="not json", search_key=TWITTER_TOKEN,
            tags=[Tag(TWITTER_TOKEN, "key")],
        )
        assert vault.get(TWITTER_TOKEN) is None

    def test_status(self):
        moment = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        v = CredentialVault(DocumentStore(":memory:", clock=lambda: moment))
        assert v.status(TWITTER_TOKEN).to_dict() == {"hasAuthorization": False, "createdAt": None}

        v.put(TWITTER_TOKEN, {"key": "k", "secret": "s"})
        status = v.status(TWITTER_TOKEN)
        assert status.has_authorization is True
        assert status.to_dict() == {
            "hasAuthorization": True,
            "createdAt": int(moment.timestamp() * 1000),
        }
