"""Per-provider OAuth credentials stored as tagged documents."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from social_publish.store import Document, DocumentStore, Tag

logger = logging.getLogger(__name__)

TWITTER_TOKEN = "twitter-oauth-token"
LINKEDIN_TOKEN = "linkedin-oauth-token"
THREADS_TOKEN = "threads-oauth-token"


@dataclass
class Credential:
    kind: str
    secrets: dict[str, Any]
    created_at: datetime
    uuid: str = ""


@dataclass
class AuthStatus:
    has_authorization: bool
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "hasAuthorization": self.has_authorization,
            "createdAt": int(self.created_at.timestamp() * 1000) if self.created_at else None,
        }


class CredentialVault:
    """Read/write facade over the document store, one kind per provider.

    Credentials are written under a fixed search key equal to the provider
    kind and tagged ``(kind, "key")``; lookups go through the tag so callers
    never depend on the search key.
    """

    TAG_KIND = "key"

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def put(
        self,
        kind: str,
        secrets: dict[str, Any],
        tags: Iterable[Tag] | None = None,
        search_key: str | None = None,
    ) -> Credential:
        all_tags = [Tag(kind, self.TAG_KIND), *(tags or [])]
        doc = self._store.create_or_update(
            kind=kind,
            payload=json.dumps(secrets),
            search_key=search_key or kind,
            tags=all_tags,
        )
        logger.info("Stored credential %s", kind)
        return self._to_credential(doc)

    def get(self, kind: str) -> Credential | None:
        for doc in self._store.search_by_tag(kind, self.TAG_KIND):
            if doc.kind != kind:
                continue
            try:
                return self._to_credential(doc)
            except (json.JSONDecodeError, TypeError):
                logger.warning("Failed to parse credential %s (%s)", kind, doc.uuid)
                return None
        return None

    def status(self, kind: str) -> AuthStatus:
        cred = self.get(kind)
        if cred is None:
            return AuthStatus(has_authorization=False)
        return AuthStatus(has_authorization=True, created_at=cred.created_at)

    @staticmethod
    def _to_credential(doc: Document) -> Credential:
        secrets = json.loads(doc.payload)
        if not isinstance(secrets, dict):
            raise TypeError("credential payload must be an object")
        return Credential(kind=doc.kind, secrets=secrets, created_at=doc.created_at, uuid=doc.uuid)
