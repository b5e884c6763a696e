"""Authorization handshakes for the providers that need a user redirect.

Twitter uses three-legged OAuth 1.0a; LinkedIn and Threads use the OAuth 2
authorization-code grant with a CSRF ``state``. Each flow is the only writer
of its provider's credential in the vault.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import threading
import time
import urllib.parse
from abc import ABC, abstractmethod
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator

from social_publish import oauth1
from social_publish.errors import ApiError, Unauthorized, ValidationError, boundary
from social_publish.transport import HttpClient, ensure_success
from social_publish.vault import (
    LINKEDIN_TOKEN,
    THREADS_TOKEN,
    TWITTER_TOKEN,
    AuthStatus,
    Credential,
    CredentialVault,
)

logger = logging.getLogger(__name__)

DEFAULT_PENDING_TTL = 600.0
DEFAULT_MAX_PENDING = 100
TOKEN_REFRESH_MARGIN = 300


class FlowState(Enum):
    IDLE = "idle"
    REQUEST_ISSUED = "request_issued"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGED = "exchanged"
    PERSISTED = "persisted"
    REJECTED = "rejected"


@dataclass
class PendingAuthorization:
    provider: str
    key: str
    secret: str
    created_at: float


class PendingAuthorizations:
    """Outstanding request tokens and ``state`` values awaiting a callback.

    Entries expire after ``ttl`` seconds and at most ``max_entries`` are kept,
    oldest evicted first. Each entry can be consumed once.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_PENDING_TTL,
        max_entries: int = DEFAULT_MAX_PENDING,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._entries: OrderedDict[tuple[str, str], PendingAuthorization] = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired()
            return len(self._entries)

    def remember(self, provider: str, key: str, secret: str = "") -> PendingAuthorization:
        entry = PendingAuthorization(provider, key, secret, self._clock())
        with self._lock:
            self._evict_expired()
            self._entries[(provider, key)] = entry
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return entry

    def consume(self, provider: str, key: str) -> PendingAuthorization | None:
        """Remove and return the matching entry, or None if there is none."""
        with self._lock:
            self._evict_expired()
            for (entry_provider, entry_key), entry in self._entries.items():
                if entry_provider != provider:
                    continue
                if hmac.compare_digest(entry_key.encode(), key.encode()):
                    del self._entries[(entry_provider, entry_key)]
                    return entry
            return None

    def discard_all(self, provider: str) -> int:
        with self._lock:
            stale = [k for k in self._entries if k[0] == provider]
            for k in stale:
                del self._entries[k]
            return len(stale)

    def _evict_expired(self) -> None:
        cutoff = self._clock() - self.ttl
        while self._entries:
            first = next(iter(self._entries.values()))
            if first.created_at > cutoff:
                break
            self._entries.popitem(last=False)


class OAuthFlow(ABC):
    """Shared plumbing: redirect URI, vault access and the flow state."""

    provider: str = ""
    credential_kind: str = ""

    def __init__(
        self,
        http: HttpClient,
        vault: CredentialVault,
        pending: PendingAuthorizations,
        base_url: str,
    ) -> None:
        self._http = http
        self._vault = vault
        self._pending = pending
        self._base_url = base_url.rstrip("/")
        self.state = FlowState.IDLE

    @property
    def redirect_uri(self) -> str:
        return f"{self._base_url}/api/{self.provider}/callback"

    def status(self) -> AuthStatus:
        return self._vault.status(self.credential_kind)

    def credential(self) -> Credential | None:
        return self._vault.get(self.credential_kind)

    def _transition(self, state: FlowState) -> None:
        logger.info("%s authorization: %s -> %s", self.provider, self.state.value, state.value)
        self.state = state

    def _reject(self, message: str) -> Unauthorized:
        self._transition(FlowState.REJECTED)
        logger.warning("%s callback rejected: %s", self.provider, message)
        return Unauthorized(message, module=self.provider)

    @contextmanager
    def _completing(self, message: str) -> Iterator[None]:
        """Error boundary for the exchange step; any failure ends the flow."""
        try:
            with boundary(self.provider, message):
                yield
        except ApiError:
            self._transition(FlowState.REJECTED)
            raise

    @abstractmethod
    async def authorization_url(self) -> str:
        """Start the handshake and return where to send the user."""

    @abstractmethod
    async def handle_callback(self, params: dict[str, str]) -> Credential:
        """Finish the handshake from the callback query parameters."""


class TwitterOAuthFlow(OAuthFlow):
    provider = "twitter"
    credential_kind = TWITTER_TOKEN

    def __init__(
        self,
        http: HttpClient,
        vault: CredentialVault,
        pending: PendingAuthorizations,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        oauth_base: str = "https://api.twitter.com/oauth",
    ) -> None:
        super().__init__(http, vault, pending, base_url)
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.oauth_base = oauth_base.rstrip("/")

    async def authorization_url(self) -> str:
        with boundary(self.provider, "Failed to get request token"):
            url = f"{self.oauth_base}/request_token?x_auth_access_type=write"
            auth = oauth1.authorization_header(
                "POST", url, self.consumer_key, self.consumer_secret,
                extra_oauth={"oauth_callback": self.redirect_uri},
            )
            resp = await self._http.post(url, headers={"Authorization": auth})
            ensure_success(resp, module=self.provider, message="Failed to get request token")
            data = resp.form()
            token = data.get("oauth_token")
            if not token:
                raise ValidationError(
                    "Request token missing from response", status=502, module=self.provider,
                )
            self._pending.remember(self.provider, token, data.get("oauth_token_secret", ""))
            self._transition(FlowState.REQUEST_ISSUED)
            self._transition(FlowState.AWAITING_CALLBACK)
            return f"{self.oauth_base}/authorize?{urllib.parse.urlencode({'oauth_token': token})}"

    async def handle_callback(self, params: dict[str, str]) -> Credential:
        token = params.get("oauth_token")
        verifier = params.get("oauth_verifier")
        if not token or not verifier:
            raise ValidationError("Invalid request", module=self.provider)

        pending = self._pending.consume(self.provider, token)
        if pending is None:
            raise self._reject("Unknown or expired OAuth request token")

        with self._completing("Failed to save OAuth token"):
            url = f"{self.oauth_base}/access_token"
            auth = oauth1.authorization_header(
                "POST", url, self.consumer_key, self.consumer_secret,
                token=token, token_secret=pending.secret,
                extra_oauth={"oauth_verifier": verifier},
            )
            resp = await self._http.post(url, headers={"Authorization": auth})
            ensure_success(resp, module=self.provider, message="Failed to get access token")
            data = resp.form()
            self._transition(FlowState.EXCHANGED)
            cred = self._vault.put(
                self.credential_kind,
                {"key": data["oauth_token"], "secret": data["oauth_token_secret"]},
            )
            self._transition(FlowState.PERSISTED)
            return cred


class OAuth2Flow(OAuthFlow):
    """Authorization-code grant guarded by a random ``state``."""

    authorize_url: str = ""
    scope: str = ""

    def __init__(
        self,
        http: HttpClient,
        vault: CredentialVault,
        pending: PendingAuthorizations,
        base_url: str,
        client_id: str,
        client_secret: str,
        clock: Callable[[], float] | None = None,
    ) -> None:
        super().__init__(http, vault, pending, base_url)
        self.client_id = client_id
        self.client_secret = client_secret
        self._clock = clock or time.time

    async def authorization_url(self) -> str:
        state = secrets.token_urlsafe(32)
        self._pending.remember(self.provider, state)
        self._transition(FlowState.AWAITING_CALLBACK)
        query = urllib.parse.urlencode({
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": state,
            "scope": self.scope,
        })
        return f"{self.authorize_url}?{query}"

    async def handle_callback(self, params: dict[str, str]) -> Credential:
        if params.get("error"):
            self._pending.discard_all(self.provider)
            raise self._reject(params.get("error_description") or params["error"])

        code = params.get("code")
        state = params.get("state")
        if not code or not state:
            raise ValidationError("Invalid request", module=self.provider)

        if self._pending.consume(self.provider, state) is None:
            self._pending.discard_all(self.provider)
            raise self._reject("Invalid OAuth state")

        with self._completing("Failed to exchange code for token"):
            token = await self._exchange_code(code)
            self._transition(FlowState.EXCHANGED)
            cred = self._vault.put(self.credential_kind, token)
            self._transition(FlowState.PERSISTED)
            return cred

    async def refresh(self) -> Credential:
        """Swap the stored token for a fresh one, in place.

        A failed refresh leaves the stored credential as it was.
        """
        cred = self._require_credential()
        with boundary(self.provider, "Failed to refresh access token"):
            token = await self._refresh_token(cred.secrets)
            logger.info("%s token refreshed", self.provider)
            return self._vault.put(self.credential_kind, token)

    def is_expired(self, secrets_: dict[str, Any]) -> bool:
        expires_in = secrets_.get("expires_in")
        obtained_at = secrets_.get("obtained_at")
        if expires_in is None or obtained_at is None:
            return False
        return self._clock() >= float(obtained_at) + float(expires_in) - TOKEN_REFRESH_MARGIN

    async def get_valid_token(self) -> str:
        """Stored access token, refreshed first if it is about to expire."""
        cred = self._require_credential()
        if self.is_expired(cred.secrets):
            logger.info("%s token expired, refreshing...", self.provider)
            cred = await self.refresh()
        return cred.secrets["access_token"]

    def _require_credential(self) -> Credential:
        cred = self.credential()
        if cred is None or not cred.secrets.get("access_token"):
            raise Unauthorized(
                f"Unauthorized: Missing {self.provider.capitalize()} OAuth token!",
                module=self.provider,
            )
        return cred

    def _token_payload(self, data: dict[str, Any], **extra: Any) -> dict[str, Any]:
        payload = {k: v for k, v in data.items() if v is not None}
        payload.update({k: v for k, v in extra.items() if v is not None})
        payload["obtained_at"] = int(self._clock())
        return payload

    @abstractmethod
    async def _exchange_code(self, code: str) -> dict[str, Any]:
        """Trade the authorization code for the token payload to store."""

    @abstractmethod
    async def _refresh_token(self, current: dict[str, Any]) -> dict[str, Any]:
        """Fetch a replacement for the stored token payload."""


class LinkedInOAuthFlow(OAuth2Flow):
    provider = "linkedin"
    credential_kind = LINKEDIN_TOKEN
    authorize_url = "https://www.linkedin.com/oauth/v2/authorization"
    token_url = "https://www.linkedin.com/oauth/v2/accessToken"
    scope = "openid profile w_member_social"

    async def _exchange_code(self, code: str) -> dict[str, Any]:
        resp = await self._http.post(self.token_url, form={
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
        })
        ensure_success(resp, module=self.provider, message="Failed to exchange code for token")
        return self._token_payload(resp.json())

    async def _refresh_token(self, current: dict[str, Any]) -> dict[str, Any]:
        refresh_token = current.get("refresh_token")
        if not refresh_token:
            raise Unauthorized(
                "LinkedIn token expired and no refresh token available. Please re-authorize.",
                module=self.provider,
            )
        resp = await self._http.post(self.token_url, form={
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        })
        ensure_success(resp, module=self.provider, message="Failed to refresh access token")
        data = resp.json()
        # LinkedIn may omit the refresh token when it is unchanged.
        data.setdefault("refresh_token", refresh_token)
        return self._token_payload(data)


class ThreadsOAuthFlow(OAuth2Flow):
    provider = "threads"
    credential_kind = THREADS_TOKEN
    authorize_url = "https://threads.net/oauth/authorize"
    scope = "threads_basic,threads_content_publish"

    def __init__(self, *args: Any, graph_base: str = "https://graph.threads.net", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.graph_base = graph_base.rstrip("/")

    async def _exchange_code(self, code: str) -> dict[str, Any]:
        resp = await self._http.post(f"{self.graph_base}/oauth/access_token", form={
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
            "code": code,
        })
        ensure_success(resp, module=self.provider, message="Failed to exchange code for token")
        short_lived = resp.json()

        resp = await self._http.get(f"{self.graph_base}/access_token", params={
            "grant_type": "th_exchange_token",
            "client_secret": self.client_secret,
            "access_token": short_lived["access_token"],
        })
        ensure_success(resp, module=self.provider, message="Failed to get long-lived token")
        return self._token_payload(resp.json(), user_id=str(short_lived["user_id"]))

    async def _refresh_token(self, current: dict[str, Any]) -> dict[str, Any]:
        resp = await self._http.get(f"{self.graph_base}/refresh_access_token", params={
            "grant_type": "th_refresh_token",
            "access_token": current["access_token"],
        })
        ensure_success(resp, module=self.provider, message="Failed to refresh access token")
        return self._token_payload(resp.json(), user_id=current.get("user_id"))
