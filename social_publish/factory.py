"""Factory for building the whole publishing stack from a SocialConfig.

Shared by the CLI and by any server that mounts the API handlers, to avoid
duplicated wiring.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from social_publish.api import PublishApi
from social_publish.base import TargetAdapter
from social_publish.bluesky import BlueskyAdapter
from social_publish.config import SocialConfig
from social_publish.feed import FeedTarget, PostsRepository
from social_publish.files import FileStore
from social_publish.linkedin import LinkedInAdapter
from social_publish.linkpreview import LinkPreviewFetcher
from social_publish.mastodon import MastodonAdapter
from social_publish.models import Target
from social_publish.oauth import (
    LinkedInOAuthFlow,
    OAuth2Flow,
    OAuthFlow,
    PendingAuthorizations,
    ThreadsOAuthFlow,
    TwitterOAuthFlow,
)
from social_publish.publish import PublishOrchestrator
from social_publish.store import DocumentStore
from social_publish.threads import ThreadsAdapter
from social_publish.transport import HttpClient, Transport
from social_publish.twitter import TwitterAdapter
from social_publish.vault import CredentialVault


@dataclass
class App:
    config: SocialConfig
    store: DocumentStore
    vault: CredentialVault
    files: FileStore
    posts: PostsRepository
    pending: PendingAuthorizations
    orchestrator: PublishOrchestrator
    api: PublishApi
    flows: dict[str, OAuthFlow] = field(default_factory=dict)
    adapters: dict[Target, TargetAdapter] = field(default_factory=dict)

    def refreshable_flow(self, provider: str) -> OAuth2Flow | None:
        flow = self.flows.get(provider)
        return flow if isinstance(flow, OAuth2Flow) else None

    def close(self) -> None:
        self.store.close()


def build_app(
    cfg: SocialConfig,
    transport: Transport | None = None,
    store: DocumentStore | None = None,
) -> App:
    """Build every component from a SocialConfig.

    Args:
        cfg: Configuration with base URL, storage paths and provider credentials.
        transport: Optional HTTP transport; tests pass a fake one.
        store: Optional pre-built document store. If None, one is opened at
            cfg.db_path.

    Returns:
        A fully wired App. Only configured providers get an adapter; the feed
        target is always present.
    """
    if store is None:
        store = DocumentStore(cfg.db_path)
    http = HttpClient(transport, timeout=cfg.http_timeout)
    vault = CredentialVault(store)
    files = FileStore(store, cfg.uploads_path, cfg.base_url)
    posts = PostsRepository(store)
    pending = PendingAuthorizations(ttl=cfg.pending_auth_ttl)

    adapters: dict[Target, TargetAdapter] = {Target.RSS: FeedTarget(posts, cfg.base_url)}
    flows: dict[str, OAuthFlow] = {}

    if cfg.mastodon.configured:
        adapters[Target.MASTODON] = MastodonAdapter(cfg.mastodon, http)

    if cfg.bluesky.configured:
        adapters[Target.BLUESKY] = BlueskyAdapter(cfg.bluesky, http)

    if cfg.twitter.configured:
        flows["twitter"] = TwitterOAuthFlow(
            http, vault, pending, cfg.base_url,
            consumer_key=cfg.twitter.consumer_key,
            consumer_secret=cfg.twitter.consumer_secret,
        )
        adapters[Target.TWITTER] = TwitterAdapter(cfg.twitter, vault, http)

    if cfg.linkedin.configured:
        linkedin_flow = LinkedInOAuthFlow(
            http, vault, pending, cfg.base_url,
            client_id=cfg.linkedin.client_id,
            client_secret=cfg.linkedin.client_secret,
        )
        flows["linkedin"] = linkedin_flow
        adapters[Target.LINKEDIN] = LinkedInAdapter(cfg.linkedin, linkedin_flow, http)

    if cfg.threads.configured:
        threads_flow = ThreadsOAuthFlow(
            http, vault, pending, cfg.base_url,
            client_id=cfg.threads.app_id,
            client_secret=cfg.threads.app_secret,
            graph_base=cfg.threads.api_base,
        )
        flows["threads"] = threads_flow
        adapters[Target.THREADS] = ThreadsAdapter(cfg.threads, threads_flow, http)

    orchestrator = PublishOrchestrator(
        adapters,
        image_resolver=files.resolve_image,
        link_previews=LinkPreviewFetcher(http),
    )
    return App(
        config=cfg,
        store=store,
        vault=vault,
        files=files,
        posts=posts,
        pending=pending,
        orchestrator=orchestrator,
        api=PublishApi(orchestrator, flows),
        flows=flows,
        adapters=adapters,
    )
