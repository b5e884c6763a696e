"""Configuration loader for social-publish.

Loads a YAML config file with environment variable overrides.
All env vars use the SOCIAL_PUBLISH_ prefix.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from social_publish.bluesky import BlueskyConfig
from social_publish.linkedin import LinkedInConfig
from social_publish.mastodon import MastodonConfig
from social_publish.threads import ThreadsConfig
from social_publish.twitter import TwitterConfig


ENV_PREFIX = "SOCIAL_PUBLISH_"


@dataclass
class SocialConfig:
    """Everything needed to wire the store, the flows and the adapters."""
    base_url: str = "http://localhost:3000"
    db_path: str = "social-publish.db"
    uploads_path: str = "uploads"
    http_timeout: float = 30.0
    pending_auth_ttl: float = 600.0
    mastodon: MastodonConfig = field(default_factory=MastodonConfig)
    bluesky: BlueskyConfig = field(default_factory=BlueskyConfig)
    twitter: TwitterConfig = field(default_factory=TwitterConfig)
    linkedin: LinkedInConfig = field(default_factory=LinkedInConfig)
    threads: ThreadsConfig = field(default_factory=ThreadsConfig)


def load_config(path: Path | None = None) -> SocialConfig:
    """Load config from YAML file with env var overrides.

    Env vars override YAML values. Mapping:
      SOCIAL_PUBLISH_BASE_URL → base_url
      SOCIAL_PUBLISH_DB_PATH → db_path
      SOCIAL_PUBLISH_UPLOADS_PATH → uploads_path
      SOCIAL_PUBLISH_HTTP_TIMEOUT → http_timeout
      SOCIAL_PUBLISH_PENDING_AUTH_TTL → pending_auth_ttl
      SOCIAL_PUBLISH_MASTODON_HOST → mastodon.host
      SOCIAL_PUBLISH_MASTODON_ACCESS_TOKEN → mastodon.access_token
      SOCIAL_PUBLISH_BLUESKY_SERVICE → bluesky.service
      SOCIAL_PUBLISH_BLUESKY_USERNAME → bluesky.username
      SOCIAL_PUBLISH_BLUESKY_PASSWORD → bluesky.password
      SOCIAL_PUBLISH_TWITTER_CONSUMER_KEY → twitter.consumer_key
      SOCIAL_PUBLISH_TWITTER_CONSUMER_SECRET → twitter.consumer_secret
      SOCIAL_PUBLISH_LINKEDIN_CLIENT_ID → linkedin.client_id
      SOCIAL_PUBLISH_LINKEDIN_CLIENT_SECRET → linkedin.client_secret
      SOCIAL_PUBLISH_THREADS_APP_ID → threads.app_id
      SOCIAL_PUBLISH_THREADS_APP_SECRET → threads.app_secret
    """
    raw: dict[str, Any] = {}
    if path and path.exists():
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raw = {}

    mastodon = _section(raw, "mastodon")
    bluesky = _section(raw, "bluesky")
    twitter = _section(raw, "twitter")
    linkedin = _section(raw, "linkedin")
    threads = _section(raw, "threads")

    defaults = SocialConfig()
    cfg = SocialConfig(
        base_url=_env_or("BASE_URL", raw.get("base_url", defaults.base_url)).rstrip("/"),
        db_path=_env_or("DB_PATH", raw.get("db_path", defaults.db_path)),
        uploads_path=_env_or("UPLOADS_PATH", raw.get("uploads_path", defaults.uploads_path)),
        http_timeout=_env_float("HTTP_TIMEOUT", raw.get("http_timeout", defaults.http_timeout)),
        pending_auth_ttl=_env_float(
            "PENDING_AUTH_TTL", raw.get("pending_auth_ttl", defaults.pending_auth_ttl),
        ),
        mastodon=MastodonConfig(
            host=_env_or("MASTODON_HOST", mastodon.get("host", "")),
            access_token=_env_or("MASTODON_ACCESS_TOKEN", mastodon.get("access_token", "")),
        ),
        bluesky=BlueskyConfig(
            service=_env_or("BLUESKY_SERVICE", bluesky.get("service", "https://bsky.social")),
            username=_env_or("BLUESKY_USERNAME", bluesky.get("username", "")),
            password=_env_or("BLUESKY_PASSWORD", bluesky.get("password", "")),
        ),
        twitter=TwitterConfig(
            consumer_key=_env_or("TWITTER_CONSUMER_KEY", twitter.get("consumer_key", "")),
            consumer_secret=_env_or("TWITTER_CONSUMER_SECRET", twitter.get("consumer_secret", "")),
        ),
        linkedin=LinkedInConfig(
            client_id=_env_or("LINKEDIN_CLIENT_ID", linkedin.get("client_id", "")),
            client_secret=_env_or("LINKEDIN_CLIENT_SECRET", linkedin.get("client_secret", "")),
        ),
        threads=ThreadsConfig(
            app_id=_env_or("THREADS_APP_ID", str(threads.get("app_id", ""))),
            app_secret=_env_or("THREADS_APP_SECRET", threads.get("app_secret", "")),
        ),
    )

    return cfg


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name)
    return value if isinstance(value, dict) else {}


def _env_or(suffix: str, default: str) -> str:
    return os.environ.get(f"{ENV_PREFIX}{suffix}", default)


def _env_float(suffix: str, default: float) -> float:
    val = os.environ.get(f"{ENV_PREFIX}{suffix}")
    if val is None:
        return float(default)
    return float(val)
