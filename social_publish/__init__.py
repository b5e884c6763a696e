"""social-publish: one post, every configured platform, plus a local feed.

Credentials for providers that need a user redirect are obtained through
OAuth flows and kept, along with posts and uploads, in a single document
store.
"""

__version__ = "0.4.0"

from social_publish.config import load_config, SocialConfig
from social_publish.errors import ApiError, CompositeError, ValidationError
from social_publish.factory import App, build_app
from social_publish.models import PublishRequest, Target
from social_publish.publish import PublishOrchestrator, PublishOutcome
from social_publish.store import DocumentStore

__all__ = [
    "ApiError",
    "App",
    "CompositeError",
    "DocumentStore",
    "PublishOrchestrator",
    "PublishOutcome",
    "PublishRequest",
    "SocialConfig",
    "Target",
    "ValidationError",
    "build_app",
    "load_config",
]
