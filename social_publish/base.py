"""Common shape of every publish target."""

from __future__ import annotations

from abc import ABC, abstractmethod

from social_publish.errors import boundary
from social_publish.models import NormalizedPost, PostResult


class TargetAdapter(ABC):
    """One destination the orchestrator can publish to.

    Subclasses implement ``create_post``; callers go through ``publish``,
    which turns any stray exception into a ``CaughtException`` tagged with
    the adapter's module name.
    """

    module: str = ""

    @abstractmethod
    async def create_post(self, post: NormalizedPost) -> PostResult:
        """Publish the post upstream and return the platform identifiers."""

    async def publish(self, post: NormalizedPost) -> PostResult:
        with boundary(self.module, f"Failed to create post via {self.module}"):
            return await self.create_post(post)
