"""HTTP handlers independent of any web framework.

Each handler takes already-parsed input (JSON object or form fields, query
parameters, the authenticated principal) and returns an ``ApiResponse`` that
a server adapter can write out as-is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from social_publish.errors import ApiError, NotFound, Unauthorized
from social_publish.models import PublishRequest, Target, serialize_result
from social_publish.oauth import OAuthFlow
from social_publish.publish import PublishOrchestrator

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}


@dataclass
class ApiResponse:
    status: int
    body: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_error(cls, error: ApiError) -> ApiResponse:
        return cls(error.status, error.to_dict())

    @classmethod
    def redirect(cls, location: str, headers: dict[str, str] | None = None) -> ApiResponse:
        return cls(302, None, {"Location": location, **(headers or {})})


class PublishApi:
    """Routes:

    - ``POST /api/<target>/post`` -> ``post``
    - ``POST /api/multiple/post`` -> ``multiple_post``
    - ``GET /api/<provider>/authorize`` -> ``authorize``
    - ``GET /api/<provider>/callback`` -> ``callback``
    - ``GET /api/<provider>/status`` -> ``status``
    """

    def __init__(
        self,
        orchestrator: PublishOrchestrator,
        flows: dict[str, OAuthFlow] | None = None,
        account_path: str = "/account",
    ) -> None:
        self._orchestrator = orchestrator
        self._flows = flows or {}
        self._account_path = account_path

    @staticmethod
    def _require(principal: Any) -> None:
        if principal is None:
            raise Unauthorized("Unauthorized")

    def _flow(self, provider: str) -> OAuthFlow:
        flow = self._flows.get(provider.lower())
        if flow is None:
            raise NotFound(f"No authorization flow for {provider}", module=provider)
        return flow

    async def post(self, target: str, data: dict[str, Any], principal: Any) -> ApiResponse:
        try:
            self._require(principal)
            request = PublishRequest.from_dict(data)
            result = await self._orchestrator.publish_to(Target.parse(target), request)
        except ApiError as exc:
            return ApiResponse.from_error(exc)
        return ApiResponse(200, serialize_result(result))

    async def multiple_post(self, data: dict[str, Any], principal: Any) -> ApiResponse:
        try:
            self._require(principal)
            outcome = await self._orchestrator.publish(PublishRequest.from_dict(data))
        except ApiError as exc:
            return ApiResponse.from_error(exc)
        return ApiResponse(200, outcome.to_dict())

    async def authorize(self, provider: str, principal: Any) -> ApiResponse:
        try:
            self._require(principal)
            url = await self._flow(provider).authorization_url()
        except ApiError as exc:
            return ApiResponse.from_error(exc)
        return ApiResponse.redirect(url)

    async def callback(self, provider: str, params: dict[str, str]) -> ApiResponse:
        try:
            await self._flow(provider).handle_callback(params)
        except ApiError as exc:
            return ApiResponse.from_error(exc)
        return ApiResponse.redirect(self._account_path, NO_CACHE_HEADERS)

    def status(self, provider: str, principal: Any) -> ApiResponse:
        try:
            self._require(principal)
            status = self._flow(provider).status()
        except ApiError as exc:
            return ApiResponse.from_error(exc)
        return ApiResponse(200, status.to_dict())
