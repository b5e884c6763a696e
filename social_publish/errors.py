"""Typed failures shared by every component.

Each error carries the HTTP status it maps to and the module that produced it,
so the publish orchestrator can aggregate failures from several targets.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for failures that map onto an HTTP response."""

    default_status = 500

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        module: str | None = None,
    ) -> None:
        self.message = message
        self.status = status if status is not None else self.default_status
        self.module = module
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status}, module={self.module!r}, message={self.message!r})"


class ValidationError(ApiError):
    default_status = 400


class NotFound(ApiError):
    default_status = 404


class Unauthorized(ApiError):
    default_status = 401


class CaughtException(ApiError):
    """An unexpected local exception converted at a component boundary."""


class RequestError(ApiError):
    """A failed upstream call; keeps the raw response body for diagnostics."""

    def __init__(
        self,
        message: str,
        *,
        status: int,
        module: str | None = None,
        body: str = "",
    ) -> None:
        super().__init__(message, status=status, module=module)
        self.body = body

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.body:
            data["body"] = self.body
        return data


class CompositeError(ApiError):
    """Aggregate failure of a multi-target publish.

    ``responses`` holds one entry per dispatched target, successful or not.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int,
        module: str = "form",
        responses: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message, status=status, module=module)
        self.responses = responses or []

    @property
    def failed_modules(self) -> list[str]:
        return [r["module"] for r in self.responses if r.get("type") == "error"]

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "responses": list(self.responses)}


@contextmanager
def boundary(module: str, message: str) -> Iterator[None]:
    """Re-raise anything that is not already an ``ApiError`` as ``CaughtException``."""
    try:
        yield
    except ApiError as exc:
        if exc.module is None:
            exc.module = module
        raise
    except Exception as exc:
        logger.exception("%s (%s)", message, module)
        raise CaughtException(f"{message}: {exc}", module=module) from exc
