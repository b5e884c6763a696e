"""Shared fixtures: a scripted HTTP transport and in-memory storage."""

from __future__ import annotations

import json
import struct
import threading
from dataclasses import dataclass, field
from typing import Any

import pytest

from social_publish.files import FileStore
from social_publish.store import DocumentStore
from social_publish.transport import HttpClient, HttpRequest, HttpResponse
from social_publish.vault import CredentialVault

BASE_URL = "https://publish.example.com"


@dataclass
class Route:
    method: str
    prefix: str
    response: HttpResponse
    times: int | None = 1


@dataclass
class FakeTransport:
    """Answers requests from scripted routes and records every request.

    The route with the longest matching URL prefix wins; among equal
    prefixes, the earliest added one is used first. ``times=None`` repeats.
    """

    routes: list[Route] = field(default_factory=list)
    requests: list[HttpRequest] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def add(
        self,
        method: str,
        prefix: str,
        status: int = 200,
        json_body: Any = None,
        body: bytes | str = b"",
        headers: dict[str, str] | None = None,
        times: int | None = 1,
    ) -> None:
        if json_body is not None:
            body = json.dumps(json_body)
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes.append(Route(method, prefix, HttpResponse(status, body, headers or {}), times))

    def __call__(self, request: HttpRequest) -> HttpResponse:
        with self._lock:
            self.requests.append(request)
            candidates = [
                r for r in self.routes
                if r.method == request.method
                and request.url.startswith(r.prefix)
                and (r.times is None or r.times > 0)
            ]
            if not candidates:
                raise AssertionError(f"Unexpected request: {request.method} {request.url}")
            route = max(candidates, key=lambda r: len(r.prefix))
            if route.times is not None:
                route.times -= 1
            return route.response

    def calls(self, method: str | None = None, prefix: str = "") -> list[HttpRequest]:
        return [
            r for r in self.requests
            if (method is None or r.method == method) and r.url.startswith(prefix)
        ]


def png_bytes(width: int = 640, height: int = 480) -> bytes:
    return (
        b"\x89PNG\r\n\x1a\n"
        + struct.pack(">I", 13)
        + b"IHDR"
        + struct.pack(">II", width, height)
        + b"\x08\x06\x00\x00\x00"
        + b"\x00\x00\x00\x00"
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def http(transport: FakeTransport) -> HttpClient:
    return HttpClient(transport, timeout=5.0)


@pytest.fixture
def store():
    s = DocumentStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def vault(store: DocumentStore) -> CredentialVault:
    return CredentialVault(store)


@pytest.fixture
def files(store: DocumentStore, tmp_path) -> FileStore:
    return FileStore(store, tmp_path / "uploads", BASE_URL)


@pytest.fixture
def base_url() -> str:
    return BASE_URL


@pytest.fixture
def png() -> bytes:
    return png_bytes()


@pytest.fixture
def make_png():
    return png_bytes
