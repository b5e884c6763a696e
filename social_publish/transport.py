"""Outbound HTTP for the platform adapters and OAuth flows.

Requests go through ``urllib.request``; each blocking call runs in a worker
thread so several platforms can be contacted concurrently. Non-2xx responses
are returned rather than raised, and the caller decides what they mean.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from social_publish.errors import RequestError

logger = logging.getLogger(__name__)

USER_AGENT = "social-publish/0.4"


@dataclass
class HttpRequest:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None
    timeout: float = 30.0


@dataclass
class HttpResponse:
    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))

    def form(self) -> dict[str, str]:
        """Decode an ``application/x-www-form-urlencoded`` body."""
        return dict(urllib.parse.parse_qsl(self.text()))

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


Transport = Callable[[HttpRequest], HttpResponse]


def urllib_transport(request: HttpRequest) -> HttpResponse:
    req = urllib.request.Request(
        request.url,
        data=request.body,
        headers=request.headers,
        method=request.method,
    )
    try:
        with urllib.request.urlopen(req, timeout=request.timeout) as resp:
            return HttpResponse(resp.status, resp.read(), dict(resp.headers.items()))
    except urllib.error.HTTPError as exc:
        headers = dict(exc.headers.items()) if exc.headers else {}
        return HttpResponse(exc.code, exc.read(), headers)


@dataclass
class MultipartFile:
    field_name: str
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


def encode_multipart(
    fields: dict[str, str] | None = None,
    files: list[MultipartFile] | None = None,
) -> tuple[bytes, str]:
    """Encode a ``multipart/form-data`` body; returns (body, content type)."""
    boundary = f"----social-publish-{uuid.uuid4().hex}"
    parts: list[bytes] = []
    for name, value in (fields or {}).items():
        parts.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
            f"{value}\r\n".encode("utf-8")
        )
    for f in files or []:
        parts.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{f.field_name}"; filename="{f.filename}"\r\n'
            f"Content-Type: {f.content_type}\r\n\r\n".encode("utf-8")
        )
        parts.append(f.content)
        parts.append(b"\r\n")
    parts.append(f"--{boundary}--\r\n".encode("utf-8"))
    return b"".join(parts), f"multipart/form-data; boundary={boundary}"


class HttpClient:
    """Async facade over a blocking transport."""

    def __init__(self, transport: Transport | None = None, timeout: float = 30.0) -> None:
        self._transport = transport or urllib_transport
        self.timeout = timeout

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | list[tuple[str, Any]] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        form: dict[str, Any] | list[tuple[str, Any]] | None = None,
        data: bytes | None = None,
        content_type: str | None = None,
    ) -> HttpResponse:
        if params:
            sep = "&" if "?" in url else "?"
            url = f"{url}{sep}{urllib.parse.urlencode(params, doseq=True)}"

        all_headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        all_headers.update(headers or {})

        body = data
        if json_body is not None:
            body = json.dumps(json_body).encode("utf-8")
            all_headers.setdefault("Content-Type", "application/json")
        elif form is not None:
            body = urllib.parse.urlencode(form, doseq=True).encode("utf-8")
            all_headers.setdefault("Content-Type", "application/x-www-form-urlencoded")
        if content_type:
            all_headers["Content-Type"] = content_type

        req = HttpRequest(method=method, url=url, headers=all_headers, body=body, timeout=self.timeout)
        logger.debug("%s %s", method, url.split("?", 1)[0])
        return await asyncio.to_thread(self._transport, req)

    async def get(self, url: str, **kwargs: Any) -> HttpResponse:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> HttpResponse:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> HttpResponse:
        return await self.request("PUT", url, **kwargs)


def ensure_success(
    response: HttpResponse,
    *,
    module: str,
    message: str,
    expected: tuple[int, ...] | None = None,
) -> HttpResponse:
    """Raise ``RequestError`` unless the response status is acceptable."""
    accepted = response.status in expected if expected else response.ok
    if accepted:
        return response
    body = response.text()
    logger.warning("%s (%s): status %d, body: %s", message, module, response.status, body)
    raise RequestError(message, status=response.status, module=module, body=body)
