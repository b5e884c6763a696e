"""OAuth 1.0a HMAC-SHA1 request signing (RFC 5849).

Builds the ``Authorization: OAuth ...`` header for Twitter. Query-string
parameters of the URL and any form-encoded body parameters take part in the
signature; JSON and multipart bodies do not.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time
import urllib.parse
from typing import Iterable


def percent_encode(value: str) -> str:
    return urllib.parse.quote(value, safe="~-._")


def normalize_url(url: str) -> str:
    parts = urllib.parse.urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    port = parts.port
    if port and not ((scheme == "http" and port == 80) or (scheme == "https" and port == 443)):
        host = f"{host}:{port}"
    return f"{scheme}://{host}{parts.path or '/'}"


def signature_base_string(
    method: str,
    url: str,
    params: Iterable[tuple[str, str]],
) -> str:
    query = urllib.parse.parse_qsl(urllib.parse.urlsplit(url).query, keep_blank_values=True)
    encoded = sorted(
        (percent_encode(k), percent_encode(v)) for k, v in [*query, *params]
    )
    param_string = "&".join(f"{k}={v}" for k, v in encoded)
    return "&".join([
        method.upper(),
        percent_encode(normalize_url(url)),
        percent_encode(param_string),
    ])


def sign(base_string: str, consumer_secret: str, token_secret: str = "") -> str:
    key = f"{percent_encode(consumer_secret)}&{percent_encode(token_secret)}"
    digest = hmac.new(key.encode(), base_string.encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def authorization_header(
    method: str,
    url: str,
    consumer_key: str,
    consumer_secret: str,
    token: str | None = None,
    token_secret: str = "",
    body_params: Iterable[tuple[str, str]] = (),
    extra_oauth: dict[str, str] | None = None,
    nonce: str | None = None,
    timestamp: int | None = None,
) -> str:
    """Build a signed ``OAuth`` Authorization header value.

    Args:
        extra_oauth: additional ``oauth_*`` protocol parameters, such as
            ``oauth_callback`` or ``oauth_verifier``.
        nonce, timestamp: fixed values for reproducible signatures in tests.
    """
    oauth = {
        "oauth_consumer_key": consumer_key,
        "oauth_nonce": nonce or secrets.token_hex(16),
        "oauth_signature_method": "HMAC-SHA1",
        "oauth_timestamp": str(timestamp if timestamp is not None else int(time.time())),
        "oauth_version": "1.0",
    }
    if token:
        oauth["oauth_token"] = token
    oauth.update(extra_oauth or {})

    base = signature_base_string(method, url, [*oauth.items(), *body_params])
    oauth["oauth_signature"] = sign(base, consumer_secret, token_secret)

    header_params = ", ".join(
        f'{percent_encode(k)}="{percent_encode(v)}"' for k, v in sorted(oauth.items())
    )
    return f"OAuth {header_params}"
