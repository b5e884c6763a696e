"""OpenGraph link previews for platforms that render link cards."""

from __future__ import annotations

import logging
import urllib.parse

from bs4 import BeautifulSoup

from social_publish.models import LinkPreview
from social_publish.transport import HttpClient

logger = logging.getLogger(__name__)


def _meta(soup: BeautifulSoup, **attrs: str) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    content = (tag.get("content") or "").strip()
    return content or None


def parse_preview(html: str, url: str) -> LinkPreview | None:
    """Title, description and image of a page, or None without a title.

    ``og:*`` properties win; ``<title>`` and ``meta name=description`` are the
    fallbacks. A relative ``og:image`` is resolved against ``url``.
    """
    soup = BeautifulSoup(html, "html.parser")
    title = _meta(soup, property="og:title")
    if title is None and soup.title is not None and soup.title.string:
        title = soup.title.string.strip() or None
    if title is None:
        return None

    description = _meta(soup, property="og:description") or _meta(soup, name="description")
    image = _meta(soup, property="og:image")
    if image:
        image = urllib.parse.urljoin(url, image)
    return LinkPreview(url=url, title=title, description=description, image=image)


class LinkPreviewFetcher:
    """Fetches a page and extracts its card; any failure means no card."""

    def __init__(self, http: HttpClient) -> None:
        self._http = http

    async def fetch(self, url: str) -> LinkPreview | None:
        try:
            resp = await self._http.get(url, headers={"Accept": "text/html"})
        except OSError as exc:
            logger.warning("Link preview fetch failed for %s: %s", url, exc)
            return None
        if not resp.ok:
            logger.warning("Link preview fetch returned %d for %s", resp.status, url)
            return None
        preview = parse_preview(resp.text(), url)
        if preview is None:
            logger.info("No link preview metadata at %s", url)
        return preview
