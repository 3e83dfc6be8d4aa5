"""
Web Fetch Service - fetch a page and reduce it to storable text

Used by website-crawl training. Only the page text is kept: scripts, styles
and navigation chrome are dropped, whitespace is collapsed and the result is
capped at ``crawl_max_chars``.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from workmate.config import Settings, settings as default_settings
from workmate.errors import UpstreamFetchError

logger = logging.getLogger(__name__)

_STRIP_TAGS = ["script", "style", "nav", "footer", "header", "noscript"]
_WHITESPACE = re.compile(r"\s+")


@dataclass
class CrawledPage:
    url: str
    title: str
    content: str


def extract_text(html: str, max_chars: int) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_STRIP_TAGS):
        tag.decompose()
    text = soup.get_text(" ")
    return _WHITESPACE.sub(" ", text).strip()[:max_chars]


def extract_title(html: str, fallback: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    if soup.title and soup.title.string and soup.title.string.strip():
        return soup.title.string.strip()
    return fallback


class WebFetcher:
    """Single-attempt page fetcher. Retries belong to the batch orchestrator."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or default_settings
        self._transport = transport

    async def fetch(self, url: str) -> str:
        """Return the raw body of ``url``; non-2xx or network errors raise UpstreamFetchError."""
        try:
            async with httpx.AsyncClient(
                timeout=self.config.crawl_timeout_seconds,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                resp = await client.get(url, headers={"User-Agent": self.config.crawl_user_agent})
        except httpx.HTTPError as e:
            logger.warning(f"Fetch failed for {url}: {e}")
            raise UpstreamFetchError(url, reason=str(e) or e.__class__.__name__) from e

        if not resp.is_success:
            logger.warning(f"Fetch of {url} returned {resp.status_code}")
            raise UpstreamFetchError(url, upstream_status=resp.status_code)
        return resp.text

    async def crawl(self, url: str) -> CrawledPage:
        html = await self.fetch(url)
        content = extract_text(html, self.config.crawl_max_chars)
        title = extract_title(html, url)
        logger.info(f"Crawled {url}: {len(content)} characters")
        return CrawledPage(url=url, title=title, content=content)
