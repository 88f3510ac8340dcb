"""
Robots.txt and XML sitemap discovery.

Shared by the crawlability checks and the internal-link crawler (which uses
sitemap URLs as extra seeds for orphan detection).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import structlog
from bs4 import BeautifulSoup

from seoaudit.core.errors import FetchError
from seoaudit.engines.fetcher import PageFetcher

logger = structlog.get_logger(__name__)

SITEMAP_PATHS = ("/sitemap.xml", "/sitemap_index.xml")
MAX_CHILD_SITEMAPS = 3


def site_base(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


# ─────────────────────────────────────────────
# Robots.txt
# ─────────────────────────────────────────────

@dataclass
class RobotsFile:
    url: str
    content: str
    size_bytes: int
    user_agents: list[str] = field(default_factory=list)
    disallow: list[str] = field(default_factory=list)
    allow: list[str] = field(default_factory=list)
    sitemaps: list[str] = field(default_factory=list)
    crawl_delay: float | None = None
    parser: RobotFileParser = field(default_factory=RobotFileParser, repr=False)

    @classmethod
    def parse(cls, url: str, content: str) -> RobotsFile:
        robots = cls(url=url, content=content, size_bytes=len(content.encode("utf-8")))
        for raw_line in content.splitlines():
            line = raw_line.split("#", 1)[0].strip()
            if ":" not in line:
                continue
            key, value = line.split(":", 1)
            key = key.strip().lower()
            value = value.strip()
            if key == "user-agent":
                robots.user_agents.append(value)
            elif key == "disallow":
                robots.disallow.append(value)
            elif key == "allow":
                robots.allow.append(value)
            elif key == "sitemap" and value:
                robots.sitemaps.append(value)
            elif key == "crawl-delay":
                try:
                    robots.crawl_delay = float(value)
                except ValueError:
                    pass

        parser = RobotFileParser(url)
        parser.parse(content.splitlines())
        robots.parser = parser
        return robots

    @property
    def has_blocking_rule(self) -> bool:
        return "/" in self.disallow

    def can_fetch(self, url: str, user_agent: str = "*") -> bool:
        return self.parser.can_fetch(user_agent, url)


async def fetch_robots(fetcher: PageFetcher, root_url: str) -> RobotsFile | None:
    robots_url = f"{site_base(root_url)}/robots.txt"
    try:
        response = await fetcher.fetch(robots_url)
    except FetchError as exc:
        logger.debug("Could not fetch robots.txt", url=robots_url, status=exc.status_code)
        return None
    return RobotsFile.parse(robots_url, response.text)


# ─────────────────────────────────────────────
# Sitemaps
# ─────────────────────────────────────────────

@dataclass
class SitemapDocument:
    url: str
    size_bytes: int
    is_index: bool
    url_count: int
    urls: list[str] = field(default_factory=list)
    child_sitemaps: list[str] = field(default_factory=list)


class SitemapParser:
    """Discover and parse XML sitemaps."""

    def __init__(self, fetcher: PageFetcher):
        self.fetcher = fetcher

    async def discover(self, root_url: str, declared: list[str] | None = None) -> SitemapDocument | None:
        """
        First parseable sitemap among those declared in robots.txt and the
        conventional locations, in that order.
        """
        base = site_base(root_url)
        candidates: list[str] = []
        for url in list(declared or []) + [f"{base}{path}" for path in SITEMAP_PATHS]:
            if url not in candidates:
                candidates.append(url)

        for url in candidates:
            document = await self._fetch_sitemap(url)
            if document is not None:
                return document
        return None

    async def collect_urls(self, document: SitemapDocument, limit: int) -> list[str]:
        """Page URLs listed by a sitemap, descending into a few children of an index."""
        if not document.is_index:
            return document.urls[:limit]

        children = await asyncio.gather(
            *[self._fetch_sitemap(url) for url in document.child_sitemaps[:MAX_CHILD_SITEMAPS]]
        )
        urls: list[str] = []
        for child in children:
            if child is None or child.is_index:
                continue
            urls.extend(child.urls)
            if len(urls) >= limit:
                break
        return urls[:limit]

    async def _fetch_sitemap(self, url: str) -> SitemapDocument | None:
        try:
            response = await self.fetcher.fetch(url)
        except FetchError as exc:
            logger.debug("Sitemap fetch failed", url=url, status=exc.status_code)
            return None

        content = response.text
        if "<sitemapindex" in content:
            soup = BeautifulSoup(content, "xml")
            children = [loc.get_text(strip=True) for loc in soup.find_all("loc")]
            return SitemapDocument(
                url=url,
                size_bytes=len(response.content),
                is_index=True,
                url_count=len(children),
                child_sitemaps=children,
            )

        if "<urlset" in content:
            soup = BeautifulSoup(content, "xml")
            entries = soup.find_all("url")
            urls = [loc.get_text(strip=True) for loc in soup.find_all("loc")]
            return SitemapDocument(
                url=url,
                size_bytes=len(response.content),
                is_index=False,
                url_count=len(entries) or len(urls),
                urls=urls,
            )

        logger.debug("Not a sitemap document", url=url)
        return None
