"""
Site graph crawler.

Depth-first, page-by-page traversal of same-host links from a root URL.
All mutable crawl data lives in an explicit CrawlState that is threaded
through the traversal, so a crawl is re-entrant and testable in isolation.

Page identity is origin + path: query strings and fragments are dropped
and an empty path becomes "/".
"""

from __future__ import annotations

import asyncio
from collections import Counter, deque
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlparse

import structlog
from pydantic import BaseModel, ConfigDict, Field

from seoaudit.core.errors import FetchError
from seoaudit.engines.fetcher import DocumentSnapshot, PageFetcher, anchor_hrefs

logger = structlog.get_logger(__name__)

FEW_LINKS = 3
MANY_LINKS = 100
RECOMMENDED_MAX_DEPTH = 4
SAMPLE_SIZE = 20


def normalize_page_url(url: str) -> str | None:
    """origin + path, or None for anything that is not http(s)."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    return f"{parsed.scheme}://{parsed.netloc.lower()}{parsed.path or '/'}"


@dataclass
class CrawlState:
    root: str
    host: str
    visited: dict[str, int] = field(default_factory=dict)        # url -> depth it was crawled at
    graph: dict[str, set[str]] = field(default_factory=dict)     # url -> outbound same-host urls
    failed: dict[str, int] = field(default_factory=dict)         # url -> status (0 transport, 408 timeout)
    requests: int = 0

    def outbound_links(self, snapshot: DocumentSnapshot) -> set[str]:
        links = set()
        for href in anchor_hrefs(snapshot.soup):
            normalized = normalize_page_url(urljoin(snapshot.final_url, href))
            if normalized and (urlparse(normalized).hostname or "") == self.host:
                links.add(normalized)
        return links


class SiteGraphCrawler:
    """
    Bounded crawler: never visits more than max_pages pages and never
    recurses deeper than max_depth links from the root.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        max_pages: int = 100,
        max_depth: int = 3,
        delay_seconds: float = 0.1,
    ):
        self.fetcher = fetcher
        self.max_pages = max_pages
        self.max_depth = max_depth
        self.delay_seconds = delay_seconds

    async def crawl(self, root_url: str, seeds: list[str] | None = None) -> CrawlState:
        """
        Crawl from root_url, then visit seed URLs (typically from the XML
        sitemap) that link traversal never reached. Seeds are crawled at
        max_depth, so their edges are recorded but not followed.
        """
        root = normalize_page_url(root_url)
        if root is None:
            raise ValueError(f"Cannot crawl non-HTTP URL {root_url!r}")

        state = CrawlState(root=root, host=urlparse(root).hostname or "")
        await self._visit(state, root, 0)

        for seed in seeds or []:
            normalized = normalize_page_url(seed)
            if normalized is None or urlparse(normalized).hostname != state.host:
                continue
            if len(state.visited) >= self.max_pages:
                break
            await self._visit(state, normalized, self.max_depth)

        logger.info(
            "Crawl complete",
            root=root,
            visited=len(state.visited),
            failed=len(state.failed),
            requests=state.requests,
        )
        return state

    async def _visit(self, state: CrawlState, url: str, depth: int) -> None:
        if depth > self.max_depth or url in state.visited or len(state.visited) >= self.max_pages:
            return

        # Marked before the fetch so cycles terminate
        state.visited[url] = depth
        links = await self._fetch_links(state, url)
        if links is None:
            return
        state.graph[url] = links

        if depth < self.max_depth:
            for link in sorted(links):
                if len(state.visited) >= self.max_pages:
                    break
                await self._visit(state, link, depth + 1)

    async def _fetch_links(self, state: CrawlState, url: str) -> set[str] | None:
        if state.requests and self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        state.requests += 1

        try:
            snapshot = await self.fetcher.fetch_document(url)
        except FetchError as exc:
            logger.debug("Crawl page failed", url=url, status=exc.status_code, reason=exc.reason)
            state.failed[url] = exc.status_code
            return None
        except Exception as exc:
            logger.warning("Crawl page could not be parsed", url=url, error=str(exc))
            state.failed[url] = 0
            return None

        if state.root == url and not state.graph:
            # Links are compared against the host the root actually resolved to
            final_host = urlparse(snapshot.final_url).hostname
            if final_host and final_host != state.host:
                state.host = final_host
        return state.outbound_links(snapshot)


# ─────────────────────────────────────────────
# Graph statistics
# ─────────────────────────────────────────────

class LinkGraphStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    crawled: bool = False
    pages_crawled: int = 0
    pages_fetched: int = 0
    max_depth: int = 0
    average_depth: float = 0.0
    depth_distribution: dict[int, int] = Field(default_factory=dict)
    unreachable_pages: int = 0
    orphaned_pages: list[str] = Field(default_factory=list)
    orphan_count: int = 0
    orphan_percentage: int = 0
    total_internal_links: int = 0
    average_links_per_page: float = 0.0
    pages_with_few_links: int = 0
    pages_with_many_links: int = 0
    broken_pages: int = 0
    broken_urls: list[str] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


def page_depths(state: CrawlState) -> dict[str, int]:
    """BFS distance from the root over the recorded graph, for visited pages only."""
    depths = {state.root: 0}
    queue = deque([state.root])
    while queue:
        url = queue.popleft()
        for link in sorted(state.graph.get(url, ())):
            if link not in depths and link in state.visited:
                depths[link] = depths[url] + 1
                queue.append(link)
    return depths


def find_orphans(state: CrawlState) -> list[str]:
    """Visited, non-root, successfully fetched pages no *other* page links to."""
    linked: set[str] = set()
    for source, links in state.graph.items():
        linked.update(link for link in links if link != source)
    return [
        url for url in state.visited
        if url != state.root and url not in state.failed and url not in linked
    ]


def compute_link_stats(state: CrawlState) -> LinkGraphStats:
    depths = page_depths(state)
    depth_values = list(depths.values())
    max_depth = max(depth_values, default=0)
    orphans = find_orphans(state)

    link_counts = [len(links) for links in state.graph.values()]
    total_links = sum(link_counts)
    few = sum(1 for count in link_counts if count < FEW_LINKS)
    many = sum(1 for count in link_counts if count > MANY_LINKS)

    issues = []
    recommendations = []
    if max_depth > RECOMMENDED_MAX_DEPTH:
        issues.append(f"Maximum page depth is {max_depth} (recommended: ≤{RECOMMENDED_MAX_DEPTH})")
        recommendations.append("Reduce page depth by improving navigation structure")
    if orphans:
        issues.append(f"{len(orphans)} orphaned pages found")
        recommendations.append("Add internal links to orphaned pages")
    if few:
        issues.append(f"{few} pages have fewer than {FEW_LINKS} internal links")
        recommendations.append("Add more relevant internal links to pages with few links")
    if many:
        issues.append(f"{many} pages have more than {MANY_LINKS} internal links")
        recommendations.append("Reduce excessive internal links on link-heavy pages")
    if state.failed:
        issues.append(f"{len(state.failed)} internal pages could not be fetched")
        recommendations.append("Fix or remove links to broken internal pages")

    visited = len(state.visited)
    return LinkGraphStats(
        crawled=bool(state.graph),
        pages_crawled=visited,
        pages_fetched=len(state.graph),
        max_depth=max_depth,
        average_depth=round(sum(depth_values) / len(depth_values), 1) if depth_values else 0.0,
        depth_distribution=dict(sorted(Counter(depth_values).items())),
        unreachable_pages=sum(1 for url in state.graph if url not in depths),
        orphaned_pages=orphans[:SAMPLE_SIZE],
        orphan_count=len(orphans),
        orphan_percentage=round(len(orphans) / visited * 100) if visited else 0,
        total_internal_links=total_links,
        average_links_per_page=round(total_links / len(link_counts), 1) if link_counts else 0.0,
        pages_with_few_links=few,
        pages_with_many_links=many,
        broken_pages=len(state.failed),
        broken_urls=sorted(state.failed)[:SAMPLE_SIZE],
        issues=issues,
        recommendations=recommendations,
    )
