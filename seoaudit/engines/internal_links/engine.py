"""
Internal Linking Engine

Crawls the site from the audited URL (seeded with sitemap URLs) and reports
orphaned pages, click depth, link distribution and broken internal pages.
The link graph itself is discarded once statistics are derived.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from seoaudit.engines.base import (
    AuditCategory,
    AuditContext,
    AuditEngine,
    CheckStatus,
    Impact,
    SEOCheck,
    check,
)
from seoaudit.engines.crawlability.sitemaps import SitemapParser, fetch_robots
from seoaudit.engines.internal_links.crawler import (
    FEW_LINKS,
    MANY_LINKS,
    RECOMMENDED_MAX_DEPTH,
    LinkGraphStats,
    SiteGraphCrawler,
    compute_link_stats,
)

BROKEN_FAIL_RATIO = 0.10


class InternalLinkingResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    stats: LinkGraphStats = Field(default_factory=LinkGraphStats)
    sitemap_seeds: int = 0


class InternalLinkingEngine(AuditEngine):

    ENGINE_NAME = "internal_linking"
    CATEGORY = AuditCategory.INTERNAL_LINKING
    RESULTS_MODEL = InternalLinkingResults

    async def run(self, context: AuditContext) -> InternalLinkingResults:
        settings = context.settings
        seeds = await self._sitemap_seeds(context)

        crawler = SiteGraphCrawler(
            context.fetcher,
            max_pages=settings.CRAWL_MAX_PAGES,
            max_depth=settings.CRAWL_MAX_DEPTH,
            delay_seconds=settings.CRAWL_DELAY_SECONDS,
        )
        state = await crawler.crawl(context.target.url, seeds=seeds)
        return InternalLinkingResults(stats=compute_link_stats(state), sitemap_seeds=len(seeds))

    async def _sitemap_seeds(self, context: AuditContext) -> list[str]:
        limit = context.settings.CRAWL_SITEMAP_SEEDS
        if limit <= 0:
            return []
        robots = await fetch_robots(context.fetcher, context.target.url)
        parser = SitemapParser(context.fetcher)
        document = await parser.discover(context.target.url, robots.sitemaps if robots else None)
        if document is None:
            return []
        return await parser.collect_urls(document, limit)

    def build_checks(self, results: InternalLinkingResults) -> list[SEOCheck]:
        stats = results.stats
        if not stats.crawled:
            return [
                check(
                    "internal-links",
                    "Internal Link Structure",
                    CheckStatus.WARNING,
                    "Site could not be crawled for internal links",
                    Impact.MEDIUM,
                    details=stats.model_dump(),
                )
            ]

        if stats.broken_pages == 0:
            broken_status = CheckStatus.PASS
        elif stats.broken_pages / max(stats.pages_crawled, 1) > BROKEN_FAIL_RATIO:
            broken_status = CheckStatus.FAIL
        else:
            broken_status = CheckStatus.WARNING

        return [
            check(
                "internal-links",
                "Internal Link Structure",
                CheckStatus.PASS if stats.orphan_count == 0 else CheckStatus.WARNING,
                f"{stats.orphan_count} orphaned pages found",
                Impact.MEDIUM,
                details={
                    "orphaned_pages": stats.orphaned_pages,
                    "orphan_percentage": stats.orphan_percentage,
                    "pages_crawled": stats.pages_crawled,
                    "sitemap_seeds": results.sitemap_seeds,
                },
                actual_value=stats.orphan_count,
            ),
            check(
                "page-depth",
                "Click Depth",
                CheckStatus.PASS if stats.max_depth <= RECOMMENDED_MAX_DEPTH else CheckStatus.WARNING,
                f"Deepest page is {stats.max_depth} clicks from the homepage (average {stats.average_depth})",
                Impact.MEDIUM,
                details={"depth_distribution": stats.depth_distribution, "unreachable_pages": stats.unreachable_pages},
                threshold=RECOMMENDED_MAX_DEPTH,
                actual_value=stats.max_depth,
            ),
            check(
                "link-distribution",
                "Internal Link Distribution",
                (
                    CheckStatus.PASS
                    if stats.pages_with_few_links == 0 and stats.pages_with_many_links == 0
                    else CheckStatus.WARNING
                ),
                (
                    f"{stats.total_internal_links} internal links, "
                    f"{stats.average_links_per_page} per page on average"
                ),
                Impact.LOW,
                details={
                    "pages_with_few_links": stats.pages_with_few_links,
                    "pages_with_many_links": stats.pages_with_many_links,
                },
                threshold=f"{FEW_LINKS}-{MANY_LINKS} links per page",
                actual_value=stats.average_links_per_page,
            ),
            check(
                "broken-internal-links",
                "Broken Internal Pages",
                broken_status,
                (
                    f"{stats.broken_pages} internal pages returned errors"
                    if stats.broken_pages else "All crawled internal pages responded successfully"
                ),
                Impact.MEDIUM,
                details={"broken_urls": stats.broken_urls},
                actual_value=stats.broken_pages,
            ),
        ]
