"""
Crawlability & Indexability Engine

Checks:
- robots.txt presence, directives, sitemap references, size
- XML sitemap discovery (robots.txt declared, then conventional paths) and limits
- meta robots / X-Robots-Tag directives on the root document
- canonical link tag presence, validity and self-reference
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

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
from seoaudit.engines.fetcher import DocumentSnapshot

ROBOTS_MAX_BYTES = 500 * 1024
SITEMAP_MAX_URLS = 50_000
SITEMAP_MAX_BYTES = 50 * 1024 * 1024

PREVIEW_DIRECTIVE = re.compile(r"(max-snippet|max-image-preview|max-video-preview)\s*:\s*([\w-]+)")


# ─────────────────────────────────────────────
# Results
# ─────────────────────────────────────────────

class RobotsTxtAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    exists: bool = False
    valid: bool = False
    url: str = ""
    size_bytes: int = 0
    user_agents: list[str] = Field(default_factory=list)
    disallow_rules: list[str] = Field(default_factory=list)
    allow_rules: list[str] = Field(default_factory=list)
    sitemaps: list[str] = Field(default_factory=list)
    blocks_root: bool = False
    issues: list[str] = Field(default_factory=list)


class XmlSitemapAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    exists: bool = False
    valid: bool = False
    url: str = ""
    is_index: bool = False
    url_count: int = 0
    size_bytes: int = 0
    declared_in_robots: bool = False
    issues: list[str] = Field(default_factory=list)


class MetaRobotsAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_fetched: bool = False
    present: bool = False
    content: str = ""
    x_robots_tag: str = ""
    noindex: bool = False
    nofollow: bool = False
    noarchive: bool = False
    nosnippet: bool = False
    preview_directives: dict[str, str] = Field(default_factory=dict)
    issues: list[str] = Field(default_factory=list)


class CanonicalTagAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    present: bool = False
    href: str = ""
    valid: bool = False
    self_referencing: bool = False
    multiple: bool = False
    issues: list[str] = Field(default_factory=list)


class CrawlabilityResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    robots_txt: RobotsTxtAnalysis = Field(default_factory=RobotsTxtAnalysis)
    xml_sitemap: XmlSitemapAnalysis = Field(default_factory=XmlSitemapAnalysis)
    meta_robots: MetaRobotsAnalysis = Field(default_factory=MetaRobotsAnalysis)
    canonical_tags: CanonicalTagAnalysis = Field(default_factory=CanonicalTagAnalysis)


# ─────────────────────────────────────────────
# Document level analysis (no network)
# ─────────────────────────────────────────────

def analyze_meta_robots(snapshot: DocumentSnapshot) -> MetaRobotsAnalysis:
    meta_values = snapshot.meta_all("robots") + snapshot.meta_all("googlebot")
    content = ", ".join(v for v in meta_values if v)
    header = snapshot.header("x-robots-tag")
    combined = f"{content}, {header}".lower()
    directives = {d.strip() for d in re.split(r"[,\s]+", combined) if d.strip()}

    noindex = "noindex" in directives or "none" in directives
    nofollow = "nofollow" in directives or "none" in directives
    issues = []
    if noindex:
        issues.append("Page is blocked from indexing (noindex)")
    if nofollow:
        issues.append("Links on this page are not followed (nofollow)")

    return MetaRobotsAnalysis(
        document_fetched=snapshot.fetched,
        present=bool(meta_values),
        content=content,
        x_robots_tag=header,
        noindex=noindex,
        nofollow=nofollow,
        noarchive="noarchive" in directives,
        nosnippet="nosnippet" in directives,
        preview_directives=dict(PREVIEW_DIRECTIVE.findall(combined)),
        issues=issues,
    )


def _comparable(url: str) -> str:
    parsed = urlparse(url)
    path = parsed.path.rstrip("/") or "/"
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{path}"


def analyze_canonical(snapshot: DocumentSnapshot) -> CanonicalTagAnalysis:
    tags = [t for t in snapshot.link_tags("canonical") if t.get("href", "").strip()]
    if not tags:
        return CanonicalTagAnalysis()

    href = snapshot.resolve(tags[0]["href"])
    parsed = urlparse(href)
    issues = []
    valid = parsed.scheme in ("http", "https") and bool(parsed.netloc)
    if not valid:
        issues.append(f"Canonical URL is not an absolute http(s) URL: {tags[0]['href']}")
    multiple = len(tags) > 1
    if multiple:
        issues.append(f"{len(tags)} canonical tags found; search engines may ignore all of them")
        valid = False
    self_referencing = valid and _comparable(href) == _comparable(snapshot.final_url)
    if valid and not self_referencing:
        issues.append(f"Canonical points to a different URL: {href}")

    return CanonicalTagAnalysis(
        present=True,
        href=href,
        valid=valid,
        self_referencing=self_referencing,
        multiple=multiple,
        issues=issues,
    )


# ─────────────────────────────────────────────
# Engine
# ─────────────────────────────────────────────

class CrawlabilityEngine(AuditEngine):

    ENGINE_NAME = "crawlability"
    CATEGORY = AuditCategory.CRAWLABILITY
    RESULTS_MODEL = CrawlabilityResults

    async def run(self, context: AuditContext) -> CrawlabilityResults:
        robots = await self._analyze_robots(context)
        sitemap = await self._analyze_sitemap(context, robots.sitemaps)
        return CrawlabilityResults(
            robots_txt=robots,
            xml_sitemap=sitemap,
            meta_robots=analyze_meta_robots(context.snapshot),
            canonical_tags=analyze_canonical(context.snapshot),
        )

    async def _analyze_robots(self, context: AuditContext) -> RobotsTxtAnalysis:
        robots = await fetch_robots(context.fetcher, context.target.url)
        if robots is None:
            return RobotsTxtAnalysis(issues=["No robots.txt file found"])

        issues = []
        if not robots.user_agents:
            issues.append("No user-agent directives found")
        if not robots.sitemaps:
            issues.append("No sitemap references found")
        if robots.size_bytes > ROBOTS_MAX_BYTES:
            issues.append(f"robots.txt is larger than {ROBOTS_MAX_BYTES // 1024}KB")
        blocks_root = not robots.can_fetch(context.target.url, "Googlebot")
        if blocks_root:
            issues.append("robots.txt blocks search engines from the audited URL")

        return RobotsTxtAnalysis(
            exists=True,
            valid=not issues,
            url=robots.url,
            size_bytes=robots.size_bytes,
            user_agents=robots.user_agents,
            disallow_rules=robots.disallow,
            allow_rules=robots.allow,
            sitemaps=robots.sitemaps,
            blocks_root=blocks_root,
            issues=issues,
        )

    async def _analyze_sitemap(self, context: AuditContext, declared: list[str]) -> XmlSitemapAnalysis:
        document = await SitemapParser(context.fetcher).discover(context.target.url, declared)
        if document is None:
            return XmlSitemapAnalysis(issues=["No XML sitemap found"])

        issues = []
        if document.url_count == 0:
            issues.append("Sitemap contains no URLs")
        if document.url_count > SITEMAP_MAX_URLS:
            issues.append(f"Sitemap lists {document.url_count} URLs (limit {SITEMAP_MAX_URLS})")
        if document.size_bytes > SITEMAP_MAX_BYTES:
            issues.append("Sitemap exceeds 50MB uncompressed")

        return XmlSitemapAnalysis(
            exists=True,
            valid=not issues,
            url=document.url,
            is_index=document.is_index,
            url_count=document.url_count,
            size_bytes=document.size_bytes,
            declared_in_robots=document.url in declared,
            issues=issues,
        )

    def build_checks(self, results: CrawlabilityResults) -> list[SEOCheck]:
        robots = results.robots_txt
        sitemap = results.xml_sitemap
        meta = results.meta_robots
        canonical = results.canonical_tags

        if not robots.exists:
            robots_status, robots_message = CheckStatus.FAIL, "No robots.txt file found"
        elif robots.valid:
            robots_status, robots_message = CheckStatus.PASS, "Robots.txt is valid"
        else:
            robots_status, robots_message = CheckStatus.WARNING, f"Issues found: {', '.join(robots.issues)}"

        if not sitemap.exists:
            sitemap_status, sitemap_message = CheckStatus.FAIL, "No XML sitemap found"
        else:
            sitemap_status = CheckStatus.PASS if sitemap.valid else CheckStatus.WARNING
            sitemap_message = f"Sitemap found with {sitemap.url_count} URLs"

        if not meta.document_fetched:
            meta_status, meta_message = CheckStatus.WARNING, "Root document could not be fetched"
        elif meta.noindex:
            meta_status, meta_message = CheckStatus.FAIL, "Page is set to noindex"
        elif meta.nofollow:
            meta_status, meta_message = CheckStatus.WARNING, "Page links are set to nofollow"
        else:
            meta_status, meta_message = CheckStatus.PASS, "Page is indexable"

        if not canonical.present:
            canonical_status, canonical_message = CheckStatus.WARNING, "No canonical tag found"
        elif canonical.valid:
            canonical_status, canonical_message = CheckStatus.PASS, "Canonical tag is properly implemented"
        else:
            canonical_status, canonical_message = CheckStatus.WARNING, "Canonical tag has issues"

        return [
            check("robots-txt", "Robots.txt File", robots_status, robots_message, Impact.HIGH,
                  details=robots.model_dump(exclude={"user_agents", "allow_rules"})),
            check("xml-sitemap", "XML Sitemap", sitemap_status, sitemap_message, Impact.CRITICAL,
                  details=sitemap.model_dump(),
                  threshold=SITEMAP_MAX_URLS, actual_value=sitemap.url_count),
            check("meta-robots", "Meta Robots Directives", meta_status, meta_message, Impact.CRITICAL,
                  details=meta.model_dump()),
            check("canonical-tags", "Canonical Tags", canonical_status, canonical_message, Impact.MEDIUM,
                  details=canonical.model_dump()),
        ]
