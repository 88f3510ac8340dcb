"""
Prioritization Engine

Turns failing and warning checks into actionable recommendations.

One recommendation per non-passing check, keyed "{category}-{check id}".
Priority is copied from the check's impact; business impact is high for
critical checks unless the remediation table says otherwise.

Output: recommendations ordered critical → high → medium → low. The sort is
stable, so checks of equal priority keep their category/check order.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

import structlog

from seoaudit.engines.base import (
    CATEGORY_LABELS,
    IMPACT_RANK,
    AuditCategory,
    AuditCategoryResult,
    CheckStatus,
    Impact,
    SEOCheck,
)
from seoaudit.models.audit import Recommendation, RecommendationSummary

logger = structlog.get_logger(__name__)

SUMMARY_SIZE = 5

DEFAULT_STEPS = [
    "Review the affected URLs listed in the audit report",
    "Implement the recommended fix on the highest-traffic pages first",
    "Validate the fix using Google Search Console or re-crawl",
    "Monitor rankings for affected pages over the next 4-8 weeks",
]


@dataclass(frozen=True)
class Remediation:
    recommendation: str
    impact: str
    effort: str = "medium"
    complexity: str = "medium"
    business_impact: str | None = None
    steps: list[str] = field(default_factory=list)


CWV_REMEDIATION = Remediation(
    recommendation="Optimize Core Web Vitals: reduce LCP, improve INP responsiveness, minimize CLS",
    impact="Core Web Vitals are a confirmed ranking signal and shape user experience",
    effort="high",
    complexity="high",
    business_impact="high",
    steps=[
        "Identify the LCP element and preload it; serve images in modern formats at the right size",
        "Break up long main-thread tasks and defer non-critical JavaScript to improve INP",
        "Reserve space for images, embeds and ads with explicit dimensions to prevent layout shifts",
        "Enable compression and caching on static assets and put them behind a CDN",
        "Re-measure with PageSpeed Insights and watch CrUX field data over the next 28 days",
    ],
)

PARITY_REMEDIATION = Remediation(
    recommendation="Serve the same content, links and markup to mobile and desktop visitors",
    impact="Google indexes the mobile version; content missing there is invisible to search",
    effort="medium",
    complexity="medium",
    steps=[
        "Compare the mobile and desktop renders of the page side by side",
        "Move content hidden behind mobile-only templates into the shared responsive layout",
        "Keep navigation links, images and structured data identical across devices",
        "Verify the mobile render with the URL Inspection tool in Google Search Console",
    ],
)

REMEDIATIONS: dict[str, Remediation] = {
    "robots-txt": Remediation(
        recommendation="Create a robots.txt file with proper crawl directives and sitemap references",
        impact="Essential for search engine crawling and indexing",
        effort="low",
        complexity="low",
        steps=[
            "Create /robots.txt at the site root",
            "Allow crawling of all public sections and disallow admin or search-result paths",
            "Add a Sitemap: line pointing to the XML sitemap",
            "Check the file with the robots.txt report in Google Search Console",
        ],
    ),
    "xml-sitemap": Remediation(
        recommendation="Generate and submit an XML sitemap listing all important pages",
        impact="Helps search engines discover and index your content",
        effort="medium",
        complexity="medium",
        steps=[
            "Generate a sitemap containing every canonical, indexable URL",
            "Keep each sitemap under 50,000 URLs and use a sitemap index above that",
            "Reference the sitemap from robots.txt",
            "Submit the sitemap in Google Search Console and monitor coverage",
        ],
    ),
    "meta-robots": Remediation(
        recommendation="Remove noindex/nofollow directives from pages that should rank",
        impact="A noindex directive removes the page from search results entirely",
        effort="low",
        complexity="low",
        business_impact="high",
        steps=[
            "Check both the meta robots tag and the X-Robots-Tag response header",
            "Remove noindex from templates that render public pages",
            "Request re-indexing of the affected URLs in Google Search Console",
        ],
    ),
    "canonical-tags": Remediation(
        recommendation="Add a self-referencing rel=canonical tag with an absolute URL",
        impact="Consolidates ranking signals onto the preferred URL",
        effort="low",
        complexity="low",
        steps=[
            "Add <link rel=\"canonical\" href=\"...\"> to the <head> of every indexable template",
            "Use absolute HTTPS URLs that match the preferred host",
            "Ensure canonical targets return 200 and are not redirected",
        ],
    ),
    "url-consistency": Remediation(
        recommendation="Redirect every URL variant (protocol, www, trailing slash, case) to one canonical form",
        impact="Variants that resolve independently split link equity and create duplicates",
        effort="medium",
        complexity="medium",
        steps=[
            "Pick one canonical protocol, host and trailing-slash convention",
            "Configure 301 redirects from every other variant at the web server or CDN",
            "Update internal links and canonical tags to the chosen form",
        ],
    ),
    "redirects": Remediation(
        recommendation="Fix redirect loops and keep every redirect to a single hop",
        impact="Loops make pages unreachable; long chains waste crawl budget and dilute signals",
        effort="medium",
        complexity="medium",
        business_impact="high",
        steps=[
            "Trace the redirect chain for the affected URL",
            "Break any loop by pointing the first redirect straight at the final destination",
            "Replace temporary (302/307) redirects with 301s where the move is permanent",
        ],
    ),
    "redirect-chain": Remediation(
        recommendation="Collapse redirect chains so each old URL redirects straight to its destination",
        impact="Every extra hop slows the page and loses crawl budget",
        effort="low",
        complexity="medium",
        steps=[
            "List every hop in the chain",
            "Update the first redirect to point at the final URL",
            "Update internal links to the final URL so no redirect is needed",
        ],
    ),
    "duplicate-content": Remediation(
        recommendation="Consolidate duplicate URL variants with 301 redirects and canonical tags",
        impact="Duplicate versions compete with each other in search results",
        effort="medium",
        complexity="medium",
        steps=[
            "Identify which version of the duplicate should be canonical",
            "Add rel=canonical tags pointing to the preferred URL",
            "Alternatively, implement 301 redirects from duplicate to canonical",
            "Consolidate PageRank by removing internal links to non-canonical versions",
        ],
    ),
    "mobile-cwv": CWV_REMEDIATION,
    "desktop-cwv": CWV_REMEDIATION,
    "viewport-tag": Remediation(
        recommendation='Add viewport meta tag: <meta name="viewport" content="width=device-width, initial-scale=1">',
        impact="Required for mobile-friendly rendering",
        effort="low",
        complexity="low",
        steps=[
            "Add the viewport meta tag to the <head> of the base template",
            "Remove fixed-width layouts that break at narrow widths",
        ],
    ),
    "mobile-friendly": Remediation(
        recommendation="Resolve mobile usability issues: tap targets, font sizes and content width",
        impact="Poor mobile usability hurts mobile rankings and conversions",
        effort="medium",
        complexity="medium",
        business_impact="high",
    ),
    "text-parity": PARITY_REMEDIATION,
    "link-parity": PARITY_REMEDIATION,
    "image-parity": PARITY_REMEDIATION,
    "script-parity": PARITY_REMEDIATION,
    "css-parity": PARITY_REMEDIATION,
    "structured-data-parity": PARITY_REMEDIATION,
    "json-ld": Remediation(
        recommendation="Add JSON-LD structured data describing the page (Organization, WebSite, Product, Article)",
        impact="Structured data makes pages eligible for rich results",
        effort="medium",
        complexity="medium",
        steps=[
            "Choose the schema.org types that match each page template",
            "Emit them as <script type=\"application/ld+json\"> blocks",
            "Validate with the Rich Results Test",
        ],
    ),
    "schema-validation": Remediation(
        recommendation="Fix invalid JSON-LD blocks and add the required properties for each schema type",
        impact="Invalid markup is ignored by search engines",
        effort="low",
        complexity="medium",
    ),
    "rich-results": Remediation(
        recommendation="Complete the properties required for rich result eligibility",
        impact="Rich results increase click-through rate from search",
        effort="medium",
        complexity="medium",
    ),
    "https": Remediation(
        recommendation="Implement HTTPS with a valid SSL certificate and redirect all HTTP traffic",
        impact="HTTPS is a ranking signal and browsers flag plain HTTP as not secure",
        effort="medium",
        complexity="medium",
        business_impact="high",
        steps=[
            "Purchase and install an SSL certificate (Let's Encrypt for free, or premium CA)",
            "Configure web server to redirect HTTP → HTTPS (301)",
            "Update internal links to use HTTPS",
            "Update canonical tags to HTTPS versions",
            "Monitor for mixed content warnings after switch",
        ],
    ),
    "tls-certificate": Remediation(
        recommendation="Renew the TLS certificate and automate renewal before it expires",
        impact="An expired or invalid certificate blocks visitors and crawlers",
        effort="low",
        complexity="low",
        business_impact="high",
        steps=[
            "Renew the certificate with the issuing CA",
            "Automate renewal (for example with certbot or your CDN's managed certificates)",
            "Alert on certificates expiring within 30 days",
        ],
    ),
    "mixed-content": Remediation(
        recommendation="Load every subresource over HTTPS",
        impact="Browsers block or flag insecure resources on HTTPS pages",
        effort="low",
        complexity="low",
    ),
    "security-headers": Remediation(
        recommendation="Add HSTS, X-Frame-Options, X-Content-Type-Options and a Content-Security-Policy",
        impact="Security headers protect visitors and signal a trustworthy site",
        effort="low",
        complexity="medium",
        steps=[
            "Add Strict-Transport-Security with a max-age of at least one year",
            "Add X-Frame-Options: SAMEORIGIN and X-Content-Type-Options: nosniff",
            "Roll out a Content-Security-Policy in report-only mode, then enforce it",
        ],
    ),
    "internal-links": Remediation(
        recommendation="Link to orphaned pages from relevant pages, navigation or hub pages",
        impact="Pages without internal links are hard for crawlers to find and receive no link equity",
        effort="medium",
        complexity="low",
        steps=[
            "Review the orphaned URLs listed in the audit report",
            "Add contextual links from related content and category pages",
            "Remove or noindex orphans that no longer serve a purpose",
        ],
    ),
    "page-depth": Remediation(
        recommendation="Flatten the site architecture so important pages are within 3-4 clicks of the homepage",
        impact="Deep pages are crawled less often and rank worse",
        effort="high",
        complexity="high",
    ),
    "link-distribution": Remediation(
        recommendation="Balance internal links: add links to thinly linked pages and trim link-heavy pages",
        impact="Even link distribution spreads authority across the site",
        effort="medium",
        complexity="low",
    ),
    "broken-internal-links": Remediation(
        recommendation="Fix or remove internal links pointing to broken pages",
        impact="Broken links waste crawl budget and frustrate visitors",
        effort="low",
        complexity="low",
        steps=[
            "Export the broken URLs from the audit report",
            "Update links to point at live pages, or 301 redirect the broken URLs",
            "Set up monitoring to catch future 404s early",
        ],
    ),
    "hreflang": Remediation(
        recommendation="Fix hreflang annotations: valid codes, self references, x-default and return links",
        impact="Broken hreflang serves the wrong language version to international users",
        effort="medium",
        complexity="high",
    ),
    "html-lang": Remediation(
        recommendation="Declare the page language with a lang attribute on the <html> element",
        impact="Helps search engines and assistive technology identify the page language",
        effort="low",
        complexity="low",
    ),
    "faceted-navigation": Remediation(
        recommendation="Control faceted URLs with canonical tags, nofollow on facet links or robots rules",
        impact="Uncontrolled facets generate near-infinite duplicate URLs",
        effort="high",
        complexity="high",
    ),
    "product-schema": Remediation(
        recommendation="Complete Product markup with price, availability, images and reviews",
        impact="Complete product data enables price and rating rich results",
        effort="low",
        complexity="medium",
    ),
    "breadcrumbs": Remediation(
        recommendation="Add breadcrumb navigation with BreadcrumbList structured data",
        impact="Breadcrumbs clarify site hierarchy for users and crawlers",
        effort="low",
        complexity="low",
    ),
    "content-quality": Remediation(
        recommendation="Expand thin content and write naturally instead of repeating keywords",
        impact="Thin or keyword-stuffed pages are demoted by quality systems",
        effort="high",
        complexity="low",
        steps=[
            "Research what users are looking for on the page (search intent)",
            "Expand content by adding FAQs, examples, tables, or detailed explanations",
            "Rewrite repeated phrases so each keyword appears only where it reads naturally",
        ],
    ),
    "hidden-content": Remediation(
        recommendation="Remove hidden text and JavaScript redirects that show crawlers different content",
        impact="Cloaking and sneaky redirects violate search spam policies",
        effort="medium",
        complexity="medium",
        business_impact="high",
    ),
    "link-quality": Remediation(
        recommendation="Qualify paid and untrusted outbound links with rel=sponsored or rel=nofollow",
        impact="Unqualified spammy links can trigger a link spam action",
        effort="low",
        complexity="low",
    ),
    "intrusive-interstitials": Remediation(
        recommendation="Replace full-screen interstitials with banners that leave the content visible",
        impact="Intrusive interstitials are demoted on mobile",
        effort="low",
        complexity="low",
    ),
    "readability": Remediation(
        recommendation="Shorten sentences and prefer plain words to improve readability",
        impact="Readable content keeps visitors engaged",
        effort="medium",
        complexity="low",
    ),
    "module-error": Remediation(
        recommendation="Re-run the audit; if the module keeps failing, check that the site responds to automated requests",
        impact="Part of the audit could not complete, so its score reflects defaults",
        effort="low",
        complexity="low",
    ),
}


def remediation_for(check: SEOCheck) -> Remediation:
    return REMEDIATIONS.get(check.id) or Remediation(
        recommendation=f"Address {check.name} issues identified in the audit",
        impact="Improves overall SEO performance and search visibility",
    )


def build_recommendation(category: AuditCategory, check: SEOCheck) -> Recommendation:
    remediation = remediation_for(check)
    business_impact = remediation.business_impact or ("high" if check.impact == Impact.CRITICAL else "medium")
    return Recommendation(
        id=f"{category.value}-{check.id}",
        category=CATEGORY_LABELS[category],
        title=check.name,
        issue=check.message,
        recommendation=remediation.recommendation,
        impact=remediation.impact,
        priority=check.impact,
        estimated_effort=remediation.effort,
        technical_complexity=remediation.complexity,
        business_impact=business_impact,
        implementation_steps=remediation.steps or DEFAULT_STEPS,
    )


def generate_recommendations(categories: Mapping[AuditCategory, AuditCategoryResult]) -> list[Recommendation]:
    recommendations = [
        build_recommendation(category, c)
        for category, result in categories.items()
        for c in result.checks
        if c.status != CheckStatus.PASS
    ]
    # sorted() is stable
    return sorted(recommendations, key=lambda r: IMPACT_RANK[r.priority], reverse=True)


def summarize_recommendations(recommendations: list[Recommendation]) -> RecommendationSummary:
    return RecommendationSummary(
        top_issues=[
            r for r in recommendations if r.priority in (Impact.CRITICAL, Impact.HIGH)
        ][:SUMMARY_SIZE],
        quick_wins=[
            r for r in recommendations
            if r.estimated_effort == "low" and r.technical_complexity == "low"
        ][:SUMMARY_SIZE],
        technical_debt=[
            r for r in recommendations if r.technical_complexity == "high"
        ][:SUMMARY_SIZE],
    )


class RecommendationGenerator:
    """
    Generates ordered, actionable recommendations from all category results.
    Runs after scoring completes.
    """

    def generate(self, categories: Mapping[AuditCategory, AuditCategoryResult]) -> list[Recommendation]:
        recommendations = generate_recommendations(categories)
        logger.info(
            "Prioritization complete",
            recommendations=len(recommendations),
            critical=sum(1 for r in recommendations if r.priority == Impact.CRITICAL),
        )
        return recommendations
