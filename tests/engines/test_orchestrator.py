"""
Tests for the Audit Orchestrator.
Full runs against a FakeSite; no real network.
"""

import asyncio

import pytest
from structlog.testing import capture_logs

from conftest import PAGESPEED_URL, build_settings, pagespeed_payload
from seoaudit.core.errors import InvalidAuditTarget
from seoaudit.engines.base import AuditCategory, CheckStatus, Impact
from seoaudit.engines.orchestrator import AuditOrchestrator, AuditState
from seoaudit.engines.structured_data.engine import StructuredDataEngine

HOME = """<!doctype html>
<html lang="en"><head>
<title>Acme garden supplies</title>
<meta name="viewport" content="width=device-width, initial-scale=1">
<link rel="canonical" href="https://example.com/">
<script type="application/ld+json">{"@context": "https://schema.org", "@type": "Organization",
 "name": "Acme", "url": "https://example.com/"}</script>
</head><body>
<h1>Acme garden supplies</h1>
<p>Seeds, tools and advice for growing vegetables on a balcony.</p>
<a href="/seeds">Seeds</a> <a href="/tools">Tools</a>
</body></html>
"""

SUBPAGE = '<html lang="en"><body><a href="/">Home</a></body></html>'

ROBOTS = "User-agent: *\nDisallow: /admin\nSitemap: https://example.com/sitemap.xml\n"

SITEMAP = (
    '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
    "<url><loc>https://example.com/</loc></url>"
    "<url><loc>https://example.com/seeds</loc></url>"
    "<url><loc>https://example.com/tools</loc></url>"
    "</urlset>"
)

SECURITY_HEADERS = {
    "strict-transport-security": "max-age=31536000; includeSubDomains",
    "content-security-policy": "default-src 'self'",
    "x-frame-options": "DENY",
    "x-content-type-options": "nosniff",
    "referrer-policy": "strict-origin-when-cross-origin",
}


def well_configured(site):
    site.page("https://example.com/", HOME, headers=SECURITY_HEADERS)
    site.page("https://example.com/seeds", SUBPAGE)
    site.page("https://example.com/tools", SUBPAGE)
    site.text("https://example.com/robots.txt", ROBOTS)
    site.text("https://example.com/sitemap.xml", SITEMAP, "application/xml")
    site.redirect("http://example.com/", "https://example.com/")
    site.redirect("https://www.example.com/", "https://example.com/")
    site.json(PAGESPEED_URL, pagespeed_payload(2000, 150, 0.05))
    return site


@pytest.fixture
def orchestrator(site):
    return AuditOrchestrator(settings=build_settings(), transport=site.transport)


class TestFullAudit:

    @pytest.mark.asyncio
    async def test_well_configured_site(self, site, orchestrator):
        well_configured(site)
        result = await orchestrator.run_audit("https://example.com")

        assert result.url == "https://example.com/"
        assert result.domain == "example.com"
        assert 0 <= result.overall_score <= 100
        assert result.summary.errored_modules == []
        assert orchestrator.state == AuditState.COMPLETE

        crawlability = result.categories.crawlability
        assert crawlability.score == 100
        assert result.categories.core_web_vitals.status == CheckStatus.PASS
        assert len(result.categories.by_category()) == 10

    @pytest.mark.asyncio
    async def test_missing_sitemap_is_top_priority(self, site, orchestrator):
        site.page("https://example.com/", HOME)
        site.json(PAGESPEED_URL, pagespeed_payload(2000, 150, 0.05))

        result = await orchestrator.run_audit("https://example.com/")
        sitemap = next(c for c in result.categories.crawlability.checks if c.id == "xml-sitemap")
        assert sitemap.status == CheckStatus.FAIL

        by_id = {r.id: r for r in result.recommendations}
        assert by_id["crawlability-xml-sitemap"].priority == Impact.CRITICAL
        assert result.recommendations[0].priority == Impact.CRITICAL
        assert result.summary.critical >= 1

    @pytest.mark.asyncio
    async def test_http_and_https_both_serve(self, site, orchestrator):
        well_configured(site)
        site.page("http://example.com/", HOME)

        result = await orchestrator.run_audit("https://example.com/")
        checks = {c.id: c for c in result.categories.canonicalization.checks}
        assert checks["url-consistency"].status == CheckStatus.WARNING
        assert checks["duplicate-content"].status == CheckStatus.FAIL
        assert "canonicalization-duplicate-content" in {r.id for r in result.recommendations}

    @pytest.mark.asyncio
    async def test_repeated_runs_agree(self, site, orchestrator):
        well_configured(site)

        first = await orchestrator.run_audit("https://example.com/")
        second = await orchestrator.run_audit("https://example.com/")

        assert first.overall_score == second.overall_score
        assert {c: r.score for c, r in first.categories.by_category().items()} == \
            {c: r.score for c, r in second.categories.by_category().items()}
        assert [r.id for r in first.recommendations] == [r.id for r in second.recommendations]

    @pytest.mark.asyncio
    async def test_concurrent_runs_keep_their_own_state(self, site, orchestrator):
        well_configured(site)

        with capture_logs() as logs:
            home, seeds = await asyncio.gather(
                orchestrator.run_audit("https://example.com/"),
                orchestrator.run_quick_audit("https://example.com/seeds"),
            )

        assert home.url == "https://example.com/"
        assert seeds.url == "https://example.com/seeds"
        assert orchestrator.state == AuditState.COMPLETE

        for url in (home.url, seeds.url):
            changes = [e for e in logs if e["event"] == "Audit state change" and e["url"] == url]
            assert [e["previous"] for e in changes] == ["initialized", "fetching", "auditing", "aggregating"]
            assert [e["state"] for e in changes] == ["fetching", "auditing", "aggregating", "complete"]

    @pytest.mark.asyncio
    async def test_invalid_target_rejected_before_io(self, site, orchestrator):
        with pytest.raises(InvalidAuditTarget):
            await orchestrator.run_audit("ftp://example.com")
        assert site.requests == []

    @pytest.mark.asyncio
    async def test_unreachable_root_still_scores(self, site, orchestrator):
        result = await orchestrator.run_audit("https://example.com/")
        assert 0 <= result.overall_score <= 100
        assert result.summary.grade in {"A", "B", "C", "D", "F"}


class TestQuickAudit:

    @pytest.mark.asyncio
    async def test_three_categories_only(self, site, orchestrator):
        well_configured(site)
        result = await orchestrator.run_quick_audit("https://example.com/")

        assert set(result.categories.by_category()) == {
            AuditCategory.CRAWLABILITY,
            AuditCategory.CORE_WEB_VITALS,
            AuditCategory.SECURITY_HEADERS,
        }
        assert {r.id.split("-")[0] for r in result.recommendations} <= {
            "crawlability", "core_web_vitals", "security_headers",
        }
        assert site.hits("http://example.com/") == 0


class ExplodingEngine(StructuredDataEngine):

    async def run(self, context):
        raise RuntimeError("parser crashed")


class TestModuleIsolation:

    @pytest.mark.asyncio
    async def test_failing_module_is_isolated(self, site):
        well_configured(site)
        orchestrator = AuditOrchestrator(
            settings=build_settings(),
            transport=site.transport,
            engines={AuditCategory.STRUCTURED_DATA: ExplodingEngine()},
        )

        result = await orchestrator.run_audit("https://example.com/")

        structured = result.categories.structured_data
        assert structured.errored
        assert result.summary.errored_modules == ["structured_data"]
        error_check = next(c for c in structured.checks if c.id == "module-error")
        assert error_check.status == CheckStatus.WARNING
        assert "parser crashed" in error_check.details["error"]

        assert not result.categories.crawlability.errored
        assert result.categories.crawlability.score == 100
        assert orchestrator.state == AuditState.COMPLETE

    @pytest.mark.asyncio
    async def test_failing_default_checks_still_isolated(self, site, make_snapshot, make_context):
        engine = BrokenDefaultsEngine()
        outcome = await engine.execute(make_context(make_snapshot("<html></html>")))

        assert outcome.errored
        assert [c.id for c in outcome.checks] == ["module-error"]
        assert "parser crashed" in outcome.checks[0].details["error"]

        well_configured(site)
        orchestrator = AuditOrchestrator(
            settings=build_settings(),
            transport=site.transport,
            engines={AuditCategory.STRUCTURED_DATA: engine},
        )
        result = await orchestrator.run_audit("https://example.com/")
        assert result.summary.errored_modules == ["structured_data"]
        assert orchestrator.state == AuditState.COMPLETE


class BrokenDefaultsEngine(ExplodingEngine):

    def build_checks(self, results):
        raise KeyError("json_ld")
