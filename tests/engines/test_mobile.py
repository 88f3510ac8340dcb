"""
Tests for the Mobile-First Indexing Engine.
"""

import pytest

from conftest import build_settings
from seoaudit.engines.base import AuditContext, AuditTarget, CheckStatus
from seoaudit.engines.fetcher import PageFetcher
from seoaudit.engines.mobile.engine import (
    MobileIndexingEngine,
    ViewportAnalysis,
    analyze_viewport,
    estimate_mobile_friendliness,
)

USABILITY_URL = "https://usability.test/score"

RESPONSIVE_PAGE = """<!doctype html>
<html lang="en"><head>
<meta name="viewport" content="width=device-width, initial-scale=1">
<link rel="stylesheet" href="/css/site.css">
<script src="/js/app.js"></script>
<script type="application/ld+json">{"@type": "Organization", "name": "Acme", "url": "https://example.com/"}</script>
</head><body>
<h1>Acme garden supplies</h1>
<p>Seeds, tools and advice for growing vegetables on a balcony or in a backyard.</p>
<a href="/seeds">Seeds</a> <a href="/tools">Tools</a> <a href="/advice">Advice</a>
<img src="/img/hero.jpg" alt="Garden">
</body></html>
"""


def checks_of(outcome):
    return {c.id: c for c in outcome.checks}


class TestViewport:

    def test_valid_viewport(self, make_snapshot):
        viewport = analyze_viewport(make_snapshot(RESPONSIVE_PAGE))
        assert viewport.present and viewport.valid
        assert viewport.issues == []

    def test_missing_viewport(self, make_snapshot):
        viewport = analyze_viewport(make_snapshot("<html><head></head></html>"))
        assert not viewport.present
        assert viewport.issues == ["Missing viewport meta tag"]

    def test_zoom_disabled(self, make_snapshot):
        viewport = analyze_viewport(make_snapshot(
            '<meta name="viewport" content="width=device-width, maximum-scale=1, user-scalable=no">'
        ))
        assert viewport.valid
        assert "Viewport disables zooming (user-scalable=no)" in viewport.issues
        assert "Viewport limits zoom with maximum-scale=1" in viewport.issues

    def test_fixed_width_viewport(self, make_snapshot):
        viewport = analyze_viewport(make_snapshot('<meta name="viewport" content="width=1024">'))
        assert viewport.present and not viewport.valid


class TestFriendlinessHeuristic:

    def test_responsive_page_scores_full(self, make_snapshot):
        snapshot = make_snapshot(RESPONSIVE_PAGE)
        friendly = estimate_mobile_friendliness(snapshot, analyze_viewport(snapshot))
        assert friendly.score == 100
        assert friendly.source == "heuristic"

    def test_desktop_only_page(self, make_snapshot):
        snapshot = make_snapshot(
            '<html><body style="width: 1200px; font-size: 10px"><embed src="/movie.swf"></body></html>'
        )
        friendly = estimate_mobile_friendliness(snapshot, ViewportAnalysis())
        # 100 - 40 (viewport) - 15 (plugin) - 15 (fixed width) - 10 (font)
        assert friendly.score == 20
        assert len(friendly.issues) == 4


class TestMobileIndexingEngine:

    @pytest.mark.asyncio
    async def test_identical_mobile_and_desktop(self, site, make_snapshot, make_context):
        site.page("https://example.com/", RESPONSIVE_PAGE)
        outcome = await MobileIndexingEngine().execute(make_context(make_snapshot(RESPONSIVE_PAGE)))
        checks = checks_of(outcome)

        assert not outcome.errored
        assert checks["viewport-tag"].status == CheckStatus.PASS
        assert checks["viewport-tag"].message == "Viewport tag is properly configured"
        assert checks["mobile-friendly"].status == CheckStatus.PASS
        for check_id in ("text-parity", "link-parity", "image-parity", "script-parity",
                         "css-parity", "structured-data-parity"):
            assert checks[check_id].status == CheckStatus.PASS, check_id
            assert checks[check_id].actual_value == 100

    @pytest.mark.asyncio
    async def test_missing_viewport_fails(self, site, make_snapshot, make_context):
        html = RESPONSIVE_PAGE.replace('<meta name="viewport" content="width=device-width, initial-scale=1">', "")
        site.page("https://example.com/", html)
        outcome = await MobileIndexingEngine().execute(make_context(make_snapshot(html)))
        checks = checks_of(outcome)
        assert checks["viewport-tag"].status == CheckStatus.FAIL
        assert checks["viewport-tag"].message == "Missing viewport meta tag"
        assert checks["mobile-friendly"].status == CheckStatus.FAIL

    @pytest.mark.asyncio
    async def test_unreachable_page_leaves_parity_undefined(self, make_snapshot, make_context):
        outcome = await MobileIndexingEngine().execute(make_context(make_snapshot(RESPONSIVE_PAGE)))
        checks = checks_of(outcome)
        assert checks["text-parity"].status == CheckStatus.WARNING
        assert outcome.results.parity.mobile_fetched is False

    @pytest.mark.asyncio
    async def test_usability_service_score_is_used(self, site, make_snapshot):
        settings = build_settings(MOBILE_USABILITY_URL=USABILITY_URL)
        site.page("https://example.com/", RESPONSIVE_PAGE)
        site.json(USABILITY_URL, {"mobileFriendly": {"score": 65, "issues": ["Tap targets too close"]}})

        async with PageFetcher.build_client(settings, site.transport) as client:
            context = AuditContext(
                target=AuditTarget.from_url("https://example.com/"),
                snapshot=make_snapshot(RESPONSIVE_PAGE),
                fetcher=PageFetcher(client, settings),
                settings=settings,
            )
            outcome = await MobileIndexingEngine().execute(context)

        friendly = outcome.results.mobile_friendly
        assert friendly.source == "service"
        assert friendly.issues == ["Tap targets too close"]
        assert checks_of(outcome)["mobile-friendly"].status == CheckStatus.FAIL

    @pytest.mark.asyncio
    async def test_usability_service_outage_falls_back(self, site, make_snapshot):
        settings = build_settings(MOBILE_USABILITY_URL=USABILITY_URL)
        site.page("https://example.com/", RESPONSIVE_PAGE)

        async with PageFetcher.build_client(settings, site.transport) as client:
            context = AuditContext(
                target=AuditTarget.from_url("https://example.com/"),
                snapshot=make_snapshot(RESPONSIVE_PAGE),
                fetcher=PageFetcher(client, settings),
                settings=settings,
            )
            outcome = await MobileIndexingEngine().execute(context)

        assert outcome.results.mobile_friendly.source == "heuristic"
        assert not outcome.errored
