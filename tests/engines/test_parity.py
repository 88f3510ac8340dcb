"""
Tests for mobile/desktop parity: the pure comparisons and the analyzer
fetching both versions through a user-agent aware fake site.
"""

import httpx
import pytest

from seoaudit.engines.mobile.parity import (
    DocumentFeatures,
    ParityAnalyzer,
    compare_counts,
    compare_features,
    compare_sets,
    count_parity,
    parity_band,
    parity_percentage,
)

MOBILE_UA = "test-mobile"
DESKTOP_UA = "test-desktop"


class TestParityPercentage:

    def test_identical_sets(self):
        assert parity_percentage({"a", "b"}, {"a", "b"}) == 100

    def test_symmetric(self):
        mobile, desktop = {"a", "b", "c"}, {"b", "c", "d", "e"}
        assert parity_percentage(mobile, desktop) == parity_percentage(desktop, mobile)

    def test_common_over_larger_side(self):
        # 2 common / max(2, 4)
        assert parity_percentage({"a", "b"}, {"a", "b", "c", "d"}) == 50

    def test_disjoint(self):
        assert parity_percentage({"a"}, {"b"}) == 0

    def test_one_side_empty(self):
        assert parity_percentage(set(), {"a"}) == 0

    def test_both_empty_is_undefined(self):
        assert parity_percentage(set(), set()) is None

    def test_count_parity(self):
        assert count_parity(2, 4) == 50
        assert count_parity(3, 3) == 100
        assert count_parity(0, 0) is None


class TestParityMetric:

    @pytest.mark.parametrize("percentage,band", [(100, "excellent"), (95, "excellent"), (92, "good"), (85, "fair"), (10, "poor")])
    def test_text_bands(self, percentage, band):
        assert parity_band("text", percentage) == band

    def test_undefined_metric_reports_issue(self):
        metric = compare_sets("images", set(), set())
        assert metric.defined is False
        assert metric.percentage == 0
        assert "undefined" in metric.issue
        assert metric.meets_threshold is False

    def test_below_threshold_lists_missing_items(self):
        metric = compare_sets("links", {"https://x/a"}, {"https://x/a", "https://x/b"})
        assert metric.percentage == 50
        assert metric.band == "poor"
        assert metric.missing_on_mobile == ["https://x/b"]
        assert metric.suggestions
        assert "expected at least 90%" in metric.issue

    def test_structured_data_counts(self):
        metric = compare_counts("structured_data", 1, 2)
        assert metric.percentage == 50
        assert metric.common_count == 1
        assert "1 blocks on mobile vs 2 on desktop" in metric.issue


PAGE = """
<html><head>
<link rel="stylesheet" href="/site.css">
<script src="/app.js"></script>
<script type="application/ld+json">{"@type": "Organization", "name": "Acme"}</script>
</head><body>
<h1>Acme widgets</h1>
<p>We build reliable widgets for industrial customers worldwide.</p>
<a href="/products">Products</a> <a href="/about">About</a> <a href="mailto:x@example.com">Mail</a>
<img src="/hero.png" alt="hero">
</body></html>
"""

STRIPPED_MOBILE = """
<html><head></head><body>
<h1>Acme widgets</h1>
<a href="/products">Products</a>
</body></html>
"""


class TestFeatureComparison:

    def test_identical_documents_are_fully_at_parity(self, make_snapshot):
        features = DocumentFeatures.from_snapshot(make_snapshot(PAGE))
        report = compare_features(features, features)
        for metric in report.metrics():
            assert metric.percentage == 100
            assert metric.meets_threshold
        assert report.issues == []

    def test_features_extracted(self, make_snapshot):
        features = DocumentFeatures.from_snapshot(make_snapshot(PAGE))
        assert features.links == {"https://example.com/products", "https://example.com/about"}
        assert features.images == {"https://example.com/hero.png"}
        assert features.scripts == {"https://example.com/app.js"}
        assert features.stylesheets == {"https://example.com/site.css"}
        assert features.structured_data == 1
        assert "widgets" in features.text


class TestParityAnalyzer:

    @staticmethod
    def ua_site(mobile_html: str, desktop_html: str) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            body = mobile_html if request.headers.get("user-agent") == MOBILE_UA else desktop_html
            return httpx.Response(200, headers={"content-type": "text/html"}, text=body)
        return httpx.MockTransport(handler)

    @pytest.mark.asyncio
    async def test_detects_content_missing_on_mobile(self, settings):
        from seoaudit.engines.fetcher import PageFetcher

        transport = self.ua_site(STRIPPED_MOBILE, PAGE)
        async with PageFetcher.build_client(settings, transport) as client:
            analyzer = ParityAnalyzer(PageFetcher(client, settings), MOBILE_UA, DESKTOP_UA)
            report = await analyzer.analyze("https://example.com/")

        assert report.mobile_fetched and report.desktop_fetched
        assert report.links.percentage == 50
        assert report.links.missing_on_mobile == ["https://example.com/about"]
        assert report.images.percentage == 0
        assert report.structured_data.percentage == 0
        assert not report.text.meets_threshold
        assert report.issues

    @pytest.mark.asyncio
    async def test_same_document_for_both_agents(self, site, fetcher):
        site.page("https://example.com/", PAGE)
        report = await ParityAnalyzer(fetcher, MOBILE_UA, DESKTOP_UA).analyze("https://example.com/")
        assert report.text.percentage == 100
        assert report.links.percentage == 100
        assert site.hits("https://example.com/") == 2

    @pytest.mark.asyncio
    async def test_unfetchable_version(self, site, fetcher):
        report = await ParityAnalyzer(fetcher, MOBILE_UA, DESKTOP_UA).analyze("https://example.com/missing")
        assert report.mobile_fetched is False
        assert report.desktop_fetched is False
        assert report.text.defined is False
        assert report.issues == ["Could not fetch the mobile and desktop version of the page"]
