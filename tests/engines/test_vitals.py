"""
Tests for Core Web Vitals grading, the Google metrics source and the engine.
"""

import pytest

from conftest import PAGESPEED_URL, build_settings, pagespeed_payload
from seoaudit.core.errors import UpstreamServiceError
from seoaudit.engines.base import CheckStatus, Impact
from seoaudit.engines.fetcher import PageFetcher
from seoaudit.engines.vitals.engine import CoreWebVitalsEngine, GoogleMetricsSource, VitalsMeasurement
from seoaudit.engines.vitals.evaluator import (
    GOOD,
    NEEDS_IMPROVEMENT,
    POOR,
    VitalsEvaluator,
    grade_device,
    grade_metric,
    worst_grade,
)
from seoaudit.integrations.crux import CruxClient
from seoaudit.integrations.pagespeed import PageSpeedClient

CRUX_URL = "https://crux.test/records:queryRecord"


class StaticMetrics:
    """Metrics source returning fixed values per device."""

    def __init__(self, **by_device):
        self.by_device = by_device
        self.calls = []

    async def measure(self, url, device):
        self.calls.append((url, device))
        return self.by_device.get(device)


class TestGrading:

    @pytest.mark.parametrize("metric,value,grade", [
        ("lcp", 2500, GOOD),
        ("lcp", 2501, NEEDS_IMPROVEMENT),
        ("lcp", 4000, NEEDS_IMPROVEMENT),
        ("lcp", 4001, POOR),
        ("inp", 200, GOOD),
        ("inp", 500, NEEDS_IMPROVEMENT),
        ("inp", 501, POOR),
        ("cls", 0.1, GOOD),
        ("cls", 0.25, NEEDS_IMPROVEMENT),
        ("cls", 0.3, POOR),
        ("cls", None, POOR),
    ])
    def test_metric_thresholds(self, metric, value, grade):
        assert grade_metric(metric, value) == grade

    @pytest.mark.parametrize("grades,overall", [
        ([GOOD, GOOD, GOOD], GOOD),
        ([GOOD, GOOD, POOR], NEEDS_IMPROVEMENT),
        ([GOOD, NEEDS_IMPROVEMENT, NEEDS_IMPROVEMENT], POOR),
        ([POOR, POOR, POOR], POOR),
    ])
    def test_device_grade(self, grades, overall):
        assert grade_device(grades) == overall

    def test_worst_grade(self):
        assert worst_grade([GOOD, NEEDS_IMPROVEMENT]) == NEEDS_IMPROVEMENT
        assert worst_grade([]) == POOR

    def test_unmeasured_device(self):
        vitals = VitalsEvaluator().unmeasured("mobile")
        assert vitals.measured is False
        assert vitals.source == "none"
        assert vitals.overall_grade == POOR


class TestCoreWebVitalsEngine:

    @pytest.mark.asyncio
    async def test_good_vitals_pass(self, make_snapshot, make_context):
        good = VitalsMeasurement(lcp=2000, inp=150, cls=0.05, source="pagespeed-lab")
        source = StaticMetrics(mobile=good, desktop=good)

        outcome = await CoreWebVitalsEngine(metrics_source=source).execute(make_context(make_snapshot("<html></html>")))
        checks = {c.id: c for c in outcome.checks}

        assert checks["mobile-cwv"].status == CheckStatus.PASS
        assert checks["desktop-cwv"].status == CheckStatus.PASS
        assert checks["mobile-cwv"].impact == Impact.CRITICAL
        assert checks["mobile-cwv"].message == "Mobile CWV grade: good"
        assert outcome.results.overall_grade == GOOD
        assert sorted(device for _, device in source.calls) == ["desktop", "mobile"]

    @pytest.mark.asyncio
    async def test_mixed_devices(self, make_snapshot, make_context):
        source = StaticMetrics(
            mobile=VitalsMeasurement(lcp=3000, inp=150, cls=0.05, source="crux"),
            desktop=VitalsMeasurement(lcp=1000, inp=100, cls=0.01, source="crux"),
        )
        outcome = await CoreWebVitalsEngine(metrics_source=source).execute(make_context(make_snapshot("<html></html>")))
        checks = {c.id: c for c in outcome.checks}
        assert checks["mobile-cwv"].status == CheckStatus.WARNING
        assert checks["desktop-cwv"].status == CheckStatus.PASS
        assert outcome.results.overall_grade == NEEDS_IMPROVEMENT

    @pytest.mark.asyncio
    async def test_unavailable_metrics_fail_without_error(self, make_snapshot, make_context):
        outcome = await CoreWebVitalsEngine(metrics_source=StaticMetrics()).execute(
            make_context(make_snapshot("<html></html>"))
        )
        assert not outcome.errored
        for c in outcome.checks:
            assert c.status == CheckStatus.FAIL
            assert "could not be measured" in c.message

    @pytest.mark.asyncio
    async def test_pagespeed_lab_data(self, site, make_snapshot, make_context):
        site.json(PAGESPEED_URL, pagespeed_payload(lcp=2000, inp=150, cls=0.05))
        outcome = await CoreWebVitalsEngine().execute(make_context(make_snapshot("<html></html>")))

        mobile = outcome.results.mobile
        assert mobile.measured
        assert mobile.source == "pagespeed-lab"
        assert mobile.lcp.value == 2000
        assert mobile.performance_score == 95.0
        assert site.hits(PAGESPEED_URL) == 2

    @pytest.mark.asyncio
    async def test_pagespeed_outage_leaves_devices_unmeasured(self, make_snapshot, make_context):
        outcome = await CoreWebVitalsEngine().execute(make_context(make_snapshot("<html></html>")))
        assert not outcome.errored
        assert outcome.results.mobile.measured is False
        assert outcome.results.desktop.measured is False


class TestGoogleClients:

    @pytest.mark.asyncio
    async def test_pagespeed_prefers_field_data(self, site, fetcher, settings):
        payload = pagespeed_payload(lcp=5000, inp=600, cls=0.4)
        payload["loadingExperience"] = {
            "metrics": {
                "LARGEST_CONTENTFUL_PAINT_MS": {"percentile": 2100},
                "INTERACTION_TO_NEXT_PAINT": {"percentile": 180},
                "CUMULATIVE_LAYOUT_SHIFT_SCORE": {"percentile": 5},
            }
        }
        site.json(PAGESPEED_URL, payload)

        report = await PageSpeedClient(fetcher, settings).analyze("https://example.com/")
        assert report.field.cls == 0.05
        assert report.lab.lcp == 5000

        measurement = await GoogleMetricsSource(fetcher, settings).measure("https://example.com/", "mobile")
        assert measurement.source == "pagespeed-field"
        assert measurement.lcp == 2100

    @pytest.mark.asyncio
    async def test_crux_first_when_configured(self, site):
        settings = build_settings(CRUX_API_KEY="crux-key", CRUX_API_URL=CRUX_URL)
        site.json(CRUX_URL, {
            "record": {
                "metrics": {
                    "largest_contentful_paint": {"percentiles": {"p75": 1800}},
                    "interaction_to_next_paint": {"percentiles": {"p75": 90}},
                    "cumulative_layout_shift": {"percentiles": {"p75": "0.02"}},
                }
            }
        })
        site.json(PAGESPEED_URL, pagespeed_payload(lcp=9000, inp=900, cls=0.9))

        async with PageFetcher.build_client(settings, site.transport) as client:
            fetcher = PageFetcher(client, settings)
            assert CruxClient(fetcher, settings).enabled
            measurement = await GoogleMetricsSource(fetcher, settings).measure("https://example.com/", "desktop")

        assert measurement.source == "crux"
        assert measurement.cls == 0.02
        assert measurement.performance_score == 95.0

        crux_request = next(r for r in site.requests if site.key(r.url) == site.key(CRUX_URL))
        assert crux_request.method == "POST"
        assert crux_request.url.params["key"] == "crux-key"

    @pytest.mark.asyncio
    async def test_crux_disabled_without_key(self, fetcher, settings):
        assert await CruxClient(fetcher, settings).query("https://example.com/", "mobile") is None

    @pytest.mark.asyncio
    async def test_blocking_time_is_not_reported_as_inp(self, site, fetcher, settings, make_snapshot, make_context):
        site.json(PAGESPEED_URL, {
            "lighthouseResult": {
                "categories": {"performance": {"score": 0.99}},
                "audits": {
                    "largest-contentful-paint": {"numericValue": 1000},
                    "cumulative-layout-shift": {"numericValue": 0.01},
                    "total-blocking-time": {"numericValue": 150},
                },
            },
        })

        report = await PageSpeedClient(fetcher, settings).analyze("https://example.com/")
        assert report.lab.tbt == 150.0
        assert report.lab.inp is None
        assert not report.lab.complete

        outcome = await CoreWebVitalsEngine().execute(make_context(make_snapshot("<html></html>")))
        mobile = outcome.results.mobile
        assert mobile.inp.value is None
        assert not mobile.measured
        assert mobile.overall_grade != GOOD
        assert all(c.status != CheckStatus.PASS for c in outcome.checks)

    @pytest.mark.asyncio
    async def test_pagespeed_non_object_body(self, site, fetcher, settings):
        site.json(PAGESPEED_URL, [1, 2])
        with pytest.raises(UpstreamServiceError, match="invalid JSON response"):
            await PageSpeedClient(fetcher, settings).analyze("https://example.com/")

        assert await GoogleMetricsSource(fetcher, settings).measure("https://example.com/", "mobile") is None

    @pytest.mark.asyncio
    async def test_crux_non_object_body(self, site):
        settings = build_settings(CRUX_API_KEY="crux-key", CRUX_API_URL=CRUX_URL)
        site.text(CRUX_URL, "null", "application/json")
        site.json(PAGESPEED_URL, pagespeed_payload(lcp=2000, inp=150, cls=0.05))

        async with PageFetcher.build_client(settings, site.transport) as client:
            fetcher = PageFetcher(client, settings)
            with pytest.raises(UpstreamServiceError, match="invalid JSON response"):
                await CruxClient(fetcher, settings).query("https://example.com/", "mobile")
            measurement = await GoogleMetricsSource(fetcher, settings).measure("https://example.com/", "mobile")

        assert measurement.source == "pagespeed-lab"

