"""
Core Web Vitals Engine

Measures LCP, INP and CLS for mobile and desktop concurrently and grades
them with VitalsEvaluator.

Data preference per device:
  1. Chrome UX Report p75 field data (when a CrUX key is configured)
  2. Field data embedded in the PageSpeed Insights response
  3. PageSpeed Insights lab data

An upstream failure leaves the device unmeasured; it never fails the audit.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field

from seoaudit.core.config import Settings
from seoaudit.core.errors import UpstreamServiceError
from seoaudit.engines.base import (
    AuditCategory,
    AuditContext,
    AuditEngine,
    CheckStatus,
    Impact,
    SEOCheck,
    check,
)
from seoaudit.engines.fetcher import PageFetcher
from seoaudit.engines.vitals.evaluator import (
    GOOD,
    NEEDS_IMPROVEMENT,
    DeviceVitals,
    VitalsEvaluator,
    worst_grade,
)
from seoaudit.integrations.crux import CruxClient
from seoaudit.integrations.pagespeed import MetricValues, PageSpeedClient, PageSpeedReport

logger = structlog.get_logger(__name__)

DEVICES = ("mobile", "desktop")
CWV_THRESHOLD_TEXT = "LCP ≤2.5s, INP ≤200ms, CLS ≤0.1"


class VitalsMeasurement(BaseModel):
    lcp: float | None = None
    inp: float | None = None
    cls: float | None = None
    source: str = "none"
    performance_score: float | None = None


class MetricsSource(Protocol):
    async def measure(self, url: str, device: str) -> VitalsMeasurement | None: ...


class GoogleMetricsSource:
    """CrUX first, then PageSpeed field data, then PageSpeed lab data."""

    def __init__(self, fetcher: PageFetcher, settings: Settings):
        self.crux = CruxClient(fetcher, settings)
        self.pagespeed = PageSpeedClient(fetcher, settings)

    async def measure(self, url: str, device: str) -> VitalsMeasurement | None:
        field_data, report = await asyncio.gather(
            self._crux(url, device),
            self._pagespeed(url, device),
        )
        performance = report.scores.get("performance") if report else None

        if field_data is not None and field_data.complete:
            return self._to_measurement(field_data, "crux", performance)
        if report is not None and report.field is not None and report.field.complete:
            return self._to_measurement(report.field, "pagespeed-field", performance)
        if report is not None:
            return self._to_measurement(report.lab, "pagespeed-lab", performance)
        return None

    async def _crux(self, url: str, device: str) -> MetricValues | None:
        try:
            return await self.crux.query(url, device)
        except UpstreamServiceError as exc:
            logger.warning("CrUX lookup failed", url=url, device=device, error=exc.reason)
            return None

    async def _pagespeed(self, url: str, device: str) -> PageSpeedReport | None:
        try:
            return await self.pagespeed.analyze(url, strategy=device)
        except UpstreamServiceError as exc:
            logger.warning("PageSpeed lookup failed", url=url, device=device, error=exc.reason)
            return None

    @staticmethod
    def _to_measurement(values: MetricValues, source: str, performance: float | None) -> VitalsMeasurement:
        return VitalsMeasurement(
            lcp=values.lcp,
            inp=values.inp,
            cls=values.cls,
            source=source,
            performance_score=performance,
        )


class CoreWebVitalsResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    mobile: DeviceVitals = Field(default_factory=lambda: VitalsEvaluator().unmeasured("mobile"))
    desktop: DeviceVitals = Field(default_factory=lambda: VitalsEvaluator().unmeasured("desktop"))
    overall_grade: str = "poor"


class CoreWebVitalsEngine(AuditEngine):

    ENGINE_NAME = "core_web_vitals"
    CATEGORY = AuditCategory.CORE_WEB_VITALS
    RESULTS_MODEL = CoreWebVitalsResults

    def __init__(self, metrics_source: MetricsSource | None = None):
        super().__init__()
        self.metrics_source = metrics_source
        self.evaluator = VitalsEvaluator()

    async def run(self, context: AuditContext) -> CoreWebVitalsResults:
        source = self.metrics_source or GoogleMetricsSource(context.fetcher, context.settings)
        url = context.snapshot.final_url if context.snapshot.fetched else context.target.url
        mobile, desktop = await asyncio.gather(*[self._measure(source, url, device) for device in DEVICES])
        return CoreWebVitalsResults(
            mobile=mobile,
            desktop=desktop,
            overall_grade=worst_grade([mobile.overall_grade, desktop.overall_grade]),
        )

    async def _measure(self, source: MetricsSource, url: str, device: str) -> DeviceVitals:
        measurement = await source.measure(url, device)
        if measurement is None:
            self.logger.info("Core Web Vitals unavailable", url=url, device=device)
            return self.evaluator.unmeasured(device)
        return self.evaluator.evaluate(
            device,
            measurement.lcp,
            measurement.inp,
            measurement.cls,
            source=measurement.source,
            performance_score=measurement.performance_score,
        )

    def build_checks(self, results: CoreWebVitalsResults) -> list[SEOCheck]:
        return [
            self._device_check("mobile-cwv", "Mobile Core Web Vitals", results.mobile),
            self._device_check("desktop-cwv", "Desktop Core Web Vitals", results.desktop),
        ]

    @staticmethod
    def _device_check(check_id: str, name: str, vitals: DeviceVitals) -> SEOCheck:
        label = vitals.device.capitalize()
        if vitals.overall_grade == GOOD:
            status = CheckStatus.PASS
        elif vitals.overall_grade == NEEDS_IMPROVEMENT:
            status = CheckStatus.WARNING
        else:
            status = CheckStatus.FAIL

        if vitals.measured:
            message = f"{label} CWV grade: {vitals.overall_grade}"
        else:
            message = f"{label} Core Web Vitals could not be measured"

        return check(
            check_id,
            name,
            status,
            message,
            Impact.CRITICAL,
            details=vitals.model_dump(),
            threshold=CWV_THRESHOLD_TEXT,
            actual_value=f"LCP: {vitals.lcp.value}ms, INP: {vitals.inp.value}ms, CLS: {vitals.cls.value}",
        )
