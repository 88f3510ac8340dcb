"""Google PageSpeed Insights integration for lab metrics and embedded field data."""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import BaseModel, Field

from seoaudit.core.config import Settings
from seoaudit.core.errors import FetchError, UpstreamServiceError
from seoaudit.engines.fetcher import PageFetcher

logger = structlog.get_logger(__name__)

LAB_AUDITS = {
    "lcp": ("largest-contentful-paint",),
    "inp": ("interaction-to-next-paint", "experimental-interaction-to-next-paint"),
    "cls": ("cumulative-layout-shift",),
    "fcp": ("first-contentful-paint",),
    "ttfb": ("server-response-time",),
    # lab-only proxy for interactivity; reported, never graded as INP
    "tbt": ("total-blocking-time",),
}

FIELD_METRICS = {
    "lcp": "LARGEST_CONTENTFUL_PAINT_MS",
    "inp": "INTERACTION_TO_NEXT_PAINT",
    "cls": "CUMULATIVE_LAYOUT_SHIFT_SCORE",
    "fcp": "FIRST_CONTENTFUL_PAINT_MS",
    "ttfb": "EXPERIMENTAL_TIME_TO_FIRST_BYTE",
}


class MetricValues(BaseModel):
    lcp: float | None = None    # ms
    inp: float | None = None    # ms
    cls: float | None = None    # unitless
    fcp: float | None = None
    ttfb: float | None = None
    tbt: float | None = None    # ms, lab only

    @property
    def complete(self) -> bool:
        return None not in (self.lcp, self.inp, self.cls)


class PageSpeedReport(BaseModel):
    url: str
    strategy: str
    scores: dict[str, float] = Field(default_factory=dict)
    lab: MetricValues = Field(default_factory=MetricValues)
    field: MetricValues | None = None


class PageSpeedClient:
    """
    Client for the PageSpeed Insights v5 API.

    Usage::

        client = PageSpeedClient(fetcher, settings)
        report = await client.analyze("https://example.com", strategy="mobile")
    """

    def __init__(self, fetcher: PageFetcher, settings: Settings):
        self.fetcher = fetcher
        self.settings = settings

    async def analyze(self, url: str, strategy: str = "mobile") -> PageSpeedReport:
        """
        Raises:
            UpstreamServiceError: non-2xx, timeout or an unparseable body
        """
        params: dict[str, Any] = {
            "url": url,
            "strategy": strategy,
            "category": ["performance", "accessibility", "seo", "best-practices"],
        }
        if self.settings.PAGESPEED_API_KEY:
            params["key"] = self.settings.PAGESPEED_API_KEY

        try:
            response = await self.fetcher.fetch(
                self.settings.PAGESPEED_API_URL,
                params=params,
                timeout=self.settings.PAGESPEED_TIMEOUT_SECONDS,
            )
            data = response.json()
        except FetchError as exc:
            raise UpstreamServiceError("pagespeed", f"HTTP {exc.status_code}: {exc.reason}") from exc
        except ValueError as exc:
            raise UpstreamServiceError("pagespeed", "invalid JSON response") from exc
        if not isinstance(data, dict):
            raise UpstreamServiceError("pagespeed", "invalid JSON response")

        lighthouse = data.get("lighthouseResult", {})
        scores = {
            key: round((cat.get("score") or 0) * 100, 1)
            for key, cat in lighthouse.get("categories", {}).items()
        }
        report = PageSpeedReport(
            url=url,
            strategy=strategy,
            scores=scores,
            lab=self._extract_lab(lighthouse.get("audits", {})),
            field=self._extract_field(data.get("loadingExperience", {})),
        )
        logger.info(
            "PageSpeed analysis complete",
            url=url,
            strategy=strategy,
            performance=scores.get("performance"),
            has_field_data=report.field is not None,
        )
        return report

    @staticmethod
    def _extract_lab(audits: dict[str, Any]) -> MetricValues:
        values: dict[str, float | None] = {}
        for metric, audit_ids in LAB_AUDITS.items():
            values[metric] = None
            for audit_id in audit_ids:
                numeric = audits.get(audit_id, {}).get("numericValue")
                if numeric is not None:
                    values[metric] = float(numeric)
                    break
        return MetricValues(**values)

    @staticmethod
    def _extract_field(loading: dict[str, Any]) -> MetricValues | None:
        metrics = loading.get("metrics") or {}
        if not metrics:
            return None
        values: dict[str, float | None] = {}
        for metric, key in FIELD_METRICS.items():
            percentile = metrics.get(key, {}).get("percentile")
            values[metric] = float(percentile) if percentile is not None else None
        # CLS percentiles are reported multiplied by 100
        if values["cls"] is not None:
            values["cls"] = values["cls"] / 100
        return MetricValues(**values)
