"""Chrome UX Report API: p75 real-user Core Web Vitals per form factor."""

from __future__ import annotations

import structlog

from seoaudit.core.config import Settings
from seoaudit.core.errors import FetchError, UpstreamServiceError
from seoaudit.engines.fetcher import PageFetcher
from seoaudit.integrations.pagespeed import MetricValues

logger = structlog.get_logger(__name__)

FORM_FACTORS = {"mobile": "PHONE", "desktop": "DESKTOP"}

RECORD_METRICS = {
    "lcp": "largest_contentful_paint",
    "inp": "interaction_to_next_paint",
    "cls": "cumulative_layout_shift",
    "fcp": "first_contentful_paint",
    "ttfb": "experimental_time_to_first_byte",
}


class CruxClient:

    def __init__(self, fetcher: PageFetcher, settings: Settings):
        self.fetcher = fetcher
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self.settings.CRUX_API_KEY)

    async def query(self, url: str, device: str) -> MetricValues | None:
        """
        p75 values for the URL, or None when CrUX has no record for it.

        Raises:
            UpstreamServiceError: non-2xx (other than 404), timeout, bad body
        """
        if not self.enabled:
            return None

        try:
            response = await self.fetcher.request(
                "POST",
                self.settings.CRUX_API_URL,
                params={"key": self.settings.CRUX_API_KEY},
                json_body={"url": url, "formFactor": FORM_FACTORS[device]},
            )
        except FetchError as exc:
            raise UpstreamServiceError("crux", exc.reason) from exc

        if response.status_code == 404:
            logger.debug("No CrUX record", url=url, device=device)
            return None
        if not response.ok:
            raise UpstreamServiceError("crux", f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamServiceError("crux", "invalid JSON response") from exc
        if not isinstance(data, dict):
            raise UpstreamServiceError("crux", "invalid JSON response")
        metrics = data.get("record", {}).get("metrics", {})

        values: dict[str, float | None] = {}
        for metric, key in RECORD_METRICS.items():
            p75 = metrics.get(key, {}).get("percentiles", {}).get("p75")
            values[metric] = float(p75) if p75 is not None else None
        return MetricValues(**values)
