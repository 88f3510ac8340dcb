"""Mobile usability scoring service (opaque upstream)."""

from __future__ import annotations

import structlog
from pydantic import BaseModel, Field

from seoaudit.core.config import Settings
from seoaudit.core.errors import FetchError, UpstreamServiceError
from seoaudit.engines.fetcher import PageFetcher

logger = structlog.get_logger(__name__)


class MobileUsabilityReport(BaseModel):
    score: float = 0.0
    issues: list[str] = Field(default_factory=list)
    blocked: bool = False


class MobileUsabilityClient:

    def __init__(self, fetcher: PageFetcher, settings: Settings):
        self.fetcher = fetcher
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self.settings.MOBILE_USABILITY_URL)

    async def score(self, url: str) -> MobileUsabilityReport | None:
        """
        Returns None when no service is configured.

        Raises:
            UpstreamServiceError: non-2xx, timeout or malformed body
        """
        if not self.enabled:
            return None
        try:
            response = await self.fetcher.request(
                "POST", self.settings.MOBILE_USABILITY_URL, json_body={"url": url}
            )
        except FetchError as exc:
            raise UpstreamServiceError("mobile-usability", exc.reason) from exc
        if not response.ok:
            raise UpstreamServiceError("mobile-usability", f"HTTP {response.status_code}")

        try:
            payload = response.json().get("mobileFriendly", {})
            return MobileUsabilityReport(**payload)
        except (ValueError, TypeError) as exc:
            raise UpstreamServiceError("mobile-usability", "malformed response") from exc
