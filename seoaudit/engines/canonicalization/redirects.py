"""
Redirect chain tracing.

Follows redirects one hop at a time (the client never follows them itself)
so every intermediate status and Location is visible. Bounded by max_hops;
a revisit of an already-seen resolved URL is reported as a loop.
"""

from __future__ import annotations

from urllib.parse import urljoin

import structlog
from pydantic import BaseModel, ConfigDict, Field, computed_field

from seoaudit.core.errors import FetchError
from seoaudit.engines.fetcher import PageFetcher

logger = structlog.get_logger(__name__)


class RedirectHop(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    status_code: int
    location: str


class RedirectTrace(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_url: str = ""
    chain: list[RedirectHop] = Field(default_factory=list)
    final_url: str = ""
    final_status: int = 0
    has_loop: bool = False
    too_many_redirects: bool = False
    error: str | None = None

    @computed_field
    @property
    def hop_count(self) -> int:
        return len(self.chain)

    @property
    def redirected(self) -> bool:
        return bool(self.chain)


class RedirectTracer:

    def __init__(self, fetcher: PageFetcher, max_hops: int = 5):
        self.fetcher = fetcher
        self.max_hops = max_hops

    async def trace(self, url: str) -> RedirectTrace:
        chain: list[RedirectHop] = []
        seen: set[str] = {url}
        current = url
        has_loop = False
        too_many = False
        final_status = 0

        while True:
            try:
                response = await self.fetcher.request("GET", current, follow_redirects=False)
            except FetchError as exc:
                logger.debug("Redirect trace aborted", url=url, at=current, error=exc.reason)
                return RedirectTrace(
                    start_url=url,
                    chain=chain,
                    final_url=current,
                    final_status=exc.status_code,
                    error=exc.reason,
                )

            location = response.location
            if not response.is_redirect or not location:
                return RedirectTrace(
                    start_url=url,
                    chain=chain,
                    final_url=current,
                    final_status=response.status_code,
                )

            final_status = response.status_code
            if len(chain) >= self.max_hops:
                too_many = True
                break

            next_url = urljoin(current, location)
            chain.append(RedirectHop(url=current, status_code=response.status_code, location=next_url))

            if next_url in seen:
                has_loop = True
                current = next_url
                break

            seen.add(next_url)
            current = next_url

        logger.info(
            "Redirect trace stopped early",
            url=url,
            hops=len(chain),
            loop=has_loop,
            too_many_redirects=too_many,
        )
        return RedirectTrace(
            start_url=url,
            chain=chain,
            final_url=current,
            final_status=final_status,
            has_loop=has_loop,
            too_many_redirects=too_many,
        )
