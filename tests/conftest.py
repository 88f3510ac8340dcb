"""
Shared fixtures.
Every network call goes through httpx.MockTransport backed by a FakeSite.
"""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest
import pytest_asyncio

from seoaudit.core.config import Settings
from seoaudit.engines.base import AuditContext, AuditTarget
from seoaudit.engines.fetcher import DocumentSnapshot, FetchResponse, PageFetcher

PAGESPEED_URL = "https://pagespeed.test/runPagespeed"


class FakeSite:
    """
    Routes keyed by scheme://host/path (query ignored).
    Unknown URLs answer 404. Every request is recorded.
    """

    def __init__(self):
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    @staticmethod
    def key(url: str | httpx.URL) -> str:
        url = httpx.URL(str(url))
        return f"{url.scheme}://{url.host}{url.path or '/'}"

    def page(self, url: str, html: str = "", status: int = 200, headers: dict | None = None) -> FakeSite:
        merged = {"content-type": "text/html; charset=utf-8", **(headers or {})}
        self.routes[self.key(url)] = lambda request: httpx.Response(status, headers=merged, text=html)
        return self

    def text(self, url: str, body: str, content_type: str = "text/plain") -> FakeSite:
        self.routes[self.key(url)] = lambda request: httpx.Response(
            200, headers={"content-type": content_type}, text=body
        )
        return self

    def redirect(self, url: str, location: str, status: int = 301) -> FakeSite:
        self.routes[self.key(url)] = lambda request: httpx.Response(status, headers={"location": location})
        return self

    def json(self, url: str, payload: dict) -> FakeSite:
        self.routes[self.key(url)] = lambda request: httpx.Response(200, json=payload)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(self.key(request.url))
        if route is None:
            return httpx.Response(404, text="not found")
        return route(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def hits(self, url: str) -> int:
        wanted = self.key(url)
        return sum(1 for r in self.requests if self.key(r.url) == wanted)


def build_settings(**overrides) -> Settings:
    defaults = {
        "CRAWL_DELAY_SECONDS": 0.0,
        "INSPECT_TLS_CERTIFICATE": False,
        "PAGESPEED_API_URL": PAGESPEED_URL,
        "PAGESPEED_API_KEY": "",
        "CRUX_API_KEY": "",
        "MOBILE_USABILITY_URL": "",
        "LOG_FORMAT": "console",
    }
    return Settings(**{**defaults, **overrides})


def pagespeed_payload(lcp: float, inp: float, cls: float, performance: float = 0.95) -> dict:
    return {
        "lighthouseResult": {
            "categories": {"performance": {"score": performance}, "seo": {"score": 1.0}},
            "audits": {
                "largest-contentful-paint": {"numericValue": lcp},
                "interaction-to-next-paint": {"numericValue": inp},
                "cumulative-layout-shift": {"numericValue": cls},
            },
        },
        "loadingExperience": {},
    }


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def settings() -> Settings:
    return build_settings()


@pytest_asyncio.fixture
async def fetcher(site, settings):
    async with PageFetcher.build_client(settings, site.transport) as client:
        yield PageFetcher(client, settings)


@pytest.fixture
def make_snapshot() -> Callable[..., DocumentSnapshot]:
    def _make(html: str, url: str = "https://example.com/", headers: dict | None = None) -> DocumentSnapshot:
        response = FetchResponse(
            url=url,
            status_code=200,
            headers=httpx.Headers({"content-type": "text/html", **(headers or {})}),
            text=html,
            content=html.encode(),
        )
        return DocumentSnapshot.from_response(url, response)
    return _make


@pytest.fixture
def make_context(fetcher, settings) -> Callable[..., AuditContext]:
    def _make(snapshot: DocumentSnapshot, url: str | None = None) -> AuditContext:
        return AuditContext(
            target=AuditTarget.from_url(url or snapshot.url),
            snapshot=snapshot,
            fetcher=fetcher,
            settings=settings,
        )
    return _make
