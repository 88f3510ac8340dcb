"""
Page Fetcher and Document Snapshot.

PageFetcher wraps one httpx.AsyncClient shared by every engine of an audit
run. Every request carries an explicit timeout; transport failures and
timeouts surface as FetchError, never as raw httpx exceptions.

DocumentSnapshot is the immutable parsed view of the root document. It is
built once per audit and read concurrently by all engines, so nothing in
here may mutate the parsed tree.
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx
import structlog
from bs4 import BeautifulSoup

from seoaudit.core.config import Settings, get_settings
from seoaudit.core.errors import FetchError

logger = structlog.get_logger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
NON_NAVIGABLE_PREFIXES = ("#", "tel:", "mailto:", "javascript:")
NON_VISIBLE_TAGS = ("script", "style", "noscript", "template")


# ─────────────────────────────────────────────
# Responses
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class FetchResponse:
    """A completed HTTP exchange, whatever its status."""
    url: str
    status_code: int
    headers: httpx.Headers
    text: str = ""
    content: bytes = b""
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_redirect(self) -> bool:
        return self.status_code in REDIRECT_STATUSES

    @property
    def location(self) -> str | None:
        return self.headers.get("location")

    def json(self) -> Any:
        return json.loads(self.text)


class PageFetcher:
    """
    Thin async HTTP layer. GET/HEAD with an identifying User-Agent,
    an Accept header favouring HTML and an explicit timeout.
    """

    def __init__(self, client: httpx.AsyncClient, settings: Settings | None = None):
        self.client = client
        self.settings = settings or get_settings()

    @staticmethod
    def build_client(
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> httpx.AsyncClient:
        headers = {
            "User-Agent": settings.AUDIT_USER_AGENT,
            "Accept": settings.ACCEPT_HEADER,
            "Accept-Language": "en-US,en;q=0.9",
        }
        return httpx.AsyncClient(
            headers=headers,
            follow_redirects=True,
            verify=settings.VERIFY_TLS,
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            limits=httpx.Limits(
                max_connections=settings.MAX_CONNECTIONS,
                max_keepalive_connections=settings.MAX_CONNECTIONS,
            ),
            transport=transport,
        )

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        follow_redirects: bool = True,
        timeout: float | None = None,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
    ) -> FetchResponse:
        """
        Issue a request and return the response for any HTTP status.

        Raises:
            FetchError: timeout (408), redirect overflow (310) or transport failure (0)
        """
        start = time.perf_counter()
        try:
            response = await self.client.request(
                method,
                url,
                headers=headers,
                follow_redirects=follow_redirects,
                timeout=timeout if timeout is not None else self.settings.REQUEST_TIMEOUT_SECONDS,
                params=params,
                json=json_body,
            )
        except httpx.TimeoutException as exc:
            raise FetchError(url, 408, "request timed out") from exc
        except httpx.TooManyRedirects as exc:
            raise FetchError(url, 310, "too many redirects") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("HTTP fetch failed", url=url, method=method, error=str(exc))
            raise FetchError(url, 0, str(exc) or type(exc).__name__) from exc

        elapsed = (time.perf_counter() - start) * 1000
        return FetchResponse(
            url=str(response.url),
            status_code=response.status_code,
            headers=response.headers,
            text=response.text if method.upper() != "HEAD" else "",
            content=response.content if method.upper() != "HEAD" else b"",
            elapsed_ms=elapsed,
        )

    async def fetch(self, url: str, **kwargs: Any) -> FetchResponse:
        """GET that also treats non-2xx as failure."""
        response = await self.request("GET", url, **kwargs)
        if not response.ok:
            raise FetchError(url, response.status_code, f"HTTP {response.status_code}")
        return response

    async def head(self, url: str, **kwargs: Any) -> FetchResponse:
        return await self.request("HEAD", url, **kwargs)

    async def fetch_document(self, url: str, user_agent: str | None = None) -> DocumentSnapshot:
        headers = {"User-Agent": user_agent} if user_agent else None
        response = await self.fetch(url, headers=headers)
        return DocumentSnapshot.from_response(url, response)


# ─────────────────────────────────────────────
# Document Snapshot
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class DocumentSnapshot:
    url: str
    final_url: str
    status_code: int
    html: str
    headers: httpx.Headers
    soup: BeautifulSoup = field(repr=False, compare=False)
    fetched: bool = True

    @classmethod
    def from_response(cls, url: str, response: FetchResponse) -> DocumentSnapshot:
        return cls(
            url=url,
            final_url=response.url,
            status_code=response.status_code,
            html=response.text,
            headers=response.headers,
            soup=BeautifulSoup(response.text, "lxml"),
        )

    @classmethod
    def empty(cls, url: str) -> DocumentSnapshot:
        """Sentinel used when the root document could not be fetched."""
        return cls(
            url=url,
            final_url=url,
            status_code=0,
            html="",
            headers=httpx.Headers(),
            soup=BeautifulSoup("", "lxml"),
            fetched=False,
        )

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name, default)

    def meta(self, name: str) -> str | None:
        """Content of the first <meta name=...> matching name (case-insensitive)."""
        values = self.meta_all(name)
        return values[0] if values else None

    def meta_all(self, name: str) -> list[str]:
        wanted = name.lower()
        values = []
        for tag in self.soup.find_all("meta"):
            key = (tag.get("name") or tag.get("property") or "").lower()
            if key == wanted:
                values.append((tag.get("content") or "").strip())
        return values

    def link_tags(self, rel: str) -> list[dict[str, str]]:
        """Attributes of every <link> whose rel list contains rel."""
        wanted = rel.lower()
        found = []
        for tag in self.soup.find_all("link"):
            rels = tag.get("rel") or []
            if isinstance(rels, str):
                rels = rels.split()
            if wanted in (r.lower() for r in rels):
                found.append({k: (v if isinstance(v, str) else " ".join(v)) for k, v in tag.attrs.items()})
        return found

    def resolve(self, href: str) -> str:
        return urljoin(self.final_url, href.strip())

    @cached_property
    def visible_text(self) -> str:
        return visible_text(self.html)

    @cached_property
    def json_ld(self) -> tuple[list[Any], int]:
        """(parsed JSON-LD blocks, count of blocks that failed to parse)"""
        return parse_json_ld(self.soup)


# ─────────────────────────────────────────────
# HTML helpers
# ─────────────────────────────────────────────

def visible_text(html: str) -> str:
    """
    Whitespace-normalized text a user would see.
    Parses its own tree so the caller's soup is never mutated.
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "lxml")
    for tag in soup(list(NON_VISIBLE_TAGS)):
        tag.decompose()
    return " ".join(soup.get_text(separator=" ").split())


def text_tokens(text: str) -> set[str]:
    return {token for token in re.findall(r"\w+", text.lower()) if len(token) > 1}


def is_navigable_href(href: str) -> bool:
    href = href.strip()
    return bool(href) and not href.lower().startswith(NON_NAVIGABLE_PREFIXES)


def anchor_hrefs(soup: BeautifulSoup) -> list[str]:
    return [a["href"].strip() for a in soup.find_all("a", href=True) if is_navigable_href(a["href"])]


def parse_json_ld(soup: BeautifulSoup) -> tuple[list[Any], int]:
    blocks: list[Any] = []
    invalid = 0
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text() or ""
        try:
            blocks.append(json.loads(raw))
        except ValueError:
            invalid += 1
    return blocks, invalid


def same_host(url: str, host: str) -> bool:
    return (urlparse(url).hostname or "").lower() == host.lower()


def flatten_json_ld(data: Any) -> list[dict[str, Any]]:
    """Every typed node in a JSON-LD payload (arrays and @graph expanded)."""
    nodes: list[dict[str, Any]] = []
    if isinstance(data, list):
        for entry in data:
            nodes.extend(flatten_json_ld(entry))
    elif isinstance(data, dict):
        if "@graph" in data:
            nodes.extend(flatten_json_ld(data["@graph"]))
        if "@type" in data:
            nodes.append(data)
    return nodes


def node_types(node: dict[str, Any]) -> list[str]:
    raw = node.get("@type", "Unknown")
    types = raw if isinstance(raw, list) else [raw]
    return [str(t).rsplit("/", 1)[-1] for t in types]
