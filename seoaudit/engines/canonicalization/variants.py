"""
URL variant probing.

Derives the protocol, host, trailing-slash and case variants of the root
URL, probes each one without following redirects and decides, per axis,
whether the site serves one canonical form (consistent) or answers on both
forms independently (mixed).
"""

from __future__ import annotations

import asyncio
import ipaddress
from urllib.parse import urljoin, urlparse, urlunparse

import structlog
from pydantic import BaseModel, ConfigDict, Field, computed_field

from seoaudit.core.errors import FetchError
from seoaudit.engines.fetcher import FetchResponse, PageFetcher

logger = structlog.get_logger(__name__)

# axis -> VariantReport field
AXES = {
    "protocol": "http_vs_https",
    "www": "www_vs_non_www",
    "trailing_slash": "trailing_slash",
    "case": "case_sensitivity",
}


class VariantProbe(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    axis: str                       # "base" or one of AXES
    status_code: int = 0
    location: str | None = None     # resolved absolute redirect target
    error: str | None = None

    @computed_field
    @property
    def accessible(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def redirects(self) -> bool:
        return 300 <= self.status_code < 400 and bool(self.location)


class VariantReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_url: str = ""
    probes: list[VariantProbe] = Field(default_factory=list)
    http_vs_https: str = "consistent"      # consistent | mixed
    www_vs_non_www: str = "consistent"
    trailing_slash: str = "consistent"
    case_sensitivity: str = "consistent"
    http_to_https: bool = False
    www_redirect: str = "none"      # www_to_non_www | non_www_to_www | both | none
    accessible_urls: list[str] = Field(default_factory=list)
    duplicate_content_risk: bool = False
    issues: list[str] = Field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return all(getattr(self, name) == "consistent" for name in AXES.values())


# ─────────────────────────────────────────────
# Variant generation
# ─────────────────────────────────────────────

def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        return False


def _swap(url: str, scheme: str | None = None, netloc: str | None = None, path: str | None = None) -> str:
    parsed = urlparse(url)
    return urlunparse((
        scheme if scheme is not None else parsed.scheme,
        netloc if netloc is not None else parsed.netloc,
        path if path is not None else parsed.path,
        parsed.params,
        parsed.query,
        "",
    ))


def _dedupe_key(url: str) -> str:
    parsed = urlparse(url)
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), parsed.path or "/", "", parsed.query, ""))


def generate_variants(url: str) -> dict[str, str]:
    """
    Map axis -> variant URL. Axes that do not apply to this URL are absent:
    trailing slash for the root path, case when the path has no letters,
    www for IP hosts.
    """
    parsed = urlparse(url)
    host = parsed.hostname or ""
    path = parsed.path or "/"
    variants: dict[str, str] = {}

    variants["protocol"] = _swap(url, scheme="https" if parsed.scheme == "http" else "http")

    if host and not _is_ip(host) and host != "localhost":
        netloc = parsed.netloc
        if netloc.startswith("www."):
            variants["www"] = _swap(url, netloc=netloc[4:])
        else:
            variants["www"] = _swap(url, netloc=f"www.{netloc}")

    if path != "/":
        toggled = path.rstrip("/") if path.endswith("/") else f"{path}/"
        variants["trailing_slash"] = _swap(url, path=toggled)

    if any(ch.isalpha() for ch in path):
        cased = path.upper() if path != path.upper() else path.lower()
        if cased != path:
            variants["case"] = _swap(url, path=cased)

    base_key = _dedupe_key(url)
    seen = {base_key}
    unique: dict[str, str] = {}
    for axis, variant in variants.items():
        key = _dedupe_key(variant)
        if key not in seen:
            seen.add(key)
            unique[axis] = variant
    return unique


# ─────────────────────────────────────────────
# Prober
# ─────────────────────────────────────────────

class VariantProber:

    def __init__(self, fetcher: PageFetcher, concurrency: int = 8):
        self.fetcher = fetcher
        self.semaphore = asyncio.Semaphore(concurrency)

    async def probe(self, url: str) -> VariantReport:
        variants = generate_variants(url)
        targets = [("base", url)] + list(variants.items())
        probes = await asyncio.gather(*[self._probe_one(axis, target) for axis, target in targets])
        by_axis = {probe.axis: probe for probe in probes}
        base = by_axis["base"]

        axes: dict[str, str] = {}
        issues: list[str] = []
        for axis, field_name in AXES.items():
            probe = by_axis.get(axis)
            if probe is None:
                continue
            mixed = base.accessible and probe.accessible
            axes[field_name] = "mixed" if mixed else "consistent"
            if mixed:
                issues.append(f"Both {base.url} and {probe.url} return 200 without redirecting ({axis} variant)")

        http_to_https = self._redirects_to_https(url, base, by_axis.get("protocol"))
        www_redirect = self._www_redirect(url, base, by_axis.get("www"))

        accessible: list[str] = []
        for probe in probes:
            if probe.accessible and probe.url not in accessible:
                accessible.append(probe.url)
        duplicate_risk = len(accessible) > 1
        if duplicate_risk:
            issues.append(f"{len(accessible)} URL variants serve content independently")

        if not http_to_https:
            issues.append("HTTP requests are not redirected to HTTPS")

        logger.debug(
            "Variants probed",
            url=url,
            variants=len(variants),
            accessible=len(accessible),
            http_to_https=http_to_https,
        )
        return VariantReport(
            base_url=url,
            probes=probes,
            **axes,
            http_to_https=http_to_https,
            www_redirect=www_redirect,
            accessible_urls=accessible,
            duplicate_content_risk=duplicate_risk,
            issues=issues,
        )

    async def _probe_one(self, axis: str, url: str) -> VariantProbe:
        async with self.semaphore:
            try:
                response = await self.fetcher.head(url, follow_redirects=False)
                if response.status_code in (405, 501):
                    response = await self.fetcher.request("GET", url, follow_redirects=False)
            except FetchError as exc:
                return VariantProbe(url=url, axis=axis, status_code=exc.status_code, error=exc.reason)
        return VariantProbe(
            url=url,
            axis=axis,
            status_code=response.status_code,
            location=self._resolve_location(url, response),
        )

    @staticmethod
    def _resolve_location(url: str, response: FetchResponse) -> str | None:
        if response.is_redirect and response.location:
            return urljoin(url, response.location)
        return None

    @staticmethod
    def _redirects_to_https(url: str, base: VariantProbe, protocol: VariantProbe | None) -> bool:
        http_probe = base if urlparse(url).scheme == "http" else protocol
        if http_probe is None or not http_probe.redirects:
            return False
        return urlparse(http_probe.location).scheme == "https"

    @staticmethod
    def _www_redirect(url: str, base: VariantProbe, www: VariantProbe | None) -> str:
        if www is None:
            return "none"
        host_is_www = (urlparse(url).hostname or "").startswith("www.")
        www_probe, bare_probe = (base, www) if host_is_www else (www, base)

        def lands_on(probe: VariantProbe, wants_www: bool) -> bool:
            if not probe.redirects:
                return False
            host = urlparse(probe.location).hostname or ""
            return host.startswith("www.") == wants_www

        www_to_bare = lands_on(www_probe, wants_www=False)
        bare_to_www = lands_on(bare_probe, wants_www=True)
        if www_to_bare and bare_to_www:
            return "both"
        if www_to_bare:
            return "www_to_non_www"
        if bare_to_www:
            return "non_www_to_www"
        return "none"
