"""
Mobile / desktop content parity.

Fetches the same URL under a mobile and a desktop User-Agent and compares
what each version exposes:

  parity% = |common| / max(|mobile|, |desktop|) × 100   (sets)
  parity% = min / max × 100                              (structured-data counts)

Both sides empty means parity is undefined: reported as 0 with an issue.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog
from pydantic import BaseModel, ConfigDict, Field

from seoaudit.core.errors import FetchError
from seoaudit.engines.base import round_half_up
from seoaudit.engines.fetcher import DocumentSnapshot, PageFetcher, anchor_hrefs, text_tokens

logger = structlog.get_logger(__name__)

# metric -> (excellent, good, fair) lower bounds
PARITY_BANDS: dict[str, tuple[int, int, int]] = {
    "text": (95, 90, 80),
    "links": (95, 90, 80),
    "images": (95, 85, 75),
    "scripts": (90, 80, 70),
    "stylesheets": (85, 75, 65),
    "structured_data": (100, 90, 75),
}

METRIC_LABELS = {
    "text": "Text content",
    "links": "Links",
    "images": "Images",
    "scripts": "Scripts",
    "stylesheets": "Stylesheets",
    "structured_data": "Structured data",
}

SUGGESTIONS: dict[str, list[str]] = {
    "text": [
        "Serve the same primary content to mobile and desktop users",
        "Avoid hiding content behind mobile-only tabs that never render it",
    ],
    "links": [
        "Keep the mobile navigation as complete as the desktop one",
        "Make sure footer and in-content links exist on the mobile version",
    ],
    "images": [
        "Serve the same images on mobile, using responsive srcset rather than removal",
        "Keep alt text identical across versions",
    ],
    "scripts": [
        "Load the same functional scripts on mobile",
        "Check that mobile-specific bundles do not drop SEO-relevant features",
    ],
    "stylesheets": [
        "Ensure mobile CSS does not hide content that desktop shows",
    ],
    "structured_data": [
        "Publish identical structured data on the mobile version",
        "Google indexes the mobile page: missing markup there is lost",
    ],
}

SAMPLE_SIZE = 10


# ─────────────────────────────────────────────
# Pure comparison
# ─────────────────────────────────────────────

def parity_percentage(mobile: set[str], desktop: set[str]) -> int | None:
    """None when both sets are empty."""
    if not mobile and not desktop:
        return None
    common = len(mobile & desktop)
    return round_half_up(common / max(len(mobile), len(desktop)) * 100)


def count_parity(mobile: int, desktop: int) -> int | None:
    if mobile == 0 and desktop == 0:
        return None
    return round_half_up(min(mobile, desktop) / max(mobile, desktop) * 100)


def parity_band(metric: str, percentage: int) -> str:
    excellent, good, fair = PARITY_BANDS[metric]
    if percentage >= excellent:
        return "excellent"
    if percentage >= good:
        return "good"
    if percentage >= fair:
        return "fair"
    return "poor"


class ParityMetric(BaseModel):
    model_config = ConfigDict(frozen=True)

    metric: str
    mobile_count: int = 0
    desktop_count: int = 0
    common_count: int = 0
    percentage: int = 0
    defined: bool = False
    band: str = "undefined"
    issue: str | None = None
    suggestions: list[str] = Field(default_factory=list)
    missing_on_mobile: list[str] = Field(default_factory=list)

    @property
    def meets_threshold(self) -> bool:
        return self.defined and self.band in ("excellent", "good")


def _undefined(metric: str) -> ParityMetric:
    return ParityMetric(
        metric=metric,
        issue=f"{METRIC_LABELS[metric]} parity is undefined: neither version contains any",
    )


def compare_sets(metric: str, mobile: set[str], desktop: set[str]) -> ParityMetric:
    percentage = parity_percentage(mobile, desktop)
    if percentage is None:
        return _undefined(metric)
    band = parity_band(metric, percentage)
    good_threshold = PARITY_BANDS[metric][1]
    below = percentage < good_threshold
    return ParityMetric(
        metric=metric,
        mobile_count=len(mobile),
        desktop_count=len(desktop),
        common_count=len(mobile & desktop),
        percentage=percentage,
        defined=True,
        band=band,
        issue=(
            f"{METRIC_LABELS[metric]} parity is {percentage}% (expected at least {good_threshold}%)"
            if below else None
        ),
        suggestions=SUGGESTIONS[metric] if below else [],
        missing_on_mobile=sorted(desktop - mobile)[:SAMPLE_SIZE],
    )


def compare_counts(metric: str, mobile: int, desktop: int) -> ParityMetric:
    percentage = count_parity(mobile, desktop)
    if percentage is None:
        return _undefined(metric)
    band = parity_band(metric, percentage)
    good_threshold = PARITY_BANDS[metric][1]
    below = percentage < good_threshold
    return ParityMetric(
        metric=metric,
        mobile_count=mobile,
        desktop_count=desktop,
        common_count=min(mobile, desktop),
        percentage=percentage,
        defined=True,
        band=band,
        issue=(
            f"{METRIC_LABELS[metric]}: {mobile} blocks on mobile vs {desktop} on desktop"
            if below else None
        ),
        suggestions=SUGGESTIONS[metric] if below else [],
    )


# ─────────────────────────────────────────────
# Feature extraction
# ─────────────────────────────────────────────

@dataclass
class DocumentFeatures:
    text: set[str] = field(default_factory=set)
    links: set[str] = field(default_factory=set)
    images: set[str] = field(default_factory=set)
    scripts: set[str] = field(default_factory=set)
    stylesheets: set[str] = field(default_factory=set)
    structured_data: int = 0

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> DocumentFeatures:
        soup = snapshot.soup
        images = {
            snapshot.resolve(img.get("src") or img.get("data-src"))
            for img in soup.find_all("img")
            if (img.get("src") or img.get("data-src"))
        }
        scripts = {snapshot.resolve(s["src"]) for s in soup.find_all("script", src=True)}
        stylesheets = {snapshot.resolve(t["href"]) for t in snapshot.link_tags("stylesheet") if t.get("href")}
        blocks, invalid = snapshot.json_ld
        microdata = [
            item for item in soup.find_all(attrs={"itemscope": True})
            if item.find_parent(attrs={"itemscope": True}) is None
        ]
        return cls(
            text=text_tokens(snapshot.visible_text),
            links={snapshot.resolve(href) for href in anchor_hrefs(soup)},
            images=images,
            scripts=scripts,
            stylesheets=stylesheets,
            structured_data=len(blocks) + invalid + len(microdata),
        )


class ParityReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    mobile_fetched: bool = False
    desktop_fetched: bool = False
    text: ParityMetric = Field(default_factory=lambda: _undefined("text"))
    links: ParityMetric = Field(default_factory=lambda: _undefined("links"))
    images: ParityMetric = Field(default_factory=lambda: _undefined("images"))
    scripts: ParityMetric = Field(default_factory=lambda: _undefined("scripts"))
    stylesheets: ParityMetric = Field(default_factory=lambda: _undefined("stylesheets"))
    structured_data: ParityMetric = Field(default_factory=lambda: _undefined("structured_data"))
    issues: list[str] = Field(default_factory=list)

    def metrics(self) -> list[ParityMetric]:
        return [self.text, self.links, self.images, self.scripts, self.stylesheets, self.structured_data]


def compare_features(mobile: DocumentFeatures, desktop: DocumentFeatures) -> ParityReport:
    metrics = {
        "text": compare_sets("text", mobile.text, desktop.text),
        "links": compare_sets("links", mobile.links, desktop.links),
        "images": compare_sets("images", mobile.images, desktop.images),
        "scripts": compare_sets("scripts", mobile.scripts, desktop.scripts),
        "stylesheets": compare_sets("stylesheets", mobile.stylesheets, desktop.stylesheets),
        "structured_data": compare_counts("structured_data", mobile.structured_data, desktop.structured_data),
    }
    issues = [m.issue for m in metrics.values() if m.issue]
    return ParityReport(mobile_fetched=True, desktop_fetched=True, issues=issues, **metrics)


# ─────────────────────────────────────────────
# Analyzer
# ─────────────────────────────────────────────

class ParityAnalyzer:

    def __init__(self, fetcher: PageFetcher, mobile_user_agent: str, desktop_user_agent: str):
        self.fetcher = fetcher
        self.mobile_user_agent = mobile_user_agent
        self.desktop_user_agent = desktop_user_agent

    async def analyze(self, url: str) -> ParityReport:
        mobile, desktop = await asyncio.gather(
            self._fetch(url, self.mobile_user_agent),
            self._fetch(url, self.desktop_user_agent),
        )
        if mobile is None or desktop is None:
            missing = [name for name, doc in (("mobile", mobile), ("desktop", desktop)) if doc is None]
            return ParityReport(
                mobile_fetched=mobile is not None,
                desktop_fetched=desktop is not None,
                issues=[f"Could not fetch the {' and '.join(missing)} version of the page"],
            )

        report = compare_features(
            DocumentFeatures.from_snapshot(mobile),
            DocumentFeatures.from_snapshot(desktop),
        )
        logger.debug(
            "Parity computed",
            url=url,
            text=report.text.percentage,
            links=report.links.percentage,
        )
        return report

    async def _fetch(self, url: str, user_agent: str) -> DocumentSnapshot | None:
        try:
            return await self.fetcher.fetch_document(url, user_agent=user_agent)
        except FetchError as exc:
            logger.info("Parity fetch failed", url=url, status=exc.status_code, reason=exc.reason)
            return None
