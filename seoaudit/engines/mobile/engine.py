"""
Mobile-First Indexing Engine

Checks:
- viewport meta tag (present, device-width, zoom not disabled)
- mobile friendliness (upstream usability service, else a document heuristic)
- mobile/desktop parity for text, links, images, scripts, CSS and structured data
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field

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
from seoaudit.engines.fetcher import DocumentSnapshot
from seoaudit.engines.mobile.parity import PARITY_BANDS, ParityAnalyzer, ParityMetric, ParityReport
from seoaudit.integrations.mobile_usability import MobileUsabilityClient

FIXED_WIDTH = re.compile(r"(?<![-\w])width\s*:\s*(\d{4,})px", re.IGNORECASE)
TINY_FONT = re.compile(r"font-size\s*:\s*([0-9]|1[01])px", re.IGNORECASE)

PARITY_CHECKS = [
    # (check id, name, attribute, impact)
    ("text-parity", "Text Content Parity", "text", Impact.HIGH),
    ("link-parity", "Link Parity", "links", Impact.HIGH),
    ("image-parity", "Image Parity", "images", Impact.MEDIUM),
    ("script-parity", "Script Parity", "scripts", Impact.LOW),
    ("css-parity", "Stylesheet Parity", "stylesheets", Impact.LOW),
    ("structured-data-parity", "Structured Data Parity", "structured_data", Impact.HIGH),
]


class ViewportAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    present: bool = False
    valid: bool = False
    content: str = ""
    issues: list[str] = Field(default_factory=list)


class MobileFriendlinessAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float = 0.0
    source: str = "none"        # service | heuristic | none
    issues: list[str] = Field(default_factory=list)


class MobileIndexingResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    viewport: ViewportAnalysis = Field(default_factory=ViewportAnalysis)
    mobile_friendly: MobileFriendlinessAnalysis = Field(default_factory=MobileFriendlinessAnalysis)
    parity: ParityReport = Field(default_factory=ParityReport)


def analyze_viewport(snapshot: DocumentSnapshot) -> ViewportAnalysis:
    content = snapshot.meta("viewport")
    if content is None:
        return ViewportAnalysis(issues=["Missing viewport meta tag"])

    normalized = content.replace(" ", "").lower()
    issues = []
    if "width=device-width" not in normalized:
        issues.append("Viewport does not set width=device-width")
    if "user-scalable=no" in normalized or "user-scalable=0" in normalized:
        issues.append("Viewport disables zooming (user-scalable=no)")
    if re.search(r"maximum-scale=1(\.0*)?(,|$)", normalized):
        issues.append("Viewport limits zoom with maximum-scale=1")
    return ViewportAnalysis(
        present=True,
        valid="width=device-width" in normalized,
        content=content,
        issues=issues,
    )


def estimate_mobile_friendliness(snapshot: DocumentSnapshot, viewport: ViewportAnalysis) -> MobileFriendlinessAnalysis:
    """Document-only estimate used when no usability service is configured."""
    score = 100.0
    issues: list[str] = []
    if not viewport.present:
        score -= 40
        issues.append("No viewport meta tag; page renders at desktop width")
    elif not viewport.valid:
        score -= 20
        issues.append("Viewport is not set to device width")
    if any("zoom" in issue.lower() for issue in viewport.issues):
        score -= 10
        issues.append("Zooming is restricted")
    if snapshot.soup.find(["object", "embed", "applet"]):
        score -= 15
        issues.append("Page uses plugins (object/embed) unsupported on mobile")
    if FIXED_WIDTH.search(snapshot.html):
        score -= 15
        issues.append("Fixed pixel widths of 1000px or more")
    if TINY_FONT.search(snapshot.html):
        score -= 10
        issues.append("Font sizes below 12px")
    return MobileFriendlinessAnalysis(score=max(score, 0.0), source="heuristic", issues=issues)


class MobileIndexingEngine(AuditEngine):

    ENGINE_NAME = "mobile_first_parity"
    CATEGORY = AuditCategory.MOBILE_FIRST_PARITY
    RESULTS_MODEL = MobileIndexingResults

    async def run(self, context: AuditContext) -> MobileIndexingResults:
        settings = context.settings
        snapshot = context.snapshot
        viewport = analyze_viewport(snapshot)

        analyzer = ParityAnalyzer(context.fetcher, settings.MOBILE_USER_AGENT, settings.DESKTOP_USER_AGENT)
        parity = await analyzer.analyze(context.target.url)
        friendliness = await self._mobile_friendliness(context, viewport)

        return MobileIndexingResults(viewport=viewport, mobile_friendly=friendliness, parity=parity)

    async def _mobile_friendliness(self, context: AuditContext, viewport: ViewportAnalysis) -> MobileFriendlinessAnalysis:
        client = MobileUsabilityClient(context.fetcher, context.settings)
        if client.enabled:
            try:
                report = await client.score(context.target.url)
            except UpstreamServiceError as exc:
                self.logger.warning("Mobile usability service failed", url=context.target.url, error=exc.reason)
                report = None
            if report is not None:
                return MobileFriendlinessAnalysis(score=report.score, source="service", issues=report.issues)

        if not context.snapshot.fetched:
            return MobileFriendlinessAnalysis(issues=["Root document could not be fetched"])
        return estimate_mobile_friendliness(context.snapshot, viewport)

    def build_checks(self, results: MobileIndexingResults) -> list[SEOCheck]:
        viewport = results.viewport
        friendly = results.mobile_friendly

        if friendly.score >= 90:
            friendly_status = CheckStatus.PASS
        elif friendly.score >= 70:
            friendly_status = CheckStatus.WARNING
        else:
            friendly_status = CheckStatus.FAIL

        checks = [
            check(
                "viewport-tag",
                "Viewport Meta Tag",
                CheckStatus.PASS if viewport.present and viewport.valid else CheckStatus.FAIL,
                (
                    "Viewport tag is properly configured" if viewport.valid
                    else "Viewport tag does not set width=device-width" if viewport.present
                    else "Missing viewport meta tag"
                ),
                Impact.HIGH,
                details=viewport.model_dump(),
            ),
            check(
                "mobile-friendly",
                "Mobile Friendliness",
                friendly_status,
                f"Mobile friendliness score: {friendly.score:.0f}/100",
                Impact.HIGH,
                details=friendly.model_dump(),
                threshold=90,
                actual_value=friendly.score,
            ),
        ]

        parity = results.parity
        for check_id, name, attribute, impact in PARITY_CHECKS:
            checks.append(self._parity_check(check_id, name, getattr(parity, attribute), impact))
        return checks

    @staticmethod
    def _parity_check(check_id: str, name: str, metric: ParityMetric, impact: Impact) -> SEOCheck:
        if not metric.defined:
            status = CheckStatus.WARNING
            message = metric.issue or f"{name} could not be compared"
        elif metric.meets_threshold:
            status = CheckStatus.PASS
            message = f"{name}: {metric.percentage}% ({metric.band})"
        elif metric.band == "fair":
            status = CheckStatus.WARNING
            message = metric.issue or f"{name}: {metric.percentage}%"
        else:
            status = CheckStatus.FAIL
            message = metric.issue or f"{name}: {metric.percentage}%"

        return check(
            check_id,
            name,
            status,
            message,
            impact,
            details=metric.model_dump(),
            threshold=PARITY_BANDS[metric.metric][1],
            actual_value=metric.percentage,
        )
