"""
URL Canonicalization Engine

Checks that a site answers on exactly one form of its root URL:
- protocol, www, trailing-slash and case variants (VariantProber)
- HTTP -> HTTPS and www redirects
- redirect chains: length, loops, overflow (RedirectTracer)
- duplicate content exposure from independently served variants
"""

from __future__ import annotations

import asyncio
from urllib.parse import urlparse, urlunparse

from pydantic import BaseModel, ConfigDict, Field

from seoaudit.engines.base import (
    AuditCategory,
    AuditContext,
    AuditEngine,
    CheckStatus,
    Impact,
    SEOCheck,
    check,
)
from seoaudit.engines.canonicalization.redirects import RedirectTrace, RedirectTracer
from seoaudit.engines.canonicalization.variants import VariantProber, VariantReport

LONG_CHAIN_HOPS = 3

UNEVALUATED_CHECKS = (
    ("url-consistency", "URL Consistency"),
    ("redirects", "Redirect Implementation"),
    ("redirect-chain", "Redirect Chains"),
    ("duplicate-content", "Duplicate Content Risk"),
)


class RedirectAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    http_to_https: bool = False
    www_redirect: str = "none"
    traces: list[RedirectTrace] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)

    @property
    def longest_chain(self) -> int:
        return max((t.hop_count for t in self.traces), default=0)

    @property
    def has_loop(self) -> bool:
        return any(t.has_loop for t in self.traces)

    @property
    def too_many_redirects(self) -> bool:
        return any(t.too_many_redirects for t in self.traces)


class DuplicateContentAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    risk: bool = False
    accessible_urls: list[str] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)


class CanonicalizationResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    # false for the empty default used when the module could not run
    evaluated: bool = False
    canonical: VariantReport = Field(default_factory=VariantReport)
    redirects: RedirectAnalysis = Field(default_factory=RedirectAnalysis)
    duplicate_content: DuplicateContentAnalysis = Field(default_factory=DuplicateContentAnalysis)


class CanonicalizationEngine(AuditEngine):

    ENGINE_NAME = "canonicalization"
    CATEGORY = AuditCategory.CANONICALIZATION
    RESULTS_MODEL = CanonicalizationResults

    async def run(self, context: AuditContext) -> CanonicalizationResults:
        settings = context.settings
        url = context.target.url
        prober = VariantProber(context.fetcher, concurrency=settings.PROBE_CONCURRENCY)
        tracer = RedirectTracer(context.fetcher, max_hops=settings.REDIRECT_MAX_HOPS)

        trace_urls = [url]
        parsed = urlparse(url)
        if parsed.scheme == "https":
            trace_urls.append(urlunparse(parsed._replace(scheme="http")))

        report, *traces = await asyncio.gather(
            prober.probe(url),
            *[tracer.trace(u) for u in trace_urls],
        )

        return CanonicalizationResults(
            evaluated=True,
            canonical=report,
            redirects=self._analyze_redirects(report, traces),
            duplicate_content=self._analyze_duplicates(report),
        )

    def _analyze_redirects(self, report: VariantReport, traces: list[RedirectTrace]) -> RedirectAnalysis:
        issues: list[str] = []
        if not report.http_to_https:
            issues.append("HTTP version does not redirect to HTTPS")
        for trace in traces:
            if trace.has_loop:
                issues.append(f"Redirect loop detected starting at {trace.start_url}")
            elif trace.too_many_redirects:
                issues.append(f"More than {trace.hop_count} redirects starting at {trace.start_url}")
            elif trace.hop_count > LONG_CHAIN_HOPS:
                issues.append(f"Redirect chain of {trace.hop_count} hops starting at {trace.start_url}")
        return RedirectAnalysis(
            http_to_https=report.http_to_https,
            www_redirect=report.www_redirect,
            traces=traces,
            issues=issues,
        )

    def _analyze_duplicates(self, report: VariantReport) -> DuplicateContentAnalysis:
        issues = []
        if report.duplicate_content_risk:
            issues.append(
                f"{len(report.accessible_urls)} URL variants return 200: "
                + ", ".join(report.accessible_urls)
            )
            if report.http_vs_https == "mixed":
                issues.append("HTTP and HTTPS versions both serve content")
            if report.www_vs_non_www == "mixed":
                issues.append("www and non-www versions both serve content")
        return DuplicateContentAnalysis(
            risk=report.duplicate_content_risk,
            accessible_urls=report.accessible_urls,
            issues=issues,
        )

    def build_checks(self, results: CanonicalizationResults) -> list[SEOCheck]:
        if not results.evaluated:
            return [
                check(check_id, name, CheckStatus.WARNING, f"{name} not evaluated", Impact.LOW)
                for check_id, name in UNEVALUATED_CHECKS
            ]

        canonical = results.canonical
        redirects = results.redirects
        duplicates = results.duplicate_content

        axes = {
            "httpVsHttps": canonical.http_vs_https,
            "wwwVsNonWww": canonical.www_vs_non_www,
            "trailingSlash": canonical.trailing_slash,
            "caseSensitivity": canonical.case_sensitivity,
        }
        mixed_axes = [name for name, state in axes.items() if state == "mixed"]

        if redirects.has_loop:
            chain_status, chain_impact = CheckStatus.FAIL, Impact.HIGH
            chain_message = "Redirect loop detected"
        elif redirects.too_many_redirects:
            chain_status, chain_impact = CheckStatus.FAIL, Impact.HIGH
            chain_message = "Redirect chain exceeds the maximum number of hops"
        elif redirects.longest_chain > LONG_CHAIN_HOPS:
            chain_status, chain_impact = CheckStatus.WARNING, Impact.MEDIUM
            chain_message = f"Redirect chain of {redirects.longest_chain} hops"
        else:
            chain_status, chain_impact = CheckStatus.PASS, Impact.MEDIUM
            chain_message = f"Redirect chains are short ({redirects.longest_chain} hops max)"

        return [
            check(
                "url-consistency",
                "URL Consistency",
                CheckStatus.WARNING if mixed_axes else CheckStatus.PASS,
                (
                    f"Inconsistent URL handling: {', '.join(mixed_axes)}"
                    if mixed_axes
                    else "URL variants resolve to a single canonical form"
                ),
                Impact.MEDIUM,
                details=axes,
            ),
            check(
                "redirects",
                "Redirect Implementation",
                CheckStatus.PASS if redirects.http_to_https else CheckStatus.FAIL,
                (
                    "HTTP to HTTPS redirects are implemented"
                    if redirects.http_to_https
                    else "Missing HTTP to HTTPS redirects"
                ),
                Impact.HIGH,
                details={"httpToHttps": redirects.http_to_https, "wwwRedirect": redirects.www_redirect},
            ),
            check(
                "redirect-chain",
                "Redirect Chains",
                chain_status,
                chain_message,
                chain_impact,
                threshold=LONG_CHAIN_HOPS,
                actual_value=redirects.longest_chain,
                details={"issues": redirects.issues},
            ),
            check(
                "duplicate-content",
                "Duplicate Content Risk",
                CheckStatus.FAIL if duplicates.risk else CheckStatus.PASS,
                (
                    "Multiple URL variants serve the same content"
                    if duplicates.risk
                    else "Only one URL variant serves content"
                ),
                Impact.HIGH,
                details={"issues": duplicates.issues, "accessibleUrls": duplicates.accessible_urls},
            ),
        ]
