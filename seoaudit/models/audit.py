"""
Audit result records.

Everything an audit hands back to its caller: category results, per-module
detailed results, the summary and recommendations. All records are frozen
and serialize with model_dump(mode="json").
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from seoaudit.engines.base import AuditCategory, AuditCategoryResult, Impact
from seoaudit.engines.canonicalization.engine import CanonicalizationResults
from seoaudit.engines.crawlability.engine import CrawlabilityResults
from seoaudit.engines.ecommerce.engine import EcommerceResults
from seoaudit.engines.international.engine import InternationalizationResults
from seoaudit.engines.internal_links.engine import InternalLinkingResults
from seoaudit.engines.mobile.engine import MobileIndexingResults
from seoaudit.engines.security.engine import SecurityResults
from seoaudit.engines.spam.engine import SpamComplianceResults
from seoaudit.engines.structured_data.engine import StructuredDataResults
from seoaudit.engines.vitals.engine import CoreWebVitalsResults


def _empty_category() -> AuditCategoryResult:
    return AuditCategoryResult(score=0)


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str                         # "{category}-{check id}", unique within one audit
    category: str                   # display label
    title: str
    issue: str
    recommendation: str
    impact: str
    priority: Impact
    estimated_effort: str = "medium"
    technical_complexity: str = "medium"
    business_impact: str = "medium"
    implementation_steps: list[str] = Field(default_factory=list)


class RecommendationSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    top_issues: list[Recommendation] = Field(default_factory=list)
    quick_wins: list[Recommendation] = Field(default_factory=list)
    technical_debt: list[Recommendation] = Field(default_factory=list)


class AuditSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    critical: int = 0
    warnings: int = 0
    passed: int = 0
    total_checks: int = 0
    grade: str = "F"
    errored_modules: list[str] = Field(default_factory=list)


# ─────────────────────────────────────────────
# Full audit
# ─────────────────────────────────────────────

class CategoryRecord(BaseModel):
    """One AuditCategoryResult field per category, named by the category value."""
    model_config = ConfigDict(frozen=True)

    def by_category(self) -> dict[AuditCategory, AuditCategoryResult]:
        return {
            category: getattr(self, category.value)
            for category in AuditCategory
            if category.value in type(self).model_fields
        }


class AuditCategories(CategoryRecord):
    crawlability: AuditCategoryResult = Field(default_factory=_empty_category)
    canonicalization: AuditCategoryResult = Field(default_factory=_empty_category)
    core_web_vitals: AuditCategoryResult = Field(default_factory=_empty_category)
    mobile_first_parity: AuditCategoryResult = Field(default_factory=_empty_category)
    structured_data: AuditCategoryResult = Field(default_factory=_empty_category)
    security_headers: AuditCategoryResult = Field(default_factory=_empty_category)
    internal_linking: AuditCategoryResult = Field(default_factory=_empty_category)
    internationalization: AuditCategoryResult = Field(default_factory=_empty_category)
    ecommerce_facets: AuditCategoryResult = Field(default_factory=_empty_category)
    spam_compliance: AuditCategoryResult = Field(default_factory=_empty_category)


class DetailedResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    crawlability: CrawlabilityResults = Field(default_factory=CrawlabilityResults)
    canonicalization: CanonicalizationResults = Field(default_factory=CanonicalizationResults)
    core_web_vitals: CoreWebVitalsResults = Field(default_factory=CoreWebVitalsResults)
    mobile_first_parity: MobileIndexingResults = Field(default_factory=MobileIndexingResults)
    structured_data: StructuredDataResults = Field(default_factory=StructuredDataResults)
    security_headers: SecurityResults = Field(default_factory=SecurityResults)
    internal_linking: InternalLinkingResults = Field(default_factory=InternalLinkingResults)
    internationalization: InternationalizationResults = Field(default_factory=InternationalizationResults)
    ecommerce_facets: EcommerceResults = Field(default_factory=EcommerceResults)
    spam_compliance: SpamComplianceResults = Field(default_factory=SpamComplianceResults)


class AuditResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    domain: str
    timestamp: datetime
    overall_score: int = Field(ge=0, le=100)
    summary: AuditSummary
    categories: AuditCategories
    detailed_results: DetailedResults
    recommendations: list[Recommendation] = Field(default_factory=list)
    duration_ms: float = 0.0


# ─────────────────────────────────────────────
# Quick audit (crawlability, Core Web Vitals, security)
# ─────────────────────────────────────────────

class QuickAuditCategories(CategoryRecord):
    crawlability: AuditCategoryResult = Field(default_factory=_empty_category)
    core_web_vitals: AuditCategoryResult = Field(default_factory=_empty_category)
    security_headers: AuditCategoryResult = Field(default_factory=_empty_category)


class QuickDetailedResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    crawlability: CrawlabilityResults = Field(default_factory=CrawlabilityResults)
    core_web_vitals: CoreWebVitalsResults = Field(default_factory=CoreWebVitalsResults)
    security_headers: SecurityResults = Field(default_factory=SecurityResults)


class QuickAuditResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    domain: str
    timestamp: datetime
    overall_score: int = Field(ge=0, le=100)
    summary: AuditSummary
    categories: QuickAuditCategories
    detailed_results: QuickDetailedResults
    recommendations: list[Recommendation] = Field(default_factory=list)
    duration_ms: float = 0.0
