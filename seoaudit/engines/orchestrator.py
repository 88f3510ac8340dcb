"""
Audit Orchestrator - runs one audit from URL to AuditResult.

Flow:
1. INITIALIZED  → target URL validated (InvalidAuditTarget raised before any I/O)
2. FETCHING     → root document fetched once into a shared DocumentSnapshot
3. AUDITING     → every check module executed concurrently (fan-out/fan-in)
4. AGGREGATING  → category scores, overall score, summary, recommendations
5. COMPLETE

Error handling:
- A module failure is isolated by AuditEngine.execute(); the category falls
  back to the module's empty results plus a module-error check
- A failed root fetch leaves an empty snapshot; modules degrade to defaults
- No retries
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

import httpx
import structlog

from seoaudit.core.config import Settings, get_settings
from seoaudit.core.errors import FetchError
from seoaudit.core.logging import audit_log_context
from seoaudit.engines.base import (
    AuditCategory,
    AuditCategoryResult,
    AuditContext,
    AuditEngine,
    AuditTarget,
    ModuleOutcome,
)
from seoaudit.engines.canonicalization.engine import CanonicalizationEngine
from seoaudit.engines.crawlability.engine import CrawlabilityEngine
from seoaudit.engines.ecommerce.engine import EcommerceEngine
from seoaudit.engines.fetcher import DocumentSnapshot, PageFetcher
from seoaudit.engines.international.engine import InternationalizationEngine
from seoaudit.engines.internal_links.engine import InternalLinkingEngine
from seoaudit.engines.mobile.engine import MobileIndexingEngine
from seoaudit.engines.prioritization.engine import RecommendationGenerator
from seoaudit.engines.scoring.engine import ScoreAggregator
from seoaudit.engines.security.engine import SecurityHeadersEngine
from seoaudit.engines.spam.engine import SpamComplianceEngine
from seoaudit.engines.structured_data.engine import StructuredDataEngine
from seoaudit.engines.vitals.engine import CoreWebVitalsEngine
from seoaudit.models.audit import (
    AuditCategories,
    AuditResult,
    DetailedResults,
    QuickAuditCategories,
    QuickAuditResult,
    QuickDetailedResults,
)

logger = structlog.get_logger(__name__)


class AuditState(str, Enum):
    INITIALIZED = "initialized"
    FETCHING = "fetching"
    AUDITING = "auditing"
    AGGREGATING = "aggregating"
    COMPLETE = "complete"


@dataclass
class AuditRun:
    """Lifecycle of a single audit. Each run_audit() call owns one."""
    target: AuditTarget
    state: AuditState = AuditState.INITIALIZED

    def transition(self, state: AuditState) -> None:
        logger.info("Audit state change", url=self.target.url, previous=self.state.value, state=state.value)
        self.state = state


# ─────────────────────────────────────────────
# Engine Registry
# ─────────────────────────────────────────────

ENGINE_REGISTRY: dict[AuditCategory, type[AuditEngine]] = {
    AuditCategory.CRAWLABILITY: CrawlabilityEngine,
    AuditCategory.CANONICALIZATION: CanonicalizationEngine,
    AuditCategory.CORE_WEB_VITALS: CoreWebVitalsEngine,
    AuditCategory.MOBILE_FIRST_PARITY: MobileIndexingEngine,
    AuditCategory.STRUCTURED_DATA: StructuredDataEngine,
    AuditCategory.SECURITY_HEADERS: SecurityHeadersEngine,
    AuditCategory.INTERNAL_LINKING: InternalLinkingEngine,
    AuditCategory.INTERNATIONALIZATION: InternationalizationEngine,
    AuditCategory.ECOMMERCE_FACETS: EcommerceEngine,
    AuditCategory.SPAM_COMPLIANCE: SpamComplianceEngine,
}

QUICK_AUDIT_CATEGORIES = (
    AuditCategory.CRAWLABILITY,
    AuditCategory.CORE_WEB_VITALS,
    AuditCategory.SECURITY_HEADERS,
)


class AuditOrchestrator:
    """
    Runs the check modules for one target and reduces their outcomes.

    Args:
        settings: defaults to the cached process settings
        transport: optional httpx transport for the per-run client (tests
            pass httpx.MockTransport)
        engines: engine instances overriding ENGINE_REGISTRY per category
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        engines: Mapping[AuditCategory, AuditEngine] | None = None,
    ):
        self.settings = settings or get_settings()
        self.transport = transport
        self.engine_overrides = dict(engines or {})
        self.scorer = ScoreAggregator()
        self.recommender = RecommendationGenerator()
        self._last_run: AuditRun | None = None

    @property
    def state(self) -> AuditState:
        """State of the most recently started run."""
        return self._last_run.state if self._last_run else AuditState.INITIALIZED

    def _start(self, target: AuditTarget) -> AuditRun:
        run = AuditRun(target=target)
        self._last_run = run
        return run

    def _engine_for(self, category: AuditCategory) -> AuditEngine:
        return self.engine_overrides.get(category) or ENGINE_REGISTRY[category]()

    # ─────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────

    async def run_audit(self, url: str) -> AuditResult:
        """
        Run all ten check modules against url.

        Raises:
            InvalidAuditTarget: url is not an auditable http(s) URL
        """
        target = AuditTarget.from_url(url)
        with audit_log_context(target.url, "full"):
            start = time.perf_counter()
            run = self._start(target)
            outcomes = await self._execute(run, list(ENGINE_REGISTRY))
            categories, overall, summary, recommendations = self._aggregate(run, outcomes)

            result = AuditResult(
                url=target.url,
                domain=target.domain,
                timestamp=datetime.now(timezone.utc),
                overall_score=overall,
                summary=summary,
                categories=AuditCategories(**_by_value(categories)),
                detailed_results=DetailedResults(**_results_by_value(outcomes)),
                recommendations=recommendations,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            self._finish(run, result.overall_score, result.summary.grade, result.duration_ms)
            return result

    async def run_quick_audit(self, url: str) -> QuickAuditResult:
        """
        Crawlability, Core Web Vitals and security only; the overall score is
        weighted over those three categories.

        Raises:
            InvalidAuditTarget: url is not an auditable http(s) URL
        """
        target = AuditTarget.from_url(url)
        with audit_log_context(target.url, "quick"):
            start = time.perf_counter()
            run = self._start(target)
            outcomes = await self._execute(run, list(QUICK_AUDIT_CATEGORIES))
            categories, overall, summary, recommendations = self._aggregate(run, outcomes)

            result = QuickAuditResult(
                url=target.url,
                domain=target.domain,
                timestamp=datetime.now(timezone.utc),
                overall_score=overall,
                summary=summary,
                categories=QuickAuditCategories(**_by_value(categories)),
                detailed_results=QuickDetailedResults(**_results_by_value(outcomes)),
                recommendations=recommendations,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            self._finish(run, result.overall_score, result.summary.grade, result.duration_ms)
            return result

    # ─────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────

    async def _execute(self, run: AuditRun, categories: Iterable[AuditCategory]) -> list[ModuleOutcome]:
        target = run.target
        engines = [self._engine_for(category) for category in categories]
        logger.info("Starting audit", url=target.url, engines=[e.ENGINE_NAME for e in engines])

        async with PageFetcher.build_client(self.settings, self.transport) as client:
            fetcher = PageFetcher(client, self.settings)

            run.transition(AuditState.FETCHING)
            snapshot = await self._fetch_snapshot(fetcher, target)
            context = AuditContext(target=target, snapshot=snapshot, fetcher=fetcher, settings=self.settings)

            run.transition(AuditState.AUDITING)
            # execute() never raises
            return list(await asyncio.gather(*[engine.execute(context) for engine in engines]))

    @staticmethod
    async def _fetch_snapshot(fetcher: PageFetcher, target: AuditTarget) -> DocumentSnapshot:
        try:
            return await fetcher.fetch_document(target.url)
        except FetchError as exc:
            logger.warning(
                "Root document fetch failed",
                url=target.url,
                status_code=exc.status_code,
                error=exc.reason,
            )
            return DocumentSnapshot.empty(target.url)

    def _aggregate(self, run: AuditRun, outcomes: list[ModuleOutcome]):
        run.transition(AuditState.AGGREGATING)
        categories, overall, summary = self.scorer.aggregate(outcomes)
        return categories, overall, summary, self.recommender.generate(categories)

    def _finish(self, run: AuditRun, overall_score: int, grade: str, duration_ms: float) -> None:
        run.transition(AuditState.COMPLETE)
        logger.info("Audit complete", url=run.target.url, overall_score=overall_score, grade=grade, duration_ms=duration_ms)


def _by_value(categories: Mapping[AuditCategory, AuditCategoryResult]) -> dict[str, AuditCategoryResult]:
    return {category.value: result for category, result in categories.items()}


def _results_by_value(outcomes: list[ModuleOutcome]) -> dict:
    return {outcome.category.value: outcome.results for outcome in outcomes}


# ─────────────────────────────────────────────
# Convenience entry points
# ─────────────────────────────────────────────

async def run_audit(url: str, settings: Settings | None = None) -> AuditResult:
    return await AuditOrchestrator(settings=settings).run_audit(url)


async def run_quick_audit(url: str, settings: Settings | None = None) -> QuickAuditResult:
    return await AuditOrchestrator(settings=settings).run_quick_audit(url)
