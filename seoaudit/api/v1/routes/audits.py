"""
Audit API Routes

No business logic lives here.
Routes validate input, call the orchestrator, return responses.
"""

from __future__ import annotations

from typing import Annotated, Union

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from seoaudit.core.config import Settings, get_settings
from seoaudit.core.errors import InvalidAuditTarget
from seoaudit.core.store import AuditStoreDep
from seoaudit.engines.base import AuditTarget
from seoaudit.engines.orchestrator import AuditOrchestrator
from seoaudit.engines.prioritization.engine import summarize_recommendations
from seoaudit.models.audit import AuditResult, QuickAuditResult, RecommendationSummary

logger = structlog.get_logger(__name__)
router = APIRouter()


# ─────────────────────────────────────────────
# Request / Response Schemas
# ─────────────────────────────────────────────

class CreateAuditRequest(BaseModel):
    url: str = Field(min_length=1, max_length=2048, examples=["https://example.com"])


def get_orchestrator(settings: Annotated[Settings, Depends(get_settings)]) -> AuditOrchestrator:
    """One orchestrator per request; override in tests to inject a mock transport."""
    return AuditOrchestrator(settings=settings)


Orchestrator = Annotated[AuditOrchestrator, Depends(get_orchestrator)]


def _invalid_target(exc: InvalidAuditTarget) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────

@router.post(
    "",
    response_model=AuditResult,
    summary="Run a full technical SEO audit",
    description="Runs all ten check modules against the URL and returns the scored result.",
)
async def create_audit(
    request: CreateAuditRequest,
    orchestrator: Orchestrator,
    store: AuditStoreDep,
) -> AuditResult:
    try:
        result = await orchestrator.run_audit(request.url)
    except InvalidAuditTarget as exc:
        logger.info("Rejected audit target", url=request.url, reason=exc.reason)
        raise _invalid_target(exc) from exc

    await store.save(result)
    return result


@router.post(
    "/quick",
    response_model=QuickAuditResult,
    summary="Run a quick audit",
    description="Crawlability, Core Web Vitals and security headers only.",
)
async def create_quick_audit(
    request: CreateAuditRequest,
    orchestrator: Orchestrator,
    store: AuditStoreDep,
) -> QuickAuditResult:
    try:
        result = await orchestrator.run_quick_audit(request.url)
    except InvalidAuditTarget as exc:
        logger.info("Rejected audit target", url=request.url, reason=exc.reason)
        raise _invalid_target(exc) from exc

    await store.save(result)
    return result


async def _latest_or_404(url: str, store: AuditStoreDep) -> Union[AuditResult, QuickAuditResult]:
    try:
        target = AuditTarget.from_url(url)
    except InvalidAuditTarget as exc:
        raise _invalid_target(exc) from exc

    result = await store.latest(target.url)
    if result is None:
        raise HTTPException(status_code=404, detail=f"No audit found for {target.url}")
    return result


@router.get(
    "/latest",
    response_model=Union[AuditResult, QuickAuditResult],
    summary="Get the most recent audit for a URL",
)
async def get_latest_audit(
    store: AuditStoreDep,
    url: str = Query(..., min_length=1),
) -> Union[AuditResult, QuickAuditResult]:
    return await _latest_or_404(url, store)


@router.get(
    "/latest/recommendations",
    response_model=RecommendationSummary,
    summary="Get top issues, quick wins and technical debt for the latest audit",
)
async def get_latest_recommendations(
    store: AuditStoreDep,
    url: str = Query(..., min_length=1),
) -> RecommendationSummary:
    result = await _latest_or_404(url, store)
    return summarize_recommendations(result.recommendations)
