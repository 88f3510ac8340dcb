"""
Scoring Engine - Reduces module outcomes into category results, an overall
score and a letter grade.

Scoring Model:
- Check value: pass=100, warning=70, fail=30
- Category score = rounded mean of its check values (0 when it has no checks)
- Category status = worst check status, impact = highest check impact
- Overall = round(Σ score_i × weight_i / Σ weight_i) over the categories present,
  so a quick audit renormalizes over its three categories
- Grade: A ≥90, B ≥80, C ≥70, D ≥60, else F

All rounding is half-up.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import structlog

from seoaudit.engines.base import (
    CATEGORY_WEIGHTS,
    IMPACT_RANK,
    STATUS_RANK,
    AuditCategory,
    AuditCategoryResult,
    CheckStatus,
    Impact,
    ModuleOutcome,
    SEOCheck,
    round_half_up,
)
from seoaudit.models.audit import AuditSummary

logger = structlog.get_logger(__name__)

STATUS_VALUES: dict[CheckStatus, int] = {
    CheckStatus.PASS: 100,
    CheckStatus.WARNING: 70,
    CheckStatus.FAIL: 30,
}

GRADE_BANDS: list[tuple[int, str]] = [
    (90, "A"),
    (80, "B"),
    (70, "C"),
    (60, "D"),
]


def calculate_grade(score: float) -> str:
    for threshold, grade in GRADE_BANDS:
        if score >= threshold:
            return grade
    return "F"


def category_score(checks: list[SEOCheck]) -> int:
    if not checks:
        return 0
    return round_half_up(sum(STATUS_VALUES[c.status] for c in checks) / len(checks))


def category_status(checks: list[SEOCheck]) -> CheckStatus:
    return max((c.status for c in checks), key=STATUS_RANK.__getitem__, default=CheckStatus.PASS)


def category_impact(checks: list[SEOCheck]) -> Impact:
    return max((c.impact for c in checks), key=IMPACT_RANK.__getitem__, default=Impact.LOW)


def build_category(checks: list[SEOCheck], errored: bool = False) -> AuditCategoryResult:
    return AuditCategoryResult(
        score=category_score(checks),
        checks=checks,
        status=category_status(checks),
        impact=category_impact(checks),
        errored=errored,
    )


def weighted_score(
    scores: Mapping[AuditCategory, float],
    weights: Mapping[AuditCategory, float] = CATEGORY_WEIGHTS,
) -> int:
    """Weighted mean over the categories present in scores, clamped to [0, 100]."""
    total_weight = sum(weights[category] for category in scores)
    if total_weight <= 0:
        return 0
    weighted = sum(score * weights[category] for category, score in scores.items())
    return min(100, max(0, round_half_up(weighted / total_weight)))


def summarize(categories: Iterable[AuditCategoryResult], overall_score: int,
              errored_modules: list[str] | None = None) -> AuditSummary:
    """
    critical = failing checks with critical impact
    warnings = all other failing checks plus warning checks
    """
    critical = warnings = passed = 0
    for category in categories:
        for c in category.checks:
            if c.status == CheckStatus.FAIL:
                if c.impact == Impact.CRITICAL:
                    critical += 1
                else:
                    warnings += 1
            elif c.status == CheckStatus.WARNING:
                warnings += 1
            else:
                passed += 1

    return AuditSummary(
        critical=critical,
        warnings=warnings,
        passed=passed,
        total_checks=critical + warnings + passed,
        grade=calculate_grade(overall_score),
        errored_modules=errored_modules or [],
    )


class ScoreAggregator:
    """
    Aggregates module outcomes into category results and an overall score.
    Runs AFTER all check modules complete.
    """

    def aggregate(
        self,
        outcomes: list[ModuleOutcome],
    ) -> tuple[dict[AuditCategory, AuditCategoryResult], int, AuditSummary]:
        categories = {
            outcome.category: build_category(outcome.checks, errored=outcome.errored)
            for outcome in outcomes
        }
        overall = weighted_score({category: result.score for category, result in categories.items()})
        errored = [outcome.category.value for outcome in outcomes if outcome.errored]
        summary = summarize(categories.values(), overall, errored)

        logger.info(
            "Scores aggregated",
            overall_score=overall,
            grade=summary.grade,
            critical=summary.critical,
            warnings=summary.warnings,
            errored_modules=errored,
        )
        return categories, overall, summary
