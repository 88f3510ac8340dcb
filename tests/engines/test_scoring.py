"""
Tests for the Scoring Engine: category scores, weighted overall score,
grading and summary counts.
"""

import pytest

from seoaudit.engines.base import (
    CATEGORY_WEIGHTS,
    AuditCategory,
    CheckStatus,
    Impact,
    ModuleOutcome,
    SEOCheck,
    round_half_up,
)
from seoaudit.engines.scoring.engine import (
    ScoreAggregator,
    build_category,
    calculate_grade,
    category_score,
    summarize,
    weighted_score,
)
from seoaudit.engines.structured_data.engine import StructuredDataResults


def make_check(status: CheckStatus, impact: Impact = Impact.MEDIUM, check_id: str = "c") -> SEOCheck:
    return SEOCheck(id=check_id, name=check_id, status=status, message="", impact=impact)


PASS = make_check(CheckStatus.PASS)
WARN = make_check(CheckStatus.WARNING)
FAIL = make_check(CheckStatus.FAIL)


# ─────────────────────────────────────────────
# Weights
# ─────────────────────────────────────────────

class TestCategoryWeights:

    def test_weights_sum_to_one(self):
        assert sum(CATEGORY_WEIGHTS.values()) == pytest.approx(1.0)

    def test_every_category_has_a_weight(self):
        assert set(CATEGORY_WEIGHTS) == set(AuditCategory)


# ─────────────────────────────────────────────
# Category scores
# ─────────────────────────────────────────────

class TestCategoryScore:

    def test_empty_category_scores_zero(self):
        assert category_score([]) == 0

    def test_all_passing_scores_hundred(self):
        assert category_score([PASS, PASS]) == 100

    def test_mean_of_status_values(self):
        assert category_score([PASS, WARN]) == 85
        assert category_score([WARN, FAIL]) == 50

    def test_rounds_half_up(self):
        # (100 + 100 + 100 + 30) / 4 = 82.5
        assert category_score([PASS, PASS, PASS, FAIL]) == 83

    def test_round_half_up_helper(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(82.5) == 83
        assert round_half_up(82.49) == 82

    def test_status_is_worst_and_impact_is_highest(self):
        result = build_category([
            make_check(CheckStatus.PASS, Impact.CRITICAL),
            make_check(CheckStatus.WARNING, Impact.LOW),
        ])
        assert result.status == CheckStatus.WARNING
        assert result.impact == Impact.CRITICAL

    def test_empty_category_defaults(self):
        result = build_category([])
        assert result.score == 0
        assert result.status == CheckStatus.PASS
        assert result.impact == Impact.LOW


# ─────────────────────────────────────────────
# Overall score
# ─────────────────────────────────────────────

class TestWeightedScore:

    def test_all_hundred(self):
        assert weighted_score({c: 100 for c in AuditCategory}) == 100

    def test_all_zero(self):
        assert weighted_score({c: 0 for c in AuditCategory}) == 0

    def test_weighted_mean(self):
        scores = {c: 0 for c in AuditCategory}
        scores[AuditCategory.CRAWLABILITY] = 100
        assert weighted_score(scores) == 20

    def test_renormalizes_over_present_categories(self):
        scores = {
            AuditCategory.CRAWLABILITY: 100,
            AuditCategory.CORE_WEB_VITALS: 0,
            AuditCategory.SECURITY_HEADERS: 100,
        }
        # (0.20 * 100 + 0.08 * 100) / 0.43 = 65.1
        assert weighted_score(scores) == 65

    @pytest.mark.parametrize("value", [0, 13, 50, 77, 99, 100])
    def test_uniform_scores_return_that_score(self, value):
        assert weighted_score({c: value for c in AuditCategory}) == value

    def test_bounded(self):
        for seed in range(0, 101, 7):
            scores = {c: (seed * (i + 3)) % 101 for i, c in enumerate(AuditCategory)}
            overall = weighted_score(scores)
            assert min(scores.values()) <= overall <= max(scores.values())
            assert 0 <= overall <= 100

    def test_no_categories(self):
        assert weighted_score({}) == 0


# ─────────────────────────────────────────────
# Grades
# ─────────────────────────────────────────────

class TestGrades:

    @pytest.mark.parametrize("score,grade", [
        (100, "A"), (90, "A"), (89.9, "B"), (80, "B"), (79, "C"),
        (70, "C"), (69, "D"), (60, "D"), (59.5, "F"), (0, "F"),
    ])
    def test_grade_bands(self, score, grade):
        assert calculate_grade(score) == grade

    def test_grade_is_monotonic(self):
        order = {"F": 0, "D": 1, "C": 2, "B": 3, "A": 4}
        grades = [calculate_grade(step / 2) for step in range(0, 201)]
        ranks = [order[g] for g in grades]
        assert ranks == sorted(ranks)

    def test_every_score_maps_to_one_grade(self):
        for score in range(0, 101):
            assert calculate_grade(score) in {"A", "B", "C", "D", "F"}


# ─────────────────────────────────────────────
# Summary / aggregation
# ─────────────────────────────────────────────

class TestSummary:

    def test_counts(self):
        category = build_category([
            make_check(CheckStatus.FAIL, Impact.CRITICAL, "a"),
            make_check(CheckStatus.FAIL, Impact.HIGH, "b"),
            make_check(CheckStatus.WARNING, Impact.CRITICAL, "c"),
            make_check(CheckStatus.PASS, Impact.LOW, "d"),
        ])
        summary = summarize([category], overall_score=72)
        assert summary.critical == 1
        assert summary.warnings == 2
        assert summary.passed == 1
        assert summary.total_checks == 4
        assert summary.grade == "C"
        assert summary.errored_modules == []

    def test_aggregate_flags_errored_modules(self):
        outcomes = [
            ModuleOutcome(category=AuditCategory.CRAWLABILITY, results=StructuredDataResults(), checks=[PASS]),
            ModuleOutcome(
                category=AuditCategory.STRUCTURED_DATA,
                results=StructuredDataResults(),
                checks=[WARN],
                error="RuntimeError: boom",
            ),
        ]
        categories, overall, summary = ScoreAggregator().aggregate(outcomes)
        assert categories[AuditCategory.STRUCTURED_DATA].errored is True
        assert categories[AuditCategory.CRAWLABILITY].errored is False
        assert summary.errored_modules == ["structured_data"]
        # (0.20 * 100 + 0.10 * 70) / 0.30 = 90
        assert overall == 90
