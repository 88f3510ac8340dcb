"""
Tests for the Prioritization Engine.
"""

from seoaudit.engines.base import AuditCategory, CheckStatus, Impact, SEOCheck
from seoaudit.engines.prioritization.engine import (
    DEFAULT_STEPS,
    RecommendationGenerator,
    generate_recommendations,
    summarize_recommendations,
)
from seoaudit.engines.scoring.engine import build_category


def make_check(check_id: str, status: CheckStatus, impact: Impact, name: str | None = None) -> SEOCheck:
    return SEOCheck(id=check_id, name=name or check_id, status=status, message=f"{check_id} message", impact=impact)


class TestRecommendationGenerator:

    def test_one_recommendation_per_non_passing_check(self):
        categories = {
            AuditCategory.CRAWLABILITY: build_category([
                make_check("robots-txt", CheckStatus.FAIL, Impact.HIGH),
                make_check("xml-sitemap", CheckStatus.PASS, Impact.CRITICAL),
                make_check("canonical-tags", CheckStatus.WARNING, Impact.MEDIUM),
            ]),
        }
        recs = generate_recommendations(categories)
        assert [r.id for r in recs] == ["crawlability-robots-txt", "crawlability-canonical-tags"]

    def test_fields_copied_from_check(self):
        categories = {
            AuditCategory.SECURITY_HEADERS: build_category([
                make_check("https", CheckStatus.FAIL, Impact.CRITICAL, name="HTTPS Implementation"),
            ]),
        }
        rec = generate_recommendations(categories)[0]
        assert rec.id == "security_headers-https"
        assert rec.category == "Security Headers"
        assert rec.title == "HTTPS Implementation"
        assert rec.issue == "https message"
        assert rec.priority == Impact.CRITICAL
        assert rec.business_impact == "high"
        assert "HTTPS" in rec.recommendation
        assert rec.implementation_steps

    def test_known_remediation_text(self):
        categories = {
            AuditCategory.MOBILE_FIRST_PARITY: build_category([
                make_check("viewport-tag", CheckStatus.FAIL, Impact.HIGH),
            ]),
        }
        rec = generate_recommendations(categories)[0]
        assert rec.recommendation.startswith('Add viewport meta tag: <meta name="viewport"')
        assert rec.estimated_effort == "low"
        assert rec.technical_complexity == "low"

    def test_unknown_check_uses_generic_template(self):
        categories = {
            AuditCategory.SPAM_COMPLIANCE: build_category([
                make_check("something-new", CheckStatus.WARNING, Impact.LOW, name="Something New"),
            ]),
        }
        rec = generate_recommendations(categories)[0]
        assert rec.recommendation == "Address Something New issues identified in the audit"
        assert rec.impact == "Improves overall SEO performance and search visibility"
        assert rec.business_impact == "medium"
        assert rec.implementation_steps == DEFAULT_STEPS

    def test_sorted_by_priority_and_stable(self):
        categories = {
            AuditCategory.CRAWLABILITY: build_category([
                make_check("a", CheckStatus.WARNING, Impact.LOW),
                make_check("b", CheckStatus.FAIL, Impact.MEDIUM),
            ]),
            AuditCategory.CANONICALIZATION: build_category([
                make_check("c", CheckStatus.FAIL, Impact.CRITICAL),
                make_check("d", CheckStatus.WARNING, Impact.MEDIUM),
                make_check("e", CheckStatus.FAIL, Impact.HIGH),
            ]),
        }
        recs = RecommendationGenerator().generate(categories)
        assert [r.id for r in recs] == [
            "canonicalization-c",
            "canonicalization-e",
            "crawlability-b",
            "canonicalization-d",
            "crawlability-a",
        ]

    def test_ids_are_unique(self):
        categories = {
            category: build_category([make_check("module-error", CheckStatus.WARNING, Impact.LOW)])
            for category in AuditCategory
        }
        ids = [r.id for r in generate_recommendations(categories)]
        assert len(ids) == len(set(ids)) == len(AuditCategory)

    def test_all_passing_yields_nothing(self):
        categories = {AuditCategory.CRAWLABILITY: build_category([make_check("x", CheckStatus.PASS, Impact.HIGH)])}
        assert generate_recommendations(categories) == []


class TestRecommendationSummary:

    def test_buckets(self):
        categories = {
            AuditCategory.CRAWLABILITY: build_category([
                make_check("xml-sitemap", CheckStatus.FAIL, Impact.CRITICAL),
                make_check("robots-txt", CheckStatus.FAIL, Impact.HIGH),
            ]),
            AuditCategory.INTERNAL_LINKING: build_category([
                make_check("page-depth", CheckStatus.WARNING, Impact.MEDIUM),
            ]),
        }
        summary = summarize_recommendations(generate_recommendations(categories))
        assert [r.id for r in summary.top_issues] == ["crawlability-xml-sitemap", "crawlability-robots-txt"]
        assert [r.id for r in summary.quick_wins] == ["crawlability-robots-txt"]
        assert [r.id for r in summary.technical_debt] == ["internal_linking-page-depth"]

    def test_buckets_capped_at_five(self):
        checks = [make_check(f"check-{i}", CheckStatus.FAIL, Impact.CRITICAL) for i in range(8)]
        recs = generate_recommendations({AuditCategory.SPAM_COMPLIANCE: build_category(checks)})
        assert len(summarize_recommendations(recs).top_issues) == 5
