"""
Tests for the Internationalization Engine.
"""

import pytest

from seoaudit.engines.base import CheckStatus
from seoaudit.engines.fetcher import DocumentSnapshot
from seoaudit.engines.international.engine import (
    InternationalizationEngine,
    analyze_geography,
    analyze_language,
    collect_alternates,
)


def alternates(*pairs) -> str:
    return "".join(f'<link rel="alternate" hreflang="{code}" href="{href}">' for code, href in pairs)


HOME_ALTERNATES = alternates(
    ("en-US", "https://example.com/"),
    ("de-DE", "https://example.com/de/"),
    ("x-default", "https://example.com/"),
)


class TestDocumentLanguage:

    def test_collect_alternates(self, make_snapshot):
        found = collect_alternates(make_snapshot(alternates(("fr", "/fr/"), ("english", "/en/"), ("", "/x/"))))
        assert [(a.hreflang, a.href, a.valid_code) for a in found] == [
            ("fr", "https://example.com/fr/", True),
            ("english", "https://example.com/en/", False),
        ]

    def test_language_consistent_with_header(self, make_snapshot):
        language = analyze_language(make_snapshot('<html lang="en-GB"></html>', headers={"Content-Language": "en"}))
        assert language.html_lang == "en-GB"
        assert language.consistent

    def test_language_mismatch(self, make_snapshot):
        language = analyze_language(make_snapshot(
            '<html lang="en"><head><meta http-equiv="content-language" content="de"></head></html>'
        ))
        assert language.content_language == "de"
        assert not language.consistent

    def test_geography(self, make_snapshot):
        geo = analyze_geography(make_snapshot(
            '<meta property="og:locale" content="en_GB">'
            '<script type="application/ld+json">{"@type": "Offer", "priceCurrency": "GBP"}</script>'
        ))
        assert geo.targeting == "en_GB"
        assert geo.currency == "GBP"


class TestInternationalizationEngine:

    @pytest.mark.asyncio
    async def test_single_language_site(self, make_snapshot, make_context):
        outcome = await InternationalizationEngine().execute(make_context(make_snapshot('<html lang="en"></html>')))
        checks = {c.id: c for c in outcome.checks}
        assert checks["hreflang"].status == CheckStatus.PASS
        assert checks["hreflang"].message == "No hreflang implementation (acceptable for single-language sites)"
        assert checks["html-lang"].status == CheckStatus.PASS

    @pytest.mark.asyncio
    async def test_reciprocal_hreflang(self, site, make_snapshot, make_context):
        site.page("https://example.com/de/", HOME_ALTERNATES)
        snapshot = make_snapshot(f'<html lang="en"><head>{HOME_ALTERNATES}</head></html>')

        outcome = await InternationalizationEngine().execute(make_context(snapshot))
        hreflang = outcome.results.hreflang
        assert hreflang.valid, hreflang.errors
        assert hreflang.languages == ["en", "de"]
        assert hreflang.regions == ["US", "DE"]
        assert hreflang.x_default and hreflang.self_referencing and hreflang.bidirectional
        assert site.hits("https://example.com/de/") == 1
        assert next(c for c in outcome.checks if c.id == "hreflang").message == "Hreflang implemented for 2 languages"

    @pytest.mark.asyncio
    async def test_broken_hreflang(self, site, make_snapshot, make_context):
        site.page("https://example.com/fr/", "<html></html>")
        snapshot = make_snapshot(alternates(("fr", "https://example.com/fr/"), ("english", "https://example.com/en/")))

        outcome = await InternationalizationEngine().execute(make_context(snapshot))
        errors = outcome.results.hreflang.errors
        assert "Invalid hreflang code 'english'" in errors
        assert "No self-referencing hreflang annotation" in errors
        assert "Missing x-default hreflang" in errors
        assert "https://example.com/fr/ does not link back with hreflang" in errors
        assert "https://example.com/en/ does not link back with hreflang" in errors
        assert outcome.results.hreflang.bidirectional is False

        checks = {c.id: c for c in outcome.checks}
        assert checks["hreflang"].status == CheckStatus.WARNING
        assert checks["html-lang"].status == CheckStatus.WARNING

    @pytest.mark.asyncio
    async def test_unfetched_document(self, make_context):
        outcome = await InternationalizationEngine().execute(make_context(DocumentSnapshot.empty("https://example.com/")))
        assert not outcome.errored
        assert outcome.results.hreflang.implemented is False
