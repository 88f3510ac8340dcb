"""
Internationalization Engine

Validates hreflang annotations (code format, x-default, self reference,
return links from the alternate pages) and the declared document language.
"""

from __future__ import annotations

import asyncio
import re

from pydantic import BaseModel, ConfigDict, Field

from seoaudit.core.errors import FetchError
from seoaudit.engines.base import (
    AuditCategory,
    AuditContext,
    AuditEngine,
    CheckStatus,
    Impact,
    SEOCheck,
    check,
)
from seoaudit.engines.fetcher import DocumentSnapshot, PageFetcher
from seoaudit.engines.internal_links.crawler import normalize_page_url

HREFLANG_CODE = re.compile(r"^[a-z]{2,3}(-[A-Za-z]{2,4})?(-[A-Za-z]{2})?$|^x-default$", re.IGNORECASE)


class HreflangAlternate(BaseModel):
    model_config = ConfigDict(frozen=True)

    hreflang: str
    href: str
    valid_code: bool = True
    returns_link: bool | None = None     # None when not checked


class HreflangAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    implemented: bool = False
    valid: bool = False
    languages: list[str] = Field(default_factory=list)
    regions: list[str] = Field(default_factory=list)
    x_default: bool = False
    self_referencing: bool = False
    bidirectional: bool = False
    alternates: list[HreflangAlternate] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class LanguageAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    html_lang: str = ""
    content_language: str = ""
    consistent: bool = False


class GeographicAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    targeting: str = ""
    currency: str = ""


class InternationalizationResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    hreflang: HreflangAnalysis = Field(default_factory=HreflangAnalysis)
    language: LanguageAnalysis = Field(default_factory=LanguageAnalysis)
    geographic: GeographicAnalysis = Field(default_factory=GeographicAnalysis)


def collect_alternates(snapshot: DocumentSnapshot) -> list[HreflangAlternate]:
    alternates = []
    for link in snapshot.link_tags("alternate"):
        code = (link.get("hreflang") or "").strip()
        href = (link.get("href") or "").strip()
        if not code or not href:
            continue
        alternates.append(HreflangAlternate(
            hreflang=code,
            href=snapshot.resolve(href),
            valid_code=bool(HREFLANG_CODE.match(code)),
        ))
    return alternates


def analyze_language(snapshot: DocumentSnapshot) -> LanguageAnalysis:
    html = snapshot.soup.find("html")
    html_lang = (html.get("lang") or "").strip() if html else ""

    content_language = snapshot.header("content-language").strip()
    if not content_language:
        for meta in snapshot.soup.find_all("meta"):
            if (meta.get("http-equiv") or "").lower() == "content-language":
                content_language = (meta.get("content") or "").strip()
                break

    if html_lang and content_language:
        primary = html_lang.split("-")[0].lower()
        declared = {code.strip().split("-")[0].lower() for code in content_language.split(",")}
        consistent = primary in declared
    else:
        consistent = bool(html_lang or content_language)
    return LanguageAnalysis(html_lang=html_lang, content_language=content_language, consistent=consistent)


def analyze_geography(snapshot: DocumentSnapshot) -> GeographicAnalysis:
    currency = snapshot.meta("product:price:currency") or snapshot.meta("og:price:currency") or ""
    if not currency:
        match = re.search(r'"priceCurrency"\s*:\s*"([A-Z]{3})"', snapshot.html)
        currency = match.group(1) if match else ""
    return GeographicAnalysis(targeting=snapshot.meta("og:locale") or "", currency=currency)


class ReturnLinkChecker:
    """Fetches alternate pages and checks each one links back with hreflang."""

    def __init__(self, fetcher: PageFetcher, concurrency: int = 8):
        self.fetcher = fetcher
        self._semaphore = asyncio.Semaphore(concurrency)

    async def check_all(self, page_url: str, alternates: list[str]) -> dict[str, bool]:
        results = await asyncio.gather(*[self._returns_link(page_url, url) for url in alternates])
        return dict(zip(alternates, results))

    async def _returns_link(self, page_url: str, alternate_url: str) -> bool:
        wanted = normalize_page_url(page_url)
        async with self._semaphore:
            try:
                snapshot = await self.fetcher.fetch_document(alternate_url)
            except FetchError:
                return False
        return any(normalize_page_url(alt.href) == wanted for alt in collect_alternates(snapshot))


class InternationalizationEngine(AuditEngine):

    ENGINE_NAME = "internationalization"
    CATEGORY = AuditCategory.INTERNATIONALIZATION
    RESULTS_MODEL = InternationalizationResults

    async def run(self, context: AuditContext) -> InternationalizationResults:
        snapshot = context.snapshot
        if not snapshot.fetched:
            return InternationalizationResults()

        return InternationalizationResults(
            hreflang=await self._analyze_hreflang(context),
            language=analyze_language(snapshot),
            geographic=analyze_geography(snapshot),
        )

    async def _analyze_hreflang(self, context: AuditContext) -> HreflangAnalysis:
        snapshot = context.snapshot
        alternates = collect_alternates(snapshot)
        if not alternates:
            return HreflangAnalysis()

        page = normalize_page_url(snapshot.final_url)
        errors = [f"Invalid hreflang code {alt.hreflang!r}" for alt in alternates if not alt.valid_code]

        seen_codes: dict[str, str] = {}
        for alt in alternates:
            code = alt.hreflang.lower()
            if code in seen_codes and seen_codes[code] != alt.href:
                errors.append(f"hreflang {alt.hreflang!r} points to more than one URL")
            seen_codes.setdefault(code, alt.href)

        self_referencing = any(normalize_page_url(alt.href) == page for alt in alternates)
        if not self_referencing:
            errors.append("No self-referencing hreflang annotation")
        x_default = any(alt.hreflang.lower() == "x-default" for alt in alternates)
        if not x_default:
            errors.append("Missing x-default hreflang")

        to_check = list(dict.fromkeys(
            alt.href for alt in alternates if normalize_page_url(alt.href) != page
        ))[: context.settings.HREFLANG_MAX_RETURN_CHECKS]
        checker = ReturnLinkChecker(context.fetcher, context.settings.PROBE_CONCURRENCY)
        returns = await checker.check_all(snapshot.final_url, to_check)
        for url, ok in returns.items():
            if not ok:
                errors.append(f"{url} does not link back with hreflang")

        languages = list(dict.fromkeys(
            alt.hreflang.split("-")[0].lower() for alt in alternates if alt.hreflang.lower() != "x-default"
        ))
        regions = list(dict.fromkeys(
            alt.hreflang.split("-")[-1].upper()
            for alt in alternates
            if "-" in alt.hreflang and len(alt.hreflang.split("-")[-1]) == 2 and alt.hreflang.lower() != "x-default"
        ))

        return HreflangAnalysis(
            implemented=True,
            valid=not errors,
            languages=languages,
            regions=regions,
            x_default=x_default,
            self_referencing=self_referencing,
            bidirectional=all(returns.values()),
            alternates=[
                alt.model_copy(update={"returns_link": returns.get(alt.href)}) for alt in alternates
            ],
            errors=errors,
        )

    def build_checks(self, results: InternationalizationResults) -> list[SEOCheck]:
        hreflang = results.hreflang
        language = results.language

        if not hreflang.implemented:
            hreflang_status = CheckStatus.PASS
            hreflang_message = "No hreflang implementation (acceptable for single-language sites)"
        elif hreflang.valid:
            hreflang_status = CheckStatus.PASS
            hreflang_message = f"Hreflang implemented for {len(hreflang.languages)} languages"
        else:
            hreflang_status = CheckStatus.WARNING
            hreflang_message = f"Hreflang has {len(hreflang.errors)} issues"

        if not language.html_lang:
            lang_status, lang_message = CheckStatus.WARNING, "The <html> element has no lang attribute"
        elif not language.consistent:
            lang_status = CheckStatus.WARNING
            lang_message = f"html lang {language.html_lang!r} disagrees with Content-Language {language.content_language!r}"
        else:
            lang_status, lang_message = CheckStatus.PASS, f"Document language declared as {language.html_lang!r}"

        return [
            check("hreflang", "Hreflang Implementation", hreflang_status, hreflang_message, Impact.LOW,
                  details=hreflang.model_dump()),
            check("html-lang", "Language Declaration", lang_status, lang_message, Impact.LOW,
                  details={**language.model_dump(), **results.geographic.model_dump()}),
        ]
