"""
Spam & Compliance Engine

Signals from Google's spam policies that can be read off a single document:
thin content, keyword stuffing, hidden text, sneaky redirects, intrusive
interstitials and suspicious outbound links. Readability is reported
alongside (Flesch reading ease / Flesch-Kincaid grade via textstat).
"""

from __future__ import annotations

import re
from collections import Counter
from urllib.parse import urljoin, urlparse

import textstat
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
from seoaudit.engines.fetcher import DocumentSnapshot, anchor_hrefs

THIN_CONTENT_WORDS = 300
STUFFING_DENSITY = 5.0          # percent of all words
STUFFING_MIN_OCCURRENCES = 5
READABILITY_MIN_WORDS = 100
HIDDEN_TEXT_MIN_WORDS = 20
LINK_FARM_MIN_EXTERNAL = 100

STOPWORDS = frozenset("""
a about above after again against all am an and any are as at be because been before being below
between both but by can did do does doing down during each few for from further had has have having
he her here hers him his how i if in into is it its just me more most my no nor not now of off on
once only or other our ours out over own same she should so some such than that the their theirs
them then there these they this those through to too under until up very was we were what when
where which while who whom why will with you your yours
""".split())

HIDDEN_STYLE = re.compile(
    r"display\s*:\s*none|visibility\s*:\s*hidden|text-indent\s*:\s*-\d{3,}|font-size\s*:\s*0(px|em|rem)?\s*(;|$)",
    re.IGNORECASE,
)
INTERSTITIAL_MARKER = re.compile(r"interstitial|popup|pop-up|modal|overlay|newsletter-signup|lightbox", re.IGNORECASE)
JS_REDIRECT = re.compile(r"""(?:window|document|top)\.location(?:\.href)?\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
SPAM_ANCHOR = re.compile(
    r"\b(casino|viagra|cialis|payday|loans?\b|porn|replica|escort|betting|crypto\s+giveaway)\b",
    re.IGNORECASE,
)


class KeywordAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    stuffing: bool = False
    density: float = 0.0
    top_terms: dict[str, int] = Field(default_factory=dict)
    natural: bool = False


class ReadabilityAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    measured: bool = False
    grade: float = 0.0
    score: float = 0.0


class ContentAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    word_count: int = 0
    thin: bool = False
    duplicate: int = 0          # percent of paragraphs repeated on the page
    keyword: KeywordAnalysis = Field(default_factory=KeywordAnalysis)
    readability: ReadabilityAnalysis = Field(default_factory=ReadabilityAnalysis)


class LinkSpamAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    quality: str = "poor"       # good | suspicious | poor
    external_links: int = 0
    paid_links: int = 0
    suspicious_links: list[str] = Field(default_factory=list)
    unnatural_patterns: bool = False
    link_farm: bool = False


class TechnicalSpamAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    hidden_content: bool = False
    hidden_snippets: list[str] = Field(default_factory=list)
    sneaky_redirect: bool = False
    redirect_target: str | None = None


class UserExperienceAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    intrusive: bool = False
    popups: bool = False
    interstitials: bool = False


class SpamComplianceResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    analyzed: bool = False
    content: ContentAnalysis = Field(default_factory=ContentAnalysis)
    links: LinkSpamAnalysis = Field(default_factory=LinkSpamAnalysis)
    technical: TechnicalSpamAnalysis = Field(default_factory=TechnicalSpamAnalysis)
    user: UserExperienceAnalysis = Field(default_factory=UserExperienceAnalysis)


# ─────────────────────────────────────────────
# Content
# ─────────────────────────────────────────────

def analyze_keywords(words: list[str]) -> KeywordAnalysis:
    terms = Counter(w for w in words if w not in STOPWORDS and len(w) > 2 and not w.isdigit())
    if not words or not terms:
        return KeywordAnalysis(natural=True)
    top = dict(terms.most_common(5))
    _, occurrences = terms.most_common(1)[0]
    density = round(occurrences / len(words) * 100, 2)
    stuffing = density > STUFFING_DENSITY and occurrences >= STUFFING_MIN_OCCURRENCES
    return KeywordAnalysis(stuffing=stuffing, density=density, top_terms=top, natural=not stuffing)


def analyze_readability(text: str, word_count: int) -> ReadabilityAnalysis:
    if word_count < READABILITY_MIN_WORDS:
        return ReadabilityAnalysis()
    return ReadabilityAnalysis(
        measured=True,
        grade=round(textstat.flesch_kincaid_grade(text), 1),
        score=round(textstat.flesch_reading_ease(text), 1),
    )


def duplicate_paragraph_percentage(snapshot: DocumentSnapshot) -> int:
    paragraphs = [
        " ".join(p.get_text(" ", strip=True).split()).lower()
        for p in snapshot.soup.find_all("p")
    ]
    paragraphs = [p for p in paragraphs if len(p) > 40]
    if not paragraphs:
        return 0
    repeated = sum(count - 1 for count in Counter(paragraphs).values() if count > 1)
    return round(repeated / len(paragraphs) * 100)


def analyze_content(snapshot: DocumentSnapshot) -> ContentAnalysis:
    text = snapshot.visible_text
    words = re.findall(r"[a-zA-ZÀ-ɏ']+", text.lower())
    word_count = len(text.split())
    return ContentAnalysis(
        word_count=word_count,
        thin=word_count < THIN_CONTENT_WORDS,
        duplicate=duplicate_paragraph_percentage(snapshot),
        keyword=analyze_keywords(words),
        readability=analyze_readability(text, word_count),
    )


# ─────────────────────────────────────────────
# Links, technical and UX signals
# ─────────────────────────────────────────────

def analyze_link_spam(snapshot: DocumentSnapshot) -> LinkSpamAnalysis:
    host = (urlparse(snapshot.final_url).hostname or "").lower()
    external = 0
    paid = 0
    suspicious: list[str] = []
    for anchor in snapshot.soup.find_all("a", href=True):
        target = urlparse(urljoin(snapshot.final_url, anchor["href"].strip()))
        if target.scheme not in ("http", "https") or (target.hostname or "").lower() == host:
            continue
        external += 1
        rel = anchor.get("rel") or []
        rel = rel if isinstance(rel, list) else rel.split()
        if "sponsored" in rel:
            paid += 1
        if SPAM_ANCHOR.search(anchor.get_text(" ", strip=True)) and "nofollow" not in rel and "sponsored" not in rel:
            suspicious.append(target.geturl())

    total = len(anchor_hrefs(snapshot.soup))
    link_farm = external >= LINK_FARM_MIN_EXTERNAL and total > 0 and external / total > 0.8
    if len(suspicious) > 5 or link_farm:
        quality = "poor"
    elif suspicious:
        quality = "suspicious"
    else:
        quality = "good"
    return LinkSpamAnalysis(
        quality=quality,
        external_links=external,
        paid_links=paid,
        suspicious_links=suspicious[:10],
        unnatural_patterns=bool(suspicious),
        link_farm=link_farm,
    )


def analyze_technical(snapshot: DocumentSnapshot) -> TechnicalSpamAnalysis:
    hidden = []
    for element in snapshot.soup.find_all(style=HIDDEN_STYLE):
        text = element.get_text(" ", strip=True)
        if len(text.split()) >= HIDDEN_TEXT_MIN_WORDS:
            hidden.append(text[:120])

    host = (urlparse(snapshot.final_url).hostname or "").lower()
    redirect_target = None
    for meta in snapshot.soup.find_all("meta"):
        if (meta.get("http-equiv") or "").lower() == "refresh":
            match = re.search(r"url\s*=\s*['\"]?([^'\";]+)", meta.get("content") or "", re.IGNORECASE)
            if match:
                redirect_target = snapshot.resolve(match.group(1))
                break
    if redirect_target is None:
        for script in snapshot.soup.find_all("script", src=False):
            match = JS_REDIRECT.search(script.get_text() or "")
            if match:
                redirect_target = snapshot.resolve(match.group(1))
                break

    sneaky = redirect_target is not None and (urlparse(redirect_target).hostname or "").lower() != host
    return TechnicalSpamAnalysis(
        hidden_content=bool(hidden),
        hidden_snippets=hidden[:5],
        sneaky_redirect=sneaky,
        redirect_target=redirect_target,
    )


def analyze_user_experience(snapshot: DocumentSnapshot) -> UserExperienceAnalysis:
    popups = False
    interstitials = False
    for element in snapshot.soup.find_all(["div", "section", "aside", "dialog"]):
        marker = " ".join([element.get("id") or "", " ".join(element.get("class") or [])])
        if not INTERSTITIAL_MARKER.search(marker):
            continue
        popups = True
        style = (element.get("style") or "").replace(" ", "").lower()
        if element.name == "dialog" and element.has_attr("open"):
            interstitials = True
        if "position:fixed" in style and ("100%" in style or "100vh" in style or "inset:0" in style):
            interstitials = True
    return UserExperienceAnalysis(intrusive=interstitials, popups=popups, interstitials=interstitials)


class SpamComplianceEngine(AuditEngine):

    ENGINE_NAME = "spam_compliance"
    CATEGORY = AuditCategory.SPAM_COMPLIANCE
    RESULTS_MODEL = SpamComplianceResults

    async def run(self, context: AuditContext) -> SpamComplianceResults:
        snapshot = context.snapshot
        if not snapshot.fetched:
            return SpamComplianceResults()
        return SpamComplianceResults(
            analyzed=True,
            content=analyze_content(snapshot),
            links=analyze_link_spam(snapshot),
            technical=analyze_technical(snapshot),
            user=analyze_user_experience(snapshot),
        )

    def build_checks(self, results: SpamComplianceResults) -> list[SEOCheck]:
        if not results.analyzed:
            return [
                check("content-quality", "Content Quality", CheckStatus.WARNING,
                      "Page content could not be analyzed", Impact.MEDIUM),
            ]

        content = results.content
        if content.keyword.stuffing:
            quality_status = CheckStatus.FAIL
            quality_message = f"Keyword density of {content.keyword.density}% suggests keyword stuffing"
        elif content.thin:
            quality_status = CheckStatus.WARNING
            quality_message = f"Content may be too thin ({content.word_count} words)"
        else:
            quality_status = CheckStatus.PASS
            quality_message = "Content quality is acceptable"

        technical = results.technical
        if technical.sneaky_redirect:
            technical_status = CheckStatus.FAIL
            technical_message = f"Client-side redirect to another host: {technical.redirect_target}"
        elif technical.hidden_content:
            technical_status = CheckStatus.WARNING
            technical_message = f"{len(technical.hidden_snippets)} blocks of hidden text found"
        else:
            technical_status = CheckStatus.PASS
            technical_message = "No hidden text or sneaky redirects detected"

        links = results.links
        link_status = {
            "good": CheckStatus.PASS,
            "suspicious": CheckStatus.WARNING,
            "poor": CheckStatus.FAIL,
        }[links.quality]

        checks = [
            check("content-quality", "Content Quality", quality_status, quality_message, Impact.MEDIUM,
                  details=content.model_dump(), threshold=THIN_CONTENT_WORDS, actual_value=content.word_count),
            check("hidden-content", "Hidden Content & Sneaky Redirects", technical_status, technical_message,
                  Impact.HIGH, details=technical.model_dump()),
            check("link-quality", "Outbound Link Quality", link_status,
                  f"{links.external_links} external links, quality: {links.quality}", Impact.MEDIUM,
                  details=links.model_dump()),
            check(
                "intrusive-interstitials",
                "Intrusive Interstitials",
                CheckStatus.WARNING if results.user.intrusive else CheckStatus.PASS,
                "Full-screen overlay detected" if results.user.intrusive else "No intrusive interstitials detected",
                Impact.LOW,
                details=results.user.model_dump(),
            ),
        ]

        readability = content.readability
        if readability.measured:
            checks.append(check(
                "readability",
                "Readability",
                CheckStatus.PASS if readability.score >= 50 else CheckStatus.WARNING,
                f"Flesch reading ease {readability.score} (grade {readability.grade})",
                Impact.LOW,
                details=readability.model_dump(),
                threshold=50,
                actual_value=readability.score,
            ))
        return checks
