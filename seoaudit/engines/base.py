"""
Base class and type contracts for all audit check modules.
Every module MUST inherit from AuditEngine and implement run() and build_checks().

Design principles:
- Engines are stateless: all state comes from the AuditContext
- Engines are independent: no engine imports another
- Engines return their own typed results record; checks are derived from it
- A failing engine never takes the audit down: execute() isolates it
"""

from __future__ import annotations

import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar
from urllib.parse import urlparse, urlunparse

import structlog
from pydantic import BaseModel, ConfigDict, Field

from seoaudit.core.errors import InvalidAuditTarget

if TYPE_CHECKING:
    from seoaudit.core.config import Settings
    from seoaudit.engines.fetcher import DocumentSnapshot, PageFetcher

logger = structlog.get_logger(__name__)


# ─────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────

class CheckStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


class Impact(str, Enum):
    LOW = "low"             # Minor - fix when convenient
    MEDIUM = "medium"       # Moderate impact - fix this sprint
    HIGH = "high"           # Significant impact - fix soon
    CRITICAL = "critical"   # Blocking issue - fix immediately


class AuditCategory(str, Enum):
    CRAWLABILITY = "crawlability"
    CANONICALIZATION = "canonicalization"
    CORE_WEB_VITALS = "core_web_vitals"
    MOBILE_FIRST_PARITY = "mobile_first_parity"
    STRUCTURED_DATA = "structured_data"
    SECURITY_HEADERS = "security_headers"
    INTERNAL_LINKING = "internal_linking"
    INTERNATIONALIZATION = "internationalization"
    ECOMMERCE_FACETS = "ecommerce_facets"
    SPAM_COMPLIANCE = "spam_compliance"


STATUS_RANK: dict[CheckStatus, int] = {
    CheckStatus.PASS: 0,
    CheckStatus.WARNING: 1,
    CheckStatus.FAIL: 2,
}

IMPACT_RANK: dict[Impact, int] = {
    Impact.LOW: 0,
    Impact.MEDIUM: 1,
    Impact.HIGH: 2,
    Impact.CRITICAL: 3,
}

CATEGORY_LABELS: dict[AuditCategory, str] = {
    AuditCategory.CRAWLABILITY: "Crawlability & Indexability",
    AuditCategory.CANONICALIZATION: "URL Canonicalization",
    AuditCategory.CORE_WEB_VITALS: "Core Web Vitals",
    AuditCategory.MOBILE_FIRST_PARITY: "Mobile-First Indexing",
    AuditCategory.STRUCTURED_DATA: "Structured Data",
    AuditCategory.SECURITY_HEADERS: "Security Headers",
    AuditCategory.INTERNAL_LINKING: "Internal Linking",
    AuditCategory.INTERNATIONALIZATION: "Internationalization",
    AuditCategory.ECOMMERCE_FACETS: "E-commerce Facets",
    AuditCategory.SPAM_COMPLIANCE: "Spam Compliance",
}

# Must sum to 1.0
CATEGORY_WEIGHTS: dict[AuditCategory, float] = {
    AuditCategory.CRAWLABILITY: 0.20,
    AuditCategory.CANONICALIZATION: 0.15,
    AuditCategory.CORE_WEB_VITALS: 0.15,
    AuditCategory.MOBILE_FIRST_PARITY: 0.12,
    AuditCategory.STRUCTURED_DATA: 0.10,
    AuditCategory.SECURITY_HEADERS: 0.08,
    AuditCategory.INTERNAL_LINKING: 0.08,
    AuditCategory.INTERNATIONALIZATION: 0.05,
    AuditCategory.ECOMMERCE_FACETS: 0.04,
    AuditCategory.SPAM_COMPLIANCE: 0.03,
}


# ─────────────────────────────────────────────
# Core data types
# ─────────────────────────────────────────────

class SEOCheck(BaseModel):
    """A single pass/warning/fail verdict produced by a check module."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    status: CheckStatus
    message: str
    impact: Impact
    details: dict[str, Any] | None = None
    threshold: float | str | None = None
    actual_value: Any = None


class AuditCategoryResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=100)
    checks: list[SEOCheck] = Field(default_factory=list)
    status: CheckStatus = CheckStatus.PASS
    impact: Impact = Impact.LOW
    errored: bool = False


class AuditTarget(BaseModel):
    """The normalized root URL being audited. Built once, before any I/O."""
    model_config = ConfigDict(frozen=True)

    url: str
    domain: str

    @classmethod
    def from_url(cls, raw: str) -> AuditTarget:
        """
        Validate and normalize a user supplied URL.
        Bare hosts ("example.com") are promoted to https.

        Raises:
            InvalidAuditTarget: scheme is not http(s) or the host is missing
        """
        candidate = (raw or "").strip()
        if not candidate:
            raise InvalidAuditTarget(raw, "URL is empty")
        if "://" not in candidate:
            candidate = f"https://{candidate}"

        parsed = urlparse(candidate)
        if parsed.scheme.lower() not in ("http", "https"):
            raise InvalidAuditTarget(raw, f"unsupported scheme {parsed.scheme!r}")
        if not parsed.hostname:
            raise InvalidAuditTarget(raw, "URL has no host")
        try:
            parsed.port
        except ValueError as exc:
            raise InvalidAuditTarget(raw, "URL has an invalid port") from exc

        url = urlunparse((
            parsed.scheme.lower(),
            parsed.netloc.lower(),
            parsed.path or "/",
            parsed.params,
            parsed.query,
            "",
        ))
        return cls(url=url, domain=parsed.hostname.lower())


@dataclass(frozen=True)
class AuditContext:
    """Everything an engine may read. Shared by all engines of one run."""
    target: AuditTarget
    snapshot: DocumentSnapshot
    fetcher: PageFetcher
    settings: Settings


@dataclass
class ModuleOutcome:
    """What execute() hands back to the orchestrator for one engine."""
    category: AuditCategory
    results: BaseModel
    checks: list[SEOCheck] = field(default_factory=list)
    error: str | None = None
    execution_time_ms: float = 0.0

    @property
    def errored(self) -> bool:
        return self.error is not None


# ─────────────────────────────────────────────
# Base Engine
# ─────────────────────────────────────────────

class AuditEngine(ABC):
    """
    Abstract base class for all check modules.

    All engines MUST:
    1. Implement run(context) -> results record
    2. Implement build_checks(results) -> list[SEOCheck]
    3. Declare RESULTS_MODEL whose no-argument instance is the empty default
    4. Be stateless - store nothing on self between calls
    """

    ENGINE_NAME: ClassVar[str] = "base"
    CATEGORY: ClassVar[AuditCategory]
    RESULTS_MODEL: ClassVar[type[BaseModel]]

    def __init__(self):
        self.logger = structlog.get_logger(self.__class__.__name__)

    @abstractmethod
    async def run(self, context: AuditContext) -> BaseModel:
        """
        Execute the module against the shared snapshot.

        Args:
            context: Target, snapshot, fetcher and settings for this run

        Returns:
            The module's typed results record
        """
        ...

    @abstractmethod
    def build_checks(self, results: Any) -> list[SEOCheck]:
        """Derive pass/warning/fail checks from a results record."""
        ...

    def empty_results(self) -> BaseModel:
        return self.RESULTS_MODEL()

    async def execute(self, context: AuditContext) -> ModuleOutcome:
        """
        Wrapper around run() that adds timing, logging, and error handling.
        Call this instead of run() directly. Never raises.
        """
        start = time.perf_counter()
        self.logger.info(
            "Engine starting",
            engine=self.ENGINE_NAME,
            url=context.target.url,
        )

        try:
            results = await self.run(context)
            checks = self.build_checks(results)
            elapsed = (time.perf_counter() - start) * 1000
            self.logger.info(
                "Engine complete",
                engine=self.ENGINE_NAME,
                url=context.target.url,
                check_count=len(checks),
                failed=sum(1 for c in checks if c.status == CheckStatus.FAIL),
                elapsed_ms=round(elapsed, 2),
            )
            return ModuleOutcome(
                category=self.CATEGORY,
                results=results,
                checks=checks,
                execution_time_ms=elapsed,
            )

        except Exception as exc:
            elapsed = (time.perf_counter() - start) * 1000
            self.logger.error(
                "Engine failed",
                engine=self.ENGINE_NAME,
                url=context.target.url,
                error=str(exc),
                elapsed_ms=round(elapsed, 2),
                exc_info=True,
            )
            results = self.empty_results()
            try:
                checks = self.build_checks(results)
            except Exception as checks_exc:
                self.logger.error(
                    "Default checks failed",
                    engine=self.ENGINE_NAME,
                    url=context.target.url,
                    error=str(checks_exc),
                )
                checks = []
            checks = checks + [self.module_error_check(exc)]
            return ModuleOutcome(
                category=self.CATEGORY,
                results=results,
                checks=checks,
                error=f"{type(exc).__name__}: {exc}",
                execution_time_ms=elapsed,
            )

    def module_error_check(self, exc: Exception) -> SEOCheck:
        return SEOCheck(
            id="module-error",
            name=f"{CATEGORY_LABELS[self.CATEGORY]} Analysis",
            status=CheckStatus.WARNING,
            message="This check module could not complete; results shown are defaults",
            impact=Impact.LOW,
            details={"error": f"{type(exc).__name__}: {exc}"},
        )


# ─────────────────────────────────────────────
# Helpers shared by engines
# ─────────────────────────────────────────────

def check(
    check_id: str,
    name: str,
    status: CheckStatus,
    message: str,
    impact: Impact,
    **extra: Any,
) -> SEOCheck:
    """Shorthand used by every engine's build_checks()."""
    return SEOCheck(id=check_id, name=name, status=status, message=message, impact=impact, **extra)


def round_half_up(value: float) -> int:
    """Round halves upward (2.5 -> 3), unlike the banker's rounding of round()."""
    return math.floor(value + 0.5)
