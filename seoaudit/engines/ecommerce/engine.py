"""
E-commerce Facets Engine

Heuristic checks for storefront pages: faceted navigation parameter
handling, pagination markup, product schema completeness and category
page signals. Non-commerce pages pass with an explanatory message.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlparse

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
from seoaudit.engines.fetcher import DocumentSnapshot, anchor_hrefs, flatten_json_ld, node_types

FACET_PARAMS = frozenset({
    "color", "colour", "size", "brand", "price", "min_price", "max_price", "sort", "sort_by",
    "order", "orderby", "filter", "filters", "facet", "material", "rating", "style",
})
PAGE_PARAMS = frozenset({"page", "p", "pg", "paged"})
COMMERCE_MARKERS = re.compile(r"add[\s_-]?to[\s_-]?(cart|basket|bag)|checkout|shopping[\s_-]?cart", re.IGNORECASE)
LOAD_MORE = re.compile(r"load\s+more|show\s+more\s+products", re.IGNORECASE)
INFINITE_SCROLL = re.compile(r"infinite[-_\s]?scroll", re.IGNORECASE)
PRODUCT_TYPES = frozenset({"Product", "ProductGroup", "Offer", "AggregateOffer"})
LISTING_TYPES = frozenset({"ItemList", "CollectionPage", "OfferCatalog"})


class FacetedNavigationAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    implemented: bool = False
    facet_links: int = 0
    nofollow_facet_links: int = 0
    indexable: bool = False
    parameter_handling: str = "poor"      # good | needs_improvement | poor
    noindex_usage: bool = False
    parameters: list[str] = Field(default_factory=list)


class PaginationAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    rel_next_prev: bool = False
    canonicalization: str = "self_referencing"    # view_all | page_1 | self_referencing
    load_more: bool = False
    infinite_scroll: bool = False


class ProductAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    structured_data: bool = False
    reviews: bool = False
    availability: bool = False
    pricing: bool = False
    images: bool = False

    @property
    def missing(self) -> list[str]:
        return [name for name in ("reviews", "availability", "pricing", "images") if not getattr(self, name)]


class CategoryAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    breadcrumbs: bool = False
    structured_data: bool = False
    descriptions: bool = False


class EcommerceResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_ecommerce: bool = False
    is_product_page: bool = False
    faceted_navigation: FacetedNavigationAnalysis = Field(default_factory=FacetedNavigationAnalysis)
    pagination: PaginationAnalysis = Field(default_factory=PaginationAnalysis)
    products: ProductAnalysis = Field(default_factory=ProductAnalysis)
    categories: CategoryAnalysis = Field(default_factory=CategoryAnalysis)


# ─────────────────────────────────────────────
# Analysis
# ─────────────────────────────────────────────

def _query_keys(url: str) -> set[str]:
    return {key.lower() for key in parse_qs(urlparse(url).query, keep_blank_values=True)}


def _page_noindex(snapshot: DocumentSnapshot) -> bool:
    directives = ",".join(snapshot.meta_all("robots") + [snapshot.header("x-robots-tag")]).lower()
    return "noindex" in directives


def analyze_facets(snapshot: DocumentSnapshot) -> FacetedNavigationAnalysis:
    facet_links = 0
    nofollow = 0
    params: set[str] = set()
    for anchor in snapshot.soup.find_all("a", href=True):
        keys = _query_keys(anchor["href"]) & FACET_PARAMS
        if not keys:
            continue
        facet_links += 1
        params.update(keys)
        rel = anchor.get("rel") or []
        if "nofollow" in (rel if isinstance(rel, list) else rel.split()):
            nofollow += 1

    if not facet_links:
        return FacetedNavigationAnalysis(parameter_handling="good")

    canonical = next((t.get("href") for t in snapshot.link_tags("canonical") if t.get("href")), None)
    canonical_clean = canonical is not None and not (_query_keys(snapshot.resolve(canonical)) & FACET_PARAMS)
    noindex = _page_noindex(snapshot) and bool(_query_keys(snapshot.final_url) & FACET_PARAMS)

    if canonical_clean and nofollow == facet_links:
        handling = "good"
    elif canonical_clean or nofollow:
        handling = "needs_improvement"
    else:
        handling = "poor"

    return FacetedNavigationAnalysis(
        implemented=True,
        facet_links=facet_links,
        nofollow_facet_links=nofollow,
        indexable=nofollow < facet_links,
        parameter_handling=handling,
        noindex_usage=noindex,
        parameters=sorted(params),
    )


def analyze_pagination(snapshot: DocumentSnapshot) -> PaginationAnalysis:
    rel_next_prev = bool(snapshot.link_tags("next") or snapshot.link_tags("prev"))
    canonical = next((t.get("href") for t in snapshot.link_tags("canonical") if t.get("href")), None)

    canonicalization = "self_referencing"
    if canonical:
        resolved = snapshot.resolve(canonical)
        if re.search(r"view[-_]?all|[?&]all=", resolved, re.IGNORECASE):
            canonicalization = "view_all"
        elif _query_keys(snapshot.final_url) & PAGE_PARAMS and not _query_keys(resolved) & PAGE_PARAMS:
            canonicalization = "page_1"

    buttons = " ".join(tag.get_text(" ", strip=True) for tag in snapshot.soup.find_all(["button", "a"]))
    return PaginationAnalysis(
        rel_next_prev=rel_next_prev,
        canonicalization=canonicalization,
        load_more=bool(LOAD_MORE.search(buttons)),
        infinite_scroll=bool(INFINITE_SCROLL.search(snapshot.html)),
    )


def analyze_products(snapshot: DocumentSnapshot) -> ProductAnalysis:
    blocks, _ = snapshot.json_ld
    products = [
        node for block in blocks for node in flatten_json_ld(block)
        if PRODUCT_TYPES.intersection(node_types(node))
    ]
    microdata = snapshot.soup.find(attrs={"itemtype": re.compile(r"schema\.org/Product", re.IGNORECASE)})
    if not products and microdata is None:
        return ProductAnalysis()

    serialized = str(products) + (str(microdata) if microdata is not None else "")
    return ProductAnalysis(
        structured_data=True,
        reviews="aggregateRating" in serialized or "'review'" in serialized or 'itemprop="review' in serialized,
        availability="availability" in serialized,
        pricing="price" in serialized,
        images="image" in serialized,
    )


def analyze_categories(snapshot: DocumentSnapshot) -> CategoryAnalysis:
    soup = snapshot.soup
    blocks, _ = snapshot.json_ld
    types = {t for block in blocks for node in flatten_json_ld(block) for t in node_types(node)}
    breadcrumb_nav = soup.find(attrs={"aria-label": re.compile("breadcrumb", re.IGNORECASE)}) or soup.find(
        class_=re.compile("breadcrumb", re.IGNORECASE)
    )
    return CategoryAnalysis(
        breadcrumbs="BreadcrumbList" in types or breadcrumb_nav is not None,
        structured_data=bool(LISTING_TYPES & types),
        descriptions=bool(snapshot.meta("description")),
    )


def is_commerce_page(snapshot: DocumentSnapshot, products: ProductAnalysis) -> bool:
    if products.structured_data:
        return True
    if COMMERCE_MARKERS.search(snapshot.visible_text):
        return True
    return any("/cart" in href.lower() or "/checkout" in href.lower() for href in anchor_hrefs(snapshot.soup))


class EcommerceEngine(AuditEngine):

    ENGINE_NAME = "ecommerce_facets"
    CATEGORY = AuditCategory.ECOMMERCE_FACETS
    RESULTS_MODEL = EcommerceResults

    async def run(self, context: AuditContext) -> EcommerceResults:
        snapshot = context.snapshot
        if not snapshot.fetched:
            return EcommerceResults()

        facets = analyze_facets(snapshot)
        products = analyze_products(snapshot)
        return EcommerceResults(
            is_ecommerce=is_commerce_page(snapshot, products),
            is_product_page=products.structured_data,
            faceted_navigation=facets,
            pagination=analyze_pagination(snapshot),
            products=products,
            categories=analyze_categories(snapshot),
        )

    def build_checks(self, results: EcommerceResults) -> list[SEOCheck]:
        facets = results.faceted_navigation
        if not results.is_ecommerce:
            return [
                check("faceted-navigation", "Faceted Navigation", CheckStatus.PASS,
                      "No e-commerce storefront detected", Impact.LOW, details=facets.model_dump()),
            ]

        facet_status = {
            "good": CheckStatus.PASS,
            "needs_improvement": CheckStatus.WARNING,
            "poor": CheckStatus.FAIL,
        }[facets.parameter_handling]
        facet_message = (
            f"{facets.facet_links} faceted links, parameter handling: {facets.parameter_handling}"
            if facets.implemented else "No crawlable facet parameters found"
        )
        checks = [
            check("faceted-navigation", "Faceted Navigation", facet_status, facet_message, Impact.LOW,
                  details={**facets.model_dump(), "pagination": results.pagination.model_dump()}),
        ]

        products = results.products
        if results.is_product_page:
            missing = products.missing
            checks.append(check(
                "product-schema",
                "Product Structured Data",
                CheckStatus.PASS if not missing else CheckStatus.WARNING,
                "Product markup is complete" if not missing else f"Product markup lacks: {', '.join(missing)}",
                Impact.MEDIUM,
                details=products.model_dump(),
            ))

        categories = results.categories
        checks.append(check(
            "breadcrumbs",
            "Breadcrumb Navigation",
            CheckStatus.PASS if categories.breadcrumbs else CheckStatus.WARNING,
            "Breadcrumbs found" if categories.breadcrumbs else "No breadcrumb navigation found",
            Impact.LOW,
            details=categories.model_dump(),
        ))
        return checks
