"""
Structured Data Engine

Inventories JSON-LD, microdata and RDFa on the root document, validates
schema.org types against Google's required properties and reports rich
result eligibility.
"""

from __future__ import annotations

from typing import Any

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
from seoaudit.engines.fetcher import DocumentSnapshot, flatten_json_ld, node_types

REQUIRED_PROPERTIES: dict[str, list[str]] = {
    "Article": ["headline", "author", "datePublished"],
    "NewsArticle": ["headline", "author", "datePublished"],
    "BlogPosting": ["headline", "author", "datePublished"],
    "Product": ["name", "image", "offers"],
    "LocalBusiness": ["name", "address"],
    "Organization": ["name", "url"],
    "WebSite": ["url"],
    "Recipe": ["name", "recipeIngredient", "recipeInstructions"],
    "Event": ["name", "startDate", "location"],
    "JobPosting": ["title", "description", "datePosted", "hiringOrganization"],
    "Course": ["name", "description", "provider"],
}

LIST_PROPERTIES: dict[str, str] = {
    "FAQPage": "mainEntity",
    "BreadcrumbList": "itemListElement",
}

RICH_RESULT_TYPES: dict[str, tuple[str, ...]] = {
    "article": ("Article", "NewsArticle", "BlogPosting"),
    "breadcrumb": ("BreadcrumbList",),
    "faq": ("FAQPage",),
    "howTo": ("HowTo",),
    "localBusiness": ("LocalBusiness",),
    "product": ("Product",),
    "recipe": ("Recipe",),
    "review": ("Review", "AggregateRating"),
    "video": ("VideoObject",),
    "event": ("Event",),
    "jobPosting": ("JobPosting",),
}


class SchemaItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    format: str         # json-ld | microdata
    issues: list[str] = Field(default_factory=list)


class JsonLdAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    present: bool = False
    valid: bool = False
    block_count: int = 0
    schemas: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class StructuredDataResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    json_ld: JsonLdAnalysis = Field(default_factory=JsonLdAnalysis)
    microdata_present: bool = False
    microdata_types: list[str] = Field(default_factory=list)
    rdfa_present: bool = False
    items: list[SchemaItem] = Field(default_factory=list)
    rich_results_eligible: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    @property
    def has_structured_data(self) -> bool:
        return self.json_ld.present or self.microdata_present or self.rdfa_present


# ─────────────────────────────────────────────
# Schema inspection
# ─────────────────────────────────────────────

def validate_node(node: dict[str, Any]) -> list[str]:
    issues: list[str] = []
    for schema_type in node_types(node):
        for prop in REQUIRED_PROPERTIES.get(schema_type, []):
            if not node.get(prop):
                issues.append(f"{schema_type}: missing required property {prop}")
        list_prop = LIST_PROPERTIES.get(schema_type)
        if list_prop and not isinstance(node.get(list_prop), list):
            issues.append(f"{schema_type}: {list_prop} must be an array")
    return issues


def analyze_structured_data(snapshot: DocumentSnapshot) -> StructuredDataResults:
    blocks, invalid = snapshot.json_ld
    errors = ["Invalid JSON-LD syntax found"] * invalid

    items: list[SchemaItem] = []
    json_ld_types: list[str] = []
    for block in blocks:
        for node in flatten_json_ld(block):
            issues = validate_node(node)
            for schema_type in node_types(node):
                json_ld_types.append(schema_type)
                items.append(SchemaItem(type=schema_type, format="json-ld", issues=issues))
            errors.extend(issues)

    soup = snapshot.soup
    microdata_types = []
    for element in soup.find_all(attrs={"itemscope": True}):
        itemtype = element.get("itemtype") or ""
        if itemtype:
            schema_type = itemtype.rstrip("/").rsplit("/", 1)[-1]
            microdata_types.append(schema_type)
            items.append(SchemaItem(type=schema_type, format="microdata"))
    rdfa_present = bool(soup.find(attrs={"typeof": True}) or soup.find(attrs={"vocab": True}))

    all_types = {item.type for item in items}
    eligible = [name for name, types in RICH_RESULT_TYPES.items() if all_types.intersection(types)]
    # LocalBusiness subtypes such as HomeAndConstructionBusiness
    if "localBusiness" not in eligible and any(t.endswith("Business") for t in all_types):
        eligible.append("localBusiness")

    recommendations = []
    if not blocks and not microdata_types and not rdfa_present:
        recommendations.append("Add JSON-LD structured data for better search visibility")
    elif not blocks:
        recommendations.append("Consider using JSON-LD format (recommended by Google)")
    if "Organization" not in all_types:
        recommendations.append("Add Organization schema for brand visibility")
    if "WebSite" not in all_types:
        recommendations.append("Add WebSite schema with SearchAction for sitelinks search box")

    return StructuredDataResults(
        json_ld=JsonLdAnalysis(
            present=bool(blocks) or invalid > 0,
            valid=bool(blocks) and not errors,
            block_count=len(blocks) + invalid,
            schemas=list(dict.fromkeys(json_ld_types)),
            errors=errors,
        ),
        microdata_present=bool(soup.find(attrs={"itemscope": True})),
        microdata_types=list(dict.fromkeys(microdata_types)),
        rdfa_present=rdfa_present,
        items=items,
        rich_results_eligible=eligible,
        recommendations=recommendations,
    )


class StructuredDataEngine(AuditEngine):

    ENGINE_NAME = "structured_data"
    CATEGORY = AuditCategory.STRUCTURED_DATA
    RESULTS_MODEL = StructuredDataResults

    async def run(self, context: AuditContext) -> StructuredDataResults:
        return analyze_structured_data(context.snapshot)

    def build_checks(self, results: StructuredDataResults) -> list[SEOCheck]:
        json_ld = results.json_ld
        if json_ld.present and json_ld.valid:
            json_ld_status = CheckStatus.PASS
            json_ld_message = f"Found {len(json_ld.schemas)} schema types"
        elif json_ld.present:
            json_ld_status = CheckStatus.WARNING
            json_ld_message = f"JSON-LD has {len(json_ld.errors)} validation errors"
        else:
            json_ld_status = CheckStatus.WARNING
            json_ld_message = "No JSON-LD structured data found"

        invalid_syntax = any(e == "Invalid JSON-LD syntax found" for e in json_ld.errors)
        missing_props = [e for e in json_ld.errors if e != "Invalid JSON-LD syntax found"]
        if invalid_syntax:
            schema_status, schema_message = CheckStatus.FAIL, "JSON-LD blocks could not be parsed"
        elif missing_props:
            schema_status = CheckStatus.WARNING
            schema_message = f"{len(missing_props)} required properties missing"
        elif results.items:
            schema_status, schema_message = CheckStatus.PASS, "All schemas have their required properties"
        else:
            schema_status, schema_message = CheckStatus.WARNING, "No schema.org items to validate"

        return [
            check("json-ld", "JSON-LD Implementation", json_ld_status, json_ld_message, Impact.MEDIUM,
                  details=json_ld.model_dump()),
            check("schema-validation", "Schema Validation", schema_status, schema_message, Impact.MEDIUM,
                  details={"errors": json_ld.errors, "items": [i.model_dump() for i in results.items]}),
            check(
                "rich-results",
                "Rich Results Eligibility",
                CheckStatus.PASS if results.rich_results_eligible else CheckStatus.WARNING,
                (
                    f"Eligible for: {', '.join(results.rich_results_eligible)}"
                    if results.rich_results_eligible
                    else "No markup that qualifies for rich results"
                ),
                Impact.LOW,
                details={"eligible": results.rich_results_eligible, "recommendations": results.recommendations},
            ),
        ]
