"""Decide which variants a report covers and assemble its ordered sections.

Inclusion is data-driven: a variant only shows up in variant-scoped sections
when it has purchase-driver data, competitive rows, or its own competitive
narrative.  A titled, priced variant with none of these is left out entirely.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from src.services.insight_models import VARIANTS, AggregationResult
from src.services.utils import sanitize_filename

logger = logging.getLogger(__name__)

AGE_BUCKETS = ["18-24", "25-29", "30-34", "35-39", "40-44", "45-49", "50+"]

# Section kinds, in document order
COVER = "cover"
TEST_DESIGN = "test_design"
SUMMARY = "summary"
PURCHASE_DRIVERS_TEXT = "purchase_drivers_text"
PURCHASE_DRIVERS_CHART = "purchase_drivers_chart"
COMPETITIVE_TEXT = "competitive_insights_text"
COMPETITIVE_TABLE = "competitive_insights_table"
RECOMMENDATIONS = "recommendations"

SECTION_ORDER = [
    COVER,
    TEST_DESIGN,
    SUMMARY,
    PURCHASE_DRIVERS_TEXT,
    PURCHASE_DRIVERS_CHART,
    COMPETITIVE_TEXT,
    COMPETITIVE_TABLE,
    RECOMMENDATIONS,
]


class MissingPrerequisiteError(Exception):
    """Raised when a report cannot be composed at all (no test / no summary)."""


@dataclass
class DocumentSection:
    kind: str
    title: str
    variant: Optional[str] = None
    data: dict = field(default_factory=dict)


def pdf_filename(test_name: str) -> str:
    return f"{sanitize_filename(test_name)}_report.pdf"


def included_variants(result: AggregationResult) -> list[str]:
    """Variants with at least one driver row, competitive row, or narrative."""
    included = []
    for variant in VARIANTS:
        if variant not in result.test.variants:
            continue
        has_drivers = result.drivers_for(variant) is not None
        has_competitive = bool(result.competitive_rows(variant))
        has_narrative = result.narrative_for(variant) is not None
        if has_drivers or has_competitive or has_narrative:
            included.append(variant)
    return included


# ----------------------------------------------------------------------
# Demographics
# ----------------------------------------------------------------------


def bucket_age(age) -> Optional[str]:
    """Map an age to its chart band, or None when it is unusable."""
    if age is None or isinstance(age, bool):
        return None
    try:
        age = int(age)
    except (TypeError, ValueError):
        return None
    if age < 18:
        return None
    if age <= 24:
        return "18-24"
    if age >= 50:
        return "50+"
    low = (age // 5) * 5
    return f"{low}-{low + 4}"


def build_demographic_charts(respondents: list[dict], fallback: Optional[dict] = None) -> dict:
    """Count respondents per age band and per gender.

    Falls back to the ranges chosen at test creation (each counted once)
    when no response carries demographic data.
    """
    ages = {bucket: 0 for bucket in AGE_BUCKETS}
    genders: dict[str, int] = {}
    for person in respondents:
        bucket = bucket_age(person.get("age"))
        if bucket:
            ages[bucket] += 1
        sex = person.get("sex")
        if sex:
            genders[sex] = genders.get(sex, 0) + 1

    has_ages = any(ages.values())
    if has_ages or genders:
        return {
            "source": "responses",
            "age": ages if has_ages else {},
            "gender": genders,
        }

    fallback = fallback or {}
    return {
        "source": "test_setup",
        "age": {str(r): 1 for r in fallback.get("age_ranges") or []},
        "gender": {str(g): 1 for g in fallback.get("genders") or []},
    }


# ----------------------------------------------------------------------
# Section assembly
# ----------------------------------------------------------------------


def compose_sections(result: Optional[AggregationResult]) -> list[DocumentSection]:
    """Build the ordered section list for *result*.

    Raises
    ------
    MissingPrerequisiteError
        If there is no test or no summary data to report on.
    """
    if result is None or result.test is None:
        raise MissingPrerequisiteError("Test details are not available for this report.")
    if not result.summary:
        raise MissingPrerequisiteError("Summary data is not available for this test yet.")

    test = result.test
    insight = result.ai_insight
    variants = included_variants(result)
    if not variants:
        logger.warning("Test %s has no variant with collected data", test.id)

    sections = [
        DocumentSection(
            kind=COVER,
            title=test.name,
            data={
                "test": test,
                "variants": [test.variants[v] for v in variants],
            },
        ),
        DocumentSection(
            kind=TEST_DESIGN,
            title="Test Design",
            data={
                "test": test,
                "competitors": test.competitors,
                "tester_count": test.tester_count or len(result.respondents),
                "demographics": build_demographic_charts(result.respondents, test.demographics),
            },
        ),
        DocumentSection(
            kind=SUMMARY,
            title="Summary Results",
            data={
                "rows": [r for r in result.summary if r.variant in variants],
                "comparison": insight.comparison_between_variants if insight else None,
            },
        ),
    ]

    if insight and insight.purchase_drivers:
        sections.append(DocumentSection(
            kind=PURCHASE_DRIVERS_TEXT,
            title="Purchase Drivers",
            data={"text": insight.purchase_drivers},
        ))

    driver_rows = [r for r in result.purchase_drivers if r.variant in variants]
    if driver_rows:
        sections.append(DocumentSection(
            kind=PURCHASE_DRIVERS_CHART,
            title="Purchase Drivers - All Variants",
            data={
                "rows": driver_rows,
                "titles": {r.variant: test.variants[r.variant].title for r in driver_rows},
                "low_confidence": [r.variant for r in driver_rows if r.low_confidence],
            },
        ))

    narratives = [
        (v, test.variants[v].title, result.narrative_for(v))
        for v in variants
        if result.narrative_for(v) is not None
    ]
    if narratives:
        sections.append(DocumentSection(
            kind=COMPETITIVE_TEXT,
            title="Competitive Insights",
            data={"narratives": narratives},
        ))

    for v in variants:
        group = result.competitive.get(v)
        if group is None or not group.rows:
            continue
        sections.append(DocumentSection(
            kind=COMPETITIVE_TABLE,
            title=f"Competitive Insights - Variant {v.upper()}",
            variant=v,
            data={"group": group, "product": test.variants[v]},
        ))

    if insight and insight.recommendations:
        sections.append(DocumentSection(
            kind=RECOMMENDATIONS,
            title="Recommendations",
            data={"text": insight.recommendations},
        ))

    sections.sort(key=lambda s: SECTION_ORDER.index(s.kind))
    return sections
