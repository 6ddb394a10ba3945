"""Typed rows produced by the aggregation service.

Store records arrive as loosely-typed dicts.  Every record is validated here,
at the aggregation boundary, into one of the dataclasses below; consumers
(report view, PDF composer, Excel exporter) only ever see these types.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from src.services.utils import (
    clean_narrative,
    format_percent,
    format_score,
    to_float,
    to_int,
)

VARIANTS = ("a", "b", "c")

# (field name, display label) in the order every artifact lists them
DRIVER_DIMENSIONS = [
    ("value", "Value"),
    ("aesthetics", "Aesthetics"),
    ("utility", "Utility"),
    ("trust", "Trust"),
    ("convenience", "Convenience"),
]

# Older rows use the survey question names
_DIMENSION_ALIASES = {
    "aesthetics": ("aesthetics", "appearance"),
    "trust": ("trust", "confidence"),
    "utility": ("utility", "brand"),
    "value": ("value",),
    "convenience": ("convenience",),
}

COMMENT_TYPE_IMPROVEMENT = "Improvement Suggestion"
COMMENT_TYPE_COMPETITOR = "Reason for Choosing Competitor"

NARRATIVE_FIELDS = (
    "comparison_between_variants",
    "purchase_drivers",
    "competitive_insights_a",
    "competitive_insights_b",
    "competitive_insights_c",
    "comment_summary",
    "recommendations",
)


class RowValidationError(ValueError):
    """Raised when a store record cannot be turned into a typed row."""


def validate_variant(value) -> str:
    variant = str(value or "").strip().lower()
    if variant not in VARIANTS:
        raise RowValidationError(f"Unknown variant_type {value!r}")
    return variant


def _dimension(record: dict, name: str) -> float:
    for key in _DIMENSION_ALIASES[name]:
        if record.get(key) is not None:
            return to_float(record.get(key))
    return 0.0


# ----------------------------------------------------------------------
# Test structure
# ----------------------------------------------------------------------


@dataclass
class VariantProduct:
    variant: str
    title: str
    product_id: Optional[int] = None
    image_url: Optional[str] = None
    price: Optional[float] = None

    @property
    def letter(self) -> str:
        return self.variant.upper()


@dataclass
class CompetitorProduct:
    id: int
    title: str
    image_url: Optional[str] = None
    price: Optional[float] = None
    url: Optional[str] = None


@dataclass
class TestDetails:
    id: str
    name: str
    status: str = "draft"
    skin: str = "amazon"
    search_term: Optional[str] = None
    objective: Optional[str] = None
    created_at: Optional[datetime] = None
    variants: dict[str, VariantProduct] = field(default_factory=dict)
    competitors: list[CompetitorProduct] = field(default_factory=list)
    demographics: dict = field(default_factory=dict)

    __test__ = False

    @property
    def available_variants(self) -> list[str]:
        return [v for v in VARIANTS if v in self.variants]

    @property
    def tester_count(self) -> int:
        return to_int(self.demographics.get("tester_count"))

    @classmethod
    def from_record(cls, record: dict) -> "TestDetails":
        if not record or not record.get("id"):
            raise RowValidationError("Test record is missing an id")
        skin = str(record.get("skin") or "amazon").lower()
        if skin not in ("amazon", "walmart"):
            raise RowValidationError(f"Unknown skin {skin!r}")
        variants = {}
        for raw in record.get("variations") or []:
            product = raw.get("product")
            if not product:
                continue
            variant = validate_variant(raw.get("variation_type"))
            variants[variant] = VariantProduct(
                variant=variant,
                title=product.get("title") or "",
                product_id=product.get("id"),
                image_url=product.get("image_url"),
                price=product.get("price"),
            )
        competitors = [
            CompetitorProduct(
                id=c["id"],
                title=c.get("title") or "",
                image_url=c.get("image_url"),
                price=c.get("price"),
                url=c.get("product_url"),
            )
            for c in record.get("competitors") or []
        ]
        return cls(
            id=str(record["id"]),
            name=record.get("name") or "",
            status=record.get("status") or "draft",
            skin=skin,
            search_term=record.get("search_term"),
            objective=record.get("objective"),
            created_at=record.get("created_at"),
            variants=variants,
            competitors=competitors,
            demographics=record.get("demographics") or {},
        )


# ----------------------------------------------------------------------
# Result rows
# ----------------------------------------------------------------------


@dataclass
class SummaryRow:
    variant: str
    title: str
    share_of_clicks: float
    share_of_buy: float
    value_score: float
    win: bool

    @property
    def label(self) -> str:
        return f"Variant {self.variant.upper()} - {self.title}"

    @property
    def share_of_clicks_display(self) -> str:
        return format_percent(self.share_of_clicks)

    @property
    def share_of_buy_display(self) -> str:
        return format_percent(self.share_of_buy)

    @property
    def value_score_display(self) -> str:
        return format_score(self.value_score)

    @property
    def win_display(self) -> str:
        return "Yes" if self.win else "No"


@dataclass
class PurchaseDriverRow:
    variant: str
    value: float = 0.0
    aesthetics: float = 0.0
    utility: float = 0.0
    trust: float = 0.0
    convenience: float = 0.0
    count: int = 0

    @classmethod
    def from_record(cls, record: dict) -> "PurchaseDriverRow":
        return cls(
            variant=validate_variant(record.get("variant_type")),
            count=max(to_int(record.get("count")), 0),
            **{name: _dimension(record, name) for name, _ in DRIVER_DIMENSIONS},
        )

    @property
    def low_confidence(self) -> bool:
        """Zero or one observation: the averages are not representative."""
        return self.count in (0, 1)

    def scores(self) -> list[float]:
        return [getattr(self, name) for name, _ in DRIVER_DIMENSIONS]

    def average(self) -> float:
        scores = self.scores()
        return sum(scores) / len(scores)


@dataclass
class CompetitiveInsightRow:
    variant: str
    competitor_id: int
    title: str
    count: int
    raw_share_of_buy: Optional[float] = None
    share_of_buy: float = 0.0
    image_url: Optional[str] = None
    price: Optional[float] = None
    value: float = 0.0
    aesthetics: float = 0.0
    utility: float = 0.0
    trust: float = 0.0
    convenience: float = 0.0

    @classmethod
    def from_record(cls, record: dict) -> "CompetitiveInsightRow":
        competitor = record.get("competitor") or {}
        competitor_id = record.get("competitor_product_id", competitor.get("id"))
        if competitor_id is None:
            raise RowValidationError("Competitive insight row has no competitor")
        raw_share = record.get("share_of_buy")
        return cls(
            variant=validate_variant(record.get("variant_type")),
            competitor_id=competitor_id,
            title=competitor.get("title") or "",
            count=max(to_int(record.get("count")), 0),
            raw_share_of_buy=to_float(raw_share) if raw_share is not None else None,
            image_url=competitor.get("image_url"),
            price=competitor.get("price"),
            **{name: _dimension(record, name) for name, _ in DRIVER_DIMENSIONS},
        )

    @property
    def key(self) -> str:
        """Identity of this competitor within one variant."""
        return f"{self.competitor_id}-{self.variant}"

    @property
    def share_of_buy_display(self) -> str:
        return format_percent(self.share_of_buy)

    def scores(self) -> list[float]:
        return [getattr(self, name) for name, _ in DRIVER_DIMENSIONS]


@dataclass
class CompetitiveGroup:
    """Competitor rows of one variant plus the reconstructed selection counts."""

    variant: str
    rows: list[CompetitiveInsightRow]
    competitor_selections: int
    test_product_selections: int

    @property
    def total_selections(self) -> int:
        return self.competitor_selections + self.test_product_selections

    @property
    def test_product_share(self) -> float:
        if self.total_selections == 0:
            return 0.0
        return self.test_product_selections / self.total_selections * 100

    def average_scores(self) -> list[float]:
        if not self.rows:
            return [0.0] * len(DRIVER_DIMENSIONS)
        totals = [0.0] * len(DRIVER_DIMENSIONS)
        for row in self.rows:
            for i, score in enumerate(row.scores()):
                totals[i] += score
        return [t / len(self.rows) for t in totals]


@dataclass
class AIInsight:
    comparison_between_variants: Optional[str] = None
    purchase_drivers: Optional[str] = None
    competitive_insights_a: Optional[str] = None
    competitive_insights_b: Optional[str] = None
    competitive_insights_c: Optional[str] = None
    comment_summary: Optional[str] = None
    recommendations: Optional[str] = None

    @classmethod
    def from_record(cls, record: dict) -> "AIInsight":
        return cls(**{name: clean_narrative(record.get(name)) for name in NARRATIVE_FIELDS})

    def competitive_for(self, variant: str) -> Optional[str]:
        return getattr(self, f"competitive_insights_{variant}", None)

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in NARRATIVE_FIELDS)


@dataclass
class ShopperComment:
    variant: str
    comment_type: str
    comment: str
    product_title: str = ""
    age: Optional[int] = None
    sex: Optional[str] = None
    country: Optional[str] = None

    @property
    def is_competitor_buyer(self) -> bool:
        return self.comment_type == COMMENT_TYPE_COMPETITOR


# ----------------------------------------------------------------------
# Aggregate
# ----------------------------------------------------------------------


@dataclass
class AggregationResult:
    test: TestDetails
    summary: list[SummaryRow] = field(default_factory=list)
    purchase_drivers: list[PurchaseDriverRow] = field(default_factory=list)
    competitive: dict[str, CompetitiveGroup] = field(default_factory=dict)
    ai_insight: Optional[AIInsight] = None
    comments: list[ShopperComment] = field(default_factory=list)
    # Every response record's tester payload (age/sex/country), for demographics
    respondents: list[dict] = field(default_factory=list)

    def drivers_for(self, variant: str) -> Optional[PurchaseDriverRow]:
        return next((r for r in self.purchase_drivers if r.variant == variant), None)

    def competitive_rows(self, variant: Optional[str] = None) -> list[CompetitiveInsightRow]:
        """Rows ordered by variant, then by recomputed share (descending)."""
        rows: list[CompetitiveInsightRow] = []
        for v in VARIANTS:
            if variant is not None and v != variant:
                continue
            group = self.competitive.get(v)
            if group:
                rows.extend(group.rows)
        return rows

    def narrative_for(self, variant: str) -> Optional[str]:
        if self.ai_insight is None:
            return None
        return self.ai_insight.competitive_for(variant)

    def comments_for(self, variant: str) -> list[ShopperComment]:
        return [c for c in self.comments if c.variant == variant]
