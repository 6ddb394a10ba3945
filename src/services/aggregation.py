"""Aggregate raw per-variant result rows into one consistent result set."""
import asyncio
import logging
from typing import Optional

from src.services.competitive_share import recompute_competitive_shares
from src.services.insight_client import InsightClient
from src.services.insight_models import (
    COMMENT_TYPE_COMPETITOR,
    COMMENT_TYPE_IMPROVEMENT,
    AggregationResult,
    CompetitiveInsightRow,
    PurchaseDriverRow,
    RowValidationError,
    ShopperComment,
    SummaryRow,
    TestDetails,
    validate_variant,
)
from src.services.result_store import ResultStore
from src.services.utils import clean_narrative, to_float, to_int

logger = logging.getLogger(__name__)


class AggregationError(Exception):
    """Raised when a test's results cannot be aggregated."""


class TestNotFoundError(AggregationError):
    """Raised when the requested test does not exist."""

    __test__ = False


class AggregationService:
    """Fetch a test's result rows and reconcile them into an AggregationResult."""

    def __init__(
        self,
        store: Optional[ResultStore] = None,
        insight_client: Optional[InsightClient] = None,
    ):
        self.store = store or ResultStore()
        self.insight_client = insight_client or InsightClient(store=self.store)

    async def aggregate(self, test_id: str) -> AggregationResult:
        """Load and reconcile everything the report needs for *test_id*.

        Store and endpoint failures propagate unchanged so the caller can
        surface them and retry.
        """
        loop = asyncio.get_event_loop()

        test_record = await loop.run_in_executor(None, self.store.fetch_test, test_id)
        if not test_record:
            raise TestNotFoundError(f"Test {test_id} was not found.")
        try:
            test = TestDetails.from_record(test_record)
        except RowValidationError as exc:
            raise AggregationError(f"Test {test_id} is malformed: {exc}") from exc

        # Four independent queries, no ordering between them
        summary_raw, drivers_raw, competitive_raw, ai_insight = await asyncio.gather(
            loop.run_in_executor(None, self.store.fetch_summary, test_id),
            loop.run_in_executor(None, self.store.fetch_purchase_drivers, test_id),
            loop.run_in_executor(None, self.store.fetch_competitive_insights, test_id),
            loop.run_in_executor(None, self.insight_client.fetch_insight, test_id),
        )

        surveys_raw, comparisons_raw = await asyncio.gather(
            loop.run_in_executor(None, self.store.fetch_survey_responses, test_id),
            loop.run_in_executor(
                None, self.store.fetch_comparison_responses, test_id, test.skin,
            ),
        )

        result = build_result(
            test,
            summary_raw=summary_raw,
            drivers_raw=drivers_raw,
            competitive_raw=competitive_raw,
            ai_insight=ai_insight,
            surveys_raw=surveys_raw,
            comparisons_raw=comparisons_raw,
        )
        logger.info(
            "Aggregated test %s: %d summary rows, %d driver rows, %d competitive rows, insight=%s",
            test_id,
            len(result.summary),
            len(result.purchase_drivers),
            len(result.competitive_rows()),
            "yes" if result.ai_insight else "no",
        )
        return result


def build_result(
    test: TestDetails,
    *,
    summary_raw: list[dict],
    drivers_raw: list[dict],
    competitive_raw: list[dict],
    ai_insight=None,
    surveys_raw: Optional[list[dict]] = None,
    comparisons_raw: Optional[list[dict]] = None,
) -> AggregationResult:
    """Validate raw records and derive the reconciled result (no I/O)."""
    available = set(test.available_variants)

    purchase_drivers = []
    for record in drivers_raw:
        try:
            row = PurchaseDriverRow.from_record(record)
        except RowValidationError as exc:
            logger.warning("Skipping purchase driver row for test %s: %s", test.id, exc)
            continue
        if row.variant not in available:
            logger.warning("Purchase driver row for unassigned variant %s ignored", row.variant)
            continue
        if any(r.variant == row.variant for r in purchase_drivers):
            logger.warning("Duplicate purchase driver row for variant %s ignored", row.variant)
            continue
        purchase_drivers.append(row)
    drivers_by_variant = {r.variant: r for r in purchase_drivers}

    summary = []
    for record in summary_raw:
        try:
            variant = validate_variant(record.get("variant_type"))
        except RowValidationError as exc:
            logger.warning("Skipping summary row for test %s: %s", test.id, exc)
            continue
        if variant not in available:
            logger.warning("Summary row for unassigned variant %s ignored", variant)
            continue
        if any(r.variant == variant for r in summary):
            logger.warning("Duplicate summary row for variant %s ignored", variant)
            continue
        value_score = record.get("value_score")
        if value_score is None:
            drivers = drivers_by_variant.get(variant)
            value_score = drivers.average() if drivers else 0.0
        summary.append(SummaryRow(
            variant=variant,
            title=test.variants[variant].title,
            share_of_clicks=to_float(record.get("share_of_click")),
            share_of_buy=to_float(record.get("share_of_buy")),
            value_score=to_float(value_score),
            win=bool(record.get("win")),
        ))
    summary.sort(key=lambda r: r.variant)

    competitive_rows = []
    for record in competitive_raw:
        try:
            row = CompetitiveInsightRow.from_record(record)
        except RowValidationError as exc:
            logger.warning("Skipping competitive row for test %s: %s", test.id, exc)
            continue
        if row.variant not in available:
            continue
        competitive_rows.append(row)
    competitive = recompute_competitive_shares(
        competitive_rows,
        {r.variant: r.share_of_buy for r in summary},
    )

    comments, respondents = _build_comments(test, surveys_raw or [], comparisons_raw or [])

    return AggregationResult(
        test=test,
        summary=summary,
        purchase_drivers=sorted(purchase_drivers, key=lambda r: r.variant),
        competitive=competitive,
        ai_insight=ai_insight,
        comments=comments,
        respondents=respondents,
    )


def _build_comments(
    test: TestDetails,
    surveys: list[dict],
    comparisons: list[dict],
) -> tuple[list[ShopperComment], list[dict]]:
    comments: list[ShopperComment] = []
    respondents: list[dict] = []

    def _demographics(record: dict) -> dict:
        tester = record.get("tester") or {}
        age = tester.get("age")
        return {
            "age": to_int(age, default=None) if age is not None else None,
            "sex": tester.get("sex") or None,
            "country": tester.get("country") or None,
        }

    for record in surveys:
        demo = _demographics(record)
        respondents.append(demo)
        try:
            variant = validate_variant(record.get("variation_type"))
        except RowValidationError:
            continue
        text = clean_narrative(record.get("improve_suggestions"))
        if text is None:
            continue
        product = test.variants.get(variant)
        comments.append(ShopperComment(
            variant=variant,
            comment_type=COMMENT_TYPE_IMPROVEMENT,
            comment=text,
            product_title=product.title if product else record.get("product_title") or "",
            **demo,
        ))

    for record in comparisons:
        demo = _demographics(record)
        respondents.append(demo)
        try:
            variant = validate_variant(record.get("variation_type"))
        except RowValidationError:
            continue
        text = clean_narrative(record.get("choose_reason"))
        if text is None:
            continue
        comments.append(ShopperComment(
            variant=variant,
            comment_type=COMMENT_TYPE_COMPETITOR,
            comment=text,
            product_title=record.get("competitor_title") or "",
            **demo,
        ))

    return comments, respondents
