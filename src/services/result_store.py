"""Read-only query surface over the test result tables.

Every method returns plain dicts (one per row) so the aggregation layer can
validate them the same way regardless of where they came from.
"""
import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from src.models import (
    AIInsightRecord,
    CompetitiveInsightResult,
    ComparisonResponse,
    PurchaseDriverResult,
    SummaryResult,
    SurveyResponse,
    Test,
    TestVariation,
    WalmartComparisonResponse,
    get_session,
)

logger = logging.getLogger(__name__)

_COMPARISON_MODELS = {
    "amazon": ComparisonResponse,
    "walmart": WalmartComparisonResponse,
}


class ResultStoreError(Exception):
    """Raised when the result store cannot be read."""


def _tester_payload(tester) -> dict:
    if tester is None:
        return {}
    return {"age": tester.age, "sex": tester.sex, "country": tester.country}


class ResultStore:
    """Query the result tables for a single test."""

    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self._session_factory = session_factory

    def _run(self, label: str, fn):
        session = self._session_factory()
        try:
            return fn(session)
        except SQLAlchemyError as exc:
            logger.exception("Result store query '%s' failed", label)
            raise ResultStoreError(f"Could not load {label}: {exc}") from exc
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Test structure
    # ------------------------------------------------------------------

    def fetch_test(self, test_id: str) -> Optional[dict]:
        def query(session: Session):
            test = (
                session.query(Test)
                .options(
                    joinedload(Test.variations).joinedload(TestVariation.product),
                    joinedload(Test.competitors),
                )
                .filter(Test.id == test_id)
                .first()
            )
            if test is None:
                return None
            return {
                "id": test.id,
                "name": test.name,
                "status": test.status,
                "skin": test.skin,
                "search_term": test.search_term,
                "objective": test.objective,
                "created_at": test.created_at,
                "demographics": test.demographics_dict(),
                "variations": [
                    {
                        "variation_type": v.variation_type,
                        "product": {
                            "id": v.product.id,
                            "title": v.product.title,
                            "image_url": v.product.image_url,
                            "price": v.product.price,
                        } if v.product else None,
                    }
                    for v in test.variations
                ],
                "competitors": [
                    {
                        "id": c.id,
                        "title": c.title,
                        "image_url": c.image_url,
                        "price": c.price,
                        "product_url": c.product_url,
                    }
                    for c in sorted(test.competitors, key=lambda c: c.id)
                ],
            }

        return self._run("test details", query)

    # ------------------------------------------------------------------
    # Result tables
    # ------------------------------------------------------------------

    def fetch_summary(self, test_id: str) -> list[dict]:
        def query(session: Session):
            rows = (
                session.query(SummaryResult)
                .filter(SummaryResult.test_id == test_id)
                .order_by(SummaryResult.variant_type)
                .all()
            )
            return [
                {
                    "variant_type": r.variant_type,
                    "product_id": r.product_id,
                    "share_of_click": r.share_of_click,
                    "share_of_buy": r.share_of_buy,
                    "value_score": r.value_score,
                    "win": r.win,
                }
                for r in rows
            ]

        return self._run("summary", query)

    def fetch_purchase_drivers(self, test_id: str) -> list[dict]:
        def query(session: Session):
            rows = (
                session.query(PurchaseDriverResult)
                .filter(PurchaseDriverResult.test_id == test_id)
                .order_by(PurchaseDriverResult.variant_type)
                .all()
            )
            return [
                {
                    "variant_type": r.variant_type,
                    "value": r.value,
                    "aesthetics": r.aesthetics,
                    "utility": r.utility,
                    "trust": r.trust,
                    "convenience": r.convenience,
                    "count": r.count,
                }
                for r in rows
            ]

        return self._run("purchase drivers", query)

    def fetch_competitive_insights(self, test_id: str) -> list[dict]:
        def query(session: Session):
            rows = (
                session.query(CompetitiveInsightResult)
                .options(joinedload(CompetitiveInsightResult.competitor))
                .filter(CompetitiveInsightResult.test_id == test_id)
                .order_by(CompetitiveInsightResult.variant_type)
                .all()
            )
            return [
                {
                    "variant_type": r.variant_type,
                    "competitor_product_id": r.competitor_product_id,
                    "count": r.count,
                    "share_of_buy": r.share_of_buy,
                    "value": r.value,
                    "aesthetics": r.aesthetics,
                    "utility": r.utility,
                    "trust": r.trust,
                    "convenience": r.convenience,
                    "competitor": {
                        "id": r.competitor.id,
                        "title": r.competitor.title,
                        "image_url": r.competitor.image_url,
                        "price": r.competitor.price,
                    } if r.competitor else {},
                }
                for r in rows
            ]

        return self._run("competitive insights", query)

    def fetch_ai_insights(self, test_id: str) -> list[dict]:
        """Return every narrative record for the test, newest first."""
        def query(session: Session):
            rows = (
                session.query(AIInsightRecord)
                .filter(AIInsightRecord.test_id == test_id)
                .order_by(AIInsightRecord.created_at.desc(), AIInsightRecord.id.desc())
                .all()
            )
            return [
                {
                    "test_id": r.test_id,
                    "comparison_between_variants": r.comparison_between_variants,
                    "purchase_drivers": r.purchase_drivers,
                    "competitive_insights_a": r.competitive_insights_a,
                    "competitive_insights_b": r.competitive_insights_b,
                    "competitive_insights_c": r.competitive_insights_c,
                    "comment_summary": r.comment_summary,
                    "recommendations": r.recommendations,
                }
                for r in rows
            ]

        return self._run("AI insight", query)

    # ------------------------------------------------------------------
    # Shopper responses
    # ------------------------------------------------------------------

    def fetch_survey_responses(self, test_id: str) -> list[dict]:
        def query(session: Session):
            rows = (
                session.query(SurveyResponse)
                .options(joinedload(SurveyResponse.tester), joinedload(SurveyResponse.product))
                .filter(SurveyResponse.test_id == test_id)
                .order_by(SurveyResponse.id)
                .all()
            )
            return [
                {
                    "variation_type": r.variation_type,
                    "product_title": r.product.title if r.product else "",
                    "improve_suggestions": r.improve_suggestions,
                    "tester": _tester_payload(r.tester),
                }
                for r in rows
            ]

        return self._run("survey responses", query)

    def fetch_comparison_responses(self, test_id: str, skin: str = "amazon") -> list[dict]:
        model = _COMPARISON_MODELS.get(skin)
        if model is None:
            raise ResultStoreError(f"Unknown skin {skin!r}")

        def query(session: Session):
            rows = (
                session.query(model)
                .options(joinedload(model.tester), joinedload(model.competitor))
                .filter(model.test_id == test_id)
                .order_by(model.id)
                .all()
            )
            return [
                {
                    "variation_type": r.variation_type,
                    "competitor_id": r.competitor_id,
                    "competitor_title": r.competitor.title if r.competitor else "",
                    "choose_reason": r.choose_reason,
                    "tester": _tester_payload(r.tester),
                }
                for r in rows
            ]

        return self._run(f"{skin} comparison responses", query)
