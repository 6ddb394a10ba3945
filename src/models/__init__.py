"""Database models package."""
from src.models.database import Base, engine, SessionLocal, get_session, init_db
from src.models.test import Test, Product, TestVariation
from src.models.competitor import Competitor
from src.models.results import (
    SummaryResult,
    PurchaseDriverResult,
    CompetitiveInsightResult,
    AIInsightRecord,
)
from src.models.responses import (
    TesterSession,
    SurveyResponse,
    ComparisonResponse,
    WalmartComparisonResponse,
)

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_session",
    "init_db",
    "Test",
    "Product",
    "TestVariation",
    "Competitor",
    "SummaryResult",
    "PurchaseDriverResult",
    "CompetitiveInsightResult",
    "AIInsightRecord",
    "TesterSession",
    "SurveyResponse",
    "ComparisonResponse",
    "WalmartComparisonResponse",
]
