"""Backend-computed result tables: summary, purchase drivers, competitive insights, AI insight."""
from datetime import datetime

from sqlalchemy import Integer, Float, Text, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.database import Base, utcnow


class SummaryResult(Base):
    __tablename__ = "summary"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_id: Mapped[str] = mapped_column(Text, ForeignKey("tests.id"), nullable=False)
    variant_type: Mapped[str] = mapped_column(Text, nullable=False)
    product_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("products.id"), nullable=True)
    share_of_click: Mapped[float | None] = mapped_column(Float, nullable=True)
    share_of_buy: Mapped[float | None] = mapped_column(Float, nullable=True)
    value_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    win: Mapped[bool] = mapped_column(Boolean, default=False)

    product = relationship("Product")

    def __repr__(self) -> str:
        return f"<SummaryResult test_id={self.test_id} variant={self.variant_type!r}>"


class PurchaseDriverResult(Base):
    __tablename__ = "purchase_drivers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_id: Mapped[str] = mapped_column(Text, ForeignKey("tests.id"), nullable=False)
    variant_type: Mapped[str] = mapped_column(Text, nullable=False)
    product_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("products.id"), nullable=True)
    value: Mapped[float | None] = mapped_column(Float, nullable=True)
    aesthetics: Mapped[float | None] = mapped_column(Float, nullable=True)
    utility: Mapped[float | None] = mapped_column(Float, nullable=True)
    trust: Mapped[float | None] = mapped_column(Float, nullable=True)
    convenience: Mapped[float | None] = mapped_column(Float, nullable=True)
    count: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<PurchaseDriverResult test_id={self.test_id} variant={self.variant_type!r}>"


class CompetitiveInsightResult(Base):
    __tablename__ = "competitive_insights"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_id: Mapped[str] = mapped_column(Text, ForeignKey("tests.id"), nullable=False)
    variant_type: Mapped[str] = mapped_column(Text, nullable=False)
    competitor_product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("competitors.id"), nullable=False
    )
    count: Mapped[int] = mapped_column(Integer, default=0)
    # Raw share as written by the backend; recomputed during aggregation
    share_of_buy: Mapped[float | None] = mapped_column(Float, nullable=True)
    value: Mapped[float | None] = mapped_column(Float, nullable=True)
    aesthetics: Mapped[float | None] = mapped_column(Float, nullable=True)
    utility: Mapped[float | None] = mapped_column(Float, nullable=True)
    trust: Mapped[float | None] = mapped_column(Float, nullable=True)
    convenience: Mapped[float | None] = mapped_column(Float, nullable=True)

    competitor = relationship("Competitor")

    def __repr__(self) -> str:
        return (
            f"<CompetitiveInsightResult test_id={self.test_id} "
            f"variant={self.variant_type!r} competitor={self.competitor_product_id}>"
        )


class AIInsightRecord(Base):
    __tablename__ = "ai_insights"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_id: Mapped[str] = mapped_column(Text, ForeignKey("tests.id"), nullable=False)
    comparison_between_variants: Mapped[str | None] = mapped_column(Text, nullable=True)
    purchase_drivers: Mapped[str | None] = mapped_column(Text, nullable=True)
    competitive_insights_a: Mapped[str | None] = mapped_column(Text, nullable=True)
    competitive_insights_b: Mapped[str | None] = mapped_column(Text, nullable=True)
    competitive_insights_c: Mapped[str | None] = mapped_column(Text, nullable=True)
    comment_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    recommendations: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<AIInsightRecord id={self.id} test_id={self.test_id}>"
