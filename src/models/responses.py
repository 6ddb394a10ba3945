"""Shopper response models -- sessions, post-purchase surveys, and competitor comparisons."""
from datetime import datetime

from sqlalchemy import Integer, Text, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.database import Base, utcnow


class TesterSession(Base):
    __tablename__ = "testers_session"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_id: Mapped[str] = mapped_column(Text, ForeignKey("tests.id"), nullable=False)
    variation_type: Mapped[str] = mapped_column(Text, nullable=False)
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sex: Mapped[str | None] = mapped_column(Text, nullable=True)
    country: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __test__ = False

    def __repr__(self) -> str:
        return f"<TesterSession id={self.id} variation={self.variation_type!r}>"


class SurveyResponse(Base):
    """A shopper who bought the tested variant."""

    __tablename__ = "responses_surveys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_id: Mapped[str] = mapped_column(Text, ForeignKey("tests.id"), nullable=False)
    tester_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("testers_session.id"), nullable=True
    )
    product_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("products.id"), nullable=True)
    variation_type: Mapped[str] = mapped_column(Text, nullable=False)
    improve_suggestions: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    tester = relationship("TesterSession")
    product = relationship("Product")


class ComparisonResponse(Base):
    """A shopper who bought a competitor instead of the variant (Amazon skin)."""

    __tablename__ = "responses_comparisons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_id: Mapped[str] = mapped_column(Text, ForeignKey("tests.id"), nullable=False)
    tester_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("testers_session.id"), nullable=True
    )
    competitor_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("competitors.id"), nullable=True
    )
    variation_type: Mapped[str] = mapped_column(Text, nullable=False)
    choose_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    tester = relationship("TesterSession")
    competitor = relationship("Competitor")


class WalmartComparisonResponse(Base):
    """Competitor comparison captured on the Walmart skin."""

    __tablename__ = "responses_comparisons_walmart"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_id: Mapped[str] = mapped_column(Text, ForeignKey("tests.id"), nullable=False)
    tester_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("testers_session.id"), nullable=True
    )
    competitor_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("competitors.id"), nullable=True
    )
    variation_type: Mapped[str] = mapped_column(Text, nullable=False)
    choose_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    tester = relationship("TesterSession")
    competitor = relationship("Competitor")
