"""Test model -- a product test with up to three tested variants."""
import json
import uuid
from datetime import datetime

from sqlalchemy import Integer, Float, Text, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.database import Base, utcnow


class Test(Base):
    __tablename__ = "tests"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, default="draft")
    search_term: Mapped[str | None] = mapped_column(Text, nullable=True)
    skin: Mapped[str] = mapped_column(Text, default="amazon")
    objective: Mapped[str | None] = mapped_column(Text, nullable=True)
    # JSON: {"tester_count": int, "age_ranges": [...], "genders": [...], "locations": [...]}
    demographics: Mapped[str | None] = mapped_column(Text, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    variations = relationship("TestVariation", back_populates="test")
    competitors = relationship("Competitor", back_populates="test")

    # Not collected by pytest despite the name
    __test__ = False

    def demographics_dict(self) -> dict:
        try:
            data = json.loads(self.demographics or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}
        return data if isinstance(data, dict) else {}

    def __repr__(self) -> str:
        return f"<Test id={self.id} name={self.name!r} status={self.status!r}>"


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} title={self.title!r}>"


class TestVariation(Base):
    __tablename__ = "test_variations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_id: Mapped[str] = mapped_column(Text, ForeignKey("tests.id"), nullable=False)
    product_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("products.id"), nullable=True)
    variation_type: Mapped[str] = mapped_column(Text, nullable=False)

    test = relationship("Test", back_populates="variations")
    product = relationship("Product")

    __test__ = False

    def __repr__(self) -> str:
        return f"<TestVariation test_id={self.test_id} type={self.variation_type!r}>"
