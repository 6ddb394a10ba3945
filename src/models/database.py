"""Database engine, session factory, and base model."""
import logging
from datetime import datetime, timezone

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import DATABASE_URL

logger = logging.getLogger(__name__)

engine = create_engine(DATABASE_URL, echo=False)
SessionLocal = sessionmaker(bind=engine)


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """Timezone-aware current time, used as the default for timestamp columns."""
    return datetime.now(timezone.utc)


def get_session():
    """Return a new database session."""
    return SessionLocal()


def _migrate_indexes():
    """Create indexes on the test_id columns every report query filters on."""
    _indexes = [
        ("ix_test_variations_test_id", "test_variations", "test_id"),
        ("ix_competitors_test_id", "competitors", "test_id"),
        ("ix_summary_test_id", "summary", "test_id"),
        ("ix_purchase_drivers_test_id", "purchase_drivers", "test_id"),
        ("ix_competitive_insights_test_id", "competitive_insights", "test_id"),
        ("ix_ai_insights_test_id", "ai_insights", "test_id"),
        ("ix_responses_surveys_test_id", "responses_surveys", "test_id"),
        ("ix_responses_comparisons_test_id", "responses_comparisons", "test_id"),
        ("ix_responses_comparisons_walmart_test_id", "responses_comparisons_walmart", "test_id"),
    ]
    inspector = inspect(engine)
    tables = inspector.get_table_names()
    with engine.begin() as conn:
        for idx_name, table, column in _indexes:
            if table not in tables:
                continue
            existing = {idx["name"] for idx in inspector.get_indexes(table)}
            if idx_name not in existing:
                logger.info("Creating index %s on %s.%s", idx_name, table, column)
                conn.execute(text(
                    f"CREATE INDEX IF NOT EXISTS {idx_name} ON {table} ({column})"
                ))


def init_db():
    """Create all tables defined by Base subclasses."""
    # Import all models so they register with Base.metadata
    import src.models.test  # noqa: F401
    import src.models.competitor  # noqa: F401
    import src.models.results  # noqa: F401
    import src.models.responses  # noqa: F401

    Base.metadata.create_all(bind=engine)
    _migrate_indexes()
