"""Product Test Insights - Main entry point."""
import logging

from nicegui import app, ui

from config import APP_HOST, APP_PORT, APP_TITLE, LOG_LEVEL
from src.models import init_db
from src.services import InsightCache
from src.ui.pages.report import report_page

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Initialize database tables on startup
init_db()

# One cache for every open report view, keyed by test id
insight_cache = InsightCache()


@ui.page("/tests/{test_id}/report")
def report_view(test_id: str, viewer: str | None = None):
    report_page(test_id, insight_cache, viewer=viewer)


@ui.page("/tests/{test_id}")
def test_redirect(test_id: str):
    ui.navigate.to(f"/tests/{test_id}/report")


@app.get("/_health")
async def health_check():
    return {"status": "ok", "app": "product-test-insights"}


ui.run(
    title=APP_TITLE,
    host=APP_HOST,
    port=APP_PORT,
    reload=False,
    dark=False,
)
