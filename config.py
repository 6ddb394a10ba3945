"""Application configuration."""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Paths
BASE_DIR = Path(__file__).parent
DATA_DIR = BASE_DIR / "data"
DB_PATH = DATA_DIR / "insights.db"
EXPORTS_DIR = DATA_DIR / "exports"

# Ensure directories exist
DATA_DIR.mkdir(exist_ok=True)
EXPORTS_DIR.mkdir(exist_ok=True)

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DB_PATH}")

# Narrative (AI insight) service.  When INSIGHT_ENDPOINT_URL is empty the
# narrative is read straight from the ai_insights table.
INSIGHT_ENDPOINT_URL = os.getenv("INSIGHT_ENDPOINT_URL", "")
INSIGHT_REGENERATE_URL = os.getenv("INSIGHT_REGENERATE_URL", "")
INSIGHT_API_KEY = os.getenv("INSIGHT_API_KEY", "")
INSIGHT_REQUEST_TIMEOUT = int(os.getenv("INSIGHT_REQUEST_TIMEOUT", "20"))

# Viewers allowed to browse every tab of a draft test
ELEVATED_VIEWERS: frozenset[str] = frozenset(
    e.strip().lower()
    for e in os.getenv("ELEVATED_VIEWERS", "").split(",")
    if e.strip()
)

# Store skins
SKIN_LABELS = {
    "amazon": "Amazon",
    "walmart": "Walmart",
}

# App settings
APP_TITLE = "Product Test Insights"
APP_PORT = int(os.getenv("APP_PORT", "8080"))
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
