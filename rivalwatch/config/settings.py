# rivalwatch/config/settings.py

"""Central configuration for the rivalwatch monitor."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the rivalwatch monitor."""

    # --- Fetching ---
    REQUEST_TIMEOUT: int = 15           # Seconds before a request times out
    CHECK_TIMEOUT: float = 60.0         # Seconds allowed for one full check

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "User-Agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36"
        ),
    }

    # --- Snapshots ---
    MAX_SNAPSHOT_TEXT: int = 50_000     # Chars kept before normalising
    MENU_SOURCE_MARKERS: list[str] = ["pizza-website"]
    MENU_API_FALLBACK: bool = False     # Try <url>/api/menu when parse is empty

    # --- Detection ---
    SIMILARITY_THRESHOLD: float = 0.95
    PRICE_TOLERANCE: float = 0.01

    # --- Retention ---
    MAX_SNAPSHOTS_PER_COMPETITOR: int = 100
    MAX_CHANGES: int = 200
    MAX_UPDATE_EVENTS: int = 500

    # --- Enrichment ---
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    ENRICHMENT_MODEL: str = os.getenv(
        "RIVALWATCH_ENRICHMENT_MODEL", "claude-3-5-haiku-latest"
    )
    ENRICHMENT_MAX_TOKENS: int = 512
    ENRICHMENT_TEMPERATURE: float = 0.3
    ENRICHMENT_EXCERPT_CHARS: int = 500

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = BASE_DIR / "rivalwatch" / "config" / "selectors.json"
    DATA_DIR: Path = BASE_DIR / "data"
    MONITORING_DB_PATH: Path = DATA_DIR / "monitoring.db"
    COMPETITORS_PATH: Path = DATA_DIR / "competitors.json"
    LOGS_DIR: Path = BASE_DIR / "logs"
    MAX_LOG_FILES: int = 20             # Older run logs are deleted

    # --- Competitors (used when no competitors file exists) ---
    DEMO_BASE_URL: str = os.getenv(
        "RIVALWATCH_DEMO_BASE_URL", "http://localhost:3000"
    )
    DEFAULT_COMPETITORS: list[dict[str, str]] = [
        {
            "id": "pizza-demo",
            "name": "Slice & Wood Pizzeria",
            "domain": f"{DEMO_BASE_URL}/api/demo/pizza-website",
        },
    ]
