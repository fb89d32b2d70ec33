"""Configuration module: environment variables and constants."""

import os
from pathlib import Path

from dotenv import load_dotenv

from eggprices.errors import ConfigError

# .env.local / .env live at the project root; the first file wins per key
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env.local")
load_dotenv(_PROJECT_ROOT / ".env")

# --- Supabase ---
SUPABASE_URL: str = os.environ.get("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY: str = os.environ.get("SUPABASE_SERVICE_KEY", "")
SUPABASE_SCHEMA: str = os.environ.get("SUPABASE_SCHEMA", "public")
STORES_TABLE: str = os.environ.get("STORES_TABLE", "kroger_stores")
SUMMARY_TABLE: str = os.environ.get("SUMMARY_TABLE", "kroger_egg_prices")

STORE_PAGE_SIZE = 1000
STORE_PAGE_DELAY = 0.2  # seconds
SUMMARY_CONFLICT_KEY = "location_id,captured_date"
BATCH_SIZE = 20

# --- Kroger API ---
KROGER_CLIENT_ID: str = os.environ.get("KROGER_CLIENT_ID", "")
KROGER_CLIENT_SECRET: str = os.environ.get("KROGER_CLIENT_SECRET", "")

TOKEN_URL = "https://api.kroger.com/v1/connect/oauth2/token"
TOKEN_SCOPE = "product.compact"
TOKEN_REFRESH_MARGIN = 60  # seconds before expiry

PRODUCTS_URL = "https://api.kroger.com/v1/products"
LOCATION_ID_LENGTH = 8

SEARCH_TERMS = (
    "eggs",
    "egg",
    "dozen eggs",
    "12 ct eggs",
    "large eggs",
    "organic eggs",
)
PAGE_LIMIT = 50  # API max
MAX_START = 250  # filter.start must stay within 1..250

# Price fields tried in order on each in-store item
PRICE_FIELD_PRIORITY = ("promo", "regular", "original", "current", "final", "retail")
MIN_PRICE = 0.01

# --- Request settings ---
REQUEST_TIMEOUT = 30  # seconds
REQUEST_DELAY = 0.7  # seconds between product pages
STORE_DELAY = 1.0  # seconds after each store
MAX_ATTEMPTS = 5  # per page, for 429 back-off

STORE_CONCURRENCY = int(os.environ.get("STORE_CONCURRENCY", "1"))

# --- Logging ---
LOG_DIR = Path(__file__).resolve().parent.parent / "logs"

REQUIRED_ENV = (
    "SUPABASE_URL",
    "SUPABASE_SERVICE_KEY",
    "KROGER_CLIENT_ID",
    "KROGER_CLIENT_SECRET",
)


def check_required_env() -> None:
    """Raise ConfigError listing every required variable that is unset."""
    missing = [name for name in REQUIRED_ENV if not os.environ.get(name)]
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")


def shard_bounds() -> tuple[int, int | None]:
    """Read START_AT / END_AT and return the [start, end) slice bounds.

    END_AT defaults to None, i.e. through the last store.

    Raises:
        ConfigError: when either variable is not an integer.
    """
    raw_start = os.environ.get("START_AT", "") or "0"
    raw_end = os.environ.get("END_AT", "")
    try:
        return int(raw_start), int(raw_end) if raw_end else None
    except ValueError as e:
        raise ConfigError(f"START_AT/END_AT must be integers: {e}") from e
