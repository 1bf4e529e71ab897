"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── Database ─────────────────────────────────────────────────────────
DEFAULT_DB_URI = "sqlite:///pharmacy.db"
SQLITE_BUSY_TIMEOUT = 30  # seconds a writer waits for the SQLite write lock

# ── Inventory / refill rules ─────────────────────────────────────────
LOW_STOCK_THRESHOLD = 100
DUE_SOON_DAYS = 7
UPCOMING_LIMIT = 4
EXPIRY_WARNING_DAYS = 90

# Validation retries after a lost compare-and-swap on stock.
FILL_RETRY_LIMIT = 1

# ── CLI preview limits ───────────────────────────────────────────────
MAX_PREVIEW_ROWS = 20

# ── API server ───────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
TOKEN_EXPIRY_HOURS = 12
MAX_RESULTS_RETURN = 1000


def get_db_uri() -> str:
    """Return the configured database URI (falls back to a local SQLite file)."""
    return os.getenv("DB_URI", DEFAULT_DB_URI)


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
