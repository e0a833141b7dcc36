"""Configuration derived from settings.json plus fixed pipeline constants."""

import os

from settings import get_settings


def _load():
    """Load all config values from the current settings."""
    global BOT_NAME, CONTACT_URL, USER_AGENT, DB_PATH, REPORTS_DIR
    global SOURCES, LISTING_RETENTION_DAYS, RUN_RETENTION_DAYS, PASS_TIME_BUDGET_SEC

    _s = get_settings()
    BOT_NAME = _s.get("bot_name", "H1BJobsBot")
    CONTACT_URL = _s.get("contact_url", "https://h1bfriendly.com")
    USER_AGENT = f"{BOT_NAME}/1.0 (+{CONTACT_URL})"
    DB_PATH = os.environ.get("H1B_DB_PATH") or _s.get("db_path", "h1b_jobs.db")
    REPORTS_DIR = _s.get("reports_dir", "reports/")
    SOURCES = _s.get("sources", [])
    LISTING_RETENTION_DAYS = _s.get("listing_retention_days", 30)
    RUN_RETENTION_DAYS = _s.get("run_retention_days", 7)
    PASS_TIME_BUDGET_SEC = _s.get("pass_time_budget_sec")  # None = no limit


# Network
ROBOTS_TIMEOUT_SEC = 10
REQUEST_TIMEOUT_SEC = 30

# Crawl delays (milliseconds)
FAIL_OPEN_DELAY_MS = 2000  # robots.txt unreachable
DEFAULT_CRAWL_DELAY_MS = 1000  # robots.txt has no delay for us

# Processing
SPONSORSHIP_THRESHOLD = 0.6
FALLBACK_CONFIDENCE = 0.3
MIN_DESCRIPTION_LENGTH = 100
DEFAULT_COUNTRY = "United States"
DEFAULT_CURRENCY = "USD"
DEFAULT_JOB_TYPE = "Full-time"

# Initial load
_load()


def reload():
    """Re-read settings.json and refresh all module-level constants."""
    _load()
