"""
Single-source configuration: paths, browser settings, timeouts, scroll
behaviour, retry policy, rate limiting, output, and logging.

Everything that might need tweaking lives here.  Per-deployment values
are read from the environment (or a ``.env`` file).  The search pipeline
does not read these constants at call time; it receives an immutable
``ScraperSettings`` built by ``ScraperSettings.from_config()``.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, ""))
    except ValueError:
        return default


# ── Project Paths ─────────────────────────────────────────────────────────────

ROOT_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = ROOT_DIR / "data"
LOGS_DIR = Path(os.getenv("LOG_FILE_PATH") or ROOT_DIR / "logs")


# ── Browser ───────────────────────────────────────────────────────────────────

HEADLESS: bool = _env_bool("HEADLESS", True)
STEALTH_MODE: bool = _env_bool("STEALTH_MODE", True)
RANDOMIZE_VIEWPORT: bool = _env_bool("RANDOMIZE_VIEWPORT", True)
RANDOMIZE_USER_AGENT: bool = _env_bool("RANDOMIZE_USER_AGENT", True)
LOCALE: str = "en-US"
TIMEZONE_ID: str = "Asia/Jerusalem"
GEOLOCATION: dict = {"latitude": 32.0853, "longitude": 34.7818}   # Tel Aviv
BLOCKED_RESOURCE_TYPES: tuple = ("image", "stylesheet", "font", "media")
BLOCKED_DOMAINS: tuple = (
    "google-analytics.com",
    "googletagmanager.com",
    "doubleclick.net",
    "facebook.com",
)

# ── Proxy ─────────────────────────────────────────────────────────────────────

PROXY_URL: str = os.getenv("PROXY_URL", "")               # comma-separated pool
PROXY_USERNAME: str = os.getenv("PROXY_USERNAME", "")
PROXY_PASSWORD: str = os.getenv("PROXY_PASSWORD", "")
ROTATE_PROXIES: bool = _env_bool("ROTATE_PROXIES", False)

# ── Timeouts (milliseconds, Playwright convention) ────────────────────────────

PAGE_LOAD_TIMEOUT: int = _env_int("TIMEOUT", 30_000)
RESULTS_TIMEOUT: int = 15_000            # first result card must appear
PANEL_TIMEOUT: int = 10_000              # detail panel after card click
RESULTS_SETTLE: int = 2_000              # after first card appears
PANEL_SETTLE: int = 1_500                # single post-navigation settle

# ── Scroll behaviour ─────────────────────────────────────────────────────────

SCROLL_SETTLE: int = 2_000               # wait after each scroll (ms)
MAX_SCROLL_ATTEMPTS: int = 10            # hard bound on scroll iterations

# ── Workers / retry / resilience ─────────────────────────────────────────────

DEFAULT_WORKERS: int = _env_int("DEFAULT_WORKERS", 3)
MAX_RETRIES: int = _env_int("MAX_RETRIES", 3)
RETRY_BACKOFF_BASE: float = 2.0          # exponential backoff base
RETRY_BACKOFF_MAX: float = 30.0          # cap wait time (seconds)

# ── Rate limiting (milliseconds) ─────────────────────────────────────────────

MIN_DELAY: int = _env_int("MIN_DELAY", 2_000)
MAX_DELAY: int = _env_int("MAX_DELAY", 8_000)
RATE_LIMIT_PAUSE: int = _env_int("RATE_LIMIT_PAUSE", 60_000)

# ── Output ────────────────────────────────────────────────────────────────────

OUTPUT_DIR: Path = Path(os.getenv("EXPORT_PATH") or DATA_DIR)
BUFFER_SIZE: int = _env_int("BUFFER_SIZE", 10)
ENABLE_SCREENSHOTS: bool = _env_bool("ENABLE_SCREENSHOTS", True)
DEFAULT_LIMIT: int = 20
DEFAULT_COUNTRY: str = os.getenv("DEFAULT_COUNTRY", "Israel")
IMAGE_URL_SEPARATOR: str = "|"

# ── Logging ───────────────────────────────────────────────────────────────────

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# ── Selectors ─────────────────────────────────────────────────────────────────
#
#    The default table lives in leadscraper/selectors.py.  Point this at a
#    JSON file to override entries without touching code.

SELECTORS_FILE: Optional[Path] = (
    Path(os.environ["SELECTORS_FILE"]) if os.getenv("SELECTORS_FILE") else None
)


# ── Immutable settings threaded through the pipeline ──────────────────────────

class RateLimitConfig(BaseModel):
    """Randomised inter-card delay window, in milliseconds."""

    model_config = ConfigDict(frozen=True)

    min_delay: int = Field(MIN_DELAY, ge=0)
    max_delay: int = Field(MAX_DELAY, ge=0)
    rate_limit_pause: int = Field(RATE_LIMIT_PAUSE, ge=0)

    @model_validator(mode="after")
    def check_window(self) -> "RateLimitConfig":
        if self.min_delay > self.max_delay:
            raise ValueError("min_delay must not exceed max_delay")
        return self

    def escalated(self, factor: float = 2.0) -> "RateLimitConfig":
        """Return a copy with the delay window scaled by *factor*."""
        return self.model_copy(
            update={
                "min_delay": int(self.min_delay * factor),
                "max_delay": int(self.max_delay * factor),
            }
        )


class ScraperSettings(BaseModel):
    """Everything one search session needs to know, frozen."""

    model_config = ConfigDict(frozen=True)

    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    page_load_timeout: int = PAGE_LOAD_TIMEOUT
    results_timeout: int = RESULTS_TIMEOUT
    panel_timeout: int = PANEL_TIMEOUT
    results_settle: int = RESULTS_SETTLE
    panel_settle: int = PANEL_SETTLE
    scroll_settle: int = SCROLL_SETTLE
    max_scroll_attempts: int = Field(MAX_SCROLL_ATTEMPTS, ge=1)
    max_retries: int = Field(MAX_RETRIES, ge=0)
    default_country: str = DEFAULT_COUNTRY
    headless: bool = HEADLESS

    @classmethod
    def from_config(cls, **overrides) -> "ScraperSettings":
        """Snapshot the module-level constants (plus *overrides*)."""
        values = dict(
            rate_limit=RateLimitConfig(
                min_delay=MIN_DELAY,
                max_delay=MAX_DELAY,
                rate_limit_pause=RATE_LIMIT_PAUSE,
            ),
            page_load_timeout=PAGE_LOAD_TIMEOUT,
            results_timeout=RESULTS_TIMEOUT,
            panel_timeout=PANEL_TIMEOUT,
            results_settle=RESULTS_SETTLE,
            panel_settle=PANEL_SETTLE,
            scroll_settle=SCROLL_SETTLE,
            max_scroll_attempts=MAX_SCROLL_ATTEMPTS,
            max_retries=MAX_RETRIES,
            default_country=DEFAULT_COUNTRY,
            headless=HEADLESS,
        )
        values.update(overrides)
        return cls(**values)
