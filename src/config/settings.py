# src/config/settings.py

"""Central configuration for the pricepulse tracker."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    """Read an integer from the environment, falling back to *default*."""
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    """Read a float from the environment, falling back to *default*."""
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_bool(name: str, default: bool) -> bool:
    """Read a true/false flag from the environment."""
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Central configuration for the pricepulse tracker."""

    # --- Scheduling ---
    SCRAPE_TASK_NAME: str = "scrape product price"
    SCRAPE_INTERVAL_MINUTES: int = _env_int("SCRAPE_INTERVAL_MINUTES", 30)
    HISTORY_RETENTION_DAYS: int = _env_int("HISTORY_RETENTION_DAYS", 14)
    MAX_CONCURRENT_SCRAPES: int = _env_int("MAX_CONCURRENT_SCRAPES", 50)

    # --- Browser lifecycle ---
    PLAYWRIGHT_HEADLESS: bool = _env_bool("PLAYWRIGHT_HEADLESS", True)
    BROWSER_LAUNCH_RETRIES: int = _env_int("BROWSER_LAUNCH_RETRIES", 3)
    BROWSER_LAUNCH_BACKOFF: float = _env_float("BROWSER_LAUNCH_BACKOFF", 2.0)
    BROWSER_LAUNCH_TIMEOUT: float = _env_float("BROWSER_LAUNCH_TIMEOUT", 60.0)
    BROWSER_PROBE_TIMEOUT: float = _env_float("BROWSER_PROBE_TIMEOUT", 5.0)
    BROWSER_HEALTH_INTERVAL: float = _env_float(
        "BROWSER_HEALTH_INTERVAL", 300.0
    )
    BROWSER_ARGS: list[str] = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--disable-extensions",
        "--disable-blink-features=AutomationControlled",
    ]

    # --- Navigation (seconds) ---
    NAVIGATION_TIMEOUT: float = _env_float("NAVIGATION_TIMEOUT", 45.0)
    NAVIGATION_RETRIES: int = _env_int("NAVIGATION_RETRIES", 1)
    NAVIGATION_BACKOFF: float = _env_float("NAVIGATION_BACKOFF", 3.0)
    SELECTOR_TIMEOUT: float = _env_float("SELECTOR_TIMEOUT", 10.0)
    COOKIE_CONSENT_TIMEOUT: float = _env_float("COOKIE_CONSENT_TIMEOUT", 5.0)
    IMAGE_DOWNLOAD_TIMEOUT: int = _env_int("IMAGE_DOWNLOAD_TIMEOUT", 15)

    # --- Anti-detection ---
    CAPTCHA_KEYWORDS: list[str] = [
        "enter the characters you see below",
        "type the characters you see in this image",
        "sorry, we just need to make sure you're not a robot",
        "api-services-support@amazon.com",
    ]
    UNAVAILABLE_PHRASES: list[str] = [
        "currently unavailable",
        "we don't know when or if this item will be back in stock",
    ]
    BLOCKED_RESOURCE_TYPES: frozenset[str] = frozenset({
        "image", "stylesheet", "font", "media",
    })
    USER_AGENTS: list[str] = [
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/130.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
        ),
    ]
    VIEWPORTS: list[dict[str, int]] = [
        {"width": 1920, "height": 1080},
        {"width": 1536, "height": 864},
        {"width": 1440, "height": 900},
        {"width": 1366, "height": 768},
    ]
    ACCEPT_LANGUAGES: list[str] = [
        "en-US,en;q=0.9",
        "en-GB,en;q=0.9",
        "en-IN,en;q=0.9,hi;q=0.8",
    ]

    # --- Out-of-band image download ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "image/avif,image/webp,image/apng,"
            "image/svg+xml,image/*,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
    }

    # --- E-mail ---
    SMTP_SERVER: str = os.getenv("SMTP_SERVER", "smtp.gmail.com")
    SMTP_PORT: int = _env_int("SMTP_PORT", 587)
    SMTP_TIMEOUT: float = _env_float("SMTP_TIMEOUT", 20.0)
    EMAIL_USER: str = os.getenv("EMAIL_USER", "")
    EMAIL_PASSWORD: str = os.getenv("EMAIL_PASSWORD", "")
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "") or EMAIL_USER

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = BASE_DIR / "src" / "config" / "selectors.json"
    TRACKER_DB_PATH: Path = Path(
        os.getenv("TRACKER_DB_PATH", str(BASE_DIR / "data" / "tracker.db"))
    )
    UPLOADS_DIR: Path = Path(
        os.getenv("UPLOADS_DIR", str(BASE_DIR / "uploads"))
    )
    IMAGE_PUBLIC_BASE_URL: str = os.getenv("IMAGE_PUBLIC_BASE_URL", "")
    LOGS_DIR: Path = BASE_DIR / "logs"

    # --- Logging ---
    LOG_MAX_BYTES: int = _env_int("LOG_MAX_BYTES", 10 * 1024 * 1024)
    LOG_BACKUP_COUNT: int = _env_int("LOG_BACKUP_COUNT", 5)
    LOG_KEEP_RUNS: int = _env_int("LOG_KEEP_RUNS", 20)
