# src/services/health_checker.py

"""Connectivity health checks for the browser, the store and the target."""

import asyncio
import logging
import time
from dataclasses import dataclass

from curl_cffi import requests as curl_requests

from src.config.settings import Settings
from src.scrapers.browser_session import BrowserSessionManager
from src.storage.tracker_db import TrackerDB

logger = logging.getLogger("pricepulse.health")

_HEALTH_TIMEOUT = 10  # seconds per probe
_SLOW_MS = 5000
_DEFAULT_DOMAINS = ("com",)


@dataclass
class HealthResult:
    """Result of a single health probe."""

    source_id: str
    status: str  # "ok", "slow", "down"
    latency_ms: float
    message: str


def _classify(source_id: str, elapsed_ms: float, message: str = "") -> HealthResult:
    if elapsed_ms > _SLOW_MS:
        return HealthResult(source_id, "slow", elapsed_ms, "High latency")
    return HealthResult(source_id, "ok", elapsed_ms, message)


def probe_target(domain: str) -> HealthResult:
    """GET the Amazon homepage for *domain* with an impersonating client."""
    source_id = f"amazon.{domain}"
    homepage = f"https://www.amazon.{domain}/"
    session = curl_requests.Session(
        impersonate=Settings.IMPERSONATE_BROWSER
    )
    start = time.monotonic()
    try:
        resp = session.get(
            homepage,
            headers={"Accept-Language": "en-US,en;q=0.9"},
            timeout=_HEALTH_TIMEOUT,
        )
        elapsed_ms = (time.monotonic() - start) * 1000
        if resp.status_code != 200:
            return HealthResult(
                source_id, "down", elapsed_ms, f"HTTP {resp.status_code}",
            )
        return _classify(source_id, elapsed_ms)
    except Exception as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        return HealthResult(source_id, "down", elapsed_ms, str(exc)[:80])
    finally:
        session.close()


def probe_database(db: TrackerDB) -> HealthResult:
    """Count tracked products as a round trip through the store."""
    start = time.monotonic()
    try:
        count = len(db.list_products())
    except Exception as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        return HealthResult("database", "down", elapsed_ms, str(exc)[:80])
    elapsed_ms = (time.monotonic() - start) * 1000
    return _classify("database", elapsed_ms, f"{count} product(s)")


async def probe_browser(sessions: BrowserSessionManager) -> HealthResult:
    """Acquire a browser session (launching one if needed)."""
    start = time.monotonic()
    try:
        browser = await asyncio.wait_for(
            sessions.acquire_session(),
            timeout=Settings.BROWSER_LAUNCH_TIMEOUT,
        )
        version = getattr(browser, "version", "")
    except Exception as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        return HealthResult("browser", "down", elapsed_ms, str(exc)[:80])
    elapsed_ms = (time.monotonic() - start) * 1000
    return _classify("browser", elapsed_ms, str(version))


class HealthChecker:
    """Runs the browser, database and target probes concurrently."""

    def __init__(
        self,
        sessions: BrowserSessionManager,
        db: TrackerDB,
        domains: list[str] | None = None,
    ) -> None:
        self.sessions = sessions
        self.db = db
        self.domains = domains

    async def check_all(self) -> list[HealthResult]:
        """Probe every dependency concurrently."""
        domains = self.domains
        if domains is None:
            try:
                products = await asyncio.to_thread(self.db.list_products)
                domains = sorted({p.domain for p in products})
            except Exception as exc:
                logger.warning("Could not list tracked domains: %s", exc)
                domains = []
            domains = domains or list(_DEFAULT_DOMAINS)

        tasks = [
            probe_browser(self.sessions),
            asyncio.to_thread(probe_database, self.db),
            *(asyncio.to_thread(probe_target, d) for d in domains),
        ]
        results: list[HealthResult] = list(await asyncio.gather(*tasks))
        for r in results:
            logger.info(
                "Health check %s: %s (%.0fms) %s",
                r.source_id,
                r.status,
                r.latency_ms,
                r.message,
            )
        return results
