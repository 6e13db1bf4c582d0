# src/scrapers/browser_session.py

"""Lifecycle owner for the shared headless Chromium process.

A single :class:`BrowserSessionManager` instance is created per process
and injected wherever a browser is needed. It keeps at most one browser
alive, probes it before handing it out, relaunches it with bounded
retries, and guarantees that concurrent callers never trigger two
launches at once: they all await the same in-flight launch task.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from playwright.async_api import Browser, Playwright, async_playwright

from src.config.settings import Settings
from src.scrapers.errors import LaunchFailureError
from src.services.retry_policy import RetryPolicy, Sleep, linear_backoff

logger = logging.getLogger("pricepulse.browser")

Launcher = Callable[[], Awaitable[Browser]]
StateListener = Callable[["SessionHealth"], None]


class SessionHealth(str, Enum):
    """Observable health of the managed browser."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    LAUNCHING = "launching"


class BrowserSessionManager:
    """Owns one reusable Chromium process behind a single-flight launch."""

    def __init__(
        self,
        launcher: Launcher | None = None,
        *,
        launch_policy: RetryPolicy | None = None,
        probe_timeout: float | None = None,
        health_interval: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = Settings()
        self._launcher: Launcher = launcher or self._launch_chromium
        self._launch_policy = launch_policy or RetryPolicy(
            max_attempts=self.settings.BROWSER_LAUNCH_RETRIES,
            backoff=linear_backoff(self.settings.BROWSER_LAUNCH_BACKOFF),
        )
        self._probe_timeout = (
            probe_timeout
            if probe_timeout is not None
            else self.settings.BROWSER_PROBE_TIMEOUT
        )
        self._health_interval = (
            health_interval
            if health_interval is not None
            else self.settings.BROWSER_HEALTH_INTERVAL
        )
        self._sleep = sleep

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._launch_task: asyncio.Task[Browser] | None = None
        self._monitor_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self._listeners: list[StateListener] = []
        self._state = SessionHealth.UNHEALTHY
        self._closed = False
        self.launch_attempts = 0

    # ── State & events ───────────────────────────────────

    @property
    def state(self) -> SessionHealth:
        """Current health of the managed browser."""
        return self._state

    @property
    def is_closed(self) -> bool:
        """True once :meth:`close` has been called."""
        return self._closed

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback for health transitions.

        Returns a function that removes the listener again.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def _set_state(self, state: SessionHealth) -> None:
        if state is self._state:
            return
        logger.debug(
            "Browser state %s -> %s", self._state.value, state.value
        )
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.error(
                    "Browser state listener failed", exc_info=True
                )

    def _on_disconnected(self, browser: Browser) -> None:
        """Playwright ``disconnected`` event for the managed browser."""
        if browser is not self._browser:
            return
        logger.warning("Browser process disconnected")
        self._browser = None
        self._set_state(SessionHealth.UNHEALTHY)

    # ── Acquisition ──────────────────────────────────────

    async def acquire_session(self) -> Browser:
        """Return a live browser, launching one if needed.

        Raises:
            LaunchFailureError: every launch attempt failed, or the
                manager has been closed.
        """
        if self._closed:
            raise LaunchFailureError("Browser session manager is closed")

        async with self._lock:
            browser = self._browser
            if browser is not None:
                if await self._probe(browser):
                    return browser
                logger.warning(
                    "Cached browser failed liveness probe, relaunching"
                )
                await self._discard(browser)

            if self._launch_task is None:
                self._set_state(SessionHealth.LAUNCHING)
                self._launch_task = asyncio.create_task(
                    self._launch(), name="browser-launch"
                )
            task = self._launch_task

        # Callers share one launch; cancelling one waiter must not
        # cancel the launch for the others.
        return await asyncio.shield(task)

    async def _launch(self) -> Browser:
        try:
            browser = await self._launch_policy.run(
                self._launch_once,
                description="Browser launch",
                sleep=self._sleep,
            )
        except Exception as exc:
            self._set_state(SessionHealth.UNHEALTHY)
            logger.critical(
                "Browser unavailable after %d launch attempt(s): %s",
                self._launch_policy.max_attempts,
                exc,
                exc_info=True,
            )
            raise LaunchFailureError(
                f"Browser unavailable: {exc}"
            ) from exc
        finally:
            self._launch_task = None

        if self._closed:
            await self._close_browser(browser)
            raise LaunchFailureError(
                "Browser session manager closed during launch"
            )

        self._browser = browser
        with contextlib.suppress(AttributeError):
            browser.on("disconnected", self._on_disconnected)
        self._set_state(SessionHealth.HEALTHY)
        logger.info(
            "Browser launched (attempt %d overall)", self.launch_attempts
        )
        return browser

    async def _launch_once(self) -> Browser:
        self.launch_attempts += 1
        return await asyncio.wait_for(
            self._launcher(),
            timeout=self.settings.BROWSER_LAUNCH_TIMEOUT,
        )

    async def _launch_chromium(self) -> Browser:
        """Default launcher: headless Chromium through Playwright."""
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return await self._playwright.chromium.launch(
            headless=self.settings.PLAYWRIGHT_HEADLESS,
            args=self.settings.BROWSER_ARGS,
        )

    # ── Health ───────────────────────────────────────────

    async def _probe(self, browser: Browser) -> bool:
        """Bounded liveness probe: process alive + one CDP round trip."""
        try:
            if not browser.is_connected():
                return False
            await asyncio.wait_for(
                self._round_trip(browser), timeout=self._probe_timeout
            )
            return True
        except Exception as exc:
            logger.warning(
                "Browser liveness probe failed: %s",
                exc or type(exc).__name__,
            )
            return False

    @staticmethod
    async def _round_trip(browser: Browser) -> Any:
        cdp = await browser.new_browser_cdp_session()
        try:
            return await cdp.send("Browser.getVersion")
        finally:
            await cdp.detach()

    async def check_health(self) -> bool:
        """Probe the cached browser; close it if the probe fails.

        Returns True when a healthy browser is cached. Having no
        browser at all is not a failure: the next acquisition launches.
        """
        async with self._lock:
            browser = self._browser
            if browser is None:
                return False
            if await self._probe(browser):
                self._set_state(SessionHealth.HEALTHY)
                return True
            logger.warning(
                "Periodic health probe failed, closing browser"
            )
            await self._discard(browser)
            return False

    def start_monitor(self) -> None:
        """Start the periodic background health probe."""
        if self._monitor_task is not None and not self._monitor_task.done():
            return
        self._monitor_task = asyncio.create_task(
            self._monitor_loop(), name="browser-health-monitor"
        )

    async def _monitor_loop(self) -> None:
        while not self._closed:
            await self._sleep(self._health_interval)
            try:
                await self.check_health()
            except Exception:
                logger.error("Browser health monitor error", exc_info=True)

    # ── Teardown ─────────────────────────────────────────

    async def _discard(self, browser: Browser) -> None:
        """Forget *browser* and close it (caller holds the lock)."""
        if browser is self._browser:
            self._browser = None
        self._set_state(SessionHealth.UNHEALTHY)
        await self._close_browser(browser)

    async def _close_browser(self, browser: Browser) -> None:
        try:
            await asyncio.wait_for(
                browser.close(), timeout=self._probe_timeout
            )
        except Exception as exc:
            logger.warning("Error closing browser: %s", exc)

    async def close(self) -> None:
        """Stop monitoring and close every browser resource. Idempotent."""
        self._closed = True

        if self._monitor_task is not None:
            self._monitor_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._monitor_task
            self._monitor_task = None

        launch = self._launch_task
        if launch is not None:
            launch.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await launch

        async with self._lock:
            if self._browser is not None:
                await self._discard(self._browser)

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as exc:
                logger.warning("Error stopping Playwright: %s", exc)
            self._playwright = None
        logger.info("Browser session manager closed")

    async def __aenter__(self) -> "BrowserSessionManager":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
