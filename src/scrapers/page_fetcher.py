# src/scrapers/page_fetcher.py

"""Opens one stealthy, bandwidth-limited page per scrape.

:meth:`PageFetcher.fetch` is an async context manager: the browser
context and page it creates are closed on every exit path, whether
navigation succeeded, timed out, or the caller's extraction raised.
"""

import asyncio
import json
import logging
import random
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TypeVar

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Response,
    Route,
)
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.config.settings import Settings
from src.models.scrape_result import FetchMode
from src.scrapers.errors import (
    InvalidUrlError,
    NavigationError,
    NavigationTimeoutError,
    PageUnusableError,
)
from src.scrapers.selectors import load_selectors
from src.scrapers.url_parser import is_amazon_url
from src.services.retry_policy import RetryPolicy, linear_backoff

logger = logging.getLogger("pricepulse.fetcher")

T = TypeVar("T")

_STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => %(languages)s });
window.chrome = window.chrome || { runtime: {} };
const originalQuery = window.navigator.permissions.query;
window.navigator.permissions.query = (parameters) => (
    parameters.name === 'notifications'
        ? Promise.resolve({ state: Notification.permission })
        : originalQuery(parameters)
);
"""


@dataclass
class PageHandle:
    """A loaded product page, valid only inside ``PageFetcher.fetch``."""

    page: Page
    url: str
    mode: FetchMode
    status: int | None = None
    content_timeout: float = 10.0

    async def content(self) -> str:
        """Serialised DOM of the page."""
        try:
            return await asyncio.wait_for(
                self.page.content(), timeout=self.content_timeout
            )
        except asyncio.TimeoutError as exc:
            raise NavigationTimeoutError(
                "Timed out reading page content", url=self.url
            ) from exc
        except PlaywrightError as exc:
            raise NavigationError(
                f"Could not read page content: {exc}", url=self.url
            ) from exc


def _languages_from_header(accept_language: str) -> list[str]:
    """``"en-GB,en;q=0.9"`` -> ``["en-GB", "en"]``."""
    return [
        part.split(";")[0].strip()
        for part in accept_language.split(",")
        if part.strip()
    ]


class PageFetcher:
    """Creates isolated, fingerprint-randomised pages and navigates them."""

    def __init__(
        self,
        navigation_policy: RetryPolicy | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = Settings()
        self.selectors = load_selectors("amazon")
        self._navigation_policy = navigation_policy or RetryPolicy(
            max_attempts=self.settings.NAVIGATION_RETRIES,
            backoff=linear_backoff(self.settings.NAVIGATION_BACKOFF),
            retry_on=(NavigationTimeoutError, NavigationError),
        )
        self._rng = rng or random.Random()

    # ── Public API ───────────────────────────────────────

    @asynccontextmanager
    async def fetch(
        self,
        session: Browser,
        url: str,
        mode: FetchMode,
    ) -> AsyncIterator[PageHandle]:
        """Navigate a fresh page to *url* and yield it.

        Raises:
            InvalidUrlError: *url* is outside the Amazon domain family;
                no browser call is made.
            NavigationTimeoutError: the target did not respond in time.
            NavigationError: network or protocol failure.
            PageUnusableError: the page loaded but is an error page or a
                robot check.
        """
        if not is_amazon_url(url):
            raise InvalidUrlError("Invalid Amazon URL", url=url)

        context: BrowserContext | None = None
        page: Page | None = None
        try:
            context = await self._new_context(session, url)
            page = await self._bounded(
                context.new_page(), "Opening a page", url,
            )
            response = await self._navigation_policy.run(
                lambda: self._navigate(page, url),
                description=f"Navigation to {url}",
            )
            status = self._check_response(response, url)
            await self._check_robot_page(page, url)
            await self._dismiss_cookie_consent(page)
            await self._wait_ready(page, mode, url)
            yield PageHandle(
                page=page,
                url=url,
                mode=mode,
                status=status,
                content_timeout=self.settings.SELECTOR_TIMEOUT,
            )
        except PlaywrightError as exc:
            raise NavigationError(
                f"Browser error: {exc}", url=url
            ) from exc
        finally:
            await self._release(page, context)

    # ── Context setup ────────────────────────────────────

    async def _bounded(
        self, operation: Awaitable[T], what: str, url: str,
    ) -> T:
        """Await a browser call, giving up after ``NAVIGATION_TIMEOUT``."""
        timeout = self.settings.NAVIGATION_TIMEOUT
        try:
            return await asyncio.wait_for(operation, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise NavigationTimeoutError(
                f"{what} timed out after {timeout:.0f}s", url=url
            ) from exc

    async def _new_context(
        self, session: Browser, url: str,
    ) -> BrowserContext:
        accept_language = self._rng.choice(self.settings.ACCEPT_LANGUAGES)
        languages = _languages_from_header(accept_language)
        viewport = self._rng.choice(self.settings.VIEWPORTS)
        user_agent = self._rng.choice(self.settings.USER_AGENTS)

        context = await self._bounded(
            session.new_context(
                user_agent=user_agent,
                viewport=viewport,
                locale=languages[0] if languages else "en-US",
                extra_http_headers={"Accept-Language": accept_language},
            ),
            "Opening a browser context",
            url,
        )
        try:
            await self._bounded(
                context.add_init_script(
                    _STEALTH_SCRIPT % {"languages": json.dumps(languages)}
                ),
                "Installing the stealth script",
                url,
            )
            await self._bounded(
                context.route("**/*", self._route_request),
                "Installing the request filter",
                url,
            )
        except BaseException:
            await self._release(None, context)
            raise
        logger.debug(
            "Context for %s: viewport=%sx%s lang=%s",
            url,
            viewport["width"],
            viewport["height"],
            accept_language,
        )
        return context

    async def _route_request(self, route: Route) -> None:
        """Abort heavy resource types; let documents and scripts through."""
        try:
            if route.request.resource_type in (
                self.settings.BLOCKED_RESOURCE_TYPES
            ):
                await route.abort()
            else:
                await route.continue_()
        except PlaywrightError as exc:
            # page already closed while the request was in flight
            logger.debug("Route handling skipped: %s", exc)

    # ── Navigation ───────────────────────────────────────

    async def _navigate(self, page: Page, url: str) -> Response | None:
        try:
            return await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.settings.NAVIGATION_TIMEOUT * 1000,
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeoutError(
                f"Timed out after {self.settings.NAVIGATION_TIMEOUT:.0f}s",
                url=url,
            ) from exc
        except PlaywrightError as exc:
            raise NavigationError(
                f"Navigation failed: {exc}", url=url
            ) from exc

    def _check_response(
        self, response: Response | None, url: str,
    ) -> int:
        if response is None:
            raise PageUnusableError("Empty response", url=url)
        status = response.status
        if status >= 400:
            raise PageUnusableError(f"HTTP {status}", url=url)
        return status

    async def _check_robot_page(self, page: Page, url: str) -> None:
        selector = self.selectors.get("captcha_form")
        if not selector:
            return
        try:
            found = await asyncio.wait_for(
                page.locator(selector).count(),
                timeout=self.settings.COOKIE_CONSENT_TIMEOUT,
            )
        except (asyncio.TimeoutError, PlaywrightError) as exc:
            logger.debug("Robot-check probe skipped: %s", exc)
            return
        if found:
            logger.warning("Robot check served for %s", url)
            raise PageUnusableError("Robot check page served", url=url)

    async def _dismiss_cookie_consent(self, page: Page) -> None:
        """Click the cookie banner's accept button if one is shown."""
        selector = self.selectors.get("cookie_consent")
        if not selector:
            return
        timeout = self.settings.COOKIE_CONSENT_TIMEOUT
        try:
            locator = page.locator(selector).first
            if not await asyncio.wait_for(locator.count(), timeout=timeout):
                return
            await locator.click(timeout=timeout * 1000)
            logger.debug("Cookie consent dismissed")
        except (asyncio.TimeoutError, PlaywrightError) as exc:
            logger.debug("Cookie consent not dismissed: %s", exc)

    async def _wait_ready(
        self, page: Page, mode: FetchMode, url: str,
    ) -> None:
        key = "title" if mode is FetchMode.FULL else "price_whole"
        selector = self.selectors.get(key)
        if not selector:
            return
        try:
            await page.wait_for_selector(
                selector,
                state="attached",
                timeout=self.settings.SELECTOR_TIMEOUT * 1000,
            )
        except PlaywrightTimeoutError:
            # the extractor decides whether the missing element matters
            logger.debug("Readiness selector %r not found on %s", key, url)

    # ── Teardown ─────────────────────────────────────────

    async def _release(
        self,
        page: Page | None,
        context: BrowserContext | None,
    ) -> None:
        timeout = self.settings.BROWSER_PROBE_TIMEOUT
        if page is not None:
            try:
                await asyncio.wait_for(page.close(), timeout=timeout)
            except (asyncio.TimeoutError, PlaywrightError) as exc:
                logger.debug("Page close failed: %r", exc)
        if context is not None:
            try:
                await asyncio.wait_for(context.close(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Context close timed out after %.0fs; abandoning it",
                    timeout,
                )
            except PlaywrightError as exc:
                logger.debug("Context close failed: %s", exc)
